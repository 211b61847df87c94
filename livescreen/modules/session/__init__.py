"""
Session Module - Black Box Interface

Purpose: Manage workspace session lifecycle
Interface: create_session(), get_session(), require(), list_sessions(), remove_session()
Hidden: Workspace copying, ignore rules, per-session module kind records

Replaceable with any session backend (database, container volumes, remote workspaces).
"""

from .session import (
    ModuleKindRegistry,
    SessionStore,
    WorkspaceSession,
    WorkspaceStatus,
)

__all__ = ["ModuleKindRegistry", "SessionStore", "WorkspaceSession", "WorkspaceStatus"]
