"""
Notifier Module - Black Box Interface

Purpose: Watch a session workspace and coalesce filesystem changes
Interface: ChangeNotifier.start(), stop(), notify(), subscribe(), changed_since_full_load(), mark_full_load(), acknowledge()
Hidden: watchfiles integration, per-path debounce tasks, cache eviction

One notifier per session; destroying the session stops it.
"""

from .debounce import Debouncer
from .notifier import ChangeEvent, ChangeNotifier, WorkspaceFilter

__all__ = ["ChangeEvent", "ChangeNotifier", "Debouncer", "WorkspaceFilter"]
