"""
Workspace Module - Black Box Interface

Purpose: Locate screen, helper, dependency and entry files in a workspace
Interface: WorkspaceLocator.list_screens(), find_screen(), owner_of(), find_dependency(), find_entry()
Hidden: Directory conventions and search order

Only a fixed set of conventional locations is searched.
"""

from .locator import HELPER, PRIMARY, SOURCE_EXTENSIONS, ScreenFiles, WorkspaceLocator

__all__ = ["HELPER", "PRIMARY", "SOURCE_EXTENSIONS", "ScreenFiles", "WorkspaceLocator"]
