"""
Preview Module - Black Box Interface

Purpose: Build the app manifest and per-screen definitions clients fetch
Interface: get_manifest(), get_definition(), build_definition(), list_modules(), read_file(), write_file(), find_dependency()
Hidden: Record building, error containment, placeholder substitution, fingerprints

One broken screen never fails the manifest or another screen.
"""

from .records import ModuleRecord, content_hash, fingerprint
from .service import PreviewService

__all__ = ["ModuleRecord", "PreviewService", "content_hash", "fingerprint"]
