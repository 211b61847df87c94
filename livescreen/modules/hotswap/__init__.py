"""
Hot-Swap Module - Black Box Interface

Purpose: Replace running screens in the live preview without a full reload
Interface: HotSwapDispatcher.request(), swap(), apply_changes(), inject(), update_navigation(), registry()
Hidden: Per-module state machine, debounce, per-key serialisation, version ordering

A failed swap never replaces the last component that worked.
"""

from .dispatcher import HotSwapDispatcher, SwapResult, SwapState
from .registry import ComponentRegistry, RegisteredComponent

__all__ = [
    "ComponentRegistry",
    "HotSwapDispatcher",
    "RegisteredComponent",
    "SwapResult",
    "SwapState",
]
