"""
Sandbox Module - Black Box Interface

Purpose: Evaluate transformed script against a declared symbol table
Interface: ExecutionSandbox.evaluate(), SymbolTable.default(), placeholder_component()
Hidden: V8 context management, prelude, candidate binding probes, context discovery

Evaluation is closed: scripts see only the symbols they are given.
"""

from .sandbox import (
    RESERVED_BINDING,
    EvaluatedComponent,
    ExecutionSandbox,
    build_script,
    candidate_bindings,
    declared_names,
)
from .symbols import FALLBACK_CONTEXT, SymbolTable, discover_context, find_literal, placeholder_component

__all__ = [
    "EvaluatedComponent",
    "ExecutionSandbox",
    "FALLBACK_CONTEXT",
    "RESERVED_BINDING",
    "SymbolTable",
    "build_script",
    "candidate_bindings",
    "declared_names",
    "discover_context",
    "find_literal",
    "placeholder_component",
]
