"""
Transform Module - Black Box Interface

Purpose: Convert one typed-source module into executable script text
Interface: SourceTransformer.transform(), extract_dependencies()
Hidden: Compiler invocation, syntax-tree rewrite, pattern fallback, validation

Either strategy can be replaced independently; callers only see TransformResult.
"""

from .compiler import CompileOutput, CompilerError, EsbuildCompiler
from .imports import FRAMEWORK_PACKAGES, extract_dependencies, package_name, scan_specifiers
from .rewriter import RESERVED_BINDING, validate_script
from .transformer import (
    CompilerTransformer,
    ModuleKind,
    PatternTransformer,
    SourceTransformer,
    TransformResult,
    TransformStrategy,
)

__all__ = [
    "CompileOutput",
    "CompilerError",
    "CompilerTransformer",
    "EsbuildCompiler",
    "FRAMEWORK_PACKAGES",
    "ModuleKind",
    "PatternTransformer",
    "RESERVED_BINDING",
    "SourceTransformer",
    "TransformResult",
    "TransformStrategy",
    "extract_dependencies",
    "package_name",
    "scan_specifiers",
    "validate_script",
]
