import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from livescreen.exceptions import TransformError

from .compiler import EsbuildCompiler
from .fallback import pattern_rewrite
from .rewriter import RewriteError, rewrite_module, validate_script

logger = logging.getLogger("livescreen.transform")


class ModuleKind(str, Enum):
    """A screen's displayable component, or a hook/util/styles module beside it."""

    PRIMARY = "primary"
    HELPER = "helper"


class TransformStrategy(str, Enum):
    COMPILER = "compiler"
    PATTERN = "pattern"


@dataclass
class TransformResult:
    code: str
    strategy: TransformStrategy
    warnings: List[str] = field(default_factory=list)
    fallback_reason: Optional[str] = None


class CompilerTransformer:
    """Compiler-backed path: esbuild strips types, ExportRewriter removes module syntax."""

    strategy = TransformStrategy.COMPILER

    def __init__(self, compiler: EsbuildCompiler):
        self.compiler = compiler

    async def transform(self, source: str, kind: ModuleKind, filename: str) -> TransformResult:
        output = await self.compiler.compile(source, filename)
        for warning in output.warnings:
            logger.warning(f"Compiler diagnostic for {filename}: {warning}")

        code = rewrite_module(output.code, primary=kind == ModuleKind.PRIMARY)
        validate_script(code)
        return TransformResult(code=code, strategy=self.strategy, warnings=output.warnings)


class PatternTransformer:
    """Degraded path: line-oriented regular expression rewrite of the raw source."""

    strategy = TransformStrategy.PATTERN

    async def transform(self, source: str, kind: ModuleKind, filename: str) -> TransformResult:
        code = pattern_rewrite(source, primary=kind == ModuleKind.PRIMARY)
        return TransformResult(code=code, strategy=self.strategy)


class SourceTransformer:
    """
    Converts one typed-source module into executable script text.

    The compiler path is tried first; any exception it raises selects the
    pattern path. The returned text always parses as a complete script,
    otherwise TransformError is raised and no text is returned.
    """

    def __init__(
        self,
        primary: Optional[CompilerTransformer] = None,
        fallback: Optional[PatternTransformer] = None,
    ):
        self.primary = primary or CompilerTransformer(EsbuildCompiler())
        self.fallback = fallback or PatternTransformer()

    async def transform(
        self, source: str, kind: ModuleKind, filename: str = "module.tsx"
    ) -> TransformResult:
        kind = ModuleKind(kind)
        try:
            return await self.primary.transform(source, kind, filename)
        except Exception as e:  # noqa: BLE001 - any failure selects the pattern path
            logger.warning(f"Compiler path failed for {filename}, using pattern rewrite: {e}")
            reason = str(e)

        result = await self.fallback.transform(source, kind, filename)
        try:
            validate_script(result.code)
        except RewriteError as e:
            raise TransformError(
                f"Could not transform {filename}: {e}", filename=filename, reason=reason
            ) from e
        result.fallback_reason = reason
        return result
