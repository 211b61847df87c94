import asyncio
import logging
from dataclasses import dataclass, field
from pathlib import PurePath
from typing import List

logger = logging.getLogger("livescreen.transform.compiler")

LOADERS = {".tsx": "tsx", ".ts": "ts", ".jsx": "jsx", ".js": "jsx", ".mjs": "js"}


class CompilerError(Exception):
    """The external compiler could not be run or rejected the source."""


@dataclass
class CompileOutput:
    code: str
    warnings: List[str] = field(default_factory=list)


class EsbuildCompiler:
    """
    Typed-source compiler backed by the esbuild binary in transform mode.

    Types are stripped and JSX lowered to React.createElement calls. Module
    syntax is kept as ESM so the export rewriter can see it.
    """

    def __init__(self, command: str = "esbuild", timeout: float = 10.0, target: str = "es2017"):
        self.command = command
        self.timeout = timeout
        self.target = target

    def build_args(self, filename: str) -> List[str]:
        loader = LOADERS.get(PurePath(filename).suffix, "tsx")
        return [
            self.command,
            f"--loader={loader}",
            "--format=esm",
            f"--target={self.target}",
            "--jsx=transform",
            f"--sourcefile={filename}",
            "--log-level=warning",
        ]

    async def compile(self, source: str, filename: str = "module.tsx") -> CompileOutput:
        """
        Compile one module through stdin/stdout.

        Raises:
            CompilerError: Binary missing, timeout, or non-zero exit
        """
        args = self.build_args(filename)
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                stdin=asyncio.subprocess.PIPE,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise CompilerError(f"Compiler '{self.command}' is not available: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(
                proc.communicate(source.encode("utf-8")), timeout=self.timeout
            )
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise CompilerError(f"Compiler timed out after {self.timeout}s on {filename}") from e

        diagnostics = stderr.decode("utf-8", errors="replace").strip()
        if proc.returncode != 0:
            raise CompilerError(diagnostics or f"Compiler exited with {proc.returncode}")

        warnings = [line for line in diagnostics.splitlines() if line.strip()]
        return CompileOutput(code=stdout.decode("utf-8"), warnings=warnings)
