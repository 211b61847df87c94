import asyncio
import logging
import os
import re
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Set

from livescreen.exceptions import InfrastructureError, TransformError
from livescreen.modules.cache import CacheKey, ModuleCache
from livescreen.modules.events import EventBroker, EventType
from livescreen.modules.notifier import ChangeEvent, Debouncer
from livescreen.modules.preview import content_hash, fingerprint
from livescreen.modules.session import WorkspaceSession
from livescreen.modules.transform import scan_specifiers
from livescreen.modules.workspace import SOURCE_EXTENSIONS, WorkspaceLocator

from .plugins import PluginChain, Resolution

logger = logging.getLogger("livescreen.bundler")

SHIM_DIR = ".livescreen/shims"
SKIPPED_DIRS = {"node_modules", "__tests__", ".git", ".livescreen"}
ALWAYS_RESOLVED = ("react", "react/jsx-runtime")


def shim_filename(specifier: str) -> str:
    return re.sub(r"[^A-Za-z0-9_.-]+", "_", specifier).strip("_") + ".js"


def workspace_specifiers(src_root: Path) -> List[str]:
    """Every import specifier used by workspace sources, first-seen order."""
    specifiers: List[str] = []
    for dirpath, dirnames, filenames in os.walk(src_root):
        dirnames[:] = sorted(d for d in dirnames if d not in SKIPPED_DIRS and not d.startswith("."))
        for name in sorted(filenames):
            if not name.endswith(SOURCE_EXTENSIONS):
                continue
            try:
                source = (Path(dirpath) / name).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning(f"Skipping unreadable {name} during import scan: {e}")
                continue
            specifiers.extend(s for s in scan_specifiers(source) if s not in specifiers)
    return specifiers


class BundleBuilder:
    """
    Whole-app browser bundle for the preview frame.

    Bare imports answered by the plugin chain are written as shim files and
    aliased on the esbuild command line; everything else is left to
    esbuild's own resolution inside the workspace.
    """

    def __init__(
        self,
        cache: ModuleCache,
        broker: EventBroker,
        chain: PluginChain = None,
        command: str = "esbuild",
        timeout: float = 60.0,
        debounce_window: float = 0.5,
    ):
        self.cache = cache
        self.broker = broker
        self.chain = chain or PluginChain()
        self.command = command
        self.timeout = timeout
        self.debouncer = Debouncer(debounce_window)
        self._built: Set[str] = set()
        self._sequence = 0

    def build_args(self, entry: Path, aliases: Dict[str, Path]) -> List[str]:
        args = [
            self.command,
            str(entry),
            "--bundle",
            "--format=iife",
            "--platform=browser",
            "--target=es2017",
            "--jsx=automatic",
            "--loader:.js=jsx",
            '--define:process.env.NODE_ENV="development"',
            "--log-level=warning",
        ]
        args.extend(f"--alias:{specifier}={path}" for specifier, path in aliases.items())
        return args

    def _write_shims(self, session: WorkspaceSession, resolutions: Dict[str, Resolution]) -> Dict[str, Path]:
        shim_dir = session.workspace_root / SHIM_DIR
        shim_dir.mkdir(parents=True, exist_ok=True)
        aliases = {}
        for specifier, resolution in resolutions.items():
            path = shim_dir / shim_filename(specifier)
            path.write_text(resolution.contents, encoding="utf-8")
            aliases[specifier] = path
        return aliases

    async def _run(self, args: List[str], cwd: Path) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                *args,
                cwd=str(cwd),
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
            )
        except (FileNotFoundError, PermissionError) as e:
            raise InfrastructureError(f"Bundler '{self.command}' is not available: {e}") from e

        try:
            stdout, stderr = await asyncio.wait_for(proc.communicate(), timeout=self.timeout)
        except asyncio.TimeoutError as e:
            proc.kill()
            await proc.wait()
            raise TransformError(f"Bundling timed out after {self.timeout}s") from e

        if proc.returncode != 0:
            diagnostics = stderr.decode("utf-8", errors="replace").strip()
            raise TransformError(diagnostics or f"Bundler exited with {proc.returncode}")
        return stdout.decode("utf-8")

    async def build(self, session: WorkspaceSession) -> Dict[str, Any]:
        """
        Bundle the session's app and cache the result.

        Raises:
            TransformError: No entry component, or esbuild rejected the app
            InfrastructureError: esbuild could not be started or shims not written
        """
        sid = session.session_id
        locator = WorkspaceLocator(session.src_root)
        try:
            entry = locator.find_entry()
            if entry is None:
                raise TransformError(f"No entry component under {session.src_root}", session_id=sid)

            specifiers = await asyncio.to_thread(workspace_specifiers, session.src_root)
            resolutions = self.chain.resolve_all(list(ALWAYS_RESOLVED) + specifiers)
            try:
                aliases = await asyncio.to_thread(self._write_shims, session, resolutions)
            except OSError as e:
                raise InfrastructureError(f"Failed to write bundler shims: {e}", session_id=sid) from e

            code = await self._run(self.build_args(entry, aliases), cwd=session.workspace_root)
        except TransformError as e:
            logger.error(f"Bundle failed for session {sid}: {e.message}")
            await self.broker.publish(sid, EventType.BUNDLE_ERROR, {"module_id": None, "error": e.message})
            raise

        self._sequence += 1
        digest = content_hash(code)
        bundle = {
            "session_id": sid,
            "entry": locator.relative(entry),
            "code": code,
            "size": len(code),
            "aliases": sorted(aliases),
            "content_hash": digest,
            "fingerprint": fingerprint(digest, self._sequence),
            "build_time": datetime.now(UTC).isoformat(),
        }
        await self.cache.put(CacheKey.bundle(sid), bundle)
        self._built.add(sid)
        logger.info(f"Bundled session {sid}: {len(code)} bytes, {len(aliases)} shimmed imports")
        await self.broker.publish(sid, EventType.BUNDLE_UPDATED, {
            "entry": bundle["entry"],
            "size": bundle["size"],
            "fingerprint": bundle["fingerprint"],
            "build_time": bundle["build_time"],
        })
        return bundle

    async def get_bundle(self, session: WorkspaceSession) -> Dict[str, Any]:
        """Cached bundle, built on demand."""
        bundle = await self.cache.get(CacheKey.bundle(session.session_id))
        if bundle is not None:
            return bundle
        return await self.build(session)

    def attach(self, session: WorkspaceSession) -> Callable[[], None]:
        """Rebuild on change, but only for sessions that have asked for a bundle."""

        async def rebuild() -> None:
            try:
                await self.build(session)
            except TransformError as e:
                logger.debug(f"Background rebuild for {session.session_id} failed: {e.message}")

        async def on_change(event: ChangeEvent) -> None:
            if event.session_id in self._built:
                self.debouncer.schedule(event.session_id, rebuild)

        return session.notifier.subscribe(on_change)

    def drop_session(self, session_id: str) -> None:
        self.debouncer.cancel(session_id)
        self._built.discard(session_id)
