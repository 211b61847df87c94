import asyncio
import itertools
import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional, Tuple

from livescreen.exceptions import (
    EvaluationError,
    InfrastructureError,
    TransformError,
    UnknownModuleError,
)
from livescreen.modules.cache import CacheKey, ModuleCache
from livescreen.modules.mapping import IdentityMapper
from livescreen.modules.sandbox import ExecutionSandbox, SymbolTable, placeholder_component
from livescreen.modules.session import WorkspaceSession
from livescreen.modules.transform import ModuleKind, SourceTransformer, extract_dependencies
from livescreen.modules.workspace import ScreenFiles, WorkspaceLocator

from .records import ModuleRecord, content_hash, fingerprint

logger = logging.getLogger("livescreen.preview")

StageCallback = Callable[[str], None]


async def read_text(path: Path) -> str:
    """
    Raises:
        FileNotFoundError: The file is gone
        TransformError: The file is not valid UTF-8
        InfrastructureError: Any other read failure
    """
    try:
        return await asyncio.to_thread(path.read_text, encoding="utf-8")
    except FileNotFoundError:
        raise
    except UnicodeDecodeError as e:
        raise TransformError(f"{path.name} is not valid UTF-8: {e}", filename=path.name) from e
    except OSError as e:
        raise InfrastructureError(f"Failed to read {path}: {e}", path=str(path)) from e


class PreviewService:
    """
    Builds what preview clients fetch: the app manifest and per-screen definitions.

    Every build failure is contained to its screen. A screen whose source
    will not transform or evaluate still yields a definition, carrying a
    placeholder component and the error text.
    """

    def __init__(
        self,
        cache: ModuleCache,
        transformer: SourceTransformer,
        sandbox: ExecutionSandbox,
        mapper: IdentityMapper,
    ):
        self.cache = cache
        self.transformer = transformer
        self.sandbox = sandbox
        self.mapper = mapper
        self._build_sequence = itertools.count(1)

    def locator(self, session: WorkspaceSession) -> WorkspaceLocator:
        return WorkspaceLocator(session.src_root)

    # Module records

    async def build_record(
        self, session: WorkspaceSession, locator: WorkspaceLocator, path: Path, module_id: str
    ) -> ModuleRecord:
        """Read and transform one file. The kind recorded on first discovery is kept."""
        relative = locator.relative(path)
        kind = session.kinds.classify(relative, locator.kind_of(path))
        try:
            source = await read_text(path)
        except TransformError as e:
            logger.warning(f"Unreadable source {relative}: {e.message}")
            return ModuleRecord(
                module_id=module_id,
                kind=kind,
                path=relative,
                source="",
                transformed=None,
                dependencies=[],
                built_at=datetime.now(UTC).isoformat(),
                error=e.message,
            )
        record = ModuleRecord(
            module_id=module_id,
            kind=kind,
            path=relative,
            source=source,
            transformed=None,
            dependencies=extract_dependencies(source),
            built_at=datetime.now(UTC).isoformat(),
        )
        try:
            result = await self.transformer.transform(source, ModuleKind(kind), path.name)
        except TransformError as e:
            record.error = e.message
            logger.warning(f"Transform failed for {relative}: {e.message}")
            return record

        record.transformed = result.code
        record.strategy = result.strategy.value
        record.warnings = list(result.warnings)
        if result.fallback_reason:
            record.warnings.append(f"pattern fallback: {result.fallback_reason}")
        return record

    # Screen definitions

    async def build_definition(
        self,
        session: WorkspaceSession,
        module_id: str,
        on_stage: Optional[StageCallback] = None,
    ) -> Dict[str, Any]:
        """
        Build a screen definition from disk, bypassing the cache.

        Raises:
            UnknownModuleError: No conventional location holds the screen
        """
        stage = on_stage or (lambda _: None)
        locator = self.locator(session)

        stage("fetching")
        files: ScreenFiles = await asyncio.to_thread(locator.find_screen, module_id)

        stage("transforming")
        try:
            component = await self.build_record(session, locator, files.component, module_id)
            helpers = [
                await self.build_record(session, locator, path, path.stem) for path in files.helpers
            ]
        except FileNotFoundError as e:
            raise UnknownModuleError(module_id, session_id=session.session_id) from e

        error = component.error
        evaluation = None
        code = component.transformed
        helper_code = [h.transformed for h in helpers if h.ok]
        for helper in helpers:
            if not helper.ok:
                logger.warning(f"Helper {helper.path} for {module_id} skipped: {helper.error}")

        if code is not None:
            symbols = SymbolTable.default(locator.context_files())
            try:
                evaluated = await self.sandbox.evaluate(code, module_id, symbols, helper_code)
                evaluation = evaluated.to_dict()
            except EvaluationError as e:
                error = e.message
                logger.warning(f"Evaluation failed for {module_id}: {e.message}")

        if error is not None:
            code = placeholder_component(module_id, error)
            helper_code = []

        dependencies: List[str] = []
        for record in [component] + helpers:
            dependencies.extend(d for d in record.dependencies if d not in dependencies)

        digest = content_hash(code, *helper_code)
        definition = {
            "module_id": module_id,
            "registry_key": self.mapper.resolve(module_id),
            "kind": component.kind,
            "code": code,
            "helper_code": helper_code,
            "component": component.to_dict(),
            "helpers": [h.to_dict() for h in helpers],
            "hooks": [locator.relative(p) for p in files.hooks],
            "utils": [locator.relative(p) for p in files.utils],
            "styles": locator.relative(files.styles) if files.styles else None,
            "dependencies": dependencies,
            "strategy": component.strategy,
            "evaluation": evaluation,
            "error": error,
            "content_hash": digest,
            "fingerprint": fingerprint(digest, next(self._build_sequence)),
            "built_at": datetime.now(UTC).isoformat(),
        }
        return definition

    async def get_definition(
        self, session: WorkspaceSession, module_id: str
    ) -> Tuple[Dict[str, Any], bool]:
        """Cached screen definition. Returns (definition, cache_hit)."""
        key = CacheKey(session.session_id, module_id)
        return await self.cache.get_or_build(key, lambda: self.build_definition(session, module_id))

    async def refresh_definition(
        self,
        session: WorkspaceSession,
        module_id: str,
        on_stage: Optional[StageCallback] = None,
    ) -> Dict[str, Any]:
        """
        Rebuild a screen from disk. Only a definition without errors replaces the cached one.
        """
        definition = await self.build_definition(session, module_id, on_stage=on_stage)
        if definition["error"] is None:
            await self.cache.put(CacheKey(session.session_id, module_id), definition)
        return definition

    async def invalidate(self, session: WorkspaceSession, module_id: Optional[str] = None) -> int:
        """Evict one screen (and the manifest) or the whole session."""
        if module_id is None:
            return await self.cache.evict_session(session.session_id)
        removed = await self.cache.evict_module(session.session_id, module_id)
        removed += await self.cache.evict(CacheKey.manifest(session.session_id))
        return removed

    # Manifest

    def list_modules(self, session: WorkspaceSession) -> List[Dict[str, Any]]:
        locator = self.locator(session)
        modules = []
        for module_id in locator.list_screens():
            files = locator.find_screen(module_id)
            modules.append({
                "module_id": module_id,
                "registry_key": self.mapper.resolve(module_id),
                "path": locator.relative(files.component),
                "hooks": [locator.relative(p) for p in files.hooks],
                "utils": [locator.relative(p) for p in files.utils],
                "styles": locator.relative(files.styles) if files.styles else None,
            })
        return modules

    async def build_manifest(self, session: WorkspaceSession) -> Dict[str, Any]:
        locator = self.locator(session)
        modules = await asyncio.to_thread(self.list_modules, session)
        entry = locator.find_entry()
        collisions = self.mapper.verify(m["module_id"] for m in modules)

        package = {}
        package_json = session.workspace_root / "package.json"
        if package_json.is_file():
            try:
                package = json.loads(await read_text(package_json))
            except (ValueError, TransformError) as e:
                logger.warning(f"Ignoring unreadable package.json in {session.session_id}: {e}")

        built_at = datetime.now(UTC).isoformat()
        digest = content_hash(json.dumps(modules, sort_keys=True), str(entry))
        return {
            "session_id": session.session_id,
            "name": package.get("name") or session.workspace_root.name,
            "version": package.get("version"),
            "entry": locator.relative(entry) if entry else None,
            "screens": modules,
            "registry": {m["module_id"]: m["registry_key"] for m in modules},
            "registry_collisions": collisions,
            "dependencies": sorted((package.get("dependencies") or {}).keys()),
            "build_time": built_at,
            "content_hash": digest,
            "fingerprint": fingerprint(digest, next(self._build_sequence)),
        }

    async def get_manifest(self, session: WorkspaceSession) -> Tuple[Dict[str, Any], bool]:
        """
        Cached app manifest. Returns (manifest, cache_hit).

        Serving the manifest is a full preview load, so the session's
        changed-since-full-load set is reset.
        """
        manifest, hit = await self.cache.get_or_build(
            CacheKey.manifest(session.session_id), lambda: self.build_manifest(session)
        )
        if session.notifier is not None:
            session.notifier.mark_full_load()
        return manifest, hit

    async def warm(self, session: WorkspaceSession) -> Dict[str, Any]:
        """Build the manifest and every screen definition. Used at session init."""
        manifest, _ = await self.cache.get_or_build(
            CacheKey.manifest(session.session_id), lambda: self.build_manifest(session)
        )
        results = await asyncio.gather(
            *(self.get_definition(session, m["module_id"]) for m in manifest["screens"]),
            return_exceptions=True,
        )
        failed = [
            m["module_id"]
            for m, result in zip(manifest["screens"], results)
            if isinstance(result, Exception) or result[0].get("error")
        ]
        logger.info(
            f"Warmed {len(results)} screens for session {session.session_id}"
            + (f" ({len(failed)} with errors: {', '.join(failed)})" if failed else "")
        )
        return {"screens": len(results), "failed": failed}

    # Raw files

    async def read_file(self, session: WorkspaceSession, module_id: str, file_name: str) -> Dict[str, Any]:
        locator = self.locator(session)
        path = locator.resolve_file(module_id, file_name)
        try:
            content = await read_text(path)
        except FileNotFoundError as e:
            raise UnknownModuleError(f"{module_id}/{file_name}", session_id=session.session_id) from e
        return {"module_id": module_id, "file": locator.relative(path), "content": content}

    async def write_file(
        self, session: WorkspaceSession, module_id: str, file_name: str, content: str
    ) -> Dict[str, Any]:
        """Write a screen file and evict the screen so the next fetch rebuilds it."""
        locator = self.locator(session)
        path = locator.resolve_file(module_id, file_name)
        try:
            await asyncio.to_thread(path.parent.mkdir, parents=True, exist_ok=True)
            await asyncio.to_thread(path.write_text, content, encoding="utf-8")
        except OSError as e:
            raise InfrastructureError(f"Failed to write {path}: {e}", path=str(path)) from e
        await self.invalidate(session, module_id)
        logger.info(f"Updated {locator.relative(path)} in session {session.session_id}")
        return {"module_id": module_id, "file": locator.relative(path), "size": len(content)}

    async def find_dependency(self, session: WorkspaceSession, name: str) -> Dict[str, Any]:
        """Locate and transform a shared module from utils/, lib/, components/ or hooks/."""
        locator = self.locator(session)
        path = locator.find_dependency(name)
        if path is None:
            raise UnknownModuleError(name, session_id=session.session_id)
        record = await self.build_record(session, locator, path, name)
        return record.to_dict()
