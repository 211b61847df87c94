import asyncio
import itertools
import logging
from dataclasses import asdict, dataclass
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from livescreen.exceptions import LivescreenError
from livescreen.modules.events import EventBroker, EventType
from livescreen.modules.mapping import IdentityMapper
from livescreen.modules.notifier import ChangeEvent, Debouncer
from livescreen.modules.preview import PreviewService, content_hash, fingerprint
from livescreen.modules.sandbox import ExecutionSandbox, SymbolTable
from livescreen.modules.session import SessionStore, WorkspaceSession
from livescreen.modules.transform import ModuleKind, SourceTransformer

from .registry import ComponentRegistry, RegisteredComponent

logger = logging.getLogger("livescreen.hotswap")

SwapKey = Tuple[str, str]


class SwapState(str, Enum):
    IDLE = "idle"
    DETECTING = "detecting"
    FETCHING = "fetching"
    TRANSFORMING = "transforming"
    REGISTERING = "registering"
    FAILED = "failed"


@dataclass
class SwapResult:
    session_id: str
    module_id: str
    version: Optional[int]
    applied: bool
    registry_key: Optional[str] = None
    fingerprint: Optional[str] = None
    superseded: bool = False
    scheduled: bool = False
    unchanged: bool = False
    error: Optional[str] = None

    @property
    def current(self) -> bool:
        """The registry holds this module's latest source."""
        return self.applied or self.unchanged

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


class HotSwapDispatcher:
    """
    Replaces running screens one module at a time.

    Per (session, module): idle -> detecting -> fetching -> transforming ->
    registering -> idle. A failure in fetching or transforming is logged,
    announced as bundle-error, and returns to idle without touching the
    registry. Swaps for one key are serialised and versioned in issue
    order; a swap that is already superseded by a newer request for the
    same key is skipped, so rapid edits resolve to the last writer.

    Watcher changes, explicit hot-reloads and debounced requests for one
    key share a single pending swap. While the session notifier is still
    coalescing a change to the screen, a hot-reload joins it instead of
    swapping on its own, and a rebuild identical to the installed
    component publishes nothing.
    """

    def __init__(
        self,
        sessions: SessionStore,
        preview: PreviewService,
        mapper: IdentityMapper,
        broker: EventBroker,
        debounce_window: float = 0.5,
    ):
        self.sessions = sessions
        self.preview = preview
        self.mapper = mapper
        self.broker = broker
        self.debouncer = Debouncer(debounce_window)
        self._registries: Dict[str, ComponentRegistry] = {}
        self._states: Dict[SwapKey, SwapState] = {}
        self._locks: Dict[SwapKey, asyncio.Lock] = {}
        self._issued: Dict[SwapKey, int] = {}
        self._versions = itertools.count(1)

    def registry(self, session_id: str) -> ComponentRegistry:
        registry = self._registries.get(session_id)
        if registry is None:
            registry = self._registries[session_id] = ComponentRegistry(session_id)
        return registry

    def state(self, session_id: str, module_id: str) -> SwapState:
        return self._states.get((session_id, module_id), SwapState.IDLE)

    def _set_state(self, key: SwapKey, state: SwapState) -> None:
        previous = self._states.get(key, SwapState.IDLE)
        self._states[key] = state
        logger.debug(f"{key[1]}@{key[0]}: {previous.value} -> {state.value}")

    def pending(self, session: WorkspaceSession, module_id: str) -> bool:
        """A swap for this screen is queued here or its file change is still coalescing."""
        if self.debouncer.is_pending((session.session_id, module_id)):
            return True
        return session.notifier is not None and session.notifier.has_pending(module_id)

    def request(self, session_id: str, module_id: str) -> None:
        """Debounced swap; requests inside the window collapse into one."""
        session = self.sessions.require(session_id)
        key = (session_id, module_id)
        self._set_state(key, SwapState.DETECTING)
        if session.notifier is not None and session.notifier.has_pending(module_id):
            logger.debug(f"{module_id}@{session_id}: joined pending file change")
            return
        self.debouncer.schedule(key, lambda: self._swap_quietly(session_id, module_id))

    async def _swap_quietly(self, session_id: str, module_id: str) -> None:
        if self.sessions.get_session(session_id) is None:
            return
        await self.run_swap(session_id, module_id)

    async def swap(self, session_id: str, module_id: str) -> SwapResult:
        """
        Hot-reload one screen.

        Swaps now unless a swap for the screen is already pending, in which
        case the request joins it and the result is marked scheduled.
        """
        session = self.sessions.require(session_id)
        if self.pending(session, module_id):
            self._set_state((session_id, module_id), SwapState.DETECTING)
            logger.info(f"Hot-reload of {module_id} joined the pending swap")
            return SwapResult(session_id, module_id, None, applied=False, scheduled=True)
        return await self.run_swap(session_id, module_id)

    async def run_swap(self, session_id: str, module_id: str) -> SwapResult:
        """Fetch, transform, evaluate and register a fresh build of one module now."""
        session = self.sessions.require(session_id)
        key = (session_id, module_id)
        self.debouncer.cancel(key)
        version = next(self._versions)
        self._issued[key] = version
        lock = self._locks.setdefault(key, asyncio.Lock())

        async with lock:
            if self._issued.get(key, version) > version:
                logger.info(f"Swap v{version} of {module_id} superseded before it started")
                return SwapResult(session_id, module_id, version, applied=False, superseded=True)

            self._set_state(key, SwapState.FETCHING)
            try:
                definition = await self.preview.refresh_definition(
                    session, module_id, on_stage=lambda stage: self._on_stage(key, stage)
                )
            except LivescreenError as e:
                return await self._fail(key, version, e.message)
            except Exception as e:
                logger.exception(f"Unexpected error rebuilding {module_id}")
                return await self._fail(key, version, f"{type(e).__name__}: {e}")

            if definition.get("error"):
                return await self._fail(key, version, definition["error"])

            if self._issued.get(key, version) > version:
                self._set_state(key, SwapState.IDLE)
                logger.info(f"Swap v{version} of {module_id} superseded, result discarded")
                return SwapResult(session_id, module_id, version, applied=False, superseded=True)

            registry_key = self.mapper.resolve(module_id)
            registry = self.registry(session_id)
            installed = registry.get(registry_key)
            if (
                installed is not None
                and installed.module_id == module_id
                and installed.content_hash == definition["content_hash"]
            ):
                self._set_state(key, SwapState.IDLE)
                logger.info(f"{module_id} unchanged since v{installed.version}, nothing to swap")
                return SwapResult(
                    session_id, module_id, installed.version, applied=False, unchanged=True,
                    registry_key=registry_key, fingerprint=installed.fingerprint,
                )

            self._set_state(key, SwapState.REGISTERING)
            component = RegisteredComponent(
                registry_key=registry_key,
                module_id=module_id,
                version=version,
                code=definition["code"],
                helper_code=list(definition.get("helper_code") or []),
                fingerprint=definition["fingerprint"],
                content_hash=definition["content_hash"],
                binding=(definition.get("evaluation") or {}).get("binding"),
                source="hot-reload",
            )
            registry.install(component)
            await self.broker.publish(session_id, EventType.SCREEN_HOT_RELOAD, {
                "module_id": module_id,
                "registry_key": registry_key,
                "version": version,
                "fingerprint": component.fingerprint,
                "code": component.code,
                "helper_code": component.helper_code,
                "dependencies": definition.get("dependencies", []),
            })
            self._set_state(key, SwapState.IDLE)
            logger.info(f"Hot-swapped {module_id} -> {registry_key} (v{version})")
            return SwapResult(
                session_id, module_id, version, applied=True,
                registry_key=registry_key, fingerprint=component.fingerprint,
            )

    def _on_stage(self, key: SwapKey, stage: str) -> None:
        if stage == "transforming":
            self._set_state(key, SwapState.TRANSFORMING)

    async def _fail(self, key: SwapKey, version: int, message: str) -> SwapResult:
        session_id, module_id = key
        self._set_state(key, SwapState.FAILED)
        logger.error(f"Hot-swap of {module_id} failed, keeping last good version: {message}")
        await self.broker.publish(session_id, EventType.BUNDLE_ERROR, {
            "module_id": module_id,
            "version": version,
            "error": message,
        })
        self._set_state(key, SwapState.IDLE)
        return SwapResult(session_id, module_id, version, applied=False, error=message)

    def attach(self, session: WorkspaceSession) -> Callable[[], None]:
        """
        Swap whenever the session notifier reports a screen change.

        The notifier has already coalesced the change, so the swap runs at
        once and absorbs any request queued for the same screen.
        """

        async def on_change(event: ChangeEvent) -> None:
            if not event.is_screen:
                return
            if session.notifier is not None and session.notifier.has_pending(event.module_id):
                # Another file of the same screen is still coalescing
                return
            await self.run_swap(event.session_id, event.module_id)

        return session.notifier.subscribe(on_change)

    async def apply_changes(self, session_id: str) -> List[SwapResult]:
        """Swap exactly the screens changed since the last full load."""
        session = self.sessions.require(session_id)
        changed = session.notifier.changed_since_full_load() if session.notifier else []
        results = []
        for module_id in changed:
            results.append(await self.swap(session_id, module_id))
        if session.notifier is not None:
            session.notifier.acknowledge(r.module_id for r in results if r.current)
        return results

    async def inject(
        self,
        session_id: str,
        module_id: str,
        code: str,
        registry_key: Optional[str] = None,
        transformer: Optional[SourceTransformer] = None,
        sandbox: Optional[ExecutionSandbox] = None,
    ) -> RegisteredComponent:
        """
        Install a brand-new module definition that does not exist on disk.

        Raises:
            TransformError, EvaluationError: The code is unusable; the registry is untouched
        """
        session = self.sessions.require(session_id)
        transformer = transformer or self.preview.transformer
        sandbox = sandbox or self.preview.sandbox

        result = await transformer.transform(code, ModuleKind.PRIMARY, f"{module_id}.tsx")
        symbols = SymbolTable.default(self.preview.locator(session).context_files())
        evaluated = await sandbox.evaluate(result.code, module_id, symbols)

        key = (session_id, module_id)
        version = next(self._versions)
        self._issued[key] = version
        component = RegisteredComponent(
            registry_key=registry_key or self.mapper.resolve(module_id),
            module_id=module_id,
            version=version,
            code=result.code,
            fingerprint=fingerprint(content_hash(result.code), version),
            content_hash=content_hash(result.code),
            source="injection",
            binding=evaluated.binding,
        )
        self.registry(session_id).install(component)
        await self.broker.publish(session_id, EventType.SCREEN_INJECTION, {
            "module_id": module_id,
            "registry_key": component.registry_key,
            "version": version,
            "fingerprint": component.fingerprint,
            "code": component.code,
        })
        logger.info(f"Injected {module_id} -> {component.registry_key}")
        return component

    async def update_navigation(self, session_id: str, config: Dict[str, Any]) -> Dict[str, Any]:
        """Push a navigation/structure update to the live preview."""
        self.sessions.require(session_id)
        registry = self.registry(session_id)
        registry.navigation = config
        event = await self.broker.publish(session_id, EventType.NAVIGATION_UPDATE, {"config": config})
        return event.to_dict()

    def drop_session(self, session_id: str) -> None:
        """Cancel pending swaps and forget all state for a session."""
        self._registries.pop(session_id, None)
        for key in [k for k in self._states if k[0] == session_id]:
            self.debouncer.cancel(key)
            self._states.pop(key, None)
        for mapping in (self._locks, self._issued):
            for key in [k for k in mapping if k[0] == session_id]:
                mapping.pop(key, None)
