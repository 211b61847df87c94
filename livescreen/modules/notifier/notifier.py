import asyncio
import logging
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Awaitable, Callable, Dict, Iterable, List, Optional, Set

from watchfiles import Change, DefaultFilter, awatch

from livescreen.modules.cache import CacheKey, ModuleCache
from livescreen.modules.events import EventBroker, EventType
from livescreen.modules.session import WorkspaceSession
from livescreen.modules.workspace import WorkspaceLocator

from .debounce import Debouncer

logger = logging.getLogger("livescreen.notifier")

WATCHED_EXTENSIONS = (".ts", ".tsx", ".js", ".jsx", ".json")
IGNORED_DIRS = {"node_modules", "__tests__", ".git", ".livescreen"}
TEST_SUFFIXES = (".test.ts", ".test.tsx", ".spec.ts", ".spec.tsx")

CHANGE_NAMES = {Change.added: "add", Change.modified: "change", Change.deleted: "remove"}


class WorkspaceFilter(DefaultFilter):
    """Source files only; dependencies, tests and our own output are ignored."""

    def __init__(self):
        super().__init__(ignore_dirs=tuple(DefaultFilter.ignore_dirs) + tuple(IGNORED_DIRS))

    def __call__(self, change: Change, path: str) -> bool:
        if not super().__call__(change, path):
            return False
        name = Path(path).name
        if name.startswith("."):
            return False
        if name.endswith(TEST_SUFFIXES):
            return False
        return name.endswith(WATCHED_EXTENSIONS)


@dataclass
class ChangeEvent:
    change_type: str
    path: str
    session_id: str
    module_id: str
    relative_path: str
    is_screen: bool = True
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> dict:
        return {
            "change_type": self.change_type,
            "path": self.path,
            "relative_path": self.relative_path,
            "session_id": self.session_id,
            "module_id": self.module_id,
            "timestamp": self.timestamp,
        }


Listener = Callable[[ChangeEvent], Awaitable[None]]


class ChangeNotifier:
    """
    Watches one session's workspace and turns file changes into Change Events.

    Raw changes are coalesced per path. A coalesced change evicts the owning
    module's cache entries and the app manifest, joins the changed-since-
    full-load set, is published as file-changed, and is handed to listeners.
    """

    def __init__(
        self,
        session: WorkspaceSession,
        cache: ModuleCache,
        broker: EventBroker,
        locator: Optional[WorkspaceLocator] = None,
        debounce_window: float = 0.5,
    ):
        self.session = session
        self.cache = cache
        self.broker = broker
        self.locator = locator or WorkspaceLocator(session.src_root)
        self.debouncer = Debouncer(debounce_window)
        self._listeners: List[Listener] = []
        self._changed: Set[str] = set()
        self._pending_owners: Dict[str, Optional[str]] = {}
        self._stop_event = asyncio.Event()
        self._task: Optional[asyncio.Task] = None
        self.emitted = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._watch())
        logger.info(f"Watching {self.session.workspace_root} for session {self.session.session_id}")

    async def _watch(self) -> None:
        try:
            async for changes in awatch(
                self.session.workspace_root,
                watch_filter=WorkspaceFilter(),
                stop_event=self._stop_event,
            ):
                for change, path in changes:
                    self.notify(CHANGE_NAMES.get(change, "change"), path)
        except FileNotFoundError:
            logger.warning(f"Workspace for session {self.session.session_id} disappeared")
        except Exception:
            logger.exception(f"File watcher for session {self.session.session_id} stopped")

    def notify(self, change_type: str, path: str) -> None:
        """Feed one raw change. Repeats for the same path inside the window coalesce."""
        path = str(Path(path).resolve())
        self._pending_owners[path] = self.locator.owner_of(Path(path))
        self.debouncer.schedule(path, lambda: self._emit(change_type, path))

    def has_pending(self, module_id: str) -> bool:
        """Whether a change owned by this screen is still inside its window."""
        return any(
            owner == module_id and self.debouncer.is_pending(path)
            for path, owner in self._pending_owners.items()
        )

    async def _emit(self, change_type: str, path: str) -> None:
        self._pending_owners.pop(path, None)
        owner = self.locator.owner_of(Path(path))
        event = ChangeEvent(
            change_type=change_type,
            path=path,
            session_id=self.session.session_id,
            module_id=owner or Path(path).stem,
            relative_path=self.locator.relative(Path(path)),
            is_screen=owner is not None,
        )

        sid = self.session.session_id
        if owner is not None:
            await self.cache.evict_module(sid, owner)
            self._changed.add(owner)
        await self.cache.evict(CacheKey.manifest(sid))
        await self.cache.evict(CacheKey.bundle(sid))

        self.emitted += 1
        logger.info(f"{change_type} {event.relative_path} (module {event.module_id})")
        await self.broker.publish(sid, EventType.FILE_CHANGED, event.to_dict())

        for listener in list(self._listeners):
            try:
                await listener(event)
            except Exception:
                logger.exception(f"Change listener failed for {event.relative_path}")

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        """Register a listener; returns the callable that unregisters it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def changed_since_full_load(self) -> List[str]:
        """Distinct screen module ids touched since the last full manifest load."""
        return sorted(self._changed)

    def mark_full_load(self) -> None:
        self._changed.clear()

    def acknowledge(self, module_ids: Iterable[str]) -> None:
        """Drop screens that have been hot-swapped from the changed set."""
        self._changed.difference_update(module_ids)

    async def stop(self) -> None:
        """Stop watching, cancel pending coalesced changes, drop listeners."""
        self._stop_event.set()
        self.debouncer.cancel_all()
        self._pending_owners.clear()
        self._listeners.clear()
        if self._task is not None:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None
        logger.info(f"Stopped watching session {self.session.session_id}")
