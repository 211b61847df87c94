"""
Preview engine wiring.

Builds every module from configuration and owns per-session lifecycle:
a session gets a change notifier, the hot-swap dispatcher and bundle
builder listen to it, and the initial manifest build is bounded by the
session init timeout.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

from livescreen.modules.bundler import BundleBuilder
from livescreen.modules.cache import MemoryCacheBackend, ModuleCache, RedisCacheBackend
from livescreen.modules.config import ConfigModule, get_config
from livescreen.modules.events import EventBroker
from livescreen.modules.hotswap import HotSwapDispatcher
from livescreen.modules.mapping import IdentityMapper
from livescreen.modules.notifier import ChangeNotifier
from livescreen.modules.preview import PreviewService
from livescreen.modules.sandbox import ExecutionSandbox
from livescreen.modules.session import SessionStore, WorkspaceSession, WorkspaceStatus
from livescreen.modules.storage import StorageModule
from livescreen.modules.transform import (
    CompilerTransformer,
    EsbuildCompiler,
    PatternTransformer,
    SourceTransformer,
)

logger = logging.getLogger("livescreen.engine")


class PreviewEngine:
    def __init__(
        self,
        config: Optional[ConfigModule] = None,
        storage: Optional[StorageModule] = None,
        redis_client=None,
        compiler: Optional[EsbuildCompiler] = None,
        sandbox: Optional[ExecutionSandbox] = None,
        mapper: Optional[IdentityMapper] = None,
    ):
        self.config = config or get_config()
        self.storage = storage
        self.redis = redis_client
        self.debounce_window = self.config.get("debounce_ms") / 1000.0

        if self.config.get("cache_backend") == "redis" and redis_client is not None:
            backend = RedisCacheBackend(redis_client)
        else:
            backend = MemoryCacheBackend()

        self.store = SessionStore(self.config.get("sessions_dir"))
        self.cache = ModuleCache(
            backend,
            module_ttl=self.config.get("module_cache_ttl"),
            manifest_ttl=self.config.get("manifest_cache_ttl"),
        )
        self.compiler = compiler or EsbuildCompiler(
            command=self.config.get("compiler_command"),
            timeout=self.config.get("compiler_timeout"),
        )
        self.transformer = SourceTransformer(CompilerTransformer(self.compiler), PatternTransformer())
        self.sandbox = sandbox or ExecutionSandbox(timeout=self.config.get("sandbox_timeout"))
        self.mapper = mapper or IdentityMapper.from_file(self.config.get("registry_map_file"))
        self.broker = EventBroker(
            redis_client=redis_client, history_size=self.config.get("event_history_size")
        )
        self.preview = PreviewService(self.cache, self.transformer, self.sandbox, self.mapper)
        self.dispatcher = HotSwapDispatcher(
            self.store, self.preview, self.mapper, self.broker, debounce_window=self.debounce_window
        )
        self.bundler = BundleBuilder(
            self.cache,
            self.broker,
            command=self.config.get("compiler_command"),
            debounce_window=self.debounce_window,
        )

    @classmethod
    async def create(cls, config: Optional[ConfigModule] = None) -> "PreviewEngine":
        """Build an engine, connecting to Redis when configured."""
        config = config or get_config()
        storage = None
        redis_client = None
        if config.get("redis_host"):
            storage = StorageModule(
                host=config.get("redis_host"),
                port=config.get("redis_port"),
                db=config.get("redis_db"),
                password=config.get("redis_password"),
            )
            redis_client = await storage.connect()
        return cls(config=config, storage=storage, redis_client=redis_client)

    async def init_session(
        self,
        source_path: Optional[str] = None,
        workspace_root: Optional[str] = None,
        watch: bool = True,
    ) -> WorkspaceSession:
        """
        Create a session and warm its caches.

        A session whose initial build overruns the init timeout is returned
        in degraded status; it keeps serving and rebuilds on demand.
        """
        session = await self.store.create_session(source_path=source_path, workspace_root=workspace_root)
        session.notifier = ChangeNotifier(
            session, self.cache, self.broker, debounce_window=self.debounce_window
        )
        session.detach_listeners.append(self.dispatcher.attach(session))
        session.detach_listeners.append(self.bundler.attach(session))
        if watch:
            await session.notifier.start()

        timeout = self.config.get("session_init_timeout")
        try:
            summary = await asyncio.wait_for(self.preview.warm(session), timeout=timeout)
        except asyncio.TimeoutError:
            session.status = WorkspaceStatus.DEGRADED
            logger.warning(f"Session {session.session_id} initial build exceeded {timeout}s, degraded")
        else:
            session.status = WorkspaceStatus.READY
            logger.info(f"Session {session.session_id} ready ({summary['screens']} screens)")
        return session

    async def destroy_session(self, session_id: str, delete_files: bool = True) -> bool:
        """Stop watching, drop caches and pending work, and delete the workspace copy."""
        session = self.store.require(session_id)
        for detach in session.detach_listeners:
            detach()
        session.detach_listeners.clear()
        if session.notifier is not None:
            await session.notifier.stop()
        self.dispatcher.drop_session(session_id)
        self.bundler.drop_session(session_id)
        await self.cache.evict_session(session_id)
        self.cache.forget_session(session_id)
        self.broker.drop_session(session_id)
        return await self.store.remove_session(session_id, delete_files=delete_files)

    async def destroy_all(self) -> List[str]:
        removed = []
        for session in self.store.list_sessions():
            await self.destroy_session(session.session_id)
            removed.append(session.session_id)
        return removed

    async def status(self) -> Dict[str, Any]:
        return {
            "sessions": len(self.store),
            "cache": await self.cache.stats(),
            "cache_backend": self.config.get("cache_backend"),
            "registry_table_size": len(self.mapper.table),
        }

    async def shutdown(self) -> None:
        removed = await self.destroy_all()
        logger.info(f"Released {len(removed)} sessions")
        if self.storage is not None:
            await self.storage.disconnect()
