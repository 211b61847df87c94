import asyncio
import logging
from typing import Awaitable, Callable, Dict, Hashable

logger = logging.getLogger("livescreen.notifier.debounce")


class Debouncer:
    """
    One pending task per key.

    Scheduling a key that already has a pending task cancels and replaces
    it, so a burst of N calls inside the window runs the callback once.
    Once the window elapses the task leaves the pending map before its
    callback runs; a later schedule starts a new window instead of
    cancelling work in progress.
    """

    def __init__(self, window: float):
        self.window = window
        self._pending: Dict[Hashable, asyncio.Task] = {}

    def schedule(self, key: Hashable, callback: Callable[[], Awaitable[None]]) -> None:
        existing = self._pending.get(key)
        if existing is not None and not existing.done():
            existing.cancel()
        self._pending[key] = asyncio.create_task(self._run(key, callback))

    async def _run(self, key: Hashable, callback: Callable[[], Awaitable[None]]) -> None:
        await asyncio.sleep(self.window)
        if self._pending.get(key) is asyncio.current_task():
            del self._pending[key]
        try:
            await callback()
        except Exception:
            logger.exception(f"Debounced callback for {key!r} failed")

    def is_pending(self, key: Hashable) -> bool:
        task = self._pending.get(key)
        return task is not None and not task.done()

    @property
    def pending_count(self) -> int:
        return sum(1 for task in self._pending.values() if not task.done())

    def cancel(self, key: Hashable) -> bool:
        task = self._pending.pop(key, None)
        if task is None or task.done():
            return False
        task.cancel()
        return True

    def cancel_all(self) -> int:
        cancelled = 0
        for key in list(self._pending):
            cancelled += self.cancel(key)
        return cancelled
