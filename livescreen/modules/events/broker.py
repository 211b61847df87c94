import asyncio
import itertools
import json
import logging
from collections import deque
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Set

logger = logging.getLogger("livescreen.events")


class EventType(str, Enum):
    """Server to preview events on the real-time channel."""

    FILE_CHANGED = "file-changed"
    BUNDLE_UPDATED = "bundle-updated"
    BUNDLE_ERROR = "bundle-error"
    SCREEN_HOT_RELOAD = "screen-hot-reload"
    SCREEN_INJECTION = "screen-injection"
    NAVIGATION_UPDATE = "navigation-update"


@dataclass
class PreviewEvent:
    event_id: int
    type: EventType
    session_id: str
    data: Dict[str, Any]
    timestamp: str = field(default_factory=lambda: datetime.now(UTC).isoformat())

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.event_id,
            "type": self.type.value,
            "session_id": self.session_id,
            "timestamp": self.timestamp,
            "data": self.data,
        }

    def to_sse(self) -> Dict[str, str]:
        """Shape expected by sse_starlette's EventSourceResponse."""
        return {
            "id": str(self.event_id),
            "event": self.type.value,
            "data": json.dumps(self.to_dict()),
        }


class Subscription:
    """One listener's queue. Call close() (or use as a context manager) to unsubscribe."""

    def __init__(self, broker: "EventBroker", session_id: str, maxsize: int):
        self.broker = broker
        self.session_id = session_id
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def get(self) -> PreviewEvent:
        return await self.queue.get()

    def close(self) -> None:
        self.broker.unsubscribe(self)

    def __enter__(self) -> "Subscription":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class EventBroker:
    def __init__(self, redis_client=None, history_size: int = 50, queue_size: int = 100):
        """
        Initialize event broker.

        Args:
            redis_client: Optional async Redis client; events are mirrored to pub/sub when set
            history_size: Events kept per session for late subscribers and polling
            queue_size: Per-subscriber queue bound; slow subscribers lose the oldest events
        """
        self.redis = redis_client
        self.history_size = history_size
        self.queue_size = queue_size
        self._subscribers: Dict[str, Set[Subscription]] = {}
        self._history: Dict[str, Deque[PreviewEvent]] = {}
        self._ids = itertools.count(1)

    def subscribe(self, session_id: str) -> Subscription:
        subscription = Subscription(self, session_id, self.queue_size)
        self._subscribers.setdefault(session_id, set()).add(subscription)
        logger.debug(f"Subscriber added for session {session_id}")
        return subscription

    def unsubscribe(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.session_id)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        if not subscribers:
            del self._subscribers[subscription.session_id]

    def subscriber_count(self, session_id: str) -> int:
        return len(self._subscribers.get(session_id, ()))

    async def publish(
        self, session_id: str, event_type: EventType, data: Optional[Dict[str, Any]] = None
    ) -> PreviewEvent:
        """Deliver an event to every subscriber of the session."""
        event = PreviewEvent(
            event_id=next(self._ids),
            type=EventType(event_type),
            session_id=session_id,
            data=data or {},
        )

        history = self._history.setdefault(session_id, deque(maxlen=self.history_size))
        history.append(event)

        for subscription in list(self._subscribers.get(session_id, ())):
            if subscription.queue.full():
                subscription.queue.get_nowait()
                logger.warning(f"Subscriber queue full for session {session_id}, dropped oldest event")
            subscription.queue.put_nowait(event)

        if self.redis is not None:
            await self._mirror(event)

        logger.info(f"Published {event.type.value} for session {session_id}")
        return event

    async def _mirror(self, event: PreviewEvent) -> None:
        """Mirror to Redis pub/sub and a capped list for external monitoring."""
        payload = json.dumps(event.to_dict())
        await self.redis.publish(f"livescreen:events:{event.session_id}", payload)
        history_key = f"livescreen:events:{event.session_id}:history"
        await self.redis.lpush(history_key, payload)
        await self.redis.ltrim(history_key, 0, self.history_size - 1)

    def history(
        self, session_id: str, event_type: Optional[EventType] = None, since_id: int = 0
    ) -> List[PreviewEvent]:
        events = self._history.get(session_id, ())
        return [
            e for e in events
            if e.event_id > since_id and (event_type is None or e.type == EventType(event_type))
        ]

    def drop_session(self, session_id: str) -> None:
        """Forget a session's history and detach its subscribers."""
        self._history.pop(session_id, None)
        self._subscribers.pop(session_id, None)
