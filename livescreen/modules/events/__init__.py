"""
Events Module - Black Box Interface

Purpose: Real-time channel from the backend to live preview clients
Interface: EventBroker.subscribe(), publish(), history(), Subscription.close()
Hidden: Per-session queues, bounded history, Redis pub/sub mirroring

Transport (SSE, websockets) is the API layer's concern.
"""

from .broker import EventBroker, EventType, PreviewEvent, Subscription

__all__ = ["EventBroker", "EventType", "PreviewEvent", "Subscription"]
