"""
Real-time fan-out of telemetry envelopes to WebSocket subscribers.

``broadcast`` never waits on a subscriber: each one owns a bounded queue
drained by its own pump task. A subscriber whose queue is full or whose send
fails is removed from the registry. Nothing is replayed to late joiners.
"""

import asyncio
import logging
import threading
from collections import defaultdict
from typing import Any, Dict, Set

from collector.core.config import settings

logger = logging.getLogger(__name__)


class Subscriber:
    """One connected client and its pending envelopes."""

    def __init__(self, websocket, loop: asyncio.AbstractEventLoop, queue_size: int):
        self.websocket = websocket
        self.loop = loop
        self.queue: asyncio.Queue = asyncio.Queue(maxsize=queue_size)
        self.active = True


class Broadcaster:
    """Publish/subscribe registry with best-effort, non-blocking delivery."""

    def __init__(self, queue_size: int = 100):
        self._lock = threading.Lock()
        self._subscribers: Set[Subscriber] = set()
        self._queue_size = queue_size
        self._published = defaultdict(int)  # envelope type -> count
        self._delivered = 0
        self._dropped = 0

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._subscribers)

    def subscribe(self, websocket) -> Subscriber:
        """Register a websocket; must be called from its event loop."""
        subscriber = Subscriber(websocket, asyncio.get_running_loop(), self._queue_size)
        with self._lock:
            self._subscribers.add(subscriber)
        logger.info("Subscriber connected (%d active)", self.subscriber_count)
        return subscriber

    def unsubscribe(self, subscriber: Subscriber):
        with self._lock:
            if subscriber not in self._subscribers:
                return
            self._subscribers.discard(subscriber)
        subscriber.active = False
        logger.info("Subscriber disconnected (%d active)", self.subscriber_count)

    def broadcast(self, event_type: str, data: Dict[str, Any]) -> int:
        """Queue ``{type, data}`` for every open subscriber.

        Safe to call from any thread. Returns the number of subscribers the
        envelope was offered to.
        """
        envelope = {"type": event_type, "data": data}
        with self._lock:
            self._published[event_type] += 1
            targets = list(self._subscribers)

        for subscriber in targets:
            try:
                subscriber.loop.call_soon_threadsafe(self._offer, subscriber, envelope)
            except RuntimeError:
                # Event loop already closed
                self._drop(subscriber, "event loop closed")
        return len(targets)

    def _offer(self, subscriber: Subscriber, envelope: Dict[str, Any]):
        if not subscriber.active:
            return
        try:
            subscriber.queue.put_nowait(envelope)
        except asyncio.QueueFull:
            self._drop(subscriber, "send queue full")

    def _drop(self, subscriber: Subscriber, reason: str):
        if not subscriber.active:
            return
        with self._lock:
            self._dropped += 1
        logger.warning("Dropping subscriber: %s", reason)
        self.unsubscribe(subscriber)

    async def pump(self, subscriber: Subscriber):
        """Send queued envelopes to one subscriber until it goes away."""
        while subscriber.active:
            envelope = await subscriber.queue.get()
            if not subscriber.active:
                break
            try:
                await subscriber.websocket.send_json(envelope)
            except Exception as e:
                self._drop(subscriber, f"send failed: {e}")
                break
            with self._lock:
                self._delivered += 1

    def get_stats(self) -> Dict[str, Any]:
        """Get fan-out statistics."""
        with self._lock:
            return {
                "subscribers": len(self._subscribers),
                "published": dict(self._published),
                "delivered": self._delivered,
                "dropped": self._dropped,
            }


# Global broadcaster instance
broadcaster = Broadcaster(queue_size=settings.subscriber_queue_size)


def get_broadcaster() -> Broadcaster:
    return broadcaster
