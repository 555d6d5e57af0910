"""
In-memory event bus for real-time push delivery.

Pub/sub over bounded per-subscriber queues. A slow subscriber never stalls
publishers or other subscribers: when its queue is full the oldest queued
event is dropped and its `dropped` counter goes up. Subscribers are never
disconnected for being slow.

State is entirely in-memory; clients reconnect on restart.
"""

import asyncio
import json
import logging
import time
from collections import deque
from dataclasses import dataclass, field
from typing import Any, AsyncGenerator, Callable, Deque, Dict, List, Optional, Set

logger = logging.getLogger(__name__)

# Keepalive interval (seconds)
KEEPALIVE_INTERVAL = 15


@dataclass(frozen=True)
class Event:
    """One published event."""
    type: str
    data: Any
    timestamp: float = field(default_factory=time.time)


def to_jsonable(data: Any) -> Any:
    """Domain objects expose to_dict(); everything else passes through."""
    if hasattr(data, "to_dict"):
        return data.to_dict()
    return data


def format_sse(event: Event) -> str:
    return f"event: {event.type}\ndata: {json.dumps(to_jsonable(event.data))}\n\n"


class Subscription:
    """
    A subscriber's bounded delivery queue.

    Iterate with `async for event in subscription`; iteration ends once the
    subscription is closed and the queue is drained.
    """

    def __init__(self, bus: "EventBus", channel: str, max_queue_size: int):
        self.bus = bus
        self.channel = channel
        self.max_queue_size = max_queue_size
        self.dropped = 0
        self.delivered = 0
        self._queue: Deque[Event] = deque()
        self._ready = asyncio.Event()
        self._closed = False
        self._close_callbacks: List[Callable[["Subscription"], None]] = []

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        return len(self._queue)

    def offer(self, event: Event) -> None:
        """Enqueue without blocking; drop the oldest entry on overflow."""
        if self._closed:
            return
        if len(self._queue) >= self.max_queue_size:
            self._queue.popleft()
            self.dropped += 1
            logger.warning(
                f"Subscriber overflow on {self.channel}: dropped oldest event "
                f"(total dropped={self.dropped})"
            )
        self._queue.append(event)
        self._ready.set()

    async def get(self, timeout: Optional[float] = None) -> Optional[Event]:
        """
        Wait for the next event.

        Returns None on timeout or when the subscription is closed and empty.
        """
        while not self._queue:
            if self._closed:
                return None
            self._ready.clear()
            try:
                await asyncio.wait_for(self._ready.wait(), timeout=timeout)
            except asyncio.TimeoutError:
                return None
        self.delivered += 1
        return self._queue.popleft()

    def add_close_callback(self, callback: Callable[["Subscription"], None]) -> None:
        self._close_callbacks.append(callback)

    def close(self) -> None:
        """Detach from the bus. Idempotent."""
        if self._closed:
            return
        self._closed = True
        self._ready.set()
        self.bus._detach(self)
        for callback in self._close_callbacks:
            try:
                callback(self)
            except Exception:
                logger.exception(f"Close callback failed for {self.channel}")

    def __aiter__(self):
        return self

    async def __anext__(self) -> Event:
        event = await self.get()
        if event is None:
            raise StopAsyncIteration
        return event


class EventBus:
    """In-process pub/sub keyed by channel name."""

    def __init__(self, default_queue_size: int = 100):
        self.default_queue_size = default_queue_size
        # channel -> set of Subscription
        self._subscribers: Dict[str, Set[Subscription]] = {}

    def publish(self, channel: str, event_type: str, data: Any) -> int:
        """
        Publish an event to all subscribers of a channel.

        Args:
            channel: Channel name (e.g. "alerts", "telemetry:28.6139,77.2090")
            event_type: SSE event type (e.g. "telemetry", "alert")
            data: Event payload (dict or object with to_dict())

        Returns:
            Number of subscribers notified
        """
        subscribers = self._subscribers.get(channel)
        if not subscribers:
            return 0

        event = Event(type=event_type, data=data)
        for subscription in list(subscribers):
            subscription.offer(event)
        return len(subscribers)

    def subscribe(self, channel: str, max_queue_size: Optional[int] = None) -> Subscription:
        subscription = Subscription(
            self, channel, max_queue_size or self.default_queue_size
        )
        self._subscribers.setdefault(channel, set()).add(subscription)
        return subscription

    def subscriber_count(self, channel: str) -> int:
        return len(self._subscribers.get(channel, ()))

    def _detach(self, subscription: Subscription) -> None:
        subscribers = self._subscribers.get(subscription.channel)
        if subscribers is None:
            return
        subscribers.discard(subscription)
        # Clean up empty channel sets
        if not subscribers:
            del self._subscribers[subscription.channel]

    def close_channel(self, channel: str) -> int:
        """Close every subscription on one channel. Returns how many were closed."""
        subscriptions = list(self._subscribers.get(channel, ()))
        for subscription in subscriptions:
            subscription.close()
        return len(subscriptions)

    def close_all(self) -> None:
        """Close every subscription (used on shutdown)."""
        for subscribers in list(self._subscribers.values()):
            for subscription in list(subscribers):
                subscription.close()

    @property
    def active_channels(self) -> Dict[str, int]:
        """Get active channels and subscriber counts."""
        return {
            channel: len(subs) for channel, subs in self._subscribers.items() if subs
        }


async def sse_stream(
    subscription: Subscription, keepalive: float = KEEPALIVE_INTERVAL
) -> AsyncGenerator[str, None]:
    """
    Async generator yielding SSE-formatted strings for a subscription.

    Sends a keepalive comment every `keepalive` seconds of silence and
    closes the subscription when the client goes away.
    """
    try:
        while not subscription.closed:
            event = await subscription.get(timeout=keepalive)
            if event is None:
                if subscription.closed:
                    break
                yield ": keepalive\n\n"
                continue
            yield format_sse(event)
    except asyncio.CancelledError:
        pass
    finally:
        subscription.close()
