"""
Distribution hub: push stream with pull fallback over one current-state table.

For each location the hub keeps the latest TelemetryUpdate and a bounded
history ring. While a location has subscribers, a single refresh loop
re-aggregates it on an interval and pushes to every subscriber queue when the
assessment changed or the push TTL expired. Pull requests read the same
table, so a pull is never older than the last push. The table is bounded:
past `max_locations` entries, the least recently used idle locations (no
subscribers, no fetch in flight) are evicted.

Delivery uses the in-process EventBus (channel `telemetry:<location key>`);
a slow subscriber loses its oldest queued updates, never its connection.
"""
import asyncio
import inspect
import logging
import math
import time
from collections import OrderedDict, deque
from typing import Any, Awaitable, Callable, Deque, Dict, List, Optional, Union

from rockguard.core.event_bus import EventBus, Subscription, Event
from rockguard.telemetry.aggregator import TelemetryAggregator
from rockguard.telemetry.models import Location, TelemetryUpdate
from rockguard.telemetry.scoring import RiskScorer

logger = logging.getLogger(__name__)

TELEMETRY_EVENT = "telemetry"

UpdateListener = Callable[[TelemetryUpdate], Union[None, Awaitable[None]]]


def trend_threshold(score: float) -> int:
    """Reference line drawn under the trend: score + 5, held to 45..75."""
    return int(min(75, max(45, math.floor(score + 5 + 0.5))))


def trend_point(update: TelemetryUpdate) -> Dict[str, Any]:
    return {
        "captured_at": update.captured_at.isoformat(),
        "score": update.assessment.score,
        "level": update.assessment.level.value,
        "threshold": trend_threshold(update.assessment.score),
    }


class _LocationState:
    """Everything the hub tracks for one location key."""

    def __init__(self, location: Location, history_capacity: int):
        self.location = location
        self.channel = f"telemetry:{location.key}"
        self.current: Optional[TelemetryUpdate] = None
        self.history: Deque[TelemetryUpdate] = deque(maxlen=history_capacity)
        self.lock = asyncio.Lock()
        self.fetch_lock = asyncio.Lock()
        self.wake = asyncio.Event()
        self.task: Optional[asyncio.Task] = None
        self.last_pushed: Optional[TelemetryUpdate] = None
        self.last_push_at: float = 0.0
        self.push_count = 0
        self.cycle_count = 0

    @property
    def refreshing(self) -> bool:
        return self.task is not None and not self.task.done()


class DistributionHub:
    """
    Owns the per-location current-state table and subscriber registry.

    Usage:
        subscription = await hub.subscribe(location)
        async for event in subscription:
            ...  # event.data is a TelemetryUpdate
        subscription.close()
    """

    def __init__(
        self,
        aggregator: TelemetryAggregator,
        scorer: RiskScorer,
        bus: Optional[EventBus] = None,
        refresh_interval: float = 15.0,
        push_ttl: float = 60.0,
        history_capacity: int = 12,
        queue_depth: int = 32,
        fetch_timeout: Optional[float] = None,
        max_locations: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.aggregator = aggregator
        self.scorer = scorer
        self.bus = bus or EventBus(default_queue_size=queue_depth)
        self.refresh_interval = refresh_interval
        self.push_ttl = push_ttl
        self.history_capacity = history_capacity
        self.queue_depth = queue_depth
        self.fetch_timeout = fetch_timeout
        self.max_locations = max_locations
        self._clock = clock
        self._states: "OrderedDict[str, _LocationState]" = OrderedDict()
        self._listeners: List[UpdateListener] = []
        self._closed = False

    @classmethod
    def from_settings(cls, settings, aggregator, scorer, bus=None) -> "DistributionHub":
        return cls(
            aggregator,
            scorer,
            bus=bus,
            refresh_interval=settings.refresh_interval_seconds,
            push_ttl=settings.push_ttl_seconds,
            history_capacity=settings.history_capacity,
            queue_depth=settings.subscriber_queue_depth,
            fetch_timeout=settings.fetch_timeout_seconds,
            max_locations=settings.max_tracked_locations,
        )

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_listener(self, listener: UpdateListener) -> None:
        """Register a callable invoked with every completed cycle."""
        self._listeners.append(listener)

    async def _notify_listeners(self, update: TelemetryUpdate) -> None:
        for listener in self._listeners:
            try:
                result = listener(update)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    f"Update listener {getattr(listener, '__name__', listener)!r} "
                    f"failed for {update.location.key}"
                )

    # ------------------------------------------------------------------
    # Subscriptions
    # ------------------------------------------------------------------

    def _state_for(self, location: Location) -> _LocationState:
        state = self._states.get(location.key)
        if state is not None:
            self._states.move_to_end(location.key)
            return state
        state = _LocationState(location, self.history_capacity)
        self._states[location.key] = state
        self._evict_idle(keep=location.key)
        return state

    def _is_idle(self, state: _LocationState) -> bool:
        return not (
            state.refreshing
            or state.fetch_lock.locked()
            or state.lock.locked()
            or self._has_subscribers(state)
        )

    def _evict_idle(self, keep: str) -> None:
        """Drop least recently used idle locations until the table fits."""
        overflow = len(self._states) - self.max_locations
        if overflow <= 0:
            return
        for key in list(self._states):
            if overflow <= 0:
                break
            if key == keep or not self._is_idle(self._states[key]):
                continue
            del self._states[key]
            overflow -= 1
            logger.debug(f"Evicted idle location {key}")
        if overflow > 0:
            logger.warning(
                f"Location table over capacity ({len(self._states)}/{self.max_locations}): "
                f"every other location is busy"
            )

    def _has_subscribers(self, state: _LocationState) -> bool:
        return self.bus.subscriber_count(state.channel) > 0

    async def subscribe(self, location: Location) -> Subscription:
        """
        Open a push subscription for a location.

        The current value, if any, is queued immediately. The first
        subscriber starts the location's refresh loop, which aggregates
        right away.
        """
        if self._closed:
            raise RuntimeError("Hub is shut down")

        state = self._state_for(location)
        subscription = self.bus.subscribe(state.channel, max_queue_size=self.queue_depth)
        subscription.add_close_callback(lambda _sub: self._on_unsubscribe(state))

        if state.current is not None:
            subscription.offer(Event(type=TELEMETRY_EVENT, data=state.current))

        if not state.refreshing:
            state.wake.clear()
            state.task = asyncio.create_task(
                self._refresh_loop(state), name=f"refresh:{location.key}"
            )
            logger.info(f"Started refresh loop for {location.key}")

        logger.info(
            f"New telemetry subscriber for {location.key} "
            f"(total={self.bus.subscriber_count(state.channel)})"
        )
        return subscription

    def _on_unsubscribe(self, state: _LocationState) -> None:
        remaining = self.bus.subscriber_count(state.channel)
        logger.info(f"Telemetry subscriber left {state.location.key} (remaining={remaining})")
        if remaining == 0:
            # wake the loop so it can exit
            state.wake.set()

    async def _refresh_loop(self, state: _LocationState) -> None:
        try:
            while self._has_subscribers(state):
                try:
                    await self._cycle(state, from_loop=True)
                except asyncio.CancelledError:
                    raise
                except Exception:
                    logger.exception(f"Refresh cycle failed for {state.location.key}")

                if not self._has_subscribers(state):
                    break
                try:
                    await asyncio.wait_for(state.wake.wait(), timeout=self.refresh_interval)
                except asyncio.TimeoutError:
                    pass
                state.wake.clear()
        finally:
            logger.info(f"Stopped refresh loop for {state.location.key}")

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    def _should_push(self, state: _LocationState, update: TelemetryUpdate) -> bool:
        if state.last_pushed is None:
            return True
        if update.assessment != state.last_pushed.assessment:
            return True
        return self._clock() - state.last_push_at >= self.push_ttl

    async def _cycle(self, state: _LocationState, from_loop: bool) -> Optional[TelemetryUpdate]:
        """
        Aggregate, score and store one update for a location.

        Returns the stored update, or None when a loop cycle finished after
        its last subscriber left (the result is dropped).
        """
        snapshot = await self.aggregator.fetch(state.location, self.fetch_timeout)
        assessment = self.scorer.score(snapshot)
        update = TelemetryUpdate(snapshot=snapshot, assessment=assessment)
        state.cycle_count += 1

        if from_loop and not self._has_subscribers(state):
            logger.debug(f"Dropping cycle result for {state.location.key}: no subscribers")
            return None

        async with state.lock:
            current = state.current
            if current is not None and update.captured_at < current.captured_at:
                logger.debug(f"Dropping out-of-order result for {state.location.key}")
                return current

            state.current = update
            state.history.append(update)

            if self._has_subscribers(state) and self._should_push(state, update):
                delivered = self.bus.publish(state.channel, TELEMETRY_EVENT, update)
                state.last_pushed = update
                state.last_push_at = self._clock()
                state.push_count += 1
                logger.debug(
                    f"Pushed {update.assessment.level.value} "
                    f"({update.assessment.score:.1f}) for {state.location.key} "
                    f"to {delivered} subscriber(s)"
                )

        await self._notify_listeners(update)
        return update

    async def refresh(self, location: Location) -> TelemetryUpdate:
        """Run one cycle now, outside the interval loop."""
        state = self._state_for(location)
        async with state.fetch_lock:
            update = await self._cycle(state, from_loop=False)
        return update

    # ------------------------------------------------------------------
    # Pull
    # ------------------------------------------------------------------

    def current(self, location: Location) -> Optional[TelemetryUpdate]:
        state = self._states.get(location.key)
        return state.current if state else None

    async def snapshot(self, location: Location) -> TelemetryUpdate:
        """
        Pull the current update for a location.

        Locations with no value yet, or an unrefreshed value older than the
        refresh interval, are aggregated on demand and stored.
        """
        state = self._state_for(location)
        if self._is_fresh(state):
            return state.current

        async with state.fetch_lock:
            # another caller may have filled it while we waited
            if self._is_fresh(state):
                return state.current
            return await self._cycle(state, from_loop=False)

    def _is_fresh(self, state: _LocationState) -> bool:
        if state.current is None:
            return False
        if state.refreshing:
            return True
        age = time.time() - state.current.captured_at.timestamp()
        return age < self.refresh_interval

    def history(self, location: Location) -> List[Dict[str, Any]]:
        """Trend points for the location, oldest first."""
        state = self._states.get(location.key)
        if state is None:
            return []
        return [trend_point(update) for update in state.history]

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def stats(self) -> Dict[str, Any]:
        return {
            "locations": len(self._states),
            "refreshing": sorted(k for k, s in self._states.items() if s.refreshing),
            "subscribers": {
                key: self.bus.subscriber_count(state.channel)
                for key, state in self._states.items()
                if self._has_subscribers(state)
            },
            "pushes": sum(s.push_count for s in self._states.values()),
            "cycles": sum(s.cycle_count for s in self._states.values()),
        }

    async def shutdown(self) -> None:
        """Close telemetry subscriptions and stop every refresh loop."""
        self._closed = True
        tasks = []
        for state in self._states.values():
            self.bus.close_channel(state.channel)
            if state.refreshing:
                state.task.cancel()
                tasks.append(state.task)
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)
        logger.info(f"Hub shut down ({len(tasks)} refresh loop(s) cancelled)")
