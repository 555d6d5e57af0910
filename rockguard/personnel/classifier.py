"""
Personnel risk classifier.

Maps each worker's position and vitals to a 0-100 risk score and a tier:

    proximity = max over zones of max(0, 1 - distance / radius) * zone multiplier
                (zone multiplier from the zone's current risk level:
                 LOW 0.3, MEDIUM 0.6, HIGH 1.0)
    vitals    = heart-rate deviation outside 55..110 bpm, 0..1 at 40 bpm off
    score     = round(100 * (0.7 * proximity + 0.3 * vitals)); SOS forces 100

    score >= 70 -> EMERGENCY, score >= 40 -> CAUTION, else SAFE

Zone risk levels are fed from the hub's assessments. The worker table is
server-authoritative; updates may arrive from API threads and the simulator
at once, so every worker has its own lock.
"""
import logging
import math
import threading
from collections import deque
from dataclasses import replace
from datetime import datetime, timezone
from typing import Any, Callable, Deque, Dict, Iterable, List, Optional, Sequence, Tuple

from rockguard.core.config import SiteZone
from rockguard.core.errors import UnknownWorker
from rockguard.personnel.models import Position, RiskTier, Vitals, Worker
from rockguard.telemetry.models import RiskLevel

logger = logging.getLogger(__name__)

ZONE_MULTIPLIERS = {RiskLevel.LOW: 0.3, RiskLevel.MEDIUM: 0.6, RiskLevel.HIGH: 1.0}

PROXIMITY_WEIGHT = 0.7
VITALS_WEIGHT = 0.3
HEART_RATE_RANGE = (55.0, 110.0)
HEART_RATE_SPAN = 40.0

CAUTION_THRESHOLD = 40
EMERGENCY_THRESHOLD = 70

WorkerListener = Callable[[Worker], None]


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def tier_for_score(score: float) -> RiskTier:
    if score >= EMERGENCY_THRESHOLD:
        return RiskTier.EMERGENCY
    if score >= CAUTION_THRESHOLD:
        return RiskTier.CAUTION
    return RiskTier.SAFE


def vitals_component(vitals: Vitals) -> float:
    hr = vitals.heart_rate_bpm
    if hr is None:
        return 0.0
    low, high = HEART_RATE_RANGE
    if hr < low:
        deviation = low - hr
    elif hr > high:
        deviation = hr - high
    else:
        return 0.0
    return min(1.0, deviation / HEART_RATE_SPAN)


def proximity_component(
    position: Position, zones: Sequence[SiteZone], zone_levels: Dict[str, RiskLevel]
) -> float:
    best = 0.0
    for zone in zones:
        distance = math.hypot(position.x - zone.x, position.y - zone.y)
        closeness = max(0.0, 1.0 - distance / zone.radius)
        level = zone_levels.get(zone.name, RiskLevel.LOW)
        best = max(best, closeness * ZONE_MULTIPLIERS[level])
    return best


def nearest_zone(position: Position, zones: Sequence[SiteZone]) -> Optional[str]:
    if not zones:
        return None
    zone = min(zones, key=lambda z: math.hypot(position.x - z.x, position.y - z.y))
    return zone.name


def classify(
    position: Position,
    vitals: Vitals,
    zones: Sequence[SiteZone],
    zone_levels: Dict[str, RiskLevel],
) -> Tuple[int, RiskTier]:
    """Pure scoring function; returns (risk_score, tier)."""
    if vitals.sos:
        return 100, RiskTier.EMERGENCY
    raw = PROXIMITY_WEIGHT * proximity_component(position, zones, zone_levels)
    raw += VITALS_WEIGHT * vitals_component(vitals)
    score = _round_half_up(100 * raw)
    return score, tier_for_score(score)


def sort_key(worker: Worker):
    return (worker.risk_tier.rank, -worker.risk_score, worker.id)


class PersonnelClassifier:
    """Owns the worker table, the zone risk levels and the tier trend."""

    def __init__(
        self,
        zones: Iterable[SiteZone],
        stale_after_seconds: float = 120.0,
        trend_window: int = 10,
    ):
        self.zones: List[SiteZone] = list(zones)
        self.stale_after_seconds = stale_after_seconds
        self._zone_levels: Dict[str, RiskLevel] = {z.name: RiskLevel.LOW for z in self.zones}
        self._workers: Dict[str, Worker] = {}
        self._worker_locks: Dict[str, threading.Lock] = {}
        self._table_lock = threading.Lock()
        self._trend: Deque[Dict[str, Any]] = deque(maxlen=trend_window)
        self._listeners: List[WorkerListener] = []
        self.updated_at: Optional[datetime] = None

    @classmethod
    def from_settings(cls, settings) -> "PersonnelClassifier":
        return cls(
            settings.site_zones,
            stale_after_seconds=settings.worker_stale_after_seconds,
            trend_window=settings.personnel_trend_window,
        )

    def add_listener(self, listener: WorkerListener) -> None:
        """Called with a copy of the worker after every classification."""
        self._listeners.append(listener)

    # ------------------------------------------------------------------
    # Zones
    # ------------------------------------------------------------------

    def zone_levels(self) -> Dict[str, str]:
        return {name: level.value for name, level in self._zone_levels.items()}

    def set_zone_level(self, zone_name: str, level: RiskLevel) -> None:
        """Update a zone's hazard level and re-classify everyone."""
        if zone_name not in self._zone_levels:
            raise KeyError(f"Unknown site zone: {zone_name}")
        if self._zone_levels[zone_name] == level:
            return
        logger.info(f"Zone {zone_name} risk level {self._zone_levels[zone_name].value} -> {level.value}")
        self._zone_levels[zone_name] = level
        for worker_id in list(self._workers):
            self._reclassify(worker_id)

    # ------------------------------------------------------------------
    # Workers
    # ------------------------------------------------------------------

    def register(
        self,
        worker_id: str,
        position: Position,
        name: Optional[str] = None,
        phone: Optional[str] = None,
        vitals: Optional[Vitals] = None,
    ) -> Worker:
        """Add a worker (or replace one with the same id) and classify it."""
        worker = Worker(
            id=worker_id,
            position=position,
            name=name,
            phone=phone,
            vitals=vitals or Vitals(),
        )
        with self._table_lock:
            self._workers[worker_id] = worker
            self._worker_locks.setdefault(worker_id, threading.Lock())
        logger.debug(f"Registered worker {worker_id}")
        return self._reclassify(worker_id, touch=True)

    def update(
        self,
        worker_id: str,
        position: Optional[Position] = None,
        vitals: Optional[Vitals] = None,
    ) -> Worker:
        """
        Apply a position and/or vitals report and re-classify.

        Raises:
            UnknownWorker: worker_id was never registered
        """
        lock = self._lock_for(worker_id)
        with lock:
            worker = self._workers[worker_id]
            if position is not None:
                worker.position = position
            if vitals is not None:
                worker.vitals = vitals
            previous_tier = worker.risk_tier
            view = self._classify_locked(worker, touch=True)
        self._after_classify(view, previous_tier)
        return view

    def _lock_for(self, worker_id: str) -> threading.Lock:
        with self._table_lock:
            lock = self._worker_locks.get(worker_id)
        if lock is None or worker_id not in self._workers:
            raise UnknownWorker(worker_id)
        return lock

    def _classify_locked(self, worker: Worker, touch: bool) -> Worker:
        """Score one worker in place. Caller holds the worker's lock."""
        score, tier = classify(worker.position, worker.vitals, self.zones, self._zone_levels)
        worker.risk_score = score
        worker.risk_tier = tier
        worker.zone = nearest_zone(worker.position, self.zones)
        if touch:
            worker.last_seen = datetime.now(timezone.utc)
        return replace(worker)

    def _after_classify(self, view: Worker, previous_tier: RiskTier) -> None:
        self.updated_at = datetime.now(timezone.utc)
        if view.risk_tier != previous_tier:
            logger.info(
                f"Worker {view.id} tier {previous_tier.value} -> {view.risk_tier.value} "
                f"(score={view.risk_score})"
            )
        for listener in self._listeners:
            try:
                listener(view)
            except Exception:
                logger.exception(f"Worker listener failed for {view.id}")

    def _reclassify(self, worker_id: str, touch: bool = False) -> Worker:
        lock = self._lock_for(worker_id)
        with lock:
            worker = self._workers[worker_id]
            previous_tier = worker.risk_tier
            view = self._classify_locked(worker, touch)
        self._after_classify(view, previous_tier)
        return view

    def get(self, worker_id: str) -> Worker:
        lock = self._lock_for(worker_id)
        with lock:
            return replace(self._workers[worker_id])

    def list_workers(self, only: Optional[RiskTier] = None) -> List[Worker]:
        """Copies ordered EMERGENCY > CAUTION > SAFE, then score desc, then id."""
        with self._table_lock:
            ids = list(self._workers)
        workers = []
        for worker_id in ids:
            try:
                workers.append(self.get(worker_id))
            except UnknownWorker:
                continue
        if only is not None:
            workers = [w for w in workers if w.risk_tier == only]
        return sorted(workers, key=sort_key)

    def totals(self) -> Dict[str, int]:
        counts = {tier.value.lower(): 0 for tier in RiskTier}
        for worker in self.list_workers():
            counts[worker.risk_tier.value.lower()] += 1
        return counts

    def live(self, only: Optional[RiskTier] = None) -> Dict[str, Any]:
        return {
            "updated": (self.updated_at or datetime.now(timezone.utc)).isoformat(),
            "workers": [
                w.to_dict(self.stale_after_seconds) for w in self.list_workers(only)
            ],
            "totals": self.totals(),
        }

    # ------------------------------------------------------------------
    # Trend
    # ------------------------------------------------------------------

    def close_cycle(self) -> Dict[str, Any]:
        """Record the current tier counts as one trend point."""
        point = {"at": datetime.now(timezone.utc).isoformat(), **self.totals()}
        self._trend.append(point)
        return point

    def trend(self) -> List[Dict[str, Any]]:
        return list(self._trend)

    def __len__(self) -> int:
        return len(self._workers)
