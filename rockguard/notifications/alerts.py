"""
Alert engine and append-only alert log.

Tracks one condition per monitored subject (a location or a worker) through

    NORMAL -> RAISED -> ACKNOWLEDGED -> RESOLVED
              RAISED ---------------> RESOLVED

and appends exactly one AlertRecord per transition. A condition raises only
on a rising edge into HIGH (locations) or EMERGENCY (workers); a sustained
elevation never raises twice, and after a manual resolve the metric has to
drop back before it can raise again.

Features:
- Operator acknowledge/resolve; automatic resolve when the metric recovers
- Synthetic test alerts
- Bounded log, oldest records evicted first
- Clear appends a tombstone instead of rewriting history
- Optional SQL mirror (alert_log table), hydrated on startup
- New records are published on the event bus `alerts` channel
"""

import copy
import itertools
import logging
import threading
from collections import deque
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Deque, Dict, List, Optional, Tuple

from sqlalchemy import select
from sqlalchemy.orm import sessionmaker

from rockguard.core.errors import InvalidAlertTransition, UnknownAlertCondition
from rockguard.core.event_bus import EventBus
from rockguard.core.models import AlertLogRecord
from rockguard.personnel.models import RiskTier, Worker
from rockguard.telemetry.models import RiskLevel, TelemetryUpdate

logger = logging.getLogger(__name__)

ALERTS_CHANNEL = "alerts"
ALERT_EVENT = "alert"


class AlertLevel(str, Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"
    EMERGENCY = "EMERGENCY"


class AlertSource(str, Enum):
    RISK_THRESHOLD = "risk-threshold"
    WORKER_EMERGENCY = "worker-emergency"
    MANUAL_TEST = "manual-test"
    SYSTEM = "system"


class AlertStatus(str, Enum):
    """Status carried by a log record."""

    RAISED = "RAISED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"
    TEST = "TEST"
    CLEARED = "CLEARED"


class ConditionState(str, Enum):
    NORMAL = "NORMAL"
    RAISED = "RAISED"
    ACKNOWLEDGED = "ACKNOWLEDGED"
    RESOLVED = "RESOLVED"


ACTIVE_STATES = (ConditionState.RAISED, ConditionState.ACKNOWLEDGED)

_TIER_LEVELS = {
    RiskTier.SAFE: AlertLevel.LOW,
    RiskTier.CAUTION: AlertLevel.MEDIUM,
    RiskTier.EMERGENCY: AlertLevel.EMERGENCY,
}


@dataclass(frozen=True)
class AlertRecord:
    """One immutable log entry."""

    id: int
    level: AlertLevel
    source: AlertSource
    status: AlertStatus
    subject: str
    message: str
    created_at: datetime
    condition: Optional[str] = None
    score: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "level": self.level.value,
            "source": self.source.value,
            "status": self.status.value,
            "subject": self.subject,
            "message": self.message,
            "condition": self.condition,
            "score": self.score,
            "details": copy.deepcopy(self.details),
            "created_at": self.created_at.isoformat(),
        }

    @classmethod
    def from_row(cls, row: AlertLogRecord) -> "AlertRecord":
        created_at = row.created_at
        if created_at.tzinfo is None:
            created_at = created_at.replace(tzinfo=timezone.utc)
        return cls(
            id=row.id,
            level=AlertLevel(row.level),
            source=AlertSource(row.source),
            status=AlertStatus(row.status),
            subject=row.subject,
            message=row.message,
            created_at=created_at,
            condition=row.condition,
            score=row.score,
            details=row.details or {},
        )


@dataclass
class AlertCondition:
    """Per-subject state machine."""

    key: str
    subject: str
    state: ConditionState = ConditionState.NORMAL
    elevated: bool = False
    level: Optional[AlertLevel] = None
    score: Optional[float] = None
    details: Dict[str, Any] = field(default_factory=dict)
    changed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "key": self.key,
            "subject": self.subject,
            "state": self.state.value,
            "elevated": self.elevated,
            "level": self.level.value if self.level else None,
            "score": self.score,
            "changed_at": self.changed_at.isoformat(),
        }


class AlertLogStore:
    """SQL mirror of the alert log. Insert-only."""

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    def append(self, record: AlertRecord) -> None:
        with self.session_factory() as session:
            session.add(AlertLogRecord(
                id=record.id,
                level=record.level.value,
                source=record.source.value,
                status=record.status.value,
                subject=record.subject,
                message=record.message,
                condition=record.condition,
                score=record.score,
                details=record.details,
                created_at=record.created_at,
            ))
            session.commit()

    def load_since_last_clear(self) -> Tuple[List[AlertRecord], int]:
        """
        Records after the most recent tombstone, plus the highest id ever used.

        Returns:
            (records oldest first, max id or 0)
        """
        with self.session_factory() as session:
            rows = session.execute(
                select(AlertLogRecord).order_by(AlertLogRecord.id)
            ).scalars().all()
            records = [AlertRecord.from_row(row) for row in rows]

        max_id = records[-1].id if records else 0
        for index in range(len(records) - 1, -1, -1):
            if records[index].status == AlertStatus.CLEARED:
                records = records[index:]
                break
        return records, max_id


class AlertEngine:
    """
    Evaluates assessments and worker tiers into alert conditions.

    Usage:
        engine = AlertEngine(capacity=200, bus=bus)
        hub.add_listener(engine.evaluate_assessment)
        classifier.add_listener(engine.evaluate_worker)
    """

    def __init__(
        self,
        capacity: int = 200,
        bus: Optional[EventBus] = None,
        store: Optional[AlertLogStore] = None,
    ):
        self.capacity = capacity
        self.bus = bus
        self.store = store
        self.evicted = 0
        self._records: Deque[AlertRecord] = deque()
        self._conditions: Dict[str, AlertCondition] = {}
        self._ids = itertools.count(1)
        self._lock = threading.Lock()

    # =========================================================================
    # Log
    # =========================================================================

    def hydrate(self) -> int:
        """Load persisted records written since the last clear."""
        if self.store is None:
            return 0
        records, max_id = self.store.load_since_last_clear()
        with self._lock:
            self._ids = itertools.count(max_id + 1)
            self._records.clear()
            for record in records[-self.capacity:]:
                self._records.append(record)
        logger.info(f"Hydrated {len(records)} alert record(s) from the database (next id {max_id + 1})")
        return len(records)

    def _append(
        self,
        level: AlertLevel,
        source: AlertSource,
        status: AlertStatus,
        subject: str,
        message: str,
        condition: Optional[str] = None,
        score: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
        truncate: bool = False,
    ) -> AlertRecord:
        with self._lock:
            record = self._append_locked(
                level, source, status, subject, message,
                condition=condition, score=score, details=details, truncate=truncate,
            )
        self._announce(record)
        return record

    def _append_locked(
        self,
        level: AlertLevel,
        source: AlertSource,
        status: AlertStatus,
        subject: str,
        message: str,
        condition: Optional[str] = None,
        score: Optional[float] = None,
        details: Optional[Dict[str, Any]] = None,
        truncate: bool = False,
    ) -> AlertRecord:
        """Build, store and persist a record. Caller holds `_lock`."""
        record = AlertRecord(
            id=next(self._ids),
            level=level,
            source=source,
            status=status,
            subject=subject,
            message=message,
            created_at=datetime.now(timezone.utc),
            condition=condition,
            score=score,
            details=copy.deepcopy(details or {}),
        )
        if truncate:
            self._records.clear()
        self._records.append(record)
        while len(self._records) > self.capacity:
            oldest = self._records.popleft()
            self.evicted += 1
            logger.warning(
                f"Alert log at capacity ({self.capacity}): evicted record {oldest.id} "
                f"(total evicted={self.evicted})"
            )

        if self.store is not None:
            try:
                self.store.append(record)
            except Exception as e:
                logger.error(f"Failed to persist alert record {record.id}: {e}")
        return record

    def _announce(self, record: AlertRecord) -> None:
        logger.info(
            f"Alert {record.id} {record.status.value} {record.level.value} "
            f"[{record.source.value}] {record.subject}: {record.message}"
        )
        if self.bus is not None:
            self.bus.publish(ALERTS_CHANNEL, ALERT_EVENT, record)

    def list_alerts(
        self,
        level: Optional[AlertLevel] = None,
        status: Optional[AlertStatus] = None,
        source: Optional[AlertSource] = None,
        limit: Optional[int] = None,
    ) -> List[AlertRecord]:
        """
        Records newest first.

        Tombstones are hidden unless status=CLEARED is requested.
        """
        with self._lock:
            records = list(self._records)

        result = []
        for record in reversed(records):
            if status is None and record.status == AlertStatus.CLEARED:
                continue
            if status is not None and record.status != status:
                continue
            if level is not None and record.level != level:
                continue
            if source is not None and record.source != source:
                continue
            result.append(record)
            if limit is not None and len(result) >= limit:
                break
        return result

    def clear(self) -> AlertRecord:
        """Truncate the visible log by appending a tombstone."""
        return self._append(
            level=AlertLevel.LOW,
            source=AlertSource.SYSTEM,
            status=AlertStatus.CLEARED,
            subject="Alert log",
            message="Alert log cleared",
            truncate=True,
        )

    def test_alert(self, level: AlertLevel = AlertLevel.HIGH) -> AlertRecord:
        """Append a synthetic record; touches no condition."""
        level = AlertLevel(level)
        return self._append(
            level=level,
            source=AlertSource.MANUAL_TEST,
            status=AlertStatus.TEST,
            subject="Test alert",
            message=f"Synthetic {level.value} alert",
        )

    # =========================================================================
    # Conditions
    # =========================================================================

    def conditions(self) -> List[AlertCondition]:
        with self._lock:
            return sorted(self._conditions.values(), key=lambda c: c.key)

    def get_condition(self, key: str) -> AlertCondition:
        condition = self._conditions.get(key)
        if condition is None:
            raise UnknownAlertCondition(key)
        return condition

    def _observe(
        self,
        key: str,
        subject: str,
        elevated: bool,
        level: AlertLevel,
        source: AlertSource,
        score: float,
        message: str,
        details: Dict[str, Any],
    ) -> Optional[AlertRecord]:
        """Feed one metric observation into a condition's state machine."""
        with self._lock:
            condition = self._conditions.get(key)
            if condition is None:
                # subjects enter the table on their first elevation
                if not elevated:
                    return None
                condition = AlertCondition(key=key, subject=subject)
                self._conditions[key] = condition

            was_elevated = condition.elevated
            condition.elevated = elevated
            condition.score = score
            condition.details = details

            if elevated and not was_elevated and condition.state not in ACTIVE_STATES:
                transition = ConditionState.RAISED
            elif not elevated and condition.state in ACTIVE_STATES:
                transition = ConditionState.RESOLVED
            else:
                return None

            condition.state = transition
            condition.level = level
            condition.changed_at = datetime.now(timezone.utc)

            if transition == ConditionState.RAISED:
                record = self._append_locked(
                    level=level,
                    source=source,
                    status=AlertStatus.RAISED,
                    subject=subject,
                    message=message,
                    condition=key,
                    score=score,
                    details=details,
                )
            else:
                record = self._append_locked(
                    level=level,
                    source=source,
                    status=AlertStatus.RESOLVED,
                    subject=subject,
                    message=f"Recovered: {message}",
                    condition=key,
                    score=score,
                    details=details,
                )

        self._announce(record)
        return record

    def evaluate_assessment(self, update: TelemetryUpdate) -> Optional[AlertRecord]:
        """Hub listener: location conditions track HIGH risk."""
        assessment = update.assessment
        if assessment.is_degraded:
            logger.debug(f"Skipping degraded assessment for {update.location.key}")
            return None

        location = update.location
        return self._observe(
            key=f"location:{location.key}",
            subject=f"Location {location.key}",
            elevated=assessment.level == RiskLevel.HIGH,
            level=AlertLevel(assessment.level.value),
            source=AlertSource.RISK_THRESHOLD,
            score=assessment.score,
            message=f"Risk {assessment.level.value} (score {assessment.score:.1f})",
            details={
                "lat": location.lat,
                "lon": location.lon,
                "missing_factors": list(assessment.missing_factors),
            },
        )

    def evaluate_worker(self, worker: Worker) -> Optional[AlertRecord]:
        """Classifier listener: worker conditions track the EMERGENCY tier."""
        elevated = worker.risk_tier == RiskTier.EMERGENCY
        if worker.vitals.sos:
            message = f"SOS from {worker.name or worker.id}"
        else:
            message = f"Worker {worker.name or worker.id} tier {worker.risk_tier.value} (score {worker.risk_score})"
        return self._observe(
            key=f"worker:{worker.id}",
            subject=f"Worker {worker.id}",
            elevated=elevated,
            level=_TIER_LEVELS[worker.risk_tier],
            source=AlertSource.WORKER_EMERGENCY,
            score=float(worker.risk_score),
            message=message,
            details={
                "worker": {
                    "id": worker.id,
                    "name": worker.name,
                    "phone": worker.phone,
                    "zone": worker.zone,
                },
                "x": worker.position.x,
                "y": worker.position.y,
                "sos": worker.vitals.sos,
            },
        )

    def _operator_transition(
        self, key: str, action: str, allowed: Tuple[ConditionState, ...], target: ConditionState
    ) -> AlertRecord:
        with self._lock:
            condition = self._conditions.get(key)
            if condition is None:
                raise UnknownAlertCondition(key)
            if condition.state not in allowed:
                raise InvalidAlertTransition(key, condition.state.value, action)
            condition.state = target
            condition.changed_at = datetime.now(timezone.utc)
            source = (
                AlertSource.WORKER_EMERGENCY if key.startswith("worker:") else AlertSource.RISK_THRESHOLD
            )
            record = self._append_locked(
                level=condition.level or AlertLevel.HIGH,
                source=source,
                status=AlertStatus(target.value),
                subject=condition.subject,
                message=f"{target.value.capitalize()} by operator",
                condition=key,
                score=condition.score,
                details=condition.details,
            )

        self._announce(record)
        return record

    def acknowledge(self, key: str) -> AlertRecord:
        """
        Operator acknowledgement of a raised condition.

        Raises:
            UnknownAlertCondition: no such condition
            InvalidAlertTransition: condition is not RAISED
        """
        return self._operator_transition(
            key, "acknowledge", (ConditionState.RAISED,), ConditionState.ACKNOWLEDGED
        )

    def resolve(self, key: str) -> AlertRecord:
        """
        Operator resolution of a raised or acknowledged condition.

        Raises:
            UnknownAlertCondition: no such condition
            InvalidAlertTransition: condition is not active
        """
        return self._operator_transition(key, "resolve", ACTIVE_STATES, ConditionState.RESOLVED)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            states: Dict[str, int] = {}
            for condition in self._conditions.values():
                states[condition.state.value] = states.get(condition.state.value, 0) + 1
            return {
                "records": len(self._records),
                "capacity": self.capacity,
                "evicted": self.evicted,
                "conditions": states,
                "persisted": self.store is not None,
            }
