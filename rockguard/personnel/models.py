"""
Personnel data model.
"""
import enum
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Optional


class RiskTier(str, enum.Enum):
    SAFE = "SAFE"
    CAUTION = "CAUTION"
    EMERGENCY = "EMERGENCY"

    @property
    def rank(self) -> int:
        """Sort rank: EMERGENCY first."""
        return _TIER_RANK[self]


_TIER_RANK = {RiskTier.EMERGENCY: 0, RiskTier.CAUTION: 1, RiskTier.SAFE: 2}


@dataclass(frozen=True)
class Position:
    """Logical site-map position, both axes 0-100."""

    x: float
    y: float

    def __post_init__(self):
        for axis, value in (("x", self.x), ("y", self.y)):
            if not 0.0 <= float(value) <= 100.0:
                raise ValueError(f"Position {axis}={value} outside the 0-100 site map")


@dataclass(frozen=True)
class Vitals:
    heart_rate_bpm: Optional[float] = None
    sos: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {"heart_rate_bpm": self.heart_rate_bpm, "sos": self.sos}


@dataclass
class Worker:
    """
    A tracked worker.

    Only the classifier mutates workers; callers get copies.
    """

    id: str
    position: Position
    name: Optional[str] = None
    phone: Optional[str] = None
    vitals: Vitals = field(default_factory=Vitals)
    zone: Optional[str] = None
    risk_tier: RiskTier = RiskTier.SAFE
    risk_score: int = 0
    last_seen: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def is_stale(self, stale_after_seconds: float, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        return (now - self.last_seen).total_seconds() > stale_after_seconds

    def to_dict(self, stale_after_seconds: Optional[float] = None) -> Dict[str, Any]:
        data = {
            "id": self.id,
            "name": self.name,
            "phone": self.phone,
            "x": self.position.x,
            "y": self.position.y,
            "zone": self.zone,
            "risk": self.risk_tier.value,
            "risk_score": self.risk_score,
            "vitals": self.vitals.to_dict(),
            "last_seen": self.last_seen.isoformat(),
        }
        if stale_after_seconds is not None:
            data["stale"] = self.is_stale(stale_after_seconds)
        return data
