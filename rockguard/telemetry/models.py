"""
Telemetry data model.

Snapshots and assessments are frozen dataclasses: a new cycle supersedes the
previous value, nothing is edited in place. Absent readings are None and are
serialized as null, never as 0.
"""
from __future__ import annotations

import enum
import math
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

from rockguard.core.errors import InvalidLocation

LOCATION_PRECISION = 4


@dataclass(frozen=True)
class Location:
    lat: float
    lon: float

    @classmethod
    def parse(cls, lat: Any, lon: Any) -> "Location":
        """Validate raw coordinates, raising InvalidLocation on bad input."""
        try:
            lat_f = float(lat)
            lon_f = float(lon)
        except (TypeError, ValueError):
            raise InvalidLocation(lat, lon, "coordinates must be numeric")
        if not (math.isfinite(lat_f) and math.isfinite(lon_f)):
            raise InvalidLocation(lat, lon, "coordinates must be finite")
        if not -90.0 <= lat_f <= 90.0:
            raise InvalidLocation(lat, lon, "latitude must be within [-90, 90]")
        if not -180.0 <= lon_f <= 180.0:
            raise InvalidLocation(lat, lon, "longitude must be within [-180, 180]")
        return cls(round(lat_f, LOCATION_PRECISION), round(lon_f, LOCATION_PRECISION))

    @property
    def key(self) -> str:
        return f"{self.lat:.{LOCATION_PRECISION}f},{self.lon:.{LOCATION_PRECISION}f}"

    def to_dict(self) -> Dict[str, float]:
        return {"lat": self.lat, "lon": self.lon}


@dataclass(frozen=True)
class WeatherReading:
    temperature_c: Optional[float] = None
    humidity_pct: Optional[float] = None
    wind_speed_ms: Optional[float] = None

    def to_dict(self) -> Dict[str, Optional[float]]:
        return {
            "temperature_c": self.temperature_c,
            "humidity_pct": self.humidity_pct,
            "wind_speed_ms": self.wind_speed_ms,
        }


@dataclass(frozen=True)
class SeismicReading:
    strongest_magnitude: float
    event_count: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "strongest_magnitude": self.strongest_magnitude,
            "event_count": self.event_count,
        }


@dataclass(frozen=True)
class TelemetrySnapshot:
    """One fused, timestamped set of readings for a location."""

    location: Location
    captured_at: datetime
    weather: WeatherReading = field(default_factory=WeatherReading)
    precipitation_24h_mm: Optional[float] = None
    soil_moisture_pct: Optional[float] = None
    seismic: Optional[SeismicReading] = None
    # Set when every provider failed for this cycle
    degraded: bool = False
    missing_sources: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "location": self.location.to_dict(),
            "weather": self.weather.to_dict(),
            "precipitation_24h_mm": self.precipitation_24h_mm,
            "soil_moisture_pct": self.soil_moisture_pct,
            "seismic": self.seismic.to_dict() if self.seismic else None,
            "captured_at": self.captured_at.isoformat(),
            "degraded": self.degraded,
            "missing_sources": list(self.missing_sources),
        }


class RiskLevel(str, enum.Enum):
    LOW = "LOW"
    MEDIUM = "MEDIUM"
    HIGH = "HIGH"


@dataclass(frozen=True)
class RiskFactor:
    name: str
    normalized: float
    weight: float

    @property
    def contribution(self) -> float:
        return self.weight * self.normalized

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "normalized": self.normalized, "weight": self.weight}


@dataclass(frozen=True)
class RiskAssessment:
    score: float
    level: RiskLevel
    contributing_factors: Tuple[RiskFactor, ...] = ()
    missing_factors: Tuple[str, ...] = ()

    @property
    def is_degraded(self) -> bool:
        """True when no factor was available to score."""
        return not self.contributing_factors

    def to_dict(self) -> Dict[str, Any]:
        return {
            "score": self.score,
            "level": self.level.value,
            "contributing_factors": [f.to_dict() for f in self.contributing_factors],
            "missing_factors": list(self.missing_factors),
        }


@dataclass(frozen=True)
class TelemetryUpdate:
    """What the hub stores per location and pushes to subscribers."""

    snapshot: TelemetrySnapshot
    assessment: RiskAssessment

    @property
    def location(self) -> Location:
        return self.snapshot.location

    @property
    def captured_at(self) -> datetime:
        return self.snapshot.captured_at

    def to_dict(self) -> Dict[str, Any]:
        data = self.snapshot.to_dict()
        data["risk"] = self.assessment.to_dict()
        return data
