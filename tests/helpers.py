"""
Shared test doubles and factories.
"""
import asyncio
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from rockguard.sources.base import ProviderAdapter
from rockguard.telemetry.models import (
    Location,
    RiskAssessment,
    RiskFactor,
    RiskLevel,
    SeismicReading,
    TelemetrySnapshot,
    TelemetryUpdate,
    WeatherReading,
)


class FakeAdapter(ProviderAdapter):
    """
    In-memory adapter with a call counter.

    `reading` may be changed between calls; `error` is raised instead of
    returning when set; `delay` simulates a slow provider.
    """

    def __init__(
        self,
        name: str,
        reading: Optional[Dict[str, Any]] = None,
        error: Optional[Exception] = None,
        delay: float = 0.0,
        fields=None,
    ):
        self.name = name
        self.reading = dict(reading or {})
        self.fields = frozenset(fields if fields is not None else self.reading.keys())
        self.error = error
        self.delay = delay
        self.calls = 0
        self.closed = False

    async def _fetch(self, location):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.error is not None:
            raise self.error
        return dict(self.reading)

    async def close(self):
        self.closed = True


def make_snapshot(
    location: Optional[Location] = None,
    temperature_c=None,
    humidity_pct=None,
    wind_speed_ms=None,
    precipitation_24h_mm=None,
    soil_moisture_pct=None,
    magnitude=None,
    degraded=False,
) -> TelemetrySnapshot:
    return TelemetrySnapshot(
        location=location or Location.parse(28.6139, 77.2090),
        captured_at=datetime.now(timezone.utc),
        weather=WeatherReading(temperature_c, humidity_pct, wind_speed_ms),
        precipitation_24h_mm=precipitation_24h_mm,
        soil_moisture_pct=soil_moisture_pct,
        seismic=SeismicReading(magnitude, 1) if magnitude is not None else None,
        degraded=degraded,
    )


def make_update(level: RiskLevel, score: Optional[float] = None, location=None, degraded=False):
    """A TelemetryUpdate with a given assessment level."""
    if score is None:
        score = {RiskLevel.LOW: 10.0, RiskLevel.MEDIUM: 50.0, RiskLevel.HIGH: 85.0}[level]
    factors = () if degraded else (RiskFactor("rain", score / 100.0, 0.25),)
    return TelemetryUpdate(
        snapshot=make_snapshot(location=location, degraded=degraded),
        assessment=RiskAssessment(score=0.0 if degraded else score,
                                  level=RiskLevel.LOW if degraded else level,
                                  contributing_factors=factors),
    )


