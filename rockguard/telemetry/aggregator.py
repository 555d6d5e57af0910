"""
Telemetry aggregator.

Fans one fetch out to every provider adapter concurrently and merges the
partial readings into a single TelemetrySnapshot. A failing provider only
blanks its own fields; when every provider fails the snapshot is marked
degraded but is still returned.
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from rockguard.core.api_errors import ProviderUnavailable
from rockguard.sources.base import ProviderAdapter
from rockguard.telemetry.models import (
    Location,
    TelemetrySnapshot,
    WeatherReading,
)

logger = logging.getLogger(__name__)

WEATHER_FIELDS = ("temperature_c", "humidity_pct", "wind_speed_ms")


class TelemetryAggregator:
    """
    Combines provider adapters into one snapshot per call.

    Holds no per-location state, so any number of fetches may run at once.
    """

    def __init__(self, adapters: Sequence[ProviderAdapter], default_timeout: float = 8.0):
        self.adapters: List[ProviderAdapter] = list(adapters)
        self.default_timeout = default_timeout
        self.fetch_count = 0

    async def _call(self, adapter: ProviderAdapter, location: Location, timeout: float):
        try:
            return await asyncio.wait_for(adapter.fetch(location), timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ProviderUnavailable(
                f"No response within {timeout}s", source=adapter.name, cause=e
            ) from e

    async def fetch(
        self, location: Location, timeout: Optional[float] = None
    ) -> TelemetrySnapshot:
        """
        Aggregate one snapshot.

        Args:
            location: Validated location
            timeout: Per-provider bound in seconds (default: configured timeout)

        Returns:
            TelemetrySnapshot; never raises for provider failures
        """
        timeout = self.default_timeout if timeout is None else timeout
        self.fetch_count += 1

        results = await asyncio.gather(
            *(self._call(adapter, location, timeout) for adapter in self.adapters),
            return_exceptions=True,
        )

        merged: Dict[str, Any] = {}
        missing: List[str] = []
        for adapter, result in zip(self.adapters, results):
            if isinstance(result, BaseException):
                if isinstance(result, asyncio.CancelledError):
                    raise result
                if not isinstance(result, ProviderUnavailable):
                    logger.error(
                        f"Adapter {adapter.name} raised unexpectedly", exc_info=result
                    )
                else:
                    logger.warning(f"Provider {adapter.name} unavailable for {location.key}: {result}")
                missing.append(adapter.name)
                continue
            for field_name, value in result.items():
                # earlier adapters win
                if value is not None and merged.get(field_name) is None:
                    merged[field_name] = value

        degraded = len(missing) == len(self.adapters)
        if degraded:
            logger.warning(f"Degraded aggregation for {location.key}: no provider responded")

        return TelemetrySnapshot(
            location=location,
            captured_at=datetime.now(timezone.utc),
            weather=WeatherReading(**{k: merged.get(k) for k in WEATHER_FIELDS}),
            precipitation_24h_mm=merged.get("precipitation_24h_mm"),
            soil_moisture_pct=merged.get("soil_moisture_pct"),
            seismic=merged.get("seismic"),
            degraded=degraded,
            missing_sources=tuple(missing),
        )

    async def close(self) -> None:
        """Close every adapter's network resources."""
        for adapter in self.adapters:
            try:
                await adapter.close()
            except Exception as e:
                logger.warning(f"Error closing adapter {adapter.name}: {e}")
