"""
Open-Meteo provider adapters.
"""
import logging
from typing import List, Optional

from rockguard.core.api_errors import ProviderUnavailable
from rockguard.sources.base import ProviderAdapter, ProviderReading
from rockguard.sources.open_meteo.client import OpenMeteoClient
from rockguard.telemetry.models import Location

logger = logging.getLogger(__name__)


def _optional_float(value) -> Optional[float]:
    return None if value is None else float(value)


class OpenMeteoWeatherAdapter(ProviderAdapter):
    """Current temperature, humidity and wind speed."""

    name = "open_meteo_weather"
    fields = frozenset({"temperature_c", "humidity_pct", "wind_speed_ms"})

    def __init__(self, client: OpenMeteoClient):
        self.client = client

    async def _fetch(self, location: Location) -> ProviderReading:
        current = await self.client.get_current(location.lat, location.lon)
        reading = {
            "temperature_c": _optional_float(current.get("temperature_2m")),
            "humidity_pct": _optional_float(current.get("relative_humidity_2m")),
            "wind_speed_ms": _optional_float(current.get("wind_speed_10m")),
        }
        if all(v is None for v in reading.values()):
            raise ProviderUnavailable("Current block carried no readings", source=self.name)
        return reading

    async def close(self) -> None:
        await self.client.close()


class OpenMeteoHydrologyAdapter(ProviderAdapter):
    """Rolling 24h precipitation and latest near-surface soil moisture."""

    name = "open_meteo_hydrology"
    fields = frozenset({"precipitation_24h_mm", "soil_moisture_pct"})

    def __init__(self, client: OpenMeteoClient):
        self.client = client

    async def _fetch(self, location: Location) -> ProviderReading:
        hourly = await self.client.get_past_day_hourly(location.lat, location.lon)
        precipitation: List[Optional[float]] = hourly.get("precipitation") or []
        soil: List[Optional[float]] = hourly.get("soil_moisture_0_to_1cm") or []

        rain_values = [float(v) for v in precipitation[-24:] if v is not None]
        soil_values = [float(v) for v in soil if v is not None]

        reading = {
            "precipitation_24h_mm": round(sum(rain_values), 2) if rain_values else None,
            # volumetric m3/m3 -> percent
            "soil_moisture_pct": round(soil_values[-1] * 100.0, 2) if soil_values else None,
        }
        if all(v is None for v in reading.values()):
            raise ProviderUnavailable("Hourly block carried no readings", source=self.name)
        return reading

    async def close(self) -> None:
        await self.client.close()
