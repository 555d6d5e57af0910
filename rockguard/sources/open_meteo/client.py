"""
Open-Meteo forecast API client.

Official documentation: https://open-meteo.com/en/docs

API Requirements:
- No key for the public endpoint (non-commercial use)
- Commercial endpoint (customer-api.open-meteo.com) takes an `apikey` param
- Units are requested explicitly: Celsius, m/s, mm

Used for two adapters:
- current weather (temperature, relative humidity, wind speed)
- hydrology (hourly precipitation over the past 24h, soil moisture)
"""
import logging
from typing import Any, Dict, List, Optional

from rockguard.core.http_client import BaseAPIClient

logger = logging.getLogger(__name__)

CURRENT_VARIABLES = ("temperature_2m", "relative_humidity_2m", "wind_speed_10m")
HOURLY_VARIABLES = ("precipitation", "soil_moisture_0_to_1cm")


class OpenMeteoClient(BaseAPIClient):
    """HTTP client for the Open-Meteo forecast endpoint."""

    SOURCE_NAME = "open_meteo"
    BASE_URL = "https://api.open-meteo.com/v1"

    def _add_auth_to_params(self, params: Dict[str, Any]) -> Dict[str, Any]:
        if self.api_key:
            params["apikey"] = self.api_key
        return params

    async def get_current(self, lat: float, lon: float) -> Dict[str, Any]:
        """
        Fetch the `current` block for a coordinate.

        Returns:
            The `current` mapping, e.g.
            {"time": "...", "temperature_2m": 21.4,
             "relative_humidity_2m": 61, "wind_speed_10m": 3.2}
        """
        params = {
            "latitude": lat,
            "longitude": lon,
            "current": ",".join(CURRENT_VARIABLES),
            "temperature_unit": "celsius",
            "wind_speed_unit": "ms",
            "timezone": "UTC",
        }
        data = await self.get_json("forecast", params=params, resource_id=f"current@{lat},{lon}")
        return data["current"]

    async def get_past_day_hourly(self, lat: float, lon: float) -> Dict[str, List[Optional[float]]]:
        """
        Fetch hourly precipitation and soil moisture for the past 24 hours.

        Returns:
            The `hourly` mapping with one list per variable, oldest first.
        """
        params = {
            "latitude": lat,
            "longitude": lon,
            "hourly": ",".join(HOURLY_VARIABLES),
            "precipitation_unit": "mm",
            "past_hours": 24,
            "forecast_hours": 0,
            "timezone": "UTC",
        }
        data = await self.get_json("forecast", params=params, resource_id=f"hourly@{lat},{lon}")
        return data["hourly"]
