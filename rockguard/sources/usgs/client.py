"""
USGS earthquake catalog client (FDSN event web service).

Official documentation: https://earthquake.usgs.gov/fdsnws/event/1/

API Requirements:
- No key required
- `format=geojson` returns a FeatureCollection; magnitude is
  features[].properties.mag (may be null for unreviewed events)
- Circle search via latitude/longitude/maxradiuskm
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from rockguard.core.http_client import BaseAPIClient

logger = logging.getLogger(__name__)


class USGSEarthquakeClient(BaseAPIClient):
    """HTTP client for the USGS FDSN event query endpoint."""

    SOURCE_NAME = "usgs"
    BASE_URL = "https://earthquake.usgs.gov/fdsnws/event/1"

    async def query_events(
        self,
        lat: float,
        lon: float,
        radius_km: float,
        since: Optional[datetime] = None,
        limit: int = 500,
    ) -> List[Dict[str, Any]]:
        """
        Query events around a point.

        Args:
            lat, lon: Search center
            radius_km: Search radius
            since: Start of the window (default: 24 hours ago)
            limit: Maximum number of events

        Returns:
            List of GeoJSON features
        """
        if since is None:
            since = datetime.now(timezone.utc) - timedelta(hours=24)
        params = {
            "format": "geojson",
            "latitude": lat,
            "longitude": lon,
            "maxradiuskm": radius_km,
            "starttime": since.strftime("%Y-%m-%dT%H:%M:%S"),
            "orderby": "magnitude",
            "limit": limit,
        }
        data = await self.get_json("query", params=params, resource_id=f"events@{lat},{lon}")
        return data["features"]
