"""
USGS seismic provider adapter.
"""
import logging

from rockguard.sources.base import ProviderAdapter, ProviderReading
from rockguard.sources.usgs.client import USGSEarthquakeClient
from rockguard.telemetry.models import Location, SeismicReading

logger = logging.getLogger(__name__)


class USGSSeismicAdapter(ProviderAdapter):
    """
    Strongest magnitude and event count within a radius over the last 24h.

    A quiet day is a real reading (magnitude 0.0, count 0), not an absence.
    """

    name = "usgs_seismic"
    fields = frozenset({"seismic"})

    def __init__(self, client: USGSEarthquakeClient, radius_km: float = 200.0):
        self.client = client
        self.radius_km = radius_km

    async def _fetch(self, location: Location) -> ProviderReading:
        features = await self.client.query_events(location.lat, location.lon, self.radius_km)
        magnitudes = [
            float(feature["properties"]["mag"])
            for feature in features
            if feature["properties"].get("mag") is not None
        ]
        return {
            "seismic": SeismicReading(
                strongest_magnitude=max(magnitudes) if magnitudes else 0.0,
                event_count=len(features),
            )
        }

    async def close(self) -> None:
        await self.client.close()
