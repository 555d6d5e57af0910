"""
Provider adapters.
"""
from typing import List

from rockguard.core.config import Settings
from rockguard.sources.base import ProviderAdapter, ProviderReading, READING_FIELDS
from rockguard.sources.open_meteo import (
    OpenMeteoClient,
    OpenMeteoHydrologyAdapter,
    OpenMeteoWeatherAdapter,
)
from rockguard.sources.usgs import USGSEarthquakeClient, USGSSeismicAdapter


def build_default_adapters(settings: Settings) -> List[ProviderAdapter]:
    """Weather, hydrology and seismic adapters configured from settings."""
    client_kwargs = dict(
        max_retries=settings.max_retries,
        backoff_factor=settings.retry_backoff_factor,
        timeout=settings.fetch_timeout_seconds,
    )
    open_meteo = OpenMeteoClient(
        base_url=settings.open_meteo_base_url,
        api_key=settings.open_meteo_api_key,
        **client_kwargs,
    )
    usgs = USGSEarthquakeClient(base_url=settings.usgs_base_url, **client_kwargs)
    return [
        OpenMeteoWeatherAdapter(open_meteo),
        OpenMeteoHydrologyAdapter(open_meteo),
        USGSSeismicAdapter(usgs, radius_km=settings.seismic_radius_km),
    ]


__all__ = [
    "ProviderAdapter",
    "ProviderReading",
    "READING_FIELDS",
    "build_default_adapters",
]
