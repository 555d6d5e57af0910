"""
Open-Meteo weather and hydrology source.

Official API: https://open-meteo.com/en/docs
Data License: CC BY 4.0
"""

from rockguard.sources.open_meteo.client import OpenMeteoClient
from rockguard.sources.open_meteo.adapters import (
    OpenMeteoHydrologyAdapter,
    OpenMeteoWeatherAdapter,
)

__all__ = ["OpenMeteoClient", "OpenMeteoWeatherAdapter", "OpenMeteoHydrologyAdapter"]
