"""
USGS earthquake catalog source.

Official API: https://earthquake.usgs.gov/fdsnws/event/1/
Data License: Public Domain (U.S. Government Work)
"""

from rockguard.sources.usgs.client import USGSEarthquakeClient
from rockguard.sources.usgs.adapters import USGSSeismicAdapter

__all__ = ["USGSEarthquakeClient", "USGSSeismicAdapter"]
