"""
Provider adapter contract.

An adapter fetches one provider's readings for a location and returns them
as a partial mapping of snapshot fields. Whatever goes wrong inside an
adapter (timeout, non-2xx, malformed payload) comes out as
ProviderUnavailable so the aggregator can treat it uniformly.
"""
import logging
from abc import ABC, abstractmethod
from typing import Any, Dict, FrozenSet

from rockguard.core.api_errors import APIError, ProviderUnavailable
from rockguard.telemetry.models import Location

logger = logging.getLogger(__name__)

# Snapshot fields an adapter may fill in.
READING_FIELDS = frozenset({
    "temperature_c",
    "humidity_pct",
    "wind_speed_ms",
    "precipitation_24h_mm",
    "soil_moisture_pct",
    "seismic",
})

ProviderReading = Dict[str, Any]


class ProviderAdapter(ABC):
    """Base class for all provider adapters."""

    name: str = "unknown"
    fields: FrozenSet[str] = frozenset()

    async def fetch(self, location: Location) -> ProviderReading:
        """
        Fetch and parse one reading.

        Raises:
            ProviderUnavailable: on any provider-side failure
        """
        try:
            reading = await self._fetch(location)
        except ProviderUnavailable:
            raise
        except APIError as e:
            raise ProviderUnavailable(str(e), source=self.name, cause=e) from e
        except (KeyError, IndexError, TypeError, ValueError) as e:
            raise ProviderUnavailable(
                f"Malformed response: {e!r}", source=self.name, cause=e
            ) from e

        unexpected = set(reading) - self.fields
        if unexpected:
            raise ProviderUnavailable(
                f"Adapter returned undeclared fields {sorted(unexpected)}",
                source=self.name,
            )
        return reading

    @abstractmethod
    async def _fetch(self, location: Location) -> ProviderReading:
        """Provider-specific request + parsing."""

    async def close(self) -> None:
        """Release network resources. Default: nothing to release."""
