"""
Unit tests for provider clients and adapters.

HTTP is stubbed with httpx.MockTransport; nothing leaves the process.
"""
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from rockguard.core.api_errors import (
    AuthenticationError,
    FatalError,
    ProviderUnavailable,
    RateLimitError,
    RetryableError,
    classify_http_error,
)
from rockguard.core.config import Settings
from rockguard.sources import build_default_adapters
from rockguard.sources.open_meteo import (
    OpenMeteoClient,
    OpenMeteoHydrologyAdapter,
    OpenMeteoWeatherAdapter,
)
from rockguard.sources.usgs import USGSEarthquakeClient, USGSSeismicAdapter
from rockguard.telemetry.models import SeismicReading


def mock_client(client_cls, handler, **kwargs):
    """Client whose pooled httpx client routes through `handler`."""
    client = client_cls(**kwargs)
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


# =============================================================================
# Error classification
# =============================================================================


@pytest.mark.unit
class TestClassifyHttpError:

    def test_rate_limit(self):
        assert isinstance(classify_http_error(429, "slow down", "usgs"), RateLimitError)

    def test_auth(self):
        assert isinstance(classify_http_error(401), AuthenticationError)

    def test_client_errors_are_fatal(self):
        error = classify_http_error(404, "missing", "open_meteo")
        assert isinstance(error, FatalError)
        assert not error.retryable

    def test_server_errors_are_retryable(self):
        error = classify_http_error(503, "maintenance")
        assert isinstance(error, RetryableError)
        assert error.retryable
        assert "(HTTP 503)" in str(error)


# =============================================================================
# BaseAPIClient
# =============================================================================


@pytest.mark.unit
class TestBaseClient:

    @pytest.mark.asyncio
    async def test_retries_server_error_then_succeeds(self):
        responses = iter([
            httpx.Response(503, text="busy"),
            httpx.Response(200, json={"current": {"temperature_2m": 20.0}}),
        ])
        client = mock_client(OpenMeteoClient, lambda request: next(responses), max_retries=2)

        with patch.object(client, "_backoff", new=AsyncMock()) as backoff:
            current = await client.get_current(28.6, 77.2)

        assert current == {"temperature_2m": 20.0}
        backoff.assert_awaited_once()
        await client.close()

    @pytest.mark.asyncio
    async def test_fatal_error_is_not_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            return httpx.Response(400, text="bad latitude")

        client = mock_client(OpenMeteoClient, handler, max_retries=3)

        with pytest.raises(FatalError):
            await client.get_json("forecast")
        assert len(calls) == 1
        await client.close()

    @pytest.mark.asyncio
    async def test_non_object_json_is_fatal(self):
        client = mock_client(OpenMeteoClient, lambda request: httpx.Response(200, json=[1, 2]))
        with pytest.raises(FatalError):
            await client.get_json("forecast")
        await client.close()

    @pytest.mark.asyncio
    async def test_api_key_is_sent_as_query_param(self):
        seen = {}

        def handler(request):
            seen.update(request.url.params)
            return httpx.Response(200, json={"current": {}})

        client = mock_client(OpenMeteoClient, handler, api_key="secret")
        await client.get_current(1.0, 2.0)

        assert seen["apikey"] == "secret"
        assert seen["wind_speed_unit"] == "ms"
        await client.close()

    @pytest.mark.asyncio
    async def test_usgs_query_parameters(self):
        seen = {}

        def handler(request):
            seen["path"] = request.url.path
            seen.update(request.url.params)
            return httpx.Response(200, json={"type": "FeatureCollection", "features": []})

        client = mock_client(USGSEarthquakeClient, handler)
        features = await client.query_events(-23.36, 119.73, 150.0)

        assert features == []
        assert seen["path"].endswith("/query")
        assert seen["format"] == "geojson"
        assert seen["maxradiuskm"] == "150.0"
        assert "starttime" in seen
        await client.close()


# =============================================================================
# Adapters
# =============================================================================


@pytest.mark.unit
class TestAdapters:

    @pytest.mark.asyncio
    async def test_weather_adapter(self, location):
        client = AsyncMock(spec=OpenMeteoClient)
        client.get_current.return_value = {
            "temperature_2m": 31.2, "relative_humidity_2m": 64, "wind_speed_10m": None,
        }

        reading = await OpenMeteoWeatherAdapter(client).fetch(location)

        assert reading == {"temperature_c": 31.2, "humidity_pct": 64.0, "wind_speed_ms": None}
        client.get_current.assert_awaited_once_with(location.lat, location.lon)

    @pytest.mark.asyncio
    async def test_weather_adapter_empty_block(self, location):
        client = AsyncMock(spec=OpenMeteoClient)
        client.get_current.return_value = {"time": "2024-01-01T00:00"}

        with pytest.raises(ProviderUnavailable):
            await OpenMeteoWeatherAdapter(client).fetch(location)

    @pytest.mark.asyncio
    async def test_hydrology_adapter_sums_last_day(self, location):
        client = AsyncMock(spec=OpenMeteoClient)
        client.get_past_day_hourly.return_value = {
            "precipitation": [0.5] * 20 + [None, 2.0, 1.25, 0.0],
            "soil_moisture_0_to_1cm": [0.31, 0.335, None],
        }

        reading = await OpenMeteoHydrologyAdapter(client).fetch(location)

        assert reading["precipitation_24h_mm"] == 13.25
        assert reading["soil_moisture_pct"] == 33.5

    @pytest.mark.asyncio
    async def test_malformed_payload_is_unavailable(self, location):
        client = AsyncMock(spec=OpenMeteoClient)
        client.get_past_day_hourly.return_value = {"precipitation": ["n/a"]}

        with pytest.raises(ProviderUnavailable) as exc_info:
            await OpenMeteoHydrologyAdapter(client).fetch(location)
        assert exc_info.value.source == "open_meteo_hydrology"

    @pytest.mark.asyncio
    async def test_api_error_is_unavailable(self, location):
        client = AsyncMock(spec=USGSEarthquakeClient)
        client.query_events.side_effect = RetryableError("Server error", source="usgs", status_code=502)

        with pytest.raises(ProviderUnavailable) as exc_info:
            await USGSSeismicAdapter(client).fetch(location)
        assert exc_info.value.status_code == 502

    @pytest.mark.asyncio
    async def test_seismic_strongest_magnitude(self, location):
        client = AsyncMock(spec=USGSEarthquakeClient)
        client.query_events.return_value = [
            {"properties": {"mag": 2.5}},
            {"properties": {"mag": None}},
            {"properties": {"mag": 4.1}},
        ]

        reading = await USGSSeismicAdapter(client, radius_km=300).fetch(location)

        assert reading == {"seismic": SeismicReading(4.1, 3)}
        client.query_events.assert_awaited_once_with(location.lat, location.lon, 300)

    @pytest.mark.asyncio
    async def test_quiet_day_is_a_zero_reading(self, location):
        client = AsyncMock(spec=USGSEarthquakeClient)
        client.query_events.return_value = []

        reading = await USGSSeismicAdapter(client).fetch(location)

        assert reading == {"seismic": SeismicReading(0.0, 0)}

    def test_default_adapters(self, clean_env):
        adapters = build_default_adapters(Settings(seismic_radius_km=120))

        assert [a.name for a in adapters] == [
            "open_meteo_weather", "open_meteo_hydrology", "usgs_seismic",
        ]
        assert adapters[0].client is adapters[1].client
        assert adapters[2].radius_km == 120
