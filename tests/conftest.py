"""
Pytest configuration and shared fixtures.
"""
import pytest

from rockguard.core.config import Settings, reset_settings
from rockguard.telemetry.models import Location, SeismicReading

from tests.helpers import FakeAdapter, make_snapshot, make_update


@pytest.fixture(scope="function")
def clean_env(monkeypatch):
    """
    Clean environment for testing.

    Removes all app-related env vars to ensure clean state.
    """
    env_vars = [
        "DATABASE_URL",
        "OPEN_METEO_BASE_URL",
        "OPEN_METEO_API_KEY",
        "USGS_BASE_URL",
        "SEISMIC_RADIUS_KM",
        "FETCH_TIMEOUT_SECONDS",
        "REFRESH_INTERVAL_SECONDS",
        "PUSH_TTL_SECONDS",
        "HISTORY_CAPACITY",
        "MAX_TRACKED_LOCATIONS",
        "SUBSCRIBER_QUEUE_DEPTH",
        "RISK_WEIGHTS",
        "RISK_REFERENCE_RANGES",
        "ALERT_LOG_CAPACITY",
        "SIMULATE_PERSONNEL",
        "SIMULATED_WORKER_COUNT",
        "PERSONNEL_INTERVAL_SECONDS",
        "WORKER_STALE_AFTER_SECONDS",
        "PERSONNEL_TREND_WINDOW",
        "SITE_ZONES",
        "LOG_LEVEL",
        "MAX_RETRIES",
        "RETRY_BACKOFF_FACTOR",
    ]
    for var in env_vars:
        monkeypatch.delenv(var, raising=False)

    # Reset settings singleton
    reset_settings()

    yield

    # Reset again after test
    reset_settings()


# =============================================================================
# Fake provider adapters
# =============================================================================


@pytest.fixture
def location():
    return Location.parse(28.6139, 77.2090)


@pytest.fixture
def weather_adapter():
    return FakeAdapter(
        "fake_weather",
        {"temperature_c": 30.0, "humidity_pct": None, "wind_speed_ms": 2.0},
    )


@pytest.fixture
def hydrology_adapter():
    return FakeAdapter(
        "fake_hydrology",
        {"precipitation_24h_mm": 40.0, "soil_moisture_pct": None},
    )


@pytest.fixture
def seismic_adapter():
    return FakeAdapter("fake_seismic", {"seismic": SeismicReading(0.0, 0)})


@pytest.fixture
def high_risk_adapter():
    """Every factor at the top of its reference range."""
    return FakeAdapter(
        "fake_extreme",
        {
            "temperature_c": 45.0,
            "humidity_pct": 100.0,
            "wind_speed_ms": 20.0,
            "precipitation_24h_mm": 50.0,
            "soil_moisture_pct": 100.0,
            "seismic": SeismicReading(6.0, 3),
        },
    )


# =============================================================================
# Factories
# =============================================================================


@pytest.fixture
def snapshot_factory():
    return make_snapshot


@pytest.fixture
def update_factory():
    return make_update


@pytest.fixture
def test_settings(clean_env):
    """Fast intervals, no simulated crew, in-memory alert log."""
    return Settings(
        refresh_interval_seconds=0.05,
        push_ttl_seconds=60,
        fetch_timeout_seconds=0.5,
        simulate_personnel=False,
        personnel_interval_seconds=3600,
    )
