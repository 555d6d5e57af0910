"""
Tests for configuration validation.
"""
import pytest
from pydantic import ValidationError

from rockguard.core.config import (
    DEFAULT_RISK_WEIGHTS,
    Settings,
    get_settings,
    reset_settings,
)


@pytest.mark.unit
def test_settings_defaults_require_nothing(clean_env):
    settings = Settings()

    assert settings.database_url is None
    assert settings.persist_alerts is False
    assert settings.refresh_interval_seconds == 15.0
    assert settings.push_ttl_seconds == 60.0
    assert settings.history_capacity == 12
    assert settings.max_tracked_locations == 1000
    assert settings.subscriber_queue_depth == 32
    assert settings.alert_log_capacity == 200
    assert settings.risk_weights == DEFAULT_RISK_WEIGHTS
    assert settings.risk_reference_ranges["seismic"] == (0.0, 6.0)
    assert [z.name for z in settings.site_zones][:2] == ["Sector A", "Sector B"]


@pytest.mark.unit
def test_env_overrides(clean_env, monkeypatch):
    monkeypatch.setenv("REFRESH_INTERVAL_SECONDS", "5")
    monkeypatch.setenv("ALERT_LOG_CAPACITY", "50")
    monkeypatch.setenv("DATABASE_URL", "sqlite:///alerts.db")

    settings = Settings()

    assert settings.refresh_interval_seconds == 5.0
    assert settings.alert_log_capacity == 50
    assert settings.persist_alerts is True


@pytest.mark.unit
def test_partial_weight_override_is_merged(clean_env, monkeypatch):
    monkeypatch.setenv("RISK_WEIGHTS", '{"rain": 0.5}')

    settings = Settings()

    assert settings.risk_weights["rain"] == 0.5
    assert settings.risk_weights["seismic"] == DEFAULT_RISK_WEIGHTS["seismic"]


@pytest.mark.unit
def test_unknown_risk_factor_rejected(clean_env):
    with pytest.raises(ValidationError) as exc_info:
        Settings(risk_weights={"lava": 1.0})
    assert "Unknown risk factor" in str(exc_info.value)


@pytest.mark.unit
def test_negative_weight_rejected(clean_env):
    with pytest.raises(ValidationError):
        Settings(risk_weights={"rain": -0.1})


@pytest.mark.unit
def test_inverted_reference_range_rejected(clean_env):
    with pytest.raises(ValidationError):
        Settings(risk_reference_ranges={"rain": [50, 0]})


@pytest.mark.unit
def test_invalid_log_level(clean_env):
    with pytest.raises(ValidationError) as exc_info:
        Settings(log_level="LOUD")
    assert "log_level must be one of" in str(exc_info.value)


@pytest.mark.unit
def test_log_level_normalized(clean_env):
    assert Settings(log_level="debug").log_level == "DEBUG"


@pytest.mark.unit
def test_site_zones_from_env(clean_env, monkeypatch):
    monkeypatch.setenv(
        "SITE_ZONES",
        '[{"name": "Pit North", "x": 40, "y": 60, "radius": 10, "lat": -23.36, "lon": 119.73}]',
    )

    settings = Settings()

    assert len(settings.site_zones) == 1
    zone = settings.site_zones[0]
    assert zone.name == "Pit North"
    assert zone.has_coordinates


@pytest.mark.unit
def test_zone_outside_site_map_rejected(clean_env):
    with pytest.raises(ValidationError):
        Settings(site_zones=[{"name": "Bad", "x": 140, "y": 10}])


@pytest.mark.unit
def test_get_settings_is_cached_until_reset(clean_env, monkeypatch):
    first = get_settings()
    assert get_settings() is first

    monkeypatch.setenv("HISTORY_CAPACITY", "24")
    assert get_settings().history_capacity == 12

    reset_settings()
    assert get_settings().history_capacity == 24
