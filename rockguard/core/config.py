"""
Configuration module with strict validation.

Key principles:
- APP STARTUP requires nothing: every setting has a safe default
- Factor weights and reference ranges are policy, so they live here and not in code
- Alert persistence is opt-in (DATABASE_URL unset means in-memory log only)
- Intervals, timeouts and queue depths are all tunable
"""
import json
from typing import Dict, List, Optional, Tuple

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


RISK_FACTORS = (
    "temperature",
    "humidity",
    "wind",
    "rain",
    "soil_moisture",
    "seismic",
)

DEFAULT_RISK_WEIGHTS: Dict[str, float] = {
    "temperature": 0.1,
    "humidity": 0.1,
    "wind": 0.1,
    "rain": 0.25,
    "soil_moisture": 0.2,
    "seismic": 0.25,
}

# factor -> (value that normalizes to 0.0, value that normalizes to 1.0)
DEFAULT_REFERENCE_RANGES: Dict[str, Tuple[float, float]] = {
    "temperature": (0.0, 45.0),
    "humidity": (0.0, 100.0),
    "wind": (0.0, 20.0),
    "rain": (0.0, 50.0),
    "soil_moisture": (0.0, 100.0),
    "seismic": (0.0, 6.0),
}


class SiteZone(BaseModel):
    """A sector of the logical site map (coordinates 0-100)."""

    name: str
    x: float = Field(..., ge=0, le=100)
    y: float = Field(..., ge=0, le=100)
    radius: float = Field(default=25.0, gt=0)
    lat: Optional[float] = Field(default=None, ge=-90, le=90)
    lon: Optional[float] = Field(default=None, ge=-180, le=180)

    @property
    def has_coordinates(self) -> bool:
        return self.lat is not None and self.lon is not None


DEFAULT_SITE_ZONES: List[SiteZone] = [
    SiteZone(name="Sector A", x=20, y=75),
    SiteZone(name="Sector B", x=70, y=80),
    SiteZone(name="Sector C", x=75, y=25),
    SiteZone(name="Sector D", x=25, y=20),
    SiteZone(name="Workshop", x=50, y=50, radius=15),
]


class Settings(BaseSettings):
    """Application settings with validation.

    Loads from environment variables and .env file.
    """
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore"
    )

    # Alert log persistence (OPTIONAL - in-memory only when unset)
    database_url: Optional[str] = Field(
        default=None,
        description="SQLAlchemy URL for the persisted alert log mirror"
    )

    # Providers
    open_meteo_base_url: str = Field(
        default="https://api.open-meteo.com/v1",
        description="Open-Meteo forecast API base URL"
    )
    open_meteo_api_key: Optional[str] = Field(
        default=None,
        description="Open-Meteo customer API key (only for the commercial endpoint)"
    )
    usgs_base_url: str = Field(
        default="https://earthquake.usgs.gov/fdsnws/event/1",
        description="USGS FDSN event service base URL"
    )
    seismic_radius_km: float = Field(
        default=200.0,
        gt=0,
        le=20000,
        description="Search radius around the query point for seismic events"
    )
    fetch_timeout_seconds: float = Field(
        default=8.0,
        gt=0,
        le=120,
        description="Per-provider time bound for one aggregation"
    )

    # Distribution
    refresh_interval_seconds: float = Field(
        default=15.0,
        gt=0,
        description="Re-aggregation interval for each subscribed location"
    )
    push_ttl_seconds: float = Field(
        default=60.0,
        gt=0,
        description="Push an unchanged assessment again after this long"
    )
    history_capacity: int = Field(
        default=12,
        ge=1,
        le=1000,
        description="Snapshots kept per location for trend charts"
    )
    max_tracked_locations: int = Field(
        default=1000,
        ge=1,
        le=100000,
        description="Idle locations kept in the current-state table before the least recently used is evicted"
    )
    subscriber_queue_depth: int = Field(
        default=32,
        ge=1,
        le=10000,
        description="Queued updates per subscriber before drop-oldest kicks in"
    )

    # Scoring policy
    risk_weights: Dict[str, float] = Field(
        default_factory=lambda: dict(DEFAULT_RISK_WEIGHTS),
        description="Factor weights (JSON object in env)"
    )
    risk_reference_ranges: Dict[str, Tuple[float, float]] = Field(
        default_factory=lambda: dict(DEFAULT_REFERENCE_RANGES),
        description="Factor normalization ranges as [low, high] (JSON object in env)"
    )

    # Alerts
    alert_log_capacity: int = Field(
        default=200,
        ge=1,
        le=100000,
        description="Records kept in the alert log before the oldest is evicted"
    )

    # Personnel
    simulate_personnel: bool = Field(
        default=True,
        description="Drive the worker table from the built-in simulator"
    )
    simulated_worker_count: int = Field(default=12, ge=0, le=500)
    personnel_interval_seconds: float = Field(default=15.0, gt=0)
    worker_stale_after_seconds: float = Field(default=120.0, gt=0)
    personnel_trend_window: int = Field(default=10, ge=1, le=1000)
    site_zones: List[SiteZone] = Field(
        default_factory=lambda: [zone.model_copy() for zone in DEFAULT_SITE_ZONES],
        description="Site map sectors (JSON list in env)"
    )

    # Logging
    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    # Retry Configuration
    max_retries: int = Field(
        default=2,
        ge=1,
        le=10,
        description="Maximum attempts for a failed provider request"
    )
    retry_backoff_factor: float = Field(
        default=2.0,
        ge=1.0,
        le=10.0,
        description="Exponential backoff factor for retries"
    )

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        """Validate log level is one of the standard levels."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        v_upper = v.upper()
        if v_upper not in valid_levels:
            raise ValueError(f"log_level must be one of {valid_levels}")
        return v_upper

    @field_validator("risk_weights", mode="before")
    @classmethod
    def validate_risk_weights(cls, v):
        """Merge partial overrides onto the canonical weights."""
        if isinstance(v, str):
            v = json.loads(v)
        merged = dict(DEFAULT_RISK_WEIGHTS)
        for factor, weight in dict(v).items():
            if factor not in RISK_FACTORS:
                raise ValueError(f"Unknown risk factor '{factor}'. Valid factors: {RISK_FACTORS}")
            if float(weight) < 0:
                raise ValueError(f"Weight for '{factor}' must be >= 0")
            merged[factor] = float(weight)
        return merged

    @field_validator("risk_reference_ranges", mode="before")
    @classmethod
    def validate_reference_ranges(cls, v):
        """Merge partial overrides onto the canonical ranges."""
        if isinstance(v, str):
            v = json.loads(v)
        merged = dict(DEFAULT_REFERENCE_RANGES)
        for factor, bounds in dict(v).items():
            if factor not in RISK_FACTORS:
                raise ValueError(f"Unknown risk factor '{factor}'. Valid factors: {RISK_FACTORS}")
            low, high = (float(b) for b in bounds)
            if high <= low:
                raise ValueError(f"Reference range for '{factor}' must have high > low")
            merged[factor] = (low, high)
        return merged

    @property
    def persist_alerts(self) -> bool:
        return bool(self.database_url)


# Global settings instance
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get or create the global settings instance.

    Lazy so tests can set env vars first; reset with reset_settings().
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def reset_settings() -> None:
    """
    Reset the global settings instance.

    Useful for testing to ensure clean state between tests.
    """
    global _settings
    _settings = None
