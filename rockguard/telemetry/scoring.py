"""
Risk scoring: TelemetrySnapshot -> RiskAssessment.

A deterministic, auditable weighted combination, not a calibrated model.

Each present factor is normalized to 0..1 against a reference range and
clamped. Absent factors are left out of both sums and their weight is NOT
redistributed:

    score = 100 * sum(w_i * n_i) / sum(w_i for present factors)

so scores computed from snapshots with different missing-factor sets are not
directly comparable. That is a known limitation of scoring partial data.

The scorer holds only immutable configuration and is safe to call from any
number of tasks or threads.
"""
from types import MappingProxyType
from typing import Callable, Dict, Mapping, Optional, Tuple

from rockguard.core.config import (
    DEFAULT_REFERENCE_RANGES,
    DEFAULT_RISK_WEIGHTS,
    RISK_FACTORS,
)
from rockguard.telemetry.models import (
    RiskAssessment,
    RiskFactor,
    RiskLevel,
    TelemetrySnapshot,
)

MEDIUM_THRESHOLD = 40.0
HIGH_THRESHOLD = 70.0

# factor name -> reading extractor
_EXTRACTORS: Dict[str, Callable[[TelemetrySnapshot], Optional[float]]] = {
    "temperature": lambda s: s.weather.temperature_c,
    "humidity": lambda s: s.weather.humidity_pct,
    "wind": lambda s: s.weather.wind_speed_ms,
    "rain": lambda s: s.precipitation_24h_mm,
    "soil_moisture": lambda s: s.soil_moisture_pct,
    "seismic": lambda s: s.seismic.strongest_magnitude if s.seismic else None,
}


def level_for_score(score: float) -> RiskLevel:
    """Bands are closed on their lower bound: 40.0 is MEDIUM, 70.0 is HIGH."""
    if score >= HIGH_THRESHOLD:
        return RiskLevel.HIGH
    if score >= MEDIUM_THRESHOLD:
        return RiskLevel.MEDIUM
    return RiskLevel.LOW


def normalize(value: float, bounds: Tuple[float, float]) -> float:
    low, high = bounds
    ratio = (value - low) / (high - low)
    return min(1.0, max(0.0, ratio))


class RiskScorer:
    """Weighted-sum risk scorer over the six environmental factors."""

    def __init__(
        self,
        weights: Optional[Mapping[str, float]] = None,
        reference_ranges: Optional[Mapping[str, Tuple[float, float]]] = None,
    ):
        merged_weights = dict(DEFAULT_RISK_WEIGHTS)
        merged_weights.update(weights or {})
        merged_ranges = dict(DEFAULT_REFERENCE_RANGES)
        merged_ranges.update(reference_ranges or {})
        self.weights = MappingProxyType(merged_weights)
        self.reference_ranges = MappingProxyType(
            {k: (float(v[0]), float(v[1])) for k, v in merged_ranges.items()}
        )

    @classmethod
    def from_settings(cls, settings) -> "RiskScorer":
        return cls(settings.risk_weights, settings.risk_reference_ranges)

    def score(self, snapshot: TelemetrySnapshot) -> RiskAssessment:
        factors = []
        missing = []
        for name in RISK_FACTORS:
            value = _EXTRACTORS[name](snapshot)
            if value is None:
                missing.append(name)
                continue
            factors.append(
                RiskFactor(
                    name=name,
                    normalized=normalize(float(value), self.reference_ranges[name]),
                    weight=self.weights[name],
                )
            )

        total_weight = sum(f.weight for f in factors)
        if total_weight <= 0:
            # nothing to score: safe default
            return RiskAssessment(
                score=0.0,
                level=RiskLevel.LOW,
                contributing_factors=tuple(factors),
                missing_factors=tuple(missing),
            )

        weighted = sum(f.contribution for f in factors)
        score = 100.0 * weighted / total_weight
        return RiskAssessment(
            score=score,
            level=level_for_score(score),
            contributing_factors=tuple(factors),
            missing_factors=tuple(missing),
        )

    __call__ = score
