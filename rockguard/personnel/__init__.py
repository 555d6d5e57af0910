"""
Personnel tracking: worker table, risk tiers and the simulated crew feed.
"""

from rockguard.personnel.models import Position, RiskTier, Vitals, Worker
from rockguard.personnel.classifier import PersonnelClassifier, classify, tier_for_score
from rockguard.personnel.simulator import PersonnelSimulator

__all__ = [
    "Position",
    "RiskTier",
    "Vitals",
    "Worker",
    "PersonnelClassifier",
    "PersonnelSimulator",
    "classify",
    "tier_for_score",
]
