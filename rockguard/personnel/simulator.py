"""
Simulated personnel feed.

Sites without wearable telemetry still need a populated worker table, so the
simulator registers a crew and random-walks their positions and heart rates
each tick. It only talks to the classifier through register/update, exactly
like an external feed would.
"""
import logging
import random
from typing import List, Optional

from rockguard.core.config import SiteZone
from rockguard.personnel.classifier import PersonnelClassifier
from rockguard.personnel.models import Position, Vitals

logger = logging.getLogger(__name__)

FIRST_NAMES = [
    "Arjun", "Priya", "Ravi", "Meera", "Sanjay", "Anita",
    "Vikram", "Kavya", "Rahul", "Deepa", "Suresh", "Lakshmi",
]

STEP = 3.0
RESTING_HEART_RATE = 80.0
SOS_PROBABILITY = 0.002


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


class PersonnelSimulator:
    """Random-walk worker generator driving a PersonnelClassifier."""

    def __init__(
        self,
        classifier: PersonnelClassifier,
        count: int = 12,
        seed: Optional[int] = None,
        sos_probability: float = SOS_PROBABILITY,
    ):
        self.classifier = classifier
        self.count = count
        self.sos_probability = sos_probability
        self.rng = random.Random(seed)
        self.worker_ids: List[str] = []
        self.ticks = 0

    def _start_position(self, zones: List[SiteZone]) -> Position:
        if zones:
            zone = self.rng.choice(zones)
            return Position(
                x=_clamp(zone.x + self.rng.uniform(-zone.radius, zone.radius), 0, 100),
                y=_clamp(zone.y + self.rng.uniform(-zone.radius, zone.radius), 0, 100),
            )
        return Position(x=self.rng.uniform(0, 100), y=self.rng.uniform(0, 100))

    def populate(self) -> List[str]:
        """Register the simulated crew. Safe to call more than once."""
        if self.worker_ids:
            return self.worker_ids
        for i in range(self.count):
            worker_id = f"W-{i + 1:03d}"
            self.classifier.register(
                worker_id,
                position=self._start_position(self.classifier.zones),
                name=f"{FIRST_NAMES[i % len(FIRST_NAMES)]} ({worker_id})",
                phone=f"+91-90000-{i + 1:05d}",
                vitals=Vitals(heart_rate_bpm=round(self.rng.gauss(RESTING_HEART_RATE, 8), 1)),
            )
            self.worker_ids.append(worker_id)
        logger.info(f"Simulated crew of {len(self.worker_ids)} workers registered")
        return self.worker_ids

    def step(self) -> None:
        """Move every simulated worker one tick."""
        self.ticks += 1
        for worker_id in self.worker_ids:
            worker = self.classifier.get(worker_id)
            position = Position(
                x=_clamp(worker.position.x + self.rng.uniform(-STEP, STEP), 0, 100),
                y=_clamp(worker.position.y + self.rng.uniform(-STEP, STEP), 0, 100),
            )
            heart_rate = worker.vitals.heart_rate_bpm or RESTING_HEART_RATE
            # drift back toward resting
            heart_rate += self.rng.gauss(0, 4) + (RESTING_HEART_RATE - heart_rate) * 0.1
            vitals = Vitals(
                heart_rate_bpm=round(_clamp(heart_rate, 40, 180), 1),
                sos=self.rng.random() < self.sos_probability,
            )
            self.classifier.update(worker_id, position=position, vitals=vitals)
        logger.debug(f"Personnel simulation tick {self.ticks}")
