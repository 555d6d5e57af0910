"""
Monitoring service: wires adapters, aggregator, scorer, hub, alert engine and
personnel classifier into one object owned by the application.

Data flow:
    adapters -> aggregator -> scorer -> hub -> subscribers
    hub (every cycle) -> alert engine
    hub (pushes for zone locations) -> classifier zone levels
    classifier (every classification) -> alert engine
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Sequence

from rockguard.core.config import Settings
from rockguard.core.database import build_engine, create_tables, get_session_factory
from rockguard.core.event_bus import EventBus, Subscription
from rockguard.core.scheduler_service import SchedulerService
from rockguard.notifications.alerts import AlertEngine, AlertLogStore
from rockguard.personnel.classifier import PersonnelClassifier
from rockguard.personnel.simulator import PersonnelSimulator
from rockguard.sources import ProviderAdapter, build_default_adapters
from rockguard.telemetry.aggregator import TelemetryAggregator
from rockguard.telemetry.hub import DistributionHub
from rockguard.telemetry.models import Location, TelemetryUpdate
from rockguard.telemetry.scoring import RiskScorer

logger = logging.getLogger(__name__)

PERSONNEL_JOB_ID = "personnel_tick"


class MonitoringService:
    """Composition root. Build one per process, start it, shut it down."""

    def __init__(
        self,
        settings: Settings,
        adapters: Optional[Sequence[ProviderAdapter]] = None,
        simulator_seed: Optional[int] = None,
    ):
        self.settings = settings
        self.bus = EventBus(default_queue_size=settings.subscriber_queue_depth)
        self.scorer = RiskScorer.from_settings(settings)
        self.aggregator = TelemetryAggregator(
            adapters if adapters is not None else build_default_adapters(settings),
            default_timeout=settings.fetch_timeout_seconds,
        )
        self.hub = DistributionHub.from_settings(settings, self.aggregator, self.scorer, bus=self.bus)

        self.db_engine = None
        store = None
        if settings.persist_alerts:
            self.db_engine = build_engine(settings.database_url)
            store = AlertLogStore(get_session_factory(self.db_engine))
        self.alerts = AlertEngine(
            capacity=settings.alert_log_capacity, bus=self.bus, store=store
        )

        self.classifier = PersonnelClassifier.from_settings(settings)
        self.simulator: Optional[PersonnelSimulator] = None
        if settings.simulate_personnel:
            self.simulator = PersonnelSimulator(
                self.classifier,
                count=settings.simulated_worker_count,
                seed=simulator_seed,
            )
        self.scheduler = SchedulerService()

        self.hub.add_listener(self.alerts.evaluate_assessment)
        self.classifier.add_listener(self.alerts.evaluate_worker)

        self._zone_subscriptions: List[Subscription] = []
        self._zone_tasks: List[asyncio.Task] = []
        self.started_at: Optional[datetime] = None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        """Hydrate the alert log, start personnel jobs and zone watchers."""
        if self.db_engine is not None:
            create_tables(self.db_engine)
            self.alerts.hydrate()

        if self.simulator is not None:
            self.simulator.populate()
        self.scheduler.register_interval(
            PERSONNEL_JOB_ID,
            self.personnel_tick,
            seconds=self.settings.personnel_interval_seconds,
            name="Personnel tick",
        )
        self.scheduler.start()

        for zone in self.classifier.zones:
            if not zone.has_coordinates:
                continue
            location = Location.parse(zone.lat, zone.lon)
            subscription = await self.hub.subscribe(location)
            self._zone_subscriptions.append(subscription)
            self._zone_tasks.append(
                asyncio.create_task(self._watch_zone(zone.name, subscription), name=f"zone:{zone.name}")
            )
            logger.info(f"Watching zone {zone.name} at {location.key}")

        self.started_at = datetime.now(timezone.utc)
        logger.info("Monitoring service started")

    async def _watch_zone(self, zone_name: str, subscription: Subscription) -> None:
        async for event in subscription:
            update: TelemetryUpdate = event.data
            if update.assessment.is_degraded:
                continue
            self.classifier.set_zone_level(zone_name, update.assessment.level)

    async def personnel_tick(self) -> None:
        """One personnel cycle: advance the simulation, then sample the trend."""
        if self.simulator is not None:
            self.simulator.step()
        self.classifier.close_cycle()

    async def shutdown(self) -> None:
        """Stop jobs, close every stream and release network/database resources."""
        self.scheduler.stop()
        for subscription in self._zone_subscriptions:
            subscription.close()
        for task in self._zone_tasks:
            task.cancel()
        if self._zone_tasks:
            await asyncio.gather(*self._zone_tasks, return_exceptions=True)
        self._zone_subscriptions.clear()
        self._zone_tasks.clear()

        await self.hub.shutdown()
        self.bus.close_all()
        await self.aggregator.close()
        if self.db_engine is not None:
            self.db_engine.dispose()
        logger.info("Monitoring service stopped")

    # ------------------------------------------------------------------
    # Status
    # ------------------------------------------------------------------

    def health(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "providers": [adapter.name for adapter in self.aggregator.adapters],
            "hub": self.hub.stats(),
            "alerts": self.alerts.stats(),
            "personnel": {
                "workers": len(self.classifier),
                "simulated": self.simulator is not None,
                "zones": self.classifier.zone_levels(),
            },
            "scheduler": self.scheduler.status(),
            "streams": self.bus.active_channels,
        }
