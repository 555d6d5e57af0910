"""
Notifications module: alert conditions and the alert log.
"""

from rockguard.notifications.alerts import (
    AlertEngine,
    AlertLevel,
    AlertLogStore,
    AlertRecord,
    AlertSource,
    AlertStatus,
    ConditionState,
)

__all__ = [
    "AlertEngine",
    "AlertLevel",
    "AlertLogStore",
    "AlertRecord",
    "AlertSource",
    "AlertStatus",
    "ConditionState",
]
