"""
Domain errors raised synchronously to callers of the monitoring service.

Provider failures are NOT here: they are recovered inside the aggregator
(see api_errors.ProviderUnavailable).
"""


class InvalidLocation(ValueError):
    """Coordinates are missing, non-finite or out of range."""

    def __init__(self, lat, lon, reason: str):
        super().__init__(f"Invalid location ({lat}, {lon}): {reason}")
        self.lat = lat
        self.lon = lon
        self.reason = reason


class UnknownAlertCondition(KeyError):
    """No alert condition is tracked under the given key."""

    def __init__(self, key: str):
        super().__init__(key)
        self.key = key

    def __str__(self) -> str:
        return f"Unknown alert condition: {self.key}"


class InvalidAlertTransition(Exception):
    """Operator action not allowed from the condition's current state."""

    def __init__(self, key: str, current: str, action: str):
        super().__init__(f"Cannot {action} condition {key} in state {current}")
        self.key = key
        self.current = current
        self.action = action


class UnknownWorker(KeyError):
    """No worker is registered under the given id."""

    def __init__(self, worker_id: str):
        super().__init__(worker_id)
        self.worker_id = worker_id

    def __str__(self) -> str:
        return f"Unknown worker: {self.worker_id}"
