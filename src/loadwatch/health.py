from __future__ import annotations

import logging

from .app_logging import log_with_fields
from .errors import RemoteError
from .models import HealthState
from .remote import LoadTesterClient
from .streams import Observable


class HealthMonitor:
    """Tracks whether the load tester service is reachable; gates every other fetch."""

    def __init__(self, client: LoadTesterClient, logger: logging.Logger) -> None:
        self.client = client
        self.logger = logger
        self.state: Observable[HealthState] = Observable(HealthState(healthy=False, reason="not probed yet"))

    @property
    def healthy(self) -> bool:
        return self.state.value.healthy

    async def probe(self) -> HealthState:
        try:
            reported = await self.client.probe_health()
        except RemoteError as exc:
            state = HealthState(healthy=False, reason=str(exc))
        else:
            if reported.strip().upper() == "UP":
                state = HealthState(healthy=True)
            else:
                state = HealthState(healthy=False, reason=f"service reported status {reported!r}")

        previous = self.state.value
        if previous.healthy != state.healthy:
            log_with_fields(
                self.logger,
                logging.INFO if state.healthy else logging.WARNING,
                "health_changed",
                healthy=state.healthy,
                reason=state.reason,
            )
        else:
            log_with_fields(self.logger, logging.DEBUG, "health_probe", healthy=state.healthy)
        self.state.publish(state)
        return state

    def degrade(self, reason: str) -> None:
        """Mark the service unhealthy until the next successful probe."""
        if not self.healthy:
            return
        log_with_fields(self.logger, logging.WARNING, "health_degraded", reason=reason)
        self.state.publish(HealthState(healthy=False, reason=reason))
