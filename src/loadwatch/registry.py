from __future__ import annotations

import logging
from dataclasses import dataclass

from .app_logging import log_with_fields
from .errors import ConnectivityError, RemoteError
from .health import HealthMonitor
from .lifecycle import LifecycleRegistry
from .models import JobStatus, JobSummary
from .remote import LoadTesterClient
from .streams import Observable


@dataclass(frozen=True, slots=True)
class RegistryStats:
    total: int = 0
    running: int = 0
    completed: int = 0
    failed: int = 0
    stopped: int = 0


class RegistryFetcher:
    def __init__(
        self,
        client: LoadTesterClient,
        health: HealthMonitor,
        lifecycle: LifecycleRegistry,
        logger: logging.Logger,
    ) -> None:
        self.client = client
        self.health = health
        self.lifecycle = lifecycle
        self.logger = logger
        self.jobs: Observable[tuple[JobSummary, ...]] = Observable(())
        self.last_error: Observable[str | None] = Observable(None)
        self._in_flight = False

    @property
    def in_flight(self) -> bool:
        return self._in_flight

    async def refresh(self) -> list[JobSummary] | None:
        """Replace the job snapshot with the service's list.

        Returns None when the refresh was skipped: the service is unhealthy or
        another refresh is still outstanding. Raises ``RemoteError`` on
        failure, after clearing the snapshot.
        """
        if self._in_flight:
            log_with_fields(self.logger, logging.DEBUG, "registry_refresh_suppressed")
            return None
        if not self.health.healthy:
            log_with_fields(self.logger, logging.DEBUG, "registry_refresh_skipped", reason="unhealthy")
            return None

        self._in_flight = True
        try:
            summaries = await self.client.list_jobs()
        except RemoteError as exc:
            if isinstance(exc, ConnectivityError):
                self.health.degrade(str(exc))
            self.jobs.publish(())
            self.last_error.publish(str(exc))
            log_with_fields(self.logger, logging.WARNING, "registry_refresh_failed", error=str(exc))
            raise
        finally:
            self._in_flight = False

        self.jobs.publish(tuple(summaries))
        self.last_error.publish(None)
        self.lifecycle.replace(item.job_id for item in summaries if item.status is JobStatus.RUNNING)
        log_with_fields(
            self.logger,
            logging.INFO,
            "registry_refreshed",
            jobs=len(summaries),
            active=len(self.lifecycle),
        )
        return summaries

    def stats(self) -> RegistryStats:
        jobs = self.jobs.value
        return RegistryStats(
            total=len(jobs),
            running=sum(1 for job in jobs if job.status is JobStatus.RUNNING),
            completed=sum(1 for job in jobs if job.status is JobStatus.COMPLETED),
            failed=sum(1 for job in jobs if job.status is JobStatus.FAILED),
            stopped=sum(1 for job in jobs if job.status is JobStatus.STOPPED),
        )

    def split(self) -> tuple[list[JobSummary], list[JobSummary]]:
        """Partition the snapshot into (active, history) by ActiveSet membership."""
        active_ids = self.lifecycle.snapshot()
        active = [job for job in self.jobs.value if job.job_id in active_ids]
        history = [job for job in self.jobs.value if job.job_id not in active_ids]
        return active, history
