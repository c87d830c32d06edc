from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Callable

from .aggregator import ViewModel
from .app_logging import log_with_fields
from .config import AppConfig
from .errors import ConnectivityError, RemoteError, StopError
from .health import HealthMonitor
from .lifecycle import LifecycleRegistry
from .models import HealthState, JobRequest, JobSummary, StartJobResponse
from .poller import JobStatusPoller, timer_key
from .registry import RegistryFetcher
from .remote import LoadTesterClient
from .scheduler import Scheduler
from .streams import Observable, Unsubscribe
from .views import ViewBoard

HEALTH_TIMER = "health"
REFRESH_TIMER = "refresh"
REFRESH_NOW_TIMER = "refresh:now"

OFFLINE_BANNER = "Load tester service is offline"


class Console:
    """Wires the health monitor, registry, ActiveSet, pollers and views together."""

    def __init__(
        self,
        config: AppConfig,
        client: LoadTesterClient,
        logger: logging.Logger,
        scheduler: Scheduler | None = None,
    ) -> None:
        self.config = config
        self.client = client
        self.logger = logger
        self.scheduler = scheduler or Scheduler(logger)
        self.health = HealthMonitor(client, logger)
        self.lifecycle = LifecycleRegistry()
        self.views = ViewBoard()
        self.registry = RegistryFetcher(client, self.health, self.lifecycle, logger)
        self.poller = JobStatusPoller(
            client,
            self.health,
            self.lifecycle,
            self.views,
            self.scheduler,
            logger,
            interval_seconds=config.intervals.poll_seconds,
            assumed_window_seconds=config.view.assumed_window_seconds,
            default_request_rate=config.view.default_request_rate,
        )
        self.banner: Observable[str | None] = Observable(None)
        self._closed = asyncio.Event()
        self.health.state.subscribe(self._on_health, replay=False)
        self.lifecycle.stream.subscribe(self._on_active_changed, replay=False)

    @property
    def active(self) -> Observable[frozenset[str]]:
        return self.lifecycle.stream

    @property
    def jobs(self) -> Observable[tuple[JobSummary, ...]]:
        return self.registry.jobs

    async def start(self) -> None:
        await self._health_cycle()
        await self._refresh_cycle()

    async def run_once(self) -> None:
        """Probe, refresh, then poll every active job exactly once."""
        await self.health.probe()
        await self._refresh_quietly()
        await self.poll_active()

    async def run_forever(self) -> None:
        await self.start()
        await self._closed.wait()

    async def close(self) -> None:
        self.scheduler.cancel_all()
        self.poller.unwatch_all()
        self._closed.set()
        await self.scheduler.drain()
        await self.client.aclose()

    async def poll_active(self) -> None:
        job_ids = sorted(self.poller.watched_ids())
        for job_id in job_ids:
            self.scheduler.cancel(timer_key(job_id))
        await asyncio.gather(*(self.poller.tick(job_id) for job_id in job_ids))

    async def refresh(self) -> list[JobSummary] | None:
        result = await self.registry.refresh()
        if result is not None and self.banner.value is not None and self.health.healthy:
            self.banner.publish(None)
        return result

    def request_refresh(self) -> None:
        self.scheduler.arm(REFRESH_NOW_TIMER, 0.0, self._refresh_quietly)

    async def create_job(self, request: JobRequest) -> StartJobResponse:
        request.validate()
        if not self.health.healthy:
            raise ConnectivityError(f"{OFFLINE_BANNER}; cannot start a job")
        response = await self.client.start_job(request)
        log_with_fields(
            self.logger,
            logging.INFO,
            "job_started",
            job_id=response.job_id,
            target_endpoint=request.target_endpoint,
            request_rate=request.request_rate,
            duration_seconds=request.duration_seconds,
        )
        self.poller.track(response.job_id)
        self.request_refresh()
        return response

    async def stop_job(self, job_id: str) -> None:
        # Optimistic: the job leaves the ActiveSet before the service confirms.
        # A failed stop is not rolled back; the next refresh reconciles.
        self.poller.stop(job_id)
        try:
            await self.client.stop_job(job_id)
        except RemoteError as exc:
            log_with_fields(self.logger, logging.WARNING, "stop_failed", job_id=job_id, error=str(exc))
            raise StopError(job_id, exc) from exc
        log_with_fields(self.logger, logging.INFO, "job_stop_requested", job_id=job_id)
        self.request_refresh()

    async def export_job(self, job_id: str) -> str:
        result = await self.client.get_result(job_id)
        return json.dumps(result.to_dict(), indent=2)

    def subscribe_view(self, job_id: str, callback: Callable[[ViewModel | None], None]) -> Unsubscribe:
        """Follow one job's ViewModel. Polling for it ends with the last subscriber."""
        stream = self.views.stream(job_id)
        unsubscribe_stream = stream.subscribe(callback)
        if self.lifecycle.contains(job_id):
            self.poller.watch(job_id)

        def unsubscribe() -> None:
            unsubscribe_stream()
            if stream.subscriber_count == 0:
                self.poller.unwatch(job_id)

        return unsubscribe

    async def _health_cycle(self) -> None:
        try:
            await self.health.probe()
        finally:
            if not self._closed.is_set():
                self.scheduler.arm(HEALTH_TIMER, self.config.intervals.health_seconds, self._health_cycle)

    async def _refresh_cycle(self) -> None:
        try:
            await self._refresh_quietly()
        finally:
            if not self._closed.is_set():
                self.scheduler.arm(REFRESH_TIMER, self.config.intervals.refresh_seconds, self._refresh_cycle)

    async def _refresh_quietly(self) -> None:
        try:
            await self.refresh()
        except RemoteError as exc:
            self.banner.publish(f"Failed to fetch tests: {exc}")

    def _on_health(self, state: HealthState) -> None:
        if not state.healthy:
            self.banner.publish(OFFLINE_BANNER)
        elif self.banner.value == OFFLINE_BANNER:
            self.banner.publish(None)

    def _on_active_changed(self, active: frozenset[str]) -> None:
        if self._closed.is_set():
            return
        for job_id in sorted(active):
            self.poller.watch(job_id)
