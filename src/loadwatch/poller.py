from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from .aggregator import DEFAULT_ASSUMED_WINDOW_SECONDS, DEFAULT_REQUEST_RATE, ViewModel, merge
from .app_logging import log_with_fields
from .errors import ConnectivityError, EscalationError, RemoteError
from .health import HealthMonitor
from .lifecycle import LifecycleRegistry
from .models import JobResult, JobStatusSnapshot
from .remote import LoadTesterClient
from .scheduler import Scheduler
from .views import ViewBoard

DEFAULT_POLL_SECONDS = 3.0


class PollState(str, Enum):
    IDLE = "idle"
    POLLING = "polling"
    RUNNING = "running"
    TERMINAL = "terminal"


@dataclass(slots=True)
class _Watch:
    job_id: str
    state: PollState = PollState.IDLE
    alive: bool = True


def timer_key(job_id: str) -> str:
    return f"poll:{job_id}"


class JobStatusPoller:
    """Per-job status polling with a single outstanding fetch per id.

    A watch ends when the job is seen in a terminal state, when it is stopped,
    or when nobody observes it any more. Results of fetches that resolve after
    the watch ended are dropped.
    """

    def __init__(
        self,
        client: LoadTesterClient,
        health: HealthMonitor,
        lifecycle: LifecycleRegistry,
        views: ViewBoard,
        scheduler: Scheduler,
        logger: logging.Logger,
        *,
        interval_seconds: float = DEFAULT_POLL_SECONDS,
        assumed_window_seconds: int = DEFAULT_ASSUMED_WINDOW_SECONDS,
        default_request_rate: int = DEFAULT_REQUEST_RATE,
    ) -> None:
        self.client = client
        self.health = health
        self.lifecycle = lifecycle
        self.views = views
        self.scheduler = scheduler
        self.logger = logger
        self.interval_seconds = interval_seconds
        self.assumed_window_seconds = assumed_window_seconds
        self.default_request_rate = default_request_rate
        self._watches: dict[str, _Watch] = {}
        # keyed by job id, not by watch: a fetch from an ended watch still counts
        self._in_flight: dict[str, _Watch] = {}
        self._escalated: set[str] = set()

    def state(self, job_id: str) -> PollState:
        if job_id in self._escalated:
            return PollState.TERMINAL
        watch = self._watches.get(job_id)
        return watch.state if watch is not None else PollState.IDLE

    def is_watching(self, job_id: str) -> bool:
        return job_id in self._watches

    def watched_ids(self) -> set[str]:
        return set(self._watches)

    def in_flight(self, job_id: str) -> bool:
        return job_id in self._in_flight

    def watch(self, job_id: str) -> bool:
        """Start polling ``job_id`` right away. No-op when already watched or terminal."""
        if job_id in self._watches or job_id in self._escalated:
            return False
        self._watches[job_id] = _Watch(job_id=job_id)
        self._arm(job_id, 0.0)
        log_with_fields(self.logger, logging.DEBUG, "poll_watch_started", job_id=job_id)
        return True

    def track(self, job_id: str) -> None:
        """Register a newly started job as active and poll it."""
        self.lifecycle.add(job_id)
        self.watch(job_id)

    def unwatch(self, job_id: str) -> bool:
        watch = self._watches.pop(job_id, None)
        self.scheduler.cancel(timer_key(job_id))
        if watch is None:
            return False
        watch.alive = False
        log_with_fields(self.logger, logging.DEBUG, "poll_watch_ended", job_id=job_id)
        return True

    def stop(self, job_id: str) -> None:
        """Cancel polling and drop the job from the ActiveSet at once."""
        self.unwatch(job_id)
        self.lifecycle.remove(job_id)

    def unwatch_all(self) -> None:
        for job_id in list(self._watches):
            self.unwatch(job_id)

    async def tick(self, job_id: str) -> None:
        watch = self._watches.get(job_id)
        if watch is None or not watch.alive or watch.state is PollState.TERMINAL:
            return
        owner = self._in_flight.get(job_id)
        if owner is not None:
            log_with_fields(self.logger, logging.DEBUG, "poll_skipped_in_flight", job_id=job_id)
            if owner is not watch:
                self._arm(job_id, self.interval_seconds)
            return
        if not self.health.healthy:
            log_with_fields(self.logger, logging.DEBUG, "poll_skipped_unhealthy", job_id=job_id)
            self._arm(job_id, self.interval_seconds)
            return

        self._in_flight[job_id] = watch
        watch.state = PollState.POLLING
        try:
            snapshot = await self.client.get_status(job_id)
        except RemoteError as exc:
            if watch.alive:
                self._record_poll_error(watch, exc)
            return
        finally:
            if self._in_flight.get(job_id) is watch:
                del self._in_flight[job_id]

        if not watch.alive:
            log_with_fields(self.logger, logging.DEBUG, "poll_result_discarded", job_id=job_id)
            return

        if snapshot.status.is_terminal:
            await self._finish(watch, snapshot)
            return

        watch.state = PollState.RUNNING
        self.views.clear_error(job_id)
        self.views.publish(self._merge(snapshot))
        self._arm(job_id, self.interval_seconds)

    async def _finish(self, watch: _Watch, snapshot: JobStatusSnapshot) -> None:
        job_id = watch.job_id
        watch.state = PollState.TERMINAL
        self.scheduler.cancel(timer_key(job_id))
        self.lifecycle.retire(job_id)
        self.views.clear_error(job_id)
        self.views.publish(self._merge(snapshot))
        log_with_fields(
            self.logger,
            logging.INFO,
            "job_terminal",
            job_id=job_id,
            status=snapshot.status.value,
            total_requests=snapshot.total_requests,
        )

        if job_id in self._escalated:
            return
        self._escalated.add(job_id)
        try:
            result = await self.client.get_result(job_id)
        except RemoteError as exc:
            error = EscalationError(job_id, exc)
            self.views.record_error(job_id, str(error))
            log_with_fields(self.logger, logging.WARNING, "escalation_failed", job_id=job_id, error=str(exc))
        else:
            if watch.alive:
                self.views.publish(self._merge(result))
        finally:
            if self._watches.get(job_id) is watch:
                del self._watches[job_id]

    def _record_poll_error(self, watch: _Watch, exc: RemoteError) -> None:
        job_id = watch.job_id
        self.views.record_error(job_id, str(exc))
        if isinstance(exc, ConnectivityError):
            self.health.degrade(str(exc))
        log_with_fields(self.logger, logging.WARNING, "poll_failed", job_id=job_id, error=str(exc))
        self._arm(job_id, self.interval_seconds)

    def _arm(self, job_id: str, delay: float) -> None:
        self.scheduler.arm(timer_key(job_id), delay, lambda: self.tick(job_id))

    def _merge(self, payload: JobStatusSnapshot | JobResult) -> ViewModel:
        return merge(
            payload,
            assumed_window_seconds=self.assumed_window_seconds,
            default_rate=self.default_request_rate,
        )
