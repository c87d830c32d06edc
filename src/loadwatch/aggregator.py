from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

from .models import JobResult, JobStatus, JobStatusSnapshot

DEFAULT_ASSUMED_WINDOW_SECONDS = 30
DEFAULT_REQUEST_RATE = 100

GOOD_LATENCY_MS = 100
WARN_LATENCY_MS = 500


class PayloadKind(str, Enum):
    STATUS = "status"
    RESULT = "result"


class LatencySeverity(str, Enum):
    GOOD = "good"
    WARN = "warn"
    BAD = "bad"


@dataclass(frozen=True, slots=True)
class ViewModel:
    job_id: str
    status: JobStatus
    kind: PayloadKind
    target_endpoint: str
    total_requests: int
    successful_requests: int
    rate_limited_requests: int
    error_requests: int
    average_latency_ms: float
    p95_latency_ms: float
    min_latency_ms: float
    max_latency_ms: float
    requests_per_second: float
    configured_request_rate: int
    concurrency_level: int
    progress_percent: float
    throughput_achievement_percent: float
    success_percent: float
    rate_limited_percent: float
    error_percent: float
    average_latency_severity: LatencySeverity
    p95_latency_severity: LatencySeverity
    target_key: str = ""
    request_pattern: str = ""
    http_method: str = ""
    duration_seconds: int = 0
    start_time: str = ""
    end_time: str = ""
    status_code_distribution: dict[int, int] = field(default_factory=dict)

    @property
    def is_terminal(self) -> bool:
        return self.status.is_terminal

    @property
    def is_result(self) -> bool:
        return self.kind is PayloadKind.RESULT


def latency_severity(value_ms: float) -> LatencySeverity:
    if value_ms < GOOD_LATENCY_MS:
        return LatencySeverity.GOOD
    if value_ms < WARN_LATENCY_MS:
        return LatencySeverity.WARN
    return LatencySeverity.BAD


def _percent(part: float, whole: float) -> float:
    if whole <= 0:
        return 0.0
    return part * 100 / whole


def progress_percent(
    status: JobStatus,
    total_requests: int,
    configured_rate: int,
    assumed_window_seconds: int = DEFAULT_ASSUMED_WINDOW_SECONDS,
    default_rate: int = DEFAULT_REQUEST_RATE,
) -> float:
    if status.is_terminal:
        return 100.0
    expected = (configured_rate or default_rate) * assumed_window_seconds
    return min(100.0, _percent(total_requests, expected))


def merge(
    payload: JobStatusSnapshot | JobResult,
    *,
    assumed_window_seconds: int = DEFAULT_ASSUMED_WINDOW_SECONDS,
    default_rate: int = DEFAULT_REQUEST_RATE,
) -> ViewModel:
    """Build the presentation record for one payload.

    Every field comes from the single payload given; absent numbers render as 0.
    """
    total = payload.total_requests or 0
    success = payload.successful_requests or 0
    limited = payload.rate_limited_requests or 0
    errors = payload.error_requests or 0
    average = payload.average_latency_ms or 0.0
    p95 = payload.p95_latency_ms or 0.0
    observed_rate = payload.requests_per_second or 0.0
    configured_rate = payload.configured_request_rate or 0

    echoes: dict[str, object] = {}
    if isinstance(payload, JobResult):
        echoes = {
            "target_key": payload.target_key or "",
            "request_pattern": payload.request_pattern or "",
            "http_method": payload.http_method or "",
            "duration_seconds": payload.test_duration_seconds or 0,
            "start_time": payload.start_time or "",
            "end_time": payload.end_time or "",
            "status_code_distribution": dict(sorted((payload.status_code_distribution or {}).items())),
        }

    return ViewModel(
        job_id=payload.job_id,
        status=payload.status,
        kind=PayloadKind.RESULT if isinstance(payload, JobResult) else PayloadKind.STATUS,
        target_endpoint=payload.target_endpoint or "",
        total_requests=total,
        successful_requests=success,
        rate_limited_requests=limited,
        error_requests=errors,
        average_latency_ms=average,
        p95_latency_ms=p95,
        min_latency_ms=payload.min_latency_ms or 0.0,
        max_latency_ms=payload.max_latency_ms or 0.0,
        requests_per_second=observed_rate,
        configured_request_rate=configured_rate,
        concurrency_level=payload.concurrency_level or 0,
        progress_percent=progress_percent(
            payload.status, total, configured_rate, assumed_window_seconds, default_rate
        ),
        throughput_achievement_percent=_percent(observed_rate, configured_rate),
        success_percent=_percent(success, total),
        rate_limited_percent=_percent(limited, total),
        error_percent=_percent(errors, total),
        average_latency_severity=latency_severity(average),
        p95_latency_severity=latency_severity(p95),
        **echoes,  # type: ignore[arg-type]
    )
