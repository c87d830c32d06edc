from __future__ import annotations

from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .errors import ValidationError


class JobStatus(str, Enum):
    RUNNING = "RUNNING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"
    STOPPED = "STOPPED"

    @property
    def is_terminal(self) -> bool:
        return self is not JobStatus.RUNNING

    @classmethod
    def parse(cls, value: object) -> JobStatus:
        return cls(str(value).strip().upper())


class RequestPattern(str, Enum):
    CONSTANT_RATE = "CONSTANT_RATE"
    BURST = "BURST"
    RAMP_UP = "RAMP_UP"


class HttpMethod(str, Enum):
    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    DELETE = "DELETE"


@dataclass(frozen=True, slots=True)
class HealthState:
    healthy: bool = False
    reason: str | None = None


def _opt_int(value: object) -> int | None:
    if value is None:
        return None
    return int(value)  # type: ignore[arg-type]


def _opt_float(value: object) -> float | None:
    if value is None:
        return None
    return float(value)  # type: ignore[arg-type]


def _opt_str(value: object) -> str | None:
    if value is None:
        return None
    return str(value)


def _histogram(value: object) -> dict[int, int] | None:
    if value is None:
        return None
    if not isinstance(value, Mapping):
        raise ValueError("statusCodeDistribution must be an object")
    return {int(code): int(count) for code, count in value.items()}


# (attribute, wire key, parser) in wire order
_SNAPSHOT_FIELDS: tuple[tuple[str, str, Callable[[object], Any]], ...] = (
    ("total_requests", "totalRequests", _opt_int),
    ("successful_requests", "successfulRequests", _opt_int),
    ("rate_limited_requests", "rateLimitedRequests", _opt_int),
    ("error_requests", "errorRequests", _opt_int),
    ("average_latency_ms", "averageLatencyMs", _opt_float),
    ("p95_latency_ms", "p95LatencyMs", _opt_float),
    ("min_latency_ms", "minLatencyMs", _opt_float),
    ("max_latency_ms", "maxLatencyMs", _opt_float),
    ("requests_per_second", "requestsPerSecond", _opt_float),
    ("success_rate", "successRate", _opt_float),
    ("rate_limit_rate", "rateLimitRate", _opt_float),
    ("target_endpoint", "targetEndpoint", _opt_str),
    ("configured_request_rate", "configuredRequestRate", _opt_int),
    ("concurrency_level", "concurrencyLevel", _opt_int),
)

_RESULT_FIELDS: tuple[tuple[str, str, Callable[[object], Any]], ...] = (
    ("error_rate", "errorRate", _opt_float),
    ("test_duration_seconds", "testDurationSeconds", _opt_int),
    ("target_key", "targetKey", _opt_str),
    ("request_pattern", "requestPattern", _opt_str),
    ("http_method", "httpMethod", _opt_str),
    ("status_code_distribution", "statusCodeDistribution", _histogram),
    ("start_time", "startTime", _opt_str),
    ("end_time", "endTime", _opt_str),
)


@dataclass(slots=True)
class JobSummary:
    job_id: str
    status: JobStatus
    target_endpoint: str
    configured_rate: int
    start_time: str | None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> JobSummary:
        return cls(
            job_id=str(data["testId"]),
            status=JobStatus.parse(data["status"]),
            target_endpoint=str(data.get("targetEndpoint") or ""),
            configured_rate=int(data.get("requestRate") or 0),
            start_time=_opt_str(data.get("startTime")),
        )


@dataclass(frozen=True, slots=True)
class JobStatusSnapshot:
    """Cheap, frequently polled view of a job. Numbers stay None until the service has data."""

    job_id: str
    status: JobStatus
    total_requests: int | None = None
    successful_requests: int | None = None
    rate_limited_requests: int | None = None
    error_requests: int | None = None
    average_latency_ms: float | None = None
    p95_latency_ms: float | None = None
    min_latency_ms: float | None = None
    max_latency_ms: float | None = None
    requests_per_second: float | None = None
    success_rate: float | None = None
    rate_limit_rate: float | None = None
    target_endpoint: str | None = None
    configured_request_rate: int | None = None
    concurrency_level: int | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> JobStatusSnapshot:
        values = {name: parse(data.get(key)) for name, key, parse in _SNAPSHOT_FIELDS}
        return cls(job_id=str(data["testId"]), status=JobStatus.parse(data["status"]), **values)

    def to_dict(self) -> dict[str, Any]:
        output: dict[str, Any] = {"testId": self.job_id, "status": self.status.value}
        for name, key, _ in _SNAPSHOT_FIELDS:
            output[key] = getattr(self, name)
        return output


@dataclass(frozen=True, slots=True)
class JobResult(JobStatusSnapshot):
    """Full result; adds the echoed configuration and the status code histogram."""

    error_rate: float | None = None
    test_duration_seconds: int | None = None
    target_key: str | None = None
    request_pattern: str | None = None
    http_method: str | None = None
    status_code_distribution: dict[int, int] | None = None
    start_time: str | None = None
    end_time: str | None = None

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> JobResult:
        values = {name: parse(data.get(key)) for name, key, parse in _SNAPSHOT_FIELDS + _RESULT_FIELDS}
        return cls(job_id=str(data["testId"]), status=JobStatus.parse(data["status"]), **values)

    def to_dict(self) -> dict[str, Any]:
        output = JobStatusSnapshot.to_dict(self)
        for name, key, _ in _RESULT_FIELDS:
            value = getattr(self, name)
            if name == "status_code_distribution" and value is not None:
                value = {str(code): count for code, count in sorted(value.items())}
            output[key] = value
        return output


REQUEST_RATE_RANGE = (1, 10000)
DURATION_RANGE = (1, 3600)
CONCURRENCY_RANGE = (1, 500)


def _check_range(errors: dict[str, str], name: str, value: int, bounds: tuple[int, int]) -> None:
    low, high = bounds
    if isinstance(value, bool) or not isinstance(value, int):
        errors[name] = f"must be an integer in [{low}, {high}]"
    elif not low <= value <= high:
        errors[name] = f"must be within [{low}, {high}], got {value}"


@dataclass(slots=True)
class JobRequest:
    target_endpoint: str
    target_key: str
    request_rate: int = 50
    duration_seconds: int = 30
    concurrency_level: int = 5
    pattern: RequestPattern | str = RequestPattern.CONSTANT_RATE
    method: HttpMethod | str = HttpMethod.GET

    def validate(self) -> None:
        errors: dict[str, str] = {}
        if not self.target_key or not self.target_key.strip():
            errors["targetKey"] = "API key is required"
        endpoint = (self.target_endpoint or "").strip()
        if not endpoint:
            errors["targetEndpoint"] = "target endpoint is required"
        elif not endpoint.startswith(("http://", "https://")):
            errors["targetEndpoint"] = "must start with http:// or https://"
        _check_range(errors, "requestRate", self.request_rate, REQUEST_RATE_RANGE)
        _check_range(errors, "durationSeconds", self.duration_seconds, DURATION_RANGE)
        _check_range(errors, "concurrencyLevel", self.concurrency_level, CONCURRENCY_RANGE)
        try:
            self.pattern = RequestPattern(str(getattr(self.pattern, "value", self.pattern)).upper())
        except ValueError:
            allowed = ", ".join(item.value for item in RequestPattern)
            errors["requestPattern"] = f"must be one of {allowed}"
        try:
            self.method = HttpMethod(str(getattr(self.method, "value", self.method)).upper())
        except ValueError:
            allowed = ", ".join(item.value for item in HttpMethod)
            errors["httpMethod"] = f"must be one of {allowed}"
        if errors:
            raise ValidationError(errors)

    def to_dict(self) -> dict[str, Any]:
        return {
            "targetKey": self.target_key.strip(),
            "targetEndpoint": self.target_endpoint.strip(),
            "requestRate": self.request_rate,
            "durationSeconds": self.duration_seconds,
            "concurrencyLevel": self.concurrency_level,
            "requestPattern": RequestPattern(self.pattern).value,
            "httpMethod": HttpMethod(self.method).value,
        }


@dataclass(slots=True)
class StartJobResponse:
    job_id: str
    status: JobStatus
    message: str = ""
    extra: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> StartJobResponse:
        extra = {key: value for key, value in data.items() if key not in {"testId", "status", "message"}}
        return cls(
            job_id=str(data["testId"]),
            status=JobStatus.parse(data.get("status", JobStatus.RUNNING.value)),
            message=str(data.get("message") or ""),
            extra=extra,
        )
