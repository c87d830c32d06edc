from __future__ import annotations

from collections.abc import Mapping


class LoadWatchError(RuntimeError):
    pass


class RemoteError(LoadWatchError):
    """Any failure while talking to the load tester service."""


class ConnectivityError(RemoteError):
    """The service could not be reached (connect failure, timeout, reset)."""


class ServiceError(RemoteError):
    """The service answered, but with an error status or an unreadable body."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ValidationError(LoadWatchError):
    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors = dict(errors)
        details = "; ".join(f"{name}: {text}" for name, text in self.errors.items())
        super().__init__(f"invalid job request: {details}")


class EscalationError(LoadWatchError):
    def __init__(self, job_id: str, cause: RemoteError) -> None:
        super().__init__(f"full result for {job_id} unavailable: {cause}")
        self.job_id = job_id
        self.cause = cause


class StopError(LoadWatchError):
    def __init__(self, job_id: str, cause: RemoteError) -> None:
        super().__init__(f"stop request for {job_id} failed: {cause}")
        self.job_id = job_id
        self.cause = cause
