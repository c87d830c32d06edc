from __future__ import annotations

from .aggregator import ViewModel
from .streams import Observable


class ViewBoard:
    """Latest ViewModel per job, replaced whole on every publish."""

    def __init__(self) -> None:
        self._streams: dict[str, Observable[ViewModel | None]] = {}
        self._errors: dict[str, str] = {}

    def stream(self, job_id: str) -> Observable[ViewModel | None]:
        if job_id not in self._streams:
            self._streams[job_id] = Observable(None)
        return self._streams[job_id]

    def get(self, job_id: str) -> ViewModel | None:
        stream = self._streams.get(job_id)
        return stream.value if stream is not None else None

    def publish(self, view: ViewModel) -> bool:
        """Replace the job's view. A terminal status is final, and a full
        result is never replaced by a status view."""
        stream = self.stream(view.job_id)
        current = stream.value
        if current is not None and current.is_terminal:
            if view.status is not current.status:
                return False
            if current.is_result and not view.is_result:
                return False
        stream.publish(view)
        return True

    def record_error(self, job_id: str, message: str) -> None:
        self._errors[job_id] = message

    def clear_error(self, job_id: str) -> None:
        self._errors.pop(job_id, None)

    def last_error(self, job_id: str) -> str | None:
        return self._errors.get(job_id)

    def job_ids(self) -> list[str]:
        return sorted(self._streams)
