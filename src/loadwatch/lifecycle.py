from __future__ import annotations

from collections.abc import Iterable

from .streams import Observable


class LifecycleRegistry:
    """The ActiveSet: ids of jobs believed to be running.

    Writers are the registry fetcher (``replace`` on a full refresh) and the
    job status poller (``add``/``remove``/``retire``). Everything else reads
    ``snapshot`` or subscribes to ``stream``.

    A retired id has been observed in a terminal state and never re-enters the
    set, even when a list fetched before that observation still says RUNNING.
    """

    def __init__(self) -> None:
        self._active: set[str] = set()
        self._retired: set[str] = set()
        self.stream: Observable[frozenset[str]] = Observable(frozenset())

    def add(self, job_id: str) -> bool:
        if job_id in self._active or job_id in self._retired:
            return False
        self._active.add(job_id)
        self._emit()
        return True

    def remove(self, job_id: str) -> bool:
        if job_id not in self._active:
            return False
        self._active.discard(job_id)
        self._emit()
        return True

    def replace(self, job_ids: Iterable[str]) -> None:
        incoming = set(job_ids) - self._retired
        if incoming == self._active:
            return
        self._active = incoming
        self._emit()

    def retire(self, job_id: str) -> None:
        self._retired.add(job_id)
        self.remove(job_id)

    def contains(self, job_id: str) -> bool:
        return job_id in self._active

    def snapshot(self) -> frozenset[str]:
        return frozenset(self._active)

    def __len__(self) -> int:
        return len(self._active)

    def _emit(self) -> None:
        self.stream.publish(self.snapshot())
