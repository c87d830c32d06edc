from __future__ import annotations

import re
from datetime import UTC, datetime
from pathlib import Path

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9._-]+")


def epoch_millis() -> int:
    return int(datetime.now(UTC).timestamp() * 1000)


def short_id(job_id: str, length: int = 12) -> str:
    if len(job_id) <= length:
        return job_id
    return f"{job_id[:length]}..."


def export_path(exports_dir: Path, job_id: str, millis: int | None = None) -> Path:
    safe_id = _UNSAFE_CHARS.sub("_", job_id)
    stamp = epoch_millis() if millis is None else millis
    return exports_dir / f"load-test-{safe_id}-{stamp}.json"
