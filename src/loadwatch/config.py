from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path

import yaml


@dataclass(slots=True)
class ServiceConfig:
    base_url: str
    timeout_seconds: float = 10.0


@dataclass(slots=True)
class IntervalsConfig:
    health_seconds: float = 5.0
    refresh_seconds: float = 10.0
    poll_seconds: float = 3.0


@dataclass(slots=True)
class ViewConfig:
    assumed_window_seconds: int = 30
    default_request_rate: int = 100


@dataclass(slots=True)
class PathsConfig:
    log: Path
    exports: Path


@dataclass(slots=True)
class AppConfig:
    service: ServiceConfig
    paths: PathsConfig
    intervals: IntervalsConfig = field(default_factory=IntervalsConfig)
    view: ViewConfig = field(default_factory=ViewConfig)


def _require(mapping: dict, key: str, section: str) -> object:
    if key not in mapping:
        raise ValueError(f"Missing `{section}.{key}` in config")
    return mapping[key]


def _section(raw: dict, key: str) -> dict:
    value = raw.get(key, {})
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ValueError(f"`{key}` must be a mapping")
    return value


def _positive(value: object, name: str) -> float:
    number = float(value)  # type: ignore[arg-type]
    if number <= 0:
        raise ValueError(f"`{name}` must be > 0")
    return number


def load_config(path: str | Path) -> AppConfig:
    config_path = Path(path).expanduser().resolve()
    raw = yaml.safe_load(config_path.read_text(encoding="utf-8")) or {}
    if not isinstance(raw, dict):
        raise ValueError("Config root must be a mapping")

    service_raw = _require(raw, "service", "root")
    if not isinstance(service_raw, dict):
        raise ValueError("`service` must be a mapping")
    intervals_raw = _section(raw, "intervals")
    view_raw = _section(raw, "view")
    paths_raw = _section(raw, "paths")

    base_url = str(_require(service_raw, "base_url", "service")).strip().rstrip("/")
    if not base_url.startswith(("http://", "https://")):
        raise ValueError("`service.base_url` must start with http:// or https://")
    service = ServiceConfig(
        base_url=base_url,
        timeout_seconds=_positive(service_raw.get("timeout_seconds", 10), "service.timeout_seconds"),
    )

    intervals = IntervalsConfig(
        health_seconds=_positive(intervals_raw.get("health_seconds", 5), "intervals.health_seconds"),
        refresh_seconds=_positive(intervals_raw.get("refresh_seconds", 10), "intervals.refresh_seconds"),
        poll_seconds=_positive(intervals_raw.get("poll_seconds", 3), "intervals.poll_seconds"),
    )

    view = ViewConfig(
        assumed_window_seconds=int(view_raw.get("assumed_window_seconds", 30)),
        default_request_rate=int(view_raw.get("default_request_rate", 100)),
    )
    if view.assumed_window_seconds < 1:
        raise ValueError("`view.assumed_window_seconds` must be >= 1")
    if view.default_request_rate < 1:
        raise ValueError("`view.default_request_rate` must be >= 1")

    def to_path(key: str, default: str) -> Path:
        output = Path(str(paths_raw.get(key, default))).expanduser()
        if not output.is_absolute():
            output = config_path.parent / output
        return output

    paths = PathsConfig(
        log=to_path("log", "loadwatch.log"),
        exports=to_path("exports", "exports"),
    )

    return AppConfig(service=service, paths=paths, intervals=intervals, view=view)


def ensure_local_paths(config: AppConfig) -> None:
    config.paths.log.parent.mkdir(parents=True, exist_ok=True)
    config.paths.exports.mkdir(parents=True, exist_ok=True)
