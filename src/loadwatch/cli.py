from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from .aggregator import ViewModel
from .app_logging import LOGGER_NAME, log_with_fields, setup_logger
from .config import AppConfig, ensure_local_paths, load_config
from .console import Console
from .errors import LoadWatchError, ValidationError
from .models import HttpMethod, JobRequest, RequestPattern
from .remote import LoadTesterClient
from .utils import export_path, short_id


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="loadwatch", description="Load test monitoring console")
    parser.add_argument("--config", required=True, help="Path to loadwatch YAML config")
    parser.add_argument("--verbose", action="store_true", help="Log debug events to the terminal")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("health", help="Probe the load tester service")
    subparsers.add_parser("list", help="List known load tests")

    watch_parser = subparsers.add_parser("watch", help="Follow running load tests")
    watch_parser.add_argument(
        "--once",
        action="store_true",
        help="Probe, refresh and poll every running test once, then exit",
    )

    start = subparsers.add_parser("start", help="Start a load test")
    start.add_argument("--endpoint", required=True, help="Target URL")
    start.add_argument("--key", required=True, help="API key sent with every request")
    start.add_argument("--rate", type=int, default=50, help="Requests per second (1-10000)")
    start.add_argument("--duration", type=int, default=30, help="Duration in seconds (1-3600)")
    start.add_argument("--concurrency", type=int, default=5, help="Concurrent clients (1-500)")
    start.add_argument(
        "--pattern",
        default=RequestPattern.CONSTANT_RATE.value,
        choices=[item.value for item in RequestPattern],
    )
    start.add_argument("--method", default=HttpMethod.GET.value, choices=[item.value for item in HttpMethod])

    stop = subparsers.add_parser("stop", help="Stop a running load test")
    stop.add_argument("--job-id", required=True, help="Test id to stop")

    export = subparsers.add_parser("export", help="Write the full result of a test as JSON")
    export.add_argument("--job-id", required=True, help="Test id to export")
    export.add_argument("--output", help="Target file (defaults to the exports directory)")
    return parser


def _open_console(config: AppConfig, *, verbose: bool = False) -> Console:
    ensure_local_paths(config)
    logger = setup_logger(config.paths.log, verbose=verbose)
    client = LoadTesterClient(config.service)
    return Console(config=config, client=client, logger=logger)


def format_view(view: ViewModel) -> str:
    return (
        f"{short_id(view.job_id)} {view.status.value:9} "
        f"total={view.total_requests} "
        f"ok={view.success_percent:.1f}% limited={view.rate_limited_percent:.1f}% "
        f"err={view.error_percent:.1f}% "
        f"avg={view.average_latency_ms:.0f}ms({view.average_latency_severity.value}) "
        f"p95={view.p95_latency_ms:.0f}ms({view.p95_latency_severity.value}) "
        f"rps={view.requests_per_second:.1f} ({view.throughput_achievement_percent:.1f}% of target) "
        f"progress={view.progress_percent:.0f}%"
    )


async def cmd_health(config: AppConfig, *, verbose: bool = False) -> int:
    console = _open_console(config, verbose=verbose)
    try:
        state = await console.health.probe()
        if state.healthy:
            print("load tester service: UP")
            return 0
        print(f"load tester service: DOWN ({state.reason})")
        return 1
    finally:
        await console.close()


async def cmd_list(config: AppConfig, *, verbose: bool = False) -> int:
    console = _open_console(config, verbose=verbose)
    try:
        state = await console.health.probe()
        if not state.healthy:
            print(f"load tester service is offline: {state.reason}", file=sys.stderr)
            return 1
        await console.refresh()
        stats = console.registry.stats()
        print(
            f"Tests: total={stats.total} running={stats.running} "
            f"completed={stats.completed} failed={stats.failed} stopped={stats.stopped}"
        )
        active, history = console.registry.split()
        for title, jobs in (("Running", active), ("History", history)):
            print(f"\n{title}:")
            if not jobs:
                print("  (none)")
            for job in jobs:
                print(
                    f"  {job.job_id}  {job.status.value:9}  {job.configured_rate:>5} req/s  "
                    f"{job.target_endpoint}  started={job.start_time or '-'}"
                )
        return 0
    finally:
        await console.close()


async def cmd_start(config: AppConfig, args: argparse.Namespace) -> int:
    request = JobRequest(
        target_endpoint=args.endpoint,
        target_key=args.key,
        request_rate=args.rate,
        duration_seconds=args.duration,
        concurrency_level=args.concurrency,
        pattern=args.pattern,
        method=args.method,
    )
    try:
        request.validate()
    except ValidationError as exc:
        for name, message in exc.errors.items():
            print(f"{name}: {message}", file=sys.stderr)
        return 2

    console = _open_console(config, verbose=args.verbose)
    try:
        await console.health.probe()
        response = await console.create_job(request)
        print(f"started {response.job_id} ({response.status.value}) {response.message}".rstrip())
        return 0
    finally:
        await console.close()


async def cmd_stop(config: AppConfig, job_id: str, *, verbose: bool = False) -> int:
    console = _open_console(config, verbose=verbose)
    try:
        await console.stop_job(job_id)
        print(f"stop requested for {job_id}")
        return 0
    finally:
        await console.close()


async def cmd_export(config: AppConfig, job_id: str, output: str | None, *, verbose: bool = False) -> int:
    console = _open_console(config, verbose=verbose)
    try:
        blob = await console.export_job(job_id)
    finally:
        await console.close()
    target = Path(output) if output else export_path(config.paths.exports, job_id)
    target.parent.mkdir(parents=True, exist_ok=True)
    target.write_text(blob + "\n", encoding="utf-8")
    print(f"exported {job_id} -> {target}")
    return 0


async def cmd_watch(config: AppConfig, *, once: bool = False, verbose: bool = False) -> int:
    console = _open_console(config, verbose=verbose)
    followed: set[str] = set()

    def on_view(view: ViewModel | None) -> None:
        if view is not None:
            print(format_view(view), flush=True)

    def on_active(active: frozenset[str]) -> None:
        for job_id in sorted(active - followed):
            followed.add(job_id)
            console.subscribe_view(job_id, on_view)

    def on_banner(message: str | None) -> None:
        if message:
            print(f"! {message}", file=sys.stderr, flush=True)

    console.active.subscribe(on_active, replay=False)
    console.banner.subscribe(on_banner, replay=False)
    try:
        if once:
            await console.run_once()
            if not console.lifecycle.snapshot() and not followed:
                print("no running tests")
            return 0
        await console.run_forever()
        return 0
    finally:
        await console.close()


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    config = load_config(args.config)

    try:
        if args.command == "health":
            return asyncio.run(cmd_health(config, verbose=args.verbose))
        if args.command == "list":
            return asyncio.run(cmd_list(config, verbose=args.verbose))
        if args.command == "watch":
            return asyncio.run(cmd_watch(config, once=bool(args.once), verbose=args.verbose))
        if args.command == "start":
            return asyncio.run(cmd_start(config, args))
        if args.command == "stop":
            return asyncio.run(cmd_stop(config, args.job_id, verbose=args.verbose))
        if args.command == "export":
            return asyncio.run(cmd_export(config, args.job_id, args.output, verbose=args.verbose))
    except KeyboardInterrupt:
        log_with_fields(logging.getLogger(LOGGER_NAME), logging.INFO, "shutdown", reason="keyboard_interrupt")
        return 0
    except LoadWatchError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    parser.error(f"Unknown command: {args.command}")
    return 2


if __name__ == "__main__":
    raise SystemExit(main())
