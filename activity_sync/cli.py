"""Command line interface for activity_sync package."""
from __future__ import annotations

import argparse
import asyncio
import logging
import os
import sys
from pathlib import Path
from typing import Dict, Optional, Sequence

from rich.logging import RichHandler

from . import __version__
from .cli_progress import SyncProgressDisplay, render_configuration_summary


DEFAULT_POLL_INTERVAL = 5.0
DEFAULT_DAYS_BACK = 14
SOURCES: Dict[str, str] = {
    "remote-job": "remote_job",
    "direct-upload": "direct_upload",
}


class CLIError(RuntimeError):
    """Raised when CLI validation/execution fails."""


def _setup_logging(debug: bool, silent: bool, log_level: Optional[str]) -> str:
    """
    Configure logging.

    Default behavior is silent unless --debug or --log-level is provided.
    Returns a string describing effective mode.
    """
    root_logger = logging.getLogger()
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)

    logging.disable(logging.NOTSET)

    env_level = os.getenv("LOG_LEVEL")
    if silent or (not debug and not log_level and not env_level):
        logging.disable(logging.CRITICAL)
        root_logger.setLevel(logging.CRITICAL + 1)
        return "silent"

    if debug:
        level = logging.DEBUG
    else:
        level = getattr(logging, (log_level or env_level or "INFO").upper(), logging.INFO)

    handler = RichHandler(
        rich_tracebacks=True,
        markup=False,
        show_time=False,
        show_path=False,
    )
    handler.setFormatter(logging.Formatter("%(message)s"))
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    return logging.getLevelName(level)


def _strip_optional_quotes(value: str) -> str:
    if len(value) >= 2 and value[0] == value[-1] and value[0] in {"'", '"'}:
        return value[1:-1]
    return value


def _load_env_file(path: Path, override: bool = False) -> None:
    if not path.exists():
        raise CLIError(f"env file not found: {path}")
    if not path.is_file():
        raise CLIError(f"env path is not a file: {path}")

    try:
        content = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise CLIError(f"could not read env file {path}: {exc}") from exc

    for raw_line in content.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue
        if line.startswith("export "):
            line = line[len("export ") :].strip()
        if "=" not in line:
            continue

        key, value = line.split("=", 1)
        key = key.strip()
        if not key:
            continue

        value = _strip_optional_quotes(value.strip())
        if override or key not in os.environ:
            os.environ[key] = value


def _resolve_default_env_file() -> Optional[Path]:
    default_env = Path(".env")
    return default_env if default_env.exists() and default_env.is_file() else None


def _env_number(name: str, default, cast=float):
    raw = os.getenv(name)
    if raw is None or raw.strip() == "":
        return default
    try:
        return cast(raw)
    except ValueError as exc:
        raise CLIError(f"{name} must be a number, got {raw!r}") from exc


def _build_config(days_back: Optional[int], poll_interval: Optional[float]):
    from .models import SyncConfig

    try:
        return SyncConfig(
            days_back=days_back if days_back is not None else _env_number("ACTIVITY_SYNC_DAYS_BACK", DEFAULT_DAYS_BACK, int),
            poll_interval=(
                poll_interval
                if poll_interval is not None
                else _env_number("ACTIVITY_SYNC_POLL_INTERVAL", DEFAULT_POLL_INTERVAL)
            ),
        )
    except ValueError as exc:
        raise CLIError(str(exc)) from exc


def _resolve_cache_dir() -> Optional[Path]:
    raw = os.getenv("ACTIVITY_SYNC_CACHE_DIR")
    return Path(raw).expanduser() if raw else None


def _exit_code(snapshot) -> int:
    from .models import SessionState

    if snapshot.state == SessionState.COMPLETED:
        return 0
    if snapshot.state == SessionState.CANCELLED:
        return 130
    return 1


async def _run_sync(
    source_key: str,
    api_url: str,
    config,
    records_dir: Optional[Path],
    force: bool,
) -> int:
    from .models import DataSource
    from .orchestrator import SyncOrchestrator
    from .services import (
        HTTPAPIClient,
        HTTPItemUploadClient,
        HTTPJobStatusClient,
        JsonRecordSource,
        UploadTracker,
        WorkoutCache,
    )

    data_source = DataSource(SOURCES[source_key])
    if data_source == DataSource.DIRECT_UPLOAD and records_dir is None:
        raise CLIError("--records-dir is required for direct-upload")

    cache_dir = _resolve_cache_dir()
    display = SyncProgressDisplay()

    async with HTTPAPIClient(api_url) as api:
        tracker = None
        record_source = None
        if data_source == DataSource.DIRECT_UPLOAD:
            tracker = UploadTracker(cache_dir)
            await tracker.load()
            record_source = JsonRecordSource(records_dir)

        async with SyncOrchestrator(
            job_client=HTTPJobStatusClient(api),
            upload_client=HTTPItemUploadClient(api),
            reconciler=WorkoutCache(api, cache_dir),
            record_source=record_source,
            config=config,
            upload_tracker=tracker,
        ) as orchestrator:
            orchestrator.on_update(display.on_update)
            await orchestrator.start(data_source, force=force)
            try:
                snapshot = await orchestrator.wait()
            except asyncio.CancelledError:
                await orchestrator.cancel()
                snapshot = orchestrator.snapshot
            display.on_finish(snapshot)
            return _exit_code(snapshot)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="activity-sync",
        description="Import workout history into the backend.",
    )
    parser.add_argument(
        "source",
        nargs="?",
        choices=sorted(SOURCES),
        help="remote-job: server-side import job; direct-upload: upload local records",
    )
    parser.add_argument(
        "-d",
        "--days-back",
        type=int,
        default=None,
        help=f"Days of history for the remote job (default from ACTIVITY_SYNC_DAYS_BACK or {DEFAULT_DAYS_BACK})",
    )
    parser.add_argument(
        "-r",
        "--records-dir",
        type=Path,
        default=None,
        help="Folder of exported workout JSON files (direct-upload)",
    )
    parser.add_argument(
        "-i",
        "--poll-interval",
        type=float,
        default=None,
        help=f"Seconds between status polls (default {DEFAULT_POLL_INTERVAL:g})",
    )
    parser.add_argument(
        "-f",
        "--force",
        action="store_true",
        help="Upload records even if they were uploaded before",
    )
    parser.add_argument(
        "--api-url",
        default=None,
        help="Backend URL (default from ACTIVITY_SYNC_API_URL)",
    )
    parser.add_argument(
        "--env-file",
        type=Path,
        default=None,
        help="Load environment variables from this .env file",
    )
    parser.add_argument("--debug", action="store_true", help="Enable debug logs")
    parser.add_argument("--silent", action="store_true", help="Only print errors")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Explicit log level (DEBUG/INFO/WARNING/ERROR)",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"activity-sync {__version__}",
    )
    return parser


def run_cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    used_env_file = args.env_file or _resolve_default_env_file()
    if used_env_file is not None:
        try:
            _load_env_file(Path(used_env_file))
        except CLIError as exc:
            print(f"ERROR: {exc}", file=sys.stderr)
            return 1

    effective_log_mode = _setup_logging(
        debug=args.debug,
        silent=args.silent,
        log_level=args.log_level,
    )

    if args.source is None:
        parser.print_help()
        return 0

    api_url = args.api_url or os.getenv("ACTIVITY_SYNC_API_URL")
    if not api_url:
        print("ERROR: ACTIVITY_SYNC_API_URL environment variable is not set", file=sys.stderr)
        return 1

    records_dir = args.records_dir.expanduser() if args.records_dir else None

    try:
        config = _build_config(args.days_back, args.poll_interval)
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    render_configuration_summary(
        {
            "Source": args.source,
            "API": api_url,
            "Days Back": config.days_back if args.source == "remote-job" else config.upload_window_days,
            "Poll Interval": f"{config.poll_interval:g}s",
            "Records Dir": str(records_dir) if records_dir else "-",
            "Force": "yes" if args.force else "no",
            "Env File": str(used_env_file) if used_env_file else "-",
            "Logging": effective_log_mode,
        }
    )

    try:
        return asyncio.run(
            _run_sync(
                source_key=args.source,
                api_url=api_url,
                config=config,
                records_dir=records_dir,
                force=args.force,
            )
        )
    except CLIError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("Cancelled.", file=sys.stderr)
        return 130


def main() -> None:
    raise SystemExit(run_cli())


if __name__ == "__main__":
    main()
