"""Console rendering and progress helpers for activity-sync CLI."""
from __future__ import annotations

import time
from typing import Any, Dict, Optional

from rich.console import Console
from rich.live import Live
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .models import SessionState, SyncSnapshot, SyncOutcome

console = Console()


def _echo(message: str) -> None:
    console.print(message)


def render_configuration_summary(config: Dict[str, Any]) -> None:
    """Render startup configuration summary."""
    table = Table.grid(padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column(style="white")

    for key, value in config.items():
        rendered = "-" if value is None else str(value)
        table.add_row(key, rendered)

    panel = Panel(
        table,
        title="[bold green]activity-sync[/bold green]",
        subtitle="[dim]history import[/dim]",
        border_style="blue",
    )
    console.print(panel)


class SyncProgressDisplay:
    """Snapshot-driven console display for a sync session."""

    def __init__(self):
        self._last_step: Optional[str] = None
        self._last_state: Optional[SessionState] = None
        self._task_id: Optional[TaskID] = None
        self._progress = Progress(
            SpinnerColumn(),
            TextColumn("[bold cyan]{task.fields[label]}", justify="left"),
            BarColumn(bar_width=36),
            TextColumn("[progress.percentage]{task.percentage:>3.0f}%"),
            TextColumn("{task.fields[counts]}"),
            TimeElapsedColumn(),
            expand=False,
            console=console,
        )
        self._live: Optional[Live] = None

    def _emit_timeline(self, status: str, message: str) -> None:
        stamp = time.strftime("%H:%M:%S")
        palette = {
            "DONE": "green",
            "FAIL": "red",
            "STEP": "cyan",
            "INFO": "blue",
        }
        color = palette.get(status, "white")
        _echo(f"[dim]{stamp}[/dim] [{color}]{status:<4}[/{color}] {message}")

    def _start_live(self) -> None:
        if self._live is not None:
            return
        self._live = Live(
            self._progress,
            console=console,
            refresh_per_second=8,
            vertical_overflow="visible",
        )
        self._live.start()
        self._task_id = self._progress.add_task("sync", label="Sync", total=100, counts="")

    def _stop_live(self) -> None:
        if self._live is not None:
            self._live.stop()
            self._live = None

    def on_update(self, snapshot: SyncSnapshot) -> None:
        if snapshot.state != self._last_state:
            self._last_state = snapshot.state
            if snapshot.state in (SessionState.POLLING, SessionState.UPLOADING):
                self._start_live()

        if snapshot.current_step and snapshot.current_step != self._last_step:
            self._last_step = snapshot.current_step
            if self._live is None:
                self._emit_timeline("STEP", snapshot.current_step)

        if self._task_id is not None:
            counts = ""
            if snapshot.total_count:
                counts = f"{snapshot.processed_count}/{snapshot.total_count}"
            label = (snapshot.current_item or snapshot.current_step or "Sync")[:48]
            self._progress.update(
                self._task_id,
                completed=snapshot.progress_percentage,
                label=label,
                counts=counts,
            )

        if snapshot.state.is_terminal:
            self._stop_live()

    def on_finish(self, snapshot: SyncSnapshot) -> None:
        self._stop_live()
        if snapshot.state == SessionState.CANCELLED:
            return

        result = snapshot.sync_result
        if snapshot.is_completed and result is not None:
            self._emit_timeline(
                "DONE",
                f"processed={result.processed_count} errors={result.error_count} "
                f"total={result.total_files}",
            )
            return

        if snapshot.outcome == SyncOutcome.NO_RECORDS:
            self._emit_timeline("INFO", snapshot.sync_error or "No records to sync")
            return

        self._emit_timeline("FAIL", snapshot.sync_error or "Sync failed")
        if result is not None and result.total_files:
            _echo(
                f"  processed={result.processed_count} errors={result.error_count} "
                f"total={result.total_files}"
            )
