"""Rich live engine board for research workflows."""

from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any

from rich.console import Console, Group
from rich.live import Live
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from vantage.engines import initial_engine_map
from vantage.types import EngineId, EngineRun, EngineStatus


@dataclass
class EngineTiming:
    started_at: float | None = None
    completed_at: float | None = None

    @property
    def duration_str(self) -> str:
        if self.started_at is None:
            return ""
        d = (self.completed_at or time.time()) - self.started_at
        if d < 60:
            return f"{d:.0f}s"
        return f"{int(d // 60)}m {int(d % 60)}s"


class EngineProgress:
    """Live table of engine slots, fed by workflow transitions."""

    STATUS_ICONS = {
        EngineStatus.IDLE: "[dim]...[/dim]",
        EngineStatus.LOADING: "[yellow]>>>[/yellow]",
        EngineStatus.SUCCESS: "[green]OK[/green]",
        EngineStatus.ERROR: "[red]ERR[/red]",
    }

    def __init__(self, console: Console, subject: str) -> None:
        """Initialize progress display.

        Args:
            console: Rich console to write to.
            subject: Subject being analyzed.
        """
        self.console = console
        self.subject = subject
        self.started_at = time.time()
        self.engines: dict[EngineId, EngineRun] = initial_engine_map()
        self.timings: dict[EngineId, EngineTiming] = {eid: EngineTiming() for eid in self.engines}
        self.is_complete = False
        self.error_message: str | None = None
        self._live: Live | None = None

    def _visible(self) -> list[EngineRun]:
        # Idle engines are only noise until something has happened
        return [run for run in self.engines.values() if run.status is not EngineStatus.IDLE]

    def _build_display(self) -> Panel:
        table = Table(show_header=False, box=None, padding=(0, 1))
        table.add_column("Status", width=4)
        table.add_column("Engine", width=42)
        table.add_column("Detail", style="dim")
        table.add_column("Tokens", width=8, justify="right", style="dim")
        table.add_column("Time", width=8, justify="right", style="dim")

        for run in self._visible():
            if run.status is EngineStatus.LOADING:
                name_style, detail = "bold yellow", run.role
            elif run.status is EngineStatus.SUCCESS:
                name_style, detail = "green", (run.result or "").splitlines()[0] if run.result else ""
            else:
                name_style, detail = "red", run.error or ""

            table.add_row(
                self.STATUS_ICONS[run.status],
                Text(run.name, style=name_style),
                detail[:45] + "..." if len(detail) > 45 else detail,
                str(run.total_tokens) if run.total_tokens else "",
                self.timings[run.id].duration_str,
            )

        total_tokens = sum(run.total_tokens for run in self.engines.values())
        footer = Text()
        footer.append("Tokens: ", style="dim")
        footer.append(f"{total_tokens:,}", style="green")
        footer.append("  |  ", style="dim")
        footer.append("Elapsed: ", style="dim")
        footer.append(f"{time.time() - self.started_at:.0f}s", style="cyan")

        if self.is_complete:
            title = f"[bold green]{self.subject} Analysis Complete[/bold green]"
            border_style = "green"
        elif self.error_message:
            title = f"[bold red]{self.subject} Analysis Failed[/bold red]"
            border_style = "red"
        else:
            title = f"[bold cyan]Analyzing {self.subject}...[/bold cyan]"
            border_style = "cyan"

        return Panel(Group(table, Text(""), footer), title=title, border_style=border_style)

    def update(self, engine_id: EngineId, run: EngineRun) -> None:
        """Workflow listener: record one engine transition."""
        self.engines[engine_id] = run
        timing = self.timings.setdefault(engine_id, EngineTiming())
        if run.status is EngineStatus.LOADING:
            timing.started_at = time.time()
            timing.completed_at = None
        elif run.status in (EngineStatus.SUCCESS, EngineStatus.ERROR):
            timing.completed_at = time.time()

        if self._live:
            self._live.update(self._build_display())

    def mark_complete(self) -> None:
        self.is_complete = True
        if self._live:
            self._live.update(self._build_display())

    def mark_error(self, message: str) -> None:
        self.error_message = message
        if self._live:
            self._live.update(self._build_display())

    def __enter__(self) -> EngineProgress:
        self._live = Live(
            self._build_display(),
            console=self.console,
            refresh_per_second=4,
            transient=False,
            auto_refresh=True,
            get_renderable=self._build_display,
        )
        self._live.__enter__()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        if self._live:
            self._live.update(self._build_display())
            self._live.__exit__(exc_type, exc_val, exc_tb)
            self._live = None
