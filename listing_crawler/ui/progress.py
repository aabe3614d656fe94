"""Terminal progress helpers with Rich-based rendering."""

from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console
from rich.errors import LiveError
from rich.progress import (
    BarColumn,
    Progress,
    ProgressColumn,
    SpinnerColumn,
    Task,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.text import Text


@dataclass
class ProgressState:
    total: int
    pages: int = 0
    dropped: int = 0
    records: int = 0
    current_url: str | None = None


class RateColumn(ProgressColumn):
    """Pages processed per minute."""

    def render(self, task: Task) -> Text:
        speed = task.finished_speed or task.speed
        if speed is None:
            return Text("", style="progress.percentage")
        return Text(f"{speed * 60:.1f} page/min", style="progress.percentage")


class ProgressReporter:
    """Render crawl progress and maintain counters for CLI feedback."""

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self._console = console
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self.state: ProgressState | None = None
        self._label = "crawl"

    def set_label(self, label: str) -> None:
        self._label = label
        if self._progress is not None and self._task_id is not None:
            self._progress.update(self._task_id, keyword=label)

    def start(self, total: int) -> None:
        self.state = ProgressState(total=total)
        if not self.enabled:
            return
        if self._console is None:
            self._console = Console()
        if not self._console.is_terminal:
            # Non-interactive output falls back to silent mode
            self.enabled = False
            return
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]{task.fields[keyword]:<18}", justify="left"),
            BarColumn(bar_width=None, complete_style="green", finished_style="green"),
            TaskProgressColumn(show_speed=False),
            TimeElapsedColumn(),
            RateColumn(),
            TextColumn("[green]✓{task.fields[records]:>4}", justify="right"),
            TextColumn("[red]✗{task.fields[dropped]:>3}", justify="right"),
            TextColumn("[dim]{task.fields[current_url]}", justify="left"),
            refresh_per_second=8,
            expand=True,
            transient=True,
            console=self._console,
        )
        try:
            self._progress.__enter__()
        except LiveError:
            # Another live display owns the console
            self.enabled = False
            self._progress = None
            return
        self._task_id = self._progress.add_task(
            "crawl",
            total=total,
            keyword=self._label,
            records=0,
            dropped=0,
            current_url="waiting…",
        )

    def advance(self, records: int = 0, dropped: bool = False, current_url: str | None = None) -> None:
        if self.state is None:
            return
        self.state.pages += 1
        self.state.records += records
        if dropped:
            self.state.dropped += 1
        self.state.current_url = current_url
        if self._progress is None or self._task_id is None:
            return
        self._progress.update(
            self._task_id,
            advance=1,
            records=self.state.records,
            dropped=self.state.dropped,
            current_url=_shorten(current_url or "", 60),
        )

    def skip(self, count: int) -> None:
        """Account for pages abandoned without fetching."""

        if self.state is None or count <= 0:
            return
        self.state.pages += count
        if self._progress is not None and self._task_id is not None:
            self._progress.update(self._task_id, advance=count)

    def close(self) -> None:
        if self._progress is not None:
            self._progress.__exit__(None, None, None)
            self._progress = None
            self._task_id = None


def _shorten(text: str, width: int) -> str:
    if len(text) <= width:
        return text
    return text[: width - 1] + "…"


__all__ = ["ProgressReporter", "ProgressState"]
