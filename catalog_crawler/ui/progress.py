"""Rich progress rendering for batch runs."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock
from typing import TYPE_CHECKING

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

if TYPE_CHECKING:
    from ..engine.batch import FetchRequest
    from ..engine.records import ExtractedRecord


@dataclass
class ProgressState:
    total: int
    success: int = 0
    failed: int = 0
    current_url: str | None = None

    @property
    def settled(self) -> int:
        return self.success + self.failed


class RateColumn(ProgressColumn):
    """Settled items per second, e.g. ``1.5 url/s``."""

    def render(self, task: Task) -> Text:
        speed = task.finished_speed or task.speed
        if speed is None:
            return Text("", style="progress.percentage")
        return Text(f"{speed:.1f} url/s", style="progress.percentage")


class ProgressReporter:
    """Render batch progress and keep success/failure counters.

    Counters are kept even when rendering is disabled or the console is not a
    terminal, so callers can always read :meth:`summary`.
    """

    def __init__(self, enabled: bool = True, console: Console | None = None, label: str = "batch") -> None:
        self.enabled = enabled
        self.state: ProgressState | None = None
        self._console = console
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self._label = label
        self._lock = Lock()

    def start(self, total: int) -> None:
        self.state = ProgressState(total=total)
        if not self.enabled:
            return
        console = self._console or Console()
        if not console.is_terminal:
            self.enabled = False
            return
        progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]{task.fields[label]:<12}", justify="left"),
            BarColumn(bar_width=None, complete_style="green", finished_style="green"),
            TaskProgressColumn(show_speed=False),
            TimeElapsedColumn(),
            RateColumn(),
            TextColumn("[green]✓{task.fields[success]:>3}", justify="right"),
            TextColumn("[red]✗{task.fields[failed]:>3}", justify="right"),
            TextColumn("[dim]{task.fields[current_url]}", justify="left"),
            console=console,
            transient=True,
            expand=True,
        )
        try:
            progress.start()
        except LiveError:
            # Another live display owns the console; keep counting silently
            self.enabled = False
            return
        self._progress = progress
        self._task_id = progress.add_task(
            "batch", total=total, label=self._label, success=0, failed=0, current_url="waiting..."
        )

    def advance(self, success: bool, current_url: str | None = None) -> None:
        if self.state is None:
            raise RuntimeError("ProgressReporter.start must be called before advance")
        with self._lock:
            if success:
                self.state.success += 1
            else:
                self.state.failed += 1
            if current_url:
                self.state.current_url = current_url
            if self._progress is None or self._task_id is None:
                return
            display_url = self.state.current_url or ""
            if len(display_url) > 60:
                display_url = display_url[:57] + "..."
            self._progress.update(
                self._task_id,
                advance=1,
                success=self.state.success,
                failed=self.state.failed,
                current_url=display_url,
            )

    def close(self) -> None:
        if self._progress is not None:
            self._progress.stop()
        self._progress = None
        self._task_id = None

    def summary(self) -> dict[str, int]:
        if self.state is None:
            return {"success": 0, "failed": 0}
        return {"success": self.state.success, "failed": self.state.failed}


class BatchProgress(ProgressReporter):
    """Progress reporter usable directly as a batch ``on_settled`` callback."""

    def __call__(
        self,
        request: "FetchRequest",
        record: "ExtractedRecord | None",
        error: BaseException | None,
    ) -> None:
        self.advance(success=error is None, current_url=request.url)


__all__ = ["BatchProgress", "ProgressReporter", "ProgressState", "RateColumn"]
