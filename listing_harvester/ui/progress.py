"""Terminal progress rendering for harvesting runs."""

from __future__ import annotations

from dataclasses import dataclass
from threading import Lock

from rich.console import Console
from rich.errors import LiveError
from rich.progress import (
    BarColumn,
    Progress,
    SpinnerColumn,
    TaskID,
    TaskProgressColumn,
    TextColumn,
    TimeElapsedColumn,
)


@dataclass
class ProgressState:
    total: int = 0
    current: int = 0
    message: str = ""
    updates: int = 0


class ProgressReporter:
    """Progress callback that drives a Rich bar.

    Instances are callable with ``(message, current, total)`` so they can be
    handed straight to the orchestrator. Counters are kept even when
    rendering is disabled or the console is not a terminal.
    """

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self._console = console
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self._lock = Lock()
        self.state = ProgressState()

    def start(self, total: int, label: str = "harvest") -> None:
        self.state = ProgressState(total=total)
        if not self.enabled:
            return
        if self._console is None:
            self._console = Console()
        if not self._console.is_terminal:
            # non-interactive output stays silent
            self.enabled = False
            return
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]{task.description:<12}"),
            BarColumn(bar_width=None, complete_style="green", finished_style="green"),
            TaskProgressColumn(show_speed=False),
            TimeElapsedColumn(),
            TextColumn("[dim]{task.fields[message]}", justify="left"),
            console=self._console,
            transient=True,
            expand=True,
        )
        try:
            self._progress.__enter__()
        except LiveError:
            self.enabled = False
            self._progress = None
            return
        self._task_id = self._progress.add_task(label, total=total or None, message="starting")

    def __call__(self, message: str, current: int, total: int) -> None:
        with self._lock:
            self.state.message = message
            self.state.current = current
            self.state.total = total
            self.state.updates += 1
            if self._progress is not None and self._task_id is not None:
                self._progress.update(self._task_id, completed=current, total=total, message=message)

    def close(self) -> None:
        with self._lock:
            if self._progress is not None:
                self._progress.__exit__(None, None, None)
            self._progress = None
            self._task_id = None


__all__ = ["ProgressReporter", "ProgressState"]
