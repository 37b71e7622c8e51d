"""Terminal progress helpers with Rich-based rendering."""

from __future__ import annotations

from dataclasses import dataclass

from rich.console import Console
from rich.errors import LiveError
from rich.progress import (
    Progress,
    ProgressColumn,
    SpinnerColumn,
    Task,
    TaskID,
    TextColumn,
    TimeElapsedColumn,
)
from rich.text import Text


@dataclass
class SweepState:
    pool_size: int
    pages: int = 0
    records: int = 0
    retired: int = 0

    @property
    def active(self) -> int:
        return self.pool_size - self.retired


class PageRateColumn(ProgressColumn):
    """
    显示抓取速率的自定义列

    渲染每秒完成的页面数量，格式为 "X.X page/s"
    """

    def render(self, task: Task) -> Text:
        speed = task.finished_speed or task.speed
        if speed is None:
            return Text("", style="progress.percentage")
        return Text(f"{speed:.1f} page/s", style="progress.percentage")


class SweepProgress:
    """Render live sweep progress; counters stay available when rendering is off."""

    def __init__(self, enabled: bool = True, console: Console | None = None) -> None:
        self.enabled = enabled
        self._console = console
        self._progress: Progress | None = None
        self._task_id: TaskID | None = None
        self.state: SweepState | None = None

    def start(self, pool_size: int) -> None:
        self.state = SweepState(pool_size=pool_size)
        if not self.enabled:
            return
        if self._console is None:
            self._console = Console(stderr=True)
        if not self._console.is_terminal:
            # 非交互环境回退为静默模式
            self.enabled = False
            return
        self._progress = Progress(
            SpinnerColumn(style="cyan"),
            TextColumn("[bold blue]sweep"),
            TimeElapsedColumn(),
            PageRateColumn(),
            TextColumn("[green]pages {task.fields[pages]:>5}", justify="right"),
            TextColumn("[green]records {task.fields[records]:>6}", justify="right"),
            TextColumn("[yellow]workers {task.fields[active]}/{task.fields[pool]}"),
            TextColumn("[dim]{task.fields[cursor]}", justify="left"),
            refresh_per_second=12,
            transient=True,
            console=self._console,
        )
        try:
            self._progress.__enter__()
        except LiveError:
            # 同一控制台已存在活动进度条，退化为静默模式
            self.enabled = False
            self._progress = None
            return
        self._task_id = self._progress.add_task(
            "sweep",
            total=None,
            pages=0,
            records=0,
            active=pool_size,
            pool=pool_size,
            cursor="等待中…",
        )

    def assigned(self, worker_id: int, offset: int) -> None:
        self._require_state()
        self._refresh(cursor=f"worker {worker_id} · offset {offset}")

    def page_done(self, worker_id: int, offset: int, count: int) -> None:
        state = self._require_state()
        state.pages += 1
        state.records += count
        self._refresh(advance=1)

    def worker_retired(self, worker_id: int) -> None:
        state = self._require_state()
        state.retired += 1
        self._refresh()

    def _require_state(self) -> SweepState:
        if self.state is None:
            raise RuntimeError("SweepProgress.start must be called first")
        return self.state

    def _refresh(self, advance: int = 0, **fields: object) -> None:
        if self._progress is None or self._task_id is None or self.state is None:
            return
        self._progress.update(
            self._task_id,
            advance=advance,
            pages=self.state.pages,
            records=self.state.records,
            active=self.state.active,
            **fields,
        )

    def close(self) -> None:
        if self._progress is not None:
            self._progress.stop()
            self._progress = None
        self._task_id = None


__all__ = ["SweepProgress", "SweepState", "PageRateColumn"]
