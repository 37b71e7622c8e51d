"""Typer CLI entrypoint for page-sweeper."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import typer
import yaml
from pydantic import ValidationError
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, FetcherKind, SweepConfig
from .coordinator import Coordinator, SweepResult
from .engine.exporter import FileExporter
from .errors import SweepDeadlineExceeded, SweepError
from .logging_conf import configure_logging, default_log_dir, tail_log
from .ui import SweepProgress

app = typer.Typer(
    help="page-sweeper 分页并发抓取工具",
    no_args_is_help=True,
    rich_markup_mode=None,
)
config_app = typer.Typer(
    name="config",
    help="配置管理命令",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="日志查看命令",
    no_args_is_help=True,
    rich_markup_mode=None,
)

# stdout 只输出抓取结果，提示信息统一走 stderr
console = Console(stderr=True)

CoordinatorFactory = Callable[..., Coordinator]


@dataclass
class AppState:
    repository: ConfigRepository
    coordinator_factory: CoordinatorFactory


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    return AppState(repository=ConfigRepository(), coordinator_factory=Coordinator)


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


# 进度条策略：默认在交互式终端显示，非TTY自动降级为静默
def _progress_default_enabled() -> bool:
    return bool(getattr(sys.stderr, "isatty", lambda: False)())


def _render_result_table(result: SweepResult) -> Table:
    table = Table(
        title=f"抓取结果 · 共 {len(result.records)} 条记录",
        box=box.SIMPLE_HEAD,
    )
    table.add_column("Worker", style="cyan", justify="right")
    table.add_column("页数", style="green", justify="right")
    table.add_column("记录", style="green", justify="right")
    table.add_column("最后偏移", style="magenta", justify="right")
    table.add_column("耐心(ms)", style="yellow", justify="right")
    for worker_id, lane in sorted(result.lanes.items()):
        table.add_row(
            str(worker_id),
            str(len(lane.offsets)),
            str(lane.records),
            str(lane.offsets[-1]) if lane.offsets else "-",
            str(lane.patience_ms) if lane.patience_ms is not None else "-",
        )
    return table


app.add_typer(config_app, name="config", help="查看或初始化抓取配置")
app.add_typer(log_app, name="log", help="查看日志文件")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="开启调试日志", is_flag=True)
) -> None:
    ctx.obj = build_state(verbose)


@app.command("run", help="执行一次完整的分页抓取，结果以 JSON 输出。")
def run_sweep(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(
        None, "--config", "-c", help="配置文件路径（YAML/JSON）。"
    ),
    pool_size: Optional[int] = typer.Option(None, "--pool-size", "-n", help="并发 worker 数量。"),
    page_size: Optional[int] = typer.Option(None, "--page-size", help="每页记录数。"),
    base_url: Optional[str] = typer.Option(
        None, "--base-url", help="分页 URL 模板，使用 {offset} 占位。"
    ),
    fetcher: Optional[FetcherKind] = typer.Option(None, "--fetcher", help="页面获取方式。"),
    deadline: Optional[float] = typer.Option(
        None, "--deadline", help="整体超时（秒），超时后报错并保留已抓取部分。"
    ),
    output: Optional[Path] = typer.Option(None, "--output", "-o", help="输出文件（默认 stdout）。"),
    fmt: Optional[str] = typer.Option(None, "--format", help="输出格式：json / jsonl / csv。"),
    quiet: bool = typer.Option(False, "--quiet", help="不显示进度与汇总。", is_flag=True),
) -> None:
    state = _get_state(ctx)
    try:
        config = state.repository.load(config_path)
    except FileNotFoundError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1)
    try:
        config = ConfigRepository.apply_overrides(
            config,
            {
                "pool_size": pool_size,
                "page_size": page_size,
                "base_url": base_url,
                "fetcher": fetcher.value if fetcher else None,
                "deadline_seconds": deadline,
                "output.path": str(output) if output else None,
                "output.format": fmt,
            },
        )
    except ValidationError as exc:
        raise typer.BadParameter(str(exc)) from exc

    progress = SweepProgress(
        enabled=config.enable_progress_bar and not quiet and _progress_default_enabled(),
        console=console,
    )
    coordinator = state.coordinator_factory(config, progress=progress)
    try:
        result = coordinator.run()
    except SweepDeadlineExceeded as exc:
        # 超时仍输出已抓取的部分，退出码标明结果不完整
        _write_result(exc.partial, config, quiet)
        console.print(f"抓取超时：{exc}", style="red")
        raise typer.Exit(code=2)
    except SweepError as exc:
        console.print(f"抓取失败：{exc}", style="red")
        raise typer.Exit(code=1)

    _write_result(result, config, quiet)


def _write_result(result: SweepResult, config: SweepConfig, quiet: bool) -> None:
    with FileExporter(config.output.format, config.output.path) as exporter:
        exporter.export_many(result.as_dicts())
    if quiet:
        return
    console.print(_render_result_table(result))
    if config.output.path:
        console.print(f"结果已写入 {config.output.path}", style="green")


@config_app.command("show", help="显示生效的配置。")
def config_show(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(None, "--config", "-c", help="配置文件路径。"),
) -> None:
    state = _get_state(ctx)
    try:
        config = state.repository.load(config_path)
    except FileNotFoundError as exc:
        console.print(str(exc), style="red")
        raise typer.Exit(code=1)
    typer.echo(
        yaml.safe_dump(config.model_dump(mode="json"), allow_unicode=True, sort_keys=False)
    )


@config_app.command("init", help="写入一份默认配置文件。")
def config_init(
    ctx: typer.Context,
    path: Optional[Path] = typer.Argument(None, help="目标路径（默认 data/sweep_config.yaml）。"),
    force: bool = typer.Option(False, "--force", help="覆盖已存在的文件。", is_flag=True),
) -> None:
    state = _get_state(ctx)
    target = path or state.repository.locator.sweep_config_path()
    if target.exists() and not force:
        console.print(f"配置文件已存在：{target}（使用 --force 覆盖）", style="yellow")
        raise typer.Exit(code=1)
    written = state.repository.save(SweepConfig(), target)
    console.print(f"已写入默认配置：{written}", style="green")


@log_app.command("show", help="查看日志的最近内容。")
def log_show(
    tail: int = typer.Option(100, "--tail", help="显示最近 N 行内容。"),
    errors: bool = typer.Option(False, "--errors", help="查看错误日志。", is_flag=True),
) -> None:
    path = default_log_dir() / ("error.log" if errors else "sweep.log")
    lines = tail_log(path, tail)
    if not lines:
        console.print("暂无日志信息。", style="dim")
        return
    header = f"{'错误日志' if errors else '抓取日志'} · 最近 {len(lines)} 行"
    console.print(header, style="cyan")
    typer.echo("".join(lines), nl=False)


__all__ = ["app", "AppState", "build_state"]
