"""Typer CLI entrypoint for spider-runner."""

from __future__ import annotations

import importlib
import json
from pathlib import Path
from typing import Any, Optional

import typer
from typer import BadParameter
from rich import box
from rich.console import Console
from rich.table import Table

from .config import load_config_file
from .engine.session import available_engines
from .logging_conf import available_spider_logs, configure_logging, default_log_dir, tail_log
from .orchestrator import RunResult
from .spider import Spider

app = typer.Typer(
    help="spider-runner command line tool",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Inspect log files",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()


def _load_spider(target: str) -> type[Spider]:
    module_name, _, attr = target.partition(":")
    if not module_name or not attr:
        raise BadParameter(f"Expected MODULE:CLASS, got {target!r}")
    try:
        module = importlib.import_module(module_name)
    except ImportError as exc:
        raise BadParameter(f"Cannot import module {module_name!r}: {exc}") from exc
    spider_cls = getattr(module, attr, None)
    if not (isinstance(spider_cls, type) and issubclass(spider_cls, Spider)):
        raise BadParameter(f"{target!r} is not a Spider subclass")
    return spider_cls


def _parse_data(raw: Optional[str]) -> dict[str, Any] | None:
    if raw is None:
        return None
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as exc:
        raise BadParameter(f"--data must be a JSON object: {exc}") from exc
    if not isinstance(data, dict):
        raise BadParameter("--data must be a JSON object")
    return data


def _load_config(path: Optional[Path]) -> dict[str, Any] | None:
    if path is None:
        return None
    try:
        return load_config_file(path)
    except (FileNotFoundError, ValueError) as exc:
        raise BadParameter(str(exc)) from exc


def _render_summary(result: RunResult) -> Table:
    summary = result.summary()
    table = Table(
        title=f"Run summary · {result.spider_name}",
        box=box.SIMPLE_HEAD,
        show_header=False,
    )
    table.add_column("Field", style="cyan", no_wrap=True)
    table.add_column("Value", overflow="fold")
    status = summary.get("status") or "-"
    style = {"completed": "green", "failed": "red"}.get(status, "yellow")
    table.add_row("status", f"[{style}]{status}[/{style}]")
    if summary.get("running_time") is not None:
        table.add_row("running_time", f"{summary['running_time']}s")
    for kind in ("visits", "items"):
        counters = summary.get(kind)
        if counters:
            table.add_row(kind, ", ".join(f"{key}: {value}" for key, value in counters.items()))
    for scope, events in (summary.get("events") or {}).items():
        if events:
            table.add_row(f"events.{scope}", ", ".join(f"{key} ×{value}" for key, value in events.items()))
    if summary.get("error"):
        table.add_row("error", str(summary["error"]))
    return table


@app.callback()
def main(
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging", is_flag=True),
) -> None:
    configure_logging(verbose=verbose)


@app.command("crawl", help="Run a spider from its start URLs.")
def crawl(
    target: str = typer.Argument(..., help="Spider class as MODULE:CLASS."),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML/JSON config override file."),
    data: Optional[str] = typer.Option(None, "--data", help="JSON object passed to the start handler."),
    raise_on_fail: bool = typer.Option(
        False, "--raise", help="Re-raise the run failure instead of reporting it.", is_flag=True
    ),
) -> None:
    spider_cls = _load_spider(target)
    result = spider_cls.crawl(
        data=_parse_data(data),
        exception_on_fail=raise_on_fail,
        config=_load_config(config),
    )
    if result.already_running:
        console.print(f"Spider `{result.spider_name}` is already running.", style="yellow")
        raise typer.Exit(code=1)
    console.print(_render_summary(result))
    if result.failed:
        raise typer.Exit(code=1)


@app.command("parse", help="Call one spider handler without a tracked run.")
def parse(
    target: str = typer.Argument(..., help="Spider class as MODULE:CLASS."),
    handler: str = typer.Argument("parse", help="Handler method name."),
    url: Optional[str] = typer.Option(None, "--url", help="Fetch this URL and pass the response."),
    data: Optional[str] = typer.Option(None, "--data", help="JSON object passed as handler data."),
    config: Optional[Path] = typer.Option(None, "--config", help="YAML/JSON config override file."),
) -> None:
    spider_cls = _load_spider(target)
    value = spider_cls.run_handler(
        handler, url=url, data=_parse_data(data), config=_load_config(config)
    )
    if value is not None:
        console.print_json(json.dumps(value, ensure_ascii=False, default=str))


@app.command("engines", help="List registered session engines.")
def engines() -> None:
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("Engine", style="green")
    for name in available_engines():
        table.add_row(name)
    console.print(table)


app.add_typer(log_app, name="log", help="Inspect log files")


@log_app.command("list", help="List per-spider log files.")
def log_list() -> None:
    logs = list(available_spider_logs())
    if not logs:
        console.print("No spider logs yet.", style="dim")
        return
    table = Table(box=box.SIMPLE_HEAD)
    table.add_column("File", style="green")
    for path in logs:
        table.add_row(path.name)
    console.print(table)


@log_app.command("show", help="Show the last lines of a log.")
def log_show(
    name: Optional[str] = typer.Argument(None, help="Spider name (global log when omitted)."),
    tail: int = typer.Option(100, "--tail", help="Number of lines to show."),
) -> None:
    base_dir = default_log_dir()
    path = base_dir / "spiders" / f"{name}.log" if name else base_dir / "crawler.log"
    lines = tail_log(path, tail)
    if not lines:
        console.print("No log lines yet.", style="dim")
        return
    console.print(f"{path.name} · last {len(lines)} lines", style="cyan")
    console.print("".join(lines), markup=False, highlight=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
