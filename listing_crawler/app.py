"""Typer CLI entrypoint for Listing-Crawler."""

from __future__ import annotations

import sys
from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

import typer
import yaml
from rich import box
from rich.console import Console
from rich.table import Table

from .config import ConfigRepository, CrawlConfig
from .engine import BrowserSessionFactory, PageFetcher, ResultCardExtractor, RetryExecutor
from .engine.exporter import FileSink
from .errors import AuthError, SinkWriteError
from .infra import HttpProxyBroker, ProxySessionManager
from .logging_conf import (
    available_keyword_logs,
    configure_logging,
    global_log_path,
    keyword_log_path,
    tail_log,
)
from .orchestrator import CrawlScheduler, CrawlSummary, KeywordStatus
from .ui import ProgressReporter

app = typer.Typer(
    help="Listing-Crawler command line tool",
    no_args_is_help=True,
    rich_markup_mode=None,
)
config_app = typer.Typer(
    name="config",
    help="Crawl configuration commands",
    no_args_is_help=True,
    rich_markup_mode=None,
)
log_app = typer.Typer(
    name="log",
    help="Log viewing commands",
    no_args_is_help=True,
    rich_markup_mode=None,
)

console = Console()

_STATUS_STYLES = {
    KeywordStatus.COMPLETED: "green",
    KeywordStatus.PROXY_UNAVAILABLE: "yellow",
    KeywordStatus.SINK_FAILED: "red",
}


@dataclass
class AppState:
    repository: ConfigRepository
    verbose: bool = False


def build_state(verbose: bool) -> AppState:
    configure_logging(verbose=verbose)
    return AppState(repository=ConfigRepository(), verbose=verbose)


def build_scheduler(state: AppState, config: CrawlConfig, progress_enabled: bool) -> CrawlScheduler:
    proxy_manager = None
    if config.proxy.enabled:
        broker = HttpProxyBroker(
            config.proxy.broker_url,
            timeout=config.proxy.request_timeout,
            port=config.proxy.port,
        )
        proxy_manager = ProxySessionManager(broker, config.proxy)

    output_dir = state.repository.output_directory(config)
    fetcher = PageFetcher(config.browser, ResultCardExtractor(config.browser.card_selector))
    return CrawlScheduler(
        config=config,
        fetcher=fetcher,
        session_factory=BrowserSessionFactory(config.browser),
        proxy_manager=proxy_manager,
        sink_factory=lambda keyword: FileSink(output_dir, keyword, config.output.format),
        retry_executor=RetryExecutor(config.retry),
        progress=ProgressReporter(enabled=progress_enabled),
    )


def _get_state(ctx: typer.Context) -> AppState:
    state = ctx.obj
    if state is None:
        state = build_state(verbose=False)
        ctx.obj = state
    return state


def _progress_default_enabled() -> bool:
    return bool(getattr(sys.stdout, "isatty", lambda: False)())


def _load_config(state: AppState, path: Optional[Path]) -> CrawlConfig:
    try:
        return state.repository.load(path)
    except FileNotFoundError as exc:
        console.print(f"{exc}. Create one with `listing-crawler config init`.", style="yellow")
        raise typer.Exit(code=1) from exc
    except ValueError as exc:
        console.print(f"Invalid configuration: {exc}", style="red")
        raise typer.Exit(code=1) from exc


def _apply_overrides(
    config: CrawlConfig,
    keywords: Optional[List[str]],
    pages: Optional[int],
    no_proxy: bool,
) -> CrawlConfig:
    payload = config.model_dump()
    if keywords:
        payload["keywords"] = keywords
    if pages:
        payload["pages_per_keyword"] = pages
    if no_proxy:
        payload["proxy"]["enabled"] = False
    try:
        return CrawlConfig.model_validate(payload)
    except ValueError as exc:
        console.print(f"Invalid override: {exc}", style="red")
        raise typer.Exit(code=1) from exc


def _render_summary_table(summary: CrawlSummary) -> Table:
    table = Table(
        title=f"Crawl results · {len(summary.results)} keyword(s)",
        box=box.SIMPLE_HEAD,
    )
    table.add_column("Keyword", style="cyan", no_wrap=True)
    table.add_column("Status")
    table.add_column("Pages", justify="right")
    table.add_column("Dropped", justify="right", style="red")
    table.add_column("Saved", justify="right", style="green")
    table.add_column("Duplicates", justify="right", style="yellow")
    table.add_column("Output", style="dim", overflow="fold")
    for result in summary.results:
        style = _STATUS_STYLES.get(result.status, "white")
        table.add_row(
            result.keyword,
            f"[{style}]{result.status.value}[/{style}]",
            str(result.pages_fetched),
            str(result.pages_dropped),
            str(result.records_saved),
            str(result.duplicates_dropped),
            str(result.output_path or "-"),
        )
    table.add_row(
        "Total",
        "",
        str(summary.pages_fetched),
        str(summary.pages_dropped),
        str(summary.records_saved),
        "",
        "",
        style="bold",
    )
    return table


app.add_typer(config_app, name="config", help="Create or inspect the crawl configuration")
app.add_typer(log_app, name="log", help="View log files")


@app.callback()
def main(
    ctx: typer.Context, verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging")
) -> None:
    ctx.obj = build_state(verbose)


@app.command("run", help="Crawl every configured keyword.")
def run(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(None, "--config", help="Configuration file to use."),
    keyword: Optional[List[str]] = typer.Option(
        None, "--keyword", "-k", help="Override the keyword list (repeatable)."
    ),
    pages: Optional[int] = typer.Option(None, "--pages", min=1, help="Pages per keyword."),
    no_proxy: bool = typer.Option(False, "--no-proxy", help="Crawl without the proxy broker."),
    quiet: bool = typer.Option(False, "--quiet", help="Hide the progress bar."),
) -> None:
    state = _get_state(ctx)
    config = _apply_overrides(_load_config(state, config_path), keyword, pages, no_proxy)
    progress_enabled = not quiet and _progress_default_enabled()
    scheduler = build_scheduler(state, config, progress_enabled)
    try:
        summary = scheduler.run()
    except AuthError as exc:
        console.print(f"Proxy broker authentication failed: {exc}", style="red")
        raise typer.Exit(code=1) from exc
    except SinkWriteError as exc:
        console.print(f"Saving records failed: {exc}", style="red")
        raise typer.Exit(code=1) from exc
    console.print(_render_summary_table(summary))
    for result in summary.aborted:
        console.print(
            f"{result.keyword}: {result.error}", style=_STATUS_STYLES[result.status], markup=False
        )
    if summary.sink_failures:
        raise typer.Exit(code=1)


@config_app.command("init", help="Write the bundled template as the crawl configuration.")
def config_init(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(None, "--config", help="Destination file."),
    force: bool = typer.Option(False, "--force", help="Overwrite an existing file."),
) -> None:
    state = _get_state(ctx)
    try:
        path = state.repository.init_from_template(config_path, force=force)
    except FileExistsError as exc:
        console.print(f"{exc}. Pass --force to overwrite.", style="yellow")
        raise typer.Exit(code=1) from exc
    console.print(f"Configuration written to {path}", style="green")


@config_app.command("show", help="Print the effective configuration.")
def config_show(
    ctx: typer.Context,
    config_path: Optional[Path] = typer.Option(None, "--config", help="Configuration file to read."),
) -> None:
    state = _get_state(ctx)
    config = _load_config(state, config_path)
    payload = config.model_dump(mode="json")
    credentials = payload["proxy"]["credentials"]
    if credentials.get("password"):
        credentials["password"] = "********"
    console.print(yaml.safe_dump(payload, allow_unicode=True, sort_keys=False), highlight=False, markup=False)


@log_app.command("list", help="List available log files.")
def log_list() -> None:
    logs = list(available_keyword_logs())
    if not logs:
        console.print("No keyword logs yet.", style="yellow")
        return
    table = Table(title="Keyword logs", box=box.SIMPLE_HEAD)
    table.add_column("Keyword", style="cyan")
    table.add_column("Path", style="dim", overflow="fold")
    for path in logs:
        table.add_row(path.stem, str(path))
    console.print(table)


@log_app.command("show", help="Show the tail of the global log or of a keyword log.")
def log_show(
    keyword: Optional[str] = typer.Option(None, "--keyword", "-k", help="Keyword log to show."),
    tail: int = typer.Option(100, "--tail", min=1, help="Number of lines."),
) -> None:
    path = keyword_log_path(keyword) if keyword else global_log_path()
    lines = tail_log(path, tail)
    if not lines:
        console.print(f"No log entries in {path}", style="yellow")
        return
    for line in lines:
        console.print(line.rstrip("\n"), highlight=False, markup=False)


def cli() -> None:
    app()


if __name__ == "__main__":  # pragma: no cover
    cli()
