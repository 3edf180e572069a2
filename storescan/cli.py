"""Command line interface for the store scanner."""
from __future__ import annotations

import asyncio
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

import click
import orjson

from .config import SCAN_MODES, ScanConfig, load_config
from .errors import CapabilityUnavailableError
from .export import summarize_by_location, write_results, write_summary
from .extraction import extract, extract_fields
from .models import ScanResult, ScanTask, mask_token
from .orchestrator import ScanOrchestrator
from .reporter import ProgressReporter
from .session.context import SessionContext
from .session.storage import JsonFileStore
from .worklist import load_items, load_store_mapping

LOGGER = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)],
    )


@click.group()
@click.option("--config", "config_path", type=click.Path(exists=True, dir_okay=False), help="YAML config file")
@click.option("-v", "--verbose", is_flag=True, help="Debug logging")
@click.pass_context
def cli(ctx: click.Context, config_path: Optional[str], verbose: bool) -> None:
    """Store scanner CLI."""
    _setup_logging(verbose)
    try:
        ctx.obj = load_config(config_path)
    except ValueError as exc:
        raise click.BadParameter(str(exc), param_hint="--config") from exc


async def _run(orchestrator: ScanOrchestrator, tasks: List[ScanTask], stores: dict) -> List[ScanResult]:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, orchestrator.stop_scan)
    except (NotImplementedError, RuntimeError):
        LOGGER.debug("Signal handlers unavailable; Ctrl+C aborts immediately")
    return await orchestrator.start_scan(tasks, stores)


@cli.command()
@click.option("--stores", "stores_file", required=True, type=click.Path(exists=True, dir_okay=False), help="CSV with StoreCode,StoreId")
@click.option("--items", "items_file", type=click.Path(exists=True, dir_okay=False), help="CSV with store_tlc,asin[,name]")
@click.option("--mode", type=click.Choice(SCAN_MODES), help="Scan mode (overrides config)")
@click.option("--agents", type=int, help="Number of concurrent agents")
@click.option("--headless/--headed", default=None, help="Browser visibility")
@click.option("--output", default="results.jsonl", show_default=True, type=click.Path(dir_okay=False), help="JSON lines output")
@click.option("--summary", "summary_file", type=click.Path(dir_okay=False), help="Write per-store summary JSON")
@click.pass_obj
def scan(
    config: ScanConfig,
    stores_file: str,
    items_file: Optional[str],
    mode: Optional[str],
    agents: Optional[int],
    headless: Optional[bool],
    output: str,
    summary_file: Optional[str],
) -> None:
    """Scan items (or merchandising carousels) store by store."""
    settings = config.settings
    if mode:
        settings.mode = mode
    if agents is not None:
        settings.max_agents = agents
    if headless is not None:
        settings.headless = headless
    try:
        settings.validate()
    except ValueError as exc:
        raise click.BadParameter(str(exc)) from exc

    if settings.mode == "item" and not items_file:
        raise click.UsageError("--items is required in item mode")

    stores = load_store_mapping(stores_file)
    tasks = load_items(items_file) if items_file else []

    reporter = ProgressReporter()
    reporter.subscribe(
        on_progress=lambda p: LOGGER.debug("progress %s", p.to_dict()),
    )
    orchestrator = ScanOrchestrator(config, storage=JsonFileStore(settings.state_file), reporter=reporter)

    click.echo(f"🚀 Scanning {len(tasks) or len(stores)} {'items' if settings.mode == 'item' else 'stores'} in {settings.mode} mode")
    try:
        results = asyncio.run(_run(orchestrator, tasks, stores))
    except CapabilityUnavailableError as exc:
        click.echo(f"❌ {exc}", err=True)
        sys.exit(1)

    write_results(results, output)
    summary = write_summary(results, summary_file) if summary_file else summarize_by_location(results)

    click.echo("\n📊 Scan Summary\n" + "=" * 40)
    for row in summary:
        avg = f"{row['avg_load_time_ms']}ms" if row["avg_load_time_ms"] is not None else "-"
        click.echo(
            f"  {row['location_code']:8s} total={row['total']:4d} ok={row['successful']:4d} "
            f"failed={row['failed']:4d} rate={row['success_rate']:5.1f}% avg={avg}"
        )
    click.echo(f"✅ Wrote {len(results)} result(s) to {output}")


@cli.command("extract")
@click.argument("html_file", type=click.Path(exists=True, dir_okay=False))
@click.option("--kind", type=click.Choice(["carousel", "fields"]), default="carousel", show_default=True)
def extract_cmd(html_file: str, kind: str) -> None:
    """Run extraction over a saved HTML page."""
    html = Path(html_file).read_text(encoding="utf-8", errors="replace")
    if kind == "carousel":
        records = extract(html)
        for record in records:
            sys.stdout.write(orjson.dumps(record.to_dict()).decode() + "\n")
        LOGGER.info("carousels=%d", len(records))
    else:
        report = extract_fields(html)
        sys.stdout.write(orjson.dumps({"fields": report.fields, "extraction": report.audit()}).decode() + "\n")


@cli.group()
def token() -> None:
    """Inspect or clear the cached session token."""


@token.command("show")
@click.pass_obj
def token_show(config: ScanConfig) -> None:
    """Show the cached token and its age."""
    context = SessionContext(
        storage=JsonFileStore(config.settings.state_file),
        token_max_age_s=config.settings.token_max_age_s,
    )
    cached = context.load_token()
    if cached is None:
        click.echo("⚠️  No cached token")
        return
    age = cached.age(context.clock())
    state = "fresh" if cached.is_fresh(context.token_max_age_s, context.clock()) else "stale"
    click.echo(f"🔑 {mask_token(cached.value)} source={cached.source.value} age={int(age // 60)}min ({state})")


@token.command("clear")
@click.pass_obj
def token_clear(config: ScanConfig) -> None:
    """Delete the cached token."""
    context = SessionContext(storage=JsonFileStore(config.settings.state_file))
    context.forget_token()
    click.echo("✅ Cached token cleared")


if __name__ == "__main__":
    cli()
