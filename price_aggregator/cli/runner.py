# price_aggregator/cli/runner.py

"""Headless CLI commands built on the aggregation service."""

import asyncio
import logging
from decimal import Decimal, InvalidOperation

from rich.console import Console
from rich.table import Table

from price_aggregator.errors import PersistenceError
from price_aggregator.models.price_change import PriceChange
from price_aggregator.models.product import PersistedProduct
from price_aggregator.services.aggregator import (
    AggregationService,
    CycleResult,
    build_sources,
)
from price_aggregator.services.scheduler import AggregationScheduler
from price_aggregator.storage.catalog_store import CatalogStore

logger = logging.getLogger("price_aggregator.cli")

# Stderr console for status messages so stdout stays clean for tables
_err = Console(stderr=True)


def _format_price(price: Decimal, currency: str = "") -> str:
    text = f"{price:,.2f}"
    return f"{currency} {text}" if currency else text


def _print_change(change: PriceChange) -> None:
    """Live-update subscriber that echoes price changes."""
    direction = (
        "[red]▲[/red]"
        if change.new_price > change.old_price
        else "[green]▼[/green]"
    )
    _err.print(
        f"{direction} #{change.product_id} {change.name}: "
        f"{_format_price(change.old_price)} → "
        f"{_format_price(change.new_price)}"
    )


def _print_cycle(result: CycleResult) -> None:
    """Render a Rich summary of one aggregation cycle."""
    table = Table(
        title="Aggregation Cycle",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Source", style="magenta")
    table.add_column("Records", justify="right")
    for name, count in result.source_counts.items():
        table.add_row(
            name,
            str(count) if count else "[yellow]0[/yellow]",
        )
    Console().print(table)

    parts = [
        f"{result.fetched_count} fetched",
        f"{result.normalized_count} normalised",
    ]
    if result.dropped_count:
        parts.append(f"{result.dropped_count} dropped")
    if result.reconcile is not None:
        parts.append(f"{result.reconcile.inserted} new")
        parts.append(
            f"{result.reconcile.history_written} price changes"
        )
    _err.print(
        f"[green]✓ {', '.join(parts)} "
        f"in {result.duration_s:.1f}s[/green]"
    )


def _print_products(products: list[PersistedProduct]) -> None:
    """Render a Rich table of catalog rows to stdout."""
    table = Table(
        title="Catalog",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Name", max_width=40)
    table.add_column("Price", justify="right", style="green")
    table.add_column("Available", justify="center")
    table.add_column("Provider", style="magenta")
    table.add_column("Last fetched", style="dim")

    for p in products:
        table.add_row(
            str(p.id),
            p.name,
            _format_price(p.price, p.currency),
            "✓" if p.availability else "—",
            p.source_name,
            p.last_fetched_at.strftime("%Y-%m-%d %H:%M:%S"),
        )

    Console().print(table)


async def run_once() -> int:
    """Run a single aggregation cycle and print a summary."""
    service = AggregationService()
    service.channel.subscribe(_print_change)
    _err.print(
        f"[bold]Aggregating[/bold] "
        f"[dim]sources={', '.join(s.source_name for s in service.sources)}[/dim]"
    )
    try:
        result = await service.aggregate_data()
    except PersistenceError as exc:
        logger.error("Cycle aborted: %s", exc, exc_info=True)
        _err.print(f"[red]Cycle aborted: {exc}[/red]")
        return 1
    finally:
        service.store.close()

    if not result.persisted:
        _err.print("[yellow]No products to persist.[/yellow]")
    _print_cycle(result)
    return 0


async def run_scheduler(
    interval_ms: int | None = None,
    run_immediately: bool = False,
) -> int:
    """Run aggregation cycles on an interval until interrupted."""
    service = AggregationService()
    service.channel.subscribe(_print_change)
    scheduler = AggregationScheduler(service, interval_ms)
    scheduler.start(run_immediately=run_immediately)
    _err.print(
        f"[bold]Scheduler started[/bold] "
        f"[dim]every {scheduler.interval_ms / 1000:.0f}s[/dim]"
    )
    try:
        # Keep running until the process is stopped
        await asyncio.Event().wait()
    finally:
        # The store must outlive any cycle still writing to it
        await scheduler.shutdown()
        service.store.close()
    return 0


def show_catalog() -> int:
    """Print every persisted product."""
    store = CatalogStore()
    try:
        products = store.list_products()
    except PersistenceError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    finally:
        store.close()
    if not products:
        _err.print("[yellow]Catalog is empty.[/yellow]")
        return 0
    _print_products(products)
    return 0


def show_history(product_id: int) -> int:
    """Print one product and its superseded prices."""
    store = CatalogStore()
    try:
        product = store.get_product(product_id)
        history = store.get_price_history(product_id)
    except PersistenceError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    finally:
        store.close()
    if product is None:
        _err.print(f"[red]Product {product_id} not found.[/red]")
        return 1

    _print_products([product])
    table = Table(
        title=f"Price History #{product_id}",
        title_style="bold cyan",
    )
    table.add_column("Recorded at", style="dim")
    table.add_column("Previous price", justify="right")
    for entry in history:
        table.add_row(
            entry.recorded_at.strftime("%Y-%m-%d %H:%M:%S"),
            _format_price(entry.price, product.currency),
        )
    Console().print(table)
    return 0


def show_changes(limit: int = 5) -> int:
    """Print the most recent price changes."""
    store = CatalogStore()
    try:
        changes = store.get_latest_changes(limit)
    except PersistenceError as exc:
        _err.print(f"[red]{exc}[/red]")
        return 1
    finally:
        store.close()
    if not changes:
        _err.print("[yellow]No price changes recorded.[/yellow]")
        return 0

    table = Table(
        title="Latest Price Changes",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("ID", justify="right", style="dim")
    table.add_column("Name")
    table.add_column("Old", justify="right")
    table.add_column("Current", justify="right", style="green")
    table.add_column("Changed at", style="dim")
    for c in changes:
        table.add_row(
            str(c.product_id),
            c.name,
            _format_price(c.old_price),
            _format_price(c.new_price),
            c.timestamp.strftime("%Y-%m-%d %H:%M:%S"),
        )
    Console().print(table)
    return 0


def set_price(product_id: int, price_text: str) -> int:
    """Apply a manual single-product price change."""
    try:
        new_price = Decimal(price_text)
    except InvalidOperation:
        _err.print(f"[red]Invalid price: {price_text}[/red]")
        return 1
    if not new_price.is_finite() or new_price < 0:
        _err.print(f"[red]Invalid price: {price_text}[/red]")
        return 1

    service = AggregationService(sources=[])
    service.channel.subscribe(_print_change)
    try:
        updated = service.reconciler.update_product_price(
            product_id, new_price
        )
    except PersistenceError as exc:
        _err.print(f"[red]Update failed: {exc}[/red]")
        return 1
    finally:
        service.store.close()

    if updated is None:
        _err.print(f"[red]Product {product_id} not found.[/red]")
        return 1
    _print_products([updated])
    return 0


async def run_health_check() -> int:
    """Probe every configured source once."""
    from price_aggregator.services.health_checker import HealthChecker

    _err.print("[bold]Running source health check...[/bold]")
    checker = HealthChecker(build_sources())
    results = await checker.check_all()

    table = Table(
        title="Source Health Check",
        show_lines=True,
        title_style="bold cyan",
    )
    table.add_column("Source", style="bold")
    table.add_column("Status", justify="center")
    table.add_column("Latency", justify="right")
    table.add_column("Records", justify="right")
    table.add_column("Notes", style="dim")

    any_down = False
    for r in results:
        if r.status == "ok":
            status = "[green]OK[/green]"
        elif r.status == "slow":
            status = "[yellow]SLOW[/yellow]"
        else:
            status = "[red]DOWN[/red]"
            any_down = True

        latency = (
            f"{r.latency_ms:.0f}ms"
            if r.latency_ms > 0
            else "—"
        )
        table.add_row(
            r.source_id,
            status,
            latency,
            str(r.record_count),
            r.message,
        )

    Console().print(table)
    return 1 if any_down else 0
