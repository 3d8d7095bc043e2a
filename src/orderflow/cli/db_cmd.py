"""CLI commands for database maintenance.

Usage:
    orderflow init-db
    orderflow refresh-view
    orderflow sales --days 7
"""

from __future__ import annotations

import asyncio

import typer

from orderflow.config import settings
from orderflow.core.errors import StoreError
from orderflow.observability import configure_logging
from orderflow.persistence.db import Database
from orderflow.persistence.store import OrderStore

init_app = typer.Typer(help="Create the orders table and the daily sales view")
refresh_app = typer.Typer(help="Refresh the daily sales view once")


async def _init_db() -> None:
    db = Database.from_settings(settings)
    try:
        await db.init_schema()
    finally:
        await db.close()


async def _refresh_view() -> None:
    db = Database.from_settings(settings)
    try:
        await OrderStore.from_settings(db, settings).refresh_daily_sales()
    finally:
        await db.close()


@init_app.callback(invoke_without_command=True)
def init_db() -> None:
    """Create the schema if it does not exist (development; use Alembic in production)."""
    configure_logging(json_format=False, level=settings.log_level)
    asyncio.run(_init_db())
    typer.echo("Schema ready.")


@refresh_app.callback(invoke_without_command=True)
def refresh_view() -> None:
    """Refresh the daily sales view and exit."""
    configure_logging(json_format=False, level=settings.log_level)
    try:
        asyncio.run(_refresh_view())
    except StoreError as e:
        typer.echo(f"Refresh failed: {e}", err=True)
        raise typer.Exit(code=1)
    typer.echo("Materialized view refreshed successfully.")


sales_app = typer.Typer(help="Print the daily sales view")


async def _show_sales(days: int) -> None:
    from rich.console import Console
    from rich.table import Table

    console = Console()
    db = Database.from_settings(settings)
    try:
        sales = await OrderStore.from_settings(db, settings).get_daily_sales(limit=days)
    except StoreError as e:
        console.print(f"[red]Error reading daily sales:[/red] {e}")
        raise typer.Exit(code=1) from e
    finally:
        await db.close()

    if not sales:
        console.print("[yellow]No sales in the view.[/yellow] Run refresh-view first?")
        return

    table = Table(title="Daily Sales")
    table.add_column("Date", style="cyan")
    table.add_column("Revenue", style="green", justify="right")
    for sale in sales:
        table.add_row(sale.date, f"{sale.total_revenue:,.2f}")

    console.print(table)


@sales_app.callback(invoke_without_command=True)
def show_sales(
    days: int = typer.Option(30, "--days", "-d", min=1, help="Number of most recent days"),
) -> None:
    """Show the most recent days of the daily sales view."""
    asyncio.run(_show_sales(days))
