"""CLI commands for orderflow.

Provides command-line interface using Typer:
- orderflow serve: Run the API server
- orderflow worker: Run the persistence worker
- orderflow refresh-view: Refresh the daily sales view once
- orderflow init-db: Create the database schema
- orderflow sales: Print the daily sales view

Usage:
    orderflow --help
    orderflow serve --port 8080
    orderflow worker
"""

import typer

from orderflow.cli.db_cmd import init_app, refresh_app, sales_app
from orderflow.cli.serve import app as serve_app
from orderflow.cli.worker_cmd import app as worker_app

# Main CLI application
app = typer.Typer(
    name="orderflow",
    help="orderflow: write-back order intake with asynchronous persistence",
    no_args_is_help=True,
)

# Add subcommands
app.add_typer(serve_app, name="serve")
app.add_typer(worker_app, name="worker")
app.add_typer(refresh_app, name="refresh-view")
app.add_typer(init_app, name="init-db")
app.add_typer(sales_app, name="sales")


@app.callback()
def callback() -> None:
    """orderflow: write-back order intake with asynchronous persistence."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
