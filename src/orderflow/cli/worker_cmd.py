"""CLI command for running the persistence worker.

Usage:
    orderflow worker
    orderflow worker --message-timeout 20
"""

from __future__ import annotations

import asyncio

import typer

from orderflow.config import Settings, settings
from orderflow.observability import configure_logging
from orderflow.runtime import open_resources

app = typer.Typer(help="Run the persistence worker")


async def run_worker(worker_settings: Settings) -> None:
    """Consume until SIGINT/SIGTERM, then close clients in reverse order."""
    async with open_resources(worker_settings) as resources:
        worker = resources.persistence_worker()
        worker.install_signal_handlers()
        await worker.run()


@app.callback(invoke_without_command=True)
def worker(
    message_timeout: float = typer.Option(
        settings.worker_message_timeout,
        "--message-timeout",
        help="Seconds allowed for the database and search writes of one message",
    ),
    log_level: str = typer.Option(
        settings.log_level,
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, error",
    ),
) -> None:
    """Run the persistence worker.

    Messages are processed one at a time. A shutdown signal lets the current
    message finish (or be requeued) before connections are closed.
    """
    if settings.queue_backend.lower() in {"memory", "inmemory", "in_memory"}:
        typer.echo(
            "The memory queue only exists inside the API process; "
            "its worker runs there. Use QUEUE_BACKEND=redis for a separate worker.",
            err=True,
        )
        raise typer.Exit(code=2)

    configure_logging(json_format=settings.env != "dev", level=log_level)
    worker_settings = settings.model_copy(update={"worker_message_timeout": message_timeout})
    asyncio.run(run_worker(worker_settings))
