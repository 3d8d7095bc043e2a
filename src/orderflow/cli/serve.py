"""CLI command for running the API server.

Usage:
    orderflow serve
    orderflow serve --port 8080 --host 0.0.0.0
    orderflow serve --reload --log-level debug
"""

from __future__ import annotations

import typer

from orderflow.config import settings

app = typer.Typer(help="Run the orderflow API server")


@app.callback(invoke_without_command=True)
def serve(
    host: str = typer.Option(
        settings.host,
        "--host",
        "-h",
        help="Host to bind to",
    ),
    port: int = typer.Option(
        settings.port,
        "--port",
        "-p",
        help="Port to listen on",
    ),
    reload: bool = typer.Option(
        False,
        "--reload",
        "-r",
        help="Enable auto-reload for development",
    ),
    workers: int = typer.Option(
        1,
        "--workers",
        "-w",
        help="Number of worker processes",
    ),
    log_level: str = typer.Option(
        "info",
        "--log-level",
        "-l",
        help="Log level: debug, info, warning, error",
    ),
    graceful_timeout: int = typer.Option(
        30,
        "--graceful-timeout",
        help="Seconds to wait for in-flight requests on shutdown",
    ),
) -> None:
    """Run the orderflow API server.

    On SIGINT/SIGTERM uvicorn stops accepting connections and lets in-flight
    requests finish before the application closes its clients.
    """
    import uvicorn

    workers_effective = workers if not reload else 1  # Reload requires single worker

    typer.echo("Starting orderflow API server...")
    typer.echo(f"  Host: {host}")
    typer.echo(f"  Port: {port}")
    typer.echo(f"  Workers: {workers_effective}")
    typer.echo(f"  Queue backend: {settings.queue_backend}")
    if reload:
        typer.echo("  Reload: enabled")
    typer.echo()

    uvicorn.run(
        app="orderflow.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=workers_effective,
        log_level=log_level.lower(),
        timeout_graceful_shutdown=graceful_timeout,
    )
