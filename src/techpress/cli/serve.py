"""CLI command for running the API server.

Usage:
    techpress serve
    techpress serve --port 5002 --host 0.0.0.0
    techpress serve --no-consumer --log-level debug
"""

from __future__ import annotations

import os

import typer

from techpress.config import settings

app = typer.Typer(help="Run the techpress API server")


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
    consumer: bool = typer.Option(
        True,
        "--consumer/--no-consumer",
        help="Run the invalidation consumer inside each worker",
    ),
) -> None:
    """Run the techpress API server.

    Starts the uvicorn server with the FastAPI application.
    """
    import uvicorn

    workers_effective = workers if not reload else 1  # Reload requires single worker
    # Worker processes re-read settings from the environment
    os.environ["CONSUMER_ENABLED"] = "true" if consumer else "false"
    settings.consumer_enabled = consumer

    typer.echo("Starting techpress server...")
    typer.echo(f"  Host: {host}")
    typer.echo(f"  Port: {port}")
    typer.echo(f"  Workers: {workers_effective}")
    typer.echo(f"  Consumer: {'enabled' if consumer else 'disabled'}")
    typer.echo()

    uvicorn.run(
        app="techpress.api.app:create_app",
        factory=True,
        host=host,
        port=port,
        reload=reload,
        workers=workers_effective,
        log_level=log_level.lower(),
    )
