"""CLI command for running a standalone invalidation consumer.

Usage:
    techpress consume
    techpress consume --group comments-cache --no-rebuild
"""

from __future__ import annotations

import asyncio
import logging
import signal

import typer

from techpress import runtime
from techpress.config import settings
from techpress.observability import configure_logging
from techpress.persistence.db import close_db

app = typer.Typer(help="Run a standalone invalidation consumer")

logger = logging.getLogger(__name__)


async def run_consumer() -> None:
    """Consume until SIGINT or SIGTERM, then stop gracefully."""
    shutdown = asyncio.Event()
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGTERM, signal.SIGINT):
        loop.add_signal_handler(sig, shutdown.set)

    if not await runtime.connect_cache():
        logger.warning("Redis unavailable at startup; consumer will retry")

    await runtime.start_consumer()
    try:
        await shutdown.wait()
        logger.info("Received shutdown signal")
    finally:
        await runtime.shutdown()
        await close_db()


@app.callback(invoke_without_command=True)
def consume(
    group: str | None = typer.Option(
        None,
        "--group",
        "-g",
        help="Consumer group (default: <service_name>-cache)",
    ),
    rebuild: bool = typer.Option(
        settings.rebuild_on_invalidate,
        "--rebuild/--no-rebuild",
        help="Rebuild the default blog list after invalidations",
    ),
) -> None:
    """Run the invalidation consumer without the HTTP API."""
    if group:
        settings.invalidation_group = group
    settings.rebuild_on_invalidate = rebuild

    configure_logging(json_format=settings.env != "dev", level=settings.log_level)
    typer.echo(f"Consuming {settings.invalidation_stream} as group {settings.consumer_group}")
    asyncio.run(run_consumer())
