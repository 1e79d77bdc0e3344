"""CLI command for publishing an invalidation event by hand.

Usage:
    techpress publish "blog:42" "comments:42"
    techpress publish "blogs:*:*"
"""

from __future__ import annotations

import asyncio

import typer

from techpress import runtime
from techpress.invalidation.queue import QueueError
from techpress.invalidation.schemas import InvalidationEvent

app = typer.Typer(help="Publish a cache invalidation event")


async def publish_keys(keys: list[str], source: str) -> str:
    """Publish one event straight to the queue and return its message ID."""
    try:
        if not await runtime.connect_cache():
            raise QueueError("Redis is unavailable")
        event = InvalidationEvent(keys=tuple(keys), source=source)
        return await runtime.get_queue().publish(event.to_bytes())
    finally:
        await runtime.shutdown()


@app.callback(invoke_without_command=True)
def publish(
    keys: list[str] = typer.Argument(..., help="Cache keys or glob patterns"),
    source: str = typer.Option("cli", "--source", help="Publisher name recorded on the event"),
) -> None:
    """Announce that the given keys or patterns are stale."""
    try:
        message_id = asyncio.run(publish_keys(keys, source))
    except QueueError as e:
        typer.echo(f"Publish failed: {e}", err=True)
        raise typer.Exit(code=1)

    typer.echo(f"Published {message_id}: {', '.join(keys)}")
