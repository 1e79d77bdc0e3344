"""CLI commands for techpress.

Provides command-line interface using Typer:
- techpress serve: Run the API server (with an embedded invalidation consumer)
- techpress consume: Run a standalone invalidation consumer
- techpress publish: Publish an invalidation event by hand

Usage:
    techpress --help
    techpress serve --port 5002
    techpress consume
    techpress publish "blog:42" "blogs:*:*"
"""

import typer

from techpress.cli.consume import app as consume_app
from techpress.cli.publish import app as publish_app
from techpress.cli.serve import app as serve_app

# Main CLI application
app = typer.Typer(
    name="techpress",
    help="techpress: blog service with shared cache invalidation",
    no_args_is_help=True,
)

app.add_typer(serve_app, name="serve")
app.add_typer(consume_app, name="consume")
app.add_typer(publish_app, name="publish")


@app.callback()
def callback() -> None:
    """techpress: blog service with shared cache invalidation."""
    pass


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
