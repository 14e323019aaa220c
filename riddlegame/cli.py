import asyncio
import logging
from typing import Optional

import click
import uvicorn

from .db import settings


def _configure_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@click.group()
@click.option("--log-level", default=None, help="Overrides LOG_LEVEL.")
@click.pass_context
def cli(ctx: click.Context, log_level: Optional[str]):
    """Riddle game server and console client."""
    ctx.ensure_object(dict)
    ctx.obj["log_level"] = log_level


@cli.command()
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, type=int, show_default=True)
@click.pass_context
def serve(ctx: click.Context, host: str, port: int):
    """Run the HTTP API."""
    level = ctx.obj["log_level"] or settings.LOG_LEVEL
    _configure_logging(level)
    uvicorn.run("riddlegame.main:app", host=host, port=port, log_level=level.lower())


@cli.command()
@click.option("--api-url", default=None, help="Overrides API_URL.")
@click.pass_context
def play(ctx: click.Context, api_url: Optional[str]):
    """Play in the terminal against a running server."""
    from .client import RemoteGateway
    from .console import ClickConsole
    from .play import GameShell
    from .session import FailurePolicy, FileSessionStore

    # keep log lines out of the prompts unless asked for
    _configure_logging(ctx.obj["log_level"] or "WARNING")

    store = FileSessionStore(settings.TOKEN_FILE)
    shell = GameShell(
        RemoteGateway(store, base_url=api_url),
        store,
        ClickConsole(),
        filter_solved=settings.FILTER_SOLVED,
        failure_policy=FailurePolicy.parse(settings.AUTH_FAILURE_POLICY),
    )
    ctx.exit(asyncio.run(shell.run()))


@cli.command()
@click.pass_context
def seed(ctx: click.Context):
    """Add the starter riddles to the configured store."""
    from .catalog import catalog

    _configure_logging(ctx.obj["log_level"] or settings.LOG_LEVEL)
    created = asyncio.run(catalog.seed())
    click.echo(f"Seeded {created} riddles.")


if __name__ == "__main__":
    cli()
