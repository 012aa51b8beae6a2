"""CLI entry point for ddnsd."""

from pathlib import Path

import click

from ddnsd import __version__
from ddnsd.config import describe, load_config
from ddnsd.errors import ConfigError
from ddnsd.logging import setup_logging


@click.group()
@click.option(
    "--config",
    "-c",
    type=click.Path(exists=False, path_type=Path),
    default=None,
    help="Path to config file.",
)
@click.pass_context
def main(ctx: click.Context, config: Path | None) -> None:
    """ddnsd - push public IP changes to DNS and HTTP destinations."""
    ctx.ensure_object(dict)
    ctx.obj["config_path"] = config


def _load(ctx: click.Context):
    try:
        config = load_config(ctx.obj["config_path"])
    except ConfigError as e:
        click.echo(f"Config error: {e}", err=True)
        raise SystemExit(1)
    setup_logging(config)
    return config


@main.command()
@click.pass_context
def run(ctx: click.Context) -> None:
    """Run the daemon in the foreground."""
    import asyncio

    from ddnsd.daemon import Daemon

    config = _load(ctx)

    async def _run():
        daemon = Daemon(config=config)
        try:
            await daemon.start()
            click.echo("Daemon started, press Ctrl+C to stop")
            await daemon.run_forever()
        except OSError as e:
            click.echo(f"Startup error: {e}", err=True)
            raise SystemExit(1)
        finally:
            await daemon.stop()

    try:
        asyncio.run(_run())
    except KeyboardInterrupt:
        pass


@main.command("check-config")
@click.pass_context
def check_config(ctx: click.Context) -> None:
    """Validate the config file and show what is enabled."""
    config = _load(ctx)
    for line in describe(config):
        click.echo(line)


@main.command()
def version() -> None:
    """Show version."""
    click.echo(f"ddnsd version {__version__}")
