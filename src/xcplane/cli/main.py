"""xcplane CLI - xcp command."""

from pathlib import Path

import click

from xcplane.cli.build import build_command, test_command
from xcplane.cli.cache import cache_group
from xcplane.cli.details import details_command
from xcplane.cli.simulators import simulators_command
from xcplane.core.logging import configure_logging


@click.group()
@click.version_option(version="0.1.0", prog_name="xcp")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging")
@click.option(
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Config file (default: ~/.config/xcplane/config.yaml)",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """xcplane - smart defaults and cached output for Xcode command-line tools."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["config_path"] = config_path
    configure_logging(level="DEBUG" if verbose else None)


cli.add_command(build_command, name="build")
cli.add_command(test_command, name="test")
cli.add_command(details_command, name="details")
cli.add_command(simulators_command, name="simulators")
cli.add_command(cache_group, name="cache")


if __name__ == "__main__":
    cli()
