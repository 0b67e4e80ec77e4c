"""xcp details command - progressive disclosure of cached output."""

import click

from xcplane.cli.utils import echo_json, get_app, handle_errors
from xcplane.workflows.build import DEFAULT_DETAIL_LINES, DETAIL_TYPES


@click.command()
@click.argument("handle")
@click.option(
    "-t",
    "--type",
    "detail_type",
    type=click.Choice(DETAIL_TYPES),
    default="full-log",
    show_default=True,
    help="What to show",
)
@click.option("--max-lines", type=int, default=DEFAULT_DETAIL_LINES, show_default=True)
@click.pass_context
def details_command(ctx: click.Context, handle: str, detail_type: str, max_lines: int) -> None:
    """Show full details for a build, test or listing HANDLE."""
    app = get_app(ctx)
    with handle_errors():
        echo_json(app.workflow.get_details(handle, detail_type, max_lines=max_lines))
