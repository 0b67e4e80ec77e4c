"""xcp cache commands - inspect and clear cached state."""

import click
import questionary
from rich.console import Console

from xcplane.cli.utils import echo_json, get_app


@click.group()
def cache_group() -> None:
    """Inspect or clear cached responses and learned preferences."""


@cache_group.command("stats")
@click.pass_context
def stats_command(ctx: click.Context) -> None:
    """Show cache statistics."""
    app = get_app(ctx)
    snapshot = app.simulators.snapshot
    echo_json(
        {
            "responses": app.responses.get_stats(),
            "projects": {
                path: app.projects.get_build_trends(path) for path in app.projects.projects()
            },
            "simulators": {
                "cached": snapshot is not None,
                "devices": sum(1 for _ in snapshot.all_devices()) if snapshot else 0,
            },
        }
    )


@cache_group.command("clear")
@click.option("-y", "--yes", is_flag=True, help="Skip confirmation prompt")
@click.option("--responses-only", is_flag=True, help="Keep learned project preferences")
@click.pass_context
def clear_command(ctx: click.Context, yes: bool, responses_only: bool) -> None:
    """Drop cached responses and learned project preferences."""
    console = Console(stderr=True)
    if not yes:
        answer = questionary.select(
            "Clear cached xcplane state?",
            choices=[
                questionary.Choice("No, keep it", value=False),
                questionary.Choice("Yes, clear it", value=True),
            ],
        ).ask()
        if not answer:
            console.print("[dim]Cancelled[/dim]")
            return

    app = get_app(ctx)
    app.responses.clear()
    if not responses_only:
        app.projects.clear()
        app.simulators.invalidate()
    console.print("[green]✓[/green] Cache cleared")
