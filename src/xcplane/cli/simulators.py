"""xcp simulators command - list simulators."""

import click
from rich.console import Console
from rich.table import Table

from xcplane.cli.utils import echo_json, get_app, handle_errors, run_async
from xcplane.models import SimulatorListing
from xcplane.parsing.simctl import SimulatorFilters, filter_listing, format_runtime_name


def _make_simulator_table(listing: SimulatorListing) -> Table:
    table = Table(box=None, padding=(0, 2), pad_edge=False)
    table.add_column("Name", style="bold")
    table.add_column("Runtime")
    table.add_column("State")
    table.add_column("UDID", style="dim")

    for runtime, devices in listing.devices.items():
        for device in devices:
            state = "[green]Booted[/green]" if device.is_booted else device.state
            if not device.is_available:
                state = "[red]unavailable[/red]"
            table.add_row(device.name, format_runtime_name(runtime), state, device.udid)
    return table


@click.command()
@click.option("--device-type", default=None, help="Name fragment, e.g. iPhone")
@click.option("--runtime", default=None, help="Runtime fragment, e.g. 'iOS 18'")
@click.option("--available-only", is_flag=True, help="Hide unavailable devices")
@click.option("--refresh", is_flag=True, help="Ignore the cached listing")
@click.option("--json", "as_json", is_flag=True, help="Output the summary response as JSON")
@click.pass_context
def simulators_command(
    ctx: click.Context,
    device_type: str | None,
    runtime: str | None,
    available_only: bool,
    refresh: bool,
    as_json: bool,
) -> None:
    """List simulators, most relevant first."""
    app = get_app(ctx)
    filters = SimulatorFilters(
        device_type=device_type, runtime=runtime, available_only=available_only
    )
    with handle_errors():
        response = run_async(app.workflow.list_simulators(filters, force_refresh=refresh))

    if as_json:
        echo_json(response)
        return

    snapshot = app.simulators.snapshot
    console = Console()
    if snapshot is not None:
        console.print(_make_simulator_table(filter_listing(snapshot, filters)))
    for line in response["next_steps"]:
        console.print(f"[dim]{line}[/dim]")
