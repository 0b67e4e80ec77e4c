"""xcp build / xcp test commands."""

import click

from xcplane.cli.utils import echo_json, get_app, handle_errors, run_async
from xcplane.workflows.build import BuildRequest, TestRequest

_PROJECT_PATH = click.Path(exists=True, file_okay=True, dir_okay=True)


def _common_options(fn):  # type: ignore[no-untyped-def]
    options = [
        click.argument("project_path", type=_PROJECT_PATH),
        click.option("-s", "--scheme", required=True, help="Scheme to build"),
        click.option("-c", "--configuration", default=None, help="Build configuration"),
        click.option("-d", "--destination", default=None, help="xcodebuild -destination"),
        click.option("--sdk", default=None, help="SDK (e.g. iphonesimulator, macosx)"),
        click.option("--derived-data-path", default=None, help="Derived data directory"),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


@click.command()
@_common_options
@click.option("--auto-install", is_flag=True, help="Install the app on a simulator after a successful build")
@click.option("--simulator-udid", default=None, help="Simulator to install to (default: best match)")
@click.option("--no-boot", is_flag=True, help="Do not boot the simulator before installing")
@click.pass_context
def build_command(
    ctx: click.Context,
    project_path: str,
    scheme: str,
    configuration: str | None,
    destination: str | None,
    sdk: str | None,
    derived_data_path: str | None,
    auto_install: bool,
    simulator_udid: str | None,
    no_boot: bool,
) -> None:
    """Build an Xcode project with learned defaults.

    PROJECT_PATH is the .xcodeproj or .xcworkspace to build.
    """
    app = get_app(ctx)
    request = BuildRequest(
        project_path=project_path,
        scheme=scheme,
        configuration=configuration,
        destination=destination,
        sdk=sdk,
        derived_data_path=derived_data_path,
        auto_install=auto_install,
        simulator_udid=simulator_udid,
        boot_simulator=not no_boot,
    )
    with handle_errors():
        result = run_async(app.workflow.build(request))
    echo_json(result)
    if not result["success"]:
        ctx.exit(1)


@click.command()
@_common_options
@click.option("--only-testing", multiple=True, help="Restrict to a test identifier (repeatable)")
@click.pass_context
def test_command(
    ctx: click.Context,
    project_path: str,
    scheme: str,
    configuration: str | None,
    destination: str | None,
    sdk: str | None,
    derived_data_path: str | None,
    only_testing: tuple[str, ...],
) -> None:
    """Run the tests of an Xcode project."""
    app = get_app(ctx)
    request = TestRequest(
        project_path=project_path,
        scheme=scheme,
        configuration=configuration,
        destination=destination,
        sdk=sdk,
        derived_data_path=derived_data_path,
        only_testing=only_testing,
    )
    with handle_errors():
        result = run_async(app.workflow.test(request))
    echo_json(result)
    if not result["success"]:
        ctx.exit(1)
