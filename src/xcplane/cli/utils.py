"""CLI utilities."""

import asyncio
import json
from collections.abc import Coroutine, Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

import click

from xcplane.app import XcPlane
from xcplane.config.loader import load_config
from xcplane.core.errors import XcPlaneError
from xcplane.core.logging import configure_logging

T = TypeVar("T")


def get_app(ctx: click.Context) -> XcPlane:
    """Build the composition root once per invocation.

    Persisted cache state is loaded up front and pending saves are flushed
    when the click context closes.
    """
    root = ctx.find_root()
    root.ensure_object(dict)
    app = root.obj.get("app")
    if app is not None:
        return app

    config_path: Path | None = root.obj.get("config_path")
    with handle_errors():
        config = load_config(config_path)
    configure_logging(config=config.logging, level="DEBUG" if root.obj.get("verbose") else None)
    app = XcPlane.create(config)
    app.restore()
    root.obj["app"] = app
    root.call_on_close(app.close)
    return app


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    return asyncio.run(coro)


def echo_json(data: Any) -> None:
    """Write a JSON response to stdout."""
    click.echo(json.dumps(data, indent=2, default=str))


@contextmanager
def handle_errors() -> Iterator[None]:
    """Turn xcplane errors into click errors (exit code 1, message on stderr)."""
    try:
        yield
    except XcPlaneError as e:
        raise click.ClickException(str(e)) from e
