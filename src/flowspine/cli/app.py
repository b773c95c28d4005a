"""
Root Typer application for the flow-spine CLI.

Usage::

    flowspine compile --all --save        # inject content into dist/
    flowspine extract flows/orders.json   # move inline payloads to nodes/
    flowspine deploy --changed            # publish what changed
    flowspine deploy --file orders.json --activate
    flowspine tracker status              # ledger vs working tree
"""

from __future__ import annotations

from pathlib import Path

import typer
from pydantic import ValidationError
from typer import Typer

from flowspine.cli.utils import fail
from flowspine.core.errors import ConfigurationError
from flowspine.core.logging import configure_logging
from flowspine.core.settings import FlowSpineSettings

app = Typer(
    name="flowspine",
    help="flow-spine — externalized workflow content and concurrent publishing.",
    no_args_is_help=True,
    rich_markup_mode="rich",
)


# ── Version callback ─────────────────────────────────────────────────────


def _version_callback(value: bool) -> None:
    if value:
        from flowspine import __version__

        typer.echo(f"flow-spine {__version__}")
        raise typer.Exit()


@app.callback()
def main(
    ctx: typer.Context,
    root: Path | None = typer.Option(
        None, "--root", "-r", help="Managed root holding flows/ and nodes/ (default: cwd)."
    ),
    log_level: str | None = typer.Option(None, "--log-level", help="DEBUG, INFO, WARNING, ERROR."),
    version: bool | None = typer.Option(  # noqa: UP007
        None,
        "--version",
        "-V",
        help="Show version and exit.",
        callback=_version_callback,
        is_eager=True,
    ),
) -> None:
    """flow-spine CLI — compile, extract, deploy and track workflows."""
    overrides: dict[str, object] = {}
    if root is not None:
        overrides["workflows_path"] = root
    if log_level is not None:
        overrides["log_level"] = log_level
    try:
        settings = FlowSpineSettings(**overrides)
    except ValidationError as exc:
        fail(
            ConfigurationError(
                f"Invalid settings: {exc}",
                cause=exc,
                remediation="Check FLOWSPINE_* environment variables, .env and command-line flags.",
            )
        )
        return
    configure_logging(level=settings.log_level, json_format=settings.log_json)
    ctx.obj = settings


# ── Sub-command registration ─────────────────────────────────────────────

from flowspine.cli.compile import compile_command  # noqa: E402
from flowspine.cli.deploy import deploy_command  # noqa: E402
from flowspine.cli.extract import extract_command  # noqa: E402
from flowspine.cli.tracker import app as tracker_app  # noqa: E402
from flowspine.cli.tracker import status_command as tracker_status_command  # noqa: E402

app.command("compile")(compile_command)
app.command("extract")(extract_command)
app.command("deploy")(deploy_command)
app.add_typer(tracker_app, name="tracker", help="Change-tracker ledger.")
app.command("status")(tracker_status_command)
