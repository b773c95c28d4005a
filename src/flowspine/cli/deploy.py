"""
CLI: ``flowspine deploy`` — publish workflows through the external tool.

Usage::

    flowspine deploy --changed                 # default
    flowspine deploy --all --activate
    flowspine deploy --file orders.json --json
"""

from __future__ import annotations

from pathlib import Path

import typer

from flowspine.cli.utils import err_console, fail, print_json, settings_from
from flowspine.core.errors import FlowSpineError
from flowspine.deploy import DeploymentOrchestrator, Selection


def deploy_command(
    ctx: typer.Context,
    file: Path | None = typer.Option(None, "--file", "-f", help="Publish one workflow file."),
    all_files: bool = typer.Option(False, "--all", "-a", help="Publish every workflow."),
    changed: bool = typer.Option(False, "--changed", "-c", help="Publish changed workflows (default)."),
    activate: bool = typer.Option(False, "--activate", help="Activate workflows after import."),
    save_compiled: bool = typer.Option(False, "--save-compiled", help="Also write compiled documents to dist/."),
    timeout: float | None = typer.Option(None, "--timeout", "-t", help="Per-workflow timeout in seconds."),
    json_out: bool = typer.Option(False, "--json", help="Output the report as JSON."),
) -> None:
    """Compile and publish workflows concurrently."""
    if sum([file is not None, all_files, changed]) > 1:
        err_console.print("[red]Use only one of --file, --all, --changed.[/red]")
        raise typer.Exit(code=2)

    if file is not None:
        selection = Selection.single(file)
    elif all_files:
        selection = Selection.all()
    else:
        selection = Selection.changed()

    orchestrator = DeploymentOrchestrator.from_settings(settings_from(ctx))
    update: dict[str, object] = {"activate": activate, "save_compiled": save_compiled}
    if timeout is not None:
        update["timeout_seconds"] = timeout
    options = orchestrator.options.model_copy(update=update)

    try:
        report = orchestrator.run(selection, options)
    except FlowSpineError as exc:
        fail(exc)
        return

    if json_out:
        print_json(
            {
                **report.model_dump(mode="json", exclude={"outcomes"}),
                "succeeded": report.succeeded,
                "failed": report.failed,
                "outcomes": [o.model_dump(mode="json") for o in report.outcomes],
            }
        )
    else:
        typer.echo(report.render(), nl=False)

    if not report.ok:
        raise typer.Exit(code=1)
