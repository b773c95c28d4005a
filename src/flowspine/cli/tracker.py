"""
CLI: ``flowspine tracker`` — inspect and maintain the change-tracker ledger.

Usage::

    flowspine tracker status [--json]
    flowspine tracker prune     # drop records of deleted workflows
    flowspine tracker reset     # everything counts as changed
    flowspine tracker clear     # delete the ledger file
"""

from __future__ import annotations

import typer

from flowspine.cli.utils import console, fail, print_json, print_table, settings_from
from flowspine.core.errors import FlowSpineError
from flowspine.deploy import ChangeTracker

app = typer.Typer(no_args_is_help=True)


@app.command("status")
def status_command(
    ctx: typer.Context,
    json_out: bool = typer.Option(False, "--json", help="Output as JSON."),
    table: bool = typer.Option(False, "--table", help="Render a table instead of the text report."),
) -> None:
    """Show which workflows are deployed, pending or modified."""
    tracker = ChangeTracker.from_settings(settings_from(ctx))
    try:
        if json_out:
            status = tracker.status()
            print_json(
                {
                    "total": status.total,
                    "deployed": status.deployed,
                    "pending": status.pending,
                    "workflows": [
                        {"name": w.name, "path": w.path, "status": w.state.value, "deployed_at": w.deployed_at}
                        for w in status.workflows
                    ],
                    "orphaned": status.orphaned,
                }
            )
        elif table:
            status = tracker.status()
            print_table(
                [
                    {"workflow": w.name, "status": w.state.value, "deployed_at": w.deployed_at or "-"}
                    for w in status.workflows
                ],
                title="Workflow Deployment Status",
            )
        else:
            typer.echo(tracker.details(), nl=False)
    except FlowSpineError as exc:
        fail(exc)


@app.command("prune")
def prune_command(ctx: typer.Context) -> None:
    """Remove ledger records whose workflow file no longer exists."""
    tracker = ChangeTracker.from_settings(settings_from(ctx))
    try:
        removed = tracker.prune()
    except FlowSpineError as exc:
        fail(exc)
        return
    console.print(f"Pruned {len(removed)} record(s)")


@app.command("reset")
def reset_command(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    """Forget all records; the next --changed deploy publishes everything."""
    if not yes:
        typer.confirm("Mark every workflow as changed?", abort=True)
    tracker = ChangeTracker.from_settings(settings_from(ctx))
    try:
        tracker.reset()
    except FlowSpineError as exc:
        fail(exc)
        return
    console.print("Ledger reset")


@app.command("clear")
def clear_command(
    ctx: typer.Context,
    yes: bool = typer.Option(False, "--yes", "-y", help="Skip confirmation."),
) -> None:
    """Delete the ledger file."""
    if not yes:
        typer.confirm("Delete the change-tracker ledger?", abort=True)
    tracker = ChangeTracker.from_settings(settings_from(ctx))
    try:
        tracker.clear()
    except FlowSpineError as exc:
        fail(exc)
        return
    console.print("Ledger cleared")
