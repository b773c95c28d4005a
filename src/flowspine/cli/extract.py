"""
CLI: ``flowspine extract`` — move inline payloads into nodes/.

Usage::

    flowspine extract flows/orders.json
    flowspine extract --all
"""

from __future__ import annotations

from pathlib import Path

import typer

from flowspine.cli.utils import console, err_console, fail, settings_from
from flowspine.compiler import ContentExtractor, discover_workflows
from flowspine.core.errors import FlowSpineError, WorkflowStructureError


def extract_command(
    ctx: typer.Context,
    file: Path | None = typer.Argument(None, help="Workflow file to extract from."),
    all_files: bool = typer.Option(False, "--all", "-a", help="Extract from every workflow under flows/."),
    dry_run: bool = typer.Option(False, "--dry-run", help="Write content files but leave workflows untouched."),
) -> None:
    """Extract inline scripts, prompts and queries into content files."""
    settings = settings_from(ctx)
    extractor = ContentExtractor.from_settings(settings)

    if all_files == (file is not None):
        err_console.print("[red]Give exactly one of FILE or --all.[/red]")
        raise typer.Exit(code=2)

    files = discover_workflows(settings.flows_path) if all_files else [file]
    failures = 0
    for path in files:
        try:
            result = extractor.extract_file(path, write=not dry_run)
        except WorkflowStructureError as exc:
            failures += 1
            console.print(f"[red]✗[/red] {path.name}: {exc.message}")
            continue
        except FlowSpineError as exc:
            fail(exc)
            return
        if not result.extracted:
            console.print(f"[dim]-[/dim] {path.name}: nothing to extract")
            continue
        console.print(f"[green]✓[/green] {path.name}: {len(result.extracted)} payload(s)")
        for item in result.extracted:
            console.print(f"    {item.node} → {item.path}")

    if failures:
        raise typer.Exit(code=1)
