"""
CLI: ``flowspine compile`` — inject content store payloads.

Usage::

    flowspine compile flows/orders.json          # print compiled JSON
    flowspine compile flows/orders.json --save   # write dist/orders.json
    flowspine compile --all --save               # every workflow
"""

from __future__ import annotations

from pathlib import Path

import typer

from flowspine.cli.utils import console, err_console, fail, print_json, settings_from
from flowspine.compiler import WorkflowCompiler
from flowspine.compiler.documents import dumps_document
from flowspine.core.errors import FlowSpineError


def compile_command(
    ctx: typer.Context,
    file: Path | None = typer.Argument(None, help="Workflow file to compile."),
    all_files: bool = typer.Option(False, "--all", "-a", help="Compile every workflow under flows/."),
    save: bool = typer.Option(False, "--save", "-s", help="Write compiled documents to dist/."),
    json_out: bool = typer.Option(False, "--json", help="Output a summary as JSON."),
) -> None:
    """Compile workflows by injecting externalized content."""
    settings = settings_from(ctx)
    compiler = WorkflowCompiler.from_settings(settings)

    if all_files == (file is not None):
        err_console.print("[red]Give exactly one of FILE or --all.[/red]")
        raise typer.Exit(code=2)

    try:
        if all_files:
            summary = compiler.compile_all(save=save)
        else:
            result = compiler.compile_file(file)
            saved = compiler.save_compiled(result.document, file.name) if save else None
    except FlowSpineError as exc:
        fail(exc)
        return

    if all_files:
        if json_out:
            print_json(
                {
                    "compiled": [p.name for p in summary.compiled],
                    "failed": {p.name: e.message for p, e in summary.failed.items()},
                    "saved": [str(p) for p in summary.saved],
                    "warnings": summary.warnings,
                }
            )
        else:
            console.print(f"Compiled {len(summary.compiled)} workflow(s)")
            for path, error in summary.failed.items():
                console.print(f"  [red]✗[/red] {path.name}: {error.message}")
            for warning in summary.warnings:
                console.print(f"  [yellow]![/yellow] {warning}")
            for path in summary.saved:
                console.print(f"  [green]✓[/green] saved {path}")
        if summary.failed:
            raise typer.Exit(code=1)
        return

    if json_out:
        print_json(
            {
                "file": str(file),
                "injected": [
                    {"node": i.node, "kind": i.kind.value, "key": i.key, "field": i.field}
                    for i in result.injected
                ],
                "warnings": result.warnings,
                "saved": str(saved) if saved else None,
            }
        )
    elif saved:
        console.print(f"[green]✓[/green] {file.name} → {saved}")
        for warning in result.warnings:
            console.print(f"  [yellow]![/yellow] {warning}")
    else:
        typer.echo(dumps_document(result.document), nl=False)
