"""
CLI utility helpers: settings, output formatting and error rendering.
"""

from __future__ import annotations

import json
from dataclasses import asdict
from typing import Any

import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from flowspine.core.errors import FlowSpineError
from flowspine.core.settings import FlowSpineSettings, get_settings

console = Console()
err_console = Console(stderr=True)


# ── Settings helper ──────────────────────────────────────────────────────


def settings_from(ctx: typer.Context) -> FlowSpineSettings:
    """Settings built by the root callback, or the process defaults."""
    if isinstance(ctx.obj, FlowSpineSettings):
        return ctx.obj
    return get_settings()


# ── Output helpers ───────────────────────────────────────────────────────


def _to_dict(obj: Any) -> dict[str, Any]:
    """Convert dataclass / pydantic model / dict to plain dict."""
    if hasattr(obj, "model_dump"):
        return obj.model_dump(mode="json")
    if hasattr(obj, "__dataclass_fields__"):
        return asdict(obj)
    if isinstance(obj, dict):
        return obj
    return {"value": str(obj)}


def print_json(payload: Any) -> None:
    if isinstance(payload, list | tuple):
        payload = [_to_dict(item) for item in payload]
    elif not isinstance(payload, dict):
        payload = _to_dict(payload)
    console.print_json(json.dumps(payload, default=str))


def print_table(rows: list[dict[str, Any]], *, title: str = "") -> None:
    """Render a list of dicts as a Rich table."""
    if not rows:
        console.print("[dim]No items.[/dim]")
        return
    table = Table(title=title or None, show_lines=False, pad_edge=False)
    for col in rows[0]:
        table.add_column(col, overflow="fold")
    for row in rows:
        table.add_row(*(str(v) for v in row.values()))
    console.print(table)


def fail(error: FlowSpineError) -> None:
    """Print a flow-spine error (with remediation) and exit 1."""
    err_console.print(
        f"[bold red]Error[/bold red] ({error.category.value}): {escape(error.message)}"
    )
    if error.remediation:
        err_console.print(f"[yellow]{escape(error.remediation)}[/yellow]")
    raise typer.Exit(code=1)
