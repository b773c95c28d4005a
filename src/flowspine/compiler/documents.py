"""
Workflow documents: parsing, structural validation, discovery, formatting.

Documents are kept as plain dictionaries so that every key the host tool
understands survives a compile/extract cycle untouched. Pydantic models
are used only to check the structure the compiler relies on (a list of
node objects, each with an optional parameter mapping); anything else is
passed through.

Tags:
    workflow, document, json, validation, flow-spine
"""

from __future__ import annotations

import json
import re
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from flowspine.compiler.kinds import REFERENCE_KEY
from flowspine.core.errors import WorkflowStructureError

WORKFLOW_SUFFIX = ".json"
EXCLUDED_FILES = frozenset({"package.json", "workflow_package.json"})

_NODE_PRIORITY = ("id", "name", "type", "typeVersion", "position")
_DOCUMENT_PRIORITY = ("id", "name")


class NodeModel(BaseModel):
    """Structural view of a node."""

    model_config = ConfigDict(extra="allow")

    name: str | None = None
    type: str | None = None
    parameters: dict[str, Any] | None = None


class WorkflowModel(BaseModel):
    """Structural view of a workflow document."""

    model_config = ConfigDict(extra="allow")

    id: str | int | None = None
    name: str | None = None
    active: bool | None = None
    nodes: list[NodeModel] = Field(default_factory=list)
    connections: dict[str, Any] | None = None
    settings: dict[str, Any] | None = None


def validate_document(document: Any, *, source: str | None = None) -> dict[str, Any]:
    """Check that ``document`` has the structure the compiler relies on.

    Returns the document itself (not a re-serialized copy).

    Raises:
        WorkflowStructureError: If the document is not a JSON object or its
            nodes/parameters have the wrong shape.
    """
    if not isinstance(document, dict):
        raise WorkflowStructureError(
            f"Workflow document must be a JSON object, got {type(document).__name__}"
        ).with_context(workflow=source)
    try:
        WorkflowModel.model_validate(document)
    except ValidationError as exc:
        first = exc.errors()[0]
        location = ".".join(str(part) for part in first["loc"])
        raise WorkflowStructureError(
            f"Malformed workflow document at {location}: {first['msg']}", cause=exc
        ).with_context(workflow=source)
    return document


def parse_document(raw: str | bytes, *, source: str | None = None) -> dict[str, Any]:
    """Parse and validate a workflow document.

    Raises:
        WorkflowStructureError: On invalid JSON, encoding, or structure.
    """
    try:
        document = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        raise WorkflowStructureError(f"Unparseable workflow document: {exc}", cause=exc).with_context(
            workflow=source
        )
    return validate_document(document, source=source)


def load_document(path: str | Path) -> tuple[bytes, dict[str, Any]]:
    """Read a workflow file, returning its raw bytes and parsed document."""
    path = Path(path)
    raw = path.read_bytes()
    return raw, parse_document(raw, source=str(path))


def workflow_id_from_path(path: str | Path) -> str:
    """Stable identifier derived from a workflow file's base name.

    >>> workflow_id_from_path("flows/Order Intake.json")
    'order-intake'
    """
    stem = Path(path).name
    if stem.endswith(WORKFLOW_SUFFIX):
        stem = stem[: -len(WORKFLOW_SUFFIX)]
    return re.sub(r"[^a-z0-9-]", "-", stem.lower())


def sanitize_name(name: str) -> str:
    """Lowercase, runs of other characters collapsed to ``_``."""
    return re.sub(r"[^a-z0-9]+", "_", name.lower()).strip("_")


def discover_workflows(flows_path: str | Path) -> list[Path]:
    """Workflow files directly under ``flows_path``, sorted by name."""
    flows_path = Path(flows_path)
    if not flows_path.is_dir():
        return []
    return sorted(
        p
        for p in flows_path.iterdir()
        if p.is_file() and p.suffix == WORKFLOW_SUFFIX and p.name not in EXCLUDED_FILES
    )


def has_content_reference(document: dict[str, Any]) -> bool:
    """True when any node still carries a content reference."""
    for node in document.get("nodes") or []:
        params = node.get("parameters") or {}
        if params.get(REFERENCE_KEY):
            return True
    return False


# ── Formatting ───────────────────────────────────────────────────────────


def _ordered(value: Any, priority: tuple[str, ...]) -> Any:
    if isinstance(value, list):
        return [_ordered(item, priority) for item in value]
    if not isinstance(value, dict):
        return value
    ordered: dict[str, Any] = {}
    for key in priority:
        if key in value:
            ordered[key] = value[key]
    for key, item in value.items():
        if key not in ordered:
            ordered[key] = item
    return ordered


def order_document(document: dict[str, Any]) -> dict[str, Any]:
    """Copy of ``document`` with ``id``/``name`` first and node keys in priority order."""
    ordered = _ordered(document, _DOCUMENT_PRIORITY)
    if isinstance(ordered.get("nodes"), list):
        ordered["nodes"] = [_ordered(node, _NODE_PRIORITY) for node in ordered["nodes"]]
    return ordered


def dumps_document(document: dict[str, Any], indent: int = 2) -> str:
    """Serialize a workflow document with stable key ordering."""
    return json.dumps(order_document(document), indent=indent, ensure_ascii=False) + "\n"
