"""
Content compiler: inject externalized payloads back into workflow documents.

Manifesto:
    - **Read-only store:** Compilation never writes to the content store
    - **Best effort:** A missing content file leaves its node untouched and
      is reported as a warning; only a structurally broken document fails
    - **Idempotent:** Each injected reference is removed, so compiling the
      output again changes nothing (given the same clock)
    - **Exhaustive dispatch:** Every (kind, node class) pair has a strategy

Architecture:
    ::

        workflow document ──► validate ──► deep copy
                                             │
                    for each node with parameters.nodeContent
                                             │
                ┌────────────────────────────┼─────────────────────────┐
                ▼                            ▼                         ▼
        parse_reference()          ContentStore.read()        strategy_for(kind, shape)
        (refs, hints, rejects)     (None ⇒ soft miss)         writes the payload field
                                             │
                                             ▼
                              stamp metadata (id, active, settings,
                              connections, createdAt, updatedAt)
                                             │
                                             ▼
                                    CompilationResult

Examples:
    >>> compiler = WorkflowCompiler(ContentStore("/srv/automations/nodes"))
    >>> result = compiler.compile(document, source_name="orders.json")
    >>> result.missing
    []

Tags:
    compiler, injection, content-store, flow-spine
"""

from __future__ import annotations

import copy
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from flowspine.compiler.documents import (
    discover_workflows,
    dumps_document,
    has_content_reference,
    parse_document,
    validate_document,
    workflow_id_from_path,
)
from flowspine.compiler.kinds import HINT_KEYS, REFERENCE_KEY, ContentKind, parse_reference
from flowspine.compiler.nodes import shape_for
from flowspine.compiler.store import ContentStore
from flowspine.compiler.strategies import strategy_for
from flowspine.core.errors import (
    ContentStoreError,
    InfrastructureError,
    WorkflowNotFoundError,
    WorkflowStructureError,
)
from flowspine.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_SETTINGS = {"executionOrder": "v1"}


def _utcnow() -> datetime:
    return datetime.now(UTC)


def _timestamp(moment: datetime) -> str:
    return moment.astimezone(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class Injection:
    """One payload written into a node."""

    node: str
    kind: ContentKind
    key: str
    field: str
    path: Path


@dataclass(frozen=True)
class MissingContent:
    """A content reference that was left in place."""

    node: str
    ref_key: str
    key: Any
    reason: str

    def describe(self) -> str:
        return f"{self.node}: {self.ref_key}={self.key!r} ({self.reason})"


@dataclass
class CompilationResult:
    """Compiled document plus what was (and was not) injected."""

    document: dict[str, Any]
    source: str | None = None
    injected: list[Injection] = field(default_factory=list)
    missing: list[MissingContent] = field(default_factory=list)

    @property
    def complete(self) -> bool:
        return not self.missing

    @property
    def warnings(self) -> list[str]:
        return [f"Content not injected for {m.describe()}" for m in self.missing]


@dataclass
class CompileAllSummary:
    """Outcome of compiling every workflow under the flows directory."""

    compiled: dict[Path, CompilationResult] = field(default_factory=dict)
    failed: dict[Path, WorkflowStructureError] = field(default_factory=dict)
    saved: list[Path] = field(default_factory=list)

    @property
    def warnings(self) -> list[str]:
        return [
            f"{path.name}: {warning}"
            for path, result in self.compiled.items()
            for warning in result.warnings
        ]


class WorkflowCompiler:
    """Inject content store payloads into workflow documents.

    Parameters
    ----------
    store
        Content store the payloads are read from.
    clock
        Source of the ``createdAt``/``updatedAt`` stamps.
    flows_path
        Directory scanned by :meth:`compile_all`.
    dist_path
        Directory compiled documents are saved to.
    """

    def __init__(
        self,
        store: ContentStore,
        *,
        clock: Callable[[], datetime] = _utcnow,
        flows_path: str | Path | None = None,
        dist_path: str | Path | None = None,
    ) -> None:
        self.store = store
        self.clock = clock
        self.flows_path = Path(flows_path) if flows_path is not None else None
        self.dist_path = Path(dist_path) if dist_path is not None else None

    @classmethod
    def from_settings(cls, settings: Any) -> WorkflowCompiler:
        return cls(
            ContentStore(settings.nodes_path),
            flows_path=settings.flows_path,
            dist_path=settings.dist_path,
        )

    # ── Single document ──────────────────────────────────────────────

    def compile(self, document: Any, *, source_name: str | None = None) -> CompilationResult:
        """Produce a publish-ready copy of ``document``.

        The input is never modified. Content references whose payload is
        found are replaced by the payload; the rest stay in place and are
        listed in ``CompilationResult.missing``.

        Raises:
            WorkflowStructureError: If ``document`` is not a workflow object.
        """
        validate_document(document, source=source_name)
        compiled = copy.deepcopy(document)
        result = CompilationResult(document=compiled, source=source_name)

        for node in compiled.get("nodes") or []:
            self._compile_node(node, result)

        self._stamp_metadata(compiled, source_name)

        logger.debug(
            "compile.completed",
            source=source_name,
            injected=len(result.injected),
            missing=len(result.missing),
        )
        return result

    def _compile_node(self, node: dict[str, Any], result: CompilationResult) -> None:
        params = node.get("parameters")
        if not isinstance(params, dict) or REFERENCE_KEY not in params:
            return

        node_name = node.get("name") or "unnamed"
        content = params[REFERENCE_KEY]
        if not isinstance(content, dict):
            self._record_missing(
                result, node_name, REFERENCE_KEY, content, "content reference must be an object"
            )
            return

        references, hints, invalid = parse_reference(content)
        for reject in invalid:
            self._record_missing(result, node_name, reject.ref_key, reject.value, reject.reason)

        shape = shape_for(node.get("type"))
        for ref in references:
            try:
                entry = self.store.read(ref.kind, ref.key, ref.extensions)
            except ContentStoreError as exc:
                self._record_missing(result, node_name, ref.ref_key, ref.key, exc.message)
                continue
            except (OSError, UnicodeDecodeError) as exc:
                self._record_missing(result, node_name, ref.ref_key, ref.key, f"unreadable: {exc}")
                continue
            if entry is None:
                self._record_missing(result, node_name, ref.ref_key, ref.key, "file not found")
                continue

            if ref.field is not None:
                params[ref.field] = entry.text
                target = ref.field
            else:
                target = strategy_for(ref.kind, shape)(params, shape, entry, hints)
            del content[ref.ref_key]
            result.injected.append(
                Injection(node=node_name, kind=ref.kind, key=ref.key, field=target, path=entry.path)
            )
            logger.debug(
                "compile.injected",
                node=node_name,
                kind=ref.kind.value,
                key=ref.key,
                field=target,
            )

        # hints only matter while a reference is still pending
        if all(key in HINT_KEYS for key in content):
            del params[REFERENCE_KEY]

    def _record_missing(
        self,
        result: CompilationResult,
        node_name: str,
        ref_key: str,
        key: Any,
        reason: str,
    ) -> None:
        result.missing.append(MissingContent(node=node_name, ref_key=ref_key, key=key, reason=reason))
        logger.warning(
            "compile.content_missing",
            source=result.source,
            node=node_name,
            ref_key=ref_key,
            key=key,
            reason=reason,
        )

    def _stamp_metadata(self, document: dict[str, Any], source_name: str | None) -> None:
        if not document.get("id") and source_name:
            document["id"] = workflow_id_from_path(source_name)
        if document.get("active") is None:
            document["active"] = False
        if not document.get("settings"):
            document["settings"] = dict(DEFAULT_SETTINGS)
        if document.get("connections") is None:
            document["connections"] = {}

        now = _timestamp(self.clock())
        document["updatedAt"] = now
        if not document.get("createdAt"):
            document["createdAt"] = now

    # ── Files ────────────────────────────────────────────────────────

    def compile_file(self, path: str | Path) -> CompilationResult:
        """Read, parse and compile one workflow file.

        Raises:
            WorkflowNotFoundError: If ``path`` does not exist.
            WorkflowStructureError: If the file is not a valid workflow.
        """
        path = Path(path)
        try:
            raw = path.read_bytes()
        except FileNotFoundError as exc:
            raise WorkflowNotFoundError(f"Workflow file not found: {path}", cause=exc).with_context(
                workflow=str(path)
            )
        document = parse_document(raw, source=str(path))
        return self.compile(document, source_name=path.name)

    def compile_all(self, *, save: bool = False) -> CompileAllSummary:
        """Compile every workflow under ``flows_path``.

        A structurally broken file is recorded in ``failed`` and does not
        stop the others.
        """
        if self.flows_path is None:
            raise InfrastructureError("No flows directory configured for compile_all")

        summary = CompileAllSummary()
        for path in discover_workflows(self.flows_path):
            try:
                result = self.compile_file(path)
            except WorkflowStructureError as exc:
                summary.failed[path] = exc
                logger.error("compile.failed", source=path.name, error=exc.message)
                continue
            summary.compiled[path] = result
            if save:
                summary.saved.append(self.save_compiled(result.document, path.name))

        logger.info(
            "compile.all_completed",
            compiled=len(summary.compiled),
            failed=len(summary.failed),
            saved=len(summary.saved),
        )
        return summary

    def save_compiled(self, document: dict[str, Any], file_name: str) -> Path:
        """Write a compiled document to ``dist_path`` with stable key order."""
        if self.dist_path is None:
            raise InfrastructureError("No dist directory configured for compiled output")
        output = self.dist_path / file_name
        try:
            output.parent.mkdir(parents=True, exist_ok=True)
            output.write_text(dumps_document(document), encoding="utf-8")
        except OSError as exc:
            raise InfrastructureError(
                f"Cannot write compiled workflow: {exc}", cause=exc
            ).with_context(path=str(output))
        logger.info("compile.saved", path=str(output))
        return output

    @staticmethod
    def needs_compilation(document: dict[str, Any]) -> bool:
        """True when any node still carries a content reference."""
        return has_content_reference(document)
