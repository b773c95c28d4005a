"""
Content extraction: move inline payloads out of nodes into the content store.

The inverse of compilation, used while authoring. A node payload longer
than the triviality threshold is written to ``nodes/<kind>/<key><ext>``
and replaced by a content reference, where the key is
``<workflow>_<node>`` (both sanitized). File names are deterministic, so
extracting the same workflow twice overwrites the same files.

    ┌──────────────────────────────┬──────────┬──────┬──────────────┐
    │ inline field                 │ kind     │ ext  │ reference    │
    ├──────────────────────────────┼──────────┼──────┼──────────────┤
    │ jsCode / functionCode        │ script   │ .js  │ script       │
    │ pythonCode                   │ script   │ .py  │ script*      │
    │ prompt / systemMessage       │ prompt   │ .md  │ prompt       │
    │ messages.messageValues[0]    │ prompt   │ .md  │ prompt       │
    │ query                        │ query    │ .sql │ query        │
    │ jsonBody                     │ data     │ .json│ data         │
    │ html                         │ template │ .html│ template     │
    └──────────────────────────────┴──────────┴──────┴──────────────┘
    * ``pythonCode`` when ``script`` is already taken on the same node

Tags:
    extractor, authoring, content-store, flow-spine
"""

from __future__ import annotations

import copy
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from flowspine.compiler.documents import dumps_document, parse_document, sanitize_name
from flowspine.compiler.kinds import (
    KIND_LAYOUTS,
    REFERENCE_ALIASES,
    REFERENCE_KEY,
    SCRIPT_FIELDS,
    VERBATIM_FIELDS,
    ContentKind,
    strip_marker,
)
from flowspine.compiler.nodes import NodeClass, NodeShape, shape_for
from flowspine.compiler.store import ContentStore
from flowspine.core.errors import WorkflowNotFoundError
from flowspine.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_MIN_CHARS = 10

_SCRIPT_ALIASES = {".js": "jsCode", ".py": "pythonCode"}


@dataclass(frozen=True)
class Extraction:
    """One inline payload moved to the content store."""

    node: str
    kind: ContentKind
    key: str
    field: str
    ref_key: str
    path: Path


@dataclass
class ExtractionResult:
    document: dict[str, Any]
    extracted: list[Extraction] = field(default_factory=list)
    skipped: list[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.extracted)


@dataclass
class _Candidate:
    field: str
    kind: ContentKind
    extension: str
    text: str
    ref_keys: tuple[str, ...]


class ContentExtractor:
    """Replace inline payloads with content references.

    Parameters
    ----------
    store
        Content store receiving the payload files.
    min_chars
        Payloads shorter than this (after stripping whitespace) stay inline.
    """

    def __init__(self, store: ContentStore, *, min_chars: int = DEFAULT_MIN_CHARS) -> None:
        self.store = store
        self.min_chars = min_chars

    @classmethod
    def from_settings(cls, settings: Any) -> ContentExtractor:
        return cls(ContentStore(settings.nodes_path), min_chars=settings.extract_min_chars)

    def extract(self, document: dict[str, Any], workflow_name: str) -> ExtractionResult:
        """Extract payloads from a copy of ``document``.

        Content files are written immediately; the returned document holds
        the references. The input document is not modified.
        """
        extracted_document = copy.deepcopy(document)
        result = ExtractionResult(document=extracted_document)
        prefix = sanitize_name(workflow_name) or "workflow"
        used: set[tuple[ContentKind, str, str]] = set()

        for node in extracted_document.get("nodes") or []:
            params = node.get("parameters")
            if not isinstance(params, dict):
                continue
            node_name = node.get("name") or "unnamed"
            content = params.get(REFERENCE_KEY)
            if content is not None and not isinstance(content, dict):
                result.skipped.append(node_name)
                logger.warning("extract.reference_malformed", node=node_name)
                continue

            shape = shape_for(node.get("type"))
            for candidate in self._candidates(params, shape):
                content = params.get(REFERENCE_KEY) or {}
                ref_key = next((k for k in candidate.ref_keys if k not in content), None)
                if ref_key is None:
                    result.skipped.append(node_name)
                    logger.warning(
                        "extract.reference_taken", node=node_name, field=candidate.field
                    )
                    continue

                key = self._unique_key(
                    f"{prefix}_{sanitize_name(node_name) or 'unnamed'}",
                    candidate.kind,
                    candidate.extension,
                    used,
                )
                entry = self.store.write(candidate.kind, key, candidate.text, candidate.extension)
                self._remove_inline(params, candidate.field)
                content[ref_key] = key
                params[REFERENCE_KEY] = content

                result.extracted.append(
                    Extraction(
                        node=node_name,
                        kind=candidate.kind,
                        key=key,
                        field=candidate.field,
                        ref_key=ref_key,
                        path=entry.path,
                    )
                )
                logger.info(
                    "extract.written",
                    node=node_name,
                    kind=candidate.kind.value,
                    path=str(entry.path),
                )

        return result

    def extract_file(self, path: str | Path, *, write: bool = True) -> ExtractionResult:
        """Extract payloads from a workflow file, rewriting it in place.

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
        result = self.extract(document, path.stem)
        if write and result.changed:
            path.write_text(dumps_document(result.document), encoding="utf-8")
            logger.info("extract.workflow_rewritten", path=str(path), count=len(result.extracted))
        return result

    # ── Candidates ───────────────────────────────────────────────────

    def _candidates(self, params: dict[str, Any], shape: NodeShape) -> list[_Candidate]:
        candidates: list[_Candidate] = []

        script_fields = shape.script_fields if shape.node_class is NodeClass.SCRIPT else SCRIPT_FIELDS
        for extension, field_name in script_fields.items():
            text = params.get(field_name)
            if self._worth_extracting(text):
                candidates.append(
                    _Candidate(
                        field_name,
                        ContentKind.SCRIPT,
                        extension,
                        text,
                        ("script", _SCRIPT_ALIASES[extension]),
                    )
                )

        if shape.node_class is NodeClass.PROMPT:
            text = params.get(shape.prompt_field)
            if self._worth_extracting(text):
                candidates.append(
                    _Candidate(shape.prompt_field, ContentKind.PROMPT, ".md", strip_marker(text), ("prompt",))
                )
        elif shape.node_class is NodeClass.CONVERSATIONAL:
            text = _single_message(params.get("messages"))
            if self._worth_extracting(text):
                candidates.append(
                    _Candidate("messages", ContentKind.PROMPT, ".md", strip_marker(text), ("prompt",))
                )

        for kind, field_name in VERBATIM_FIELDS.items():
            text = params.get(field_name)
            if self._worth_extracting(text):
                extension = KIND_LAYOUTS[kind].extensions[0]
                candidates.append(_Candidate(field_name, kind, extension, text, (kind.value,)))

        # legacy parameters are referenced by their alias
        for alias, (kind, _, field_name) in REFERENCE_ALIASES.items():
            if field_name is None:
                continue
            text = params.get(field_name)
            if self._worth_extracting(text):
                extension = KIND_LAYOUTS[kind].extensions[0]
                candidates.append(_Candidate(field_name, kind, extension, text, (alias,)))

        return candidates

    def _worth_extracting(self, text: Any) -> bool:
        return isinstance(text, str) and len(text.strip()) >= self.min_chars

    @staticmethod
    def _remove_inline(params: dict[str, Any], field_name: str) -> None:
        params.pop(field_name, None)

    @staticmethod
    def _unique_key(
        base: str,
        kind: ContentKind,
        extension: str,
        used: set[tuple[ContentKind, str, str]],
    ) -> str:
        key, counter = base, 1
        while (kind, key, extension) in used:
            counter += 1
            key = f"{base}_{counter}"
        used.add((kind, key, extension))
        return key


def _single_message(messages: Any) -> str | None:
    # only a lone message round-trips through the conversational strategy
    if not isinstance(messages, dict):
        return None
    values = messages.get("messageValues")
    if not isinstance(values, list) or len(values) != 1 or not isinstance(values[0], dict):
        return None
    message = values[0].get("message")
    return message if isinstance(message, str) else None
