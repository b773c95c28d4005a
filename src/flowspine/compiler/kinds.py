"""
Content kinds and content references.

A node points at externalized payloads through a *content reference*: a
sub-object of its parameters (``parameters.nodeContent``) mapping a kind
to a content key::

    {"nodeContent": {"script": "orders_normalize", "prompt": "orders_triage"}}

Each kind owns a subdirectory of the content store and an ordered list of
file extensions. The extension that is actually found tells the compiler
which sub-kind it is dealing with (``.js`` vs ``.py`` for scripts).

The legacy keys ``jsCode``, ``pythonCode`` and ``sqlQuery`` are accepted as
aliases; ``jsCode``/``pythonCode`` additionally pin the script language and
``sqlQuery`` injects into its own ``sqlQuery`` parameter.

Tags:
    content-store, content-reference, kinds, flow-spine
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

REFERENCE_KEY = "nodeContent"
"""Parameter holding a node's content reference."""

DYNAMIC_EXPRESSION_MARKER = "="
"""Prefix that makes the host tool treat a string as a template expression."""

HINT_KEYS = frozenset({"promptType"})
"""Reference entries that carry injection hints rather than content keys."""


class ContentKind(str, Enum):
    """Payload kinds held by the content store."""

    SCRIPT = "script"
    PROMPT = "prompt"
    DATA = "data"
    QUERY = "query"
    TEMPLATE = "template"


@dataclass(frozen=True)
class KindLayout:
    """Where a kind lives on disk and which extensions it answers to."""

    subdir: str
    extensions: tuple[str, ...]


KIND_LAYOUTS: dict[ContentKind, KindLayout] = {
    ContentKind.SCRIPT: KindLayout("code", (".js", ".py")),
    ContentKind.PROMPT: KindLayout("prompts", (".md", ".txt")),
    ContentKind.DATA: KindLayout("data", (".json",)),
    ContentKind.QUERY: KindLayout("sql", (".sql",)),
    ContentKind.TEMPLATE: KindLayout("templates", (".html", ".txt")),
}

SCRIPT_FIELDS: dict[str, str] = {
    ".js": "jsCode",
    ".py": "pythonCode",
}
"""Default script parameter per source extension."""

VERBATIM_FIELDS: dict[ContentKind, str] = {
    ContentKind.DATA: "jsonBody",
    ContentKind.QUERY: "query",
    ContentKind.TEMPLATE: "html",
}
"""Parameter receiving kinds that are injected without prefixing."""

# legacy reference key -> (kind, pinned extensions, target parameter)
REFERENCE_ALIASES: dict[str, tuple[ContentKind, tuple[str, ...] | None, str | None]] = {
    "jsCode": (ContentKind.SCRIPT, (".js",), None),
    "pythonCode": (ContentKind.SCRIPT, (".py",), None),
    "sqlQuery": (ContentKind.QUERY, None, "sqlQuery"),
}


@dataclass(frozen=True)
class ContentReference:
    """One (kind, key) entry of a node's content reference.

    Attributes:
        ref_key: Key as written in ``nodeContent`` (``script``, ``jsCode``, ...)
        kind: Resolved content kind
        key: Content store key
        extensions: Extensions to try, in order
        field: Parameter that replaces the kind's default target, if any
    """

    ref_key: str
    kind: ContentKind
    key: str
    extensions: tuple[str, ...]
    field: str | None = None


@dataclass(frozen=True)
class InvalidReference:
    """A ``nodeContent`` entry that cannot be interpreted."""

    ref_key: str
    value: Any
    reason: str


def parse_reference(
    node_content: dict[str, Any],
) -> tuple[list[ContentReference], dict[str, Any], list[InvalidReference]]:
    """Split a ``nodeContent`` mapping into references, hints and rejects.

    Unknown keys and non-string values are returned as rejects rather than
    raised; the compiler leaves them in place and reports a warning.

    Returns:
        ``(references, hints, invalid)``
    """
    references: list[ContentReference] = []
    hints: dict[str, Any] = {}
    invalid: list[InvalidReference] = []

    for ref_key, value in node_content.items():
        if ref_key in HINT_KEYS:
            hints[ref_key] = value
            continue

        if ref_key in REFERENCE_ALIASES:
            kind, pinned, field = REFERENCE_ALIASES[ref_key]
        else:
            try:
                kind, pinned, field = ContentKind(ref_key), None, None
            except ValueError:
                invalid.append(InvalidReference(ref_key, value, "unknown content kind"))
                continue

        if not isinstance(value, str) or not value.strip():
            invalid.append(InvalidReference(ref_key, value, "content key must be a non-empty string"))
            continue

        references.append(
            ContentReference(
                ref_key=ref_key,
                kind=kind,
                key=value.strip(),
                extensions=pinned or KIND_LAYOUTS[kind].extensions,
                field=field,
            )
        )

    return references, hints, invalid


def with_marker(text: str) -> str:
    """Prefix ``text`` with the dynamic-expression marker once."""
    if text.startswith(DYNAMIC_EXPRESSION_MARKER):
        return text
    return f"{DYNAMIC_EXPRESSION_MARKER}{text}"


def strip_marker(text: str) -> str:
    """Remove a single leading dynamic-expression marker."""
    if text.startswith(DYNAMIC_EXPRESSION_MARKER):
        return text[len(DYNAMIC_EXPRESSION_MARKER):]
    return text
