"""
Injection strategies, dispatched on (content kind, node class).

Every strategy writes one content entry into a node's parameter bag and
returns the name of the parameter it wrote. Dispatch goes through
``INJECTION_TABLE``, which is checked at import time to cover every
``ContentKind x NodeClass`` pair, so adding a kind or a node class without
deciding how the two meet fails loudly instead of silently skipping
injection.

    ┌──────────┬─────────┬─────────┬────────────────┬─────────┐
    │ kind     │ SCRIPT  │ PROMPT  │ CONVERSATIONAL │ GENERIC │
    ├──────────┼─────────┼─────────┼────────────────┼─────────┤
    │ script   │ script  │ script  │ script         │ script  │
    │ prompt   │ prompt  │ prompt  │ conversation   │ prompt  │
    │ data     │ verbatim everywhere                          │
    │ query    │ verbatim everywhere                          │
    │ template │ verbatim everywhere                          │
    └──────────┴──────────────────────────────────────────────┘

Tags:
    injection, strategy, dispatch, flow-spine
"""

from __future__ import annotations

from collections.abc import Callable
from itertools import product
from typing import Any

from flowspine.compiler.kinds import VERBATIM_FIELDS, ContentKind, strip_marker, with_marker
from flowspine.compiler.nodes import NodeClass, NodeShape
from flowspine.compiler.store import ContentEntry

InjectionStrategy = Callable[[dict[str, Any], NodeShape, ContentEntry, dict[str, Any]], str]

CLAUDE_MESSAGE_HINT = "claude_message"


def inject_script(
    params: dict[str, Any], shape: NodeShape, entry: ContentEntry, hints: dict[str, Any]
) -> str:
    """Raw file text into the script field matching the found extension."""
    target = shape.script_field_for(entry.extension)
    params[target] = entry.text
    return target


def inject_prompt(
    params: dict[str, Any], shape: NodeShape, entry: ContentEntry, hints: dict[str, Any]
) -> str:
    """Marker-prefixed text into the node's single prompt field."""
    target = shape.prompt_field
    params[target] = with_marker(entry.text)
    _apply_prompt_hints(params, entry, hints)
    return target


def inject_conversation(
    params: dict[str, Any], shape: NodeShape, entry: ContentEntry, hints: dict[str, Any]
) -> str:
    """Replace the message list with exactly one marker-prefixed message."""
    params["messages"] = {"messageValues": [{"message": with_marker(entry.text)}]}
    return "messages"


def inject_verbatim(
    params: dict[str, Any], shape: NodeShape, entry: ContentEntry, hints: dict[str, Any]
) -> str:
    """File text, unmodified, into the field implied by the kind."""
    target = VERBATIM_FIELDS[entry.kind]
    params[target] = entry.text
    return target


def _apply_prompt_hints(
    params: dict[str, Any], entry: ContentEntry, hints: dict[str, Any]
) -> None:
    # HTTP-request style chat APIs take a raw user message list
    if hints.get("promptType") == CLAUDE_MESSAGE_HINT:
        params["messages"] = [{"role": "user", "content": strip_marker(entry.text)}]


INJECTION_TABLE: dict[tuple[ContentKind, NodeClass], InjectionStrategy] = {
    **{(ContentKind.SCRIPT, node_class): inject_script for node_class in NodeClass},
    (ContentKind.PROMPT, NodeClass.SCRIPT): inject_prompt,
    (ContentKind.PROMPT, NodeClass.PROMPT): inject_prompt,
    (ContentKind.PROMPT, NodeClass.CONVERSATIONAL): inject_conversation,
    (ContentKind.PROMPT, NodeClass.GENERIC): inject_prompt,
    **{
        (kind, node_class): inject_verbatim
        for kind in (ContentKind.DATA, ContentKind.QUERY, ContentKind.TEMPLATE)
        for node_class in NodeClass
    },
}


def _check_exhaustive() -> None:
    missing = set(product(ContentKind, NodeClass)) - set(INJECTION_TABLE)
    if missing:
        pairs = ", ".join(f"{k.value}/{c.value}" for k, c in sorted(missing))
        raise RuntimeError(f"No injection strategy for: {pairs}")


_check_exhaustive()


def strategy_for(kind: ContentKind, shape: NodeShape) -> InjectionStrategy:
    return INJECTION_TABLE[(kind, shape.node_class)]
