"""
Node shapes: the closed set of parameter layouts the compiler knows.

The host runtime accepts an open-ended list of node types, but for
payload injection only four layouts matter:

    ┌────────────────┬───────────────────────────────────────────────┐
    │ NodeClass      │ Where payloads go                             │
    ├────────────────┼───────────────────────────────────────────────┤
    │ SCRIPT         │ per-language script field (jsCode, pythonCode)│
    │ PROMPT         │ single prompt field, marker-prefixed          │
    │ CONVERSATIONAL │ messages.messageValues = [one message]        │
    │ GENERIC        │ default field implied by the content kind     │
    └────────────────┴───────────────────────────────────────────────┘

``shape_for(node_type)`` maps every type tag onto one of these; unknown
types are GENERIC.

Tags:
    nodes, node-types, injection, flow-spine
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from flowspine.compiler.kinds import SCRIPT_FIELDS


class NodeClass(str, Enum):
    """Parameter layout family of a node type."""

    SCRIPT = "script"
    PROMPT = "prompt"
    CONVERSATIONAL = "conversational"
    GENERIC = "generic"


@dataclass(frozen=True)
class NodeShape:
    """Injection layout for one node type.

    Attributes:
        node_class: Layout family
        script_fields: Source extension -> script parameter (SCRIPT only)
        prompt_field: Parameter receiving a single prompt (PROMPT only)
    """

    node_class: NodeClass
    script_fields: Mapping[str, str] = field(default_factory=dict)
    prompt_field: str = "prompt"

    def script_field_for(self, extension: str) -> str:
        """Script parameter for a source extension, falling back to defaults."""
        return self.script_fields.get(extension) or SCRIPT_FIELDS[extension]


GENERIC_SHAPE = NodeShape(NodeClass.GENERIC)

NODE_SHAPES: dict[str, NodeShape] = {
    # Script-bearing
    "n8n-nodes-base.code": NodeShape(NodeClass.SCRIPT, dict(SCRIPT_FIELDS)),
    "n8n-nodes-base.function": NodeShape(NodeClass.SCRIPT, {".js": "functionCode"}),
    "n8n-nodes-base.functionItem": NodeShape(NodeClass.SCRIPT, {".js": "functionCode"}),
    # Single prompt
    "n8n-nodes-base.openAi": NodeShape(NodeClass.PROMPT),
    "n8n-nodes-base.anthropic": NodeShape(NodeClass.PROMPT),
    "n8n-nodes-base.huggingFace": NodeShape(NodeClass.PROMPT),
    "@n8n/n8n-nodes-langchain.agent": NodeShape(NodeClass.PROMPT, prompt_field="systemMessage"),
    "@n8n/n8n-nodes-langchain.conversationalAgent": NodeShape(
        NodeClass.PROMPT, prompt_field="systemMessage"
    ),
    # Conversational
    "@n8n/n8n-nodes-langchain.chainLlm": NodeShape(NodeClass.CONVERSATIONAL),
}


def shape_for(node_type: str | None) -> NodeShape:
    """Shape of a node type tag (GENERIC when unknown)."""
    if not node_type:
        return GENERIC_SHAPE
    return NODE_SHAPES.get(node_type, GENERIC_SHAPE)


def empty_script_nodes(document: Mapping[str, Any]) -> list[str]:
    """Names of script-bearing nodes whose script fields are all empty.

    Used after compilation: a script node that still has no code usually
    means its content file was missing.
    """
    empty = []
    for node in document.get("nodes") or []:
        shape = shape_for(node.get("type"))
        if shape.node_class is not NodeClass.SCRIPT:
            continue
        params = node.get("parameters") or {}
        fields = set(shape.script_fields.values())
        if not any(isinstance(params.get(f), str) and params[f].strip() for f in fields):
            empty.append(node.get("name") or "unnamed")
    return empty
