"""
Content compiler: externalized node payloads in and out of workflow documents.

Public API:
    WorkflowCompiler  - inject content store payloads (publish path)
    ContentExtractor  - move inline payloads to the store (authoring)
    ContentStore      - filesystem-backed (kind, key) -> text mapping
"""

from flowspine.compiler.compiler import (
    CompilationResult,
    CompileAllSummary,
    Injection,
    MissingContent,
    WorkflowCompiler,
)
from flowspine.compiler.documents import (
    discover_workflows,
    dumps_document,
    load_document,
    parse_document,
    workflow_id_from_path,
)
from flowspine.compiler.extractor import ContentExtractor, Extraction, ExtractionResult
from flowspine.compiler.kinds import REFERENCE_KEY, ContentKind
from flowspine.compiler.nodes import NodeClass, empty_script_nodes, shape_for
from flowspine.compiler.store import ContentEntry, ContentStore

__all__ = [
    "REFERENCE_KEY",
    "CompilationResult",
    "CompileAllSummary",
    "ContentEntry",
    "ContentExtractor",
    "ContentKind",
    "ContentStore",
    "Extraction",
    "ExtractionResult",
    "Injection",
    "MissingContent",
    "NodeClass",
    "WorkflowCompiler",
    "discover_workflows",
    "dumps_document",
    "empty_script_nodes",
    "load_document",
    "parse_document",
    "shape_for",
    "workflow_id_from_path",
]
