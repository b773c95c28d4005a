"""
Structured error types for flow-spine.

Provides a small hierarchy of typed errors with metadata for reporting and
for deciding how far a failure is allowed to travel. The deployment layer
depends on this distinction: per-workflow failures are converted into
publish outcomes at the unit boundary, while infrastructure failures
propagate out of the orchestrator to the caller.

Manifesto:
    - **Typed hierarchy:** Each failure class maps to one propagation rule
    - **Rich context:** Errors carry the workflow, node, and path involved
    - **Error chaining:** The underlying exception is preserved as ``cause``
    - **Actionable:** Infrastructure errors carry remediation text

Architecture:
    ::

        ┌─────────────────────────────────────────────────────────────┐
        │                      FlowSpineError                          │
        │            (category, context, cause, remediation)           │
        ├─────────────────────────────────────────────────────────────┤
        │                                                              │
        │  WorkflowStructureError   ContentStoreError                  │
        │  (PARSE, one unit)        (STORAGE, extraction)              │
        │                                                              │
        │  ConfigurationError                                          │
        │  (CONFIG, settings)                                          │
        │                                                              │
        │  WorkflowNotFoundError    InfrastructureError                │
        │  (SOURCE, selection)      (INFRASTRUCTURE, whole run)        │
        │                                │                             │
        │                   PublisherNotFoundError   LedgerError       │
        └─────────────────────────────────────────────────────────────┘

Examples:
    >>> error = WorkflowStructureError("nodes must be a list")
    >>> error.with_context(workflow="flows/orders.json")
    WorkflowStructureError('nodes must be a list', category=PARSE)
    >>> error.to_dict()["context"]["workflow"]
    'flows/orders.json'

Tags:
    error-handling, exception-hierarchy, error-context, flow-spine
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class ErrorCategory(str, Enum):
    """Standard error categories for classification and reporting."""

    PARSE = "PARSE"  # Unparseable or malformed workflow document
    SOURCE = "SOURCE"  # Workflow file missing or unreadable
    STORAGE = "STORAGE"  # Content store read/write problems
    INFRASTRUCTURE = "INFRASTRUCTURE"  # Missing tool, permissions, ledger
    CONFIG = "CONFIG"  # Invalid settings
    INTERNAL = "INTERNAL"  # Bugs, unexpected state


@dataclass
class ErrorContext:
    """Structured metadata attached to an error.

    Attributes:
        workflow: Workflow file (relative to the managed root) involved
        node: Node name within the workflow
        path: Filesystem path involved (content file, ledger, artifact)
        command: External command line, when a subprocess was involved
        metadata: Additional key-value pairs
    """

    workflow: str | None = None
    node: str | None = None
    path: str | None = None
    command: str | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging."""
        result = {}
        for key in ["workflow", "node", "path", "command"]:
            value = getattr(self, key)
            if value is not None:
                result[key] = value
        if self.metadata:
            result.update(self.metadata)
        return result


class FlowSpineError(Exception):
    """
    Base exception for all flow-spine errors.

    Subclasses set ``default_category`` so that callers can route errors
    without inspecting messages. ``remediation`` is optional free text shown
    to the operator when the error reaches the command line.
    """

    default_category: ErrorCategory = ErrorCategory.INTERNAL

    def __init__(
        self,
        message: str,
        *,
        category: ErrorCategory | None = None,
        context: ErrorContext | None = None,
        cause: Exception | None = None,
        remediation: str | None = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category or self.default_category
        self.context = context or ErrorContext()
        self.cause = cause
        self.remediation = remediation

        if cause is not None:
            self.__cause__ = cause

    def with_context(self, **kwargs: Any) -> FlowSpineError:
        """
        Add context to this error (fluent API).

        Usage:
            raise WorkflowStructureError("bad nodes").with_context(
                workflow="flows/orders.json"
            )
        """
        for key, value in kwargs.items():
            if key != "metadata" and hasattr(self.context, key):
                setattr(self.context, key, value)
            else:
                self.context.metadata[key] = value
        return self

    def to_dict(self) -> dict[str, Any]:
        """Convert error to dictionary for logging/serialization."""
        result: dict[str, Any] = {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "category": self.category.value,
        }
        context_dict = self.context.to_dict()
        if context_dict:
            result["context"] = context_dict
        if self.remediation:
            result["remediation"] = self.remediation
        if self.cause is not None:
            result["cause"] = str(self.cause)
        return result

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}({self.message!r}, category={self.category.value})"


# =============================================================================
# PER-UNIT ERRORS (caught at the publish-unit boundary)
# =============================================================================


class WorkflowStructureError(FlowSpineError):
    """Workflow document is unparseable or structurally invalid.

    Fatal for the single workflow being compiled; sibling publish units
    are unaffected.
    """

    default_category = ErrorCategory.PARSE


class WorkflowNotFoundError(FlowSpineError):
    """An explicitly selected workflow file does not exist."""

    default_category = ErrorCategory.SOURCE


class ContentStoreError(FlowSpineError):
    """A content entry could not be written or its key is unusable."""

    default_category = ErrorCategory.STORAGE


class ConfigurationError(FlowSpineError):
    """Settings from the environment, ``.env`` or command-line flags are invalid."""

    default_category = ErrorCategory.CONFIG


# =============================================================================
# INFRASTRUCTURE ERRORS (propagate out of the orchestrator)
# =============================================================================


class InfrastructureError(FlowSpineError):
    """Failure of the environment rather than of one workflow.

    Missing external tool, unwritable temporary directory, unreadable
    ledger. Fatal for the whole publish run.
    """

    default_category = ErrorCategory.INFRASTRUCTURE


class PublisherNotFoundError(InfrastructureError):
    """The external publishing tool is not installed or not on ``PATH``."""

    def __init__(self, executable: str, **kwargs: Any):
        kwargs.setdefault(
            "remediation",
            "Install the n8n CLI so that it is available on PATH:\n"
            "  npm install -g n8n\n"
            "or point FLOWSPINE_PUBLISHER_COMMAND at an existing installation.",
        )
        super().__init__(f"Publishing tool not found: {executable}", **kwargs)
        self.executable = executable
        self.context.command = executable


class LedgerError(InfrastructureError):
    """The change-tracker ledger could not be read or written."""


__all__ = [
    "ConfigurationError",
    "ContentStoreError",
    "ErrorCategory",
    "ErrorContext",
    "FlowSpineError",
    "InfrastructureError",
    "LedgerError",
    "PublisherNotFoundError",
    "WorkflowNotFoundError",
    "WorkflowStructureError",
]
