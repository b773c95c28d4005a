"""Core primitives shared by the compiler and the deployment layer."""

from flowspine.core.errors import (
    ContentStoreError,
    ErrorCategory,
    ErrorContext,
    FlowSpineError,
    InfrastructureError,
    LedgerError,
    PublisherNotFoundError,
    WorkflowNotFoundError,
    WorkflowStructureError,
)
from flowspine.core.hashing import compute_bytes_hash, compute_file_hash, compute_hash
from flowspine.core.logging import LogContext, bind_context, configure_logging, get_logger

__all__ = [
    "ContentStoreError",
    "ErrorCategory",
    "ErrorContext",
    "FlowSpineError",
    "InfrastructureError",
    "LedgerError",
    "LogContext",
    "PublisherNotFoundError",
    "WorkflowNotFoundError",
    "WorkflowStructureError",
    "bind_context",
    "compute_bytes_hash",
    "compute_file_hash",
    "compute_hash",
    "configure_logging",
    "get_logger",
]
