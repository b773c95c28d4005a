"""
Deployment: change tracking, output classification and concurrent publishing.

Public API:
    DeploymentOrchestrator - publish a selection of workflows
    ChangeTracker          - ledger of last published fingerprints
    ExternalPublisher      - subprocess wrapper for the host tool
    classify_output        - stderr/stdout → success or real failure
"""

from flowspine.deploy.artifacts import temporary_artifact
from flowspine.deploy.classifier import (
    Classification,
    ClassifierPatterns,
    classify_output,
    is_real_failure,
)
from flowspine.deploy.config import PublishOptions, Selection, SelectionMode
from flowspine.deploy.orchestrator import DeploymentOrchestrator
from flowspine.deploy.publisher import ExternalPublisher, ToolInvocation
from flowspine.deploy.results import PublishOutcome, PublishReport, PublishStatus
from flowspine.deploy.tracker import (
    ChangeTracker,
    FingerprintRecord,
    TrackerStatus,
    WorkflowState,
)

__all__ = [
    "ChangeTracker",
    "Classification",
    "ClassifierPatterns",
    "DeploymentOrchestrator",
    "ExternalPublisher",
    "FingerprintRecord",
    "PublishOptions",
    "PublishOutcome",
    "PublishReport",
    "PublishStatus",
    "Selection",
    "SelectionMode",
    "ToolInvocation",
    "TrackerStatus",
    "WorkflowState",
    "classify_output",
    "is_real_failure",
    "temporary_artifact",
]
