"""Result models for publish runs.

Pydantic v2 models, one ``PublishOutcome`` per workflow per run, rolled up
into a ``PublishReport``. Outcomes are never persisted; the report is
rendered as text for the terminal or dumped with ``model_dump_json()``
for ``--json`` output.

Key Concepts:
    PublishStatus: SUCCESS or FAILED per unit.
    PublishOutcome: captured tool output, classifier decision, warnings.
    PublishReport: counts, per-unit first-line error excerpts, mode and
        activation summary. ``mark_complete()`` finalises timestamps.

Tags:
    results, models, pydantic, reporting, flow-spine
"""

from __future__ import annotations

from datetime import UTC, datetime
from enum import Enum

from pydantic import BaseModel, Field

EXCERPT_LENGTH = 100


class PublishStatus(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"


class PublishOutcome(BaseModel):
    """Outcome of one publish unit."""

    file: str
    relative_path: str
    status: PublishStatus
    stdout: str = ""
    stderr: str = ""
    error: str | None = None
    reason: str = ""
    warnings: list[str] = Field(default_factory=list)
    exit_code: int | None = None
    duration_seconds: float = 0.0
    workflow_id: str | None = None
    updated: bool = False  # document carried an id, so the tool upserts
    saved_to: str | None = None

    @property
    def succeeded(self) -> bool:
        return self.status is PublishStatus.SUCCESS

    @property
    def error_excerpt(self) -> str:
        """First non-empty line of the error, at most 100 characters."""
        text = self.error or self.stderr or self.reason
        first = next((line.strip() for line in text.splitlines() if line.strip()), "")
        return first[:EXCERPT_LENGTH]


class PublishReport(BaseModel):
    """Aggregated outcome of a publish run."""

    run_id: str
    mode: str
    activate: bool = False
    started_at: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    completed_at: str | None = None
    duration_seconds: float = 0.0
    outcomes: list[PublishOutcome] = Field(default_factory=list)
    status_details: str | None = None

    @property
    def succeeded(self) -> int:
        return sum(1 for o in self.outcomes if o.succeeded)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if not o.succeeded)

    @property
    def total(self) -> int:
        return len(self.outcomes)

    @property
    def ok(self) -> bool:
        return self.failed == 0

    def mark_complete(self) -> None:
        """Set completion time and duration."""
        self.completed_at = datetime.now(UTC).isoformat()
        start = datetime.fromisoformat(self.started_at)
        end = datetime.fromisoformat(self.completed_at)
        self.duration_seconds = (end - start).total_seconds()

    def render(self) -> str:
        """Plain-text report for the terminal."""
        if not self.outcomes:
            lines = ["No workflows to deploy."]
            if self.status_details:
                lines += ["", self.status_details.rstrip()]
            return "\n".join(lines) + "\n"

        lines = [
            f"Deployment Summary ({self.mode})",
            "",
            f"Deployed: {self.succeeded}",
            f"Failed: {self.failed}",
            f"Status: {'All activated' if self.activate else 'Not activated'}",
        ]
        if self.failed:
            lines += ["", "Failed workflows:"]
            for outcome in self.outcomes:
                if not outcome.succeeded:
                    lines.append(f"  - {outcome.relative_path}: {outcome.error_excerpt}")
        warned = [o for o in self.outcomes if o.warnings]
        if warned:
            lines += ["", "Warnings:"]
            for outcome in warned:
                lines.extend(f"  - {outcome.relative_path}: {w}" for w in outcome.warnings)
        return "\n".join(lines) + "\n"
