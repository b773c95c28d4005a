"""
Change tracker: which workflow files changed since their last publish.

The ledger is a single JSON object mapping a workflow path (relative to
the managed root, POSIX separators) to the fingerprint and time of its
last confirmed-successful publish::

    {
      "flows/orders.json": {
        "fingerprint": "9f86d081884c7d65...",
        "timestamp": "2026-03-01T09:12:44.120Z"
      }
    }

A file is *changed* when it has no record or its current fingerprint
differs from the recorded one. Fingerprints are taken over raw bytes.

Architecture:
    ::

        ChangeTracker (single owner of the ledger file)
          ├── load()          once, on first use
          ├── changed_since() fingerprint every workflow file, compare
          ├── commit()        lock → update → whole-file replace
          └── status()/details()/prune()/reset()/clear()

    Commits from concurrently completing publish units are serialized by
    one lock around the read-modify-write, so no record is lost to an
    interleaved rewrite.

Tags:
    change-detection, ledger, fingerprint, flow-spine
"""

from __future__ import annotations

import json
import os
import threading
from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import Enum
from pathlib import Path
from typing import Any

from flowspine.compiler.documents import discover_workflows
from flowspine.core.errors import LedgerError
from flowspine.core.hashing import compute_file_hash
from flowspine.core.logging import get_logger

logger = get_logger(__name__)


def _now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class FingerprintRecord:
    """Last published fingerprint of one workflow file."""

    fingerprint: str
    timestamp: str

    def to_dict(self) -> dict[str, str]:
        return {"fingerprint": self.fingerprint, "timestamp": self.timestamp}

    @classmethod
    def from_dict(cls, data: Any) -> FingerprintRecord:
        if not isinstance(data, dict) or not isinstance(data.get("fingerprint"), str):
            raise ValueError(f"malformed ledger record: {data!r}")
        return cls(fingerprint=data["fingerprint"], timestamp=str(data.get("timestamp", "")))


class WorkflowState(str, Enum):
    DEPLOYED = "deployed"
    PENDING = "pending"  # never published
    MODIFIED = "modified"  # published, changed since


@dataclass(frozen=True)
class WorkflowStatus:
    name: str
    path: str
    state: WorkflowState
    deployed_at: str | None = None


@dataclass
class TrackerStatus:
    """Snapshot of every workflow file against the ledger."""

    workflows: list[WorkflowStatus] = field(default_factory=list)
    orphaned: list[str] = field(default_factory=list)

    @property
    def total(self) -> int:
        return len(self.workflows)

    @property
    def deployed(self) -> int:
        return sum(1 for w in self.workflows if w.state is WorkflowState.DEPLOYED)

    @property
    def pending(self) -> int:
        return self.total - self.deployed


class ChangeTracker:
    """Single-owner accessor for the change-tracker ledger.

    Parameters
    ----------
    workflows_path
        Managed root; ledger keys are relative to it. Resolved to an
        absolute path so discovered files and keys agree for a relative root.
    flows_dir
        Directory (under the root) holding workflow files.
    ledger_path
        Ledger file (default ``<root>/.flowspine/change-tracker.json``).
    """

    def __init__(
        self,
        workflows_path: str | Path,
        *,
        flows_dir: str = "flows",
        ledger_path: str | Path | None = None,
    ) -> None:
        self.workflows_path = Path(workflows_path).expanduser().resolve()
        self.flows_path = self.workflows_path / flows_dir
        self.ledger_path = (
            Path(ledger_path).expanduser().resolve()
            if ledger_path is not None
            else self.workflows_path / ".flowspine" / "change-tracker.json"
        )
        self._records: dict[str, FingerprintRecord] | None = None
        self._lock = threading.Lock()

    @classmethod
    def from_settings(cls, settings: Any) -> ChangeTracker:
        return cls(
            settings.workflows_path,
            flows_dir=settings.flows_dir,
            ledger_path=settings.resolved_ledger_path,
        )

    # ── Ledger lifecycle ─────────────────────────────────────────────

    @property
    def records(self) -> dict[str, FingerprintRecord]:
        if self._records is None:
            self._records = self._load()
        return self._records

    def _load(self) -> dict[str, FingerprintRecord]:
        if not self.ledger_path.exists():
            logger.debug("ledger.missing", path=str(self.ledger_path))
            return {}
        try:
            data = json.loads(self.ledger_path.read_text(encoding="utf-8"))
            if not isinstance(data, dict):
                raise ValueError("ledger root must be a JSON object")
            records = {key: FingerprintRecord.from_dict(value) for key, value in data.items()}
        except (OSError, ValueError) as exc:
            raise LedgerError(
                f"Cannot read change-tracker ledger: {exc}",
                cause=exc,
                remediation=f"Fix or delete {self.ledger_path} (all workflows will be republished).",
            ).with_context(path=str(self.ledger_path))
        logger.debug("ledger.loaded", path=str(self.ledger_path), records=len(records))
        return records

    def _save(self) -> None:
        payload = {key: record.to_dict() for key, record in sorted(self.records.items())}
        tmp = self.ledger_path.with_name(self.ledger_path.name + ".tmp")
        try:
            self.ledger_path.parent.mkdir(parents=True, exist_ok=True)
            tmp.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
            os.replace(tmp, self.ledger_path)
        except OSError as exc:
            raise LedgerError(
                f"Cannot write change-tracker ledger: {exc}", cause=exc
            ).with_context(path=str(self.ledger_path))

    # ── Paths and fingerprints ───────────────────────────────────────

    def relative_key(self, file: str | Path) -> str:
        """Ledger key for ``file``: relative to the root, POSIX separators."""
        path = Path(file)
        if not path.is_absolute():
            path = self.workflows_path / path
        try:
            return path.relative_to(self.workflows_path).as_posix()
        except ValueError:
            return path.as_posix()

    def workflow_files(self) -> list[Path]:
        return discover_workflows(self.flows_path)

    def fingerprint(self, file: str | Path) -> str:
        path = Path(file)
        if not path.is_absolute():
            path = self.workflows_path / path
        return compute_file_hash(path)

    # ── Queries ──────────────────────────────────────────────────────

    def is_changed(self, file: str | Path, fingerprint: str | None = None) -> bool:
        record = self.records.get(self.relative_key(file))
        if record is None:
            return True
        current = fingerprint if fingerprint is not None else self.fingerprint(file)
        return current != record.fingerprint

    def changed_since(self) -> set[Path]:
        """Workflow files with no record or a different fingerprint."""
        changed = {path for path in self.workflow_files() if self.is_changed(path)}
        logger.info("ledger.changed_scan", changed=len(changed), path=str(self.flows_path))
        return changed

    def status(self) -> TrackerStatus:
        files = self.workflow_files()
        present = {self.relative_key(path) for path in files}
        result = TrackerStatus()
        for path in files:
            key = self.relative_key(path)
            record = self.records.get(key)
            if record is None:
                state = WorkflowState.PENDING
            elif record.fingerprint != self.fingerprint(path):
                state = WorkflowState.MODIFIED
            else:
                state = WorkflowState.DEPLOYED
            result.workflows.append(
                WorkflowStatus(
                    name=path.stem,
                    path=key,
                    state=state,
                    deployed_at=record.timestamp if record else None,
                )
            )
        result.workflows.sort(key=lambda w: w.name)
        result.orphaned = sorted(key for key in self.records if key not in present)
        return result

    def details(self) -> str:
        """Human-readable deployment status report."""
        status = self.status()
        lines = [
            "Workflow Deployment Status",
            "",
            f"Total Workflows: {status.total}",
            f"Deployed: {status.deployed}",
            f"Pending: {status.pending}",
            "",
        ]
        if status.pending:
            lines.append("Workflows Needing Deployment:")
            for workflow in status.workflows:
                if workflow.state is WorkflowState.DEPLOYED:
                    continue
                lines.append(f"  [{workflow.state.value}] {workflow.name}")
                if workflow.deployed_at:
                    lines.append(f"     Last deployed: {workflow.deployed_at}")
            lines.append("")
            lines.append('Run "flowspine deploy --changed" to deploy pending changes')
        else:
            lines.append("All workflows are up to date!")
        if status.orphaned:
            lines.append("")
            lines.append(f"Orphaned ledger records: {len(status.orphaned)}")
            lines.extend(f"  {key}" for key in status.orphaned)
        return "\n".join(lines) + "\n"

    # ── Mutations ────────────────────────────────────────────────────

    def commit(self, file: str | Path, fingerprint: str) -> FingerprintRecord:
        """Record ``fingerprint`` as the last published state of ``file``.

        Safe to call from worker threads of concurrently running units.
        """
        key = self.relative_key(file)
        record = FingerprintRecord(fingerprint=fingerprint, timestamp=_now_iso())
        with self._lock:
            previous = self.records.get(key)
            self.records[key] = record
            try:
                self._save()
            except LedgerError:
                if previous is None:
                    del self.records[key]
                else:
                    self.records[key] = previous
                raise
        logger.info("ledger.committed", workflow=key, fingerprint=fingerprint[:12])
        return record

    def forget(self, file: str | Path) -> bool:
        key = self.relative_key(file)
        with self._lock:
            removed = self.records.pop(key, None) is not None
            if removed:
                self._save()
        return removed

    def prune(self) -> list[str]:
        """Drop records whose workflow file no longer exists."""
        present = {self.relative_key(path) for path in self.workflow_files()}
        with self._lock:
            orphaned = sorted(key for key in self.records if key not in present)
            for key in orphaned:
                del self.records[key]
            if orphaned:
                self._save()
        logger.info("ledger.pruned", removed=len(orphaned))
        return orphaned

    def reset(self) -> None:
        """Forget every record so all workflows count as changed."""
        with self._lock:
            self.records.clear()
            self._save()
        logger.info("ledger.reset", path=str(self.ledger_path))

    def clear(self) -> None:
        """Delete the ledger file."""
        with self._lock:
            self._records = {}
            try:
                self.ledger_path.unlink(missing_ok=True)
            except OSError as exc:
                raise LedgerError(
                    f"Cannot remove change-tracker ledger: {exc}", cause=exc
                ).with_context(path=str(self.ledger_path))
        logger.info("ledger.cleared", path=str(self.ledger_path))
