"""
Deployment orchestrator: compile, publish and record workflows concurrently.

Manifesto:
    - **Isolated units:** Each workflow gets its own compile, its own
      temporary artifact and its own subprocess; units share nothing but
      the ledger
    - **Errors stop at the unit boundary:** structural and tool failures
      become ``PublishOutcome`` records; only infrastructure failures
      propagate, and only after every sibling unit has finished
    - **Commit on confirmed success only:** a failed unit leaves its ledger
      record untouched, so it is selected again next run

Architecture:
    ::

        publish(selection, options)
          │
          ├── select files ─── SINGLE: one path   ALL: every file
          │                    CHANGED: tracker.changed_since()
          ├── publisher.ensure_available()
          │
          └── asyncio.gather(unit(f) for f in files, return_exceptions=True)
                │
                │  unit(f), inside LogContext(workflow, run_id)
                │    read bytes ─► fingerprint ─► parse ─► compile
                │    empty-script check (warnings only)
                │    with temporary_artifact(...) as artifact:
                │        publisher.publish(artifact)       ← subprocess
                │    classify_output(stderr, stdout)
                │    success ─► tracker.commit(f, fingerprint)
                ▼
           PublishReport (or the first InfrastructureError, re-raised)

    The fingerprint committed is the one taken from the bytes that were
    compiled, so an edit made while a publish is in flight still shows up
    as a change on the next run.

Examples:
    >>> orchestrator = DeploymentOrchestrator.from_settings(get_settings())
    >>> report = orchestrator.run(Selection.changed(), PublishOptions(activate=True))
    >>> print(report.render())

Tags:
    orchestrator, asyncio, concurrency, deploy, subprocess, flow-spine
"""

from __future__ import annotations

import asyncio
import uuid
from pathlib import Path
from typing import Any

from flowspine.compiler.compiler import WorkflowCompiler
from flowspine.compiler.documents import parse_document
from flowspine.compiler.nodes import empty_script_nodes
from flowspine.core.errors import (
    InfrastructureError,
    WorkflowNotFoundError,
    WorkflowStructureError,
)
from flowspine.core.hashing import compute_bytes_hash
from flowspine.core.logging import LogContext, get_logger
from flowspine.deploy.artifacts import temporary_artifact
from flowspine.deploy.classifier import ClassifierPatterns, classify_output
from flowspine.deploy.config import PublishOptions, Selection, SelectionMode
from flowspine.deploy.publisher import ExternalPublisher, ToolInvocation
from flowspine.deploy.results import PublishOutcome, PublishReport, PublishStatus
from flowspine.deploy.tracker import ChangeTracker

logger = get_logger(__name__)


class DeploymentOrchestrator:
    """Publish selected workflows through the external tool.

    Parameters
    ----------
    compiler
        Produces publish-ready documents.
    tracker
        Ledger owner; selects changed files and records successes.
    publisher
        External tool wrapper.
    options
        Default publish options (overridable per call).
    temp_dir
        Directory for temporary artifacts (system temp when None).
    patterns
        Classifier pattern table.
    """

    def __init__(
        self,
        compiler: WorkflowCompiler,
        tracker: ChangeTracker,
        publisher: ExternalPublisher,
        *,
        options: PublishOptions | None = None,
        temp_dir: str | Path | None = None,
        patterns: ClassifierPatterns | None = None,
    ) -> None:
        self.compiler = compiler
        self.tracker = tracker
        self.publisher = publisher
        self.options = options or PublishOptions()
        self.temp_dir = Path(temp_dir) if temp_dir is not None else None
        self.patterns = patterns or ClassifierPatterns()

    @classmethod
    def from_settings(cls, settings: Any) -> DeploymentOrchestrator:
        return cls(
            WorkflowCompiler.from_settings(settings),
            ChangeTracker.from_settings(settings),
            ExternalPublisher(settings.publisher_command),
            options=PublishOptions(timeout_seconds=settings.publish_timeout_seconds),
            temp_dir=settings.temp_dir,
        )

    # ── Selection ────────────────────────────────────────────────────

    def select(self, selection: Selection) -> list[Path]:
        """Resolve a selection into workflow files.

        Raises:
            WorkflowNotFoundError: A single-file selection does not exist.
        """
        if selection.mode is SelectionMode.ALL:
            return self.tracker.workflow_files()
        if selection.mode is SelectionMode.CHANGED:
            return sorted(self.tracker.changed_since())
        return [self._resolve_single(selection.file)]

    def _resolve_single(self, file: Path | None) -> Path:
        if file is None:
            raise WorkflowNotFoundError("No workflow file given for single-file selection")
        candidates = [file] if file.is_absolute() else [
            self.tracker.workflows_path / file,
            self.tracker.flows_path / file,
            Path.cwd() / file,
        ]
        for candidate in candidates:
            if candidate.is_file():
                return candidate
        raise WorkflowNotFoundError(f"Workflow file not found: {file}").with_context(
            workflow=str(file)
        )

    # ── Publishing ───────────────────────────────────────────────────

    def run(self, selection: Selection, options: PublishOptions | None = None) -> PublishReport:
        """Synchronous entry point for the CLI."""
        return asyncio.run(self.publish(selection, options))

    async def publish(
        self,
        selection: Selection,
        options: PublishOptions | None = None,
    ) -> PublishReport:
        """Publish every selected workflow concurrently.

        Returns:
            :class:`PublishReport` with one outcome per selected file.

        Raises:
            InfrastructureError: Missing tool, unwritable temp directory,
                unreadable or unwritable ledger. Raised after all units
                have finished.
            WorkflowNotFoundError: A single-file selection does not exist.
        """
        options = options or self.options
        run_id = uuid.uuid4().hex[:12]
        files = self.select(selection)
        report = PublishReport(run_id=run_id, mode=selection.mode.value, activate=options.activate)

        if not files:
            if selection.mode is SelectionMode.CHANGED:
                report.status_details = self.tracker.details()
            report.mark_complete()
            logger.info("publish.nothing_selected", run_id=run_id, mode=selection.mode.value)
            return report

        self.publisher.ensure_available()

        logger.info(
            "publish.started",
            run_id=run_id,
            mode=selection.mode.value,
            files=len(files),
            activate=options.activate,
        )

        results = await asyncio.gather(
            *(self._publish_unit(path, options, run_id) for path in files),
            return_exceptions=True,
        )

        raised: BaseException | None = None
        for path, result in zip(files, results):
            if isinstance(result, BaseException):
                logger.error(
                    "publish.unit_aborted",
                    run_id=run_id,
                    workflow=self.tracker.relative_key(path),
                    error=str(result),
                )
                if raised is None:
                    raised = result
                continue
            report.outcomes.append(result)

        if raised is not None:
            raise raised

        report.mark_complete()
        logger.info(
            "publish.completed",
            run_id=run_id,
            succeeded=report.succeeded,
            failed=report.failed,
            duration_seconds=round(report.duration_seconds, 3),
        )
        return report

    async def _publish_unit(self, path: Path, options: PublishOptions, run_id: str) -> PublishOutcome:
        relative = self.tracker.relative_key(path)
        async with LogContext(workflow=relative, run_id=run_id):
            try:
                raw = await asyncio.to_thread(path.read_bytes)
            except PermissionError as exc:
                raise InfrastructureError(
                    f"Permission denied reading workflow: {exc}", cause=exc
                ).with_context(workflow=relative)
            except OSError as exc:
                return self._failed(path, relative, f"Cannot read workflow file: {exc}", "unreadable")

            fingerprint = compute_bytes_hash(raw)
            try:
                source = parse_document(raw, source=relative)
                compiled = self.compiler.compile(source, source_name=path.name)
            except WorkflowStructureError as exc:
                logger.error("publish.structure_error", error=exc.message)
                return self._failed(path, relative, exc.message, "structural error")

            document = compiled.document
            warnings = list(compiled.warnings)
            for node_name in empty_script_nodes(document):
                warnings.append(f"Script node '{node_name}' has no code after compilation")
            for warning in warnings:
                logger.warning("publish.unit_warning", warning=warning)

            saved_to = None
            if options.save_compiled:
                saved = await asyncio.to_thread(self.compiler.save_compiled, document, path.name)
                saved_to = str(saved)

            with temporary_artifact(document, self.temp_dir, path.name) as artifact:
                invocation = await self.publisher.publish(
                    artifact, activate=options.activate, timeout=options.timeout_seconds
                )

            outcome = self._classify(path, relative, invocation, options)
            outcome.warnings = warnings + outcome.warnings
            outcome.workflow_id = str(document.get("id")) if document.get("id") else None
            outcome.updated = bool(source.get("id"))
            outcome.saved_to = saved_to

            if outcome.succeeded:
                await asyncio.to_thread(self.tracker.commit, path, fingerprint)
                logger.info("publish.unit_succeeded", updated=outcome.updated)
            else:
                logger.error("publish.unit_failed", reason=outcome.reason, error=outcome.error_excerpt)
            return outcome

    def _classify(
        self,
        path: Path,
        relative: str,
        invocation: ToolInvocation,
        options: PublishOptions,
    ) -> PublishOutcome:
        outcome = PublishOutcome(
            file=str(path),
            relative_path=relative,
            status=PublishStatus.SUCCESS,
            stdout=invocation.stdout,
            stderr=invocation.stderr,
            exit_code=invocation.exit_code,
            duration_seconds=invocation.duration_seconds,
        )

        if invocation.timed_out:
            outcome.status = PublishStatus.FAILED
            outcome.reason = "timeout"
            outcome.error = f"Publish timed out after {options.timeout_seconds:g}s"
            return outcome

        classification = classify_output(invocation.stderr, invocation.stdout, self.patterns)
        outcome.reason = classification.reason
        outcome.warnings = [f"tool: {line}" for line in classification.benign_lines]

        if classification.failed:
            outcome.status = PublishStatus.FAILED
            outcome.error = classification.offending_line
        elif invocation.exit_code not in (0, None) and classification.success_phrase is None:
            outcome.status = PublishStatus.FAILED
            outcome.reason = f"exit code {invocation.exit_code}"
            outcome.error = invocation.stderr.strip() or f"Tool exited with code {invocation.exit_code}"
        elif classification.success_phrase is None and not invocation.stdout.strip():
            if invocation.stderr.strip():
                outcome.warnings.append("tool reported no success message")
            else:
                # exit 0 with no output at all may be a silent failure
                outcome.status = PublishStatus.FAILED
                outcome.reason = "no output"
                outcome.error = "No output from import command"
        return outcome

    @staticmethod
    def _failed(path: Path, relative: str, error: str, reason: str) -> PublishOutcome:
        return PublishOutcome(
            file=str(path),
            relative_path=relative,
            status=PublishStatus.FAILED,
            error=error,
            reason=reason,
        )
