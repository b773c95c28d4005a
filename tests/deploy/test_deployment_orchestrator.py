"""Tests for flowspine.deploy.orchestrator — concurrent publish units."""

from __future__ import annotations

import asyncio
import json
from pathlib import Path

import pytest

from flowspine.core.errors import (
    InfrastructureError,
    LedgerError,
    PublisherNotFoundError,
    WorkflowNotFoundError,
)
from flowspine.core.hashing import compute_file_hash
from flowspine.deploy import (
    ChangeTracker,
    DeploymentOrchestrator,
    ExternalPublisher,
    PublishOptions,
    PublishStatus,
    Selection,
    ToolInvocation,
)

SUCCESS = ToolInvocation(command=(), exit_code=0, stdout="Successfully imported 1 workflow.", stderr="")


# ── Helpers ──────────────────────────────────────────────────────────────


class FakePublisher:
    """In-process stand-in for the external tool.

    Checks that every artifact exists while its unit publishes, records the
    artifact paths, and answers per source file name.
    """

    executable = "fake-n8n"

    def __init__(self, responses: dict[str, ToolInvocation] | None = None, available: bool = True):
        self.responses = responses or {}
        self.available = available
        self.artifacts: list[Path] = []
        self.documents: dict[str, dict] = {}
        self.activate_flags: list[bool] = []
        self.in_flight = 0
        self.max_in_flight = 0

    def ensure_available(self) -> None:
        if not self.available:
            raise PublisherNotFoundError(self.executable)

    async def publish(self, artifact: Path, *, activate: bool = False, timeout: float = 30.0) -> ToolInvocation:
        assert artifact.exists()
        self.artifacts.append(artifact)
        self.activate_flags.append(activate)
        source = artifact.name.split("_", 4)[-1]
        self.documents[source] = json.loads(artifact.read_text())

        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        await asyncio.sleep(0.02)
        self.in_flight -= 1
        return self.responses.get(source, SUCCESS)


def _code_workflow(key: str) -> dict:
    return {
        "name": key,
        "nodes": [
            {
                "name": "Code",
                "type": "n8n-nodes-base.code",
                "parameters": {"nodeContent": {"script": key}},
            }
        ],
    }


@pytest.fixture
def tracker(workflows_root) -> ChangeTracker:
    return ChangeTracker(workflows_root)


@pytest.fixture
def make_orchestrator(compiler, tracker, workflows_root):
    def _make(publisher, **kwargs) -> DeploymentOrchestrator:
        return DeploymentOrchestrator(
            compiler, tracker, publisher, temp_dir=workflows_root / "tmp", **kwargs
        )

    return _make


# ── End to end ───────────────────────────────────────────────────────────


class TestChangedOnly:
    @pytest.mark.asyncio
    async def test_two_new_files_publish_and_commit(
        self, make_orchestrator, tracker, write_workflow, write_content, workflows_root
    ):
        """No ledger records → both published, ledger ends with two fresh records."""
        write_content("code", "a.js", "a();")
        write_content("code", "b.py", "b()")
        path_a = write_workflow("a", _code_workflow("a"))
        path_b = write_workflow("b", _code_workflow("b"))
        publisher = FakePublisher()

        report = await make_orchestrator(publisher).publish(Selection.changed())

        assert report.succeeded == 2
        assert report.failed == 0
        ledger = json.loads(tracker.ledger_path.read_text())
        assert ledger["flows/a.json"]["fingerprint"] == compute_file_hash(path_a)
        assert ledger["flows/b.json"]["fingerprint"] == compute_file_hash(path_b)
        assert ChangeTracker(workflows_root).changed_since() == set()

    @pytest.mark.asyncio
    async def test_compiled_document_is_published(self, make_orchestrator, write_workflow, write_content):
        write_content("code", "a.js", "a();")
        write_workflow("a", _code_workflow("a"))
        publisher = FakePublisher()

        await make_orchestrator(publisher).publish(Selection.all())

        published = publisher.documents["a.json"]
        assert published["nodes"][0]["parameters"] == {"jsCode": "a();"}
        assert published["id"] == "a"
        assert published["active"] is False

    @pytest.mark.asyncio
    async def test_nothing_changed(self, make_orchestrator, tracker, write_workflow):
        path = write_workflow("a", {"nodes": []})
        tracker.commit(path, compute_file_hash(path))
        publisher = FakePublisher(available=False)

        report = await make_orchestrator(publisher).publish(Selection.changed())

        assert report.outcomes == []
        assert "All workflows are up to date!" in report.status_details
        assert "No workflows to deploy." in report.render()


# ── Concurrency and artifacts ────────────────────────────────────────────


class TestArtifacts:
    @pytest.mark.asyncio
    async def test_isolated_artifacts_removed(self, make_orchestrator, write_workflow, workflows_root):
        for i in range(8):
            write_workflow(f"w{i}", {"nodes": []})
        failing = ToolInvocation(command=(), exit_code=1, stdout="", stderr="Error: boom")
        publisher = FakePublisher({"w3.json": failing, "w5.json": failing})

        report = await make_orchestrator(publisher).publish(Selection.all())

        assert len(publisher.artifacts) == 8
        assert len({p.name for p in publisher.artifacts}) == 8
        assert not any(p.exists() for p in publisher.artifacts)
        assert list((workflows_root / "tmp").iterdir()) == []
        assert publisher.max_in_flight > 1
        assert report.failed == 2

    @pytest.mark.asyncio
    async def test_activate_passed_through(self, make_orchestrator, write_workflow):
        write_workflow("a", {"nodes": []})
        publisher = FakePublisher()

        report = await make_orchestrator(publisher).publish(Selection.all(), PublishOptions(activate=True))

        assert publisher.activate_flags == [True]
        assert "Status: All activated" in report.render()


# ── Per-unit failures ────────────────────────────────────────────────────


class TestUnitFailures:
    @pytest.mark.asyncio
    async def test_failure_leaves_ledger_unchanged(self, make_orchestrator, tracker, write_workflow):
        write_workflow("good", {"nodes": []})
        bad = write_workflow("bad", {"nodes": []})
        publisher = FakePublisher(
            {"bad.json": ToolInvocation(command=(), exit_code=1, stdout="", stderr="Error: invalid workflow")}
        )

        report = await make_orchestrator(publisher).publish(Selection.changed())

        assert report.succeeded == 1
        failed = [o for o in report.outcomes if o.status is PublishStatus.FAILED]
        assert failed[0].relative_path == "flows/bad.json"
        assert failed[0].error_excerpt == "Error: invalid workflow"
        assert tracker.changed_since() == {bad}

    @pytest.mark.asyncio
    async def test_structural_error_isolated(self, make_orchestrator, write_workflow, workflows_root):
        write_workflow("good", {"nodes": []})
        (workflows_root / "flows" / "broken.json").write_text("{nope", encoding="utf-8")
        publisher = FakePublisher()

        report = await make_orchestrator(publisher).publish(Selection.all())

        by_path = {o.relative_path: o for o in report.outcomes}
        assert by_path["flows/good.json"].succeeded
        assert by_path["flows/broken.json"].reason == "structural error"
        assert len(publisher.artifacts) == 1

    @pytest.mark.asyncio
    async def test_benign_stderr_is_success_with_warnings(self, make_orchestrator, write_workflow):
        write_workflow("a", {"nodes": []})
        noisy = ToolInvocation(
            command=(), exit_code=0, stdout="", stderr="There is a deprecation notice\nLearn more: x"
        )
        report = await make_orchestrator(FakePublisher({"a.json": noisy})).publish(Selection.all())

        outcome = report.outcomes[0]
        assert outcome.succeeded
        assert "tool: Learn more: x" in outcome.warnings

    @pytest.mark.asyncio
    async def test_nonzero_exit_without_success_phrase_fails(self, make_orchestrator, write_workflow):
        write_workflow("a", {"nodes": []})
        silent = ToolInvocation(command=(), exit_code=2, stdout="", stderr="")

        report = await make_orchestrator(FakePublisher({"a.json": silent})).publish(Selection.all())

        assert report.outcomes[0].reason == "exit code 2"
        assert not report.ok

    @pytest.mark.asyncio
    async def test_silent_exit_zero_is_failure(self, make_orchestrator, write_workflow, tracker):
        """No output at all is not taken as a confirmed import."""
        path = write_workflow("a", {"nodes": []})
        silent = ToolInvocation(command=(), exit_code=0, stdout="", stderr="")

        report = await make_orchestrator(FakePublisher({"a.json": silent})).publish(Selection.changed())

        outcome = report.outcomes[0]
        assert not outcome.succeeded
        assert outcome.reason == "no output"
        assert outcome.error_excerpt == "No output from import command"
        assert tracker.is_changed(path)

    @pytest.mark.asyncio
    async def test_timeout_is_failure(self, make_orchestrator, write_workflow, tracker):
        path = write_workflow("a", {"nodes": []})
        timed_out = ToolInvocation(command=(), exit_code=-9, stdout="", stderr="", timed_out=True)

        report = await make_orchestrator(FakePublisher({"a.json": timed_out})).publish(Selection.all())

        assert report.outcomes[0].reason == "timeout"
        assert tracker.is_changed(path)

    @pytest.mark.asyncio
    async def test_missing_content_and_empty_script_warn(self, make_orchestrator, write_workflow):
        write_workflow("a", _code_workflow("absent"))

        report = await make_orchestrator(FakePublisher()).publish(Selection.all())

        outcome = report.outcomes[0]
        assert outcome.succeeded
        assert any("absent" in w for w in outcome.warnings)
        assert any("has no code" in w for w in outcome.warnings)


# ── Infrastructure failures ──────────────────────────────────────────────


class TestInfrastructure:
    @pytest.mark.asyncio
    async def test_missing_tool_before_any_unit(self, make_orchestrator, write_workflow):
        write_workflow("a", {"nodes": []})
        publisher = FakePublisher(available=False)

        with pytest.raises(PublisherNotFoundError):
            await make_orchestrator(publisher).publish(Selection.all())
        assert publisher.artifacts == []

    @pytest.mark.asyncio
    async def test_ledger_failure_propagates_after_siblings(
        self, make_orchestrator, tracker, write_workflow, workflows_root
    ):
        write_workflow("a", {"nodes": []})
        write_workflow("b", {"nodes": []})

        def broken_commit(file, fingerprint):
            raise LedgerError("disk full")

        tracker.commit = broken_commit
        publisher = FakePublisher()

        with pytest.raises(LedgerError):
            await make_orchestrator(publisher).publish(Selection.all())
        assert len(publisher.artifacts) == 2
        assert list((workflows_root / "tmp").iterdir()) == []

    @pytest.mark.asyncio
    async def test_unwritable_temp_dir(self, compiler, tracker, write_workflow, workflows_root):
        write_workflow("a", {"nodes": []})
        blocker = workflows_root / "blocker"
        blocker.write_text("")
        orchestrator = DeploymentOrchestrator(compiler, tracker, FakePublisher(), temp_dir=blocker / "tmp")

        with pytest.raises(InfrastructureError):
            await orchestrator.publish(Selection.all())

    def test_single_file_not_found(self, make_orchestrator):
        with pytest.raises(WorkflowNotFoundError):
            make_orchestrator(FakePublisher()).select(Selection.single("nope.json"))


# ── Selection ────────────────────────────────────────────────────────────


class TestSelection:
    def test_single_resolves_against_flows(self, make_orchestrator, write_workflow):
        path = write_workflow("orders", {"nodes": []})

        assert make_orchestrator(FakePublisher()).select(Selection.single("orders.json")) == [path]

    def test_single_requires_file(self):
        with pytest.raises(ValueError):
            Selection(mode="single")

    def test_sync_run(self, make_orchestrator, write_workflow):
        write_workflow("a", {"nodes": []})

        report = make_orchestrator(FakePublisher()).run(Selection.single("a.json"))

        assert report.mode == "single"
        assert report.succeeded == 1


@pytest.mark.slow
class TestRealSubprocess:
    @pytest.mark.asyncio
    async def test_fake_tool_end_to_end(self, compiler, tracker, write_workflow, fake_tool, workflows_root):
        write_workflow("a", {"nodes": []})
        command = fake_tool(
            """
            import json
            document = json.load(open(artifact))
            print("Permissions 0644 are too wide", file=sys.stderr)
            print(f"Successfully imported 1 workflow. id={document['id']}")
            """
        )
        orchestrator = DeploymentOrchestrator(
            compiler, tracker, ExternalPublisher(command), temp_dir=workflows_root / "tmp"
        )

        report = await orchestrator.publish(Selection.changed())

        assert report.succeeded == 1
        assert "id=a" in report.outcomes[0].stdout
        assert tracker.changed_since() == set()
