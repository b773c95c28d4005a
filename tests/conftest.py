"""
Shared pytest fixtures for flow-spine tests.

This module provides:
- A temporary managed root (flows/, nodes/, tmp/)
- Helpers to write workflow documents and content files
- A fixed clock for idempotence checks
- A fake external tool launched with ``sys.executable``

Usage:
    def test_something(workflows_root, write_workflow, write_content):
        path = write_workflow("orders", {"nodes": []})
"""

from __future__ import annotations

import json
import sys
import textwrap
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Callable

import pytest
import structlog

from flowspine.compiler import ContentStore, WorkflowCompiler
from flowspine.core.settings import FlowSpineSettings

FIXED_NOW = datetime(2026, 3, 1, 9, 12, 44, 120000, tzinfo=UTC)


# =============================================================================
# Test isolation
# =============================================================================


@pytest.fixture(autouse=True)
def _reset_structlog():
    """Drop logging configuration made by earlier tests (e.g. CLI runs)."""
    yield
    structlog.reset_defaults()


# =============================================================================
# Managed root
# =============================================================================


@pytest.fixture
def workflows_root(tmp_path: Path) -> Path:
    """Empty managed root with flows/ and nodes/ created."""
    root = tmp_path / "automations"
    (root / "flows").mkdir(parents=True)
    (root / "nodes").mkdir()
    (root / "tmp").mkdir()
    return root


@pytest.fixture
def store(workflows_root: Path) -> ContentStore:
    return ContentStore(workflows_root / "nodes")


@pytest.fixture
def fixed_clock() -> Callable[[], datetime]:
    return lambda: FIXED_NOW


@pytest.fixture
def compiler(store: ContentStore, workflows_root: Path, fixed_clock) -> WorkflowCompiler:
    return WorkflowCompiler(
        store,
        clock=fixed_clock,
        flows_path=workflows_root / "flows",
        dist_path=workflows_root / "dist",
    )


@pytest.fixture
def settings(workflows_root: Path) -> FlowSpineSettings:
    return FlowSpineSettings(workflows_path=workflows_root, temp_dir=workflows_root / "tmp")


# =============================================================================
# Writers
# =============================================================================


@pytest.fixture
def write_workflow(workflows_root: Path) -> Callable[[str, Any], Path]:
    """Write a workflow document to flows/<name>.json and return its path."""

    def _write(name: str, document: Any) -> Path:
        path = workflows_root / "flows" / f"{name}.json"
        path.write_text(json.dumps(document, indent=2), encoding="utf-8")
        return path

    return _write


@pytest.fixture
def write_content(workflows_root: Path) -> Callable[[str, str, str], Path]:
    """Write nodes/<subdir>/<file name> and return its path."""

    def _write(subdir: str, file_name: str, text: str) -> Path:
        path = workflows_root / "nodes" / subdir / file_name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8")
        return path

    return _write


# =============================================================================
# Fake external tool
# =============================================================================


@pytest.fixture
def fake_tool(tmp_path: Path) -> Callable[[str], list[str]]:
    """Build a fake publishing tool from a Python body.

    The body sees ``args`` (argv without the program) and ``artifact``
    (the path given through ``--input=``). Returns the argv prefix to
    hand to ``ExternalPublisher``.
    """
    counter = {"n": 0}

    def _make(body: str) -> list[str]:
        counter["n"] += 1
        script = tmp_path / f"fake_tool_{counter['n']}.py"
        script.write_text(
            "import sys, os, time\n"
            "args = sys.argv[1:]\n"
            "artifact = next((a.split('=', 1)[1] for a in args if a.startswith('--input=')), None)\n"
            + textwrap.dedent(body),
            encoding="utf-8",
        )
        return [sys.executable, str(script)]

    return _make
