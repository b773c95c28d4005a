"""Process-wide settings for flow-spine.

Every path the compiler and the orchestrator touch is derived from one
managed root (``workflows_path``). Settings are read from ``FLOWSPINE_*``
environment variables and an optional ``.env`` file; keyword arguments win
over both.

Manifesto:
    Configuration should be explicit, validated, and environment-driven.

    - **Pydantic validation:** Type-checked at startup, not mid-publish
    - **Environment-driven:** ``FLOWSPINE_PUBLISH_TIMEOUT_SECONDS=60``
    - **Derived paths:** flows/, nodes/, dist/ and the ledger all hang off
      the managed root unless overridden

Examples:
    >>> from flowspine.core.settings import FlowSpineSettings
    >>> settings = FlowSpineSettings(workflows_path="/srv/automations")
    >>> settings.flows_path
    PosixPath('/srv/automations/flows')

Tags:
    settings, configuration, pydantic, environment, flow-spine
"""

from __future__ import annotations

import json
from functools import lru_cache
from pathlib import Path
from typing import Annotated

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


class FlowSpineSettings(BaseSettings):
    """Settings shared by the compiler, the tracker, and the orchestrator.

    Fields
    ──────
    workflows_path          : Managed root holding flows/, nodes/, dist/
    flows_dir               : Workflow documents, one JSON file per workflow
    nodes_dir               : Content store root (kind subdirectories)
    dist_dir                : Compiled documents saved for inspection
    ledger_path             : Change-tracker ledger (default under .flowspine/)
    publisher_command       : External tool argv prefix
    publish_timeout_seconds : Ceiling per external tool invocation
    temp_dir                : Where isolated publish artifacts are written
    extract_min_chars       : Inline payloads shorter than this stay inline
    log_level / log_json    : structlog configuration
    """

    model_config = SettingsConfigDict(
        env_prefix="FLOWSPINE_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # ── Layout ───────────────────────────────────────────────────
    workflows_path: Path = Field(default_factory=Path.cwd)
    flows_dir: str = "flows"
    nodes_dir: str = "nodes"
    dist_dir: str = "dist"
    ledger_path: Path | None = None

    # ── Publishing ───────────────────────────────────────────────
    publisher_command: Annotated[list[str], NoDecode] = Field(default_factory=lambda: ["n8n", "import:workflow"])
    publish_timeout_seconds: float = Field(default=30.0, gt=0)
    temp_dir: Path | None = None

    # ── Authoring ────────────────────────────────────────────────
    extract_min_chars: int = Field(default=10, ge=1)

    # ── Observability ────────────────────────────────────────────
    log_level: str = "INFO"
    log_json: bool | None = None

    @field_validator("publisher_command", mode="before")
    @classmethod
    def _split_command(cls, value: object) -> object:
        # FLOWSPINE_PUBLISHER_COMMAND="n8n import:workflow" or a JSON list
        if isinstance(value, str):
            if value.lstrip().startswith("["):
                return json.loads(value)
            return value.split()
        return value

    @property
    def flows_path(self) -> Path:
        return self.workflows_path / self.flows_dir

    @property
    def nodes_path(self) -> Path:
        return self.workflows_path / self.nodes_dir

    @property
    def dist_path(self) -> Path:
        return self.workflows_path / self.dist_dir

    @property
    def resolved_ledger_path(self) -> Path:
        if self.ledger_path is not None:
            return self.ledger_path
        return self.workflows_path / ".flowspine" / "change-tracker.json"


@lru_cache(maxsize=1)
def get_settings() -> FlowSpineSettings:
    """Cached settings for the current process."""
    return FlowSpineSettings()
