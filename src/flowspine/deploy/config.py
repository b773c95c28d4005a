"""Selection and publish options for the deployment orchestrator.

Pydantic v2 models, so the CLI can build them from flags and a caller can
override any field by keyword::

    Selection.changed()
    Selection.single("flows/orders.json")
    PublishOptions(activate=True, timeout_seconds=60)
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field, model_validator


class SelectionMode(str, Enum):
    """Which workflow files a publish run covers."""

    SINGLE = "single"
    ALL = "all"
    CHANGED = "changed"


class Selection(BaseModel):
    """Workflow files chosen for a publish run."""

    mode: SelectionMode
    file: Path | None = None

    @model_validator(mode="after")
    def _check_file(self) -> Selection:
        if self.mode is SelectionMode.SINGLE and self.file is None:
            raise ValueError("single-file selection requires a file")
        if self.mode is not SelectionMode.SINGLE and self.file is not None:
            raise ValueError(f"{self.mode.value} selection does not take a file")
        return self

    @classmethod
    def single(cls, file: str | Path) -> Selection:
        return cls(mode=SelectionMode.SINGLE, file=Path(file))

    @classmethod
    def all(cls) -> Selection:
        return cls(mode=SelectionMode.ALL)

    @classmethod
    def changed(cls) -> Selection:
        return cls(mode=SelectionMode.CHANGED)


class PublishOptions(BaseModel):
    """Per-run publish options.

    Attributes:
        activate: Ask the external tool to activate each published workflow
        timeout_seconds: Ceiling per external tool invocation
        save_compiled: Also write each compiled document to ``dist/``
    """

    activate: bool = False
    timeout_seconds: float = Field(default=30.0, gt=0)
    save_compiled: bool = False
