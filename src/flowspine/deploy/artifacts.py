"""Isolated temporary artifacts for publish units.

Each unit serializes its compiled document to its own file; the name
embeds a timestamp and a random suffix so concurrently running units
never collide, and the file is removed when the ``with`` block exits
whether or not the publish succeeded::

    with temporary_artifact(document, tmp_dir, "orders.json") as path:
        await publisher.publish(path)
"""

from __future__ import annotations

import tempfile
import time
import uuid
from collections.abc import Iterator
from contextlib import contextmanager, suppress
from pathlib import Path
from typing import Any

from flowspine.compiler.documents import dumps_document
from flowspine.core.errors import InfrastructureError
from flowspine.core.logging import get_logger

logger = get_logger(__name__)

ARTIFACT_PREFIX = "flowspine_publish"


def artifact_name(source_name: str) -> str:
    """``flowspine_publish_<ms timestamp>_<8 hex>_<source name>``."""
    return f"{ARTIFACT_PREFIX}_{time.time_ns() // 1_000_000}_{uuid.uuid4().hex[:8]}_{Path(source_name).name}"


@contextmanager
def temporary_artifact(
    document: dict[str, Any],
    directory: str | Path | None = None,
    source_name: str = "workflow.json",
) -> Iterator[Path]:
    """Write ``document`` to a uniquely named file and remove it on exit.

    Raises:
        InfrastructureError: If the temporary directory is not writable.
    """
    directory = Path(directory) if directory is not None else Path(tempfile.gettempdir())
    path = directory / artifact_name(source_name)
    try:
        directory.mkdir(parents=True, exist_ok=True)
        path.write_text(dumps_document(document), encoding="utf-8")
    except OSError as exc:
        with suppress(OSError):
            path.unlink(missing_ok=True)
        raise InfrastructureError(
            f"Cannot write temporary publish artifact: {exc}",
            cause=exc,
            remediation="Check that the temporary directory exists and is writable "
            "(FLOWSPINE_TEMP_DIR).",
        ).with_context(path=str(path))

    logger.debug("artifact.created", path=str(path))
    try:
        yield path
    finally:
        try:
            path.unlink(missing_ok=True)
        except OSError as exc:
            logger.warning("artifact.cleanup_failed", path=str(path), error=str(exc))
        else:
            logger.debug("artifact.removed", path=str(path))
