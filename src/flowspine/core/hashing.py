"""
Deterministic hashing utilities for change detection.

Provides stable, reproducible SHA-256 fingerprints. The change tracker
compares the fingerprint of a workflow file's raw bytes against the
fingerprint recorded at its last successful publish; any difference means
the workflow must be published again.

Manifesto:
    - **Raw bytes:** Fingerprints are taken over file bytes, never over a
      re-serialized document, so formatting edits count as changes
    - **Deterministic:** Same inputs always produce the same fingerprint
    - **Full digest:** File fingerprints keep all 64 hex characters

Examples:
    >>> compute_bytes_hash(b'{"name": "orders"}') == compute_bytes_hash(b'{"name": "orders"}')
    True
    >>> len(compute_hash("orders", "Code Node", length=16))
    16

Tags:
    hashing, fingerprint, change-detection, flow-spine
"""

from __future__ import annotations

import hashlib
from pathlib import Path
from typing import Any

_CHUNK_SIZE = 64 * 1024


def compute_hash(*values: Any, length: int = 32) -> str:
    """
    Compute deterministic hash from values.

    Concatenates string representations of all values with a ``|``
    delimiter and returns a truncated SHA-256 hex digest. Order matters:
    ``compute_hash("a", "b") != compute_hash("b", "a")``.

    Args:
        *values: Values to hash (converted to strings)
        length: Hex digest length (default 32 = 128 bits)

    Returns:
        Hex string of specified length
    """
    content = "|".join(str(v) for v in values)
    return hashlib.sha256(content.encode()).hexdigest()[:length]


def compute_bytes_hash(data: bytes) -> str:
    """Full SHA-256 hex digest of ``data``."""
    return hashlib.sha256(data).hexdigest()


def compute_file_hash(path: str | Path) -> str:
    """
    Fingerprint a file by hashing its raw bytes.

    Reads in chunks so large workflow exports do not need to fit in memory
    twice. Raises ``OSError`` if the file cannot be read; the caller decides
    whether that is a per-workflow or an infrastructure failure.

    Args:
        path: File to fingerprint

    Returns:
        64-character SHA-256 hex digest
    """
    digest = hashlib.sha256()
    with open(path, "rb") as handle:
        for chunk in iter(lambda: handle.read(_CHUNK_SIZE), b""):
            digest.update(chunk)
    return digest.hexdigest()
