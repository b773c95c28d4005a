"""
Filesystem-backed content store.

Maps a ``(kind, key)`` pair to a text file under the store root::

    nodes/
    ├── code/        orders_normalize.js, scoring.py
    ├── prompts/     orders_triage.md
    ├── data/        sample_payload.json
    ├── sql/         daily_totals.sql
    └── templates/   receipt.html

The compiler only ever reads from the store; the extractor is the only
writer. Keys are plain file stems: anything that would escape the kind
directory (separators, ``..``, leading dots) is rejected.

Example:
    >>> store = ContentStore("/srv/automations/nodes")
    >>> entry = store.read(ContentKind.SCRIPT, "orders_normalize")
    >>> entry.extension if entry else None
    '.js'

Tags:
    content-store, filesystem, flow-spine
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from flowspine.compiler.kinds import KIND_LAYOUTS, ContentKind
from flowspine.core.errors import ContentStoreError


@dataclass(frozen=True)
class ContentEntry:
    """A content file resolved from the store."""

    kind: ContentKind
    key: str
    path: Path
    extension: str
    text: str = ""


class ContentStore:
    """Read/write access to externalized node payloads.

    Parameters
    ----------
    root
        Store root; each kind lives in its own subdirectory.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def kind_dir(self, kind: ContentKind) -> Path:
        return self.root / KIND_LAYOUTS[kind].subdir

    def path_for(self, kind: ContentKind, key: str, extension: str) -> Path:
        """Storage path for ``key`` with an explicit extension.

        Raises
        ------
        ContentStoreError
            If ``key`` is not a plain file stem.
        """
        self._check_key(key)
        return self.kind_dir(kind) / f"{key}{extension}"

    def resolve(
        self,
        kind: ContentKind,
        key: str,
        extensions: tuple[str, ...] | None = None,
    ) -> tuple[Path, str] | None:
        """Find the first existing file for ``key``.

        Returns
        -------
        tuple or None
            ``(path, extension)`` of the first match in extension order,
            or None when no file exists.
        """
        for extension in extensions or KIND_LAYOUTS[kind].extensions:
            path = self.path_for(kind, key, extension)
            if path.is_file():
                return path, extension
        return None

    def read(
        self,
        kind: ContentKind,
        key: str,
        extensions: tuple[str, ...] | None = None,
    ) -> ContentEntry | None:
        """Load a content entry, or None when the file does not exist.

        Decoding and permission problems propagate as ``OSError`` /
        ``UnicodeDecodeError`` so the caller can decide how soft to be.
        """
        found = self.resolve(kind, key, extensions)
        if found is None:
            return None
        path, extension = found
        text = path.read_text(encoding="utf-8")
        return ContentEntry(kind=kind, key=key, path=path, extension=extension, text=text)

    def exists(self, kind: ContentKind, key: str) -> bool:
        return self.resolve(kind, key) is not None

    def write(self, kind: ContentKind, key: str, text: str, extension: str) -> ContentEntry:
        """Create or replace a content entry.

        Raises
        ------
        ContentStoreError
            If the key is invalid, the extension does not belong to the
            kind, or the file cannot be written.
        """
        if extension not in KIND_LAYOUTS[kind].extensions:
            raise ContentStoreError(
                f"Extension {extension!r} is not valid for {kind.value} content"
            ).with_context(key=key)
        path = self.path_for(kind, key, extension)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_text(text, encoding="utf-8")
        except OSError as exc:
            raise ContentStoreError(
                f"Cannot write content file: {exc}", cause=exc
            ).with_context(path=str(path))
        return ContentEntry(kind=kind, key=key, path=path, extension=extension, text=text)

    def list_keys(self, kind: ContentKind) -> list[str]:
        """Sorted keys stored for ``kind`` (any known extension)."""
        directory = self.kind_dir(kind)
        if not directory.is_dir():
            return []
        extensions = KIND_LAYOUTS[kind].extensions
        return sorted(
            {p.stem for p in directory.iterdir() if p.is_file() and p.suffix in extensions}
        )

    @staticmethod
    def _check_key(key: str) -> None:
        if (
            not key
            or key.startswith(".")
            or "/" in key
            or "\\" in key
            or "\x00" in key
        ):
            raise ContentStoreError(f"Invalid content key: {key!r}")
