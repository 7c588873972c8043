"""Local object storage for uploaded documents.

Paths are storage-relative (``<source_id>/<file_name>``) and confined to
the storage root; anything resolving outside it is rejected.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Protocol

logger = logging.getLogger(__name__)


class ObjectStorage(Protocol):
    def download(self, path: str) -> bytes: ...

    def delete(self, paths: list[str]) -> None: ...


class LocalStorage:
    """Filesystem-backed object storage rooted at *root*."""

    def __init__(self, root: Path | str) -> None:
        self.root = Path(root).resolve()

    def _resolve(self, path: str) -> Path:
        target = (self.root / path).resolve()
        if not target.is_relative_to(self.root) or target == self.root:
            raise ValueError(f"Storage path escapes the storage root: {path!r}")
        return target

    def upload(self, path: str, data: bytes) -> str:
        target = self._resolve(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(data)
        return path

    def download(self, path: str) -> bytes:
        """Return the stored bytes. Raises FileNotFoundError if absent."""
        return self._resolve(path).read_bytes()

    def delete(self, paths: list[str]) -> None:
        """Delete stored objects; missing objects are ignored."""
        for path in paths:
            target = self._resolve(path)
            if target.exists():
                target.unlink()
                logger.debug("Deleted stored object %s", path)
