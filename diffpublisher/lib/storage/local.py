"""Local filesystem storage backend."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Optional

from diffpublisher.lib.storage.base import StorageBackend, StorageResult

logger = logging.getLogger(__name__)

__all__ = ["LocalStorage"]


class LocalStorage(StorageBackend):
    """Local filesystem storage backend.

    Content type and encoding are not recorded; the ``.gz`` suffix of
    sharded keys is the only hint that a file is compressed.

    Example:
        >>> storage = LocalStorage("./diffs/")
        >>> storage.write_bytes("000/000/042.json.gz", payload)
        >>> storage.exists("state.yaml")
        True
    """

    @property
    def scheme(self) -> str:
        return "file"

    def _resolve_path(self, path: str) -> Path:
        """Resolve a path to an absolute Path object."""
        base = Path(self.base_path or ".")
        if not path:
            return base.resolve()
        return (base / path.lstrip("/")).resolve()

    def exists(self, path: str) -> bool:
        return self._resolve_path(path).exists()

    def read_bytes(self, path: str) -> bytes:
        resolved = self._resolve_path(path)
        return resolved.read_bytes()

    def write_bytes(
        self,
        path: str,
        data: bytes,
        *,
        content_type: Optional[str] = None,
        content_encoding: Optional[str] = None,
    ) -> StorageResult:
        """Write bytes to a file, creating intermediate directories."""
        resolved = self._resolve_path(path)

        try:
            resolved.parent.mkdir(parents=True, exist_ok=True)
            resolved.write_bytes(data)

            return StorageResult(
                success=True,
                path=str(resolved),
                bytes_written=len(data),
            )
        except OSError as e:
            logger.error("Failed to write %s: %s", resolved, e)
            return StorageResult(
                success=False,
                path=str(resolved),
                error=str(e),
            )

    def describe(self, path: str = "") -> str:
        return f"file://{self._resolve_path(path)}"
