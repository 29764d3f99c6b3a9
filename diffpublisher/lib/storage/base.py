"""Abstract base class for publish targets.

A target only needs put/get object semantics: the publisher writes a data
object and then the state object, and the position resolver reads the
state object once at startup.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Optional

logger = logging.getLogger(__name__)

__all__ = ["StorageBackend", "StorageResult"]


@dataclass
class StorageResult:
    """Result of a storage operation."""

    success: bool
    path: str
    bytes_written: int = 0
    error: Optional[str] = None


class StorageBackend(ABC):
    """Abstract base class for storage backends.

    Writes report failure through ``StorageResult.success`` rather than
    raising; reads raise (``FileNotFoundError`` for missing objects).
    """

    def __init__(self, base_path: str, **options: Any) -> None:
        """Initialize the storage backend.

        Args:
            base_path: Base path (prefix) for this storage backend
            **options: Backend-specific options
        """
        self.base_path = base_path
        self.options = options

    @property
    @abstractmethod
    def scheme(self) -> str:
        """Return the URI scheme for this backend (e.g., 'file', 's3')."""
        pass

    @abstractmethod
    def exists(self, path: str) -> bool:
        """Check if an object exists.

        Args:
            path: Path relative to base_path

        Returns:
            True if path exists, False otherwise
        """
        pass

    @abstractmethod
    def read_bytes(self, path: str) -> bytes:
        """Read object contents as bytes.

        Args:
            path: Path relative to base_path

        Returns:
            Object contents

        Raises:
            FileNotFoundError: If the object does not exist
        """
        pass

    @abstractmethod
    def write_bytes(
        self,
        path: str,
        data: bytes,
        *,
        content_type: Optional[str] = None,
        content_encoding: Optional[str] = None,
    ) -> StorageResult:
        """Write a whole object, replacing any existing one.

        Args:
            path: Path relative to base_path
            data: Bytes to write
            content_type: MIME type, where the backend records one
            content_encoding: Content encoding (e.g. 'gzip')

        Returns:
            StorageResult with operation details
        """
        pass

    def read_text(self, path: str, encoding: str = "utf-8") -> str:
        return self.read_bytes(path).decode(encoding)

    def write_text(
        self,
        path: str,
        data: str,
        encoding: str = "utf-8",
        *,
        content_type: Optional[str] = None,
    ) -> StorageResult:
        return self.write_bytes(path, data.encode(encoding), content_type=content_type)

    def get_full_path(self, path: str) -> str:
        """Get the full path including base_path.

        Args:
            path: Relative path

        Returns:
            Full path with base_path prefix
        """
        if not path:
            return self.base_path

        base = self.base_path.rstrip("/")
        if not base:
            return path.lstrip("/")
        return f"{base}/{path.lstrip('/')}"

    def describe(self, path: str = "") -> str:
        """Return a URI-like description of a path for logs and errors."""
        return f"{self.scheme}://{self.get_full_path(path)}"

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(base_path={self.base_path!r})"
