"""Publish target abstraction.

Provides a unified interface for writing batches and state to different
storage backends: local filesystem and AWS S3.

Usage:
    from diffpublisher.lib.storage import get_storage

    # Local filesystem
    storage = get_storage("file://./diffs/")

    # AWS S3
    storage = get_storage("s3://my-bucket/augmented-diffs/")
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Optional
from urllib.parse import urlsplit

from diffpublisher.lib.errors import ConfigurationError
from diffpublisher.lib.storage.base import StorageBackend, StorageResult
from diffpublisher.lib.storage.local import LocalStorage
from diffpublisher.lib.storage.s3 import S3Storage

__all__ = [
    "StorageBackend",
    "StorageResult",
    "LocalStorage",
    "S3Storage",
    "SinkLocation",
    "get_storage",
    "parse_uri",
]

SUPPORTED_SCHEMES = ("file", "s3")


@dataclass(frozen=True)
class SinkLocation:
    """Parsed target URI.

    Attributes:
        scheme: 'file' or 's3'
        bucket: Bucket name for S3, None for local paths
        prefix: Directory (local) or key prefix (S3) holding the data
            objects and state.yaml
        original: The URI as given
    """

    scheme: str
    bucket: Optional[str]
    prefix: str
    original: str


def parse_uri(uri: str) -> SinkLocation:
    """Parse a target URI.

    Args:
        uri: ``file://`` URI, ``s3://`` URI or a bare local path

    Returns:
        SinkLocation

    Raises:
        ConfigurationError: If the URI has an unsupported scheme

    Examples:
        >>> parse_uri("file://./")
        SinkLocation(scheme='file', bucket=None, prefix='./', original='file://./')
        >>> parse_uri("s3://my-bucket/diffs/")
        SinkLocation(scheme='s3', bucket='my-bucket', prefix='diffs/', original='s3://my-bucket/diffs/')
    """
    uri = uri.strip()
    if not uri:
        raise ConfigurationError("Target URI is empty", field="target")

    if "://" not in uri:
        return SinkLocation(scheme="file", bucket=None, prefix=uri, original=uri)

    parts = urlsplit(uri)
    scheme = parts.scheme.lower()

    if scheme == "file":
        # file://./ and file://relative/dir keep the host as the first
        # path segment; file:///abs/path has an empty host
        return SinkLocation(
            scheme="file",
            bucket=None,
            prefix=(parts.netloc + parts.path) or ".",
            original=uri,
        )

    if scheme == "s3":
        if not parts.netloc:
            raise ConfigurationError(
                "S3 target URI has no bucket", field="target", value=uri
            )
        return SinkLocation(
            scheme="s3",
            bucket=parts.netloc,
            prefix=parts.path.lstrip("/"),
            original=uri,
        )

    raise ConfigurationError(
        f"Unsupported protocol: {scheme}:",
        field="target",
        value=uri,
        suggestion=f"Use one of: {', '.join(s + '://' for s in SUPPORTED_SCHEMES)}",
    )


def get_storage(uri: str, **options: Any) -> StorageBackend:
    """Get the storage backend for a target URI.

    Args:
        uri: Target URI (see :func:`parse_uri`)
        **options: Backend-specific options (credentials, client, etc.)

    Returns:
        StorageBackend instance for the detected scheme

    Environment Variables:
        S3:
            AWS_ACCESS_KEY_ID, AWS_SECRET_ACCESS_KEY, AWS_REGION,
            AWS_ENDPOINT_URL
    """
    location = parse_uri(uri)

    if location.scheme == "s3":
        return S3Storage(f"s3://{location.bucket}/{location.prefix}", **options)
    return LocalStorage(location.prefix, **options)
