"""AWS S3 storage backend."""

from __future__ import annotations

import logging
import os
from typing import Any, Dict, Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from diffpublisher.lib.storage.base import StorageBackend, StorageResult

logger = logging.getLogger(__name__)

__all__ = ["S3Storage"]


class S3Storage(StorageBackend):
    """S3-compatible storage backend using boto3.

    Every write is an independent ``put_object`` call; there is no
    multi-object transaction.

    Example:
        >>> storage = S3Storage("s3://my-bucket/augmented-diffs/")
        >>> storage.exists("state.yaml")
        True

    Environment Variables:
        AWS_ACCESS_KEY_ID: AWS access key
        AWS_SECRET_ACCESS_KEY: AWS secret key
        AWS_REGION: AWS region
        AWS_ENDPOINT_URL: Custom S3 endpoint (for MinIO, LocalStack, etc.)

    Options:
        key: AWS access key (overrides env var)
        secret: AWS secret key (overrides env var)
        region: AWS region (overrides env var)
        endpoint_url: Custom S3 endpoint
        client: Pre-built boto3 S3 client
    """

    def __init__(self, base_path: str, **options: Any) -> None:
        super().__init__(base_path, **options)
        self._client = options.get("client")
        self.bucket, self.prefix = self._parse_path(base_path)

    @staticmethod
    def _parse_path(path: str) -> tuple[str, str]:
        """Parse an S3 URI into bucket and prefix."""
        if path.startswith("s3://"):
            path = path[5:]

        parts = path.split("/", 1)
        bucket = parts[0]
        prefix = parts[1].strip("/") if len(parts) > 1 else ""
        return bucket, prefix

    @property
    def scheme(self) -> str:
        return "s3"

    @property
    def client(self):
        """Lazy-build the boto3 client."""
        if self._client is None:
            client_kwargs: Dict[str, Any] = {}

            key = self.options.get("key") or os.environ.get("AWS_ACCESS_KEY_ID")
            secret = self.options.get("secret") or os.environ.get("AWS_SECRET_ACCESS_KEY")
            if key and secret:
                client_kwargs["aws_access_key_id"] = key
                client_kwargs["aws_secret_access_key"] = secret

            region = self.options.get("region") or os.environ.get("AWS_REGION")
            if region:
                client_kwargs["region_name"] = region

            endpoint_url = self.options.get("endpoint_url") or os.environ.get(
                "AWS_ENDPOINT_URL"
            )
            if endpoint_url:
                client_kwargs["endpoint_url"] = endpoint_url

            self._client = boto3.client("s3", **client_kwargs)
            logger.debug(
                "Created S3 client for bucket '%s' with endpoint: %s",
                self.bucket,
                endpoint_url or "default",
            )

        return self._client

    def _build_key(self, path: str) -> str:
        """Build the full object key from a relative path and the prefix."""
        path = path.lstrip("/")
        if self.prefix:
            return f"{self.prefix}/{path}" if path else self.prefix
        return path

    def exists(self, path: str) -> bool:
        key = self._build_key(path)
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
            return True
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey", "NotFound"):
                return False
            raise

    def read_bytes(self, path: str) -> bytes:
        """Read an object.

        Raises:
            FileNotFoundError: If the object does not exist
            ClientError, BotoCoreError: For other S3 failures
        """
        key = self._build_key(path)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code")
            if code in ("404", "NoSuchKey", "NotFound"):
                raise FileNotFoundError(f"s3://{self.bucket}/{key}") from e
            raise
        return response["Body"].read()

    def write_bytes(
        self,
        path: str,
        data: bytes,
        *,
        content_type: Optional[str] = None,
        content_encoding: Optional[str] = None,
    ) -> StorageResult:
        key = self._build_key(path)
        uri = f"s3://{self.bucket}/{key}"

        put_kwargs: Dict[str, Any] = {
            "Bucket": self.bucket,
            "Key": key,
            "Body": data,
        }
        if content_type:
            put_kwargs["ContentType"] = content_type
        if content_encoding:
            put_kwargs["ContentEncoding"] = content_encoding

        try:
            self.client.put_object(**put_kwargs)
        except (BotoCoreError, ClientError) as e:
            logger.error("Failed to write %s: %s", uri, e)
            return StorageResult(success=False, path=uri, error=str(e))

        return StorageResult(
            success=True,
            path=uri,
            bytes_written=len(data),
        )

    def describe(self, path: str = "") -> str:
        return f"s3://{self.bucket}/{self._build_key(path)}"
