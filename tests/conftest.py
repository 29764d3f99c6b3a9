"""Pytest configuration and fixtures."""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import pytest

# Add the project root to the Python path
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

from diffpublisher.lib.events import FeatureChange, Marker, MarkerStatus, Operation  # noqa: E402
from diffpublisher.lib.storage.base import StorageBackend, StorageResult  # noqa: E402


def make_change(operation: str, ref: str, *, with_new: bool = True) -> FeatureChange:
    """Build a feature change for element ``ref``."""
    features: List[Dict[str, Any]] = []
    if operation != "create":
        features.append(
            {
                "type": "Feature",
                "id": "old",
                "properties": {"id": ref, "version": 1},
                "geometry": {"type": "Point", "coordinates": [0.0, 0.0]},
            }
        )
    if with_new:
        features.append(
            {
                "type": "Feature",
                "id": "new",
                "properties": {"id": ref, "version": 2},
                "geometry": {"type": "Point", "coordinates": [1.0, 1.0]},
            }
        )
    return FeatureChange(operation=Operation(operation), features=features)


def start(sequence: int) -> Marker:
    return Marker(MarkerStatus.START, sequence)


def end(sequence: int) -> Marker:
    return Marker(MarkerStatus.END, sequence)


class RecordingStorage(StorageBackend):
    """In-memory target that records the order of writes.

    ``fail_on`` makes writes to matching keys fail.
    """

    def __init__(self, fail_on: Optional[str] = None) -> None:
        super().__init__("memory")
        self.objects: Dict[str, bytes] = {}
        self.writes: List[Tuple[str, Optional[str], Optional[str]]] = []
        self.fail_on = fail_on

    @property
    def scheme(self) -> str:
        return "memory"

    def exists(self, path: str) -> bool:
        return path in self.objects

    def read_bytes(self, path: str) -> bytes:
        if path not in self.objects:
            raise FileNotFoundError(path)
        return self.objects[path]

    def write_bytes(self, path, data, *, content_type=None, content_encoding=None):
        if self.fail_on and path.endswith(self.fail_on):
            return StorageResult(success=False, path=path, error="disk full")
        self.writes.append((path, content_type, content_encoding))
        self.objects[path] = data
        return StorageResult(success=True, path=path, bytes_written=len(data))


@pytest.fixture
def memory_storage() -> RecordingStorage:
    return RecordingStorage()


@pytest.fixture
def aws_credentials(monkeypatch):
    """Mock AWS credentials for moto."""
    monkeypatch.setenv("AWS_ACCESS_KEY_ID", "testing")
    monkeypatch.setenv("AWS_SECRET_ACCESS_KEY", "testing")
    monkeypatch.setenv("AWS_SECURITY_TOKEN", "testing")
    monkeypatch.setenv("AWS_SESSION_TOKEN", "testing")
    monkeypatch.setenv("AWS_DEFAULT_REGION", "us-east-1")
    monkeypatch.setenv("AWS_REGION", "us-east-1")
    monkeypatch.delenv("AWS_ENDPOINT_URL", raising=False)


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    """Isolate settings from the caller's environment and .env file."""
    for name in (
        "OVERPASS_URL",
        "DIFF_PUBLISHER_TARGET",
        "DIFF_PUBLISHER_LAYOUT",
        "DIFF_PUBLISHER_FEED_URL",
        "DIFF_PUBLISHER_FEED_FILE",
        "DIFF_PUBLISHER_INITIAL_SEQUENCE",
        "DIFF_PUBLISHER_TIMESTAMP",
    ):
        monkeypatch.delenv(name, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture
def restore_logging():
    """Undo root logger changes made by setup_logging()."""
    root = logging.getLogger()
    handlers = root.handlers[:]
    level = root.level
    yield root
    for handler in root.handlers[:]:
        if handler not in handlers:
            root.removeHandler(handler)
            handler.close()
    for handler in handlers:
        if handler not in root.handlers:
            root.addHandler(handler)
    root.setLevel(level)
