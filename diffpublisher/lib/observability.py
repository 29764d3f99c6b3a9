"""Observability utilities for the publisher.

Combines run metrics with logging setup so a publishing run can report
both per-batch progress and a final summary from the same module.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Generator, List, Optional

logger = logging.getLogger(__name__)

__all__ = [
    "JSONFormatter",
    "PhaseTimer",
    "PublishMetrics",
    "setup_logging",
]

_RESERVED_ATTRS = set(logging.LogRecord("", 0, "", 0, "", (), None).__dict__)


@dataclass
class PhaseTimer:
    """Accumulated time spent in a named phase."""

    name: str
    total: float = 0.0
    count: int = 0
    _started: Optional[float] = field(default=None, repr=False)

    def start(self) -> None:
        self._started = time.perf_counter()

    def stop(self) -> float:
        """Stop the timer and return the duration of this interval."""
        if self._started is None:
            return 0.0
        elapsed = time.perf_counter() - self._started
        self._started = None
        self.total += elapsed
        self.count += 1
        return elapsed


class PublishMetrics:
    """Counters and phase timings for one publishing run."""

    def __init__(self, target: str, start_sequence: Optional[int] = None) -> None:
        self.target = target
        self.start_sequence = start_sequence
        self.batches = 0
        self.changes = 0
        self.bytes_written = 0
        self.partial_batches = 0
        self.last_sequence: Optional[int] = None

        self._start_time = time.time()
        self._end_time: Optional[float] = None
        self._phases: Dict[str, PhaseTimer] = {}

    @contextmanager
    def time_phase(self, name: str) -> Generator[PhaseTimer, None, None]:
        """Context manager that adds the block's duration to a phase."""
        timer = self._phases.setdefault(name, PhaseTimer(name=name))
        timer.start()
        try:
            yield timer
        finally:
            timer.stop()

    def record_batch(
        self,
        sequence: int,
        changes: int,
        bytes_written: int,
        complete: bool = True,
    ) -> None:
        self.batches += 1
        self.changes += changes
        self.bytes_written += bytes_written
        self.last_sequence = sequence
        if not complete:
            self.partial_batches += 1

    def finish(self) -> None:
        """Mark the run as complete."""
        self._end_time = time.time()

    @property
    def total_duration(self) -> float:
        end = self._end_time or time.time()
        return end - self._start_time

    def summary(self) -> Dict[str, Any]:
        """Return a summary dictionary of the run."""
        return {
            "target": self.target,
            "start_sequence": self.start_sequence,
            "last_sequence": self.last_sequence,
            "batches": self.batches,
            "changes": self.changes,
            "bytes_written": self.bytes_written,
            "partial_batches": self.partial_batches,
            "timing": {
                "total_seconds": round(self.total_duration, 3),
                "phases": {
                    name: round(timer.total, 3) for name, timer in self._phases.items()
                },
            },
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    def to_log_dict(self) -> Dict[str, Any]:
        """Flatten metrics for structured logging."""
        result: Dict[str, Any] = {
            "publish_target": self.target,
            "publish_batches": self.batches,
            "publish_changes": self.changes,
            "publish_bytes": self.bytes_written,
            "publish_partial_batches": self.partial_batches,
            "total_duration_seconds": round(self.total_duration, 3),
        }
        if self.last_sequence is not None:
            result["publish_last_sequence"] = self.last_sequence
        for name, timer in self._phases.items():
            result[f"phase_{name}_seconds"] = round(timer.total, 3)
        return result


class JSONFormatter(logging.Formatter):
    """Formatter that renders log records as JSON."""

    def __init__(self, exclude_fields: Optional[List[str]] = None):
        super().__init__()
        self.exclude_fields = exclude_fields or []

    def format(self, record: logging.LogRecord) -> str:
        payload: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc)
            .isoformat()
            .replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)

        extra_attrs = {
            k: v
            for k, v in record.__dict__.items()
            if k not in _RESERVED_ATTRS
            and k not in ("message", "asctime")
            and k not in self.exclude_fields
        }
        if extra_attrs:
            payload["extra"] = extra_attrs

        return json.dumps(payload, default=str)


def setup_logging(
    verbose: bool = False,
    json_format: bool = False,
    log_file: Optional[str] = None,
) -> None:
    """Configure the root logger with optional JSON formatting."""
    level = logging.DEBUG if verbose else logging.INFO

    formatter = JSONFormatter() if json_format else logging.Formatter(
        "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for noisy in ("urllib3", "requests", "botocore", "boto3", "s3transfer"):
        logging.getLogger(noisy).setLevel(logging.WARNING)
