"""Publish batches to a target.

Each batch becomes two writes, in order:

1. the data object (newline-delimited JSON, one FeatureCollection per line,
   gzip-compressed under the sharded layout)
2. ``state.yaml`` recording the batch's sequence

State is never written unless the data object was, so a restart after a
failure republishes the same sequence. There is no retry here.
"""

from __future__ import annotations

import gzip
import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Callable, Iterable, List, Optional

from diffpublisher.lib.batcher import Batch
from diffpublisher.lib.errors import PublishError
from diffpublisher.lib.events import FeatureChange
from diffpublisher.lib.position import sequence_to_timestamp
from diffpublisher.lib.state import (
    STATE_KEY,
    PublishState,
    format_timestamp,
    write_state,
)
from diffpublisher.lib.storage.base import StorageBackend

logger = logging.getLogger(__name__)

__all__ = [
    "DATA_CONTENT_TYPE",
    "KeyLayout",
    "PublishResult",
    "Publisher",
    "data_key",
    "encode_batch",
    "flat_key",
    "sharded_key",
]

DATA_CONTENT_TYPE = "application/json"
SEQUENCE_DIGITS = 9


class KeyLayout(Enum):
    """How data objects are addressed.

    SHARDED: ``000/006/018.json.gz`` (gzip, three-level directories)
    FLAT: ``6018.json`` (uncompressed, legacy)
    """

    SHARDED = "sharded"
    FLAT = "flat"

    @property
    def compressed(self) -> bool:
        return self is KeyLayout.SHARDED

    @classmethod
    def choices(cls) -> List[str]:
        return [layout.value for layout in cls]


def _check_sequence(sequence: int) -> None:
    if sequence < 0:
        raise ValueError(f"Sequence must be non-negative, got {sequence}")


def sharded_key(sequence: int) -> str:
    """Zero-pad to 9 digits and split into three 3-digit levels.

    >>> sharded_key(42)
    '000/000/042.json.gz'
    """
    _check_sequence(sequence)
    padded = str(sequence).zfill(SEQUENCE_DIGITS)
    if len(padded) > SEQUENCE_DIGITS:
        raise ValueError(
            f"Sequence {sequence} does not fit the {SEQUENCE_DIGITS}-digit sharded layout"
        )
    return f"{padded[0:3]}/{padded[3:6]}/{padded[6:9]}.json.gz"


def flat_key(sequence: int) -> str:
    _check_sequence(sequence)
    return f"{sequence}.json"


def data_key(sequence: int, layout: KeyLayout = KeyLayout.SHARDED) -> str:
    """Return the storage key for a sequence under a layout."""
    if layout is KeyLayout.FLAT:
        return flat_key(sequence)
    return sharded_key(sequence)


def encode_batch(items: Iterable[FeatureChange]) -> bytes:
    """Encode changes as newline-delimited compact JSON."""
    lines = [
        json.dumps(item.to_dict(), separators=(",", ":"), ensure_ascii=False) + "\n"
        for item in items
    ]
    return "".join(lines).encode("utf-8")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class PublishResult:
    """Outcome of one successful publish."""

    sequence: int
    key: str
    items: int
    bytes_written: int
    complete: bool = True


class Publisher:
    """Writes batches, then state, to one target.

    Calls must not overlap: the state object is the resume checkpoint and
    may only reflect a fully written data object.

    Example:
        >>> publisher = Publisher(get_storage("s3://bucket/diffs/"))
        >>> publisher.publish(batch)
    """

    def __init__(
        self,
        storage: StorageBackend,
        layout: KeyLayout = KeyLayout.SHARDED,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.storage = storage
        self.layout = layout
        self._clock = clock or _utcnow

    def publish(self, batch: Batch) -> PublishResult:
        """Write a batch's data object and then the state object.

        Raises:
            PublishError: If either write fails
        """
        sequence = batch.sequence
        try:
            key = data_key(sequence, self.layout)
        except ValueError as e:
            raise PublishError(str(e), sequence=sequence)

        body = encode_batch(batch.items)
        if self.layout.compressed:
            body = gzip.compress(body, mtime=0)

        result = self.storage.write_bytes(
            key,
            body,
            content_type=DATA_CONTENT_TYPE,
            content_encoding="gzip" if self.layout.compressed else None,
        )
        if not result.success:
            raise PublishError(
                f"Failed to write data object for sequence {sequence}",
                sequence=sequence,
                key=self.storage.describe(key),
                cause=result.error,
            )

        state = PublishState(
            sequence=sequence,
            last_run=self._clock(),
            partial=not batch.complete,
        )
        state_result = write_state(self.storage, state)
        if not state_result.success:
            raise PublishError(
                f"Failed to write state after sequence {sequence}",
                sequence=sequence,
                key=self.storage.describe(STATE_KEY),
                cause=state_result.error,
            )

        logger.info(
            "%d (%s): %d",
            sequence,
            format_timestamp(sequence_to_timestamp(sequence)),
            len(batch.items),
        )

        return PublishResult(
            sequence=sequence,
            key=key,
            items=len(batch.items),
            bytes_written=result.bytes_written,
            complete=batch.complete,
        )
