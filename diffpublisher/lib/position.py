"""Sequence/timestamp arithmetic and startup position resolution.

Augmented diff sequences are minutely: sequence ``n`` covers the minute
ending at ``EPOCH_OFFSET + n * INTERVAL_SECONDS`` (unix seconds).
"""

from __future__ import annotations

import logging
import math
from datetime import datetime, timezone
from typing import Optional, Union

from diffpublisher.lib.errors import ConfigurationError
from diffpublisher.lib.state import format_timestamp, read_state
from diffpublisher.lib.storage.base import StorageBackend

logger = logging.getLogger(__name__)

__all__ = [
    "EPOCH_OFFSET",
    "INTERVAL_SECONDS",
    "parse_timestamp",
    "resolve_start",
    "sequence_to_timestamp",
    "timestamp_to_sequence",
]

EPOCH_OFFSET = 1347432900
INTERVAL_SECONDS = 60

Timestamp = Union[str, datetime]


def parse_timestamp(value: Timestamp) -> datetime:
    """Convert an ISO-8601 string (or datetime) to an aware UTC datetime.

    Naive values are taken to be UTC.

    Raises:
        ConfigurationError: If the string cannot be parsed
    """
    if isinstance(value, datetime):
        parsed = value
    else:
        text = str(value).strip()
        try:
            parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            raise ConfigurationError(
                f"Invalid timestamp: {value!r}",
                field="timestamp",
                value=value,
                suggestion="Use ISO-8601, e.g. 2024-05-01T12:00:00Z",
            )

    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def sequence_to_timestamp(sequence: int) -> datetime:
    """Return the UTC timestamp a sequence number corresponds to."""
    return datetime.fromtimestamp(
        EPOCH_OFFSET + sequence * INTERVAL_SECONDS, tz=timezone.utc
    )


def timestamp_to_sequence(timestamp: Timestamp) -> int:
    """Return the first sequence at or after a timestamp."""
    seconds = parse_timestamp(timestamp).timestamp()
    return math.ceil((seconds - EPOCH_OFFSET) / INTERVAL_SECONDS)


def resolve_start(
    storage: StorageBackend,
    sequence: Optional[int] = None,
    timestamp: Optional[Timestamp] = None,
) -> int:
    """Work out the first sequence to request from the feed.

    An explicit sequence wins, then a timestamp; otherwise resume right
    after the sequence recorded in the target's state.

    Args:
        storage: Publish target
        sequence: Explicit starting sequence
        timestamp: Starting timestamp (mutually exclusive with sequence)

    Returns:
        Starting sequence number

    Raises:
        ConfigurationError: If both overrides are given
        StateReadError: If no override is given and the state is missing
            or unreadable
    """
    if sequence is not None and timestamp is not None:
        raise ConfigurationError(
            "Starting sequence and timestamp are mutually exclusive",
            field="initial_sequence",
            value=sequence,
        )

    if sequence is not None:
        logger.info("Starting from explicit sequence %d", sequence)
        return sequence

    if timestamp is not None:
        start = timestamp_to_sequence(timestamp)
        logger.info(
            "Starting from sequence %d (%s) for timestamp %s",
            start,
            format_timestamp(sequence_to_timestamp(start)),
            timestamp,
        )
        return start

    state = read_state(storage)
    if state.partial:
        logger.warning(
            "Sequence %d was published from an interrupted stream and may be "
            "incomplete; resuming after it",
            state.sequence,
        )

    start = state.sequence + 1
    logger.info(
        "Resuming from sequence %d (last published %d at %s)",
        start,
        state.sequence,
        format_timestamp(state.last_run),
    )
    return start
