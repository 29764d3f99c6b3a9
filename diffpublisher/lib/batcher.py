"""Group annotated events into per-sequence batches.

The batcher is a two-state machine driven one event at a time:

    IDLE          --change-->  ACCUMULATING
    ACCUMULATING  --change-->  ACCUMULATING
    any           --start(n)-> same state, current sequence = n
    ACCUMULATING  --end(n)-->  IDLE, emit Batch(current sequence)
    IDLE          --end(n)-->  IDLE

A start marker never clears pending changes; only end markers (or the end
of the stream) flush.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Tuple

from diffpublisher.lib.errors import FeedError
from diffpublisher.lib.events import Event, FeatureChange, Marker

logger = logging.getLogger(__name__)

__all__ = ["Batch", "BatcherState", "SequenceBatcher", "batch_events"]


@dataclass(frozen=True)
class Batch:
    """All changes observed for one sequence.

    ``complete`` is False for a batch flushed at end of stream, before the
    sequence's end marker was seen.
    """

    sequence: int
    items: Tuple[FeatureChange, ...]
    complete: bool = True

    def __len__(self) -> int:
        return len(self.items)


class BatcherState(Enum):
    IDLE = "idle"
    ACCUMULATING = "accumulating"


class SequenceBatcher:
    """Stateful marker-delimited batcher.

    Example:
        >>> batcher = SequenceBatcher()
        >>> for event in events:
        ...     batch = batcher.step(event)
        ...     if batch is not None:
        ...         publish(batch)
        >>> last = batcher.flush()
    """

    def __init__(self) -> None:
        self.state = BatcherState.IDLE
        self.current_sequence: Optional[int] = None
        self._pending: List[FeatureChange] = []

    @property
    def pending(self) -> Tuple[FeatureChange, ...]:
        return tuple(self._pending)

    def step(self, event: Event) -> Optional[Batch]:
        """Apply one event and return a batch if it completed one."""
        if isinstance(event, FeatureChange):
            self._pending.append(event)
            self.state = BatcherState.ACCUMULATING
            return None

        if not isinstance(event, Marker):
            raise FeedError(f"Unexpected event in stream: {type(event).__name__}")

        if event.is_start:
            self.current_sequence = event.sequence
            return None

        # end marker
        if (
            self.current_sequence is not None
            and event.sequence != self.current_sequence
        ):
            logger.warning(
                "End marker for sequence %d does not match current sequence %d",
                event.sequence,
                self.current_sequence,
            )

        batch = None
        if self.state is BatcherState.ACCUMULATING:
            batch = self._emit(complete=True)
        self._reset()
        return batch

    def flush(self) -> Optional[Batch]:
        """Emit whatever is pending at end of stream."""
        if self.state is not BatcherState.ACCUMULATING:
            return None

        logger.warning(
            "Stream ended before the end marker of sequence %s; "
            "flushing %d pending change(s)",
            self.current_sequence,
            len(self._pending),
        )
        batch = self._emit(complete=False)
        self._reset()
        return batch

    def _emit(self, *, complete: bool) -> Batch:
        if self.current_sequence is None:
            raise FeedError(
                "Feature changes arrived before any start marker",
                details={"pending": len(self._pending)},
            )
        return Batch(
            sequence=self.current_sequence,
            items=tuple(self._pending),
            complete=complete,
        )

    def _reset(self) -> None:
        self._pending = []
        self.state = BatcherState.IDLE


def batch_events(events: Iterable[Event]) -> Iterator[Batch]:
    """Lazily turn an event stream into batches.

    The next event is only pulled once the previously yielded batch has
    been consumed, so a blocking consumer applies backpressure to the feed.
    """
    batcher = SequenceBatcher()

    for event in events:
        batch = batcher.step(event)
        if batch is not None:
            yield batch

    last = batcher.flush()
    if last is not None:
        yield last
