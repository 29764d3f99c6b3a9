"""Publisher library modules.

This package contains the event model, the sequence batcher, the
publisher and the storage targets used by the command-line entry point.
"""

from diffpublisher.lib.batcher import Batch, BatcherState, SequenceBatcher, batch_events
from diffpublisher.lib.errors import (
    ConfigurationError,
    DiffPublisherError,
    FeedError,
    PublishError,
    StateReadError,
)
from diffpublisher.lib.events import (
    FeatureChange,
    Marker,
    MarkerStatus,
    Operation,
    annotate,
    annotate_events,
    parse_event,
)
from diffpublisher.lib.feed import HttpEventFeed, JsonLinesFeed, iter_json_lines
from diffpublisher.lib.position import (
    EPOCH_OFFSET,
    INTERVAL_SECONDS,
    resolve_start,
    sequence_to_timestamp,
    timestamp_to_sequence,
)
from diffpublisher.lib.publisher import (
    KeyLayout,
    PublishResult,
    Publisher,
    data_key,
    encode_batch,
)
from diffpublisher.lib.runner import run, run_pipeline
from diffpublisher.lib.settings import Settings
from diffpublisher.lib.state import STATE_KEY, PublishState, read_state, write_state
from diffpublisher.lib.storage import SinkLocation, get_storage, parse_uri

__all__ = [
    # Batching
    "Batch",
    "BatcherState",
    "SequenceBatcher",
    "batch_events",
    # Errors
    "ConfigurationError",
    "DiffPublisherError",
    "FeedError",
    "PublishError",
    "StateReadError",
    # Events
    "FeatureChange",
    "Marker",
    "MarkerStatus",
    "Operation",
    "annotate",
    "annotate_events",
    "parse_event",
    # Feeds
    "HttpEventFeed",
    "JsonLinesFeed",
    "iter_json_lines",
    # Position
    "EPOCH_OFFSET",
    "INTERVAL_SECONDS",
    "resolve_start",
    "sequence_to_timestamp",
    "timestamp_to_sequence",
    # Publishing
    "KeyLayout",
    "PublishResult",
    "Publisher",
    "data_key",
    "encode_batch",
    # Runner
    "run",
    "run_pipeline",
    "Settings",
    # State
    "STATE_KEY",
    "PublishState",
    "read_state",
    "write_state",
    # Storage
    "SinkLocation",
    "get_storage",
    "parse_uri",
]
