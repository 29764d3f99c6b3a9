"""Wire feed, annotator, batcher and publisher into one run.

The stages are a chain of generators driven by a plain ``for`` loop, so
batch k+1 is not even assembled until ``publish(batch k)`` has returned.
That is what keeps publishes strictly serialized.
"""

from __future__ import annotations

import logging
from typing import Iterable, Optional

from diffpublisher.lib.batcher import batch_events
from diffpublisher.lib.events import Event, annotate_events
from diffpublisher.lib.feed import HttpEventFeed, JsonLinesFeed
from diffpublisher.lib.observability import PublishMetrics
from diffpublisher.lib.position import resolve_start
from diffpublisher.lib.publisher import Publisher
from diffpublisher.lib.settings import Settings
from diffpublisher.lib.storage import get_storage
from diffpublisher.lib.storage.base import StorageBackend

logger = logging.getLogger(__name__)

__all__ = ["build_feed", "run", "run_pipeline"]


def run_pipeline(
    events: Iterable[Event],
    publisher: Publisher,
    metrics: Optional[PublishMetrics] = None,
) -> int:
    """Publish every batch in an event stream.

    Returns:
        Number of batches published

    Raises:
        FeedError: From the feed, annotator or batcher
        PublishError: From the publisher; nothing after the failed batch
            is published
    """
    published = 0

    for batch in batch_events(annotate_events(events)):
        if metrics is None:
            result = publisher.publish(batch)
        else:
            with metrics.time_phase("publish"):
                result = publisher.publish(batch)
            metrics.record_batch(
                result.sequence,
                result.items,
                result.bytes_written,
                complete=result.complete,
            )
        published += 1

    return published


def build_feed(settings: Settings, start_sequence: int) -> Iterable[Event]:
    """Return the configured feed.

    Both start at ``start_sequence``: a feed file drops the sequences
    before it and the HTTP feed requests it first.
    """
    if settings.feed_file:
        logger.info("Reading events from %s", settings.feed_file)
        return JsonLinesFeed(settings.feed_file, initial_sequence=start_sequence)

    feed_url = settings.feed_url
    logger.info("Polling %s from sequence %d", feed_url, start_sequence)
    return HttpEventFeed(
        feed_url,
        start_sequence,
        infinite=settings.infinite,
        poll_interval=settings.poll_interval,
    )


def run(settings: Settings, storage: Optional[StorageBackend] = None) -> int:
    """Run the publisher until the feed ends or an error occurs.

    Returns:
        Number of batches published
    """
    settings.check()

    target = settings.target
    if storage is None:
        storage = get_storage(target)

    start = resolve_start(
        storage,
        sequence=settings.initial_sequence,
        timestamp=settings.timestamp,
    )

    metrics = PublishMetrics(target=target, start_sequence=start)
    publisher = Publisher(storage, layout=settings.layout)

    try:
        published = run_pipeline(build_feed(settings, start), publisher, metrics)
    finally:
        metrics.finish()
        logger.info(
            "Published %d batch(es) with %d change(s) to %s",
            metrics.batches,
            metrics.changes,
            target,
            extra=metrics.to_log_dict(),
        )
        logger.debug("Run summary: %s", metrics.summary())

    return published
