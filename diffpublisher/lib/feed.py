"""Upstream event feeds.

A feed is any iterable of events (markers and feature changes) in
sequence order. Two adapters are provided:

- ``JsonLinesFeed``: newline-delimited event objects from a file or stdin,
  e.g. the output of an augmented diff parser piped into the publisher.
- ``HttpEventFeed``: polls ``{base_url}/{sequence}`` for newline-delimited
  feature changes and wraps each sequence in start/end markers. With
  ``infinite=True`` it waits for sequences that are not published yet.

Neither adapter parses the augmented diff format itself.
"""

from __future__ import annotations

import json
import logging
import sys
import time
from pathlib import Path
from typing import Callable, Iterable, Iterator, List, Optional, TextIO, Union

import requests
import tenacity

from diffpublisher.lib.errors import FeedError
from diffpublisher.lib.events import (
    Event,
    FeatureChange,
    Marker,
    MarkerStatus,
    parse_event,
)

logger = logging.getLogger(__name__)

__all__ = [
    "DEFAULT_POLL_INTERVAL",
    "HttpEventFeed",
    "JsonLinesFeed",
    "SequenceNotReady",
    "iter_json_lines",
]

DEFAULT_POLL_INTERVAL = 60.0
DEFAULT_TIMEOUT = 60.0


class SequenceNotReady(Exception):
    """The feed has not published the requested sequence yet."""

    def __init__(self, sequence: int) -> None:
        super().__init__(f"Sequence {sequence} is not available yet")
        self.sequence = sequence


def iter_json_lines(lines: Iterable[str]) -> Iterator[Event]:
    """Parse newline-delimited JSON event objects.

    Blank lines are skipped.

    Raises:
        FeedError: On invalid JSON or an unrecognizable event
    """
    for line_no, line in enumerate(lines, start=1):
        line = line.strip()
        if not line:
            continue
        try:
            obj = json.loads(line)
        except json.JSONDecodeError as e:
            raise FeedError(
                f"Invalid JSON on line {line_no}",
                cause=e,
                details={"line": line[:200]},
            )
        yield parse_event(obj)


class JsonLinesFeed:
    """Events read from a newline-delimited JSON file (``-`` for stdin).

    With ``initial_sequence`` set, every sequence below it (from its start
    marker up to the next start marker) is dropped, so replaying a file
    into a target resumes after the sequence already published there.
    """

    def __init__(
        self,
        source: Union[str, Path, TextIO] = "-",
        initial_sequence: Optional[int] = None,
    ) -> None:
        self.source = source
        self.initial_sequence = initial_sequence

    def __iter__(self) -> Iterator[Event]:
        return self._from_initial(self._read())

    def _read(self) -> Iterator[Event]:
        if self.source == "-":
            yield from iter_json_lines(sys.stdin)
            return

        if not isinstance(self.source, (str, Path)):
            yield from iter_json_lines(self.source)
            return

        path = Path(self.source)
        try:
            handle = path.open("r", encoding="utf-8")
        except OSError as e:
            raise FeedError(f"Cannot open feed file {path}", cause=e)

        with handle:
            yield from iter_json_lines(handle)

    def _from_initial(self, events: Iterator[Event]) -> Iterator[Event]:
        if self.initial_sequence is None:
            yield from events
            return

        skipping = False
        skipped = 0
        for event in events:
            if isinstance(event, Marker) and event.is_start:
                skipping = event.sequence < self.initial_sequence
                if skipping:
                    skipped += 1
                elif skipped:
                    logger.info(
                        "Skipped %d already published sequence(s) before %d",
                        skipped,
                        self.initial_sequence,
                    )
                    skipped = 0
            if not skipping:
                yield event

        if skipped:
            logger.info(
                "Skipped %d already published sequence(s); none at or after %d",
                skipped,
                self.initial_sequence,
            )

    def __repr__(self) -> str:
        return (
            f"JsonLinesFeed(source={self.source!r}, "
            f"initial_sequence={self.initial_sequence})"
        )


class HttpEventFeed:
    """Poll an HTTP endpoint for one sequence at a time.

    ``GET {base_url}/{sequence}`` must return the sequence's feature
    changes as newline-delimited FeatureCollections; 404 means the
    sequence does not exist yet.

    Example:
        >>> feed = HttpEventFeed("https://overpass.example.org/diffs", 6018422)
        >>> for event in feed:
        ...     ...
    """

    def __init__(
        self,
        base_url: str,
        initial_sequence: int,
        *,
        infinite: bool = True,
        poll_interval: float = DEFAULT_POLL_INTERVAL,
        timeout: float = DEFAULT_TIMEOUT,
        session: Optional[requests.Session] = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if not base_url:
            raise FeedError("Feed base URL is required")
        self.base_url = base_url.rstrip("/")
        self.initial_sequence = initial_sequence
        self.infinite = infinite
        self.poll_interval = poll_interval
        self.timeout = timeout
        self.session = session or requests.Session()
        self._sleep = sleep

    def url_for(self, sequence: int) -> str:
        return f"{self.base_url}/{sequence}"

    def fetch(self, sequence: int) -> str:
        """Fetch the body for one sequence.

        Raises:
            SequenceNotReady: On HTTP 404
            FeedError: On any other HTTP or connection failure
        """
        url = self.url_for(sequence)
        try:
            response = self.session.get(url, timeout=self.timeout)
            if response.status_code == 404:
                raise SequenceNotReady(sequence)
            response.raise_for_status()
        except requests.RequestException as e:
            raise FeedError(f"Failed to fetch {url}", sequence=sequence, cause=e)

        return response.text

    def _log_wait(self, retry_state: tenacity.RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.debug(
            "%s; checking again in %.0fs (attempt %d)",
            exc,
            self.poll_interval,
            retry_state.attempt_number,
        )

    def _wait_for(self, sequence: int) -> str:
        retrying = tenacity.Retrying(
            retry=tenacity.retry_if_exception_type(SequenceNotReady),
            wait=tenacity.wait_fixed(self.poll_interval),
            stop=tenacity.stop_never,
            before_sleep=self._log_wait,
            sleep=self._sleep,
            reraise=True,
        )
        return retrying(self.fetch, sequence)

    def _changes(self, sequence: int, body: str) -> List[FeatureChange]:
        changes: List[FeatureChange] = []
        for event in iter_json_lines(body.splitlines()):
            if not isinstance(event, FeatureChange):
                raise FeedError(
                    "Sequence body may only contain feature changes",
                    sequence=sequence,
                )
            changes.append(event)
        return changes

    def __iter__(self) -> Iterator[Event]:
        sequence = self.initial_sequence

        while True:
            if self.infinite:
                body = self._wait_for(sequence)
            else:
                try:
                    body = self.fetch(sequence)
                except SequenceNotReady:
                    logger.info("Sequence %d not available; feed finished", sequence)
                    return

            changes = self._changes(sequence, body)
            logger.debug("Fetched sequence %d: %d change(s)", sequence, len(changes))

            yield Marker(MarkerStatus.START, sequence)
            yield from changes
            yield Marker(MarkerStatus.END, sequence)

            sequence += 1

    def __repr__(self) -> str:
        return (
            f"HttpEventFeed(base_url={self.base_url!r}, "
            f"initial_sequence={self.initial_sequence})"
        )
