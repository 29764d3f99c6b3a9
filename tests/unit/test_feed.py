"""Tests for diffpublisher/lib/feed.py - upstream event feeds."""

import io
import json
from unittest.mock import MagicMock

import pytest
import requests

from diffpublisher.lib.errors import FeedError
from diffpublisher.lib.events import FeatureChange, Marker, MarkerStatus
from diffpublisher.lib.feed import (
    HttpEventFeed,
    JsonLinesFeed,
    SequenceNotReady,
    iter_json_lines,
)
from tests.conftest import end, make_change, start


def _ndjson(*events):
    return "".join(json.dumps(e.to_dict()) + "\n" for e in events)


def _response(status_code=200, text=""):
    response = MagicMock()
    response.status_code = status_code
    response.text = text
    if status_code >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status_code} Error")
    return response


def _session(responses):
    session = MagicMock(spec=requests.Session)
    session.get.side_effect = responses
    return session


class TestIterJsonLines:
    def test_parses_events(self):
        text = _ndjson(start(1), make_change("create", "a"), end(1))

        events = list(iter_json_lines(text.splitlines()))

        assert events[0] == start(1)
        assert isinstance(events[1], FeatureChange)
        assert events[2] == end(1)

    def test_skips_blank_lines(self):
        text = "\n" + _ndjson(start(1)) + "\n\n"
        assert list(iter_json_lines(text.splitlines())) == [start(1)]

    def test_invalid_json_reports_line(self):
        lines = [json.dumps(start(1).to_dict()), "{not json"]
        with pytest.raises(FeedError, match="line 2"):
            list(iter_json_lines(lines))


class TestJsonLinesFeed:
    def test_file(self, tmp_path):
        path = tmp_path / "events.ndjson"
        path.write_text(_ndjson(start(3), make_change("delete", "x"), end(3)))

        events = list(JsonLinesFeed(str(path)))

        assert len(events) == 3

    def test_stream(self):
        stream = io.StringIO(_ndjson(start(3), end(3)))
        assert list(JsonLinesFeed(stream)) == [start(3), end(3)]

    def test_stdin(self, monkeypatch):
        monkeypatch.setattr("sys.stdin", io.StringIO(_ndjson(start(4), end(4))))
        assert list(JsonLinesFeed("-")) == [start(4), end(4)]

    def test_missing_file(self, tmp_path):
        with pytest.raises(FeedError, match="Cannot open feed file"):
            list(JsonLinesFeed(str(tmp_path / "missing.ndjson")))

    def test_initial_sequence_drops_earlier_sequences(self):
        stream = io.StringIO(
            _ndjson(
                start(98), make_change("create", "a"), end(98),
                start(99), make_change("create", "b"), end(99),
                start(100), make_change("create", "c"), end(100),
                start(101), end(101),
            )
        )

        events = list(JsonLinesFeed(stream, initial_sequence=100))

        markers = [e for e in events if isinstance(e, Marker)]
        assert markers == [start(100), end(100), start(101), end(101)]
        assert len(events) == 5

    def test_initial_sequence_past_end_of_file(self):
        stream = io.StringIO(_ndjson(start(50), make_change("create", "a"), end(50)))
        assert list(JsonLinesFeed(stream, initial_sequence=51)) == []

    def test_initial_sequence_keeps_changes_before_first_marker(self):
        change = make_change("create", "a")
        stream = io.StringIO(_ndjson(change, start(5), end(5)))

        events = list(JsonLinesFeed(stream, initial_sequence=5))

        assert isinstance(events[0], FeatureChange)
        assert events[1:] == [start(5), end(5)]


class TestHttpEventFeed:
    """Tests for the polling HTTP feed (requests mocked)."""

    def test_wraps_sequence_in_markers(self):
        body = _ndjson(make_change("create", "a"), make_change("delete", "b"))
        session = _session([_response(text=body), _response(404)])
        feed = HttpEventFeed("https://feed.example.org/diffs/", 42, infinite=False, session=session)

        events = list(feed)

        assert events[0] == Marker(MarkerStatus.START, 42)
        assert [e.operation.value for e in events[1:3]] == ["create", "delete"]
        assert events[3] == Marker(MarkerStatus.END, 42)
        session.get.assert_any_call("https://feed.example.org/diffs/42", timeout=60.0)
        session.get.assert_called_with("https://feed.example.org/diffs/43", timeout=60.0)

    def test_empty_sequence(self):
        session = _session([_response(text=""), _response(404)])
        feed = HttpEventFeed("https://feed.example.org", 7, infinite=False, session=session)

        assert list(feed) == [start(7), end(7)]

    def test_infinite_waits_for_unpublished_sequence(self):
        sleeps = []
        session = _session(
            [
                _response(404),
                _response(404),
                _response(text=_ndjson(make_change("create", "a"))),
            ]
        )
        feed = HttpEventFeed(
            "https://feed.example.org",
            10,
            infinite=True,
            poll_interval=30,
            session=session,
            sleep=sleeps.append,
        )

        stream = iter(feed)
        events = [next(stream) for _ in range(3)]

        assert events[0] == start(10)
        assert events[2] == end(10)
        assert sleeps == [30, 30]
        assert session.get.call_count == 3

    def test_http_error(self):
        session = _session([_response(500)])
        feed = HttpEventFeed("https://feed.example.org", 1, infinite=False, session=session)

        with pytest.raises(FeedError, match="Failed to fetch") as exc_info:
            list(feed)
        assert exc_info.value.sequence == 1

    def test_connection_error(self):
        session = _session(requests.ConnectionError("refused"))
        feed = HttpEventFeed("https://feed.example.org", 1, session=session)

        with pytest.raises(FeedError) as exc_info:
            list(feed)
        assert exc_info.value.details["cause_type"] == "ConnectionError"

    def test_markers_in_body_rejected(self):
        session = _session([_response(text=_ndjson(start(1)))])
        feed = HttpEventFeed("https://feed.example.org", 1, infinite=False, session=session)

        with pytest.raises(FeedError, match="only contain feature changes"):
            list(feed)

    def test_fetch_not_ready(self):
        session = _session([_response(404)])
        feed = HttpEventFeed("https://feed.example.org", 1, session=session)

        with pytest.raises(SequenceNotReady):
            feed.fetch(1)

    def test_requires_base_url(self):
        with pytest.raises(FeedError):
            HttpEventFeed("", 1)
