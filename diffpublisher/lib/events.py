"""Event model for the augmented diff stream.

The upstream feed delivers two kinds of objects:

- ``Marker``: ``{"type": "Marker", "properties": {"status": "start"|"end",
  "sequenceNumber": 42}}`` delimiting one sequence's changes.
- ``FeatureCollection``: one element change; ``id`` is the operation
  (create/modify/delete) and the features are tagged ``"old"`` and
  ``"new"``.

This module turns decoded JSON objects into typed events and annotates
feature changes with a ``visible`` property.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Iterable, Iterator, List, Optional, Union

from diffpublisher.lib.errors import FeedError

logger = logging.getLogger(__name__)

__all__ = [
    "MarkerStatus",
    "Operation",
    "Marker",
    "FeatureChange",
    "Event",
    "parse_event",
    "annotate",
    "annotate_events",
]


class MarkerStatus(Enum):
    """Boundary markers emitted around each sequence."""

    START = "start"
    END = "end"


class Operation(Enum):
    """Element-level change operations."""

    CREATE = "create"
    MODIFY = "modify"
    DELETE = "delete"

    @classmethod
    def choices(cls) -> List[str]:
        return [op.value for op in cls]


@dataclass
class Marker:
    """Start or end of one upstream sequence."""

    status: MarkerStatus
    sequence: int

    @property
    def is_start(self) -> bool:
        return self.status is MarkerStatus.START

    @property
    def is_end(self) -> bool:
        return self.status is MarkerStatus.END

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": "Marker",
            "properties": {
                "status": self.status.value,
                "sequenceNumber": self.sequence,
            },
        }


@dataclass
class FeatureChange:
    """A single create/modify/delete of one element.

    ``features`` holds the GeoJSON features of the change; the post-change
    representation is the one whose ``id`` is ``"new"``.
    """

    operation: Operation
    features: List[Dict[str, Any]] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)

    @property
    def new_feature(self) -> Optional[Dict[str, Any]]:
        """Return the replacement feature, or None if the change lacks one."""
        for feature in self.features:
            if feature.get("id") == "new":
                return feature
        return None

    @property
    def visible(self) -> Optional[bool]:
        feature = self.new_feature
        if feature is None:
            return None
        return feature.get("properties", {}).get("visible")

    def to_dict(self) -> Dict[str, Any]:
        """Return the FeatureCollection form written to data objects."""
        payload: Dict[str, Any] = {
            "type": "FeatureCollection",
            "id": self.operation.value,
        }
        payload.update(self.extra)
        payload["features"] = self.features
        return payload


Event = Union[Marker, FeatureChange]


def parse_event(obj: Any) -> Event:
    """Convert a decoded JSON object into a Marker or FeatureChange.

    Args:
        obj: Decoded event object from the feed

    Returns:
        Typed event

    Raises:
        FeedError: If the object is not a recognizable event
    """
    if not isinstance(obj, dict):
        raise FeedError(f"Expected an event object, got {type(obj).__name__}")

    kind = obj.get("type")

    if kind == "Marker":
        props = obj.get("properties") or {}
        try:
            status = MarkerStatus(props.get("status"))
        except ValueError:
            raise FeedError(
                f"Unknown marker status: {props.get('status')!r}",
                details={"event": obj},
            )
        raw_sequence = props.get("sequenceNumber")
        try:
            sequence = int(raw_sequence)
        except (TypeError, ValueError) as e:
            raise FeedError(
                f"Marker has an invalid sequenceNumber: {raw_sequence!r}",
                cause=e,
            )
        return Marker(status=status, sequence=sequence)

    if kind == "FeatureCollection":
        try:
            operation = Operation(obj.get("id"))
        except ValueError:
            raise FeedError(
                f"Unknown operation {obj.get('id')!r}; "
                f"expected one of {Operation.choices()}"
            )
        features = obj.get("features")
        if not isinstance(features, list):
            raise FeedError(
                "Feature change has no features list",
                details={"operation": operation.value},
            )
        extra = {
            k: v for k, v in obj.items() if k not in ("type", "id", "features")
        }
        return FeatureChange(operation=operation, features=features, extra=extra)

    raise FeedError(f"Unknown event type: {kind!r}")


def annotate(event: Event) -> Event:
    """Set ``visible`` on the new feature of a change (in place).

    Deleted elements are marked invisible; everything else is visible.
    Markers pass through untouched.

    Raises:
        FeedError: If a change has no ``"new"`` feature
    """
    if isinstance(event, Marker):
        return event

    feature = event.new_feature
    if feature is None:
        raise FeedError(
            f"{event.operation.value} change has no 'new' feature",
            details={"feature_ids": [f.get("id") for f in event.features]},
        )

    properties = feature.setdefault("properties", {})
    if properties is None:
        properties = feature["properties"] = {}
    properties["visible"] = event.operation is not Operation.DELETE

    return event


def annotate_events(events: Iterable[Event]) -> Iterator[Event]:
    """Lazily annotate a stream of events, preserving order."""
    for event in events:
        yield annotate(event)
