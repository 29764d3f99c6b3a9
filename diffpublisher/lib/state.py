"""Publish state: the durable record of the last fully published sequence.

Stored as ``state.yaml`` at the root of the target::

    last_run: '2024-05-01T12:00:03.120000Z'
    sequence: 6018422

The publisher rewrites it after every data object; the position resolver
reads it once at startup.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Dict

import yaml

from diffpublisher.lib.errors import StateReadError
from diffpublisher.lib.storage.base import StorageBackend, StorageResult

logger = logging.getLogger(__name__)

__all__ = [
    "STATE_KEY",
    "STATE_CONTENT_TYPE",
    "PublishState",
    "format_timestamp",
    "read_state",
    "write_state",
]

STATE_KEY = "state.yaml"
STATE_CONTENT_TYPE = "application/vnd.yaml"


def format_timestamp(value: datetime) -> str:
    """Render a datetime as ISO-8601 UTC with a ``Z`` suffix."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def _parse_last_run(value: Any) -> datetime:
    if isinstance(value, datetime):
        # PyYAML resolves unquoted timestamps itself
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, str):
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"last_run must be a timestamp, got {type(value).__name__}")


@dataclass(frozen=True)
class PublishState:
    """Most recently published sequence.

    ``partial`` marks a sequence flushed at end of stream before its end
    marker was seen.
    """

    sequence: int
    last_run: datetime
    partial: bool = False

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "last_run": format_timestamp(self.last_run),
            "sequence": self.sequence,
        }
        if self.partial:
            data["partial"] = True
        return data

    def to_yaml(self) -> str:
        return yaml.safe_dump(self.to_dict(), default_flow_style=False, sort_keys=False)

    @classmethod
    def from_yaml(cls, text: str) -> "PublishState":
        """Parse a state document.

        Raises:
            StateReadError: If the document is not valid YAML or lacks
                an integer ``sequence``
        """
        try:
            data = yaml.safe_load(text)
        except yaml.YAMLError as e:
            raise StateReadError("State document is not valid YAML", cause=e)

        if not isinstance(data, dict) or "sequence" not in data:
            raise StateReadError(
                "State document has no sequence",
                details={"content": text[:200]},
            )

        try:
            sequence = int(data["sequence"])
        except (TypeError, ValueError) as e:
            raise StateReadError(
                f"State sequence is not an integer: {data['sequence']!r}", cause=e
            )

        last_run_raw = data.get("last_run")
        try:
            last_run = (
                _parse_last_run(last_run_raw)
                if last_run_raw is not None
                else datetime.fromtimestamp(0, tz=timezone.utc)
            )
        except ValueError as e:
            raise StateReadError(f"Invalid last_run: {last_run_raw!r}", cause=e)

        return cls(
            sequence=sequence,
            last_run=last_run,
            partial=bool(data.get("partial", False)),
        )


def read_state(storage: StorageBackend) -> PublishState:
    """Read the publish state from a target.

    Raises:
        StateReadError: If the state object is missing or unreadable
    """
    location = storage.describe(STATE_KEY)

    try:
        text = storage.read_text(STATE_KEY)
    except FileNotFoundError as e:
        raise StateReadError(
            f"No state found at {location}", location=location, cause=e
        )
    except Exception as e:
        raise StateReadError(
            f"Could not read state from {location}", location=location, cause=e
        )

    try:
        state = PublishState.from_yaml(text)
    except StateReadError as e:
        raise StateReadError(
            f"Invalid state at {location}: {e.message}",
            location=location,
            cause=e.cause,
            details=dict(e.details),
        )

    logger.debug(
        "Read state from %s: sequence %d (last run %s)",
        location,
        state.sequence,
        format_timestamp(state.last_run),
    )
    return state


def write_state(storage: StorageBackend, state: PublishState) -> StorageResult:
    """Write the publish state to the target's fixed state key."""
    return storage.write_text(
        STATE_KEY, state.to_yaml(), content_type=STATE_CONTENT_TYPE
    )
