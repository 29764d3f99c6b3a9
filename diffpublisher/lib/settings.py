"""Runtime settings for the publisher.

Values come from (highest priority first) command-line overrides, the
environment (``DIFF_PUBLISHER_`` prefix, plus ``OVERPASS_URL`` for the
feed) and a ``.env`` file.
"""

from __future__ import annotations

import os
import re
from typing import List, Optional

from pydantic import AliasChoices, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from diffpublisher.lib.errors import ConfigurationError
from diffpublisher.lib.feed import DEFAULT_POLL_INTERVAL
from diffpublisher.lib.publisher import KeyLayout

__all__ = ["DEFAULT_TARGET", "Settings"]

DEFAULT_TARGET = "file://./"

# ${VAR_NAME} or $VAR_NAME
_ENV_REFERENCE = re.compile(r"\$\{([^}]+)\}|\$([A-Za-z_][A-Za-z0-9_]*)")


def _expand(match: re.Match[str]) -> str:
    name = match.group(1) or match.group(2)
    return os.environ.get(name, match.group(0))


class Settings(BaseSettings):
    """Environment-based publisher settings using pydantic-settings.

    Example:
        >>> # OVERPASS_URL=https://overpass.example.org/augmented_diffs
        >>> # DIFF_PUBLISHER_TARGET=s3://osm-diffs/augmented/
        >>> settings = Settings(initial_sequence=6018422)
        >>> settings.target
        's3://osm-diffs/augmented/'
    """

    target: str = Field(default=DEFAULT_TARGET, description="Target URI (file:// or s3://)")
    initial_sequence: Optional[int] = Field(default=None, ge=0, description="Explicit starting sequence")
    timestamp: Optional[str] = Field(default=None, description="Starting timestamp (ISO-8601)")
    layout: KeyLayout = Field(default=KeyLayout.SHARDED, description="Data object key layout")
    feed_url: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("feed_url", "DIFF_PUBLISHER_FEED_URL", "OVERPASS_URL"),
        description="Base URL of the event feed",
    )
    feed_file: Optional[str] = Field(default=None, description="Newline-delimited event file ('-' for stdin)")
    poll_interval: float = Field(default=DEFAULT_POLL_INTERVAL, gt=0, description="Seconds between feed polls")
    infinite: bool = Field(default=True, description="Keep polling for new sequences")
    verbose: bool = Field(default=False, description="Enable debug logging")
    json_log: bool = Field(default=False, description="Log in JSON format")
    log_file: Optional[str] = Field(default=None, description="Optional log file path")

    model_config = SettingsConfigDict(
        env_prefix="DIFF_PUBLISHER_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
        populate_by_name=True,
    )

    @field_validator("target", "feed_url")
    @classmethod
    def expand_env_references(cls, value: Optional[str]) -> Optional[str]:
        """Expand ${VAR} references; unset variables are left as written."""
        if value is None:
            return None
        return _ENV_REFERENCE.sub(_expand, value)

    def check(self) -> None:
        """Validate option combinations.

        Raises:
            ConfigurationError: Listing every problem found
        """
        issues: List[str] = []

        if self.initial_sequence is not None and self.timestamp:
            issues.append("initial sequence and timestamp are mutually exclusive")
        if self.feed_url and self.feed_file:
            issues.append("feed URL and feed file are mutually exclusive")
        if not self.feed_url and not self.feed_file:
            issues.append("a feed is required: set --feed-url (or OVERPASS_URL) or --feed-file")

        if issues:
            raise ConfigurationError(
                "Invalid settings: " + "; ".join(issues),
                details={"issue_count": len(issues)},
            )
