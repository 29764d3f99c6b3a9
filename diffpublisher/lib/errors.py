"""Structured exception hierarchy for the diff publisher.

None of these are recovered locally: the publisher halts on the first
error and a restarted process resumes from the last written state.
"""

from __future__ import annotations

from typing import Any, Dict, Optional

__all__ = [
    "DiffPublisherError",
    "FeedError",
    "PublishError",
    "StateReadError",
    "ConfigurationError",
]


class DiffPublisherError(Exception):
    """Base exception for all publisher errors.

    Provides structured error information for debugging.
    """

    def __init__(
        self,
        message: str,
        *,
        details: Optional[Dict[str, Any]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        self.message = message
        self.details = details or {}
        self.suggestion = suggestion

        parts = [message]

        if details:
            detail_lines = [f"  {k}: {v}" for k, v in details.items()]
            parts.append("\nDetails:")
            parts.extend(detail_lines)

        if suggestion:
            parts.append(f"\nSuggestion: {suggestion}")

        super().__init__("\n".join(parts) if len(parts) > 1 else message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
            "suggestion": self.suggestion,
        }


class FeedError(DiffPublisherError):
    """Upstream feed could not be read or produced a malformed event."""

    def __init__(
        self,
        message: str,
        *,
        sequence: Optional[int] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.sequence = sequence
        self.cause = cause

        details = kwargs.pop("details", {})
        if sequence is not None:
            details["sequence"] = sequence
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        super().__init__(message, details=details, **kwargs)


class PublishError(DiffPublisherError):
    """Writing a data object or the state object failed.

    Raised by the publisher without retrying; the state object is only
    advanced after a successful data write, so restarting republishes the
    same sequence.
    """

    def __init__(
        self,
        message: str,
        *,
        sequence: Optional[int] = None,
        key: Optional[str] = None,
        cause: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.sequence = sequence
        self.key = key
        self.cause = cause

        details = kwargs.pop("details", {})
        if sequence is not None:
            details["sequence"] = sequence
        if key:
            details["key"] = key
        if cause:
            details["cause"] = cause

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Check that the target is writable and credentials are valid, "
                "then restart; publishing resumes from the last written state."
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)


class StateReadError(DiffPublisherError):
    """The persisted state could not be read at startup."""

    def __init__(
        self,
        message: str,
        *,
        location: Optional[str] = None,
        cause: Optional[Exception] = None,
        **kwargs: Any,
    ) -> None:
        self.location = location
        self.cause = cause

        details = kwargs.pop("details", {})
        if location:
            details["location"] = location
        if cause:
            details["cause"] = str(cause)
            details["cause_type"] = type(cause).__name__

        suggestion = kwargs.pop("suggestion", None)
        if not suggestion:
            suggestion = (
                "Pass --initial-sequence or --timestamp to choose a starting "
                "point for a target without state."
            )

        super().__init__(message, details=details, suggestion=suggestion, **kwargs)


class ConfigurationError(DiffPublisherError):
    """Invalid option or unsupported target URI."""

    def __init__(
        self,
        message: str,
        *,
        field: Optional[str] = None,
        value: Any = None,
        **kwargs: Any,
    ) -> None:
        self.field = field
        self.value = value

        details = kwargs.pop("details", {})
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)

        super().__init__(message, details=details, **kwargs)
