"""
activeseries.tier0_core.errors
───────────────────────────────
Standard error taxonomy for tracker configuration. Every error carries a
stable machine-readable code, a user-facing message and optional metadata
(the offending segment, its position, the tracker name, the document path).

Configuration errors are never transient: they are raised synchronously to
the flag parser or document loader and reject the whole value.
"""
from __future__ import annotations

from typing import Any


# ── Base error ────────────────────────────────────────────────────────────────

class PlatformError(Exception):
    """
    Base class for all activeseries errors. Every error has:
    - code: stable machine-readable string (snake_case)
    - user_message: safe to surface in flag / config diagnostics
    - detail: internal context, defaults to user_message
    - metadata: structured fields (segment, position, name, path, ...)
    """

    code: str = "internal_error"

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "An unexpected error occurred.",
        detail: str | None = None,
        **metadata: Any,
    ) -> None:
        self.code = code or self.__class__.code
        self.user_message = user_message
        self.detail = detail or user_message
        self.metadata = metadata
        super().__init__(self.user_message)

    def to_dict(self) -> dict:
        d: dict[str, Any] = {
            "error": {
                "code": self.code,
                "message": self.user_message,
            }
        }
        if self.metadata:
            d["error"]["metadata"] = dict(self.metadata)
        return d


class ConfigurationError(PlatformError):
    """Misconfiguration detected at startup (env, backend, unreadable file)."""
    code = "configuration_error"


# ── Tracker errors ────────────────────────────────────────────────────────────

class TrackerError(PlatformError):
    """Base class for invalid custom tracker configuration."""
    code = "tracker_error"

    def attributed(self, path: str) -> "TrackerError":
        """
        Return a copy of this error, same class, prefixed with the document
        path it came from (``default`` or ``tenant_specific["1"]``).
        """
        metadata = {**self.metadata, "path": path}
        return type(self)(
            code=self.code,
            user_message=f"{path}: {self.user_message}",
            detail=f"{path}: {self.detail}",
            **metadata,
        )


class InvalidTracker(TrackerError):
    """A tracker entry has an empty or unrepresentable name or matcher."""
    code = "invalid_tracker"


class MalformedEntry(InvalidTracker):
    """A flag segment is not of the form <name>:<matcher>."""
    code = "malformed_entry"


class InvalidMatcher(InvalidTracker):
    """A tracker's matcher source failed to compile."""
    code = "invalid_matcher"


class DuplicateTracker(TrackerError):
    """The same tracker name was provided more than once."""
    code = "duplicate_tracker"


class SchemaError(TrackerError):
    """A structured document has the wrong shape or value types."""
    code = "schema_error"

    def __init__(
        self,
        code: str | None = None,
        user_message: str = "Document does not match the expected schema.",
        detail: str | None = None,
        fields: dict | None = None,
        **metadata: Any,
    ) -> None:
        self.fields = fields or {}
        super().__init__(code, user_message, detail, **metadata)

    def attributed(self, path: str) -> "SchemaError":
        err = super().attributed(path)
        err.fields = {f"{path}.{k}" if k else path: v for k, v in self.fields.items()}
        return err

    def to_dict(self) -> dict:
        d = super().to_dict()
        if self.fields:
            d["error"]["fields"] = self.fields
        return d


__all__ = [
    "PlatformError",
    "ConfigurationError",
    "TrackerError",
    "InvalidTracker",
    "MalformedEntry",
    "InvalidMatcher",
    "DuplicateTracker",
    "SchemaError",
]
