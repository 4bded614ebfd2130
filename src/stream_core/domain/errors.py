"""Exception hierarchy for the stream store.

Every error raised by stream_core derives from StreamCoreError so callers can
catch the whole family at one boundary. Errors carry the structured fields a
caller needs to decide on a retry; none of them are retried internally.
"""

from __future__ import annotations

from pathlib import Path
from typing import Sequence


class StreamCoreError(Exception):
    """Base exception for all stream_core errors."""


class IdentifierValidationError(StreamCoreError, ValueError):
    """Raised when a stream or aggregate identifier is malformed."""


class ConcurrencyError(StreamCoreError):
    """Raised when a stream's current version does not satisfy the expected version.

    expected_version is -1 when the caller expected the stream not to exist.
    """

    def __init__(self, stream_id: str, expected_version: int, actual_version: int) -> None:
        self.stream_id = stream_id
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"Stream '{stream_id}' expected version {expected_version} "
            f"but was {actual_version}"
        )


class SerializationError(StreamCoreError):
    """Raised when an event cannot be encoded for storage."""


class DecodeError(SerializationError):
    """Raised when a persisted record cannot be parsed or resolved to an event type."""

    def __init__(self, reason: str, path: Path | None = None) -> None:
        self.reason = reason
        self.path = path
        where = f" ({path})" if path is not None else ""
        super().__init__(f"Failed to decode event{where}: {reason}")


class StorageError(StreamCoreError):
    """Raised when the storage medium rejects a read or write."""


class DomainError(StreamCoreError):
    """Raised when an aggregate rejects an event it does not know how to apply."""


class SessionClosedError(StreamCoreError):
    """Raised when a session is used after it has been closed."""


class SaveFailure(StreamCoreError):
    """Bundle of every failure collected during one save_changes call.

    Entries that were committed before or after a failing entry stay
    committed; ``uncommitted`` names the streams whose changes were not
    written.
    """

    def __init__(
        self,
        errors: Sequence[Exception],
        uncommitted: Sequence[str] = (),
        message: str = "One or more streams failed to save",
    ) -> None:
        self.errors: tuple[Exception, ...] = tuple(errors)
        self.uncommitted: tuple[str, ...] = tuple(uncommitted)
        details = "; ".join(str(e) for e in self.errors)
        super().__init__(f"{message}: {details}" if details else message)


class SaveCancelledError(SaveFailure):
    """Raised when save_changes is cancelled between per-entry attempts."""

    def __init__(self, errors: Sequence[Exception], uncommitted: Sequence[str]) -> None:
        super().__init__(errors, uncommitted, message="Save cancelled")
