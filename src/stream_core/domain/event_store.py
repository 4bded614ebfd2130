"""Event Store port (interface).

This is a domain-layer port — it defines WHAT the stream store must do,
not HOW it does it. Infrastructure adapters implement this protocol.

The store is append-only. It keeps immutable events in per-stream logs with
sequential, 1-based versioning, and enforces optimistic concurrency through
ExpectedVersion.

No projection logic is permitted in the store or its implementations.
"""

from __future__ import annotations

from typing import Any, Iterable, Protocol

from stream_core.domain.events import StoredEvent
from stream_core.domain.identifiers import StreamId
from stream_core.domain.versions import ExpectedVersion


class EventStore(Protocol):
    """Port for stream persistence.

    Implementations must satisfy:
    - Append-only: stored events are never modified or deleted.
    - Sequential per stream: versions are contiguous (1, 2, 3, ...).
    - Derived version: the current version is the highest version present.
    - Ordered writes: one append writes its events in the given order.
    """

    def start_stream(
        self,
        stream_id: StreamId | str,
        events: Iterable[Any],
        stream_type: str | None = None,
    ) -> int:
        """Create a stream with its first events.

        Raises:
            ConcurrencyError: if the stream already holds at least one event.
        """
        ...

    def append_to_stream(
        self,
        stream_id: StreamId | str,
        events: Iterable[Any],
        expected_version: ExpectedVersion,
        stream_type: str | None = None,
    ) -> int:
        """Append events to a stream and return its new version.

        Behavior:
        - Checks the current version against expected_version.
        - Assigns each event the next version and the clock's timestamp.
        - Writes the events in order; a failure mid-batch leaves the
          already-written prefix in place.

        Raises:
            ConcurrencyError: if the version predicate fails, or another
                writer claims one of the version slots first.
        """
        ...

    def fetch_stream(self, stream_id: StreamId | str) -> list[StoredEvent]:
        """Read all events of a stream in ascending version order.

        Returns an empty list if the stream was never written.

        Raises:
            DecodeError: if any record cannot be decoded. Nothing is returned
                for the stream in that case.
        """
        ...

    def fetch_events(self, stream_id: StreamId | str) -> list[Any]:
        """Read the event payloads of a stream, without envelope metadata."""
        ...

    def get_stream_version(self, stream_id: StreamId | str) -> int:
        """Return the current version of a stream, 0 if it does not exist."""
        ...

    def stream_exists(self, stream_id: StreamId | str) -> bool:
        """Return True iff the stream holds at least one event."""
        ...
