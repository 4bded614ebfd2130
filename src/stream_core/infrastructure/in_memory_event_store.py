"""In-memory Event Store adapter.

Implements the EventStore protocol defined in domain/event_store.py.

Keeps payload objects in a dict of lists, for tests and for callers that do
not need durability. FileEventStore implements the same protocol on disk.

Rules enforced:
- Append-only: events are stored in version order, never removed.
- Sequential versioning: each append continues from the stream's last version.
- Optimistic concurrency through ExpectedVersion.
- No serialization: payload objects are kept as given.
"""

from __future__ import annotations

from typing import Any, Iterable

from stream_core.domain.clock import Clock, SystemClock
from stream_core.domain.events import StoredEvent
from stream_core.domain.identifiers import StreamId, as_stream_id
from stream_core.domain.versions import ExpectedVersion


class InMemoryEventStore:
    """In-memory implementation of the EventStore protocol.

    _streams maps stream id → list of stored events (ordered by version).
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._streams: dict[str, list[StoredEvent]] = {}

    def start_stream(
        self,
        stream_id: StreamId | str,
        events: Iterable[Any],
        stream_type: str | None = None,
    ) -> int:
        return self.append_to_stream(stream_id, events, ExpectedVersion.NONE, stream_type)

    def append_to_stream(
        self,
        stream_id: StreamId | str,
        events: Iterable[Any],
        expected_version: ExpectedVersion,
        stream_type: str | None = None,
    ) -> int:
        sid = str(as_stream_id(stream_id))
        stream = self._streams.get(sid, [])
        current_version = stream[-1].stream_version if stream else 0
        expected_version.check(sid, current_version)

        version = current_version
        for event in events:
            version += 1
            stored = StoredEvent(
                stream_version=version,
                stream_id=sid,
                stream_type=stream_type,
                event_type=type(event).__name__,
                type_key=f"{type(event).__module__}:{type(event).__qualname__}",
                timestamp=self._clock.now(),
                data=event,
            )
            self._streams.setdefault(sid, []).append(stored)
        return version

    def fetch_stream(self, stream_id: StreamId | str) -> list[StoredEvent]:
        return list(self._streams.get(str(as_stream_id(stream_id)), []))

    def fetch_events(self, stream_id: StreamId | str) -> list[Any]:
        return [stored.data for stored in self.fetch_stream(stream_id)]

    def get_stream_version(self, stream_id: StreamId | str) -> int:
        stream = self._streams.get(str(as_stream_id(stream_id)), [])
        if not stream:
            return 0
        return stream[-1].stream_version

    def stream_exists(self, stream_id: StreamId | str) -> bool:
        return bool(self._streams.get(str(as_stream_id(stream_id))))
