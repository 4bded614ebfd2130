"""Event Session — unit of work over the stream store.

A session is a short-lived scope that:
1. Loads aggregates by replaying their streams, caching one instance per
   (kind, aggregate id) in an identity map.
2. Tracks mutations: aggregates queue their own uncommitted events, and raw
   stream operations are queued on the session.
3. Commits everything in save_changes as a sequence of independent stream
   appends.

There is no cross-stream atomicity. Every pending entry is attempted even if
an earlier one failed; entries that succeed stay committed, and all failures
are raised together as one SaveFailure.

The session owns no durable state. Closing it drops the identity map and
the pending queue and never touches committed data.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, NoReturn, TypeVar, cast

from stream_core.domain.aggregate import Aggregate
from stream_core.domain.errors import (
    SaveCancelledError,
    SaveFailure,
    SessionClosedError,
)
from stream_core.domain.event_store import EventStore
from stream_core.domain.events import StoredEvent
from stream_core.domain.identifiers import (
    AggregateId,
    StreamId,
    as_aggregate_id,
    as_stream_id,
)
from stream_core.domain.versions import ExpectedVersion

logger = logging.getLogger(__name__)

A = TypeVar("A", bound=Aggregate)


def stream_id_for(kind: type[Aggregate], aggregate_id: AggregateId | str) -> StreamId:
    """Derive the backing stream id of an aggregate: ``<kind prefix>-<id>``."""
    return StreamId(f"{kind.stream_name()}-{as_aggregate_id(aggregate_id)}")


class StreamOperation(Enum):
    START = "start"
    APPEND = "append"


@dataclass
class _TrackedAggregate:
    aggregate: Aggregate
    kind: type[Aggregate]
    aggregate_id: AggregateId
    stream_id: StreamId
    loaded_version: int


@dataclass(frozen=True)
class _PendingStreamOp:
    operation: StreamOperation
    stream_id: StreamId
    stream_type: str | None
    events: tuple[Any, ...]


class EventSession:
    """Unit of work for event-sourced aggregates and raw streams.

    Usage:
        with factory.open_session() as session:
            household = session.load_or_create(Household, "h1")
            household.create("h1", "The Smiths")
            session.save_changes()
    """

    def __init__(self, store: EventStore) -> None:
        if store is None:
            raise TypeError("store is required")
        self._store = store
        self._tracked: dict[tuple[type[Aggregate], str], _TrackedAggregate] = {}
        self._pending: list[_PendingStreamOp] = []
        self._closed = False

    def __enter__(self) -> EventSession:
        self._ensure_open()
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Aggregate operations
    # ------------------------------------------------------------------

    def load(self, kind: type[A], aggregate_id: AggregateId | str) -> A | None:
        """Return the aggregate rebuilt from its stream, or None if the stream is empty.

        Repeated loads of the same (kind, id) return the cached instance,
        without re-reading the stream.
        """
        self._ensure_open()
        agg_id = as_aggregate_id(aggregate_id)
        entry = self._tracked.get((kind, agg_id.value))
        if entry is not None:
            return cast(A, entry.aggregate)

        stream_id = stream_id_for(kind, agg_id)
        events = self._store.fetch_stream(stream_id)
        if not events:
            return None

        aggregate = kind()
        aggregate.load(events)
        self._tracked[(kind, agg_id.value)] = _TrackedAggregate(
            aggregate=aggregate,
            kind=kind,
            aggregate_id=agg_id,
            stream_id=stream_id,
            loaded_version=aggregate.version,
        )
        logger.debug("Loaded %s at version %d", stream_id, aggregate.version)
        return aggregate

    def load_or_create(self, kind: type[A], aggregate_id: AggregateId | str) -> A:
        """Like load(), but track a new empty aggregate when the stream is empty."""
        self._ensure_open()
        agg_id = as_aggregate_id(aggregate_id)
        aggregate = self.load(kind, agg_id)
        if aggregate is not None:
            return aggregate

        aggregate = kind()
        self._tracked[(kind, agg_id.value)] = _TrackedAggregate(
            aggregate=aggregate,
            kind=kind,
            aggregate_id=agg_id,
            stream_id=stream_id_for(kind, agg_id),
            loaded_version=0,
        )
        return aggregate

    def track(self, aggregate: Aggregate) -> None:
        """Track an externally created aggregate, replacing any entry for its key.

        The key uses the aggregate's runtime class and its own id; the
        expected version on save is the aggregate's current version.
        """
        self._ensure_open()
        if aggregate is None:
            raise TypeError("aggregate is required")
        kind = type(aggregate)
        agg_id = as_aggregate_id(aggregate.id)
        stream_id = stream_id_for(kind, agg_id)
        self._tracked[(kind, agg_id.value)] = _TrackedAggregate(
            aggregate=aggregate,
            kind=kind,
            aggregate_id=agg_id,
            stream_id=stream_id,
            loaded_version=aggregate.version,
        )

    # ------------------------------------------------------------------
    # Raw stream operations
    # ------------------------------------------------------------------

    def start_stream(
        self,
        stream_id: StreamId | str,
        *events: Any,
        stream_type: str | None = None,
    ) -> None:
        """Queue a new stream. save_changes fails for it if the stream exists."""
        self._queue(StreamOperation.START, as_stream_id(stream_id), stream_type, events)

    def start_stream_for(
        self,
        kind: type[Aggregate],
        aggregate_id: AggregateId | str,
        *events: Any,
    ) -> None:
        """Queue a new stream backing an aggregate of the given kind."""
        self._queue(StreamOperation.START, stream_id_for(kind, aggregate_id), kind.__name__, events)

    def append(
        self,
        stream_id: StreamId | str,
        *events: Any,
        stream_type: str | None = None,
    ) -> None:
        """Queue events for an existing or new stream, with no version check."""
        self._queue(StreamOperation.APPEND, as_stream_id(stream_id), stream_type, events)

    def fetch_stream(self, stream_id: StreamId | str) -> list[StoredEvent]:
        """Read a stream immediately. Not cached, and ignores pending operations."""
        self._ensure_open()
        return self._store.fetch_stream(as_stream_id(stream_id))

    def _queue(
        self,
        operation: StreamOperation,
        stream_id: StreamId,
        stream_type: str | None,
        events: tuple[Any, ...],
    ) -> None:
        self._ensure_open()
        if not events:
            raise ValueError(f"No events given for stream {stream_id}")
        self._pending.append(_PendingStreamOp(operation, stream_id, stream_type, events))

    # ------------------------------------------------------------------
    # Unit of work
    # ------------------------------------------------------------------

    @property
    def has_changes(self) -> bool:
        self._ensure_open()
        if self._pending:
            return True
        return any(e.aggregate.uncommitted_events for e in self._tracked.values())

    def save_changes(self, cancel: threading.Event | None = None) -> None:
        """Commit queued stream operations, then every changed aggregate.

        Each stream is appended independently. Raises SaveFailure with every
        individual error if any entry failed. Every attempted raw stream
        operation leaves the queue, failed or not: part of a failed batch may
        already be on disk, so it is reported and never replayed. If
        ``cancel`` is set between two entries, the rest are skipped, stay
        queued, and SaveCancelledError is raised.
        """
        self._ensure_open()
        ops = list(self._pending)
        changed = [e for e in self._tracked.values() if e.aggregate.uncommitted_events]
        if not ops and not changed:
            return

        errors: list[Exception] = []
        uncommitted: list[str] = []
        committed = 0

        for index, op in enumerate(ops):
            if cancel is not None and cancel.is_set():
                uncommitted.extend(str(o.stream_id) for o in ops[index:])
                uncommitted.extend(str(e.stream_id) for e in changed)
                self._pending = ops[index:]
                self._raise_cancelled(errors, uncommitted)
            try:
                self._flush_operation(op)
                committed += 1
            except Exception as exc:
                logger.warning("Failed to %s stream %s: %s", op.operation.value, op.stream_id, exc)
                errors.append(exc)
                uncommitted.append(str(op.stream_id))
        self._pending = []

        for index, entry in enumerate(changed):
            if cancel is not None and cancel.is_set():
                uncommitted.extend(str(e.stream_id) for e in changed[index:])
                self._raise_cancelled(errors, uncommitted)
            try:
                self._save_aggregate(entry)
                committed += 1
            except Exception as exc:
                logger.warning("Failed to save %s: %s", entry.stream_id, exc)
                errors.append(exc)
                uncommitted.append(str(entry.stream_id))

        logger.info(
            "Session saved %d of %d stream(s), %d failed",
            committed, len(ops) + len(changed), len(errors),
        )
        if errors:
            raise SaveFailure(errors, uncommitted)

    def _flush_operation(self, op: _PendingStreamOp) -> None:
        if op.operation is StreamOperation.START:
            self._store.start_stream(op.stream_id, op.events, op.stream_type)
        else:
            self._store.append_to_stream(
                op.stream_id, op.events, ExpectedVersion.ANY, op.stream_type
            )

    def _save_aggregate(self, entry: _TrackedAggregate) -> None:
        expected = (
            ExpectedVersion.NONE
            if entry.loaded_version == 0
            else ExpectedVersion.exactly(entry.loaded_version)
        )
        new_version = self._store.append_to_stream(
            entry.stream_id,
            entry.aggregate.uncommitted_events,
            expected,
            entry.kind.__name__,
        )
        entry.aggregate.mark_committed(new_version)
        entry.loaded_version = new_version

    @staticmethod
    def _raise_cancelled(errors: list[Exception], uncommitted: list[str]) -> NoReturn:
        logger.info("Session save cancelled; %d stream(s) left uncommitted", len(uncommitted))
        raise SaveCancelledError(errors, uncommitted)

    def close(self) -> None:
        """Drop the identity map and pending queue. Safe to call repeatedly."""
        if self._closed:
            return
        self._closed = True
        self._tracked.clear()
        self._pending.clear()

    @property
    def closed(self) -> bool:
        return self._closed

    def _ensure_open(self) -> None:
        if self._closed:
            raise SessionClosedError("EventSession has been closed")


class SessionFactory:
    """Opens sessions against one store.

    Inject this into handlers/services that need a unit of work.
    """

    def __init__(self, store: EventStore) -> None:
        if store is None:
            raise TypeError("store is required")
        self._store = store

    def open_session(self) -> EventSession:
        return EventSession(self._store)
