"""Aggregate Repository — load and save one aggregate kind without a session.

Unlike EventSession there is no identity map: every load re-reads the
stream, and save() commits one aggregate immediately. The expected version
is the aggregate's own version, so a stale instance fails with
ConcurrencyError.
"""

from __future__ import annotations

import logging
from typing import Callable, Generic, TypeVar

from stream_core.domain.aggregate import Aggregate
from stream_core.domain.event_store import EventStore
from stream_core.domain.identifiers import AggregateId, StreamId, as_aggregate_id
from stream_core.domain.versions import ExpectedVersion

logger = logging.getLogger(__name__)

A = TypeVar("A", bound=Aggregate)


class AggregateRepository(Generic[A]):
    def __init__(
        self,
        store: EventStore,
        kind: type[A],
        stream_id_for: Callable[[AggregateId], StreamId | str] | None = None,
    ) -> None:
        self._store = store
        self._kind = kind
        self._stream_id_for = stream_id_for or (
            lambda agg_id: StreamId(f"{kind.stream_name()}-{agg_id}")
        )

    def stream_id(self, aggregate_id: AggregateId | str) -> StreamId | str:
        return self._stream_id_for(as_aggregate_id(aggregate_id))

    def load(self, aggregate_id: AggregateId | str) -> A | None:
        events = self._store.fetch_stream(self.stream_id(aggregate_id))
        if not events:
            return None
        aggregate = self._kind()
        aggregate.load(events)
        return aggregate

    def load_or_create(self, aggregate_id: AggregateId | str) -> A:
        aggregate = self.load(aggregate_id)
        return aggregate if aggregate is not None else self._kind()

    def save(self, aggregate: A) -> int:
        """Append the aggregate's uncommitted events; returns the stream version."""
        if not aggregate.uncommitted_events:
            return aggregate.version

        expected = (
            ExpectedVersion.NONE
            if aggregate.version == 0
            else ExpectedVersion.exactly(aggregate.version)
        )
        stream_id = self.stream_id(aggregate.id)
        new_version = self._store.append_to_stream(
            stream_id,
            aggregate.uncommitted_events,
            expected,
            self._kind.__name__,
        )
        logger.debug("Saved %s up to version %d", stream_id, new_version)
        aggregate.mark_committed(new_version)
        return new_version
