"""Aggregate base class.

An aggregate is an in-memory object whose entire state is derived from its
event stream:
- Each concrete kind declares the closed set of event classes it understands.
- One fold, apply(event), turns an event into a state change.
- load() replays stored events; emit() applies a new event and queues it.

Both entry points go through the same fold, so replaying a stream and
emitting the same events live produce identical state.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar, Iterable

from stream_core.domain.errors import DomainError
from stream_core.domain.events import StoredEvent


class Aggregate(ABC):
    """Base class for all aggregates.

    Subclasses implement:
    - event_types: the event classes apply() handles.
    - apply(event): the fold. Must only mutate the aggregate's own fields.

    Subclasses must be constructible with no arguments; the session builds
    empty instances before replaying into them.
    """

    event_types: ClassVar[tuple[type, ...]] = ()

    def __init__(self) -> None:
        self.id: str = ""
        self._version = 0
        self._uncommitted: list[Any] = []

    @classmethod
    def stream_name(cls) -> str:
        """Prefix of the stream ids of this kind (``<prefix>-<aggregate id>``)."""
        return cls.__name__.lower()

    @property
    def version(self) -> int:
        """Stream version of the last replayed event, 0 if none."""
        return self._version

    @property
    def uncommitted_events(self) -> tuple[Any, ...]:
        return tuple(self._uncommitted)

    @abstractmethod
    def apply(self, event: Any) -> None:
        """Fold one event into the aggregate's state."""
        ...

    def emit(self, event: Any) -> None:
        """Apply a new event immediately and queue it for the next save."""
        self._ensure_known(event)
        self.apply(event)
        self._uncommitted.append(event)

    def load(self, events: Iterable[StoredEvent]) -> None:
        """Replay stored events in ascending version order."""
        for stored in events:
            if stored.stream_version <= self._version:
                raise DomainError(
                    f"{type(self).__name__} cannot replay version {stored.stream_version} "
                    f"after version {self._version}"
                )
            self._ensure_known(stored.data)
            self.apply(stored.data)
            self._version = stored.stream_version

    def clear_uncommitted_events(self) -> None:
        self._uncommitted.clear()

    def mark_committed(self, stream_version: int) -> None:
        """Record that the uncommitted events now end at stream_version."""
        if stream_version < self._version:
            raise DomainError(
                f"Committed version {stream_version} is behind loaded version {self._version}"
            )
        self._version = stream_version
        self._uncommitted.clear()

    def _ensure_known(self, event: Any) -> None:
        if not isinstance(event, self.event_types):
            raise DomainError(
                f"{type(self).__name__} does not handle event {type(event).__name__}"
            )
