"""Event serialization.

The store hands whole StoredEvent envelopes to an EventSerializer and gets
text back; it never looks inside a payload. Payload classes are resolved
through an explicit EventTypeRegistry populated at startup:

- Each registered class gets a discriminator key (``module:qualname``) and a
  short event-type tag (the class name, unless overridden).
- Decoding resolves the discriminator first, then falls back to the tag, so
  events survive a class moving between modules.
- An unresolvable record is a DecodeError. There is no best-effort scan.

Payload conversion goes through pydantic TypeAdapters, so stdlib dataclasses
and pydantic models both round-trip with their field types intact.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, Protocol

from pydantic import AwareDatetime, BaseModel, ConfigDict, Field, TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from pydantic.alias_generators import to_camel

from stream_core.domain.errors import DecodeError, SerializationError
from stream_core.domain.events import StoredEvent

logger = logging.getLogger(__name__)

Encoder = Callable[[Any], dict[str, Any]]
Decoder = Callable[[dict[str, Any]], Any]


class EventSerializer(Protocol):
    """Encodes and decodes one stored-event envelope."""

    def encode_event(self, event: Any) -> tuple[str, str]:
        """Return the (event_type, type_key) the envelope records for a payload."""
        ...

    def serialize(self, stored: StoredEvent) -> str:
        ...

    def deserialize(self, text: str) -> StoredEvent:
        """Raises DecodeError if the text is not a valid envelope."""
        ...


@dataclass(frozen=True)
class _Registration:
    cls: type
    event_type: str
    type_key: str
    encode: Encoder
    decode: Decoder


def type_key_for(cls: type) -> str:
    return f"{cls.__module__}:{cls.__qualname__}"


class EventTypeRegistry:
    """Maps discriminator keys and event-type tags to payload codecs.

    Usage:
        registry = EventTypeRegistry()
        registry.register(HouseholdCreated)
        registry.register(MemberJoined, name="household.MemberJoined")
    """

    def __init__(self) -> None:
        self._by_key: dict[str, _Registration] = {}
        self._by_name: dict[str, _Registration] = {}
        self._by_class: dict[type, _Registration] = {}

    def register(
        self,
        cls: type,
        *,
        name: str | None = None,
        encoder: Encoder | None = None,
        decoder: Decoder | None = None,
    ) -> type:
        """Register an event class. Returns the class, so it can decorate it."""
        event_type = name or cls.__name__
        existing = self._by_name.get(event_type)
        if existing is not None and existing.cls is not cls:
            raise ValueError(
                f"Event type {event_type!r} is already registered to {existing.type_key}"
            )

        if encoder is None or decoder is None:
            adapter = TypeAdapter(cls)
            encoder = encoder or (lambda event: adapter.dump_python(event, mode="json"))
            decoder = decoder or adapter.validate_python

        reg = _Registration(
            cls=cls,
            event_type=event_type,
            type_key=type_key_for(cls),
            encode=encoder,
            decode=decoder,
        )
        self._by_key[reg.type_key] = reg
        self._by_name[event_type] = reg
        self._by_class[cls] = reg
        return cls

    def register_all(self, *classes: type) -> None:
        for cls in classes:
            self.register(cls)

    def is_registered(self, cls: type) -> bool:
        return cls in self._by_class

    def encode(self, event: Any) -> tuple[str, str, dict[str, Any]]:
        """Return (event_type, type_key, payload dict) for an event instance."""
        reg = self._by_class.get(type(event))
        if reg is None:
            raise SerializationError(
                f"Event class {type_key_for(type(event))} is not registered"
            )
        return reg.event_type, reg.type_key, reg.encode(event)

    def decode(self, type_key: str, event_type: str, data: dict[str, Any]) -> Any:
        """Rebuild a payload, resolving by discriminator first, then by tag."""
        reg = self._by_key.get(type_key)
        if reg is None:
            reg = self._by_name.get(event_type)
            if reg is None:
                raise DecodeError(
                    f"Could not resolve event type {type_key!r} (event type {event_type!r})"
                )
            logger.debug(
                "Resolved %s by event type tag %r (discriminator %r unknown)",
                reg.type_key, event_type, type_key,
            )
        try:
            return reg.decode(data)
        except (PydanticValidationError, TypeError, ValueError) as exc:
            raise DecodeError(f"Invalid payload for {reg.event_type}: {exc}") from exc


class _Envelope(BaseModel):
    """On-disk shape of one event record."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    stream_version: int = Field(ge=1)
    stream_id: str
    stream_type: str | None = None
    event_type: str
    type_key: str = ""
    timestamp: AwareDatetime
    data: dict[str, Any]


class JsonEventSerializer:
    """JSON envelope serializer (camelCase keys, ISO-8601 timestamps)."""

    def __init__(self, registry: EventTypeRegistry, indent: int | None = 2) -> None:
        self._registry = registry
        self._indent = indent

    @property
    def registry(self) -> EventTypeRegistry:
        return self._registry

    def encode_event(self, event: Any) -> tuple[str, str]:
        event_type, type_key, _ = self._registry.encode(event)
        return event_type, type_key

    def serialize(self, stored: StoredEvent) -> str:
        event_type, type_key, data = self._registry.encode(stored.data)
        try:
            envelope = _Envelope(
                stream_version=stored.stream_version,
                stream_id=stored.stream_id,
                stream_type=stored.stream_type,
                event_type=stored.event_type or event_type,
                type_key=stored.type_key or type_key,
                timestamp=stored.timestamp,
                data=data,
            )
        except PydanticValidationError as exc:
            raise SerializationError(f"Cannot encode {event_type}: {exc}") from exc
        return envelope.model_dump_json(by_alias=True, indent=self._indent)

    def deserialize(self, text: str) -> StoredEvent:
        try:
            envelope = _Envelope.model_validate_json(text)
        except PydanticValidationError as exc:
            raise DecodeError(f"Malformed envelope: {exc}") from exc

        data = self._registry.decode(envelope.type_key, envelope.event_type, envelope.data)
        return StoredEvent(
            stream_version=envelope.stream_version,
            stream_id=envelope.stream_id,
            stream_type=envelope.stream_type,
            event_type=envelope.event_type,
            type_key=envelope.type_key,
            timestamp=_as_datetime(envelope.timestamp),
            data=data,
        )


def _as_datetime(value: datetime) -> datetime:
    # pydantic_core TzInfo -> datetime.timezone
    return datetime.fromisoformat(value.isoformat())
