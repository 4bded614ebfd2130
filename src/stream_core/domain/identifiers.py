"""Validated identifier value objects.

Stream and aggregate identifiers end up as directory names on disk, so both
reject anything that could escape the streams directory or that a common
filesystem would refuse. Validation happens at construction, before any I/O.
"""

from __future__ import annotations

import re

from stream_core.domain.errors import IdentifierValidationError

MAX_STREAM_ID_LENGTH = 200

# Union of the characters Windows and POSIX refuse in a file name.
_RESERVED_CHARS = frozenset('/\\:*?"<>|')

_STREAM_ID_PATTERN = re.compile(r"^[A-Za-z0-9](?:[A-Za-z0-9_.\-]*[A-Za-z0-9])?$")


def _check_path_safe(value: object, label: str) -> str:
    if not isinstance(value, str):
        raise IdentifierValidationError(f"{label} must be a string, got {type(value).__name__}")
    if not value or value.isspace():
        raise IdentifierValidationError(f"{label} cannot be empty.")
    if ".." in value:
        raise IdentifierValidationError(f"{label} cannot contain '..' (path traversal).")
    if any(c in _RESERVED_CHARS or ord(c) < 32 for c in value):
        raise IdentifierValidationError(f"{label} contains invalid characters: {value!r}")
    return value


class StreamId:
    """Identifier of one event stream; doubles as its directory name."""

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        _check_path_safe(value, "Stream id")
        if len(value) > MAX_STREAM_ID_LENGTH:
            raise IdentifierValidationError(
                f"Stream id cannot exceed {MAX_STREAM_ID_LENGTH} characters."
            )
        if value[0] in ". " or value[-1] in ". ":
            raise IdentifierValidationError("Stream id cannot start or end with dots or spaces.")
        if not _STREAM_ID_PATTERN.match(value):
            raise IdentifierValidationError(
                "Stream id must be alphanumeric with hyphens, underscores, or dots."
            )
        self._value = value

    @classmethod
    def try_from(cls, value: str) -> StreamId | None:
        """Return a StreamId, or None if the value is invalid."""
        try:
            return cls(value)
        except IdentifierValidationError:
            return None

    @property
    def value(self) -> str:
        return self._value

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"StreamId({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, StreamId):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(("StreamId", self._value))


class AggregateId:
    """Raw aggregate identifier, as distinct from the stream id derived from it."""

    __slots__ = ("_value",)

    def __init__(self, value: str) -> None:
        self._value = _check_path_safe(value, "Aggregate id")

    @classmethod
    def try_from(cls, value: str) -> AggregateId | None:
        try:
            return cls(value)
        except IdentifierValidationError:
            return None

    @property
    def value(self) -> str:
        return self._value

    def __str__(self) -> str:
        return self._value

    def __repr__(self) -> str:
        return f"AggregateId({self._value!r})"

    def __eq__(self, other: object) -> bool:
        if isinstance(other, AggregateId):
            return self._value == other._value
        return NotImplemented

    def __hash__(self) -> int:
        return hash(("AggregateId", self._value))


def as_stream_id(value: StreamId | str) -> StreamId:
    """Coerce a raw string to a validated StreamId."""
    return value if isinstance(value, StreamId) else StreamId(value)


def as_aggregate_id(value: AggregateId | str) -> AggregateId:
    """Coerce a raw string to a validated AggregateId."""
    return value if isinstance(value, AggregateId) else AggregateId(value)
