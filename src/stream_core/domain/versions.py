"""Expected-version predicate for optimistic concurrency."""

from __future__ import annotations

from dataclasses import dataclass
from typing import ClassVar

from stream_core.domain.errors import ConcurrencyError

_NONE = -1
_ANY = -2


@dataclass(frozen=True)
class ExpectedVersion:
    """What the caller believes a stream's current version to be.

    NONE: the stream must not exist yet (current version 0).
    ANY: no check is made.
    exactly(n): the current version must equal n.
    """

    value: int

    NONE: ClassVar[ExpectedVersion]
    ANY: ClassVar[ExpectedVersion]

    def __post_init__(self) -> None:
        if self.value < _ANY:
            raise ValueError(f"Invalid expected version: {self.value}")

    @classmethod
    def exactly(cls, version: int) -> ExpectedVersion:
        if version < 0:
            raise ValueError(f"Expected version must be >= 0, got {version}")
        return cls(version)

    @property
    def is_none(self) -> bool:
        return self.value == _NONE

    @property
    def is_any(self) -> bool:
        return self.value == _ANY

    def check(self, stream_id: str, current_version: int) -> None:
        """Raise ConcurrencyError if current_version does not satisfy this predicate."""
        if self.is_any:
            return
        if self.is_none:
            if current_version > 0:
                raise ConcurrencyError(str(stream_id), _NONE, current_version)
            return
        if current_version != self.value:
            raise ConcurrencyError(str(stream_id), self.value, current_version)

    def __repr__(self) -> str:
        if self.is_none:
            return "ExpectedVersion.NONE"
        if self.is_any:
            return "ExpectedVersion.ANY"
        return f"ExpectedVersion.exactly({self.value})"


ExpectedVersion.NONE = ExpectedVersion(_NONE)
ExpectedVersion.ANY = ExpectedVersion(_ANY)
