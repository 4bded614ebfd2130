"""Stored event envelope.

A StoredEvent is one persisted record of a stream: the event payload plus the
metadata the store assigns when it writes it. Payloads are opaque to the
store; the serializer decides how they are encoded.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Any


@dataclass(frozen=True)
class StoredEvent:
    """One event as persisted in a stream.

    stream_version is 1-based, strictly increasing and contiguous per stream.
    type_key is the discriminator the serializer resolves first when
    decoding; event_type is the short tag it falls back to.
    """

    stream_version: int
    stream_id: str
    stream_type: str | None
    event_type: str
    type_key: str
    timestamp: datetime
    data: Any

    def __post_init__(self) -> None:
        if self.stream_version < 1:
            raise ValueError(f"stream_version must be >= 1, got {self.stream_version}")
        if self.timestamp.tzinfo is None:
            raise ValueError("timestamp must be timezone-aware")
