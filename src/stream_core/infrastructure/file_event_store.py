"""File-system Event Store adapter.

Implements the EventStore protocol defined in domain/event_store.py.

Layout: ``<root>/streams/<stream id>/<version><extension>``, one file per
event. The version is zero-padded to a fixed width so that file-name order
equals version order.

Rules enforced:
- Append-only: event files are only ever created, never rewritten.
- Derived version: a stream's version is the highest version file present.
  There is no separate metadata to drift out of sync.
- Sequential versioning: each append claims version slots current+1..current+n.
- Exclusive slots: a slot is claimed by hard-linking a fully written temp
  file onto the version file name. The link fails if the name exists, so
  only one writer ever owns a slot, and readers never see a half-written
  event. A lost slot race is reported as ConcurrencyError.
- No rollback: if an append fails mid-batch, the events already written stay.

Filesystems without hard links (FAT, exFAT, some network shares) refuse the
link. The slot is then claimed by creating the version file directly with
O_CREAT | O_EXCL, which keeps the exclusive claim but lets a reader observe
the record while it is being written, and can leave a truncated record if
the process dies mid-write.
"""

from __future__ import annotations

import errno
import logging
import os
import uuid
from pathlib import Path
from typing import Any, Iterable

from stream_core.domain.clock import Clock, SystemClock
from stream_core.domain.errors import ConcurrencyError, DecodeError, StorageError
from stream_core.domain.events import StoredEvent
from stream_core.domain.identifiers import StreamId, as_stream_id
from stream_core.domain.versions import ExpectedVersion
from stream_core.infrastructure.serialization import EventSerializer

logger = logging.getLogger(__name__)

STREAMS_DIR = "streams"

# errno values meaning the filesystem does not support hard links.
_LINK_UNSUPPORTED = frozenset(
    code
    for code in (
        errno.EPERM,
        errno.ENOSYS,
        getattr(errno, "ENOTSUP", None),
        getattr(errno, "EOPNOTSUPP", None),
    )
    if code is not None
)


class FileEventStore:
    """One-file-per-event implementation of the EventStore protocol.

    Holds no per-call mutable state; the directory tree is the only source of
    truth, so several stores (or processes) may share one root.
    """

    def __init__(
        self,
        root_path: Path | str,
        serializer: EventSerializer,
        clock: Clock | None = None,
        file_extension: str = ".json",
        version_width: int = 6,
    ) -> None:
        if not file_extension.startswith("."):
            file_extension = "." + file_extension
        if version_width < 1:
            raise ValueError(f"version_width must be >= 1, got {version_width}")
        self._root = Path(root_path)
        self._serializer = serializer
        self._clock = clock or SystemClock()
        self._extension = file_extension
        self._width = version_width
        self._streams_path().mkdir(parents=True, exist_ok=True)

    @property
    def root_path(self) -> Path:
        return self._root

    # ------------------------------------------------------------------
    # Writes
    # ------------------------------------------------------------------

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
        sid = as_stream_id(stream_id)
        batch = list(events)
        stream_path = self._stream_path(sid)
        current_version = self._current_version(stream_path)

        try:
            expected_version.check(str(sid), current_version)
        except ConcurrencyError:
            logger.warning(
                "Version conflict on stream %s: expected %r, current %d",
                sid, expected_version, current_version,
            )
            raise

        if not batch:
            return current_version

        # Encode the whole batch up front so a bad payload fails before any write.
        records: list[tuple[int, str]] = []
        for offset, event in enumerate(batch, start=1):
            version = current_version + offset
            event_type, type_key = self._serializer.encode_event(event)
            stored = StoredEvent(
                stream_version=version,
                stream_id=str(sid),
                stream_type=stream_type,
                event_type=event_type,
                type_key=type_key,
                timestamp=self._clock.now(),
                data=event,
            )
            records.append((version, self._serializer.serialize(stored)))

        try:
            stream_path.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise StorageError(f"Cannot create stream directory {stream_path}: {exc}") from exc

        for version, text in records:
            self._claim_slot(sid, stream_path, version, text, expected_version)

        final_version = records[-1][0]
        logger.debug(
            "Appended %d event(s) to stream %s (v%d -> v%d)",
            len(records), sid, current_version, final_version,
        )
        return final_version

    def _claim_slot(
        self,
        sid: StreamId,
        stream_path: Path,
        version: int,
        text: str,
        expected_version: ExpectedVersion,
    ) -> None:
        target = self._event_path(stream_path, version)
        temp = stream_path / f".{version}.{uuid.uuid4().hex}.tmp"
        try:
            with open(temp, "x", encoding="utf-8") as f:
                f.write(text)
                f.flush()
                os.fsync(f.fileno())
            try:
                os.link(temp, target)
            except OSError as exc:
                if exc.errno not in _LINK_UNSUPPORTED:
                    raise
                logger.debug("Hard links unsupported under %s; creating %s directly", stream_path, target)
                self._create_exclusive(target, text)
        except FileExistsError as exc:
            actual = self._current_version(stream_path)
            reported = -1 if expected_version.is_none else version - 1
            logger.warning(
                "Lost version slot %d on stream %s to a concurrent writer (now at v%d)",
                version, sid, actual,
            )
            raise ConcurrencyError(str(sid), reported, actual) from exc
        except OSError as exc:
            raise StorageError(f"Failed to write {target}: {exc}") from exc
        finally:
            try:
                temp.unlink(missing_ok=True)
            except OSError:
                logger.warning("Could not remove temp file %s", temp, exc_info=True)

    @staticmethod
    def _create_exclusive(target: Path, text: str) -> None:
        with open(target, "x", encoding="utf-8") as f:
            f.write(text)
            f.flush()
            os.fsync(f.fileno())

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def fetch_stream(self, stream_id: StreamId | str) -> list[StoredEvent]:
        sid = as_stream_id(stream_id)
        stream_path = self._stream_path(sid)
        events: list[StoredEvent] = []
        for version, path in self._list_event_files(stream_path):
            try:
                text = path.read_text(encoding="utf-8")
            except UnicodeDecodeError as exc:
                raise DecodeError(f"record is not valid UTF-8: {exc}", path) from exc
            except OSError as exc:
                raise StorageError(f"Failed to read {path}: {exc}") from exc
            try:
                stored = self._serializer.deserialize(text)
            except DecodeError as exc:
                raise DecodeError(exc.reason, path) from exc
            if stored.stream_version != version:
                raise DecodeError(
                    f"record carries version {stored.stream_version}, file name says {version}",
                    path,
                )
            events.append(stored)
        logger.debug("Fetched %d event(s) from stream %s", len(events), sid)
        return events

    def fetch_events(self, stream_id: StreamId | str) -> list[Any]:
        return [stored.data for stored in self.fetch_stream(stream_id)]

    def get_stream_version(self, stream_id: StreamId | str) -> int:
        return self._current_version(self._stream_path(as_stream_id(stream_id)))

    def stream_exists(self, stream_id: StreamId | str) -> bool:
        return bool(self._list_event_files(self._stream_path(as_stream_id(stream_id))))

    # ------------------------------------------------------------------
    # Paths
    # ------------------------------------------------------------------

    def _streams_path(self) -> Path:
        return self._root / STREAMS_DIR

    def _stream_path(self, sid: StreamId) -> Path:
        return self._streams_path() / str(sid)

    def _event_path(self, stream_path: Path, version: int) -> Path:
        return stream_path / f"{version:0{self._width}d}{self._extension}"

    def _list_event_files(self, stream_path: Path) -> list[tuple[int, Path]]:
        """Return (version, path) for every event file, in ascending version order."""
        if not stream_path.is_dir():
            return []
        found: list[tuple[int, Path]] = []
        for path in stream_path.iterdir():
            if not path.name.endswith(self._extension):
                continue
            stem = path.name[: -len(self._extension)]
            if not (stem.isascii() and stem.isdigit()):
                continue
            found.append((int(stem), path))
        found.sort()
        return found

    def _current_version(self, stream_path: Path) -> int:
        files = self._list_event_files(stream_path)
        return files[-1][0] if files else 0
