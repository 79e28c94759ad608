"""
Keyed record store (imperative shell).

Records are created and loaded by (kind, derived address). The reference
``InMemoryRecordStore`` keeps each record as its fixed-width encoded bytes
together with a version counter, and applies batches of writes with optimistic
concurrency: a write carries the version it was read at, and the whole batch is
rejected with ``WriteConflictError`` if any of those versions has moved.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Dict, Iterable, List, Sequence, Tuple

from ..core.staking.errors import RecordExists, RecordNotFound, WriteConflictError
from ..state.layout import Record, RecordKind, decode_record, encode_record

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RecordHandle:
    """Address of a record plus the version it was read at (0 = not stored yet)."""

    kind: RecordKind
    key: str
    version: int


@dataclass(frozen=True)
class StoredRecord:
    handle: RecordHandle
    record: Record


@dataclass(frozen=True)
class RecordWrite:
    handle: RecordHandle
    record: Record


class RecordStore:
    """Interface for the keyed persistent-record store."""

    def create(self, kind: RecordKind, key: str) -> RecordHandle:
        raise NotImplementedError

    def load(self, kind: RecordKind, key: str) -> StoredRecord:
        raise NotImplementedError

    def save(self, handle: RecordHandle, record: Record) -> RecordHandle:
        raise NotImplementedError

    def save_all(self, writes: Sequence[RecordWrite]) -> List[RecordHandle]:
        raise NotImplementedError

    def check_versions(self, handles: Iterable[RecordHandle]) -> None:
        raise NotImplementedError

    def validate_writes(self, writes: Sequence[RecordWrite]) -> None:
        raise NotImplementedError


class InMemoryRecordStore(RecordStore):
    def __init__(self) -> None:
        self._rows: Dict[Tuple[RecordKind, str], Tuple[int, bytes]] = {}
        self._lock = threading.RLock()

    @property
    def lock(self) -> threading.RLock:
        return self._lock

    def exists(self, kind: RecordKind, key: str) -> bool:
        return (kind, key) in self._rows

    def create(self, kind: RecordKind, key: str) -> RecordHandle:
        """Reserve a handle for a new record; nothing is stored until ``save``."""
        with self._lock:
            if (kind, key) in self._rows:
                raise RecordExists(f"{kind.value} record already exists at {key}")
            return RecordHandle(kind=kind, key=key, version=0)

    def load(self, kind: RecordKind, key: str) -> StoredRecord:
        with self._lock:
            row = self._rows.get((kind, key))
        if row is None:
            raise RecordNotFound(f"no {kind.value} record at {key}")
        version, data = row
        return StoredRecord(
            handle=RecordHandle(kind=kind, key=key, version=version),
            record=decode_record(kind, data),
        )

    def raw(self, kind: RecordKind, key: str) -> bytes:
        with self._lock:
            row = self._rows.get((kind, key))
        if row is None:
            raise RecordNotFound(f"no {kind.value} record at {key}")
        return row[1]

    def check_versions(self, handles: Iterable[RecordHandle]) -> None:
        with self._lock:
            for handle in handles:
                row = self._rows.get((handle.kind, handle.key))
                current = 0 if row is None else row[0]
                if current != handle.version:
                    logger.warning(
                        "write conflict on %s %s: expected version %d, found %d",
                        handle.kind.value, handle.key, handle.version, current,
                    )
                    raise WriteConflictError(
                        f"{handle.kind.value} record {handle.key} changed "
                        f"(expected version {handle.version}, found {current})"
                    )

    def validate_writes(self, writes: Sequence[RecordWrite]) -> None:
        """Check versions and encodability of a batch without applying it."""
        for w in writes:
            encode_record(w.handle.kind, w.record)
        self.check_versions(w.handle for w in writes)

    def save(self, handle: RecordHandle, record: Record) -> RecordHandle:
        return self.save_all([RecordWrite(handle=handle, record=record)])[0]

    def save_all(self, writes: Sequence[RecordWrite]) -> List[RecordHandle]:
        """Apply all writes or none of them."""
        encoded = [(w.handle, encode_record(w.handle.kind, w.record)) for w in writes]
        with self._lock:
            self.check_versions(w.handle for w in writes)
            out: List[RecordHandle] = []
            for handle, data in encoded:
                version = handle.version + 1
                self._rows[(handle.kind, handle.key)] = (version, data)
                out.append(RecordHandle(kind=handle.kind, key=handle.key, version=version))
        return out

    def __repr__(self) -> str:
        return f"InMemoryRecordStore({len(self._rows)} records)"
