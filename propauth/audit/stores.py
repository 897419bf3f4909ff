"""
Audit stores for propauth.

Stores persist AuditRecords. They are called from the audit sink's worker,
never from the decision path, and may block or fail without affecting
decisions.
"""

from __future__ import annotations

import json
import logging
import threading
from pathlib import Path
from typing import Any, Protocol, TextIO, runtime_checkable

from propauth.audit.events import AuditRecord

logger = logging.getLogger(__name__)


@runtime_checkable
class AuditStore(Protocol):
    """Destination for audit records."""

    def append(self, record: AuditRecord) -> None:
        ...


class InMemoryAuditStore:
    """
    Thread-safe in-memory store.

    Useful for testing and for short-lived processes.

    Example:
        >>> store = InMemoryAuditStore()
        >>> sink = AuditSink(store=store)
        >>> ...
        >>> store.for_identity("u_42")
    """

    def __init__(self) -> None:
        self._records: list[AuditRecord] = []
        self._lock = threading.Lock()

    def append(self, record: AuditRecord) -> None:
        with self._lock:
            self._records.append(record)

    def records(self) -> list[AuditRecord]:
        """Get a copy of all records, oldest first."""
        with self._lock:
            return list(self._records)

    def for_identity(self, identity_id: str) -> list[AuditRecord]:
        with self._lock:
            return [r for r in self._records if r.identity_id == identity_id]

    def clear(self) -> None:
        with self._lock:
            self._records.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)


class JsonLinesAuditStore:
    """
    Append-only JSON Lines file store.

    One record per line, keys sorted. The parent directory is created on
    construction and the file is opened lazily on first write.

    Example:
        >>> with JsonLinesAuditStore("./audit/denials.jsonl") as store:
        ...     sink = AuditSink(store=store)
    """

    def __init__(self, path: str | Path, sync_writes: bool = True) -> None:
        """
        Initialize the store.

        Args:
            path: Path to the log file.
            sync_writes: If True, flush after each write.
        """
        self.path = Path(path)
        self.sync_writes = sync_writes
        self._file: TextIO | None = None
        self._lock = threading.Lock()

        self.path.parent.mkdir(parents=True, exist_ok=True)

    def append(self, record: AuditRecord) -> None:
        with self._lock:
            if self._file is None:
                self._file = open(self.path, "a", encoding="utf-8")
            self._file.write(record.to_json() + "\n")
            if self.sync_writes:
                self._file.flush()

    def read_all(self) -> list[AuditRecord]:
        """Read every record written so far."""
        with self._lock:
            if self._file is not None:
                self._file.flush()
            if not self.path.exists():
                return []
            with open(self.path, encoding="utf-8") as f:
                return [
                    AuditRecord.from_dict(json.loads(line))
                    for line in f
                    if line.strip()
                ]

    def close(self) -> None:
        """Close the log file."""
        with self._lock:
            if self._file:
                self._file.close()
                self._file = None

    def __enter__(self) -> JsonLinesAuditStore:
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.close()
