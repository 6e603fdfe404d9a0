"""Append-only submission log — one record per submission attempt.

Records are immutable once appended and kept in attempt order. The log
is the raw input for benchmark summaries; summaries are always derived
from it, never stored in its place.

The log can be persisted to a JSONL file (one JSON object per line)
and loaded back, so a benchmark can be re-reported after the run.
"""

from __future__ import annotations

import json
import threading
from pathlib import Path
from typing import Optional

from zkctf.errors import PersistenceError
from zkctf.models.submission import SubmissionRecord, SubmissionStatus


class SubmissionLog:
    """Append-only, thread-safe log of SubmissionRecords."""

    def __init__(self, storage_path: Optional[Path] = None) -> None:
        self._records: list[SubmissionRecord] = []
        self._storage_path = storage_path
        self._lock = threading.Lock()

        if storage_path and storage_path.exists():
            self._load_from_file(storage_path)

    def append(self, record: SubmissionRecord) -> None:
        """Append a record. Records can never be modified or removed."""
        with self._lock:
            self._records.append(record)
            if self._storage_path:
                self._append_to_file(record)

    def records(self, status: Optional[SubmissionStatus] = None) -> list[SubmissionRecord]:
        """Snapshot of the log, optionally filtered by status."""
        with self._lock:
            snapshot = list(self._records)
        if status is None:
            return snapshot
        return [r for r in snapshot if r.status == status]

    @property
    def count(self) -> int:
        with self._lock:
            return len(self._records)

    @property
    def last_record(self) -> Optional[SubmissionRecord]:
        with self._lock:
            return self._records[-1] if self._records else None

    def next_nonce(self, default: int = 1) -> int:
        """One past the highest nonce already logged, or default if none."""
        with self._lock:
            if not self._records:
                return default
            return max(default, max(r.nonce for r in self._records) + 1)

    def _append_to_file(self, record: SubmissionRecord) -> None:
        self._storage_path.parent.mkdir(parents=True, exist_ok=True)
        with self._storage_path.open("a", encoding="utf-8") as f:
            f.write(json.dumps(record.to_dict(), sort_keys=True) + "\n")

    def _load_from_file(self, path: Path) -> None:
        """Load records from JSONL. Fail-closed on malformed lines."""
        with path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, 1):
                line = line.strip()
                if not line:
                    continue
                try:
                    record = SubmissionRecord.from_dict(json.loads(line))
                except (json.JSONDecodeError, KeyError, TypeError, ValueError) as e:
                    raise PersistenceError(
                        f"Malformed submission record (line {line_num}) in {path}: {e}",
                        kind=PersistenceError.PARSE_ERROR,
                    ) from e
                self._records.append(record)
