from __future__ import annotations

import logging
import os
import threading
from typing import Dict, Optional, Tuple

from .base import RecordStore
from .models import RecordID, UserRecord, default_record
from .snapshot import SnapshotError, SnapshotFile


logger = logging.getLogger(__name__)

# Environment variable names for convenience configuration
ENV_STORE_FILE = "MEMORY_STORE_FILE"
ENV_FERNET_KEY = "MEMORY_STORE_FERNET_KEY"


def _getenv(name: str) -> Optional[str]:
    val = os.environ.get(name)
    return val if val not in (None, "") else None


class RecordConflictError(Exception):
    """Raised when the stored record changed between read and write."""


class MemoryRecordStore(RecordStore):
    """
    In-memory record table with optional snapshot file.

    Usage
    - `get_record(id)` returns `(record, token)`. Unknown ids return
      `(NotRegistered(), None)`; otherwise the token is the stored record.
    - `write_record(id, record, token)` replaces the entry only if the stored
      value still equals the token (or is still absent when the token is
      None); otherwise raises `RecordConflictError`. Comparison is by value,
      so any token equal to the current record is accepted.
    - With a snapshot path, the table is loaded once at construction and the
      whole table is rewritten after every successful write. Save failures
      are logged and do not fail the write.

    Environment variables (optional, see `from_env`)
    - `MEMORY_STORE_FILE`:       snapshot path; unset means no persistence
    - `MEMORY_STORE_FERNET_KEY`: Fernet key to encrypt the snapshot at rest
    """

    def __init__(
        self,
        path: Optional[os.PathLike[str] | str] = None,
        *,
        fernet_key: Optional[str | bytes] = None,
    ) -> None:
        self._lock = threading.Lock()
        self._records: Dict[RecordID, UserRecord] = {}
        self._snapshot = SnapshotFile(path, fernet_key=fernet_key) if path else None

        if self._snapshot is not None:
            self._load(self._snapshot)

    # -------- Construction helpers --------
    @classmethod
    def from_env(cls) -> "MemoryRecordStore":
        return cls(_getenv(ENV_STORE_FILE), fernet_key=_getenv(ENV_FERNET_KEY))

    def _load(self, snapshot: SnapshotFile) -> None:
        try:
            records, skipped = snapshot.load()
        except SnapshotError as ex:
            logger.error("Memory store: could not load from file %s: %s", snapshot.path, ex)
            return
        self._records.update(records)
        logger.info(
            "Memory store: loaded %d records from %s (%d skipped)",
            len(records),
            snapshot.path,
            len(skipped),
        )

    def __len__(self) -> int:
        with self._lock:
            return len(self._records)

    # -------- Core operations --------
    def get_record(self, record_id: RecordID) -> Tuple[UserRecord, Optional[UserRecord]]:
        with self._lock:
            record = self._records.get(record_id)
        if record is None:
            return (default_record(), None)
        return (record, record)

    def write_record(
        self,
        record_id: RecordID,
        record: UserRecord,
        read_token: Optional[UserRecord],
    ) -> None:
        """Compare-and-swap the entry for `record_id`.

        Raises:
        - RecordConflictError if the stored value no longer matches `read_token`.
        """
        with self._lock:
            existing = self._records.get(record_id)
            if existing is None:
                matches = read_token is None
            else:
                matches = read_token is not None and existing == read_token
            if not matches:
                raise RecordConflictError("record was unexpectedly mutated before write")

            self._records[record_id] = record

            if self._snapshot is not None:
                try:
                    self._snapshot.save(self._records)
                except SnapshotError as ex:
                    logger.error("Memory store: failed to save to file: %s", ex)

    def flush(self) -> None:
        """Persist the current table now.

        Raises:
        - SnapshotError if the snapshot cannot be written.
        """
        if self._snapshot is None:
            return
        with self._lock:
            self._snapshot.save(self._records)
