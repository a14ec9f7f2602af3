from __future__ import annotations

import json
import logging
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from cryptography.fernet import Fernet, InvalidToken
from pydantic import ValidationError

from .models import (
    MalformedRecordError,
    PersistedUserRecord,
    RecordID,
    UserRecord,
    from_persisted,
    to_persisted,
)


logger = logging.getLogger(__name__)

# Snapshots hold private key material
FILE_MODE = 0o600


class SnapshotError(RuntimeError):
    """Raised when the snapshot file cannot be read, decoded or written."""


def _to_fernet(key: str | bytes) -> Fernet:
    """Construct a Fernet instance from a urlsafe base64-encoded 32-byte key."""
    if isinstance(key, str):
        key_bytes = key.encode("utf-8")
    else:
        key_bytes = key
    return Fernet(key_bytes)


def encode_snapshot(records: Mapping[RecordID, UserRecord]) -> bytes:
    # Deterministic JSON: stable key order
    payload = {
        "records": {
            str(record_id): to_persisted(record).to_json_dict()
            for record_id, record in records.items()
        }
    }
    return json.dumps(payload, indent=2, sort_keys=True).encode("utf-8")


def decode_snapshot(data: bytes) -> Tuple[Dict[RecordID, UserRecord], List[str]]:
    """Decode a snapshot document.

    Returns: (records, skipped)
    - Entries that fail validation are left out and their ids listed in `skipped`.
    - A document without `records` decodes to an empty table.
    Raises:
    - SnapshotError if the document is not a JSON object or `records` is not a mapping.
    """
    try:
        raw = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as ex:
        raise SnapshotError("Failed to parse snapshot JSON") from ex

    if not isinstance(raw, dict):
        raise SnapshotError("Snapshot document is not a JSON object")
    entries = raw.get("records")
    if entries is None:
        entries = {}
    if not isinstance(entries, dict):
        raise SnapshotError("Snapshot `records` is not a mapping")

    records: Dict[RecordID, UserRecord] = {}
    skipped: List[str] = []
    for key, entry in entries.items():
        try:
            records[RecordID(key)] = from_persisted(PersistedUserRecord.model_validate(entry))
        except (MalformedRecordError, ValidationError) as ex:
            logger.warning("Skipping snapshot record %s: %s", key, ex)
            skipped.append(key)
    return records, skipped


class SnapshotFile:
    """
    Whole-table snapshot stored in a single file.

    - `load()` returns `(records, skipped)`; a missing file yields an empty table.
    - `save(records)` rewrites the file atomically (temp file + `os.replace`),
      readable only by the owner.
    - With a Fernet key the JSON is encrypted at rest; without one it is
      written as plain JSON.
    """

    def __init__(self, path: os.PathLike[str] | str, *, fernet_key: Optional[str | bytes] = None) -> None:
        self._path = Path(path)
        self._fernet = _to_fernet(fernet_key) if fernet_key else None

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> Tuple[Dict[RecordID, UserRecord], List[str]]:
        try:
            data = self._path.read_bytes()
        except FileNotFoundError:
            return {}, []
        except OSError as ex:
            raise SnapshotError(f"Failed to read snapshot {self._path}") from ex

        if self._fernet is not None:
            try:
                data = self._fernet.decrypt(data)
            except InvalidToken as ex:
                raise SnapshotError("Failed to decrypt snapshot: invalid Fernet token") from ex

        return decode_snapshot(data)

    def save(self, records: Mapping[RecordID, UserRecord]) -> None:
        try:
            data = encode_snapshot(records)
        except (TypeError, ValueError) as ex:
            # e.g. a policy extra that has no JSON form
            raise SnapshotError("Failed to encode snapshot JSON") from ex
        if self._fernet is not None:
            data = self._fernet.encrypt(data)

        tmp_path: Optional[Path] = None
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            # mkstemp creates the file with mode 0600
            fd, tmp_name = tempfile.mkstemp(
                dir=self._path.parent, prefix=f".{self._path.name}.", suffix=".tmp"
            )
            tmp_path = Path(tmp_name)
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.chmod(tmp_path, FILE_MODE)
            os.replace(tmp_path, self._path)
            tmp_path = None
        except OSError as ex:
            raise SnapshotError(f"Failed to write snapshot {self._path}") from ex
        finally:
            if tmp_path is not None:
                tmp_path.unlink(missing_ok=True)
