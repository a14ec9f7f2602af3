"""
Per-user registration records for a realm, with an optimistic-concurrency
store and an optional JSON snapshot file (optionally Fernet-encrypted).
"""

from .base import RecordStore
from .memory_store import MemoryRecordStore, RecordConflictError
from .models import (
    MalformedRecordError,
    NoGuesses,
    NotRegistered,
    OprfSignedPublicKey,
    Policy,
    RecordID,
    Registered,
    RegistrationState,
    UserRecord,
    default_record,
    from_persisted,
    to_persisted,
)
from .snapshot import SnapshotError, SnapshotFile

__all__ = [
    "MalformedRecordError",
    "MemoryRecordStore",
    "NoGuesses",
    "NotRegistered",
    "OprfSignedPublicKey",
    "Policy",
    "RecordConflictError",
    "RecordID",
    "RecordStore",
    "Registered",
    "RegistrationState",
    "SnapshotError",
    "SnapshotFile",
    "UserRecord",
    "default_record",
    "from_persisted",
    "to_persisted",
]
