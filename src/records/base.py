"""
Record store interface.

A store hands out `(record, token)` pairs on read and accepts a write only
when the token still describes what is stored. Backends differ in how the
token is represented; callers treat it as opaque and always pass back the
token from the immediately preceding read of the same id.

Calls take no context or deadline; callers impose their own timeouts
around a call, and a started call always runs to completion.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Optional, Tuple

from .models import RecordID, UserRecord


class RecordStore(ABC):
    @abstractmethod
    def get_record(self, record_id: RecordID) -> Tuple[UserRecord, Optional[Any]]:
        """Return the stored record (or the default) and a read token."""

    @abstractmethod
    def write_record(self, record_id: RecordID, record: UserRecord, read_token: Optional[Any]) -> None:
        """Store `record` if nothing changed since the read that produced `read_token`."""
