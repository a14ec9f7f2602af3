from __future__ import annotations

import logging
from enum import Enum
from typing import Annotated, Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


logger = logging.getLogger(__name__)

RecordID = str

# Fixed buffer sizes, in bytes
VERSION_SIZE = 16
OPRF_PRIVATE_KEY_SIZE = 32
OPRF_PUBLIC_KEY_SIZE = 32
OPRF_VERIFYING_KEY_SIZE = 32
OPRF_SIGNATURE_SIZE = 64
UNLOCK_KEY_COMMITMENT_SIZE = 32
UNLOCK_KEY_TAG_SIZE = 16
ENCRYPTION_KEY_SCALAR_SHARE_SIZE = 32
ENCRYPTED_SECRET_SIZE = 145
ENCRYPTED_SECRET_COMMITMENT_SIZE = 16

MAX_GUESS_COUNT = 0xFFFF


Bytes16 = Annotated[bytes, Field(min_length=16, max_length=16)]
Bytes32 = Annotated[bytes, Field(min_length=32, max_length=32)]
Bytes64 = Annotated[bytes, Field(min_length=64, max_length=64)]
Bytes145 = Annotated[bytes, Field(min_length=145, max_length=145)]


class MalformedRecordError(ValueError):
    """Raised when a persisted record claims `Registered` but has no payload."""


class RegistrationState(str, Enum):
    REGISTERED = "Registered"
    NOT_REGISTERED = "NotRegistered"
    NO_GUESSES = "NoGuesses"


class Policy(BaseModel):
    """
    Opaque registration policy, stored and returned unchanged.

    Only `num_guesses` is known here; any extra keys are kept as-is.
    """

    model_config = ConfigDict(frozen=True, extra="allow")

    num_guesses: int = Field(default=0, ge=0, le=MAX_GUESS_COUNT)


class OprfSignedPublicKey(BaseModel):
    model_config = ConfigDict(frozen=True)

    public_key: Bytes32
    verifying_key: Bytes32
    signature: Bytes64


class Registered(BaseModel):
    """
    A live registration.

    All key material is held as fixed-length opaque byte strings; the store
    never interprets them. `guess_count` is an unsigned 16-bit counter.
    """

    model_config = ConfigDict(frozen=True)

    version: Bytes16
    oprf_private_key: Bytes32
    oprf_signed_public_key: OprfSignedPublicKey
    unlock_key_commitment: Bytes32
    unlock_key_tag: Bytes16
    encryption_key_scalar_share: Bytes32
    encrypted_secret: Bytes145
    encrypted_secret_commitment: Bytes16
    guess_count: int = Field(default=0, ge=0, le=MAX_GUESS_COUNT)
    policy: Policy


class NotRegistered(BaseModel):
    """No registration exists. Also the value read for unknown ids."""

    model_config = ConfigDict(frozen=True)


class NoGuesses(BaseModel):
    """The registration's guess budget is exhausted."""

    model_config = ConfigDict(frozen=True)


UserRecord = Union[NotRegistered, Registered, NoGuesses]


def default_record() -> UserRecord:
    return NotRegistered()


# -------- Persisted (hex/JSON) representation --------
# Missing fields read as their zero value: empty hex (zero-filled on decode),
# a zero guess count and a zero policy.
class PersistedOprfSignedPublicKey(BaseModel):
    public_key: str = ""
    verifying_key: str = ""
    signature: str = ""


class PersistedRegistered(BaseModel):
    version: str = ""
    oprf_private_key: str = ""
    oprf_signed_public_key: PersistedOprfSignedPublicKey = Field(
        default_factory=PersistedOprfSignedPublicKey
    )
    unlock_key_commitment: str = ""
    unlock_key_tag: str = ""
    encryption_key_scalar_share: str = ""
    encrypted_secret: str = ""
    encrypted_secret_commitment: str = ""
    guess_count: int = Field(default=0, ge=0, le=MAX_GUESS_COUNT)
    policy: Dict[str, Any] = Field(default_factory=lambda: {"num_guesses": 0})


class PersistedUserRecord(BaseModel):
    """
    On-disk shape of one record.

    `registration_state` is kept as a plain string so that unknown or
    absent tags can be read back (they decode to `NotRegistered`).
    """

    registration_state: Optional[str] = None
    registered: Optional[PersistedRegistered] = None

    def to_json_dict(self) -> Dict[str, Any]:
        return self.model_dump(exclude_none=True)


def to_persisted(record: UserRecord) -> PersistedUserRecord:
    if isinstance(record, Registered):
        pk = record.oprf_signed_public_key
        return PersistedUserRecord(
            registration_state=RegistrationState.REGISTERED.value,
            registered=PersistedRegistered(
                version=record.version.hex(),
                oprf_private_key=record.oprf_private_key.hex(),
                oprf_signed_public_key=PersistedOprfSignedPublicKey(
                    public_key=pk.public_key.hex(),
                    verifying_key=pk.verifying_key.hex(),
                    signature=pk.signature.hex(),
                ),
                unlock_key_commitment=record.unlock_key_commitment.hex(),
                unlock_key_tag=record.unlock_key_tag.hex(),
                encryption_key_scalar_share=record.encryption_key_scalar_share.hex(),
                encrypted_secret=record.encrypted_secret.hex(),
                encrypted_secret_commitment=record.encrypted_secret_commitment.hex(),
                guess_count=record.guess_count,
                policy=record.policy.model_dump(),
            ),
        )
    if isinstance(record, NoGuesses):
        return PersistedUserRecord(registration_state=RegistrationState.NO_GUESSES.value)
    return PersistedUserRecord(registration_state=RegistrationState.NOT_REGISTERED.value)


def _decode_fixed(value: str, size: int, field: str) -> bytes:
    """Decode hex into a zero-filled buffer of exactly `size` bytes.

    Valid hex of the wrong length is padded or truncated. Invalid hex
    yields an all-zero buffer rather than failing the whole record.
    """
    buf = bytearray(size)
    try:
        raw = bytes.fromhex(value)
    except ValueError:
        logger.warning("Undecodable hex in field %s; using zero-filled buffer", field)
        return bytes(buf)
    n = min(len(raw), size)
    buf[:n] = raw[:n]
    return bytes(buf)


def from_persisted(persisted: PersistedUserRecord) -> UserRecord:
    """Inverse of `to_persisted`.

    Raises:
    - MalformedRecordError if the tag is `Registered` but the payload is missing.
    """
    state = persisted.registration_state
    if state == RegistrationState.REGISTERED.value:
        r = persisted.registered
        if r is None:
            raise MalformedRecordError("missing registered data")
        pk = r.oprf_signed_public_key
        return Registered(
            version=_decode_fixed(r.version, VERSION_SIZE, "version"),
            oprf_private_key=_decode_fixed(r.oprf_private_key, OPRF_PRIVATE_KEY_SIZE, "oprf_private_key"),
            oprf_signed_public_key=OprfSignedPublicKey(
                public_key=_decode_fixed(pk.public_key, OPRF_PUBLIC_KEY_SIZE, "public_key"),
                verifying_key=_decode_fixed(pk.verifying_key, OPRF_VERIFYING_KEY_SIZE, "verifying_key"),
                signature=_decode_fixed(pk.signature, OPRF_SIGNATURE_SIZE, "signature"),
            ),
            unlock_key_commitment=_decode_fixed(
                r.unlock_key_commitment, UNLOCK_KEY_COMMITMENT_SIZE, "unlock_key_commitment"
            ),
            unlock_key_tag=_decode_fixed(r.unlock_key_tag, UNLOCK_KEY_TAG_SIZE, "unlock_key_tag"),
            encryption_key_scalar_share=_decode_fixed(
                r.encryption_key_scalar_share,
                ENCRYPTION_KEY_SCALAR_SHARE_SIZE,
                "encryption_key_scalar_share",
            ),
            encrypted_secret=_decode_fixed(r.encrypted_secret, ENCRYPTED_SECRET_SIZE, "encrypted_secret"),
            encrypted_secret_commitment=_decode_fixed(
                r.encrypted_secret_commitment,
                ENCRYPTED_SECRET_COMMITMENT_SIZE,
                "encrypted_secret_commitment",
            ),
            guess_count=r.guess_count,
            policy=Policy.model_validate(r.policy),
        )
    if state == RegistrationState.NO_GUESSES.value:
        return NoGuesses()
    # "NotRegistered", null/absent, and anything unrecognised
    return default_record()
