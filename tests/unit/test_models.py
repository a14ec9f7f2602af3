from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from records.models import (
    MalformedRecordError,
    NoGuesses,
    NotRegistered,
    PersistedUserRecord,
    Policy,
    Registered,
    default_record,
    from_persisted,
    to_persisted,
)


def test_default_record_is_not_registered():
    assert default_record() == NotRegistered()
    assert default_record() != NoGuesses()


@pytest.mark.parametrize("fill", [0x00, 0xFF, 0x5A])
def test_registered_roundtrip(make_registered, fill):
    rec = make_registered(fill, guess_count=3, num_guesses=7)
    assert from_persisted(to_persisted(rec)) == rec


@pytest.mark.parametrize("rec", [NotRegistered(), NoGuesses()])
def test_payload_free_variants_roundtrip(rec):
    persisted = to_persisted(rec)
    assert persisted.registered is None
    assert "registered" not in persisted.to_json_dict()
    assert from_persisted(persisted) == rec


def test_to_persisted_hex_encodes_buffers(make_registered):
    persisted = to_persisted(make_registered(0xAB, guess_count=65535))
    assert persisted.registration_state == "Registered"
    reg = persisted.registered
    assert reg is not None
    assert reg.version == "ab" * 16
    assert reg.oprf_signed_public_key.signature == "ab" * 64
    assert reg.encrypted_secret == "ab" * 145
    assert reg.guess_count == 65535
    assert reg.policy == {"num_guesses": 10}


def test_registered_without_payload_is_malformed():
    with pytest.raises(MalformedRecordError):
        from_persisted(PersistedUserRecord(registration_state="Registered"))


@pytest.mark.parametrize("tag", ["", "Deleted", "registered"])
def test_unknown_tag_decodes_to_not_registered(tag):
    assert from_persisted(PersistedUserRecord(registration_state=tag)) == NotRegistered()


def test_bad_hex_field_is_zero_filled(make_registered, caplog):
    persisted = to_persisted(make_registered(0x11))
    raw = persisted.to_json_dict()
    raw["registered"]["unlock_key_tag"] = "not-hex!"

    with caplog.at_level(logging.WARNING, logger="records.models"):
        rec = from_persisted(PersistedUserRecord.model_validate(raw))

    assert isinstance(rec, Registered)
    assert rec.unlock_key_tag == bytes(16)
    assert rec.version == b"\x11" * 16
    assert "unlock_key_tag" in caplog.text


def test_short_and_long_hex_fit_field_size(make_registered):
    raw = to_persisted(make_registered(0x22)).to_json_dict()
    raw["registered"]["version"] = "ff"
    raw["registered"]["unlock_key_tag"] = "ee" * 20

    rec = from_persisted(PersistedUserRecord.model_validate(raw))
    assert rec.version == b"\xff" + bytes(15)
    assert rec.unlock_key_tag == b"\xee" * 16


def test_policy_extra_keys_pass_through(make_registered):
    rec = make_registered().model_copy(
        update={"policy": Policy.model_validate({"num_guesses": 5, "tier": "gold"})}
    )
    out = from_persisted(to_persisted(rec))
    assert out.policy.model_dump() == {"num_guesses": 5, "tier": "gold"}
    assert out == rec


def test_wrong_buffer_length_rejected(make_registered):
    base = make_registered().model_dump()
    base["version"] = b"\x00" * 15
    with pytest.raises(ValidationError):
        Registered.model_validate(base)


def test_guess_count_is_uint16(make_registered):
    base = make_registered().model_dump()
    base["guess_count"] = 65536
    with pytest.raises(ValidationError):
        Registered.model_validate(base)


def test_records_are_immutable(make_registered):
    rec = make_registered()
    with pytest.raises(ValidationError):
        rec.guess_count = 1  # type: ignore[misc]


def test_missing_registered_fields_are_zero_filled():
    persisted = PersistedUserRecord.model_validate(
        {
            "registration_state": "Registered",
            "registered": {
                "oprf_signed_public_key": {"public_key": "01" * 32},
                "encrypted_secret": "02" * 145,
            },
        }
    )

    rec = from_persisted(persisted)

    assert isinstance(rec, Registered)
    assert rec.oprf_signed_public_key.public_key == b"\x01" * 32
    assert rec.oprf_signed_public_key.verifying_key == bytes(32)
    assert rec.encrypted_secret == b"\x02" * 145
    assert rec.unlock_key_tag == bytes(16)
    assert rec.guess_count == 0
    assert rec.policy == Policy(num_guesses=0)


@pytest.mark.parametrize("raw", [{"registration_state": None}, {}])
def test_null_or_absent_tag_decodes_to_not_registered(raw):
    assert from_persisted(PersistedUserRecord.model_validate(raw)) == NotRegistered()
