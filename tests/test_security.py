import base64
import json
from datetime import datetime, timezone

import pytest

from santadraw import security

from santadraw.draw import DrawRecord, ExclusionPair, Participant
from santadraw.security import (
    IV_LENGTH,
    SALT_LENGTH,
    DecodeFailure,
    decode_draw,
    decrypt_string,
    draw_passphrase,
    encode_draw,
    encrypt_string,
)


@pytest.fixture
def record():
    return DrawRecord(
        id="draw-1",
        code="AB12CD",
        organizer_name="Noëlle",
        draw_name="Family 2025",
        participants=(
            Participant("a", "Ann"),
            Participant("b", "Bob"),
            Participant("c", "Cleo"),
            Participant("d", "Dan"),
        ),
        exclusions=(ExclusionPair("a", "b"),),
        assignment={"a": "c", "b": "d", "c": "b", "d": "a"},
        created_at=datetime(2025, 12, 1, 18, 30, tzinfo=timezone.utc),
    )


def _raw(token):
    return base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))


def _token(raw):
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def test_round_trip(record):
    token = encode_draw(record, "mistletoe")
    assert decode_draw(token, "mistletoe") == record


def test_round_trip_with_empty_passphrase(record):
    assert decode_draw(encode_draw(record, ""), "") == record


def test_token_is_url_safe(record):
    token = encode_draw(record, "mistletoe")
    assert set(token) <= set("ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789-_")


def test_same_input_gives_different_tokens(record):
    first = encode_draw(record, "mistletoe")
    second = encode_draw(record, "mistletoe")
    assert first != second
    assert _raw(first)[:SALT_LENGTH] != _raw(second)[:SALT_LENGTH]
    assert _raw(first)[SALT_LENGTH:SALT_LENGTH + IV_LENGTH] != _raw(second)[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]


def test_wrong_passphrase_is_rejected(record):
    token = encode_draw(record, "mistletoe")
    with pytest.raises(DecodeFailure):
        decode_draw(token, "holly")


@pytest.mark.parametrize("where", ["salt", "iv", "ciphertext", "tag"])
def test_flipped_byte_is_rejected(record, where):
    raw = bytearray(_raw(encode_draw(record, "mistletoe")))
    index = {
        "salt": 0,
        "iv": SALT_LENGTH + 3,
        "ciphertext": SALT_LENGTH + IV_LENGTH + 5,
        "tag": len(raw) - 1,
    }[where]
    raw[index] ^= 0x01
    with pytest.raises(DecodeFailure):
        decode_draw(_token(bytes(raw)), "mistletoe")


def test_changed_last_character_is_rejected():
    token = encrypt_string("hello", "k")
    last = token[-1]
    replacement = "A" if last != "A" else "B"
    with pytest.raises(DecodeFailure):
        decrypt_string(token[:-1] + replacement, "k")


@pytest.mark.parametrize(
    "token",
    ["", "not a token", "abc+/def", "YWJj", "A" * 10, "Zm9v===="],
)
def test_malformed_tokens_are_rejected(token):
    with pytest.raises(DecodeFailure):
        decrypt_string(token, "k")


def test_failures_share_one_message(record):
    token = encode_draw(record, "mistletoe")
    raw = bytearray(_raw(token))
    raw[-1] ^= 0xFF

    messages = set()
    for bad, key in [(token, "holly"), (_token(bytes(raw)), "mistletoe"), ("%%%", "mistletoe")]:
        with pytest.raises(DecodeFailure) as exc:
            decode_draw(bad, key)
        messages.add(str(exc.value))
    assert len(messages) == 1


def test_non_draw_payload_is_rejected():
    token = encrypt_string(json.dumps({"hello": "world"}), "k")
    with pytest.raises(DecodeFailure):
        decode_draw(token, "k")

    token = encrypt_string("not json", "k")
    with pytest.raises(DecodeFailure):
        decode_draw(token, "k")


def test_payload_uses_original_field_names(record):
    token = encode_draw(record, "k")
    payload = json.loads(decrypt_string(token, "k"))
    assert set(payload) == {
        "id", "code", "organizerName", "drawName", "participants", "couples", "assignments", "createdAt",
    }
    assert payload["couples"] == [{"person1Id": "a", "person2Id": "b"}]


def test_draw_passphrase_prefers_explicit_setting(app):
    with app.app_context():
        derived = draw_passphrase()
        assert derived and derived != app.config["SECRET_KEY"]

        app.config["SANTA_DRAW_PASSPHRASE"] = "  sleigh  "
        assert draw_passphrase() == "  sleigh  "


@pytest.mark.parametrize("token", ["not a token", "YWJj", "A" * 10])
def test_malformed_tokens_still_derive_a_key(monkeypatch, token):
    derived = []
    real = security._derive_key

    def counting(passphrase, salt):
        derived.append(salt)
        return real(passphrase, salt)

    monkeypatch.setattr(security, "_derive_key", counting)
    with pytest.raises(DecodeFailure):
        decrypt_string(token, "k")
    assert len(derived) == 1


def test_record_is_read_only(record):
    with pytest.raises(TypeError):
        record.assignment["a"] = "b"


def test_record_copies_its_inputs():
    assignment = {"a": "b", "b": "c", "c": "a"}
    participants = [Participant("a", "Ann"), Participant("b", "Bob"), Participant("c", "Cleo")]
    record = DrawRecord(
        id="d", code="ABCDEF", organizer_name="Mia", draw_name="Office",
        participants=participants, exclusions=[], assignment=assignment,
    )
    assignment["a"] = "c"
    participants.pop()
    assert record.assignment["a"] == "b"
    assert len(record.participants) == 3
    assert decode_draw(encode_draw(record, "k"), "k") == record
