from __future__ import annotations

import base64
import binascii
import hashlib
import json
import os
import re

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC
from flask import current_app

from .draw import DrawRecord, InvalidInput


# ---------------------------------------------------------------------------
# Draw tokens
#
# A token is urlsafe-base64(salt || iv || ciphertext+tag), unpadded. Salt and
# IV lengths are fixed; nothing in the stream is length-prefixed or
# versioned. The key is PBKDF2-SHA256(passphrase, salt) and the cipher is
# AES-256-GCM, so a wrong passphrase and a tampered token fail the same way.
# ---------------------------------------------------------------------------

SALT_LENGTH = 16
IV_LENGTH = 12
TAG_LENGTH = 16
KEY_LENGTH = 32
KDF_ITERATIONS = 200_000

_TOKEN_RE = re.compile(r"^[A-Za-z0-9_-]+$")


class DecodeFailure(ValueError):
    """Token is malformed, fails authentication, or does not hold a draw."""

    def __init__(self):
        super().__init__("Invalid draw token")


def _derive_key(passphrase: str, salt: bytes) -> bytes:
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=KEY_LENGTH,
        salt=salt,
        iterations=KDF_ITERATIONS,
    )
    return kdf.derive(passphrase.encode("utf-8"))


def _b64encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _b64decode(token: str) -> bytes:
    if not isinstance(token, str) or not _TOKEN_RE.match(token):
        raise DecodeFailure()
    try:
        raw = base64.urlsafe_b64decode(token + "=" * (-len(token) % 4))
    except (binascii.Error, ValueError) as e:
        raise DecodeFailure() from e
    # Only the canonical spelling of a buffer is accepted, so every changed
    # character changes the decoded bytes.
    if _b64encode(raw) != token:
        raise DecodeFailure()
    return raw


def encrypt_string(plain: str, passphrase: str) -> str:
    """Encrypt `plain` under `passphrase` -> URL-safe token. Fresh salt and IV every call."""
    salt = os.urandom(SALT_LENGTH)
    iv = os.urandom(IV_LENGTH)
    ciphertext = AESGCM(_derive_key(passphrase, salt)).encrypt(iv, plain.encode("utf-8"), None)
    return _b64encode(salt + iv + ciphertext)


def decrypt_string(token: str, passphrase: str) -> str:
    """Decrypt a token from encrypt_string. Raises DecodeFailure on any problem."""
    try:
        packed = _b64decode(token)
        if len(packed) < SALT_LENGTH + IV_LENGTH + TAG_LENGTH:
            raise DecodeFailure()
    except DecodeFailure:
        # pay the same key derivation as a wrong passphrase before failing
        _derive_key(passphrase, bytes(SALT_LENGTH))
        raise

    salt = packed[:SALT_LENGTH]
    iv = packed[SALT_LENGTH:SALT_LENGTH + IV_LENGTH]
    ciphertext = packed[SALT_LENGTH + IV_LENGTH:]
    try:
        raw = AESGCM(_derive_key(passphrase, salt)).decrypt(iv, ciphertext, None)
        return raw.decode("utf-8")
    except (InvalidTag, UnicodeDecodeError) as e:
        raise DecodeFailure() from e


def encode_draw(record: DrawRecord, passphrase: str) -> str:
    payload = json.dumps(record.to_dict(), separators=(",", ":"), ensure_ascii=False)
    return encrypt_string(payload, passphrase)


def decode_draw(token: str, passphrase: str) -> DrawRecord:
    """Token -> DrawRecord. Every failure surfaces as the same DecodeFailure."""
    plain = decrypt_string(token, passphrase)
    try:
        return DrawRecord.from_dict(json.loads(plain))
    except (InvalidInput, ValueError) as e:
        raise DecodeFailure() from e


def draw_passphrase() -> str:
    """SANTA_DRAW_PASSPHRASE when configured, otherwise derived from SECRET_KEY."""
    explicit = current_app.config.get("SANTA_DRAW_PASSPHRASE") or ""
    if explicit:
        return explicit

    secret = (current_app.config.get("SECRET_KEY") or "").encode("utf-8")
    return hashlib.sha256(b"santadraw-tokens|" + secret).hexdigest()
