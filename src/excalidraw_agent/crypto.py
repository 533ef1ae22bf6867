"""
AES-GCM codec for share-link payloads.

Wire format: ``nonce (12 random bytes) || ciphertext-and-tag``. Keys travel
as the ``k`` member of a JWK, i.e. unpadded base64url. Keys are never logged.
"""

from __future__ import annotations

import base64
import binascii
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from excalidraw_agent.errors import CryptoError, KeyFormatError

NONCE_LENGTH_BYTES = 12
TAG_LENGTH_BYTES = 16
KEY_LENGTH_BITS = 128
VALID_KEY_LENGTHS = (16, 24, 32)


def b64url_decode(value: str) -> bytes:
    """Decode base64url text, tolerating missing padding."""
    padded = value + "=" * (-len(value) % 4)
    return base64.urlsafe_b64decode(padded.encode("ascii"))


def b64url_encode(data: bytes) -> str:
    return base64.urlsafe_b64encode(data).decode("ascii").rstrip("=")


def import_key(encoded: str) -> bytes:
    """Turn a JWK ``k`` string into raw AES key bytes.

    Raises:
        KeyFormatError: if the text is not base64url or the decoded length is
            not a valid AES key size.
    """
    if not encoded:
        raise KeyFormatError("Encryption key is empty", operation="import_key")
    try:
        key = b64url_decode(encoded.strip())
    except (binascii.Error, ValueError, UnicodeEncodeError) as exc:
        raise KeyFormatError("Encryption key is not valid base64url", operation="import_key") from exc
    if len(key) not in VALID_KEY_LENGTHS:
        raise KeyFormatError(
            f"Invalid encryption key length: {len(key)} bytes",
            operation="import_key",
            key_length=len(key),
        )
    return key


def generate_key() -> str:
    """Create a fresh 128-bit key, encoded as a JWK ``k`` string."""
    return b64url_encode(AESGCM.generate_key(bit_length=KEY_LENGTH_BITS))


def _cipher(key: str | bytes) -> AESGCM:
    raw = import_key(key) if isinstance(key, str) else key
    if len(raw) not in VALID_KEY_LENGTHS:
        raise KeyFormatError(f"Invalid encryption key length: {len(raw)} bytes", operation="import_key")
    return AESGCM(raw)


def encrypt(plaintext: bytes, key: str | bytes) -> bytes:
    """Encrypt and prefix a random 12-byte nonce."""
    nonce = os.urandom(NONCE_LENGTH_BYTES)
    return nonce + _cipher(key).encrypt(nonce, plaintext, None)


def decrypt_with_nonce(ciphertext: bytes, nonce: bytes, key: str | bytes) -> bytes:
    """Decrypt ``ciphertext`` (tag appended) with an explicit nonce."""
    cipher = _cipher(key)
    if len(nonce) != NONCE_LENGTH_BYTES:
        raise CryptoError(
            f"Invalid nonce length {len(nonce)}, expected {NONCE_LENGTH_BYTES}",
            operation="decrypt",
        )
    try:
        return cipher.decrypt(nonce, ciphertext, None)
    except InvalidTag as exc:
        raise CryptoError("Decryption failed: invalid key or corrupted data", operation="decrypt") from exc


def decrypt(payload: bytes, key: str | bytes) -> bytes:
    """Decrypt a ``nonce || ciphertext`` payload.

    Raises:
        CryptoError: on tag mismatch or a payload too short to hold a nonce
            and tag.
        KeyFormatError: if ``key`` cannot be imported.
    """
    if len(payload) < NONCE_LENGTH_BYTES + TAG_LENGTH_BYTES:
        # import first so a bad key is reported as such
        _cipher(key)
        raise CryptoError(
            f"Decryption failed: payload too short ({len(payload)} bytes)",
            operation="decrypt",
        )
    return decrypt_with_nonce(payload[NONCE_LENGTH_BYTES:], payload[:NONCE_LENGTH_BYTES], key)
