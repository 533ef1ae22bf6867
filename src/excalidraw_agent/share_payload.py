"""
Share blob framing.

Two framings are in circulation:

* v1: ``nonce(12) || AES-GCM(scene JSON)``
* v2: concatenated buffers ``[u32 version][u32 len][chunk]...`` holding
  ``[encoding metadata JSON, nonce, ciphertext]``. The decrypted content is
  optionally zlib-compressed ("pako") and is either the scene JSON or a second
  concatenated buffer whose second chunk is the scene JSON.

All integers are big-endian.
"""

from __future__ import annotations

import json
import struct
import zlib
from typing import Any

from excalidraw_agent import crypto
from excalidraw_agent.errors import SharePayloadError

CONCAT_BUFFERS_VERSION = 1
VERSION_BYTES = 4
CHUNK_SIZE_BYTES = 4

MAX_COMPRESSED_BYTES = 5 * 1024 * 1024
MAX_DECOMPRESSED_BYTES = 20 * 1024 * 1024
MAX_UPSTREAM_BYTES = 25 * 1024 * 1024
INLINE_PAYLOAD_MIN_LENGTH = 20


def split_buffers(data: bytes) -> list[bytes]:
    """Split a concatenated buffer into its chunks."""
    if len(data) < VERSION_BYTES:
        raise SharePayloadError("V2 parsing failed: truncated buffer header")
    (version,) = struct.unpack_from(">I", data, 0)
    if version > CONCAT_BUFFERS_VERSION:
        raise SharePayloadError(
            f"V2 parsing failed: invalid buffer version {version}, "
            f"expected <= {CONCAT_BUFFERS_VERSION}"
        )

    chunks: list[bytes] = []
    cursor = VERSION_BYTES
    while cursor < len(data):
        if cursor + CHUNK_SIZE_BYTES > len(data):
            raise SharePayloadError("V2 parsing failed: truncated chunk header")
        (size,) = struct.unpack_from(">I", data, cursor)
        cursor += CHUNK_SIZE_BYTES
        if cursor + size > len(data):
            raise SharePayloadError("V2 parsing failed: chunk size exceeds remaining buffer")
        chunks.append(data[cursor : cursor + size])
        cursor += size
    return chunks


def concat_buffers(*chunks: bytes) -> bytes:
    """Inverse of :func:`split_buffers`."""
    parts = [struct.pack(">I", CONCAT_BUFFERS_VERSION)]
    for chunk in chunks:
        parts.append(struct.pack(">I", len(chunk)))
        parts.append(chunk)
    return b"".join(parts)


def is_v2_format(data: bytes) -> bool:
    if len(data) < VERSION_BYTES:
        return False
    (version,) = struct.unpack_from(">I", data, 0)
    return version == CONCAT_BUFFERS_VERSION


def decompress(data: bytes) -> bytes:
    """Inflate a zlib stream with size limits on both sides."""
    if len(data) > MAX_COMPRESSED_BYTES:
        raise SharePayloadError("V2 decompression failed: compressed payload too large")
    inflater = zlib.decompressobj()
    try:
        output = inflater.decompress(data, MAX_DECOMPRESSED_BYTES + 1)
    except zlib.error as exc:
        raise SharePayloadError(f"V2 decompression failed: {exc}") from exc
    if len(output) > MAX_DECOMPRESSED_BYTES or inflater.unconsumed_tail:
        raise SharePayloadError("V2 decompression failed: decompressed payload too large")
    return output


def _load_scene(raw: bytes, label: str) -> dict[str, Any]:
    try:
        scene = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SharePayloadError(f"{label} parsing failed: invalid scene JSON") from exc
    if not isinstance(scene, dict):
        raise SharePayloadError(f"{label} parsing failed: scene is not an object")
    return scene


def decode_v1(blob: bytes, key: str | bytes) -> dict[str, Any]:
    plaintext = crypto.decrypt(blob, key)
    return _load_scene(plaintext, "V1")


def decode_v2(blob: bytes, key: str | bytes) -> dict[str, Any]:
    outer = split_buffers(blob)
    if len(outer) < 3:
        raise SharePayloadError(f"V2 parsing failed: expected 3 outer buffers, got {len(outer)}")
    metadata_raw, nonce, ciphertext = outer[0], outer[1], outer[2]

    try:
        metadata = json.loads(metadata_raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise SharePayloadError("V2 parsing failed: invalid encoding metadata JSON") from exc
    if len(nonce) != crypto.NONCE_LENGTH_BYTES:
        raise SharePayloadError(
            f"V2 parsing failed: invalid IV length {len(nonce)}, "
            f"expected {crypto.NONCE_LENGTH_BYTES}"
        )

    decrypted = crypto.decrypt_with_nonce(ciphertext, nonce, key)

    compression = metadata.get("compression") if isinstance(metadata, dict) else None
    if isinstance(compression, str) and compression.startswith("pako"):
        decrypted = decompress(decrypted)

    if decrypted[:1] == b"{":
        return _load_scene(decrypted, "V2")

    inner = split_buffers(decrypted)
    if len(inner) < 2:
        raise SharePayloadError(f"V2 parsing failed: expected 2 inner buffers, got {len(inner)}")
    return _load_scene(inner[1], "V2")


def decode_share_payload(blob: bytes, key: str | bytes) -> dict[str, Any]:
    """Decrypt and decode a share blob in either framing.

    Raises:
        CryptoError / KeyFormatError: on key or authentication failure.
        SharePayloadError: on framing, compression or JSON failure.
    """
    if is_v2_format(blob):
        return decode_v2(blob, key)
    return decode_v1(blob, key)


def encode_share_payload(scene: dict[str, Any], key: str | bytes) -> bytes:
    """Encrypt a scene using the v1 framing accepted by the diagram host."""
    raw = json.dumps(scene, separators=(",", ":")).encode("utf-8")
    return crypto.encrypt(raw, key)


def decode_inline_payload(share_id: str) -> bytes | None:
    """Return the v2 blob embedded in a share id, or ``None``.

    Some links carry the whole encrypted buffer in the id position instead of
    a server-side id.
    """
    if len(share_id) < INLINE_PAYLOAD_MIN_LENGTH:
        return None
    try:
        data = crypto.b64url_decode(share_id)
    except ValueError:
        return None
    return data if is_v2_format(data) else None
