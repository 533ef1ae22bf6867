"""Tests for the v1/v2 share payload container."""

import json
import os
import zlib

import pytest
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from excalidraw_agent.crypto import b64url_encode, encrypt, generate_key, import_key
from excalidraw_agent.errors import CryptoError, ResolveError, SharePayloadError
from excalidraw_agent.share_payload import (
    concat_buffers,
    decode_inline_payload,
    decode_share_payload,
    decompress,
    encode_share_payload,
    is_v2_format,
    split_buffers,
)

SCENE = {"type": "excalidraw", "elements": [{"id": "a", "type": "rectangle"}], "appState": {}}


def make_v2_blob(key: str, *, compress: bool = True, nested: bool = True) -> bytes:
    """Build a v2 container the way the Excalidraw web app does."""
    scene_json = json.dumps(SCENE).encode()
    contents = concat_buffers(b'{"version":1}', scene_json) if nested else scene_json
    if compress:
        contents = zlib.compress(contents)
    nonce = os.urandom(12)
    ciphertext = AESGCM(import_key(key)).encrypt(nonce, contents, None)
    metadata = json.dumps({"version": 2, "compression": "pako@1" if compress else ""}).encode()
    return concat_buffers(metadata, nonce, ciphertext)


class TestBuffers:
    """Tests for the concatenated-buffer framing."""

    def test_split_inverts_concat(self) -> None:
        chunks = [b"one", b"", b"three"]

        assert split_buffers(concat_buffers(*chunks)) == chunks

    def test_header_is_big_endian(self) -> None:
        data = concat_buffers(b"ab")

        assert data[:8] == b"\x00\x00\x00\x01\x00\x00\x00\x02"

    def test_truncated_header(self) -> None:
        with pytest.raises(SharePayloadError):
            split_buffers(b"\x00\x00")

    def test_chunk_exceeding_buffer(self) -> None:
        data = concat_buffers(b"abcdef")[:-2]

        with pytest.raises(SharePayloadError):
            split_buffers(data)

    def test_future_version_rejected(self) -> None:
        with pytest.raises(SharePayloadError):
            split_buffers(b"\x00\x00\x00\x02")

    def test_is_v2_format(self) -> None:
        assert is_v2_format(concat_buffers(b"x")) is True
        assert is_v2_format(b"\x07" * 16) is False
        assert is_v2_format(b"") is False


class TestDecode:
    """Tests for decode_share_payload."""

    def test_v1(self, key: str) -> None:
        blob = encode_share_payload(SCENE, key)

        assert decode_share_payload(blob, key) == SCENE

    def test_v2_compressed_nested(self, key: str) -> None:
        assert decode_share_payload(make_v2_blob(key), key) == SCENE

    def test_v2_uncompressed_plain_scene(self, key: str) -> None:
        blob = make_v2_blob(key, compress=False, nested=False)

        assert decode_share_payload(blob, key) == SCENE

    def test_v2_wrong_key(self, key: str) -> None:
        with pytest.raises(CryptoError):
            decode_share_payload(make_v2_blob(key), generate_key())

    def test_v2_missing_buffers(self, key: str) -> None:
        with pytest.raises(SharePayloadError):
            decode_share_payload(concat_buffers(b"{}", os.urandom(12)), key)

    def test_v2_bad_iv_length(self, key: str) -> None:
        blob = concat_buffers(b"{}", os.urandom(8), b"ciphertext")

        with pytest.raises(SharePayloadError):
            decode_share_payload(blob, key)

    def test_v1_invalid_json(self, key: str) -> None:
        blob = encrypt(b"not json", key)

        with pytest.raises(SharePayloadError) as exc_info:
            decode_share_payload(blob, key)

        assert isinstance(exc_info.value, ResolveError)
        assert exc_info.value.kind == "parse"

    def test_v1_scene_must_be_object(self, key: str) -> None:
        with pytest.raises(SharePayloadError):
            decode_share_payload(encrypt(b"[1, 2]", key), key)

    def test_decompress_rejects_garbage(self) -> None:
        with pytest.raises(SharePayloadError):
            decompress(b"definitely not zlib")


class TestInlinePayload:
    """Tests for share ids that carry the whole blob."""

    def test_detects_v2_blob(self, key: str) -> None:
        blob = make_v2_blob(key)

        assert decode_inline_payload(b64url_encode(blob)) == blob

    def test_regular_id_is_not_inline(self) -> None:
        assert decode_inline_payload("abc123") is None
        assert decode_inline_payload("RandomShareIdentifier42") is None
