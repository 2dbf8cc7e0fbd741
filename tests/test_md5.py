from __future__ import annotations

import io
import sys
from pathlib import Path

import pytest
from cryptography.hazmat.primitives import hashes

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from mediacheck import md5
from mediacheck.md5 import HashStateError, Md5, hash_stream, md5_digest

VECTORS = [
    (b"", "d41d8cd98f00b204e9800998ecf8427e"),
    (b"a", "0cc175b9c0f1b6a831c399e269772661"),
    (b"abc", "900150983cd24fb0d6963f7d28e17f72"),
    (b"message digest", "f96b697d7cb7938d525a2f31aaf161d0"),
    (b"abcdefghijklmnopqrstuvwxyz", "c3fcd3d76192e4007dfb496cca67e13b"),
    (
        b"ABCDEFGHIJKLMNOPQRSTUVWXYZabcdefghijklmnopqrstuvwxyz0123456789",
        "d174ab98d277d9f5a5611c2c9f419d9f",
    ),
    (b"1234567890" * 8, "57edf4a22be3c955ac49da2e2107b67a"),
]


def _chunked(data: bytes, size: int) -> bytes:
    state = md5.init()
    for start in range(0, len(data), size):
        md5.update(state, data[start:start + size])
    return md5.finalize(state)


def _reference(data: bytes) -> bytes:
    digest = hashes.Hash(hashes.MD5())
    digest.update(data)
    return digest.finalize()


@pytest.mark.parametrize("data,expected", VECTORS)
def test_known_vectors_single_update(data: bytes, expected: str) -> None:
    assert md5_digest(data).hex() == expected


@pytest.mark.parametrize("data,expected", VECTORS)
def test_chunking_never_changes_digest(data: bytes, expected: str) -> None:
    for size in (1, 3, 7, 63, 64, 65):
        assert _chunked(data, size).hex() == expected


def test_padding_boundaries_match_reference() -> None:
    # 55/56 and 63/64 are where finalize needs one or two extra blocks.
    for length in (0, 1, 54, 55, 56, 57, 63, 64, 65, 119, 120, 127, 128, 129, 1000):
        data = bytes((i * 7 + 3) & 0xFF for i in range(length))
        assert md5_digest(data) == _reference(data), length
        assert _chunked(data, 13) == _reference(data), length


def test_block_straddling_updates() -> None:
    data = bytes(range(256)) * 5
    state = md5.init()
    md5.update(state, data[:10])
    md5.update(state, data[10:70])
    md5.update(state, data[70:200])
    md5.update(state, data[200:])
    assert md5.finalize(state) == _reference(data)


def test_empty_update_is_noop() -> None:
    state = md5.init()
    md5.update(state, b"")
    md5.update(state, b"abc")
    md5.update(state, b"")
    assert md5.finalize(state).hex() == "900150983cd24fb0d6963f7d28e17f72"


def test_state_cannot_be_reused_after_finalize() -> None:
    state = md5.init()
    md5.update(state, b"abc")
    md5.finalize(state)
    assert state.byte_count == 3
    with pytest.raises(HashStateError):
        md5.update(state, b"more")
    with pytest.raises(HashStateError):
        md5.finalize(state)


def test_md5_object_api() -> None:
    h = Md5(b"message ")
    h.update(b"digest")
    assert h.hexdigest() == "f96b697d7cb7938d525a2f31aaf161d0"
    assert h.digest() == bytes.fromhex("f96b697d7cb7938d525a2f31aaf161d0")
    assert h.digest_size == 16
    with pytest.raises(HashStateError):
        h.update(b"x")


def test_hash_stream_reports_chunks() -> None:
    data = b"1234567890" * 8
    seen = []
    digest, total = hash_stream(io.BytesIO(data), chunk_size=7, on_chunk=seen.append)
    assert digest.hex() == "57edf4a22be3c955ac49da2e2107b67a"
    assert total == 80
    assert sum(seen) == 80
    assert max(seen) == 7


def test_hash_stream_rejects_bad_chunk_size() -> None:
    with pytest.raises(ValueError):
        hash_stream(io.BytesIO(b"abc"), chunk_size=0)
