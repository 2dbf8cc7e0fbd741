from __future__ import annotations

import hmac

from ..models import DIGEST_SIZE

_HEX_VALUES = {ord(c): int(c, 16) for c in "0123456789abcdef"}


def digest_from_hex(digest_hex: str) -> bytes:
    # Parser output is already lowercase hex of the right length.
    assert len(digest_hex) == DIGEST_SIZE * 2, digest_hex
    out = bytearray(DIGEST_SIZE)
    for i, char in enumerate(digest_hex.encode("ascii")):
        nibble = _HEX_VALUES.get(char)
        assert nibble is not None, digest_hex
        out[i // 2] = (out[i // 2] << 4) | nibble
    return bytes(out)


def digests_equal(computed: bytes, expected: bytes) -> bool:
    """Compare every byte, even past the first difference."""
    return hmac.compare_digest(computed, expected)
