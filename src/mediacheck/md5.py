from __future__ import annotations

import struct
from typing import BinaryIO, Callable, Optional, Tuple

from .models import BLOCK_SIZE, DIGEST_SIZE, HashState

DEFAULT_CHUNK_SIZE = 1024 * 1024

_MASK = 0xFFFFFFFF
_INITIAL_STATE = (0x67452301, 0xEFCDAB89, 0x98BADCFE, 0x10325476)
_LENGTH_OFFSET = BLOCK_SIZE - 8

# Additive constant for each of the 64 steps, in step order.
_K = (
    0xD76AA478, 0xE8C7B756, 0x242070DB, 0xC1BDCEEE, 0xF57C0FAF, 0x4787C62A,
    0xA8304613, 0xFD469501, 0x698098D8, 0x8B44F7AF, 0xFFFF5BB1, 0x895CD7BE,
    0x6B901122, 0xFD987193, 0xA679438E, 0x49B40821, 0xF61E2562, 0xC040B340,
    0x265E5A51, 0xE9B6C7AA, 0xD62F105D, 0x02441453, 0xD8A1E681, 0xE7D3FBC8,
    0x21E1CDE6, 0xC33707D6, 0xF4D50D87, 0x455A14ED, 0xA9E3E905, 0xFCEFA3F8,
    0x676F02D9, 0x8D2A4C8A, 0xFFFA3942, 0x8771F681, 0x6D9D6122, 0xFDE5380C,
    0xA4BEEA44, 0x4BDECFA9, 0xF6BB4B60, 0xBEBFBC70, 0x289B7EC6, 0xEAA127FA,
    0xD4EF3085, 0x04881D05, 0xD9D4D039, 0xE6DB99E5, 0x1FA27CF8, 0xC4AC5665,
    0xF4292244, 0x432AFF97, 0xAB9423A7, 0xFC93A039, 0x655B59C3, 0x8F0CCC92,
    0xFFEFF47D, 0x85845DD1, 0x6FA87E4F, 0xFE2CE6E0, 0xA3014314, 0x4E0811A1,
    0xF7537E82, 0xBD3AF235, 0x2AD7D2BB, 0xEB86D391,
)

_SHIFTS = (
    (7, 12, 17, 22) * 4
    + (5, 9, 14, 20) * 4
    + (4, 11, 16, 23) * 4
    + (6, 10, 15, 21) * 4
)

# Message word consumed by each step.
_WORD_INDEX = tuple(
    [i for i in range(16)]
    + [(5 * i + 1) % 16 for i in range(16)]
    + [(3 * i + 5) % 16 for i in range(16)]
    + [(7 * i) % 16 for i in range(16)]
)


class HashStateError(RuntimeError):
    pass


def init() -> HashState:
    return HashState(chaining_state=list(_INITIAL_STATE))


def update(state: HashState, data: bytes) -> None:
    """Absorb ``data``, buffering any trailing partial block for the next call."""
    if state.finalized:
        raise HashStateError("hash state already finalized")
    view = memoryview(data).cast("B")
    length = len(view)
    if not length:
        return
    pending = state.byte_count & (BLOCK_SIZE - 1)
    state.byte_count += length

    pos = 0
    if pending:
        room = BLOCK_SIZE - pending
        if length < room:
            state.block_buffer[pending:pending + length] = view
            return
        state.block_buffer[pending:] = view[:room]
        _transform(state.chaining_state, state.block_buffer, 0)
        pos = room

    while length - pos >= BLOCK_SIZE:
        _transform(state.chaining_state, view, pos)
        pos += BLOCK_SIZE

    remaining = length - pos
    if remaining:
        state.block_buffer[:remaining] = view[pos:]


def finalize(state: HashState) -> bytes:
    if state.finalized:
        raise HashStateError("hash state already finalized")
    count = state.byte_count & (BLOCK_SIZE - 1)
    bit_count = (state.byte_count << 3) & 0xFFFFFFFFFFFFFFFF
    block = state.block_buffer

    block[count] = 0x80
    count += 1
    if count > _LENGTH_OFFSET:
        # No room left for the length field: flush a zero-padded block first.
        block[count:] = bytes(BLOCK_SIZE - count)
        _transform(state.chaining_state, block, 0)
        block[:_LENGTH_OFFSET] = bytes(_LENGTH_OFFSET)
    else:
        block[count:_LENGTH_OFFSET] = bytes(_LENGTH_OFFSET - count)

    struct.pack_into("<Q", block, _LENGTH_OFFSET, bit_count)
    _transform(state.chaining_state, block, 0)

    state.finalized = True
    digest = struct.pack("<4I", *state.chaining_state)
    block[:] = bytes(BLOCK_SIZE)
    return digest


def md5_digest(data: bytes) -> bytes:
    state = init()
    update(state, data)
    return finalize(state)


def hash_stream(
    reader: BinaryIO,
    chunk_size: int = DEFAULT_CHUNK_SIZE,
    on_chunk: Optional[Callable[[int], None]] = None,
) -> Tuple[bytes, int]:
    """Hash everything ``reader`` yields; returns the digest and the byte count."""
    if chunk_size <= 0:
        raise ValueError("chunk_size must be positive")
    state = init()
    total = 0
    while True:
        chunk = reader.read(chunk_size)
        if not chunk:
            break
        update(state, chunk)
        total += len(chunk)
        if on_chunk is not None:
            on_chunk(len(chunk))
    return finalize(state), total


class Md5:
    digest_size = DIGEST_SIZE
    block_size = BLOCK_SIZE
    name = "md5"

    def __init__(self, data: bytes = b"") -> None:
        self._state = init()
        self._digest: Optional[bytes] = None
        if data:
            self.update(data)

    def update(self, data: bytes) -> None:
        if self._digest is not None:
            raise HashStateError("digest already computed")
        update(self._state, data)

    def digest(self) -> bytes:
        if self._digest is None:
            self._digest = finalize(self._state)
        return self._digest

    def hexdigest(self) -> str:
        return self.digest().hex()


def _rotl(value: int, shift: int) -> int:
    return ((value << shift) | (value >> (32 - shift))) & _MASK


def _transform(chaining: list, data, offset: int) -> None:
    x = struct.unpack_from("<16I", data, offset)
    a, b, c, d = chaining

    for step in range(64):
        if step < 16:
            f = d ^ (b & (c ^ d))
        elif step < 32:
            f = c ^ (d & (b ^ c))
        elif step < 48:
            f = b ^ c ^ d
        else:
            f = c ^ (b | (~d & _MASK))
        f = (a + f + _K[step] + x[_WORD_INDEX[step]]) & _MASK
        a, d, c = d, c, b
        b = (b + _rotl(f, _SHIFTS[step])) & _MASK

    chaining[0] = (chaining[0] + a) & _MASK
    chaining[1] = (chaining[1] + b) & _MASK
    chaining[2] = (chaining[2] + c) & _MASK
    chaining[3] = (chaining[3] + d) & _MASK
