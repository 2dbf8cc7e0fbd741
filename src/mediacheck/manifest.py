from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from .models import DIGEST_HEX_LENGTH, ManifestList, ManifestRecord

logger = logging.getLogger(__name__)

MANIFEST_NAME = "md5sum.txt"
TOTAL_BYTES_DIRECTIVE = b"TotalBytes:"
# One digest plus a separator and a path byte.
MIN_MANIFEST_SIZE = DIGEST_HEX_LENGTH + 2

_LF = 0x0A
_TAB = 0x09
_SPACE = 0x20
_COMMENT = 0x23
_NON_ASCII = 0x80
_BLANKS = (_SPACE, _TAB)
_HEX_DIGITS = frozenset(b"0123456789abcdefABCDEF")

_CR_TO_LF = bytes.maketrans(b"\r", b"\n")
_TO_NATIVE_SEPARATOR = bytes.maketrans(b"/", b"\\")
_INVALID_BYTES = re.compile(rb"[\x00-\x08\x0b\x0c\x0e-\x1f]")
_PATH_CONTROL_BYTES = re.compile(rb"[\x00-\x1f]")


@dataclass(frozen=True)
class ParseLimits:
    max_size: int = 64 * 1024 * 1024
    max_lines: int = 100_000
    max_path: int = 512


DEFAULT_LIMITS = ParseLimits()


class ManifestError(ValueError):
    """Structural problem with a manifest; verification cannot start."""

    def __init__(
        self,
        message: str,
        *,
        fragment: bytes = b"",
        offset: Optional[int] = None,
    ) -> None:
        super().__init__(message)
        self.fragment = fragment
        self.offset = offset


class ManifestSizeError(ManifestError):
    pass


class ManifestLineCountError(ManifestError):
    pass


class ManifestDataError(ManifestError):
    pass


class ManifestRecordError(ManifestError):
    pass


class ManifestNotFoundError(ManifestError):
    pass


class ManifestReadError(ManifestError):
    pass


def parse(
    raw: bytes,
    max_records: Optional[int] = None,
    *,
    limits: Optional[ParseLimits] = None,
) -> ManifestList:
    """Parse the full contents of a manifest.

    Records reference the normalized copy of ``raw`` held by the returned
    list; nothing is copied per record. Raises a ``ManifestError`` subclass
    on any structural problem.
    """
    limits = limits or DEFAULT_LIMITS
    size = len(raw)
    if size < MIN_MANIFEST_SIZE:
        raise ManifestSizeError(f"manifest is too small ({size} bytes)")
    if size > limits.max_size:
        raise ManifestSizeError(f"manifest is too large ({size} bytes)")

    buf = bytearray(raw)
    if buf[-1] not in (_LF, 0x0D):
        buf.append(_LF)

    bad = _INVALID_BYTES.search(buf)
    if bad is not None:
        raise ManifestDataError(
            "manifest contains invalid data", offset=bad.start()
        )

    # CRLF is one logical break; a bare CR is one too.
    num_lines = buf.count(b"\n") + buf.count(b"\r") - buf.count(b"\r\n")
    buf[:] = buf.translate(_CR_TO_LF)
    ceiling = limits.max_lines if max_records is None else min(max_records, limits.max_lines)
    if num_lines > limits.max_lines:
        raise ManifestLineCountError(f"manifest contains too many lines ({num_lines})")

    records: List[Optional[ManifestRecord]] = [None] * num_lines
    count = 0
    total_bytes = 0
    end = len(buf)
    i = 0

    while i < end:
        # Whitespace, leftover control bytes and anything non-ASCII (BOMs)
        # may precede a record or a comment.
        while i < end and (buf[i] <= _SPACE or buf[i] >= _NON_ASCII):
            i += 1
        if i >= end:
            break

        if buf[i] == _COMMENT:
            eol = buf.index(_LF, i)
            value = _parse_total_bytes(buf, i + 1, eol)
            if value is not None:
                total_bytes = value
            i = eol + 1
            continue

        separator = i + DIGEST_HEX_LENGTH
        if separator >= end or buf[separator] not in _BLANKS:
            raise ManifestRecordError(
                f"Invalid data after '{_show(buf, i, separator)}'",
                fragment=_fragment(buf, i, separator),
                offset=i,
            )
        for pos in range(i, separator):
            byte = buf[pos]
            if 0x41 <= byte <= 0x46:
                buf[pos] = byte + 0x20
            elif byte not in _HEX_DIGITS:
                raise ManifestRecordError(
                    f"Invalid data in '{_show(buf, i, separator)}'",
                    fragment=_fragment(buf, i, separator),
                    offset=pos,
                )

        pos = separator
        while pos < end and buf[pos] <= _SPACE:
            if buf[pos] not in _BLANKS:
                raise ManifestRecordError(
                    f"Invalid data after '{_show(buf, i, separator)}'",
                    fragment=_fragment(buf, i, separator),
                    offset=pos,
                )
            pos += 1

        eol = buf.index(_LF, pos)
        path_length = eol - pos
        if (
            path_length == 0
            or path_length > limits.max_path
            or _PATH_CONTROL_BYTES.search(buf, pos, eol) is not None
        ):
            raise ManifestRecordError(
                f"Invalid data after '{_show(buf, i, separator)}'",
                fragment=_fragment(buf, i, separator),
                offset=pos,
            )
        buf[pos:eol] = buf[pos:eol].translate(_TO_NATIVE_SEPARATOR)

        if count >= ceiling:
            raise ManifestLineCountError(f"manifest contains more than {ceiling} records")
        records[count] = ManifestRecord(
            buffer=buf,
            digest_start=i,
            path_start=pos,
            path_length=path_length,
        )
        count += 1
        i = eol + 1

    del records[count:]
    logger.debug("parsed %d records from %d lines", count, num_lines)
    return ManifestList(records=records, total_expected_bytes=total_bytes, buffer=buf)


def load_manifest(path: str | Path, *, limits: Optional[ParseLimits] = None) -> ManifestList:
    limits = limits or DEFAULT_LIMITS
    manifest_path = Path(path)
    if not manifest_path.is_file():
        raise ManifestNotFoundError(f"unable to locate '{manifest_path}'")
    try:
        size = manifest_path.stat().st_size
        if size > limits.max_size:
            raise ManifestSizeError(f"manifest is too large ({size} bytes)")
        raw = manifest_path.read_bytes()
    except OSError as exc:
        raise ManifestReadError(f"unable to read '{manifest_path}': {exc}") from exc
    return parse(raw, limits=limits)


def format_manifest(
    entries: Iterable[Tuple[str, str]],
    total_bytes: Optional[int] = None,
) -> bytes:
    lines = []
    if total_bytes is not None:
        lines.append(f"# TotalBytes: 0x{total_bytes:x}")
    for digest_hex, path in entries:
        lines.append(f"{digest_hex.lower()}  {path.replace(chr(92), '/')}")
    return ("\n".join(lines) + "\n").encode("utf-8")


def _parse_total_bytes(buf: bytearray, start: int, end: int) -> Optional[int]:
    """Return the directive value, 0 for a malformed one, None for other comments."""
    pos = _skip_blanks(buf, start, end)
    if not _startswith(buf, pos, end, TOTAL_BYTES_DIRECTIVE):
        return None
    pos = _skip_blanks(buf, pos + len(TOTAL_BYTES_DIRECTIVE), end)

    value = 0
    digits = 0
    if _startswith(buf, pos, end, b"0x"):
        for byte in buf[pos + 2:end]:
            if byte in _BLANKS:
                continue
            if byte not in _HEX_DIGITS:
                digits = 0
                break
            digits += 1
            value = (value << 4) | int(chr(byte), 16)

    if digits == 0 or digits > 16:
        logger.warning("ignoring invalid TotalBytes value at offset %d", start)
        return 0
    return value


def _skip_blanks(buf: bytearray, pos: int, end: int) -> int:
    while pos < end and buf[pos] in _BLANKS:
        pos += 1
    return pos


def _startswith(buf: bytearray, pos: int, end: int, token: bytes) -> bool:
    return end - pos >= len(token) and buf[pos:pos + len(token)] == token


def _fragment(buf: bytearray, start: int, stop: int) -> bytes:
    return bytes(buf[start:min(stop, len(buf))]).split(b"\n", 1)[0]


def _show(buf: bytearray, start: int, stop: int) -> str:
    return _fragment(buf, start, stop).decode("ascii", errors="replace")
