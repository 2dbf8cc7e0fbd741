from __future__ import annotations

import errno
import logging
import os
from pathlib import Path
from typing import BinaryIO, List

logger = logging.getLogger(__name__)

DISPLAY_PATH_MAX = 80
_BMP_MAX = 0xFFFF


class ReaderOpenError(OSError):
    pass


class PathDecodeError(ValueError):
    pass


def decode_utf8_path(raw: bytes) -> str:
    """Decode a manifest path; the firmware path type only holds BMP characters."""
    try:
        text = raw.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise PathDecodeError(f"invalid UTF-8 sequence at byte {exc.start}") from exc
    for char in text:
        if ord(char) > _BMP_MAX:
            raise PathDecodeError(f"character U+{ord(char):X} cannot be represented")
    return text


def sanitize_path(raw: bytes) -> str:
    return "".join(chr(b) if 0x20 <= b < 0x80 else "?" for b in raw)


def truncate_display(path: str, limit: int = DISPLAY_PATH_MAX) -> str:
    if limit > 0 and len(path) > limit:
        return path[:limit]
    return path


def split_native(path: str) -> List[str]:
    """Split a manifest path into segments, dropping empty and ``.`` parts."""
    segments: List[str] = []
    for part in path.replace("/", "\\").split("\\"):
        if part in ("", "."):
            continue
        if part == "..":
            if not segments:
                raise ReaderOpenError(errno.EACCES, "path escapes the volume root", path)
            segments.pop()
            continue
        segments.append(part)
    return segments


def fix_path_case(root: str | Path, path: str) -> str:
    """Return ``path`` with each segment spelled as it is on disk.

    Walks from the root one segment at a time; raises ``FileNotFoundError``
    when a segment has no case-insensitive match.
    """
    current = Path(root)
    fixed: List[str] = []
    for segment in split_native(path):
        try:
            names = os.listdir(current)
        except NotADirectoryError:
            raise FileNotFoundError(errno.ENOENT, "not a directory", str(current)) from None
        if segment in names:
            match = segment
        else:
            wanted = segment.casefold()
            match = next((name for name in sorted(names) if name.casefold() == wanted), None)
            if match is None:
                raise FileNotFoundError(errno.ENOENT, "no such file", str(current / segment))
        fixed.append(match)
        current = current / match
    return "\\" + "\\".join(fixed)


class LocalVolume:
    """Opens manifest paths relative to a directory on the host filesystem."""

    def __init__(self, root: str | Path, *, fix_case: bool = False) -> None:
        self.root = Path(root)
        self.fix_case = fix_case

    def resolve(self, path: str) -> Path:
        if self.fix_case:
            path = fix_path_case(self.root, path)
        return self.root.joinpath(*split_native(path))

    def open(self, path: str) -> BinaryIO:
        target = self.resolve(path)
        if target.is_dir():
            raise IsADirectoryError(errno.EISDIR, "is a directory", str(target))
        logger.debug("opening %s", target)
        return target.open("rb")

    __call__ = open
