from __future__ import annotations

import enum
from dataclasses import dataclass

from .models import ManifestList

_SIZE_SUFFIXES = ("bytes", "KB", "MB", "GB", "TB")
_ONE_PETABYTE = 1024 ** 5


class ProgressKind(enum.Enum):
    FILE = "file"
    BYTE = "byte"


@dataclass
class Progress:
    kind: ProgressKind
    maximum: int
    current: int = 0

    @classmethod
    def for_manifest(cls, manifest: ManifestList) -> "Progress":
        if manifest.total_expected_bytes:
            return cls(ProgressKind.BYTE, manifest.total_expected_bytes)
        return cls(ProgressKind.FILE, len(manifest))

    def advance(self, amount: int = 1) -> None:
        self.current = min(self.maximum, self.current + max(0, amount))

    def on_bytes(self, amount: int) -> None:
        if self.kind is ProgressKind.BYTE:
            self.advance(amount)

    def on_record(self) -> None:
        if self.kind is ProgressKind.FILE:
            self.advance(1)

    @property
    def per_mille(self) -> int:
        if self.maximum <= 0:
            return 0
        return (self.current * 1000) // self.maximum

    @property
    def percent_text(self) -> str:
        value = self.per_mille
        return f"{value // 10}.{value % 10}%"

    @property
    def done(self) -> bool:
        return self.maximum > 0 and self.current >= self.maximum


def size_to_human_readable(size: int) -> str:
    """Format ``size`` as a suffix such as `` (133.7 MB)``."""
    if size >= _ONE_PETABYTE:
        return " (too large)"

    # Two implied decimal places.
    scaled = size * 100
    suffix = 0
    while suffix < len(_SIZE_SUFFIXES) - 1 and scaled >= 1024 * 100:
        scaled //= 1024
        suffix += 1

    if suffix == 0 or scaled // 10 % 10 == 0:
        return f" ({scaled // 100} {_SIZE_SUFFIXES[suffix]})"
    return f" ({scaled // 100}.{scaled // 10 % 10} {_SIZE_SUFFIXES[suffix]})"
