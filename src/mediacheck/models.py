from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Iterator, List, Optional

DIGEST_SIZE = 16
BLOCK_SIZE = 64
DIGEST_HEX_LENGTH = DIGEST_SIZE * 2
NATIVE_SEPARATOR = b"\\"

EXIT_OK = 0
EXIT_FAILED = 1
EXIT_MANIFEST_ERROR = 2


@dataclass(frozen=True)
class ManifestRecord:
    """One manifest entry, stored as offsets into the parser's arena."""

    buffer: bytearray = field(repr=False, compare=False)
    digest_start: int
    path_start: int
    path_length: int

    @property
    def digest_hex(self) -> str:
        end = self.digest_start + DIGEST_HEX_LENGTH
        return bytes(self.buffer[self.digest_start:end]).decode("ascii")

    @property
    def path(self) -> bytes:
        end = self.path_start + self.path_length
        return bytes(self.buffer[self.path_start:end])


@dataclass
class ManifestList:
    records: List[ManifestRecord] = field(default_factory=list)
    total_expected_bytes: int = 0
    buffer: Optional[bytearray] = field(default=None, repr=False)

    def __len__(self) -> int:
        return len(self.records)

    def __iter__(self) -> Iterator[ManifestRecord]:
        return iter(self.records)

    @property
    def released(self) -> bool:
        return self.buffer is None

    def release(self) -> None:
        self.records = []
        self.buffer = None


@dataclass
class HashState:
    block_buffer: bytearray = field(default_factory=lambda: bytearray(BLOCK_SIZE))
    chaining_state: List[int] = field(default_factory=list)
    byte_count: int = 0
    finalized: bool = False


class VerificationOutcome(enum.Enum):
    MATCHED = "matched"
    MISMATCHED = "mismatched"
    FILE_NOT_FOUND = "file_not_found"
    FILE_UNREADABLE = "file_unreadable"
    PATH_UNDECODABLE = "path_undecodable"
    CANCELLED = "cancelled"

    @property
    def failed(self) -> bool:
        return self not in (VerificationOutcome.MATCHED, VerificationOutcome.CANCELLED)


class RunTerminal(enum.Enum):
    COMPLETED = "completed"
    CANCELLED = "cancelled"


@dataclass
class RecordResult:
    index: int
    display_path: str
    outcome: VerificationOutcome
    bytes_hashed: int = 0
    detail: Optional[str] = None


@dataclass
class RunSummary:
    processed: int = 0
    total: int = 0
    failed: int = 0
    terminal_outcome: RunTerminal = RunTerminal.COMPLETED
    results: List[RecordResult] = field(default_factory=list)
    bytes_hashed: int = 0

    @property
    def cancelled(self) -> bool:
        return self.terminal_outcome is RunTerminal.CANCELLED

    @property
    def succeeded(self) -> bool:
        return not self.cancelled and self.failed == 0

    @property
    def outcomes(self) -> List[VerificationOutcome]:
        return [result.outcome for result in self.results]

    def exit_code(self) -> int:
        return EXIT_OK if self.succeeded else EXIT_FAILED
