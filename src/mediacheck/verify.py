from __future__ import annotations

import contextlib
import enum
import json
import logging
from typing import BinaryIO, Callable, Optional

from .md5 import DEFAULT_CHUNK_SIZE, hash_stream
from .models import (
    ManifestList,
    ManifestRecord,
    RecordResult,
    RunSummary,
    RunTerminal,
    VerificationOutcome,
)
from .observability import Observability
from .utils.hashing import digest_from_hex, digests_equal
from .volume import decode_utf8_path, sanitize_path

logger = logging.getLogger(__name__)

ReaderFactory = Callable[[str], BinaryIO]


class VerifierState(enum.Enum):
    IDLE = "idle"
    RUNNING = "running"
    DONE = "done"


class VerifierStateError(RuntimeError):
    pass


def _never() -> bool:
    return False


class Verifier:
    """Drive every manifest record through the hash engine, in order.

    Per-record problems become outcomes in the returned summary; only
    errors outside the per-record taxonomy propagate. ``should_cancel`` is
    polled before each record, never while a file is being hashed.

    ``decode_path`` turns raw path bytes into a path for the reader factory.
    It may raise any ``ValueError``, including ``UnicodeDecodeError`` and
    ``PathDecodeError``; the record is then reported as undecodable.
    """

    def __init__(
        self,
        reader_factory: ReaderFactory,
        manifest: ManifestList,
        *,
        decode_path: Callable[[bytes], str] = decode_utf8_path,
        report: Optional[Callable[[RecordResult], None]] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
        on_progress: Optional[Callable[[int], None]] = None,
        on_record: Optional[Callable[[RecordResult], None]] = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        metrics: Optional[Observability] = None,
        release_manifest: bool = False,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be positive")
        self._reader_factory = reader_factory
        self._manifest = manifest
        self._decode_path = decode_path
        self._report = report
        self._should_cancel = should_cancel or _never
        self._on_progress = on_progress
        self._on_record = on_record
        self._chunk_size = chunk_size
        self._metrics = metrics
        self._release_manifest = release_manifest
        self.state = VerifierState.IDLE

    def run(self) -> RunSummary:
        if self.state is not VerifierState.IDLE:
            raise VerifierStateError(f"verifier already {self.state.value}")
        self.state = VerifierState.RUNNING

        summary = RunSummary(total=len(self._manifest))
        if self._metrics is not None:
            self._metrics.set_gauge("manifest.records", summary.total)
            self._metrics.set_gauge(
                "manifest.total_expected_bytes", self._manifest.total_expected_bytes
            )
        logger.info(
            json.dumps(
                {
                    "event": "verify_start",
                    "records": summary.total,
                    "total_bytes": self._manifest.total_expected_bytes,
                },
                separators=(",", ":"),
            )
        )
        try:
            for index, record in enumerate(self._manifest.records):
                if self._should_cancel():
                    logger.info("verification cancelled after %d records", index)
                    summary.terminal_outcome = RunTerminal.CANCELLED
                    break
                result = self._verify_record(index, record)
                summary.results.append(result)
                summary.processed += 1
                summary.bytes_hashed += result.bytes_hashed
                if self._metrics is not None:
                    self._metrics.record_outcome(result.outcome)
                if result.outcome.failed:
                    summary.failed += 1
                    logger.warning(
                        "record %d failed: %s (%s)",
                        index,
                        result.outcome.value,
                        result.display_path,
                        extra={
                            "event": "record_failed",
                            "meta": {
                                "index": index,
                                "outcome": result.outcome.value,
                                "path": result.display_path,
                                "detail": result.detail,
                            },
                        },
                    )
                    if self._report is not None:
                        self._report(result)
                if self._on_record is not None:
                    self._on_record(result)
            else:
                summary.terminal_outcome = RunTerminal.COMPLETED
        finally:
            self.state = VerifierState.DONE
            if self._release_manifest:
                self._manifest.release()

        if self._metrics is not None:
            logger.info(self._metrics.summary_json(summary))
        return summary

    def _verify_record(self, index: int, record: ManifestRecord) -> RecordResult:
        expected = digest_from_hex(record.digest_hex)
        raw_path = record.path

        try:
            path = self._decode_path(raw_path)
        except ValueError as exc:
            return RecordResult(
                index,
                sanitize_path(raw_path),
                VerificationOutcome.PATH_UNDECODABLE,
                detail=str(exc),
            )

        try:
            reader = self._reader_factory(path)
        except FileNotFoundError as exc:
            return RecordResult(
                index, path, VerificationOutcome.FILE_NOT_FOUND, detail=str(exc)
            )
        except OSError as exc:
            return RecordResult(
                index, path, VerificationOutcome.FILE_UNREADABLE, detail=str(exc)
            )

        hashed = 0

        def _on_chunk(size: int) -> None:
            nonlocal hashed
            hashed += size
            if self._metrics is not None:
                self._metrics.record_bytes(size)
            if self._on_progress is not None:
                self._on_progress(size)

        try:
            with contextlib.closing(reader):
                computed, _ = hash_stream(reader, self._chunk_size, _on_chunk)
        except OSError as exc:
            return RecordResult(
                index,
                path,
                VerificationOutcome.FILE_UNREADABLE,
                bytes_hashed=hashed,
                detail=str(exc),
            )

        if digests_equal(computed, expected):
            outcome = VerificationOutcome.MATCHED
        else:
            outcome = VerificationOutcome.MISMATCHED
        logger.debug("%s %s %s", computed.hex(), outcome.value, path)
        return RecordResult(index, path, outcome, bytes_hashed=hashed)


def verify(
    reader_factory: ReaderFactory,
    manifest: ManifestList,
    **options,
) -> RunSummary:
    return Verifier(reader_factory, manifest, **options).run()
