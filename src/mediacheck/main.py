from __future__ import annotations

import argparse
import logging
import signal
import sys
import threading
from pathlib import Path
from typing import List, Optional, TextIO

import yaml

from .config import load_config
from .logging_ import setup_logging
from .manifest import ManifestError, load_manifest
from .models import EXIT_MANIFEST_ERROR, RecordResult, RunSummary, VerificationOutcome
from .observability import Observability
from .progress import Progress, size_to_human_readable
from .verify import verify
from .volume import DISPLAY_PATH_MAX, LocalVolume, truncate_display

logger = logging.getLogger(__name__)

_OUTCOME_TEXT = {
    VerificationOutcome.MISMATCHED: "MD5 Checksum Error",
    VerificationOutcome.FILE_NOT_FOUND: "Not Found",
    VerificationOutcome.FILE_UNREADABLE: "Unreadable",
    VerificationOutcome.PATH_UNDECODABLE: "Invalid Path Encoding",
    VerificationOutcome.CANCELLED: "Cancelled",
}


class ConsoleReporter:
    def __init__(self, stream: Optional[TextIO] = None, display_path_max: int = DISPLAY_PATH_MAX) -> None:
        self._stream = stream or sys.stdout
        self._display_path_max = display_path_max
        self.reported = 0

    def __call__(self, result: RecordResult) -> None:
        path = truncate_display(result.display_path, self._display_path_max)
        reason = _OUTCOME_TEXT.get(result.outcome, result.outcome.value)
        self._stream.write(f"[FAIL] File '{path}': {reason}\n")
        self.reported += 1


def format_summary(summary: RunSummary) -> str:
    plural = "" if summary.total == 1 else "s"
    return f"{summary.processed}/{summary.total} file{plural} processed [{summary.failed} failed]"


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Verify media files against an md5sum.txt manifest")
    parser.add_argument("--config", default=None, help="path to config file")
    parser.add_argument("--root", default=None, help="volume root directory")
    parser.add_argument("--manifest", default=None, help="manifest file name, relative to the root")
    parser.add_argument("--chunk-kb", type=int, default=None, help="read size in KiB")
    parser.add_argument("--fix-case", action="store_true", help="match path segments case-insensitively")
    parser.add_argument("--log-level", default=None)
    return parser.parse_args(argv)


def run(argv: Optional[List[str]] = None, stdout: Optional[TextIO] = None) -> int:
    args = parse_args(argv)
    out = stdout or sys.stdout
    try:
        config = load_config(args.config)
    except (OSError, ValueError, yaml.YAMLError) as exc:
        out.write(f"[ERROR] config: {exc}\n")
        return EXIT_MANIFEST_ERROR
    if args.root:
        config.volume_root = Path(args.root)
    if args.manifest:
        config.manifest_name = args.manifest
    if args.chunk_kb is not None:
        if args.chunk_kb <= 0:
            raise SystemExit("--chunk-kb must be positive")
        config.verify.chunk_size_kb = args.chunk_kb
    if args.fix_case:
        config.verify.fix_path_case = True
    if args.log_level:
        config.log_level = args.log_level

    setup_logging(
        config.log_level,
        log_dir=config.logging.dir,
        log_file=config.logging.file_name,
        max_mb=config.logging.max_mb,
        backup_count=config.logging.backup_count,
        use_json=config.logging.json,
        to_console=config.logging.to_console,
        timezone_name=config.logging.timezone,
    )

    try:
        manifest = load_manifest(config.manifest_path, limits=config.limits.to_parse_limits())
    except ManifestError as exc:
        logger.error("manifest load failed: %s", exc)
        out.write(f"[ERROR] {exc}\n")
        return EXIT_MANIFEST_ERROR

    logger.info("TotalBytes = 0x%X", manifest.total_expected_bytes)
    progress = Progress.for_manifest(manifest)
    volume = LocalVolume(config.volume_root, fix_case=config.verify.fix_path_case)
    reporter = ConsoleReporter(out, config.verify.display_path_max)
    metrics = Observability()

    stop_event = threading.Event()

    def _handle_signal(signum, frame):
        logger.info("cancellation requested")
        stop_event.set()

    previous = signal.signal(signal.SIGINT, _handle_signal)
    try:
        summary = verify(
            volume.open,
            manifest,
            report=reporter,
            should_cancel=stop_event.is_set,
            on_progress=progress.on_bytes,
            on_record=lambda result: progress.on_record(),
            chunk_size=config.verify.chunk_size,
            metrics=metrics,
            release_manifest=True,
        )
    finally:
        signal.signal(signal.SIGINT, previous)

    out.write(format_summary(summary) + "\n")
    logger.info(
        "media verification %s%s",
        progress.percent_text,
        size_to_human_readable(summary.bytes_hashed),
    )
    return summary.exit_code()


def main() -> None:
    sys.exit(run())


if __name__ == "__main__":
    main()
