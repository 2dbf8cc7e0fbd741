from __future__ import annotations

import io
import logging
import sys
from pathlib import Path

import pytest

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from mediacheck.main import ConsoleReporter, format_summary, run
from mediacheck.models import RecordResult, RunSummary, VerificationOutcome

ABC = "900150983cd24fb0d6963f7d28e17f72"


@pytest.fixture(autouse=True)
def _restore_root_logger():
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    for handler in list(root.handlers):
        root.removeHandler(handler)
    for handler in handlers:
        root.addHandler(handler)
    root.setLevel(level)


def _media(root: Path, manifest: str) -> None:
    (root / "boot").mkdir()
    (root / "boot" / "abc.bin").write_bytes(b"abc")
    (root / "md5sum.txt").write_text(manifest)


def test_run_all_matched(tmp_path: Path) -> None:
    _media(tmp_path, f"# TotalBytes: 0x3\n{ABC}  ./boot/abc.bin\n")
    out = io.StringIO()
    assert run(["--root", str(tmp_path)], stdout=out) == 0
    assert "1/1 file processed [0 failed]" in out.getvalue()


def test_run_with_failures(tmp_path: Path) -> None:
    _media(tmp_path, f"{ABC}  ./boot/abc.bin\n{ABC}  ./boot/missing.bin\n")
    out = io.StringIO()
    assert run(["--root", str(tmp_path), "--chunk-kb", "1"], stdout=out) == 1
    text = out.getvalue()
    assert "[FAIL] File '.\\boot\\missing.bin': Not Found" in text
    assert "2/2 files processed [1 failed]" in text


def test_run_fix_case(tmp_path: Path) -> None:
    _media(tmp_path, f"{ABC}  ./BOOT/ABC.BIN\n")
    out = io.StringIO()
    assert run(["--root", str(tmp_path), "--fix-case"], stdout=out) == 0


def test_run_manifest_errors(tmp_path: Path) -> None:
    out = io.StringIO()
    assert run(["--root", str(tmp_path)], stdout=out) == 2
    (tmp_path / "md5sum.txt").write_text(f"{ABC}x ./boot/abc.bin\n")
    assert run(["--root", str(tmp_path)], stdout=out) == 2
    assert "[ERROR]" in out.getvalue()


def test_run_config_errors_exit_like_manifest_errors(tmp_path: Path) -> None:
    _media(tmp_path, f"{ABC}  ./boot/abc.bin\n")
    out = io.StringIO()
    missing = tmp_path / "missing.yaml"
    assert run(["--config", str(missing), "--root", str(tmp_path)], stdout=out) == 2
    broken = tmp_path / "broken.yaml"
    broken.write_text("verify: [unclosed\n")
    assert run(["--config", str(broken), "--root", str(tmp_path)], stdout=out) == 2
    assert out.getvalue().count("[ERROR] config:") == 2


def test_console_reporter_truncates_paths() -> None:
    out = io.StringIO()
    reporter = ConsoleReporter(out, display_path_max=10)
    reporter(RecordResult(0, "a" * 30, VerificationOutcome.MISMATCHED))
    assert out.getvalue() == f"[FAIL] File '{'a' * 10}': MD5 Checksum Error\n"
    assert reporter.reported == 1


def test_format_summary() -> None:
    summary = RunSummary(processed=3, total=5, failed=1)
    assert format_summary(summary) == "3/5 files processed [1 failed]"
