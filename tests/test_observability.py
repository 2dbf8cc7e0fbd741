from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(PROJECT_ROOT / "src"))

from mediacheck.logging_ import JsonFormatter, setup_logging, zone_for
from mediacheck.models import RunSummary, VerificationOutcome
from mediacheck.observability import Observability


def _record(message: str, **extra) -> logging.LogRecord:
    record = logging.LogRecord("mediacheck.verify", logging.WARNING, __file__, 1, message, None, None)
    for key, value in extra.items():
        setattr(record, key, value)
    return record


def test_outcome_counters_and_summary() -> None:
    metrics = Observability()
    metrics.record_outcome(VerificationOutcome.MATCHED)
    metrics.record_outcome(VerificationOutcome.MISMATCHED)
    metrics.record_bytes(10)
    metrics.record_bytes(5)
    assert metrics.counter("records.failed_total") == 1
    assert metrics.counter("outcome.mismatched_total") == 1

    payload = json.loads(
        metrics.summary_json(RunSummary(processed=2, total=3, failed=1, bytes_hashed=15))
    )
    assert payload["event"] == "verify_done"
    assert payload["failed"] == 1
    assert payload["cancelled"] is False
    assert payload["terminal"] == "completed"
    assert payload["counters"]["hash.bytes_total"] == 15


def test_json_formatter_uses_event_extras() -> None:
    formatter = JsonFormatter("run-1")
    line = formatter.format(
        _record("record 2 failed", event="record_failed", meta={"index": 2})
    )
    payload = json.loads(line)
    assert payload["event"] == "record_failed"
    assert payload["meta"] == {"index": 2}
    assert payload["run_id"] == "run-1"
    assert payload["component"] == "mediacheck.verify"


def test_json_formatter_parses_json_messages() -> None:
    formatter = JsonFormatter("run-2", include_run_id=False)
    payload = json.loads(formatter.format(_record('{"event":"verify_start","records":4}')))
    assert payload["event"] == "verify_start"
    assert payload["meta"]["records"] == 4
    assert "run_id" not in payload


def test_zone_for_names() -> None:
    assert zone_for("local") is None
    assert zone_for(None) is None
    assert zone_for("Not/AZone") is None
    assert zone_for("UTC") is not None


def test_setup_logging_writes_json_file(tmp_path: Path) -> None:
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    try:
        run_id = setup_logging(
            "DEBUG", log_dir=tmp_path, use_json=True, to_console=False, timezone_name="UTC"
        )
        logging.getLogger("mediacheck.verify").info('{"event":"verify_start","records":1}')
        for handler in root.handlers:
            handler.flush()
    finally:
        for handler in list(root.handlers):
            root.removeHandler(handler)
            handler.close()
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)

    line = (tmp_path / "mediacheck.log").read_text().strip()
    payload = json.loads(line)
    assert payload["run_id"] == run_id
    assert payload["event"] == "verify_start"
