from __future__ import annotations

import json
import time
from collections import Counter
from typing import Any, Dict

from .models import RunSummary, VerificationOutcome


class Observability:
    def __init__(self) -> None:
        self._counters: Counter[str] = Counter()
        self._gauges: Dict[str, float] = {}
        self._started = time.monotonic()

    def inc(self, name: str, count: int = 1) -> None:
        if not name:
            return
        self._counters[name] += count

    def set_gauge(self, name: str, value: float) -> None:
        if not name:
            return
        self._gauges[name] = value

    def record_outcome(self, outcome: VerificationOutcome) -> None:
        self.inc("records.processed_total")
        self.inc(f"outcome.{outcome.value}_total")
        if outcome.failed:
            self.inc("records.failed_total")

    def record_bytes(self, count: int) -> None:
        self.inc("hash.bytes_total", count)

    def counter(self, name: str) -> int:
        return self._counters.get(name, 0)

    def snapshot(self) -> Dict[str, Any]:
        elapsed = time.monotonic() - self._started
        return {
            "counters": dict(self._counters),
            "gauges": dict(self._gauges),
            "elapsed_sec": round(elapsed, 3),
        }

    def summary_json(self, summary: RunSummary) -> str:
        payload = self.snapshot()
        payload.update(
            {
                "event": "verify_done",
                "processed": summary.processed,
                "total": summary.total,
                "failed": summary.failed,
                "cancelled": summary.cancelled,
                "terminal": summary.terminal_outcome.value,
                "bytes_hashed": summary.bytes_hashed,
                "elapsed_human": _format_duration(int(payload["elapsed_sec"])),
            }
        )
        return json.dumps(payload, separators=(",", ":"))


def _format_duration(seconds: int) -> str:
    if seconds < 60:
        return f"{seconds}s"
    minutes, sec = divmod(seconds, 60)
    if minutes < 60:
        return f"{minutes}m {sec:02d}s"
    hours, minutes = divmod(minutes, 60)
    return f"{hours}h {minutes:02d}m"
