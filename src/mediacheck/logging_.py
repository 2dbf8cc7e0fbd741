from __future__ import annotations

import json
import logging
import uuid
from datetime import datetime, tzinfo
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Dict, Optional
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

TEXT_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s"
TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"
_LOCAL_ZONE_NAMES = {"", "local", "system", "default"}


class JsonFormatter(logging.Formatter):
    """One JSON object per line.

    Verifier events arrive either as a JSON message (``verify_start``) or as
    plain text with ``event``/``meta`` extras (``record_failed``); both end
    up under the same ``event`` and ``meta`` keys.
    """

    def __init__(
        self,
        run_id: str,
        zone: Optional[tzinfo] = None,
        include_run_id: bool = True,
    ) -> None:
        super().__init__()
        self._run_id = run_id if include_run_id else None
        self._zone = zone

    def format(self, record: logging.LogRecord) -> str:
        line: Dict[str, Any] = {
            "ts": self._timestamp(record.created),
            "level": record.levelname,
            "component": record.name,
        }
        if self._run_id is not None:
            line["run_id"] = self._run_id
        line.update(_event_fields(record))
        if record.exc_info:
            line["error"] = self.formatException(record.exc_info)
        return json.dumps(line, separators=(",", ":"), ensure_ascii=False)

    def _timestamp(self, created: float) -> str:
        # astimezone(None) is the host's local zone.
        stamp = datetime.fromtimestamp(created).astimezone(self._zone)
        return stamp.strftime(TIMESTAMP_FORMAT)


def _event_fields(record: logging.LogRecord) -> Dict[str, Any]:
    message = record.getMessage()
    body = _json_object(message)
    if body is not None:
        fields: Dict[str, Any] = {"meta": body}
        if body.get("event"):
            fields["event"] = body["event"]
        return fields

    fields = {"event": getattr(record, "event", None) or message}
    meta = getattr(record, "meta", None)
    if meta is not None:
        fields["meta"] = meta
    return fields


def _json_object(message: str) -> Optional[Dict[str, Any]]:
    if not message.startswith("{"):
        return None
    try:
        value = json.loads(message)
    except ValueError:
        return None
    return value if isinstance(value, dict) else None


def zone_for(name: Optional[str]) -> Optional[tzinfo]:
    """Named IANA zone, or None for the host's local time."""
    if name is None or str(name).lower() in _LOCAL_ZONE_NAMES:
        return None
    try:
        return ZoneInfo(str(name))
    except (ZoneInfoNotFoundError, ValueError):
        logging.getLogger(__name__).warning("unknown timezone %r, using local time", name)
        return None


def setup_logging(
    level: str = "INFO",
    *,
    log_dir: Optional[Path] = None,
    log_file: str = "mediacheck.log",
    max_mb: int = 20,
    backup_count: int = 10,
    use_json: bool = False,
    to_console: bool = True,
    timezone_name: str = "local",
    include_run_id: bool = True,
    run_id: Optional[str] = None,
) -> str:
    run_id = run_id or uuid.uuid4().hex
    root = logging.getLogger()
    root.setLevel(getattr(logging, level.upper(), logging.INFO))
    for handler in list(root.handlers):
        root.removeHandler(handler)

    if use_json:
        formatter: logging.Formatter = JsonFormatter(
            run_id, zone=zone_for(timezone_name), include_run_id=include_run_id
        )
    else:
        formatter = logging.Formatter(TEXT_FORMAT)

    handlers = []
    if log_dir:
        log_dir.mkdir(parents=True, exist_ok=True)
        handlers.append(
            RotatingFileHandler(
                log_dir / log_file,
                maxBytes=max(1, int(max_mb)) * 1024 * 1024,
                backupCount=max(1, int(backup_count)),
            )
        )
    if to_console or not log_dir:
        # stderr, so the verification report on stdout stays clean.
        handlers.append(logging.StreamHandler())

    for handler in handlers:
        handler.setFormatter(formatter)
        root.addHandler(handler)
    return run_id
