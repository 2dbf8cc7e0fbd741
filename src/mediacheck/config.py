from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from .manifest import MANIFEST_NAME, ParseLimits


@dataclass
class LimitsConfig:
    max_size_mb: int = 64
    max_lines: int = 100_000
    max_path: int = 512

    def to_parse_limits(self) -> ParseLimits:
        return ParseLimits(
            max_size=self.max_size_mb * 1024 * 1024,
            max_lines=self.max_lines,
            max_path=self.max_path,
        )


@dataclass
class VerifyConfig:
    chunk_size_kb: int = 1024
    fix_path_case: bool = False
    display_path_max: int = 80

    @property
    def chunk_size(self) -> int:
        return self.chunk_size_kb * 1024


@dataclass
class LoggingConfig:
    dir: Optional[Path] = None
    file_name: str = "mediacheck.log"
    max_mb: int = 20
    backup_count: int = 10
    json: bool = False
    to_console: bool = True
    timezone: str = "local"


@dataclass
class Config:
    volume_root: Path = field(default_factory=Path.cwd)
    manifest_name: str = MANIFEST_NAME
    log_level: str = "INFO"
    limits: LimitsConfig = field(default_factory=LimitsConfig)
    verify: VerifyConfig = field(default_factory=VerifyConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @property
    def manifest_path(self) -> Path:
        return self.volume_root / self.manifest_name


def load_config(path: Optional[str | Path] = None) -> Config:
    if path is None:
        return Config()
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(f"config file not found: {config_path}")

    raw = yaml.safe_load(config_path.read_text()) or {}
    if not isinstance(raw, dict):
        raise ValueError("config root must be a mapping")
    base_dir = config_path.resolve().parent

    limits_raw = _as_dict(raw.get("limits"))
    limits = LimitsConfig(
        max_size_mb=int(limits_raw.get("max_size_mb", 64)),
        max_lines=int(limits_raw.get("max_lines", 100_000)),
        max_path=int(limits_raw.get("max_path", 512)),
    )
    if limits.max_size_mb <= 0 or limits.max_lines <= 0 or limits.max_path <= 0:
        raise ValueError("limits must be positive")

    verify_raw = _as_dict(raw.get("verify"))
    verify = VerifyConfig(
        chunk_size_kb=int(verify_raw.get("chunk_size_kb", 1024)),
        fix_path_case=bool(verify_raw.get("fix_path_case", False)),
        display_path_max=int(verify_raw.get("display_path_max", 80)),
    )
    if verify.chunk_size_kb <= 0:
        raise ValueError("verify.chunk_size_kb must be positive")

    logging_raw = _as_dict(raw.get("logging"))
    log_dir = logging_raw.get("dir")
    logging_config = LoggingConfig(
        dir=_resolve_path(log_dir, base_dir) if log_dir else None,
        file_name=str(logging_raw.get("file_name", "mediacheck.log")),
        max_mb=int(logging_raw.get("max_mb", 20)),
        backup_count=int(logging_raw.get("backup_count", 10)),
        json=bool(logging_raw.get("json", False)),
        to_console=bool(logging_raw.get("to_console", True)),
        timezone=str(logging_raw.get("timezone", "local")),
    )

    return Config(
        volume_root=_resolve_path(raw.get("volume_root", "."), base_dir),
        manifest_name=str(raw.get("manifest_name", MANIFEST_NAME)),
        log_level=str(raw.get("log_level", "INFO")),
        limits=limits,
        verify=verify,
        logging=logging_config,
    )


def _resolve_path(value: str, base_dir: Path) -> Path:
    path = Path(value)
    if path.is_absolute():
        return path
    return base_dir / path


def _as_dict(value: Any) -> Dict[str, Any]:
    if isinstance(value, dict):
        return value
    return {}
