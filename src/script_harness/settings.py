from __future__ import annotations

import os
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_runtimes() -> Dict[str, str]:
    return {"kotlin": "kotlinc", "python": "python3", "node": "node", "bash": "bash"}


class Settings(BaseSettings):
    # ---- paths ----
    workspace_dir: Path = Path(tempfile.gettempdir()) / "script-harness"
    config_file: Path = Path("conf/harness.yaml")

    # ---- interpreters ----
    default_lang: str = "kotlin"
    runtimes: Dict[str, str] = Field(default_factory=_default_runtimes)

    # ---- per-session defaults ----
    default_timeout_s: float = Field(30.0, gt=0)
    line_limit: Optional[int] = Field(10_000, ge=0)  # None = unlimited
    kill_grace_s: float = Field(2.0, ge=0)
    max_script_bytes: int = Field(1_000_000, gt=0)
    stderr_tail_lines: int = Field(10, ge=0)
    read_chunk_bytes: int = Field(4096, gt=0)
    max_line_chars: Optional[int] = Field(65_536, ge=1)  # longer lines are cut; None = no cap

    # ---- subscribers ----
    subscriber_buffer: int = Field(1024, gt=1)
    backlog_lines: int = Field(256, ge=0)

    log_level: str = "INFO"

    # env prefix HARNESS_*
    model_config = SettingsConfigDict(env_prefix="HARNESS_", extra="ignore")


def _section(data: Dict[str, Any], key: str) -> Dict[str, Any]:
    value = data.get(key) or {}
    return value if isinstance(value, dict) else {}


def load_settings(config_file: Optional[Path] = None) -> Settings:
    # 0) base from HARNESS_* env
    s = Settings()

    # 1) YAML file: explicit arg > HARNESS_CONF > settings default
    path = Path(config_file or os.environ.get("HARNESS_CONF") or s.config_file)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
    except FileNotFoundError:
        data = {}
    if not isinstance(data, dict):
        data = {}

    defaults = _section(data, "defaults")
    subscribers = _section(data, "subscribers")

    runtimes = dict(s.runtimes)
    runtimes.update({str(k): str(v) for k, v in _section(data, "runtimes").items()})

    line_limit = defaults.get("line_limit", s.line_limit)
    max_line_chars = defaults.get("max_line_chars", s.max_line_chars)

    # 2) merge, coercing to the field types
    merged = s.model_copy(
        update={
            "config_file": path,
            "workspace_dir": Path(str(data.get("workspace_dir", s.workspace_dir))),
            "default_lang": str(data.get("default_lang", s.default_lang)),
            "log_level": str(data.get("log_level", s.log_level)).upper(),
            "runtimes": runtimes,
            "default_timeout_s": float(defaults.get("timeout_s", s.default_timeout_s)),
            "line_limit": None if line_limit is None else int(line_limit),
            "kill_grace_s": float(defaults.get("kill_grace_s", s.kill_grace_s)),
            "max_script_bytes": int(defaults.get("max_script_bytes", s.max_script_bytes)),
            "stderr_tail_lines": int(defaults.get("stderr_tail_lines", s.stderr_tail_lines)),
            "read_chunk_bytes": int(defaults.get("read_chunk_bytes", s.read_chunk_bytes)),
            "max_line_chars": None if max_line_chars is None else int(max_line_chars),
            "subscriber_buffer": int(subscribers.get("buffer", s.subscriber_buffer)),
            "backlog_lines": int(subscribers.get("backlog", s.backlog_lines)),
        }
    )
    # model_copy skips validation
    return Settings.model_validate(merged.model_dump())
