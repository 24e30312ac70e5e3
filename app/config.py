# app/config.py
from __future__ import annotations

import os
import re
from pathlib import Path
from typing import Any, Dict

import yaml  # type: ignore[import]
from pydantic import BaseModel, ConfigDict, Field

_X = re.compile(r"\$\{([^}]+)\}")


def _expand_env(value: Any) -> Any:
    if isinstance(value, str):

        def repl(m: re.Match) -> str:
            var = m.group(1)
            return os.environ.get(var, "")

        return _X.sub(repl, value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def _deep_merge(a: Dict[str, Any], b: Dict[str, Any]) -> Dict[str, Any]:
    out = dict(a)
    for k, v in b.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _load_config_dict() -> Dict[str, Any]:
    repo_root = Path(__file__).resolve().parents[1]
    default_p = repo_root / "config.example.yaml"
    user_p = repo_root / "config.yaml"
    base: Dict[str, Any] = {}
    if default_p.exists():
        base = yaml.safe_load(default_p.read_text("utf-8")) or {}
    user: Dict[str, Any] = {}
    if user_p.exists():
        user = yaml.safe_load(user_p.read_text("utf-8")) or {}
    merged = _deep_merge(base, user)
    return _expand_env(merged)


class JournalSettings(BaseModel):
    """Where the embedded journal database lives."""

    model_config = ConfigDict(extra="allow")

    db_path: str = Field(default="data/journal.duckdb", min_length=1)

    def model_post_init(self, __context: Any) -> None:
        env_path = os.environ.get("TRADE_JOURNAL_DB")
        if env_path:
            self.db_path = env_path


class ImportSettings(BaseModel):
    """Limits and defaults for CSV trade imports."""

    model_config = ConfigDict(extra="allow")

    preview_rows: int = Field(default=5, ge=1, le=100)
    max_upload_bytes: int = Field(default=5 * 1024 * 1024, gt=0)
    max_sessions: int = Field(default=100, ge=1)
    session_ttl_seconds: float = Field(default=3600.0, gt=0)


class LoggingSettings(BaseModel):
    model_config = ConfigDict(extra="allow")

    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    loggers: Dict[str, str] = Field(default_factory=dict)


class AppSettings(BaseModel):
    """Typed representation of the application configuration."""

    model_config = ConfigDict(extra="allow")

    journal: JournalSettings = Field(default_factory=JournalSettings)
    imports: ImportSettings = Field(default_factory=ImportSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)


def load_settings() -> AppSettings:
    """Load configuration and return a typed AppSettings instance."""

    raw = _load_config_dict()
    return AppSettings.model_validate(raw)


def load_config() -> Dict[str, Any]:
    """Load configuration as a plain dictionary."""

    settings = load_settings()
    return settings.model_dump(mode="python")
