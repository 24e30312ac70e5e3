# app/logging_config.py
"""Process-wide logging for the journal API.

Everything is written to stdout through the root logger. Application modules
log under the ``trade_journal`` namespace via :func:`get_logger`, and
``logging.loggers`` in the config can raise or lower single loggers, e.g.
``trade_journal.imports: DEBUG`` to see every rejected import row.
"""
import logging
import sys
from typing import Any, Dict, Mapping

APP_LOGGER = "trade_journal"
DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Libraries that are only interesting when something goes wrong
QUIET_LOGGERS = ("httpx", "httpcore", "asyncio")


def _level(value: Any, default: int = logging.INFO) -> int:
    resolved = logging.getLevelName(str(value).upper())
    return resolved if isinstance(resolved, int) else default


def setup_logging(config: Mapping[str, Any]) -> None:
    log_config: Dict[str, Any] = dict(config.get("logging") or {})
    level = _level(log_config.get("level", "INFO"))

    logging.basicConfig(
        level=level,
        format=log_config.get("format") or DEFAULT_FORMAT,
        handlers=[logging.StreamHandler(sys.stdout)],
    )

    logging.getLogger(APP_LOGGER).setLevel(level)
    # uvicorn installs its own handlers; only its level follows ours
    logging.getLogger("uvicorn").setLevel(level)
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    for name, override in (log_config.get("loggers") or {}).items():
        logging.getLogger(name).setLevel(_level(override, level))


def get_logger(name: str) -> logging.Logger:
    """Logger under the application namespace; full dotted names pass through."""
    if name == APP_LOGGER or name.startswith(f"{APP_LOGGER}."):
        return logging.getLogger(name)
    return logging.getLogger(f"{APP_LOGGER}.{name}")
