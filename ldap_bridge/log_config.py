"""Application logging setup.

Console output always; with a log directory, also a file `ldap-bridge.log`
rotated at midnight (TimedRotatingFileHandler) and kept for retention_days.
"""
from __future__ import annotations

import logging
import os
from logging.handlers import TimedRotatingFileHandler

_LOG_FORMAT = "%(asctime)s [%(levelname)-8s] %(name)s: %(message)s"
_LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_FILE_NAME = "ldap-bridge.log"

# Handlers installed by the last setup_logging() call, removed on reconfiguration.
_installed: list[logging.Handler] = []


def _parse_level(level: str | int | None) -> int:
    if isinstance(level, int):
        return level
    level_str = (level or "INFO").strip().upper()
    if level_str not in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        level_str = "INFO"
    return getattr(logging, level_str)


def setup_logging(
    level: str | int = "INFO",
    log_dir: str | None = None,
    retention_days: int = 30,
) -> None:
    """Configure the root logger; safe to call again with new values."""
    log_level = _parse_level(level)
    retention_days = max(1, min(365, int(retention_days or 30)))

    root = logging.getLogger()
    while _installed:
        h = _installed.pop()
        root.removeHandler(h)
        h.close()

    formatter = logging.Formatter(_LOG_FORMAT, datefmt=_LOG_DATE_FORMAT)

    ch = logging.StreamHandler()
    ch.setLevel(log_level)
    ch.setFormatter(formatter)
    _installed.append(ch)

    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        fh = TimedRotatingFileHandler(
            os.path.join(log_dir, LOG_FILE_NAME),
            when="midnight",
            interval=1,
            backupCount=retention_days,
            encoding="utf-8",
            utc=True,
        )
        fh.suffix = "%Y-%m-%d"
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        _installed.append(fh)

    root.setLevel(log_level)
    for h in _installed:
        root.addHandler(h)

    # ldap3 and the HTTP stack are chatty at DEBUG
    for name in ("ldap3", "uvicorn.access", "httpcore", "httpx"):
        logging.getLogger(name).setLevel(max(log_level, logging.WARNING))

    logging.getLogger("ldap_bridge").info(
        "Logging configured: level=%s, dir=%s, retention=%d days",
        logging.getLevelName(log_level), log_dir or "-", retention_days,
    )


def installed_handlers() -> list[logging.Handler]:
    return list(_installed)
