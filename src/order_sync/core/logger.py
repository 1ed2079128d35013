"""
Structured JSON logging for the sync engine.

Configured once on import: a per-session file under LOG_DIR (always DEBUG)
and stdout at LOG_LEVEL. Timestamps are in business time (UTC+7).
"""

import json
import logging
import os
import sys
import traceback
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Dict

from order_sync.config.constants import TIMEZONE_OFFSET_HOURS

BUSINESS_TZ = timezone(timedelta(hours=TIMEZONE_OFFSET_HOURS))

# Distinguishes several starts on the same day
SESSION_ID = uuid.uuid4().hex[:8]

# Passed as `extra=` by sync code to correlate lines of one cycle
CONTEXT_FIELDS = ("sync_type", "shop_id", "credential_id")

# Per-request chatter from these libraries stays out of stdout
NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler.executors.default", "aiosqlite")


class JSONFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, BUSINESS_TZ).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "session": SESSION_ID,
        }

        for name in CONTEXT_FIELDS:
            value = getattr(record, name, None)
            if value is not None:
                entry[name] = value

        if record.exc_info and record.exc_info[0] is not None:
            exc_type, exc_value, exc_tb = record.exc_info
            entry["exception"] = {
                "type": exc_type.__name__,
                "message": str(exc_value),
                "traceback": traceback.format_exception(exc_type, exc_value, exc_tb),
            }

        return json.dumps(entry, default=str, ensure_ascii=False)


def _log_file(directory: Path) -> Path:
    day = datetime.now(BUSINESS_TZ).strftime("%Y-%m-%d")
    return directory / f"order_sync_{day}_{SESSION_ID}.log"


def configure_logging(log_dir: str, level: str) -> None:
    """Attach the file and stdout handlers to the root logger, once."""
    root = logging.getLogger()
    if root.handlers:
        return
    root.setLevel(logging.DEBUG)

    directory = Path(log_dir)
    directory.mkdir(parents=True, exist_ok=True)

    file_handler = logging.FileHandler(_log_file(directory), encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(JSONFormatter())

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(getattr(logging, level.upper(), logging.INFO))
    console_handler.setFormatter(JSONFormatter())

    root.addHandler(file_handler)
    root.addHandler(console_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


configure_logging(os.getenv("LOG_DIR", "logs"), os.getenv("LOG_LEVEL", "INFO"))


def setup_logger(name: str) -> logging.Logger:
    """Get logger for a module."""
    logger = logging.getLogger(name)
    logger.propagate = True
    return logger
