"""
Structured logging setup.

JSON lines in production, coloured single-line output in development.
Use get_logger(name) everywhere instead of logging.getLogger directly.

Request, session and user ids passed through ``extra=`` end up as their own
JSON keys in production and as a ``[k=v]`` suffix in development.
"""

import json
import logging
import sys
from datetime import datetime, timezone

CONTEXT_FIELDS = ("request_id", "session_id", "user_id")

# web3 logs every RPC round trip at DEBUG
_NOISY_LOGGERS = ("httpx", "httpcore", "urllib3", "web3", "uvicorn.access", "watchfiles")


def _context(record: logging.LogRecord) -> dict[str, str]:
    return {f: getattr(record, f) for f in CONTEXT_FIELDS if getattr(record, f, None)}


class JSONFormatter(logging.Formatter):
    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "ts": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
            **_context(record),
        }
        if record.exc_info and record.exc_info[0] is not None:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class DevFormatter(logging.Formatter):
    """Coloured formatter for local runs."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[1;31m",
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.RESET)
        ts = datetime.fromtimestamp(record.created).strftime("%H:%M:%S")
        line = f"{color}{ts} {record.levelname[0]}{self.RESET} {record.name}: {record.getMessage()}"
        ctx = _context(record)
        if ctx:
            line += " [" + " ".join(f"{k}={v}" for k, v in ctx.items()) + "]"
        if record.exc_info and record.exc_info[0] is not None:
            line += "\n" + self.formatException(record.exc_info)
        return line


_configured = False


def _configure_root(is_dev: bool, level: str) -> None:
    global _configured
    if _configured:
        return
    _configured = True

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(DevFormatter() if is_dev else JSONFormatter())

    root = logging.getLogger()
    root.handlers = [handler]
    root.setLevel(level.upper() if level else (logging.DEBUG if is_dev else logging.INFO))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Return a named logger, configuring the root logger on first use."""
    # Imported here: config is loaded lazily and must not import logging setup
    try:
        from dappgen.config import get_settings
        settings = get_settings()
        is_dev, level = settings.is_development, settings.LOG_LEVEL
    except Exception:
        is_dev, level = True, ""

    _configure_root(is_dev, level)
    return logging.getLogger(name)
