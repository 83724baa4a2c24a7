"""Logging setup for the relay.

One rotating file under ``log_dir`` plus the console, both fed by the root
logger. Every line passes through ``CredentialRedactionFilter`` so API keys
that end up in a URL or an ``Authorization`` value never reach a handler.
The HTTP client libraries stay at WARNING: httpx logs each request URL at
INFO and the gateway already writes its own line per call.
"""

from __future__ import annotations

import logging
import re
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path


DEFAULT_LOG_FILENAME = "relay.log"
LOG_BACKUP_COUNT = 20

FORMAT_STRING = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

LEVEL_COLORS = {
    logging.DEBUG: "36",
    logging.INFO: "32",
    logging.WARNING: "33",
    logging.ERROR: "31",
    logging.CRITICAL: "35",
}

HTTP_CLIENT_LOGGERS = ("httpx", "httpcore")
UVICORN_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access")

REDACTED = "***"

_SECRET_QUERY = re.compile(
    r"(?P<prefix>[?&](?:key|api_key|apikey|token|access_token)=)[^&#\s\"']+",
    re.IGNORECASE,
)
_SECRET_SCHEME = re.compile(r"(?P<prefix>\bBearer\s+)[^\s\"',]+", re.IGNORECASE)


def redact_credentials(text: str) -> str:
    """Mask credential values in query strings and bearer headers."""
    text = _SECRET_QUERY.sub(rf"\g<prefix>{REDACTED}", text)
    return _SECRET_SCHEME.sub(rf"\g<prefix>{REDACTED}", text)


class CredentialRedactionFilter(logging.Filter):
    """Handler filter that rewrites records carrying credentials."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        redacted = redact_credentials(message)
        if redacted != message:
            record.msg = redacted
            record.args = None
        return True


class ColorFormatter(logging.Formatter):
    """Colors the level name on a copy of the record."""

    def __init__(self, fmt: str, use_color: bool = True) -> None:
        super().__init__(fmt)
        self._use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        color = LEVEL_COLORS.get(record.levelno) if self._use_color else None
        if color:
            record = logging.makeLogRecord(record.__dict__)
            record.levelname = f"\x1b[{color}m{record.levelname}\x1b[0m"
        return super().format(record)


def purge_old_logs(log_dir: Path, log_file: Path, retention_days: int) -> int:
    """Delete rotated copies of ``log_file`` older than ``retention_days``.

    The active file is kept. ``retention_days <= 0`` keeps everything.
    Returns the number of files removed.
    """
    if retention_days <= 0:
        return 0

    cutoff = time.time() - retention_days * 86400
    removed = 0
    for path in log_dir.glob(f"{log_file.name}.*"):
        try:
            if path.stat().st_mtime < cutoff:
                path.unlink()
                removed += 1
        except OSError:
            continue
    return removed


def _console_handler(level: int) -> logging.StreamHandler:
    handler = logging.StreamHandler()
    isatty = getattr(handler.stream, "isatty", None)
    handler.setFormatter(ColorFormatter(FORMAT_STRING, use_color=bool(isatty and isatty())))
    handler.setLevel(level)
    return handler


def configure_logging(
    log_dir: Path,
    log_max_bytes: int,
    log_retention_days: int,
    debug: bool,
    uvicorn_log_level: str = "info",
) -> Path:
    """Route all relay, uvicorn and library logs to the file and console.

    Args:
        log_dir: Directory for ``relay.log`` and its rotated copies.
        log_max_bytes: Size that triggers rotation.
        log_retention_days: Age after which rotated copies are purged at startup.
        debug: Log relay modules at DEBUG instead of INFO.
        uvicorn_log_level: Level name for the uvicorn loggers.

    Returns:
        The active log file path.
    """
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / DEFAULT_LOG_FILENAME
    level = logging.DEBUG if debug else logging.INFO
    redaction = CredentialRedactionFilter()

    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=log_max_bytes,
        backupCount=LOG_BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setFormatter(logging.Formatter(FORMAT_STRING))
    file_handler.setLevel(level)

    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(level)
    for handler in (file_handler, _console_handler(level)):
        handler.addFilter(redaction)
        root.addHandler(handler)

    for name in HTTP_CLIENT_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    uvicorn_level = getattr(logging, uvicorn_log_level.upper(), logging.INFO)
    for name in UVICORN_LOGGERS:
        uvicorn_logger = logging.getLogger(name)
        uvicorn_logger.handlers.clear()
        uvicorn_logger.propagate = True
        uvicorn_logger.setLevel(uvicorn_level)

    removed = purge_old_logs(log_dir, log_file, log_retention_days)
    if removed:
        logging.getLogger(__name__).info("Purged %s expired log file(s)", removed)
    return log_file
