"""Logging setup for the scanner CLI plus a throttle for noisy upstream warnings."""

from __future__ import annotations

import logging
import os
import sys
import threading
import time
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any, Iterable, TextIO

import orjson

from .paths import LOG_DIR

RUNTIME_LOG = LOG_DIR / "oracle.log"

LOG_MAX_BYTES = 5_000_000
LOG_BACKUP_COUNT = 3
LOG_FORMAT = "%(asctime)sZ %(levelname)-7s %(name)s | %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

# third-party loggers that flood INFO with connection chatter
QUIET_LOGGERS: tuple[str, ...] = ("asyncio", "websockets", "aiohttp.access")

_CONSOLE_HANDLER_ATTR = "_alice_oracle_console"

_throttle_lock = threading.Lock()
_throttle_last: dict[str, float] = {}

_RESERVED_ATTRS = frozenset(logging.makeLogRecord({}).__dict__) | {"message", "asctime"}


class UTCFormatter(logging.Formatter):
    converter = time.gmtime


class JsonFormatter(logging.Formatter):
    """One JSON object per record; ``extra=`` fields are copied through."""

    def format(self, record: logging.LogRecord) -> str:
        stamp = datetime.fromtimestamp(record.created, tz=timezone.utc)
        payload: dict[str, Any] = {
            "ts": stamp.strftime("%Y-%m-%dT%H:%M:%S.") + f"{stamp.microsecond // 1000:03d}Z",
            "level": record.levelname,
            "logger": record.name,
            "line": record.lineno,
            "msg": record.getMessage(),
        }
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS and not key.startswith("_"):
                payload.setdefault(key, value)
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return orjson.dumps(payload, default=str).decode()


def setup_console_logging(
    *,
    stream: TextIO | None = None,
    level: int = logging.INFO,
    formatter: logging.Formatter | None = None,
    quiet: Iterable[str] = QUIET_LOGGERS,
) -> logging.Handler:
    """Attach (once) a console handler to the root logger and return it.

    Records go to ``stream`` (``sys.stderr`` by default) so that stdout
    stays free for command output.
    """

    stream = stream if stream is not None else sys.stderr
    root = logging.getLogger()
    root.setLevel(level)
    handler = getattr(root, _CONSOLE_HANDLER_ATTR, None)
    if handler in root.handlers and getattr(handler, "stream", None) is not stream:
        root.removeHandler(handler)
    if handler not in root.handlers:
        handler = logging.StreamHandler(stream)
        root.addHandler(handler)
        setattr(root, _CONSOLE_HANDLER_ATTR, handler)
    handler.setLevel(level)
    if formatter is not None:
        handler.setFormatter(formatter)
    for name in quiet:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))
    return handler


def warn_once_per(
    minutes: float,
    key: str,
    message: str,
    *args: Any,
    logger: logging.Logger | None = None,
) -> bool:
    """Log ``message`` as a warning unless ``key`` fired within ``minutes``."""

    now = time.monotonic()
    window = max(0.0, minutes) * 60.0
    with _throttle_lock:
        last = _throttle_last.get(key)
        if last is not None and now - last < window:
            return False
        _throttle_last[key] = now
    (logger or logging.getLogger()).warning(message, *args)
    return True


def reset_warn_once_cache() -> None:
    with _throttle_lock:
        _throttle_last.clear()


def _level(value: str | int | None) -> int:
    if isinstance(value, int):
        return value
    text = (value or "").strip().upper()
    if not text:
        return logging.INFO
    if text.isdigit():
        return int(text)
    resolved = logging.getLevelName(text)
    return resolved if isinstance(resolved, int) else logging.INFO


def _flag(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return raw.strip().lower() in {"1", "true", "yes", "on"}


def configure_runtime_logging(
    *,
    level: str | int | None = None,
    console: bool | None = None,
    logfile: str | Path | None = None,
    json_logs: bool | None = None,
    stream: TextIO | None = None,
) -> Path | None:
    """Configure root logging for a CLI run.

    Unset arguments fall back to ``LOG_LEVEL``, ``LOG_CONSOLE``,
    ``LOG_JSON``, ``LOG_FILE`` and ``LOG_TO_FILE`` (which writes to
    ``logs/oracle.log``).  Console records go to ``stream``, stderr unless
    given.  Returns the log file path when file logging is on.
    """

    resolved = _level(level if level is not None else os.getenv("LOG_LEVEL"))
    if console is None:
        console = _flag("LOG_CONSOLE", True)
    if json_logs is None:
        json_logs = _flag("LOG_JSON", False)
    target = logfile or os.getenv("LOG_FILE") or (RUNTIME_LOG if _flag("LOG_TO_FILE", False) else None)

    formatter: logging.Formatter
    if json_logs:
        formatter = JsonFormatter()
    else:
        formatter = UTCFormatter(os.getenv("LOG_FORMAT") or LOG_FORMAT, datefmt=LOG_DATEFMT)

    root = logging.getLogger()
    root.setLevel(resolved)

    log_path: Path | None = None
    if target:
        log_path = Path(target).resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = next(
            (h for h in root.handlers if getattr(h, "baseFilename", None) == str(log_path)),
            None,
        )
        if file_handler is None:
            file_handler = RotatingFileHandler(
                log_path,
                maxBytes=LOG_MAX_BYTES,
                backupCount=LOG_BACKUP_COUNT,
                encoding="utf-8",
            )
            root.addHandler(file_handler)
        file_handler.setLevel(resolved)
        file_handler.setFormatter(formatter)

    if console:
        setup_console_logging(stream=stream, level=resolved, formatter=formatter)
    return log_path


__all__ = [
    "JsonFormatter",
    "RUNTIME_LOG",
    "UTCFormatter",
    "configure_runtime_logging",
    "reset_warn_once_cache",
    "setup_console_logging",
    "warn_once_per",
]
