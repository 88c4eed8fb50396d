"""
Logging configuration for the Event Production Portal.

Everything logs through the 'epportal' logger (module loggers are its
children), written to a rotating file so the terminal stays clean.

  Log file : <LOG_DIR>/epportal.log, LOG_DIR defaults to logs/ in the project
  Rotation : 5 MB x 3 backups
  Level    : LOG_LEVEL env var (DEBUG / INFO / WARNING / ERROR / CRITICAL),
             INFO when unset or unknown

Usage
-----
    from epportal.logging_config import configure_logging, log_call

    configure_logging()      # once per CLI entry; repeated calls are no-ops

    @log_call
    def events_show(event_id):
        ...

Log format per line
-------------------
    2027-10-16 14:32:01 | DEBUG    | CALL events_show | args=('rec123',)
    2027-10-16 14:32:01 | INFO     | OK   events_show | 420ms
    2027-10-16 14:32:01 | ERROR    | FAIL events_show | UpstreamError: Store API error 500 | 3ms

Credentials never reach the log: keyword arguments named like a secret are
written as '***'.
"""

import functools
import logging
import logging.handlers
import os
import time
from pathlib import Path

LOGGER_NAME = "epportal"
_LOG_DIR = Path(__file__).parent.parent / "logs"
_LOG_FILENAME = "epportal.log"
_FORMAT = "%(asctime)s | %(levelname)-8s | %(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
_MAX_BYTES = 5 * 1024 * 1024
_BACKUP_COUNT = 3

_SECRET_ARG_NAMES = ("token", "password", "secret", "authorization")
_REDACTED = "***"


def _log_dir() -> Path:
    override = os.environ.get("LOG_DIR")
    return Path(override) if override else _LOG_DIR


def configure_logging() -> logging.Logger:
    """Attach the rotating file handler to the epportal logger (once) and return it."""
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    level_name = os.environ.get("LOG_LEVEL", "INFO").upper()
    logger.setLevel(getattr(logging, level_name, logging.INFO))

    log_dir = _log_dir()
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.handlers.RotatingFileHandler(
        log_dir / _LOG_FILENAME,
        maxBytes=_MAX_BYTES,
        backupCount=_BACKUP_COUNT,
        encoding="utf-8",
    )
    handler.setFormatter(logging.Formatter(_FORMAT, datefmt=_DATE_FORMAT))
    logger.addHandler(handler)
    return logger


def _describe_kwarg(name: str, value) -> str:
    if any(secret in name.lower() for secret in _SECRET_ARG_NAMES):
        return f"{name}={_REDACTED}"
    return f"{name}={value!r}"


def log_call(func):
    """
    Trace a CLI command or helper.

    DEBUG CALL line with the arguments on entry, INFO OK line with the
    elapsed time on return, ERROR FAIL line on an exception (re-raised).
    SystemExit and KeyboardInterrupt pass through unlogged.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        logger = logging.getLogger(LOGGER_NAME)
        name = func.__name__
        start = time.perf_counter()

        parts = [repr(a) for a in args] + [_describe_kwarg(k, v) for k, v in kwargs.items()]
        logger.debug(f"CALL {name} | args=({', '.join(parts) if parts else '—'})")

        try:
            result = func(*args, **kwargs)
        except Exception as exc:
            ms = int((time.perf_counter() - start) * 1000)
            logger.error(f"FAIL {name} | {type(exc).__name__}: {exc} | {ms}ms")
            raise
        ms = int((time.perf_counter() - start) * 1000)
        logger.info(f"OK   {name} | {ms}ms")
        return result

    return wrapper
