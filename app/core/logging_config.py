"""
Logging configuration for the MatchDB shell API.

Console output plus a rotating file; tokens, hashes and API keys are
redacted before structured data reaches a log line.
"""
import logging
import sys
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any

CONSOLE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
FILE_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(funcName)s:%(lineno)d - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Libraries that log every HTTP round trip at INFO
NOISY_LOGGERS = [
    "uvicorn",
    "uvicorn.access",
    "stripe",
    "urllib3",
    "python_http_client",
]

SENSITIVE_KEYS = [
    "password", "token", "secret", "key", "refresh", "access",
    "authorization", "signature", "database_url",
]

REDACTED = "***REDACTED***"


def setup_logging(log_level: str = "INFO", log_dir: str = "logs", log_file: str = "matchdb.log"):
    """
    Configure the root logger. Safe to call more than once.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL; unknown names mean INFO
        log_dir: Directory for the rotating log file, created if missing
        log_file: File name inside log_dir
    """
    level = getattr(logging, log_level.upper(), logging.INFO)

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt=DATE_FORMAT))

    file_handler = RotatingFileHandler(
        log_path / log_file,
        maxBytes=10 * 1024 * 1024,  # 10MB
        backupCount=5,
    )
    file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))

    for handler in (console_handler, file_handler):
        handler.setLevel(level)
        root.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def _is_sensitive(key: Any) -> bool:
    return isinstance(key, str) and any(s in key.lower() for s in SENSITIVE_KEYS)


def sanitize_log_data(data: dict) -> dict:
    """
    Copy of data with sensitive values redacted, nested dicts included.

    Used before logging webhook metadata and similar client-supplied maps.
    """
    sanitized = {}
    for key, value in data.items():
        if _is_sensitive(key):
            sanitized[key] = REDACTED
        elif isinstance(value, dict):
            sanitized[key] = sanitize_log_data(value)
        else:
            sanitized[key] = value
    return sanitized
