#!/usr/bin/env python3
"""
🔍 Centralized Logging System for TidalVoice
Console logging everywhere, rotating files outside of serverless runtimes,
structured JSON output for log aggregation.
"""

import json
import logging
import logging.handlers
import os
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Optional

# Serverless runtimes have a read-only filesystem and ship stdout to the log service
IS_SERVERLESS = bool(os.getenv('AWS_LAMBDA_FUNCTION_NAME'))

ENABLE_JSON_LOGS = os.getenv('TIDALVOICE_JSON_LOGS', '1' if IS_SERVERLESS else '0') == '1'

LOG_LEVEL = logging.INFO
ENABLE_FILE_LOGGING = not IS_SERVERLESS and os.getenv('TIDALVOICE_FILE_LOGS', '0') == '1'
MAX_LOG_SIZE = 10 * 1024 * 1024
BACKUP_COUNT = 5


def _get_app_log_dir() -> Path:
    """Get application log directory path-agnostically"""
    env_log_dir = os.getenv('TIDALVOICE_LOG_DIR')
    if env_log_dir:
        return Path(env_log_dir)
    app_name = os.getenv("TIDALVOICE_APP_NAME", "tidalvoice")
    return Path.home() / f".{app_name}" / "logs"


LOG_DIR = _get_app_log_dir()

_env_level = os.getenv('LOG_LEVEL')
if _env_level:
    LOG_LEVEL = getattr(logging, _env_level.upper(), LOG_LEVEL)

# Attributes every LogRecord carries; anything else came in through ``extra=``
_RESERVED_ATTRS = frozenset((
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'message', 'pathname', 'process', 'processName', 'relativeCreated',
    'thread', 'threadName', 'exc_info', 'exc_text', 'stack_info',
    'taskName', 'asctime', 'no_color',
))


class ColoredFormatter(logging.Formatter):
    """Custom formatter with colors for console output."""

    COLORS = {
        'DEBUG': '\033[36m',     # Cyan
        'INFO': '\033[32m',      # Green
        'WARNING': '\033[33m',   # Yellow
        'ERROR': '\033[31m',     # Red
        'CRITICAL': '\033[35m',  # Magenta
        'RESET': '\033[0m'
    }

    def format(self, record: logging.LogRecord) -> str:
        if getattr(record, 'no_color', False):
            return super().format(record)

        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        reset = self.COLORS['RESET']
        original = record.levelname
        record.levelname = f"{color}{record.levelname}{reset}"
        try:
            formatted = super().format(record)
        finally:
            record.levelname = original

        extras = _extra_fields(record)
        if extras:
            formatted += " | " + " ".join(f"{k}={v}" for k, v in extras.items())
        return formatted


def _extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    return {k: v for k, v in record.__dict__.items() if k not in _RESERVED_ATTRS}


class JSONFormatter(logging.Formatter):
    """Structured JSON formatter for production observability.

    Example output:
        {"level": "WARNING", "logger": "tidalvoice.http", "message": "http.retry",
         "attempt": 1, "delay_ms": 1112, "timestamp": "2025-11-04T10:30:00.123Z"}
    """

    def format(self, record: logging.LogRecord) -> str:
        created = datetime.fromtimestamp(record.created, tz=timezone.utc)
        log_data: Dict[str, Any] = {
            'timestamp': created.isoformat(timespec='milliseconds').replace('+00:00', 'Z'),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
        }

        if record.levelno >= logging.WARNING:
            log_data['source'] = f"{record.filename}:{record.lineno}"
            log_data['function'] = record.funcName

        if record.exc_info:
            log_data['exception'] = self.formatException(record.exc_info)

        for key, value in _extra_fields(record).items():
            try:
                json.dumps(value)
                log_data[key] = value
            except (TypeError, ValueError):
                log_data[key] = str(value)

        return json.dumps(log_data, ensure_ascii=True, sort_keys=True)


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Initialize logging for the application root logger ``tidalvoice``.

    An explicit ``level`` applies to the logger and to each of its handlers.
    """
    logger = setup_logger("tidalvoice")
    if level:
        resolved = getattr(logging, level.upper(), LOG_LEVEL)
        logger.setLevel(resolved)
        for handler in logger.handlers:
            handler.setLevel(resolved)
    return logger


def setup_logger(name: str) -> logging.Logger:
    """
    Sets up a logger with appropriate handlers based on environment

    Args:
        name: Logger name (usually module name)

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    # Prevent duplicate handlers if logger already exists
    if logger.handlers:
        return logger

    logger.setLevel(LOG_LEVEL)

    console_handler = logging.StreamHandler()
    console_handler.setLevel(LOG_LEVEL)
    if ENABLE_JSON_LOGS:
        console_handler.setFormatter(JSONFormatter())
    else:
        console_handler.setFormatter(ColoredFormatter('%(asctime)s | %(name)s | %(levelname)s | %(message)s'))
    logger.addHandler(console_handler)

    if ENABLE_FILE_LOGGING:
        try:
            LOG_DIR.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                LOG_DIR / "tidalvoice.log",
                maxBytes=MAX_LOG_SIZE,
                backupCount=BACKUP_COUNT,
                encoding='utf-8'
            )
            file_handler.setLevel(LOG_LEVEL)
            if ENABLE_JSON_LOGS:
                file_handler.setFormatter(JSONFormatter())
            else:
                file_handler.setFormatter(logging.Formatter(
                    '%(asctime)s | %(name)s | %(levelname)s | %(filename)s:%(lineno)d | %(message)s'
                ))
            logger.addHandler(file_handler)
        except OSError:
            logger.warning("File logging unavailable, continuing with console only")

    return logger


def mask_token(value: Optional[str], visible: int = 10) -> str:
    """Return a log-safe prefix of a credential."""
    if not value:
        return "<none>"
    if len(value) <= visible:
        return "***"
    return f"{value[:visible]}..."
