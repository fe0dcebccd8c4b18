"""Logging setup for mail_dispatch."""

import json
import logging
import logging.handlers
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from .config import LoggingConfig, Settings

_RESERVED_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


class StructuredFormatter(logging.Formatter):
    """Formats records as one JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "thread": record.threadName,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Fields passed through ``extra=``, e.g. job_id
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_data[key] = value

        return json.dumps(log_data, default=str, ensure_ascii=False)


class ColoredFormatter(logging.Formatter):
    """Colored console formatter."""

    COLORS = {
        'DEBUG': '\033[36m',
        'INFO': '\033[32m',
        'WARNING': '\033[33m',
        'ERROR': '\033[31m',
        'CRITICAL': '\033[35m',
        'RESET': '\033[0m'
    }

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.COLORS['RESET'])
        return f"{color}{super().format(record)}{self.COLORS['RESET']}"


def setup_logging(
    config: Optional[LoggingConfig] = None,
    settings: Optional[Settings] = None
) -> None:
    """
    Configure the root logger.

    Args:
        config: Logging configuration (uses settings.logging if not provided)
        settings: Application settings
    """
    if settings is not None:
        config = settings.logging

    if config is None:
        config = LoggingConfig()

    root_logger = logging.getLogger()
    level = getattr(logging, config.level.upper(), None)
    if not isinstance(level, int):
        level = logging.INFO
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    if config.console_output:
        console_handler = logging.StreamHandler(sys.stderr)
        if sys.stderr.isatty():
            console_handler.setFormatter(ColoredFormatter(config.format))
        else:
            console_handler.setFormatter(logging.Formatter(config.format))
        root_logger.addHandler(console_handler)

    if config.file_path:
        log_file = Path(config.file_path)
        log_file.parent.mkdir(parents=True, exist_ok=True)

        file_handler = logging.handlers.RotatingFileHandler(
            log_file,
            maxBytes=config.max_file_size,
            backupCount=config.backup_count,
            encoding='utf-8'
        )
        file_handler.setFormatter(StructuredFormatter())
        root_logger.addHandler(file_handler)

    _configure_third_party_loggers()


def _configure_third_party_loggers() -> None:
    """Reduce noise from libraries."""
    logging.getLogger('smtplib').setLevel(logging.WARNING)
    logging.getLogger('email_validator').setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger instance.

    Args:
        name: Logger name (typically __name__ from the calling module)

    Returns:
        Logger instance
    """
    return logging.getLogger(name)
