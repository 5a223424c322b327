# ywatch/utils/logger.py

"""
Logging configuration for ywatch
"""
import logging
import sys
from pathlib import Path
from typing import Optional, Dict, Any
from datetime import datetime, timezone
import json

# Level names accepted in configuration that logging does not know directly
LEVEL_ALIASES = {
    'WARN': 'WARNING',
    'FATAL': 'CRITICAL',
}

TEXT_FORMAT = '[%(asctime)s] [%(levelname)s] %(name)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'


class JsonFormatter(logging.Formatter):
    """JSON formatter for structured logging"""

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }

        if record.exc_info:
            log_record['exception'] = self.formatException(record.exc_info)

        if hasattr(record, 'extra'):
            log_record.update(record.extra)

        if record.process:
            log_record['process_id'] = record.process

        return json.dumps(log_record, default=str)


class ColorFormatter(logging.Formatter):
    """Color formatter for console output"""

    COLORS = {
        'DEBUG': '\033[36m',      # Cyan
        'INFO': '\033[32m',       # Green
        'WARNING': '\033[33m',    # Yellow
        'ERROR': '\033[31m',      # Red
        'CRITICAL': '\033[41m',   # Red background
        'RESET': '\033[0m',
    }

    def format(self, record: logging.LogRecord) -> str:
        # Format a copy so other handlers still see the plain record
        record = logging.makeLogRecord(record.__dict__)
        color = self.COLORS.get(record.levelname)
        if color:
            record.levelname = f"{color}{record.levelname}{self.COLORS['RESET']}"
        return super().format(record)


def resolve_level(log_level: str) -> int:
    """Map a configured level name to a logging level"""
    name = LEVEL_ALIASES.get(log_level.upper(), log_level.upper())
    return getattr(logging, name, logging.INFO)


def _build_formatter(log_format: str) -> logging.Formatter:
    if log_format == "json":
        return JsonFormatter()
    if log_format == "color":
        return ColorFormatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)
    return logging.Formatter(fmt=TEXT_FORMAT, datefmt=DATE_FORMAT)


def setup_logging(
    log_level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: str = "text",  # text, json, or color
    max_file_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Setup logging configuration

    Args:
        log_level: Logging level (DEBUG, INFO, WARN, ERROR, FATAL and the
            standard logging names)
        log_file: Path to log file (if None, only console logging)
        log_format: Format of logs (text, json, or color)
        max_file_size: Maximum size of log file before rotation
        backup_count: Number of backup files to keep
    """
    level = resolve_level(log_level)
    log_format = log_format.lower()

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
        handler.close()

    # Diagnostics go to stderr so command output on stdout stays clean
    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(_build_formatter(log_format))
    console_handler.setLevel(level)
    root_logger.addHandler(console_handler)

    if log_file:
        log_path = Path(log_file)
        log_path.parent.mkdir(parents=True, exist_ok=True)

        from logging.handlers import RotatingFileHandler
        file_handler = RotatingFileHandler(
            filename=log_path,
            maxBytes=max_file_size,
            backupCount=backup_count,
            encoding='utf-8'
        )

        # Color codes never go to the file
        file_handler.setFormatter(_build_formatter("json" if log_format == "json" else "text"))
        file_handler.setLevel(level)
        root_logger.addHandler(file_handler)

        root_logger.info(f"Logging to file: {log_path}")

    logging.getLogger('watchdog').setLevel(logging.WARNING)

    root_logger.debug(f"Logging configured. Level: {logging.getLevelName(level)}, Format: {log_format}")

    return root_logger


def get_logger(name: str = None) -> logging.Logger:
    """Get logger by name (usually __name__)"""
    return logging.getLogger(name)


def log_exception(logger: logging.Logger, exception: BaseException,
                  message: str = "Exception occurred", extra: Optional[Dict[str, Any]] = None):
    """
    Log exception with traceback and optional extra context

    Args:
        logger: Logger instance
        exception: Exception to log
        message: Custom message
        extra: Extra context information
    """
    exc_info = (type(exception), exception, exception.__traceback__)

    if extra:
        logger.error(message, exc_info=exc_info, extra={'extra': extra})
    else:
        logger.error(message, exc_info=exc_info)
