"""Logging configuration with API key redaction and session correlation ids.

Worker threads tag their records with the session generation they serve, so
log lines from a superseded upload are easy to tell apart from the current
one.
"""
import json
import logging
import logging.handlers
import re
import sys
import uuid
from contextvars import ContextVar
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Optional, Union

correlation_id: ContextVar[Optional[str]] = ContextVar('correlation_id', default=None)


class CorrelationIDFilter(logging.Filter):
    """Filter to add correlation IDs to log records."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.correlation_id = correlation_id.get() or '-'
        return True


class SecuritySafeFormatter(logging.Formatter):
    """Formatter that redacts credentials from log messages."""

    SENSITIVE_PATTERNS = [
        (re.compile(r'AIza[0-9A-Za-z_\-]{35}'), '[REDACTED]'),
        (re.compile(r'(?i)((?:gemini[_-]?)?api[_-]?key["\s]*[:=]["\s]*)[A-Za-z0-9_\-]+'), r'\1[REDACTED]'),
        (re.compile(r'(?i)(key=)[A-Za-z0-9_\-]+'), r'\1[REDACTED]'),
        (re.compile(r'(?i)(token["\s]*[:=]["\s]*)[A-Za-z0-9_\-]+'), r'\1[REDACTED]'),
    ]

    @classmethod
    def redact(cls, text: str) -> str:
        for pattern, replacement in cls.SENSITIVE_PATTERNS:
            text = pattern.sub(replacement, text)
        return text

    def format(self, record: logging.LogRecord) -> str:
        return self.redact(super().format(record))


class StructuredFormatter(SecuritySafeFormatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'level': record.levelname,
            'logger': record.name,
            'message': record.getMessage(),
            'correlation_id': getattr(record, 'correlation_id', '-'),
            'module': record.module,
            'function': record.funcName,
            'line': record.lineno,
        }
        if record.exc_info:
            log_entry['exception'] = self.formatException(record.exc_info)
        return self.redact(json.dumps(log_entry, default=str))


class HumanReadableFormatter(SecuritySafeFormatter):
    """Human-readable formatter for development and console output."""

    def __init__(self, include_correlation_id: bool = True):
        format_string = (
            '%(asctime)s - %(name)s - %(levelname)s'
            + (' - [%(correlation_id)s]' if include_correlation_id else '')
            + ' - %(message)s'
        )
        super().__init__(format_string)


class LoggingManager:
    """Central logging manager for the application."""

    def __init__(self):
        self._configured = False
        self._handlers: Dict[str, logging.Handler] = {}

    @property
    def configured(self) -> bool:
        return self._configured

    def configure(
        self,
        log_level: str = 'INFO',
        log_dir: Optional[Union[str, Path]] = None,
        enable_console_logging: bool = True,
        structured_logging: bool = False,
        max_file_size: int = 5 * 1024 * 1024,
        backup_count: int = 3,
        application_name: str = 'pcb-guru'
    ) -> None:
        """Configure logging for the application.

        Args:
            log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
            log_dir: Directory for the rotating log file; no file logging if None
            enable_console_logging: Enable logging to stdout
            structured_logging: Use structured JSON logging
            max_file_size: Maximum size of the log file before rotation
            backup_count: Number of rotated files to keep
            application_name: Name used for the log file
        """
        if self._configured:
            return

        level = getattr(logging, log_level.upper(), logging.INFO)
        root_logger = logging.getLogger()
        root_logger.setLevel(level)

        correlation_filter = CorrelationIDFilter()
        formatter = StructuredFormatter() if structured_logging else HumanReadableFormatter()

        if enable_console_logging:
            console_handler = logging.StreamHandler(sys.stdout)
            console_handler.setLevel(level)
            console_handler.setFormatter(formatter)
            console_handler.addFilter(correlation_filter)
            root_logger.addHandler(console_handler)
            self._handlers['console'] = console_handler

        if log_dir:
            log_path = Path(log_dir)
            log_path.mkdir(parents=True, exist_ok=True)
            file_handler = logging.handlers.RotatingFileHandler(
                log_path / f'{application_name}.log',
                maxBytes=max_file_size,
                backupCount=backup_count,
                encoding='utf-8'
            )
            file_handler.setLevel(level)
            file_handler.setFormatter(formatter)
            file_handler.addFilter(correlation_filter)
            root_logger.addHandler(file_handler)
            self._handlers['file'] = file_handler

        # Third-party chatter
        logging.getLogger('PIL').setLevel(logging.WARNING)
        logging.getLogger('httpx').setLevel(logging.WARNING)
        logging.getLogger('httpcore').setLevel(logging.WARNING)
        logging.getLogger('google_genai').setLevel(logging.WARNING)

        self._configured = True
        logging.getLogger(__name__).info(
            f"Logging configured - Level: {log_level}, File: {bool(log_dir)}, Console: {enable_console_logging}")

    def shutdown(self) -> None:
        """Detach and close all handlers installed by configure()."""
        root_logger = logging.getLogger()
        for handler in self._handlers.values():
            root_logger.removeHandler(handler)
            handler.close()
        self._handlers.clear()
        self._configured = False


logging_manager = LoggingManager()


def configure_logging(**kwargs) -> None:
    """Configure application logging."""
    logging_manager.configure(**kwargs)


def get_correlation_id() -> Optional[str]:
    return correlation_id.get()


class CorrelationContext:
    """Context manager that sets the correlation id for the enclosed block."""

    def __init__(self, corr_id: Optional[str] = None):
        self.corr_id = corr_id or uuid.uuid4().hex[:8]
        self._token = None

    def __enter__(self) -> str:
        self._token = correlation_id.set(self.corr_id)
        return self.corr_id

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        correlation_id.reset(self._token)
