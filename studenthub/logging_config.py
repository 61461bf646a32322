"""
Student Hub - Centralized Logging Configuration
Supports both development (plain text) and structured (JSON) logging
"""

import logging
import sys
import json
import traceback
from datetime import datetime, timezone
from pathlib import Path
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional
from contextvars import ContextVar


# Context variable for the component currently talking to the store
component_var: ContextVar[str] = ContextVar('component', default='')

_STANDARD_ATTRS = {
    'name', 'msg', 'args', 'created', 'filename', 'funcName',
    'levelname', 'levelno', 'lineno', 'module', 'msecs',
    'pathname', 'process', 'processName', 'relativeCreated',
    'stack_info', 'exc_info', 'exc_text', 'thread', 'threadName',
    'message', 'taskName', 'component',
}


def get_component() -> str:
    """Get current component name from context"""
    return component_var.get() or ''


def set_component(component: str) -> None:
    """Set component name in context"""
    component_var.set(component)


class JSONFormatter(logging.Formatter):
    """
    JSON formatter for structured logging
    One object per line, easy to ship to a log aggregator
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: Dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        component = get_component()
        if component:
            log_data["component"] = component

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info) if record.exc_info[0] else None
            }

        for key, value in record.__dict__.items():
            if key not in _STANDARD_ATTRS and not key.startswith('_'):
                log_data[key] = value

        return json.dumps(log_data, default=str)


class ContextualFormatter(logging.Formatter):
    """
    Readable formatter that includes the component context variable
    """

    def format(self, record: logging.LogRecord) -> str:
        record.component = get_component() or '-'
        return super().format(record)


class HubLogger(logging.Logger):
    """
    Custom logger with convenience methods for structured logging
    """

    def log_request(self, method: str, path: str, status_code: int,
                    duration_ms: float, **kwargs) -> None:
        """Log an outgoing HTTP request"""
        level = logging.DEBUG if 200 <= status_code < 300 else logging.WARNING
        self.log(
            level,
            f"HTTP {method} {path} - {status_code} ({duration_ms:.2f}ms)",
            extra={
                "event_type": "http_request",
                "http_method": method,
                "http_path": path,
                "http_status": status_code,
                "duration_ms": duration_ms,
                **kwargs
            }
        )

    def log_store_event(self, change_type: str, collection: Optional[str] = None,
                        record_id: Optional[str] = None, **kwargs) -> None:
        """Log a store mutation"""
        self.debug(
            f"Store {change_type}" +
            (f" {collection}" if collection else "") +
            (f" [{record_id}]" if record_id else ""),
            extra={
                "event_type": "store_change",
                "change_type": change_type,
                "collection": collection,
                "record_id": record_id,
                **kwargs
            }
        )

    def log_error_with_context(self, error: Exception, context: Optional[str] = None,
                               **kwargs) -> None:
        """Log error with full context"""
        self.error(
            f"Error in {context}: {type(error).__name__}: {str(error)}",
            exc_info=True,
            extra={
                "event_type": "error",
                "error_type": type(error).__name__,
                "error_message": str(error),
                "error_context": context,
                **kwargs
            }
        )


def _get_logger() -> HubLogger:
    logging.setLoggerClass(HubLogger)
    try:
        hub_logger = logging.getLogger("studenthub")
    finally:
        logging.setLoggerClass(logging.Logger)
    hub_logger.__class__ = HubLogger  # Ensure it's our custom class
    return hub_logger


def setup_logging(level: str = "INFO", json_format: bool = False,
                  log_file: Optional[str] = None) -> HubLogger:
    """Install handlers on the package logger"""
    hub_logger = _get_logger()
    hub_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    hub_logger.handlers.clear()
    hub_logger.propagate = False

    if json_format:
        console_formatter: logging.Formatter = JSONFormatter()
        file_formatter: logging.Formatter = console_formatter
    else:
        console_formatter = ContextualFormatter("%(levelname)-8s | %(message)s")
        file_formatter = ContextualFormatter(
            "%(asctime)s | %(levelname)-8s | [%(component)s] | "
            "%(funcName)s:%(lineno)d | %(message)s"
        )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(console_formatter)
    hub_logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            path,
            maxBytes=10485760,  # 10MB
            backupCount=5
        )
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(file_formatter)
        hub_logger.addHandler(file_handler)

    # Suppress noisy loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    hub_logger.debug(
        "Logging initialized",
        extra={"log_level": level, "json_logging": json_format}
    )

    return hub_logger


# Handlers are installed by setup_logging(); until then records propagate to root
logger: HubLogger = _get_logger()


__all__ = [
    'logger',
    'setup_logging',
    'get_component',
    'set_component',
    'HubLogger',
    'JSONFormatter',
    'ContextualFormatter',
]
