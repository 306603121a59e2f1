"""
Centralized logging utilities with JSON formatting
"""

import json
import logging
import sys
from typing import Dict, Any, Optional
from datetime import datetime, UTC

from db.session import get_db_session

# Configure root logger
logging.basicConfig(
    level=logging.INFO,
    format='%(message)s',
    handlers=[logging.StreamHandler(sys.stdout)]
)

class JSONFormatter(logging.Formatter):
    """Custom JSON formatter for structured logging"""

    def format(self, record):
        log_entry = {
            "timestamp": datetime.now(UTC).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        if hasattr(record, 'extra_data'):
            log_entry.update(record.extra_data)

        return json.dumps(log_entry, default=str)

def get_logger(name: str) -> logging.Logger:
    """Get a logger with JSON formatting"""
    logger = logging.getLogger(name)

    # Avoid duplicate handlers
    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(JSONFormatter())
        logger.addHandler(handler)
        logger.setLevel(logging.INFO)
        logger.propagate = False

    return logger

def record_action(
    kind: str,
    message: str,
    metadata: Optional[Dict[str, Any]] = None
) -> None:
    """Append an entry to the action log"""
    try:
        from db.models import Action

        with get_db_session() as session:
            session.add(Action(
                kind=kind,
                meta_json={
                    "message": message,
                    "timestamp": datetime.now(UTC).isoformat(),
                    **(metadata or {})
                }
            ))
            session.commit()

    except Exception as e:
        # Don't let logging errors break the pipeline
        get_logger(__name__).error(f"Failed to record action {kind}: {e}")

class StructuredLogger:
    """Logger taking keyword fields instead of pre-formatted strings"""

    def __init__(self, name: str):
        self.logger = get_logger(name)
        self.name = name

    def _log(self, level: int, message: str, fields: Dict[str, Any]):
        extra = {"extra_data": fields} if fields else {}
        self.logger.log(level, message, extra=extra)

    def info(self, message: str, **kwargs):
        self._log(logging.INFO, message, kwargs)

    def warning(self, message: str, **kwargs):
        self._log(logging.WARNING, message, kwargs)

    def error(self, message: str, **kwargs):
        self._log(logging.ERROR, message, kwargs)

    def debug(self, message: str, **kwargs):
        self._log(logging.DEBUG, message, kwargs)

    def action(self, action_type: str, message: str, **metadata):
        """Log an action and keep it in the action log"""
        self.info(f"Action: {action_type} - {message}", action_type=action_type, **metadata)
        record_action(action_type, message, metadata)

def get_structured_logger(name: str) -> StructuredLogger:
    """Get a structured logger instance"""
    return StructuredLogger(name)
