"""
Structured Logger - JSON Logging Foundation
===========================================

Standardized log setup for the tracker process.

Features:
- JSON output for machine readability
- Automatic inclusion of context (correlation_id, component)
- Human-readable console format for development
- Secret scrubbing (Supabase keys never reach the log file)
"""

import logging
import json
import uuid
import os
from datetime import datetime
from typing import Any, Dict, Optional


class JsonFormatter(logging.Formatter):
    """
    Formatter that outputs JSON strings with secret scrubbing.
    """
    SENSITIVE_KEYS = {
        "supabase_key", "api_key", "token", "secret", "password",
        "key", "authorization", "apikey",
    }

    def scrub(self, data: Any) -> Any:
        if isinstance(data, dict):
            return {
                k: "********" if str(k).lower() in self.SENSITIVE_KEYS else self.scrub(v)
                for k, v in data.items()
            }
        elif isinstance(data, list):
            return [self.scrub(item) for item in data]
        return data

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "funcName": record.funcName,
            "line": record.lineno,
        }

        if hasattr(record, "correlation_id"):
            log_data["correlation_id"] = record.correlation_id
        if hasattr(record, "component"):
            log_data["component"] = record.component

        if hasattr(record, "extra_fields"):
            log_data.update(record.extra_fields)

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        log_data = self.scrub(log_data)

        return json.dumps(log_data, default=str)


class StructuredLogger:
    """
    Wrapper around python's logging that tags every record of one tracker
    cycle with the same correlation id.
    """
    def __init__(
        self,
        name: str,
        component: Optional[str] = None,
        correlation_id: Optional[str] = None
    ):
        self.logger = logging.getLogger(name)
        self.component = component
        self.correlation_id = correlation_id or str(uuid.uuid4())

    def with_new_correlation(self) -> "StructuredLogger":
        return StructuredLogger(self.logger.name, component=self.component)

    def _get_extra(self, extra_fields: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        extra = {
            "correlation_id": self.correlation_id,
        }
        if self.component:
            extra["component"] = self.component

        if extra_fields:
            extra["extra_fields"] = extra_fields

        return extra

    def info(self, msg: str, extra_fields: Optional[Dict[str, Any]] = None):
        self.logger.info(msg, extra=self._get_extra(extra_fields))

    def error(self, msg: str, extra_fields: Optional[Dict[str, Any]] = None, exc_info: bool = False):
        self.logger.error(msg, extra=self._get_extra(extra_fields), exc_info=exc_info)

    def debug(self, msg: str, extra_fields: Optional[Dict[str, Any]] = None):
        self.logger.debug(msg, extra=self._get_extra(extra_fields))


def setup_logging(
    level: int = logging.INFO,
    json_output: bool = True,
    log_file: Optional[str] = "logs/tracker.log"
):
    """
    Configure global logging settings.
    """
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear existing handlers
    root_logger.handlers = []

    console_handler = logging.StreamHandler()
    if json_output:
        console_handler.setFormatter(JsonFormatter())
    else:
        console_handler.setFormatter(logging.Formatter(
            "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
        ))
    root_logger.addHandler(console_handler)

    # File handler (always JSON)
    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(JsonFormatter())
        root_logger.addHandler(file_handler)

    # supabase client logs every request through httpx at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("hpack").setLevel(logging.WARNING)

    logging.info(f"Logging initialized (level={logging.getLevelName(level)}, json={json_output})")
