"""
Structured logging setup for oidc-gate.
"""

import logging
import json
import sys
from datetime import datetime, timezone
from typing import Any, Optional

_RESERVED_ATTRS = {
    'name', 'msg', 'args', 'levelname', 'levelno', 'pathname',
    'filename', 'module', 'lineno', 'funcName', 'created',
    'msecs', 'relativeCreated', 'thread', 'threadName',
    'processName', 'process', 'getMessage', 'exc_info',
    'exc_text', 'stack_info', 'taskName', 'message'
}


class JSONFormatter(logging.Formatter):
    """JSON log formatter for structured logging."""

    def format(self, record: logging.LogRecord) -> str:
        """Format log record as JSON."""
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_entry["exception"] = self.formatException(record.exc_info)

        # Extra fields passed via `extra=`
        for key, value in record.__dict__.items():
            if key not in _RESERVED_ATTRS:
                log_entry[key] = value

        return json.dumps(log_entry, default=str)


def setup_logging(
    level: str = "INFO",
    format_type: str = "json",
    log_file: Optional[str] = None
) -> None:
    """
    Setup application logging.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format_type: Format type (json, text)
        log_file: Optional log file path
    """
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    log_level = getattr(logging, level.upper(), logging.INFO)
    root_logger.setLevel(log_level)

    if format_type == "json":
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)
    root_logger.addHandler(console_handler)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    logging.getLogger("uvicorn.access").disabled = True
    logging.getLogger("httpx").setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """Get a logger with the specified name."""
    return logging.getLogger(name)


class AuthLogger:
    """Structured authentication event logger."""

    def __init__(self, logger: Optional[logging.Logger] = None, logger_name: str = "oidc_gate.auth"):
        self.logger = logger or get_logger(logger_name)

    def log_authenticated(self, scheme: Optional[str], ticket: Any):
        """Log a successful callback authentication."""
        principal = getattr(ticket, "principal", None)
        self.logger.info(
            "Authentication successful",
            extra={
                "scheme": scheme,
                "subject": getattr(principal, "subject", None),
                "event": "authenticated"
            }
        )

    def log_authentication_failure(self, scheme: Optional[str], error: BaseException):
        """Log a failed callback authentication."""
        self.logger.warning(
            "Authentication failed",
            extra={
                "scheme": scheme,
                "error_type": type(error).__name__,
                "reason": str(error),
                "event": "authentication_failed"
            }
        )

    def log_challenge(self, scheme: Optional[str], redirect_url: str):
        """Log a redirect to the authorization endpoint."""
        self.logger.info(
            "Challenge issued",
            extra={
                "scheme": scheme,
                "redirect_url": redirect_url.split("?", 1)[0],
                "event": "challenge"
            }
        )

    def log_sign_out(self, scheme: Optional[str], redirect_url: str):
        """Log a redirect to the end session endpoint."""
        self.logger.info(
            "Remote sign-out issued",
            extra={
                "scheme": scheme,
                "redirect_url": redirect_url.split("?", 1)[0],
                "event": "sign_out"
            }
        )

    def log_request_handlers(self, request_id: str, path: str, schemes: list):
        """Log which handlers were built for a request."""
        self.logger.debug(
            "Handlers initialized",
            extra={
                "request_id": request_id,
                "path": path,
                "schemes": schemes,
                "event": "handlers_initialized"
            }
        )
