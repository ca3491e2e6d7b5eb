"""
Centralized structured logging for the relay hub.
Uses Python's standard logging with JSON formatting for production.

Three sinks:
- stdout, JSON in production and colored text in development
- an append-only text log file with one timestamped line per record
- the session id of the connection being served, via CorrelationIdFilter
"""

import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from shared.config.settings import settings


def _format_extra(record: logging.LogRecord) -> str:
    extra_data = getattr(record, "extra_data", None)
    if not extra_data:
        return ""
    return " (" + " | ".join(f"{k}={v}" for k, v in extra_data.items()) + ")"


class StructuredFormatter(logging.Formatter):
    """
    JSON formatter for structured logging.
    Outputs logs in a format easily parseable by log aggregation tools.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_data: dict[str, Any] = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        session_id = getattr(record, "session_id", None)
        if session_id and session_id != "-":
            log_data["session_id"] = session_id

        # Add extra fields if present
        if hasattr(record, "extra_data") and record.extra_data:
            log_data["data"] = record.extra_data

        # Add exception info if present
        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        # Add source location in debug mode
        if settings.debug:
            log_data["source"] = {
                "file": record.filename,
                "line": record.lineno,
                "function": record.funcName,
            }

        return json.dumps(log_data, default=str)


class DevelopmentFormatter(logging.Formatter):
    """
    Human-readable formatter for development.
    """

    COLORS = {
        "DEBUG": "\033[36m",     # Cyan
        "INFO": "\033[32m",      # Green
        "WARNING": "\033[33m",   # Yellow
        "ERROR": "\033[31m",     # Red
        "CRITICAL": "\033[35m",  # Magenta
    }
    RESET = "\033[0m"
    DIM = "\033[2m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.COLORS.get(record.levelname, self.RESET)
        timestamp = datetime.now().strftime("%H:%M:%S")

        session_id = getattr(record, "session_id", None)
        if session_id and session_id != "-":
            session_str = f"{self.DIM}[{session_id[:8]}]{self.RESET} "
        else:
            session_str = ""

        message = (
            f"{color}[{timestamp}] {record.levelname:8}{self.RESET} "
            f"{session_str}{record.name}: {record.getMessage()}"
        )
        message += _format_extra(record)

        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"

        return message


class LogFileFormatter(logging.Formatter):
    """
    Plain line formatter for the append-only log file.

    One line per record: ``[2024-05-01T10:00:00.000+00:00] LEVEL message (k=v)``.
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(
            timespec="milliseconds"
        )
        line = f"[{timestamp}] {record.levelname} {record.getMessage()}{_format_extra(record)}"
        if record.exc_info:
            # Keep the file line-oriented
            line += " | " + self.formatException(record.exc_info).replace("\n", " \\n ")
        return line


class StructuredLogger(logging.Logger):
    """
    Custom logger that supports structured data.
    """

    def _log_with_data(
        self,
        level: int,
        msg: str,
        args: tuple,
        exc_info: Any = None,
        extra: dict | None = None,
        **kwargs: Any,
    ) -> None:
        """Log with optional structured data."""
        if not self.isEnabledFor(level):
            return
        if extra is None:
            extra = {}
        extra["extra_data"] = kwargs if kwargs else None
        super()._log(level, msg, args, exc_info=exc_info, extra=extra)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.DEBUG, msg, args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.INFO, msg, args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log_with_data(logging.WARNING, msg, args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        exc_info = kwargs.pop("exc_info", None)
        self._log_with_data(logging.ERROR, msg, args, exc_info=exc_info, **kwargs)

    def critical(self, msg: str, *args: Any, **kwargs: Any) -> None:
        exc_info = kwargs.pop("exc_info", None)
        self._log_with_data(logging.CRITICAL, msg, args, exc_info=exc_info, **kwargs)


# Set custom logger class
logging.setLoggerClass(StructuredLogger)


def _build_file_handler(log_level: int) -> logging.Handler | None:
    """
    Create the append-only file handler.

    Returns None when the log directory cannot be created; the hub then
    logs to stdout only. Write errors after that point are reported by
    ``Handler.handleError`` and never reach the caller.
    """
    log_dir = Path(settings.log_dir)
    try:
        log_dir.mkdir(parents=True, exist_ok=True)
    except OSError as e:
        print(f"Log directory {log_dir} unavailable: {e}", file=sys.stderr)
        return None

    handler = logging.FileHandler(
        log_dir / settings.log_file_name,
        mode="a",
        encoding="utf-8",
        delay=True,
    )
    handler.setLevel(log_level)
    handler.setFormatter(LogFileFormatter())
    return handler


def setup_logging() -> None:
    """
    Configure logging for the application.
    Call this once at application startup.
    """
    # Import here to avoid circular imports
    from shared.infrastructure.correlation import CorrelationIdFilter

    log_level = logging.DEBUG if settings.debug else logging.INFO
    correlation_filter = CorrelationIdFilter()

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(log_level)
    handler.addFilter(correlation_filter)

    # Use appropriate formatter based on environment
    if settings.environment == "production":
        formatter = StructuredFormatter()
    else:
        formatter = DevelopmentFormatter()
    handler.setFormatter(formatter)

    # Configure root logger
    root = logging.getLogger()
    root.setLevel(log_level)
    root.handlers.clear()
    root.addHandler(handler)

    file_handler = _build_file_handler(log_level)
    if file_handler is not None:
        file_handler.addFilter(correlation_filter)
        root.addHandler(file_handler)

    # Reduce noise from third-party libraries
    logging.getLogger("uvicorn.access").setLevel(logging.WARNING)
    logging.getLogger("uvicorn.error").setLevel(logging.INFO)


def get_logger(name: str) -> StructuredLogger:
    """
    Get a logger instance with the given name.

    Usage:
        from shared.config.logging import get_logger
        logger = get_logger(__name__)

        logger.info("Role assigned", role="Aid", session_id=session.session_id)
        logger.error("Relay failed", error=str(e), exc_info=True)
    """
    return logging.getLogger(name)  # type: ignore


# Pre-configured logger for the hub process
hub_logger = get_logger("assist_hub")
