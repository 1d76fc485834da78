from __future__ import annotations

import datetime as dt
import json
import logging
import os
import sys
import uuid
from typing import Any

from loguru import logger as loguru_logger

from grant_sync.core.time_utils import UTC

# Attributes every LogRecord carries; anything else came in through ``extra``.
_STANDARD_FIELDS = frozenset(
    {
        "args",
        "msg",
        "name",
        "levelno",
        "levelname",
        "pathname",
        "filename",
        "module",
        "exc_info",
        "exc_text",
        "stack_info",
        "lineno",
        "funcName",
        "created",
        "msecs",
        "relativeCreated",
        "thread",
        "threadName",
        "processName",
        "process",
        "taskName",
        "getMessage",
        "message",
    }
)

_TIMING_FIELDS = frozenset({"duration_ms", "latency_ms", "delay_seconds", "elapsed_seconds"})

_NOISY_LOGGERS = ("httpx", "httpcore", "apscheduler.executors.default", "peewee")


def _extra_fields(record: logging.LogRecord) -> dict[str, Any]:
    return {
        key: value
        for key, value in record.__dict__.items()
        if not key.startswith("_") and key not in _STANDARD_FIELDS
    }


class EnhancedJsonFormatter(logging.Formatter):
    """JSON formatter that groups timing fields and keeps correlation ids at the top level."""

    def __init__(self, include_location: bool = True) -> None:
        super().__init__()
        self.include_location = include_location
        self.hostname = os.uname().nodename if hasattr(os, "uname") else "unknown"

    def format(self, record: logging.LogRecord) -> str:
        base: dict[str, Any] = {
            "timestamp": dt.datetime.fromtimestamp(record.created, tz=UTC).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "hostname": self.hostname,
        }

        if self.include_location:
            base.update(
                {
                    "module": record.module,
                    "function": record.funcName,
                    "line": record.lineno,
                }
            )

        if record.exc_info:
            base["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": self.formatException(record.exc_info),
            }

        timing: dict[str, Any] = {}
        extra: dict[str, Any] = {}
        for key, value in _extra_fields(record).items():
            if key in base:
                continue
            if key in _TIMING_FIELDS:
                timing[key] = value
            elif key in ("correlation_id", "cid"):
                base["correlation_id"] = value
            else:
                extra[key] = value

        if timing:
            base["timing"] = timing
        if extra:
            base["extra"] = extra

        return json.dumps(
            base, ensure_ascii=False, default=self._json_serializer, separators=(",", ":")
        )

    def _json_serializer(self, obj: Any) -> str:
        if isinstance(obj, dt.datetime):
            return obj.isoformat()
        if hasattr(obj, "__dict__"):
            return f"<{obj.__class__.__name__}>"
        return str(obj)


class LoguruInterceptHandler(logging.Handler):
    """Forward stdlib log records, including their ``extra`` fields, to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        level: int | str
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        loguru_logger.bind(logger_name=record.name, **_extra_fields(record)).opt(
            depth=6, exception=record.exc_info
        ).log(level, record.getMessage())


def setup_json_logging(
    level: str = "INFO",
    *,
    use_loguru: bool = True,
    log_file: str | None = None,
    max_file_size: str = "50 MB",
    retention: str = "14 days",
) -> None:
    """Configure structured JSON logging for the sync engine.

    With ``use_loguru`` (the default) stdlib records are routed into loguru
    sinks that serialize to JSON; otherwise a stdlib handler with
    :class:`EnhancedJsonFormatter` is installed.

    Args:
        level: Log level name.
        use_loguru: Route records through loguru.
        log_file: Optional path for a rotating file sink.
        max_file_size: Rotation size for the loguru file sink.
        retention: Retention period for rotated loguru files.
    """
    lvl = getattr(logging, level.upper(), logging.INFO)
    root = logging.getLogger()
    root.handlers.clear()
    root.setLevel(lvl)

    if use_loguru:
        loguru_logger.remove()
        loguru_logger.add(sys.stdout, level=level.upper(), serialize=True, enqueue=True)
        if log_file:
            loguru_logger.add(
                log_file,
                level=level.upper(),
                serialize=True,
                rotation=max_file_size,
                retention=retention,
                compression="gz",
                enqueue=True,
            )
        root.addHandler(LoguruInterceptHandler())
    else:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(EnhancedJsonFormatter())
        root.addHandler(console_handler)
        if log_file:
            from logging.handlers import RotatingFileHandler

            file_handler = RotatingFileHandler(
                log_file, maxBytes=50 * 1024 * 1024, backupCount=5
            )
            file_handler.setFormatter(EnhancedJsonFormatter())
            root.addHandler(file_handler)

    for noisy in _NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(max(lvl, logging.WARNING))

    logging.getLogger(__name__).info(
        "logging_initialized",
        extra={"level": level.upper(), "use_loguru": use_loguru, "log_file": log_file},
    )


def generate_correlation_id() -> str:
    """Generate a short correlation ID for tracing one sync pass across logs."""
    return uuid.uuid4().hex[:12]


def truncate_log_content(content: str | None, max_length: int = 1000) -> str | None:
    """Truncate large payloads before they are attached to log records."""
    if not content or len(content) <= max_length:
        return content
    return content[: max_length - 3] + "..."
