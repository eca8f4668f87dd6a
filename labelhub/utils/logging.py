"""
Logging configuration for LabelHub.
JSON lines in production, colourised text with inline context locally.
"""

import logging
import sys
import json
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from labelhub.config import settings, is_local_environment


# Attributes every LogRecord carries; anything else came in through `extra`
_RECORD_ATTRS = frozenset(
    logging.LogRecord("", 0, "", 0, "", (), None).__dict__
) | {"message", "asctime"}


def extra_fields(record: logging.LogRecord) -> Dict[str, Any]:
    """Context attached to a record through `extra`."""
    return {key: value for key, value in record.__dict__.items() if key not in _RECORD_ATTRS}


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, for log aggregation in production."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}"
        }
        entry.update(extra_fields(record))

        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)

        return json.dumps(entry, ensure_ascii=False, default=str)


class LocalFormatter(logging.Formatter):
    """Readable coloured lines for local development."""

    LEVEL_COLORS = {
        "DEBUG": "\033[36m",
        "INFO": "\033[32m",
        "WARNING": "\033[33m",
        "ERROR": "\033[31m",
        "CRITICAL": "\033[35m"
    }
    RESET = "\033[0m"

    def format(self, record: logging.LogRecord) -> str:
        color = self.LEVEL_COLORS.get(record.levelname, self.RESET)
        clock = datetime.fromtimestamp(record.created).strftime("%H:%M:%S.%f")[:-3]

        line = f"{color}[{clock}] {record.levelname:8s}{self.RESET} {record.name:20s} {record.getMessage()}"

        context = extra_fields(record)
        if context:
            line += "  " + " ".join(f"{key}={value}" for key, value in context.items())

        if record.exc_info:
            line += "\n" + self.formatException(record.exc_info)

        return line


def setup_logging() -> None:
    """Configure the root logger for the current environment."""

    level = getattr(logging, settings.log_level.upper(), logging.INFO)

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(LocalFormatter() if is_local_environment() else StructuredFormatter())

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(level)
    root_logger.addHandler(handler)

    if not is_local_environment():
        for noisy in ("uvicorn", "uvicorn.access", "motor", "pymongo"):
            logging.getLogger(noisy).setLevel(logging.WARNING)

    logger.info(f"Logging configured (level {settings.log_level}, environment {settings.environment.value})")


# Application logger instance
logger = logging.getLogger("labelhub")


def _log_event(level: int, message: str, **fields: Any) -> None:
    logger.log(level, message, extra={key: value for key, value in fields.items() if value is not None})


def log_request(method: str, path: str, status_code: int, duration_ms: float, **kwargs) -> None:
    """Log a finished HTTP request; client errors warn, server errors fail."""
    if status_code >= 500:
        level, message = logging.ERROR, "HTTP request failed"
    elif status_code >= 400:
        level, message = logging.WARNING, "HTTP client error"
    else:
        level, message = logging.INFO, "HTTP request completed"

    _log_event(level, message, request_method=method, request_path=path,
               response_status=status_code, response_time_ms=duration_ms, **kwargs)


def log_ingest_progress(dataset_id: str, file_index: int, total_files: int, **kwargs) -> None:
    """Log one stored file of an upload batch."""
    _log_event(logging.INFO, "Ingest progress", dataset_id=dataset_id,
               file_index=file_index, total_files=total_files, **kwargs)


def log_database_operation(operation: str, collection: str, duration_ms: float,
                           count: Optional[int] = None, **kwargs) -> None:
    _log_event(logging.DEBUG, "Database operation", db_operation=operation, db_collection=collection,
               operation_time_ms=round(duration_ms, 2), result_count=count, **kwargs)


def log_storage_operation(operation: str, blob_ref: str, size_bytes: Optional[int] = None,
                          duration_ms: Optional[float] = None, **kwargs) -> None:
    _log_event(logging.DEBUG, "Storage operation", storage_operation=operation, blob_ref=blob_ref,
               file_size_bytes=size_bytes,
               operation_time_ms=round(duration_ms, 2) if duration_ms is not None else None, **kwargs)
