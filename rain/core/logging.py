"""
Logging setup and structured logging utilities

This module provides:

- setup_logging(): console + file handlers for the whole process
- StructuredLogger: JSON-formatted log output for parsing
- log_duration(): context manager for timing operations
- log_search_request(): standard event for log searches
"""
import logging
import json
import os
import time
from typing import Any, Dict, Iterator, Optional
from contextlib import contextmanager

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_FILE_NAME = "backend.log"

# Third-party loggers that are too chatty at INFO
NOISY_LOGGERS = (
    "uvicorn.access",
    "httpx",
    "httpcore",
    "aiosqlite",
    "sqlalchemy",
    "sqlalchemy.engine",
)


def setup_logging(level: str = "INFO", log_dir: Optional[str] = None) -> None:
    """
    Configure the root logger.

    Logs go to stderr and, when log_dir is given, to <log_dir>/backend.log
    without ANSI colouring. Safe to call more than once.
    """
    handlers: list[logging.Handler] = [logging.StreamHandler()]
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        handlers.append(
            logging.FileHandler(os.path.join(log_dir, LOG_FILE_NAME), encoding="utf-8")
        )

    logging.basicConfig(
        level=level.upper(),
        format=LOG_FORMAT,
        handlers=handlers,
        force=True,
    )

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


class StructuredLogger:
    """
    Emits one JSON object per event so log lines can be grepped and parsed.

        events = StructuredLogger(__name__).with_fields(bundle_hash="abc123")
        events.info("Bundle ready", file_count=3)
    """

    def __init__(self, name: str, context: Optional[Dict[str, Any]] = None):
        self.logger = logging.getLogger(name)
        self.context: Dict[str, Any] = dict(context or {})

    def emit(self, level: int, message: str, **fields):
        if not self.logger.isEnabledFor(level):
            return
        payload = {"message": message, **self.context, **fields, "ts": round(time.time(), 3)}
        self.logger.log(level, json.dumps(payload, default=str))

    def info(self, message: str, **fields):
        self.emit(logging.INFO, message, **fields)

    def warning(self, message: str, **fields):
        self.emit(logging.WARNING, message, **fields)

    def error(self, message: str, **fields):
        self.emit(logging.ERROR, message, **fields)

    def with_fields(self, **fields) -> "StructuredLogger":
        """Child logger that adds `fields` to every event"""
        return StructuredLogger(self.logger.name, {**self.context, **fields})


@contextmanager
def log_duration(operation: str, logger: Optional[StructuredLogger] = None, **fields) -> Iterator[Dict[str, Any]]:
    """
    Time the wrapped block and log one event when it ends.

    Yields the event's field dict, so the block can attach results:

        with log_duration("bundle_upload", events, file_count=2) as timing:
            ...
            timing["segments"] = 42

    A failing block is logged at ERROR with the exception text and the
    exception is re-raised.
    """
    events = logger or get_logger("timing")
    started = time.perf_counter()
    try:
        yield fields
    except Exception as e:
        fields["error"] = str(e)
        events.error(
            f"{operation} failed",
            operation=operation,
            duration_ms=round((time.perf_counter() - started) * 1000, 2),
            **fields,
        )
        raise
    events.info(
        f"{operation} completed",
        operation=operation,
        duration_ms=round((time.perf_counter() - started) * 1000, 2),
        **fields,
    )


def log_search_request(
    bundle_hash: str,
    query: str,
    total: int,
    returned: int,
    duration_ms: float,
    timeline: Optional[str] = None,
    logger: Optional[StructuredLogger] = None
):
    """
    Log a log-search request with its result counts.

    Args:
        bundle_hash: External bundle identifier
        query: Trimmed search term
        total: Number of matching segments
        returned: Number of hits in the response
        duration_ms: Query duration in milliseconds
        timeline: Timeline filter, if any
        logger: Optional StructuredLogger (creates one if not provided)
    """
    if logger is None:
        logger = get_logger("search")

    logger.info(
        "Log search completed",
        event="log_search",
        bundle_hash=bundle_hash,
        query_length=len(query),
        timeline=timeline,
        total=total,
        returned=returned,
        duration_ms=round(duration_ms, 2),
    )


def get_logger(name: str) -> StructuredLogger:
    """
    Get a structured logger instance.

        from rain.core.logging import get_logger
        logger = get_logger(__name__)
        logger.info("Something happened", bundle_hash="abc123")
    """
    return StructuredLogger(name)
