"""Structured logging for blockgate (structlog).

Every outbound status/logout call binds a request_id (also sent as the
X-Request-ID header) so a poll, the server log line it produced and the
resulting state transition can be correlated.

Both entry points configure logging from the environment:

  LOG_LEVEL  - DEBUG/INFO/WARNING/ERROR (default INFO, DEBUG when DEBUG=true)
  JSON_LOGS  - "true" for JSON lines (server default), "false" for console
  DEBUG      - "true" lowers the default level to DEBUG
"""

import logging
import os
import sys
import time
from contextvars import ContextVar
from typing import Any, Optional

import structlog
from structlog.types import EventDict, Processor

request_id_var: ContextVar[Optional[str]] = ContextVar("request_id", default=None)


def add_request_id(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    request_id = request_id_var.get()
    if request_id:
        event_dict["request_id"] = request_id
    return event_dict


def add_timestamp(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["timestamp"] = time.time()
    return event_dict


def configure_logging(log_level: str = "INFO", json_output: bool = True) -> None:
    """Configure structlog for the process.

    Args:
        log_level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        json_output: JSON lines if True, coloured console output otherwise.

    Output goes to stderr so CLI stdout stays clean for the gate text.
    """
    processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_request_id,
        add_timestamp,
        structlog.processors.add_log_level,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]
    if json_output:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer(colors=sys.stderr.isatty()))

    level = getattr(logging, log_level.upper(), logging.INFO)
    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=False,
    )


def configure_logging_from_env(json_default: bool = True) -> str:
    """Apply LOG_LEVEL / JSON_LOGS / DEBUG. Returns the effective level name."""
    debug = os.getenv("DEBUG", "false").lower() == "true"
    log_level = os.getenv("LOG_LEVEL", "DEBUG" if debug else "INFO")
    json_logs = os.getenv("JSON_LOGS", str(json_default).lower()).lower() == "true"
    configure_logging(log_level=log_level, json_output=json_logs)
    return log_level


def get_logger(name: str = "blockgate") -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


class PerformanceLogger:
    """Context manager timing one operation.

    Failures are logged at ERROR; completions at DEBUG, or WARNING once the
    duration crosses ``slow_ms``.
    """

    def __init__(
        self,
        operation: str,
        logger: Optional[structlog.stdlib.BoundLogger] = None,
        slow_ms: float = 50.0,
    ):
        self.operation = operation
        self.logger = logger or get_logger()
        self.slow_ms = slow_ms
        self.start_time: float = 0
        self.end_time: float = 0

    def __enter__(self) -> "PerformanceLogger":
        self.start_time = time.perf_counter()
        return self

    def __exit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        self.end_time = time.perf_counter()
        duration_ms = round((self.end_time - self.start_time) * 1000, 2)

        if exc_type is not None:
            self.logger.error(
                f"{self.operation} failed",
                operation=self.operation,
                duration_ms=duration_ms,
                error=str(exc_val),
            )
            return
        log_method = self.logger.warning if duration_ms > self.slow_ms else self.logger.debug
        log_method(f"{self.operation} completed", operation=self.operation, duration_ms=duration_ms)

    @property
    def duration_ms(self) -> float:
        if self.end_time == 0:
            return (time.perf_counter() - self.start_time) * 1000
        return (self.end_time - self.start_time) * 1000


def set_request_id(request_id: str) -> None:
    request_id_var.set(request_id)


def clear_request_id() -> None:
    request_id_var.set(None)


configure_logging()
