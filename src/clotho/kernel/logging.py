"""
Structured logging for Clotho

Every log line written while a scheduled update runs carries the id of that
update, so the lines of one transition (and of the nested transitions it
schedules) can be grepped apart. Module state and event data are opaque to
Clotho and are redacted before they reach a log line.

Fun fact: contextvars follow asyncio tasks, so each update on the tail keeps
its own transition id without any explicit plumbing.
"""

import contextvars
import logging
import os
import secrets
import sys
import time
from typing import Any

import structlog

_transition_id: contextvars.ContextVar[str] = contextvars.ContextVar(
    "clotho_transition_id", default=""
)

REDACTED = "***REDACTED***"

# Opaque payloads owned by module authors
REDACTED_FIELDS = frozenset({"state", "data", "payload", "exports"})


def generate_transition_id() -> str:
    """Random 11-char URL-safe id for one scheduled update"""
    return secrets.token_urlsafe(8)


def set_transition_id(transition_id: str) -> None:
    _transition_id.set(transition_id)


def add_transition_id(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """structlog processor stamping the current transition id"""
    tid = _transition_id.get()
    if tid:
        event_dict.setdefault("transition_id", tid)
    return event_dict


def _renderers(json_output: bool) -> list[structlog.types.Processor]:
    if json_output:
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.processors.ExceptionRenderer(), structlog.dev.ConsoleRenderer()]


def configure_logging(*, json_output: bool = False, log_level: str = "INFO") -> None:
    """
    Route Clotho's structured logs through the stdlib root logger

    Args:
        json_output: One JSON object per line instead of the console renderer
        log_level: Name of the minimum level to emit
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=log_level.upper(),
    )
    logging.getLogger("asyncio").setLevel(logging.WARNING)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_logger_name,
            structlog.stdlib.add_log_level,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_transition_id,
            *_renderers(json_output),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def tracebacks_enabled() -> bool:
    """Tracebacks are logged unless CLOTHO_ENV is 'production'"""
    return os.getenv("CLOTHO_ENV", "development").lower() != "production"


def redact_context(context: dict[str, Any]) -> dict[str, Any]:
    """
    Replace opaque module payloads with a placeholder

    Example:
        >>> redact_context({"state": {"conn": "..."}, "module": "db"})
        {"state": "***REDACTED***", "module": "db"}
    """
    return {key: REDACTED if key in REDACTED_FIELDS else value for key, value in context.items()}


class LogOperation:
    """
    Log the start and outcome of a transition, with its duration

    Example:
        with LogOperation(logger, "transition_up", keys=["db"]):
            ...
    """

    def __init__(self, logger: structlog.stdlib.BoundLogger, operation: str, **context: Any):
        self.logger = logger.bind(operation=operation, **redact_context(context))
        self.operation = operation
        self.started_at = time.perf_counter()

    @property
    def elapsed_seconds(self) -> float:
        return time.perf_counter() - self.started_at

    def __enter__(self) -> "LogOperation":
        self.started_at = time.perf_counter()
        self.logger.debug(f"{self.operation} started")
        return self

    def __exit__(self, exc_type: Any, exc_val: BaseException | None, exc_tb: Any) -> None:
        duration_ms = round(self.elapsed_seconds * 1000, 2)
        if exc_val is None:
            self.logger.info(f"{self.operation} completed", duration_ms=duration_ms)
            return
        self.logger.error(
            f"{self.operation} failed",
            duration_ms=duration_ms,
            error=str(exc_val),
            exc_info=tracebacks_enabled(),
        )
