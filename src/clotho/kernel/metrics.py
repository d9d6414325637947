"""
Prometheus metrics collection for Clotho.

Provides observability into transitions, module steps, and the Application Log.
"""

import time
from collections.abc import Awaitable, Callable
from functools import wraps
from typing import ParamSpec, TypeVar

from prometheus_client import Counter, Gauge, Histogram

# ============================================================================
# Transition Metrics
# ============================================================================

transitions_total = Counter(
    "clotho_transitions_total",
    "Total number of transitions applied to a system map",
    ["direction", "status"],  # direction: up, down, tx; status: success, failure
)

transition_duration_seconds = Histogram(
    "clotho_transition_duration_seconds",
    "Duration of transitions in seconds",
    ["direction"],
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5),
)

rollbacks_total = Counter(
    "clotho_rollbacks_total",
    "Total number of scheduled updates rolled back to the previous state",
    ["reason"],  # reason: error, timeout
)

cycles_detected_total = Counter(
    "clotho_cycles_detected_total",
    "Total number of dependency cycles detected during resolution",
)

# ============================================================================
# Module Metrics
# ============================================================================

module_steps_total = Counter(
    "clotho_module_steps_total",
    "Total number of interceptor stages executed",
    ["stage", "status"],  # stage: enter, leave, error
)

# ============================================================================
# Application Log Metrics
# ============================================================================

events_emitted_total = Counter(
    "clotho_events_emitted_total",
    "Total number of Application Events emitted",
    ["event_type"],
)

events_buffered = Gauge(
    "clotho_events_buffered",
    "Number of Application Events currently buffered by paused emitters",
)

# ============================================================================
# Helper Functions
# ============================================================================

P = ParamSpec("P")
R = TypeVar("R")


def track_transition(
    direction: str,
) -> Callable[[Callable[P, Awaitable[R]]], Callable[P, Awaitable[R]]]:
    """
    Decorator to track transition duration and outcome.

    Args:
        direction: Direction of the transition (up, down, tx)

    Returns:
        Decorated coroutine function that tracks duration
    """

    def decorator(func: Callable[P, Awaitable[R]]) -> Callable[P, Awaitable[R]]:
        @wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> R:
            start = time.perf_counter()
            status = "success"
            try:
                return await func(*args, **kwargs)
            except Exception:
                status = "failure"
                raise
            finally:
                duration = time.perf_counter() - start
                transition_duration_seconds.labels(direction=direction).observe(duration)
                transitions_total.labels(direction=direction, status=status).inc()

        return wrapper

    return decorator
