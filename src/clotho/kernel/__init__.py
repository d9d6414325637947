"""
Kernel - interceptor engine and shared infrastructure

The kernel runs suspendable interceptor chains over an immutable Context and
provides what every other layer builds upon: errors, event ids, time, logging,
metrics, settings, and timeouts.

Fun fact: Clotho's sisters are Lachesis, who measures the thread, and Atropos,
who cuts it. Here the timeout plays Atropos.
"""

from clotho.kernel.context import Context, Interceptor, Scope
from clotho.kernel.errors import (
    ClothoError,
    CyclicDependency,
    EventIdNotAllowed,
    InterceptorError,
    InvalidEventId,
    TransitionTimeout,
    UnknownModule,
)
from clotho.kernel.ids import EventId, EventIdGenerator, generate_instance_id
from clotho.kernel.settings import ApplicationSettings
from clotho.kernel.time import RealTimeProvider, TestTimeProvider, TimeProvider

__all__ = [
    # Engine
    "Context",
    "Interceptor",
    "Scope",
    # IDs
    "EventId",
    "EventIdGenerator",
    "generate_instance_id",
    # Time
    "TimeProvider",
    "RealTimeProvider",
    "TestTimeProvider",
    # Settings
    "ApplicationSettings",
    # Errors
    "ClothoError",
    "CyclicDependency",
    "UnknownModule",
    "InterceptorError",
    "TransitionTimeout",
    "EventIdNotAllowed",
    "InvalidEventId",
]
