"""
Clotho - lifecycle orchestration for modular asyncio applications

Starts, stops, pauses, and resumes the modules of an application in dependency
order, with atomic rollback on failure and an Application Log for events
between modules.

Fun fact: Clotho spins the thread, and every module here gets spun up in the
one order that never leaves a dependent hanging.
"""

from clotho.application import (
    Application,
    create,
    init,
    load,
    pause,
    resume,
    start,
    stop,
)
from clotho.kernel.settings import ApplicationSettings
from clotho.module.models import FieldSelector, Module
from clotho.module.txs import enter, exit, only, step
from clotho.transition import ALL

__version__ = "0.1.0"
__all__ = [
    "ALL",
    "Application",
    "ApplicationSettings",
    "FieldSelector",
    "Module",
    "create",
    "start",
    "stop",
    "pause",
    "resume",
    "load",
    "init",
    "enter",
    "exit",
    "only",
    "step",
    "__version__",
]
