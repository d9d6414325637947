"""
Application Log - pub/sub of Application Events between modules

Fun fact: events emitted while a transition is running are held back until the
system has settled, so listeners only ever observe consistent states.
"""

from clotho.log.emitter import EventEmitter
from clotho.log.events import Event, EventFactory, create_factory
from clotho.log.module import AppLogApi
from clotho.log.txs import APP_LOG

__all__ = [
    "APP_LOG",
    "AppLogApi",
    "Event",
    "EventEmitter",
    "EventFactory",
    "create_factory",
]
