"""
Application Log module - the `app-log` entry of every system map

The module's state holds an EventEmitter created on start. Dependents receive
its API through exports, e.g. a module's start function can subscribe with
`exports["app-log"].on(listener, "user-created")`.
"""

from collections.abc import Callable, Mapping
from typing import Any

from pydantic import BaseModel

from clotho.log.emitter import EventEmitter
from clotho.log.events import create_factory

EVENT_EMITTER = "event_emitter"


class AppLogApi(BaseModel):
    """
    Application Log API exported to dependent modules

    Attributes:
        on: Subscribe a listener, optionally to one event type
        off: Unsubscribe listeners (all, one everywhere, or one per type)
        put: Emit an event from a payload with `type` and optional `data`/`date`
    """

    on: Callable[..., None]
    off: Callable[..., None]
    put: Callable[[Mapping[str, Any]], Any]

    model_config = {"frozen": True, "arbitrary_types_allowed": True}


def emitter_of(state: Any) -> EventEmitter | None:
    """The EventEmitter held by an app-log state, if started"""
    if isinstance(state, Mapping):
        return state.get(EVENT_EMITTER)
    return None


def start(state: Any, *_: Any) -> dict[str, Any]:
    """Create the EventEmitter, keeping any other state entries"""
    return {**(state or {}), EVENT_EMITTER: EventEmitter(create_factory())}


def stop(state: Any, *_: Any) -> None:
    """Drop every listener and discard the state"""
    emitter = emitter_of(state)
    if emitter is not None:
        emitter.unlisten()
    return None


def export(state: Any) -> AppLogApi | None:
    emitter = emitter_of(state)
    if emitter is None:
        return None
    return AppLogApi(on=emitter.listen, off=emitter.unlisten, put=emitter.emit)


# Default module definition, merged into `app-log` by the inject interceptor
DEFAULT: dict[str, Any] = {"start": start, "stop": stop, "export": export}
