"""
Event Emitter - in-process pub/sub with a pause buffer

Listeners subscribe to one event type or to all of them. Listeners are called
synchronously in subscription order. While paused, emitted events are buffered
and delivered in order on resume.

An emitter is also paused while it delivers an event, so events emitted by a
listener are delivered after the current event reached every listener.

Fun fact: the pause buffer is what lets a module emit "started" during a
transition without listeners ever seeing a half-started system.
"""

from collections import deque
from collections.abc import Callable, Mapping
from typing import Any

from clotho.kernel.logging import get_logger
from clotho.kernel.metrics import events_buffered, events_emitted_total
from clotho.log.events import Event, EventFactory

logger = get_logger(__name__)

Listener = Callable[[Event], Any]


class EventEmitter:
    """
    Synchronous event emitter

    Subscribing to all events adds the listener to every type registered so
    far, and to the default list consulted for types nobody subscribed to
    specifically. A type's list is seeded from the default list when its first
    specific listener subscribes.
    """

    def __init__(self, factory: EventFactory) -> None:
        self.factory = factory
        self._listeners: dict[str, list[Listener]] = {}
        self._any: list[Listener] = []
        self._buffer: deque[Event] = deque()
        self._paused = False

    @property
    def is_paused(self) -> bool:
        return self._paused

    @property
    def buffered(self) -> int:
        """Number of events waiting for resume"""
        return len(self._buffer)

    def listen(self, listener: Listener, event_type: str | None = None) -> None:
        """
        Subscribe `listener` to events of `event_type`, or to all events

        Args:
            listener: Called with each matching Event
            event_type: Event type to subscribe to (None means every type)
        """
        if event_type is None:
            for listeners in self._listeners.values():
                listeners.append(listener)
            self._any.append(listener)
        else:
            self._listeners.setdefault(event_type, list(self._any)).append(listener)
        logger.debug("Listener subscribed", event_type=event_type or "*")

    def unlisten(
        self, listener: Listener | None = None, event_type: str | None = None
    ) -> None:
        """
        Unsubscribe listeners

        - unlisten(): remove every listener
        - unlisten(listener): remove `listener` from every event type
        - unlisten(listener, event_type): remove `listener` from `event_type` only
        - unlisten(event_type=...): silence `event_type` entirely
        """
        if listener is None and event_type is None:
            self._listeners.clear()
            self._any.clear()
        elif listener is None:
            self._listeners[event_type] = []
        elif event_type is None:
            for key, listeners in self._listeners.items():
                self._listeners[key] = [f for f in listeners if f != listener]
            self._any = [f for f in self._any if f != listener]
        elif event_type in self._listeners:
            self._listeners[event_type] = [
                f for f in self._listeners[event_type] if f != listener
            ]
        logger.debug("Listener unsubscribed", event_type=event_type or "*")

    def emit(self, payload: Mapping[str, Any]) -> Event:
        """
        Create an event from `payload` and deliver it (or buffer it while paused)

        Returns:
            The created Event

        Raises:
            EventIdNotAllowed: If `payload` contains `id`
        """
        event = self.factory.create(payload)
        events_emitted_total.labels(event_type=event.type).inc()
        if self._paused:
            self._buffer.append(event)
            events_buffered.inc()
            logger.debug("Event buffered", event_type=event.type, event_id=str(event.id))
            return event
        self.pause()
        try:
            self._fire(event)
        finally:
            self.resume()
        return event

    def pause(self) -> None:
        """Buffer emitted events until `resume`"""
        self._paused = True

    def resume(self) -> None:
        """Deliver buffered events in emission order, then stop buffering"""
        while self._buffer:
            event = self._buffer.popleft()
            events_buffered.dec()
            self._fire(event)
        self._paused = False

    def _fire(self, event: Event) -> None:
        listeners = self._listeners.get(event.type, self._any)
        # listeners may subscribe or unsubscribe while being called
        for listener in list(listeners):
            try:
                listener(event)
            except Exception as e:
                logger.error(
                    "Event listener failed",
                    event_type=event.type,
                    event_id=str(event.id),
                    error=str(e),
                    exc_info=True,
                )
