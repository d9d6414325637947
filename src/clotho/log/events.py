"""
Application Events - facts published through the Application Log

Events are immutable. Every event carries a logical-clock EventId assigned by
the factory, so events of one application instance are totally ordered by id.

Fun fact: because the id starts with a base-36 timestamp, sorting ids as plain
strings sorts events by time - no parsing required.
"""

from collections.abc import Mapping
from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field

from clotho.kernel.errors import EventIdNotAllowed
from clotho.kernel.ids import EventId, EventIdGenerator, IdGenerator, generate_instance_id
from clotho.kernel.time import RealTimeProvider, TimeProvider


class Event(BaseModel):
    """
    Application Event

    `data` is opaque to the log and must be treated as immutable by listeners.
    """

    id: EventId = Field(
        ...,
        description="Unique event identifier (logical clock, time-ordered)",
    )

    type: str = Field(
        ...,
        description="Event type listeners subscribe to, e.g. 'user-created'",
    )

    date: datetime = Field(
        ...,
        description="UTC timestamp when the event was created",
    )

    data: Any = Field(
        default=None,
        description="Event-specific data",
    )

    model_config = {"frozen": True, "arbitrary_types_allowed": True}


class EventFactory:
    """
    Creates events, assigning ids and default dates

    Payloads may set `type` (required), `date`, and `data`. Ids are never
    accepted from callers.
    """

    def __init__(self, time_provider: TimeProvider, id_generator: IdGenerator) -> None:
        self.time_provider = time_provider
        self.id_generator = id_generator

    def create(self, payload: Mapping[str, Any]) -> Event:
        """
        Create an event from `payload`

        Raises:
            EventIdNotAllowed: If `payload` contains `id`
            pydantic.ValidationError: If `type` is missing or fields are invalid
        """
        if "id" in payload:
            raise EventIdNotAllowed(dict(payload))
        date = payload.get("date") or self.time_provider.now()
        return Event(
            id=self.id_generator.next_id(),
            type=payload.get("type"),
            date=date,
            data=payload.get("data"),
        )


def create_factory(
    time_provider: TimeProvider | None = None, instance_id: str | None = None
) -> EventFactory:
    """
    Build an event factory for a new application instance

    Both the event dates and the logical clock read from `time_provider`.
    A random instance id is generated unless one is given.
    """
    time_provider = time_provider or RealTimeProvider()
    generator = EventIdGenerator(
        time_provider.epoch_ms, instance_id or generate_instance_id()
    )
    return EventFactory(time_provider, generator)
