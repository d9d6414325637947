"""
Event id generation based on a logical clock

An EventId is a fixed-width, lowercase base-36 string:

    [ 8 chars timestamp ][ 12 chars application instance ][ 4 chars counter ]

Fixed-width fields make plain string comparison equal to chronological order,
and the counter keeps ids from one generator strictly increasing even when
several ids are requested within the same millisecond.

Fun fact: Lamport published logical clocks in 1978 - a timestamp-plus-counter
is the simplest useful descendant of his idea.
"""

import re
import secrets
import string
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from functools import total_ordering
from typing import Protocol

from clotho.kernel.errors import InvalidEventId

ALPHABET = string.digits + string.ascii_lowercase
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

DATE_PREFIX_LENGTH = 8
INSTANCE_ID_LENGTH = 12
COUNTER_SUFFIX_LENGTH = 4

_EVENT_ID_PATTERN = re.compile(
    rf"[0-9a-z]{{{DATE_PREFIX_LENGTH + INSTANCE_ID_LENGTH + COUNTER_SUFFIX_LENGTH}}}"
)


def to_base36(value: int, width: int) -> str:
    """Encode non-negative `value` as base-36, left-padded with zeros to `width`"""
    if value < 0:
        raise ValueError(f"Cannot encode negative value {value}")
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(ALPHABET[remainder])
    return "".join(reversed(digits)).rjust(width, "0")


def date_to_prefix(epoch_ms: int) -> str:
    """Encode milliseconds since the epoch into an 8-char date prefix"""
    prefix = to_base36(epoch_ms, DATE_PREFIX_LENGTH)
    if len(prefix) != DATE_PREFIX_LENGTH:
        raise ValueError(f"Timestamp {epoch_ms} does not fit into the date prefix")
    return prefix


def counter_to_suffix(counter: int) -> str:
    """Encode the logical counter into a 4-char suffix"""
    suffix = to_base36(counter, COUNTER_SUFFIX_LENGTH)
    if len(suffix) != COUNTER_SUFFIX_LENGTH:
        raise ValueError(f"Counter {counter} does not fit into the counter suffix")
    return suffix


def generate_instance_id() -> str:
    """Generate a random 12-char application instance id"""
    return "".join(secrets.choice(ALPHABET) for _ in range(INSTANCE_ID_LENGTH))


@total_ordering
class EventId:
    """
    Immutable, orderable event identifier

    Equality, ordering and hashing all derive from the encoded string.
    """

    __slots__ = ("_id", "_hash")

    def __init__(self, value: str) -> None:
        self._id = value
        self._hash: int | None = None

    @classmethod
    def parse(cls, text: str) -> "EventId":
        """Parse `text` into an EventId, normalizing to lowercase"""
        if not isinstance(text, str):
            raise InvalidEventId(text)
        value = text.lower()
        if not _EVENT_ID_PATTERN.fullmatch(value):
            raise InvalidEventId(text)
        return cls(value)

    @property
    def date_prefix(self) -> str:
        return self._id[:DATE_PREFIX_LENGTH]

    @property
    def date(self) -> datetime:
        """Creation time encoded in the id (UTC, millisecond precision)"""
        return _EPOCH + timedelta(milliseconds=int(self.date_prefix, 36))

    @property
    def app(self) -> str:
        """Application instance the id was generated by"""
        return self._id[DATE_PREFIX_LENGTH : DATE_PREFIX_LENGTH + INSTANCE_ID_LENGTH]

    @property
    def counter_suffix(self) -> str:
        return self._id[DATE_PREFIX_LENGTH + INSTANCE_ID_LENGTH :]

    @property
    def counter(self) -> int:
        return int(self.counter_suffix, 36)

    def __str__(self) -> str:
        return self._id

    def __repr__(self) -> str:
        return f"EventId({self._id!r})"

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, EventId):
            return NotImplemented
        return self._id == other._id

    def __lt__(self, other: object) -> bool:
        if not isinstance(other, EventId):
            return NotImplemented
        return self._id < other._id

    def __hash__(self) -> int:
        if self._hash is None:
            self._hash = hash(self._id)
        return self._hash


class IdGenerator(Protocol):
    """Protocol for event id generation strategies"""

    def next_id(self) -> EventId:
        """Generate a new unique EventId"""
        ...


class EventIdGenerator:
    """
    Logical-clock id generator for one application instance

    Keeps a single (last timestamp, counter) pair. Confined to the event loop
    thread, so no locking is needed.
    """

    def __init__(self, clock: Callable[[], int], instance_id: str) -> None:
        """
        Args:
            clock: Returns milliseconds since the epoch (should be monotonic)
            instance_id: 12-char application instance id
        """
        if len(instance_id) != INSTANCE_ID_LENGTH:
            raise ValueError(
                f"Instance id must have {INSTANCE_ID_LENGTH} characters, got {instance_id!r}"
            )
        self.clock = clock
        self.instance_id = instance_id.lower()
        self._last: tuple[int, int] | None = None

    def next_count(self) -> tuple[int, int]:
        """Advance the logical clock and return (timestamp, counter)"""
        now = self.clock()
        if self._last is not None and self._last[0] == now:
            self._last = (now, self._last[1] + 1)
        else:
            self._last = (now, 0)
        return self._last

    def next_id(self) -> EventId:
        timestamp, counter = self.next_count()
        return EventId(
            date_to_prefix(timestamp) + self.instance_id + counter_to_suffix(counter)
        )
