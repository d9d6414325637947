"""
Custom exceptions for Clotho

Well-defined error hierarchy enables precise error handling and
clear error messages for module authors.

Fun fact: Clotho is the Fate who spins the thread of life. When the thread
tangles (a dependency cycle!) she refuses to spin at all.
"""

from typing import Any


class ClothoError(Exception):
    """
    Base exception for all Clotho errors

    When raised inside an interceptor hook, the engine records which
    interceptor and stage it escaped from (innermost wins).
    """

    interceptor: str | None = None
    stage: str | None = None

    def annotate(self, interceptor: str | None, stage: str) -> "ClothoError":
        """Record the interceptor and stage unless already known"""
        if self.stage is None:
            self.interceptor = interceptor
            self.stage = stage
        return self


class CyclicDependency(ClothoError):
    """
    Raised when a module transitively depends on itself

    Detected before any module is touched, so no partial update
    is ever applied.
    """

    def __init__(self, target: str, cycle: list[str]) -> None:
        self.target = target
        self.cycle = cycle
        path = " -> ".join([*cycle, target])
        super().__init__(f"Transition aborted due to cyclic dependency: {path}")


class UnknownModule(ClothoError):
    """Raised when a transition targets a module missing from the system map"""

    def __init__(self, key: str) -> None:
        self.key = key
        super().__init__(f"Module {key!r} is not defined in the system map")


class InterceptorError(ClothoError):
    """
    Failure captured while running an interceptor hook

    Wraps the original exception (also available as `__cause__`) together
    with the name of the interceptor and the stage that failed.
    """

    def __init__(
        self, message: str, cause: BaseException, interceptor: str | None, stage: str
    ) -> None:
        self.cause = cause
        self.interceptor = interceptor
        self.stage = stage
        super().__init__(message)
        self.__cause__ = cause

    @classmethod
    def wrap(cls, exc: Exception, interceptor: str | None, stage: str) -> ClothoError:
        """
        Attach diagnostics to `exc` raised by `interceptor` during `stage`

        Foreign exceptions are wrapped; Clotho's own errors are annotated in
        place so callers can still catch them by type.
        """
        if isinstance(exc, ClothoError):
            return exc.annotate(interceptor, stage)
        return cls(str(exc) or type(exc).__name__, exc, interceptor, stage)


class TransitionTimeout(ClothoError):
    """
    Raised when a scheduled transition does not settle in time

    The transition is abandoned: the application keeps its previous
    state, but the underlying computation is not forcibly stopped.
    """

    def __init__(self, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(f"Transition timed out. ({timeout_ms} ms)")


class EventIdNotAllowed(ClothoError):
    """Raised when an event payload already carries an `id`"""

    def __init__(self, payload: dict[str, Any]) -> None:
        self.payload = payload
        super().__init__(
            f"Event payload must not contain `id` (got {payload.get('id')!r}) - "
            "ids are assigned by the event factory"
        )


class InvalidEventId(ClothoError, ValueError):
    """Raised when text cannot be parsed as an EventId"""

    def __init__(self, text: Any) -> None:
        self.text = text
        super().__init__(f"Invalid event id: {text!r}")
