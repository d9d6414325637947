"""
Test Helper Functions - call tracking and module builders

Lifecycle tests mostly assert on the order in which hooks and update functions
ran, so these helpers record calls into a shared list.
"""

from typing import Any

from clotho.kernel.context import Context, Interceptor


def tracking_interceptor(calls: list[str], name: str, fail_on: str | None = None) -> Interceptor:
    """
    Builder for an interceptor recording "<name>:<stage>" for every hook call

    Args:
        calls: List the calls are appended to
        name: Interceptor name
        fail_on: Stage ("enter", "leave", "error") that raises after recording
    """

    def hook(stage: str):
        def run(ctx: Context) -> Context:
            calls.append(f"{name}:{stage}")
            if stage == fail_on:
                raise RuntimeError(f"{name} failed on {stage}")
            return ctx

        return run

    return Interceptor(
        name=name,
        enter=hook("enter"),
        leave=hook("leave"),
        error=hook("error"),
    )


def appending(label: str):
    """
    Builder for an update function appending `label` to a list state

    Example:
        >>> module = {"state": [], "start": appending("start")}
    """

    def update(state: Any, *_: Any) -> list[Any]:
        return [*(state or []), label]

    return update


def failing(message: str):
    """Builder for an update function that always raises RuntimeError"""

    def update(state: Any, *_: Any) -> Any:
        raise RuntimeError(message)

    return update
