"""
Interceptor engine - suspendable enter/leave/error pipelines over a Context

The Context expresses the current state of execution in plain data. For a
scope `n`, interceptors are taken from `n.queue` and pushed onto `n.stack`
while applying their `enter` hook. Once the queue is empty, interceptors are
popped from the stack, calling `leave` in reverse order. When a hook raises,
the failure is captured as `n.error` and the remaining queued interceptors are
still moved onto the stack without entering, so the unwind calls the `error`
hook of everything that was scheduled, in reverse.

Each hook receives the Context and returns an updated Context, or an awaitable
resolving to one. Hooks may adjust queue or stack to alter execution; returning
a Context without `n.error` settles an error.

Several scopes can run over one Context at the same time. A transition runs
under one scope while each module's chain runs under another, both sharing the
system map carried by the record.

Fun fact: the interceptor pattern is the bracket discipline (acquire, use,
release) unrolled into data, which is what lets the chain grow at runtime.
"""

import inspect
from collections.abc import Callable, Iterable
from typing import Any

from pydantic import BaseModel, Field

from clotho.kernel.errors import InterceptorError
from clotho.kernel.logging import get_logger
from clotho.kernel.metrics import module_steps_total

logger = get_logger(__name__)

Hook = Callable[..., Any]  # (Context) -> Context | Awaitable[Context]


class Interceptor(BaseModel):
    """
    Named bundle of optional enter/leave/error hooks

    Missing hooks behave like identity.
    """

    name: str | None = None
    enter: Hook | None = None
    leave: Hook | None = None
    error: Hook | None = None

    model_config = {"frozen": True, "arbitrary_types_allowed": True}


class Scope(BaseModel):
    """Pending work and error state of one pipeline"""

    queue: tuple[Interceptor, ...] = ()
    stack: tuple[Interceptor, ...] = ()  # top of stack is the last element
    error: Exception | None = None

    model_config = {"frozen": True, "arbitrary_types_allowed": True}


EMPTY_SCOPE = Scope()


class Context(BaseModel):
    """
    Execution record shared by all scopes of one transition

    Attributes:
        scopes: Pipeline state per scope name
        app: System map under transition (module key -> module)
        current: Module the per-module scope is working on
        modules: Module keys still waiting for the transition
        txs: Interceptor chain applied to every module

    Extra fields are allowed, so interceptors can carry their own data.
    """

    scopes: dict[str, Scope] = Field(default_factory=dict)
    app: dict[str, Any] = Field(default_factory=dict)
    current: str | None = None
    modules: tuple[str, ...] = ()
    txs: tuple[Interceptor, ...] = ()

    model_config = {"frozen": True, "extra": "allow", "arbitrary_types_allowed": True}

    def evolve(self, **changes: Any) -> "Context":
        """Return a copy with `changes` applied"""
        return self.model_copy(update=changes)

    def scope(self, n: str) -> Scope:
        return self.scopes.get(n, EMPTY_SCOPE)

    def with_scope(self, n: str, **changes: Any) -> "Context":
        """Return a copy with fields of scope `n` replaced"""
        scope = self.scope(n).model_copy(update=changes)
        return self.evolve(scopes={**self.scopes, n: scope})

    def module(self, key: str) -> Any:
        return self.app[key]

    def update_module(self, key: str, **changes: Any) -> "Context":
        """Return a copy whose system map has module `key` updated"""
        module = self.app[key].model_copy(update=changes)
        return self.evolve(app={**self.app, key: module})


def is_done(ctx: Context, n: str) -> bool:
    """True if scope `n` has nothing left to enter or leave"""
    scope = ctx.scope(n)
    return not scope.queue and not scope.stack


def has_error(ctx: Context, n: str) -> bool:
    """True if scope `n` is unwinding an error"""
    return ctx.scope(n).error is not None


def enqueue(ctx: Context, n: str, txs: Iterable[Interceptor]) -> Context:
    """Schedule interceptors `txs` for execution within scope `n`"""
    return ctx.with_scope(n, queue=ctx.scope(n).queue + tuple(txs))


def stack(ctx: Context, n: str, txs: Iterable[Interceptor]) -> Context:
    """Push interceptors `txs` onto the stack of scope `n` (last one on top)"""
    return ctx.with_scope(n, stack=ctx.scope(n).stack + tuple(txs))


def terminate(ctx: Context, n: str) -> Context:
    """Drop all pending interceptors of scope `n` and go straight to leave/error"""
    return ctx.with_scope(n, queue=())


def fail(ctx: Context, n: str, error: Exception) -> Context:
    """Put scope `n` into its error stage"""
    return ctx.with_scope(n, error=error)


def clear_error(ctx: Context, n: str) -> Context:
    """Settle the error of scope `n`; remaining interceptors will `leave` normally"""
    return ctx.with_scope(n, error=None)


async def _run_hook(
    ctx: Context, n: str, hook: Hook | None, name: str | None, stage: str
) -> Context:
    if hook is None:
        return ctx
    try:
        result = hook(ctx)
        if inspect.isawaitable(result):
            result = await result
        if not isinstance(result, Context):
            raise TypeError(
                f"Interceptor {name!r} returned {type(result).__name__} "
                f"from {stage} instead of a Context"
            )
    except Exception as exc:
        module_steps_total.labels(stage=stage, status="failure").inc()
        logger.debug(
            "Interceptor failed",
            scope=n,
            interceptor=name,
            stage=stage,
            error=str(exc),
        )
        return fail(ctx, n, InterceptorError.wrap(exc, name, stage))
    module_steps_total.labels(stage=stage, status="success").inc()
    return result


async def enter_1(ctx: Context, n: str) -> Context:
    """
    Execute the next `enter` step of scope `n`

    While an error is set the interceptor is moved onto the stack without
    entering, so its `error` hook still runs during the unwind. No-op when
    the queue is empty.
    """
    scope = ctx.scope(n)
    if not scope.queue:
        return ctx
    tx, *rest = scope.queue
    ctx = ctx.with_scope(n, queue=tuple(rest), stack=scope.stack + (tx,))
    if scope.error is not None:
        return ctx
    return await _run_hook(ctx, n, tx.enter, tx.name, "enter")


async def leave_1(ctx: Context, n: str) -> Context:
    """
    Execute the next `leave` (or `error`, while unwinding) step of scope `n`

    No-op when the stack is empty.
    """
    scope = ctx.scope(n)
    if not scope.stack:
        return ctx
    tx = scope.stack[-1]
    ctx = ctx.with_scope(n, stack=scope.stack[:-1])
    if scope.error is not None:
        return await _run_hook(ctx, n, tx.error, tx.name, "error")
    return await _run_hook(ctx, n, tx.leave, tx.name, "leave")


async def execute_1(ctx: Context, n: str) -> Context:
    """Execute the next `enter`, `leave`, or `error` step of scope `n`"""
    scope = ctx.scope(n)
    if scope.queue:
        return await enter_1(ctx, n)
    if scope.stack:
        return await leave_1(ctx, n)
    return ctx


async def execute_all(ctx: Context, n: str) -> Context:
    """Execute all remaining steps of scope `n`"""
    while not is_done(ctx, n):
        ctx = await execute_1(ctx, n)
    return ctx


async def execute(ctx: Context, n: str, txs: Iterable[Interceptor]) -> Context:
    """
    Apply the interceptor chain `txs` to `ctx` within scope `n`

    Returns:
        The updated Context

    Raises:
        The captured error of scope `n` if it was not settled by an
        `error` hook (ClothoError, wrapping foreign exceptions)
    """
    ctx = await execute_all(enqueue(ctx, n, txs), n)
    error = ctx.scope(n).error
    if error is not None:
        raise error
    return ctx
