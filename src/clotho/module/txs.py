"""
Module Interceptors - building blocks of lifecycle transitions

Each transition runs a chain of these interceptors once per module, under the
per-module scope, while the transition itself runs under its own scope on the
same Context. Tag guards decide whether a module takes part at all; `step`
performs the actual state update.
"""

import inspect
from typing import Any

from clotho.kernel import context
from clotho.kernel.context import Context, Interceptor
from clotho.kernel.logging import get_logger
from clotho.module.models import Module, Selector, exports, select, with_plugins

logger = get_logger(__name__)

SCOPE = "clotho.module"


async def execute(ctx: Context, key: str, txs: tuple[Interceptor, ...]) -> Context:
    """Execute interceptors `txs` with `key` as the current module"""
    return await context.execute(ctx.evolve(current=key), SCOPE, txs)


def terminate(ctx: Context) -> Context:
    """Skip the remaining interceptors for the current module"""
    return context.terminate(ctx, SCOPE)


def current_module(ctx: Context) -> Module:
    return ctx.module(ctx.current)


def _terminate_unless_tagged(ctx: Context, tag: str) -> Context:
    if tag not in current_module(ctx).tags:
        return terminate(ctx)
    return ctx


def enter(tag: str) -> Interceptor:
    """
    Returns an interceptor that terminates if the module is already tagged
    with `tag`, and adds `tag` on leave.
    """

    def on_enter(ctx: Context) -> Context:
        if tag in current_module(ctx).tags:
            return terminate(ctx)
        return ctx

    def on_leave(ctx: Context) -> Context:
        tags = current_module(ctx).tags | {tag}
        return ctx.update_module(ctx.current, tags=tags)

    return Interceptor(name=f"enter:{tag}", enter=on_enter, leave=on_leave)


def exit(tag: str) -> Interceptor:
    """
    Returns an interceptor that terminates unless the module is tagged with
    `tag`, and removes `tag` on leave.
    """

    def on_leave(ctx: Context) -> Context:
        tags = current_module(ctx).tags - {tag}
        return ctx.update_module(ctx.current, tags=tags)

    return Interceptor(
        name=f"exit:{tag}",
        enter=lambda ctx: _terminate_unless_tagged(ctx, tag),
        leave=on_leave,
    )


def only(tag: str) -> Interceptor:
    """Returns an interceptor that terminates unless the module is tagged with `tag`"""
    return Interceptor(
        name=f"only:{tag}",
        enter=lambda ctx: _terminate_unless_tagged(ctx, tag),
    )


def step(selector: Selector, *args: Any) -> Interceptor:
    """
    Returns an interceptor that updates the current module's state

    The update function is picked by `selector` from the plugin-extended
    module and called with the current state, the exports of the module's
    dependencies, the module key, and any additional `args`. Its return value
    (awaited if necessary) becomes the new state. When no function is
    selected, the state is left alone.
    """

    async def on_enter(ctx: Context) -> Context:
        key = ctx.current
        module = ctx.module(key)
        update = select(with_plugins(module), selector)
        if update is None:
            return ctx
        logger.debug("Updating module state", module=key, selector=str(selector))
        state = update(module.state, exports(ctx.app, module.deps), key, *args)
        if inspect.isawaitable(state):
            state = await state
        return ctx.update_module(key, state=state)

    return Interceptor(name="step", enter=on_enter)


def clear_state(state: Any, *_: Any) -> None:
    """Update function that drops the module state"""
    return None
