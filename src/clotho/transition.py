"""
Transitions - applying interceptor chains to the modules of a system map

A transition runs under its own scope and, for every selected module, runs the
module chain `txs` under the per-module scope. Module keys are resolved into a
dependency-ordered list before any module is touched, so a dependency cycle
aborts the transition without side effects.

Every transition injects the Application Log and pauses its events until the
system has settled.

Fun fact: a failed transition needs no undo logic. The system map is a value;
the caller simply keeps the one it had.
"""

import enum
from collections.abc import Iterable, Sequence
from typing import Union

from clotho.kernel import context
from clotho.kernel.context import Context, Interceptor
from clotho.kernel.logging import LogOperation, get_logger
from clotho.kernel.metrics import track_transition
from clotho.log import txs as log_txs
from clotho.module import txs as module_txs
from clotho.module.invariants import dependency_chain
from clotho.module.models import SystemMap, coerce_system_map

logger = get_logger(__name__)

SCOPE = "clotho.transition"


class Keys(enum.Enum):
    ALL = "all"


# Select every module of the system map (resolved after the app-log is injected)
ALL = Keys.ALL

ModuleKeys = Union[Keys, str, Iterable[str]]


def normalize_keys(keys: ModuleKeys) -> Union[Keys, list[str]]:
    """Turn a single key or an iterable of keys into a list, keeping ALL"""
    if keys is ALL:
        return ALL
    if isinstance(keys, str):
        return [keys]
    return list(keys)


def resolve_keys(system_map: SystemMap, keys: ModuleKeys) -> list[str]:
    keys = normalize_keys(keys)
    return list(system_map) if keys is ALL else keys


def enqueue_modules(
    keys: ModuleKeys, *, include_deps: bool = False, reverse: bool = False
) -> Interceptor:
    """
    Returns an interceptor appending modules `keys` to the transition

    Modules are always ordered so dependencies come first. Unless
    `include_deps`, only the given modules are kept. With `reverse`, the order
    is flipped so dependents come first.

    Raises (from the interceptor):
        CyclicDependency: If a selected module transitively depends on itself
    """

    def on_enter(ctx: Context) -> Context:
        requested = resolve_keys(ctx.app, keys)
        chain = dependency_chain(ctx.app, requested)
        if not include_deps:
            selected = set(requested)
            chain = [key for key in chain if key in selected]
        if reverse:
            chain.reverse()
        return ctx.evolve(modules=ctx.modules + tuple(chain))

    return Interceptor(name="enqueue-modules", enter=on_enter)


def execute_txs(txs: Sequence[Interceptor]) -> Interceptor:
    """Returns an interceptor applying `txs` to every enqueued module, in order"""

    async def on_enter(ctx: Context) -> Context:
        ctx = ctx.evolve(txs=ctx.txs + tuple(txs))
        while ctx.modules:
            key, *rest = ctx.modules
            ctx = await module_txs.execute(ctx.evolve(modules=tuple(rest)), key, ctx.txs)
        return ctx

    return Interceptor(name="execute-txs", enter=on_enter)


async def execute(system_map: SystemMap, txs: Sequence[Interceptor]) -> SystemMap:
    """
    Run interceptors `txs` under the transition scope

    Returns:
        The updated system map (the input is never modified)
    """
    ctx = Context(app=coerce_system_map(system_map))
    ctx = await context.execute(ctx, SCOPE, txs)
    return ctx.app


@track_transition("up")
async def up(
    system_map: SystemMap, txs: Sequence[Interceptor], keys: ModuleKeys = ALL
) -> SystemMap:
    """
    Apply `txs` to modules `keys` and all of their dependencies

    Dependencies are updated before the modules depending on them.
    """
    keys = normalize_keys(keys)
    with LogOperation(logger, "transition_up", keys="all" if keys is ALL else keys):
        return await execute(
            system_map,
            [
                log_txs.inject,
                log_txs.pause,
                enqueue_modules(keys, include_deps=True),
                execute_txs(txs),
            ],
        )


@track_transition("down")
async def down(
    system_map: SystemMap, txs: Sequence[Interceptor], keys: ModuleKeys = ALL
) -> SystemMap:
    """
    Apply `txs` to modules `keys`, dependents first

    No dependencies are added. Dependents among `keys` are updated before the
    modules they depend on.
    """
    keys = normalize_keys(keys)
    with LogOperation(logger, "transition_down", keys="all" if keys is ALL else keys):
        return await execute(
            system_map,
            [
                log_txs.inject,
                log_txs.pause,
                enqueue_modules(keys, reverse=True),
                execute_txs(txs),
            ],
        )


@track_transition("tx")
async def tx(
    system_map: SystemMap, txs: Sequence[Interceptor], keys: ModuleKeys = ALL
) -> SystemMap:
    """
    Apply `txs` to exactly modules `keys`

    No dependencies are added, but dependencies among `keys` are still
    updated before the modules depending on them.
    """
    keys = normalize_keys(keys)
    with LogOperation(logger, "transition_tx", keys="all" if keys is ALL else keys):
        return await execute(
            system_map,
            [
                log_txs.inject,
                log_txs.pause,
                enqueue_modules(keys),
                execute_txs(txs),
            ],
        )
