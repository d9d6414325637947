"""
Application - lifecycle controller for a system map

This is the primary interface of Clotho. An Application wraps a system map and
serializes every update: each scheduled update runs on the settled result of
the previous one, and a failed or timed-out update leaves the application in
its last known-good state.

Example:
    >>> import clotho
    >>> app = clotho.create({
    ...     "db": {"start": connect_db},
    ...     "api": {"deps": {"db"}, "start": start_api},
    ... })
    >>> await clotho.start(app)          # db first, then api
    >>> await clotho.pause(app)          # api first, then db
    >>> await clotho.resume(app)
    >>> await clotho.stop(app)

Update functions are called with the module's state, the exports of its
dependencies, its key, and the Application:

    def start_api(state, exports, key, app):
        exports["app-log"].on(on_user_created, "user-created")
        return {"server": ...}

Custom lifecycle commands use the transition methods directly:

    def reset(app):
        return app.up([step("reset")], ALL)
"""

import asyncio
import inspect
from collections.abc import Callable, Hashable, Mapping
from typing import Any

from clotho import transition
from clotho.kernel.context import Interceptor
from clotho.kernel.errors import TransitionTimeout
from clotho.kernel.logging import generate_transition_id, get_logger, set_transition_id
from clotho.kernel.metrics import rollbacks_total
from clotho.kernel.settings import ApplicationSettings
from clotho.kernel.timeout import abandon_after
from clotho.module.invariants import find_cycles
from clotho.module.models import (
    FieldSelector,
    Module,
    SystemMap,
    coerce_system_map,
    merge_system_maps,
)
from clotho.module.txs import clear_state, enter, exit, only, step
from clotho.transition import ALL, ModuleKeys

logger = get_logger(__name__)

STARTED = "started"
PAUSED = "paused"

# Called as fn(key, app, old_system_map, new_system_map) after each committed update
Watch = Callable[[Hashable, "Application", SystemMap, SystemMap], Any]
ModuleDefinitions = Mapping[str, Module | Mapping[str, Any]]


async def _apply(update: Callable[[SystemMap], Any], system_map: SystemMap) -> Any:
    result = update(system_map)
    if inspect.isawaitable(result):
        result = await result
    return result


class Application:
    """
    Lifecycle controller

    Holds the current system map and the tail of scheduled updates. Updates
    are scheduling functions: they must be called from a running event loop
    and return an asyncio.Future immediately, so updates apply in call order
    even when the caller does not await them (including updates scheduled from
    inside another update, which run after it).
    """

    def __init__(
        self,
        system_map: ModuleDefinitions,
        settings: ApplicationSettings | None = None,
    ) -> None:
        """
        Initialize Application

        Args:
            system_map: Module key -> module definition
            settings: Timeout and warnings (uses defaults if None)
        """
        self.settings = settings or ApplicationSettings()
        self._state: SystemMap = coerce_system_map(system_map)
        self._tail: asyncio.Task | None = None
        self._watches: dict[Hashable, Watch] = {}
        logger.debug("Application created", modules=sorted(self._state))
        if self.settings.warnings:
            for cycle in find_cycles(self._state):
                logger.warning("Dependency cycle in system map", cycle=cycle)

    # State inspection

    def deref(self) -> SystemMap:
        """Current system map (may be stale while updates are scheduled)"""
        return self._state

    @property
    def value(self) -> SystemMap:
        return self._state

    def add_watch(self, key: Hashable, fn: Watch) -> None:
        """Call `fn(key, app, old, new)` after every committed update"""
        self._watches[key] = fn

    def remove_watch(self, key: Hashable) -> None:
        self._watches.pop(key, None)

    async def then(self, f: Callable[[SystemMap], Any]) -> Any:
        """
        Call `f` with the settled system map once all currently scheduled
        updates finished, and return its (awaited) result
        """
        return await _apply(f, await self._settled(self._tail))

    # Scheduling

    def then_(self, f: Callable[[SystemMap], Any]) -> asyncio.Future:
        """
        Schedule `f` to replace the system map after all scheduled updates

        `f` receives the settled system map and returns the new one (or an
        awaitable resolving to it). If it raises or does not settle within
        `settings.timeout_ms`, the system map is left unchanged and only the
        returned future fails; later updates continue from the previous state.

        Returns:
            Future resolving to the updated system map

        Raises:
            RuntimeError: If called without a running event loop
        """
        loop = asyncio.get_running_loop()
        previous = self._tail
        timeout_ms = self.settings.timeout_ms
        warnings = self.settings.warnings
        result: asyncio.Future = loop.create_future()

        async def advance() -> SystemMap:
            try:
                system_map = await self._settled(previous)
                set_transition_id(generate_transition_id())
                try:
                    updated = await abandon_after(
                        _apply(f, system_map), timeout_ms, "scheduled_update"
                    )
                except Exception as exc:
                    reason = "timeout" if isinstance(exc, TransitionTimeout) else "error"
                    rollbacks_total.labels(reason=reason).inc()
                    if warnings:
                        logger.warning(
                            "System state restored after error",
                            reason=reason,
                            error=str(exc),
                        )
                    if not result.done():
                        result.set_exception(exc)
                    return system_map
                self._commit(updated)
                if not result.done():
                    result.set_result(updated)
                return updated
            except asyncio.CancelledError:
                result.cancel()
                raise

        self._tail = loop.create_task(advance())
        return result

    async def _settled(self, tail: asyncio.Task | None) -> SystemMap:
        if tail is None:
            return self._state
        try:
            return await asyncio.shield(tail)
        except asyncio.CancelledError:
            if not tail.cancelled():
                raise
            return self._state

    def _commit(self, system_map: SystemMap) -> None:
        old, self._state = self._state, system_map
        for key, watch in list(self._watches.items()):
            try:
                watch(key, self, old, system_map)
            except Exception as e:
                logger.error(
                    "Application watch failed",
                    watch=repr(key),
                    error=str(e),
                    exc_info=True,
                )

    # Transitions

    def up(self, txs: list[Interceptor], keys: ModuleKeys = ALL) -> asyncio.Future:
        """
        Schedule `txs` on modules `keys` and all their dependencies

        Dependencies are updated first. A dependency cycle fails the update
        before any module is touched.
        """
        keys = transition.normalize_keys(keys)
        return self.then_(lambda system_map: transition.up(system_map, txs, keys))

    def down(self, txs: list[Interceptor], keys: ModuleKeys = ALL) -> asyncio.Future:
        """Schedule `txs` on modules `keys`, dependents first"""
        keys = transition.normalize_keys(keys)
        return self.then_(lambda system_map: transition.down(system_map, txs, keys))

    def tx(self, txs: list[Interceptor], keys: ModuleKeys = ALL) -> asyncio.Future:
        """Schedule `txs` on exactly modules `keys`"""
        keys = transition.normalize_keys(keys)
        return self.then_(lambda system_map: transition.tx(system_map, txs, keys))

    # Definitions

    def extend(self, modules: ModuleDefinitions) -> asyncio.Future:
        """
        Schedule adding `modules` to the system map

        New modules and fields are added; existing fields are kept.

        Raises:
            pydantic.ValidationError: Immediately, if a definition is invalid
        """
        definitions = coerce_system_map(modules)
        return self.then_(
            lambda system_map: merge_system_maps(system_map, definitions, overwrite=False)
        )

    def override(self, modules: ModuleDefinitions) -> asyncio.Future:
        """
        Schedule merging `modules` into the system map, replacing existing fields

        Raises:
            pydantic.ValidationError: Immediately, if a definition is invalid
        """
        definitions = coerce_system_map(modules)
        return self.then_(
            lambda system_map: merge_system_maps(system_map, definitions, overwrite=True)
        )


def create(
    system_map: ModuleDefinitions, settings: ApplicationSettings | None = None
) -> Application:
    """Wrap `system_map` in a new Application"""
    return Application(system_map, settings)


def start(app: Application, keys: ModuleKeys = ALL) -> asyncio.Future:
    """
    Start modules `keys` (all by default) and their dependencies

    Dependencies start first. A module's `start` runs only if it is not
    tagged "started" yet.
    """
    return app.up([enter(STARTED), step("start", app)], keys)


def stop(app: Application, keys: ModuleKeys = ALL) -> asyncio.Future:
    """
    Stop modules `keys` (all by default), dependents first

    A module's `stop` runs only if it is tagged "started"; without a `stop`
    function its state is cleared.
    """
    return app.down(
        [exit(STARTED), step(FieldSelector(name="stop", default=clear_state), app)],
        keys,
    )


def pause(app: Application, keys: ModuleKeys = ALL) -> asyncio.Future:
    """
    Pause modules `keys` (all by default), dependents first

    A lightweight stop: `pause` runs only for started modules that are not
    paused yet.
    """
    return app.down([only(STARTED), enter(PAUSED), step("pause", app)], keys)


def resume(app: Application, keys: ModuleKeys = ALL) -> asyncio.Future:
    """Resume paused modules `keys` (all by default) and their dependencies"""
    return app.up([exit(PAUSED), step("resume", app)], keys)


def _merge_then_start(
    app: Application, modules: ModuleDefinitions, keys: ModuleKeys, *, overwrite: bool
) -> asyncio.Future:
    definitions = coerce_system_map(modules)
    keys = transition.normalize_keys(keys)

    def merge_and_start(system_map: SystemMap):
        merged = merge_system_maps(system_map, definitions, overwrite=overwrite)
        return transition.up(merged, [enter(STARTED), step("start", app)], keys)

    return app.then_(merge_and_start)


def load(app: Application, modules: ModuleDefinitions) -> asyncio.Future:
    """
    Add `modules` to a running application and start them

    Existing modules are extended, never overridden, and only started when
    not already up. Merging and starting form one update: if a start fails,
    the loaded definitions are rolled back too.
    """
    return _merge_then_start(app, modules, list(modules), overwrite=False)


def init(
    app: Application, config: ModuleDefinitions, keys: ModuleKeys = ALL
) -> asyncio.Future:
    """
    Override module definitions with `config`, then start modules `keys`

    Both happen in one update, so a failed start keeps the previous
    definitions.
    """
    return _merge_then_start(app, config, keys, overwrite=True)
