"""
Tests for Transitions - module ordering, cycle safety, and atomicity

Fun fact: none of these tests need teardown. A transition returns a new
system map and never touches the one it was given.
"""

import asyncio

import pytest

from clotho import transition
from clotho.kernel.context import Context, Interceptor
from clotho.kernel.errors import CyclicDependency, InterceptorError, UnknownModule
from clotho.log.txs import APP_LOG
from clotho.module import txs as module_txs
from clotho.module.models import coerce_system_map
from tests.helpers import appending


def recording(calls: list[str]) -> Interceptor:
    """Interceptor recording the module it runs for"""

    def enter(ctx: Context) -> Context:
        calls.append(ctx.current)
        return ctx

    return Interceptor(name="record", enter=enter)


@pytest.fixture
def system_map():
    return coerce_system_map(
        {
            "module-a": {"deps": {"module-c"}},
            "module-b": {"deps": {"module-a"}},
            "module-c": {},
            "module-d": {},
        }
    )


class TestEnqueueModules:
    """Test module selection and ordering"""

    def test_appends_to_existing_modules(self) -> None:
        ctx = Context(
            app=coerce_system_map({k: {} for k in "abcd"}),
            modules=("a", "b"),
        )

        ctx = transition.enqueue_modules(["c", "d"]).enter(ctx)

        assert ctx.modules == ("a", "b", "c", "d")

    def test_includes_dependency_chain(self, system_map) -> None:
        ctx = transition.enqueue_modules(["module-b"], include_deps=True).enter(
            Context(app=system_map)
        )

        assert ctx.modules == ("module-c", "module-a", "module-b")

    def test_without_deps_keeps_dependency_order(self, system_map) -> None:
        ctx = transition.enqueue_modules(["module-b", "module-a"]).enter(
            Context(app=system_map)
        )

        assert ctx.modules == ("module-a", "module-b")

    def test_reverse(self, system_map) -> None:
        ctx = transition.enqueue_modules(
            ["module-a", "module-b", "module-c"], reverse=True
        ).enter(Context(app=system_map))

        assert ctx.modules == ("module-b", "module-a", "module-c")

    def test_all_modules(self, system_map) -> None:
        ctx = transition.enqueue_modules(transition.ALL).enter(Context(app=system_map))

        assert sorted(ctx.modules) == sorted(system_map)

    def test_single_key(self, system_map) -> None:
        ctx = transition.enqueue_modules("module-d").enter(Context(app=system_map))

        assert ctx.modules == ("module-d",)


class TestExecuteTxs:
    """Test per-module execution"""

    @pytest.mark.asyncio
    async def test_execute_each_module_in_order(self) -> None:
        calls: list[str] = []
        ctx = Context(
            app=coerce_system_map({k: {} for k in ("module-a", "module-b", "module-c")}),
            modules=("module-a", "module-b", "module-c"),
        )

        ctx = await transition.execute_txs([recording(calls)]).enter(ctx)

        assert calls == ["module-a", "module-b", "module-c"]
        assert ctx.modules == ()

    @pytest.mark.asyncio
    async def test_async_steps_keep_module_order(self) -> None:
        calls: list[str] = []

        async def enter(ctx: Context) -> Context:
            if ctx.current == "module-a":
                await asyncio.sleep(0.01)
            calls.append(ctx.current)
            return ctx

        ctx = Context(
            app=coerce_system_map({"module-a": {}, "module-b": {}}),
            modules=("module-a", "module-b"),
        )

        await transition.execute_txs([Interceptor(enter=enter)]).enter(ctx)

        assert calls == ["module-a", "module-b"]


@pytest.mark.asyncio
async def test_execute_returns_updated_system_map() -> None:
    def enter(ctx: Context) -> Context:
        return ctx.update_module("my-module", state="tested")

    system_map = coerce_system_map({"my-module": {"state": "initial state"}})

    result = await transition.execute(system_map, [Interceptor(enter=enter)])

    assert result["my-module"].state == "tested"
    assert system_map["my-module"].state == "initial state"


@pytest.mark.asyncio
async def test_up_visits_dependencies_first(system_map) -> None:
    calls: list[str] = []

    result = await transition.up(system_map, [recording(calls)], ["module-b"])

    assert calls == [APP_LOG, "module-c", "module-a", "module-b"]
    assert APP_LOG in result


@pytest.mark.asyncio
async def test_up_all_modules(system_map) -> None:
    calls: list[str] = []

    await transition.up(system_map, [recording(calls)])

    assert calls[0] == APP_LOG
    assert sorted(calls) == sorted([APP_LOG, *system_map])
    assert calls.index("module-c") < calls.index("module-a") < calls.index("module-b")


@pytest.mark.asyncio
async def test_down_visits_requested_modules_dependents_first(system_map) -> None:
    calls: list[str] = []

    await transition.down(system_map, [recording(calls)], ["module-c", "module-b", "module-a"])

    assert calls == ["module-b", "module-a", "module-c"]


@pytest.mark.asyncio
async def test_down_all_modules_stops_app_log_last(system_map) -> None:
    calls: list[str] = []

    await transition.down(system_map, [recording(calls)])

    assert calls[-1] == APP_LOG
    assert calls.index("module-b") < calls.index("module-a") < calls.index("module-c")


@pytest.mark.asyncio
async def test_tx_visits_exactly_requested_modules(system_map) -> None:
    calls: list[str] = []

    await transition.tx(system_map, [recording(calls)], ["module-b", "module-d"])

    assert calls == ["module-b", "module-d"]


@pytest.mark.asyncio
async def test_cycle_aborts_before_any_step() -> None:
    """Test that a dependency cycle fails without calling any update function"""
    started: list[str] = []

    def start(state, exports, key):
        started.append(key)
        return state

    system_map = coerce_system_map(
        {
            "module-a": {"deps": {"module-b"}, "start": start},
            "module-b": {"deps": {"module-a"}, "start": start},
            "module-c": {"start": start},
        }
    )

    with pytest.raises(CyclicDependency):
        await transition.up(system_map, [module_txs.step("start")])

    assert started == []


@pytest.mark.asyncio
async def test_unknown_module_is_rejected(system_map) -> None:
    with pytest.raises(UnknownModule):
        await transition.up(system_map, [], ["ghost"])


@pytest.mark.asyncio
async def test_failure_leaves_input_untouched() -> None:
    """Test that a failing module discards the updates of earlier modules"""
    system_map = coerce_system_map(
        {
            "module-a": {"state": ["init-a"], "start": appending("start-a")},
            "module-b": {
                "deps": {"module-a"},
                "state": ["init-b"],
                "start": lambda *_: 1 / 0,
            },
        }
    )

    with pytest.raises(InterceptorError) as exc_info:
        await transition.up(system_map, [module_txs.step("start")])

    assert isinstance(exc_info.value.cause, ZeroDivisionError)
    assert system_map["module-a"].state == ["init-a"]
    assert APP_LOG not in system_map


@pytest.mark.asyncio
async def test_events_are_buffered_until_transition_settles() -> None:
    """Test that listeners only see events after every module was updated"""
    seen: list[tuple[str, list[str]]] = []
    switched: list[str] = []

    def start_listener(state, exports, key):
        exports[APP_LOG].on(lambda event: seen.append((event.type, list(switched))))
        return state

    def switch_emitter(state, exports, key):
        exports[APP_LOG].put({"type": "hello"})
        switched.append(key)
        return state

    def switch_late(state, exports, key):
        switched.append(key)
        return state

    system_map = coerce_system_map(
        {
            "listener": {"start": start_listener},
            "emitter": {"deps": {"listener"}, "switch": switch_emitter},
            "late": {"deps": {"emitter"}, "switch": switch_late},
        }
    )
    system_map = await transition.up(system_map, [module_txs.step("start")])

    await transition.tx(system_map, [module_txs.step("switch")], ["emitter", "late"])

    assert seen == [("hello", ["emitter", "late"])]
