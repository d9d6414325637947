"""
Tests for Module Domain Models - coercion, merging, selectors, plugins, exports
"""

import pytest
from pydantic import ValidationError

from clotho.module.models import (
    FieldSelector,
    Module,
    coerce_system_map,
    exports,
    merge_system_maps,
    select,
    with_plugins,
)


def start(state, *_):
    return "started"


def stop(state, *_):
    return None


class TestModule:
    """Test module definitions"""

    def test_defaults(self) -> None:
        module = Module()

        assert module.deps == frozenset()
        assert module.tags == frozenset()
        assert module.state is None
        assert module.plugins == ()

    def test_coerce_mapping(self) -> None:
        module = Module.coerce({"deps": ["db"], "start": start, "switch": stop})

        assert module.deps == frozenset({"db"})
        assert module.start is start
        assert module.switch is stop

    def test_coerce_keeps_module_instances(self) -> None:
        module = Module(state=1)
        assert Module.coerce(module) is module

    def test_modules_are_immutable(self) -> None:
        module = Module(state=1)
        with pytest.raises(ValidationError):
            module.state = 2

    def test_invalid_definition(self) -> None:
        with pytest.raises(ValidationError):
            Module.coerce({"deps": 42})

    def test_defined_fields(self) -> None:
        module = Module.coerce({"state": "x", "secret": "123"})
        assert module.defined_fields() == {"state": "x", "secret": "123"}


class TestMerge:
    """Test extend and override semantics"""

    def test_merge_without_overwrite_keeps_existing(self) -> None:
        module = Module.coerce({"state": "original"})

        merged = module.merge({"state": "new", "stop": stop}, overwrite=False)

        assert merged.state == "original"
        assert merged.stop is stop

    def test_merge_with_overwrite_replaces(self) -> None:
        module = Module.coerce({"secret": "replace me!", "start": start})

        merged = module.merge({"secret": "123"}, overwrite=True)

        assert merged.secret == "123"
        assert merged.start is start

    def test_merge_system_maps_adds_new_modules(self) -> None:
        system_map = coerce_system_map({"a": {}})

        merged = merge_system_maps(system_map, {"b": {"state": 1}}, overwrite=False)

        assert set(merged) == {"a", "b"}
        assert merged["b"].state == 1
        assert set(system_map) == {"a"}


class TestSelect:
    """Test update function selection"""

    def test_string_selector(self) -> None:
        assert select(Module(start=start), "start") is start

    def test_missing_field_selects_nothing(self) -> None:
        assert select(Module(), "switch") is None

    def test_field_selector_default(self) -> None:
        selector = FieldSelector(name="stop", default=stop)

        assert select(Module(), selector) is stop
        assert select(Module(stop=start), selector) is start

    @pytest.mark.parametrize("name", ["copy", "json", "dict", "validate"])
    def test_model_methods_are_not_fields(self, name: str) -> None:
        """Test that BaseModel attributes never stand in for a missing field"""
        assert select(Module(state="s"), name) is None
        assert select(Module(), FieldSelector(name=name, default=stop)) is stop

    def test_extra_field_shadowing_model_method(self) -> None:
        module = Module.coerce({"validate": start})

        assert select(module, "validate") is start
        assert module.defined_fields()["validate"] is start

    def test_callable_selector(self) -> None:
        module = Module.coerce({"reset": start})
        assert select(module, lambda m: m.field("reset")) is start


class TestPlugins:
    """Test plugin folding"""

    def test_plugins_wrap_in_order(self) -> None:
        def outer(fn):
            return lambda *args: f"outer({fn(*args)})"

        def inner(fn):
            return lambda *args: f"inner({fn(*args)})"

        module = Module(start=start, plugins=({"start": inner}, {"start": outer}))

        assert with_plugins(module).start(None) == "outer(inner(started))"

    def test_plugins_skip_fields_the_module_lacks(self) -> None:
        module = Module(start=start, plugins=({"stop": lambda fn: fn, "start": lambda fn: fn},))

        extended = with_plugins(module)

        assert extended.stop is None
        assert extended.start is start

    def test_plugins_wrap_extra_fields(self) -> None:
        module = Module.coerce(
            {"switch": start, "plugins": [{"switch": lambda fn: lambda *a: "wrapped"}]}
        )

        assert with_plugins(module).switch(None) == "wrapped"

    def test_without_plugins_module_is_unchanged(self) -> None:
        module = Module(start=start)
        assert with_plugins(module) is module


class TestExports:
    """Test dependency exports"""

    def test_exports_apply_export_to_state(self) -> None:
        system_map = coerce_system_map(
            {
                "db": {"state": {"url": "db://"}, "export": lambda s: s["url"]},
                "cache": {"state": "warm"},
            }
        )

        assert exports(system_map, frozenset({"db", "cache"})) == {
            "cache": None,
            "db": "db://",
        }

    def test_exports_use_plugins(self) -> None:
        system_map = coerce_system_map(
            {
                "db": {
                    "state": 1,
                    "export": lambda s: s,
                    "plugins": [{"export": lambda fn: lambda s: fn(s) + 1}],
                }
            }
        )

        assert exports(system_map, frozenset({"db"})) == {"db": 2}
