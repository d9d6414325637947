"""
Module Domain Models - definitions that make up a system map

A module is a unit of application functionality: declared dependencies, an
opaque state owned by the module author, lifecycle update functions, an export
function, and plugins wrapping any of those functions.

Fun fact: the system map is treated as one immutable value. A transition never
patches it; it builds a new one, which is what makes rollback free.
"""

from collections.abc import Callable, Mapping
from typing import Any, Union

from pydantic import BaseModel, Field

# Update functions are called as fn(state, exports, key, *args) -> state | Awaitable[state]
UpdateFn = Callable[..., Any]
ExportFn = Callable[[Any], Any]
Plugin = dict[str, Callable[..., Any]]


class Module(BaseModel):
    """
    Module definition together with its current lifecycle state

    Additional fields (e.g. `switch`, `reset`) are allowed so custom lifecycle
    commands can select their own update functions.

    Attributes:
        deps: Keys of modules this module depends on
        state: Opaque state, replaced by the result of each update function
        tags: Lifecycle markers currently active (e.g. "started", "paused")
        start/stop/pause/resume: Lifecycle update functions
        export: Function of `state` returning what dependents receive
        plugins: Ordered overlays wrapping functions of this module
    """

    deps: frozenset[str] = Field(default_factory=frozenset)
    state: Any = None
    tags: frozenset[str] = Field(default_factory=frozenset)
    start: UpdateFn | None = None
    stop: UpdateFn | None = None
    pause: UpdateFn | None = None
    resume: UpdateFn | None = None
    export: ExportFn | None = None
    plugins: tuple[Plugin, ...] = ()

    model_config = {"frozen": True, "extra": "allow", "arbitrary_types_allowed": True}

    @classmethod
    def coerce(cls, value: "Module | Mapping[str, Any]") -> "Module":
        """Accept either a Module or a plain mapping of module fields"""
        if isinstance(value, Module):
            return value
        return cls.model_validate(dict(value))

    def field(self, name: str) -> Any:
        """Value of the declared or extra field `name` (None if undefined)"""
        if name in type(self).model_fields:
            return getattr(self, name)
        return (self.model_extra or {}).get(name)

    def defined_fields(self) -> dict[str, Any]:
        """Fields explicitly given (or set by a transition), including extras"""
        fields = {name: self.field(name) for name in self.model_fields_set}
        fields.update(self.model_extra or {})
        return fields

    def merge(self, other: "Module | Mapping[str, Any]", *, overwrite: bool) -> "Module":
        """
        Combine with the fields defined on `other`

        With `overwrite`, fields of `other` win; otherwise only fields not yet
        defined on this module are added.
        """
        theirs = Module.coerce(other).defined_fields()
        ours = self.defined_fields()
        merged = {**ours, **theirs} if overwrite else {**theirs, **ours}
        return Module.model_validate(merged)


SystemMap = dict[str, Module]


def coerce_system_map(system_map: Mapping[str, "Module | Mapping[str, Any]"]) -> SystemMap:
    """Convert a mapping of module definitions into a system map"""
    return {key: Module.coerce(module) for key, module in system_map.items()}


def merge_system_maps(
    system_map: SystemMap,
    modules: Mapping[str, "Module | Mapping[str, Any]"],
    *,
    overwrite: bool,
) -> SystemMap:
    """
    Merge `modules` into `system_map` field by field

    New modules are added. For existing modules, fields are added and, with
    `overwrite`, replaced.
    """
    merged = dict(system_map)
    for key, module in modules.items():
        if key in merged:
            merged[key] = merged[key].merge(module, overwrite=overwrite)
        else:
            merged[key] = Module.coerce(module)
    return merged


# Selectors


class FieldSelector(BaseModel):
    """Select the update function stored in field `name` (or `default`)"""

    name: str
    default: UpdateFn | None = None

    model_config = {"frozen": True, "arbitrary_types_allowed": True}


# A bare string is shorthand for FieldSelector(name=...)
Selector = Union[str, FieldSelector, Callable[[Module], UpdateFn | None]]


def select(module: Module, selector: Selector) -> UpdateFn | None:
    """Resolve the update function `selector` picks from `module`"""
    if isinstance(selector, str):
        selector = FieldSelector(name=selector)
    if isinstance(selector, FieldSelector):
        fn = module.field(selector.name)
        return fn if fn is not None else selector.default
    return selector(module)


def with_plugins(module: Module) -> Module:
    """
    Extend the module definition by applying its plugins

    Plugins are folded in order: for each field the module defines, a plugin
    function receives the previously resolved function and returns its
    replacement. Plugin fields the module does not define are skipped.
    """
    if not module.plugins:
        return module
    fields = module.defined_fields()
    wrapped: dict[str, Any] = {}
    for plugin in module.plugins:
        for name, wrap in plugin.items():
            if name in fields:
                wrapped[name] = wrap(wrapped.get(name, fields[name]))
    return module.model_copy(update=wrapped)


def exports(system_map: SystemMap, deps: frozenset[str]) -> dict[str, Any]:
    """
    Collect what each dependency exports from its current state

    Dependencies without an `export` function export None.
    """
    result: dict[str, Any] = {}
    for key in sorted(deps):
        dependency = with_plugins(system_map[key])
        export = dependency.export
        result[key] = export(dependency.state) if export is not None else None
    return result
