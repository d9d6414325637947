"""
Module - system map definitions, dependency resolution, and module interceptors
"""

from clotho.module.invariants import dependency_chain, find_cycles, postwalk_deps
from clotho.module.models import (
    FieldSelector,
    Module,
    SystemMap,
    coerce_system_map,
    exports,
    merge_system_maps,
    select,
    with_plugins,
)
from clotho.module.txs import clear_state, enter, exit, only, step

__all__ = [
    # Models
    "Module",
    "SystemMap",
    "FieldSelector",
    "coerce_system_map",
    "merge_system_maps",
    "select",
    "with_plugins",
    "exports",
    # Dependency resolution
    "postwalk_deps",
    "dependency_chain",
    "find_cycles",
    # Interceptors
    "enter",
    "exit",
    "only",
    "step",
    "clear_state",
]
