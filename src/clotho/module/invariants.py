"""
Module Invariants - dependency resolution over the system map

The dependency graph must be acyclic: a module can only be started once all of
its dependencies are up. These are pure functions that either return a safe
visiting order or raise before any module is touched.

Fun fact: a post-order depth-first walk is the oldest trick for topological
sorting - make(1) has used it since 1976.
"""

from collections.abc import Iterable

from clotho.kernel.errors import CyclicDependency, UnknownModule
from clotho.kernel.logging import get_logger
from clotho.kernel.metrics import cycles_detected_total
from clotho.module.models import SystemMap

logger = get_logger(__name__)


def postwalk_deps(system_map: SystemMap, key: str) -> list[str]:
    """
    Get the chain of dependencies of `key` depth-first and post-order

    Every dependency precedes its dependents and `key` comes last. The
    ancestor path is tracked per branch, so diamond-shaped graphs are walked
    safely while revisiting a module on the current path is a cycle.

    Raises:
        CyclicDependency: If `key` transitively depends on itself
        UnknownModule: If `key` or one of its dependencies is not defined
    """

    def walk(k: str, path: tuple[str, ...]) -> list[str]:
        if k in path:
            cycles_detected_total.inc()
            logger.warning("Dependency cycle detected", target=k, cycle=list(path))
            raise CyclicDependency(k, list(path))
        if k not in system_map:
            raise UnknownModule(k)
        chain: list[str] = []
        for dep in sorted(system_map[k].deps):
            chain.extend(walk(dep, path + (k,)))
        chain.append(k)
        return chain

    return walk(key, ())


def dependency_chain(system_map: SystemMap, keys: Iterable[str]) -> list[str]:
    """
    Return the deduplicated dependency closure of `keys` in safe start order

    Walks are concatenated in the order of `keys`, keeping the first
    occurrence of each module.
    """
    chain: dict[str, None] = {}
    for key in keys:
        for k in postwalk_deps(system_map, key):
            chain.setdefault(k)
    return list(chain)


def find_cycles(system_map: SystemMap) -> list[list[str]]:
    """
    Find dependency cycles in the system map (should be empty!)

    This is a diagnostic function for tooling and error reports; transitions
    rely on `postwalk_deps` raising instead.

    Returns:
        List of cycles, each a list of module keys ending with its first key
    """
    cycles: list[list[str]] = []
    visited: set[str] = set()
    path: list[str] = []

    def dfs(node: str) -> None:
        visited.add(node)
        path.append(node)
        module = system_map.get(node)
        for neighbor in sorted(module.deps) if module else ():
            if neighbor in path:
                cycle_start = path.index(neighbor)
                cycles.append(path[cycle_start:] + [neighbor])
            elif neighbor not in visited:
                dfs(neighbor)
        path.pop()

    for node in sorted(system_map):
        if node not in visited:
            dfs(node)

    return cycles
