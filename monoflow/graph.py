"""Dependency graph utilities.

Builds the workspace dependency graph and orders packages so that when
package A depends on package B, B comes first.

Edge direction:

    edges["a"] = ["c", "d"]          a depends on c and d
    reverse_edges["c"] = ["a", "b"]  a and b depend on c

Only workspace members become nodes. Cycles are allowed: ordering breaks
them deterministically instead of failing.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

from . import shell
from .deps import internal_deps
from .errors import ConfigurationError
from .models import Package


@dataclass
class DependencyGraph:
    """A directed graph of workspace package dependencies.

    Attributes:
        packages: Map of package name → Package, in declaration order.
        edges: Forward adjacency (dependent → dependencies, manifest order).
        reverse_edges: Reverse adjacency (dependency → dependents,
                       declaration order).
    """

    packages: dict[str, Package] = field(default_factory=dict)
    edges: dict[str, list[str]] = field(default_factory=dict)
    reverse_edges: dict[str, list[str]] = field(default_factory=dict)

    @property
    def names(self) -> list[str]:
        """Package names in declaration order."""
        return list(self.packages)

    def __len__(self) -> int:
        return len(self.packages)

    def __contains__(self, name: object) -> bool:
        return name in self.packages

    def position(self, name: str) -> int:
        """Declaration index of a package, used for stable ordering."""
        return self._index[name]

    def __post_init__(self) -> None:
        self._index = {name: i for i, name in enumerate(self.packages)}


def build_graph(packages: Sequence[Package]) -> DependencyGraph:
    """Build a dependency graph from workspace packages.

    A dependency becomes an edge only if its name is exactly the name of
    another package in the set. External dependencies are ignored.

    Args:
        packages: Packages in declaration order.

    Returns:
        A DependencyGraph with forward and reverse edges.

    Raises:
        ConfigurationError: If two packages share a name.
    """
    by_name: dict[str, Package] = {}
    for pkg in packages:
        if pkg.name in by_name:
            raise ConfigurationError(
                f"Package name \"{pkg.name}\" used in multiple packages:\n"
                f"\t{by_name[pkg.name].location}\n\t{pkg.location}"
            )
        by_name[pkg.name] = pkg

    graph = DependencyGraph(packages=by_name)
    graph.edges = {name: [] for name in by_name}
    graph.reverse_edges = {name: [] for name in by_name}

    for pkg in packages:
        for dep in internal_deps(pkg.dependencies, by_name.keys()):
            if dep != pkg.name:
                graph.edges[pkg.name].append(dep)
                graph.reverse_edges[dep].append(pkg.name)

    return graph


def _closure(adjacency: dict[str, list[str]], start: Iterable[str]) -> set[str]:
    visited: set[str] = set()
    queue: deque[str] = deque()
    for name in start:
        queue.extend(adjacency.get(name, []))
    while queue:
        current = queue.popleft()
        if current in visited:
            continue
        visited.add(current)
        queue.extend(adjacency.get(current, []))
    return visited


def dependencies_closure(graph: DependencyGraph, names: Iterable[str]) -> set[str]:
    """All transitive dependencies of the given packages.

    If A depends on B, and B depends on C, then the closure of {A} is
    {B, C}. Start nodes are included only if reachable from another start
    node (or through a cycle).
    """
    return _closure(graph.edges, names)


def dependents_closure(graph: DependencyGraph, names: Iterable[str]) -> set[str]:
    """All transitive dependents of the given packages."""
    return _closure(graph.reverse_edges, names)


def topo_order(
    graph: DependencyGraph, names: Iterable[str] | None = None
) -> list[str]:
    """Topologically sort packages by their dependencies within a subset.

    Uses Kahn's algorithm, always picking the earliest-declared ready
    package, so independent packages keep declaration order.

    Only edges between packages in `names` count (dependencies outside the
    subset are treated as already satisfied). When every remaining package
    is waiting on another, there is a cycle: the earliest-declared
    remaining package is released and a warning is logged.

    Args:
        graph: The dependency graph.
        names: Subset to order. Defaults to every package.

    Returns:
        Package names with dependencies before dependents.

    Example:
        If A depends on B, and B depends on C:
        topo_order(graph) → [C, B, A]
    """
    subset = set(graph.packages if names is None else names)
    in_degree = {
        n: sum(1 for d in graph.edges.get(n, []) if d in subset) for n in subset
    }
    remaining = set(subset)
    order: list[str] = []

    while remaining:
        ready = [n for n in remaining if in_degree[n] == 0]
        if ready:
            node = min(ready, key=graph.position)
        else:
            node = min(remaining, key=graph.position)
            shell.warn(
                f"Dependency cycle detected, releasing {node} first "
                f"(remaining: {', '.join(sorted(remaining))})",
                prefix="graph",
            )
        remaining.discard(node)
        order.append(node)
        for dependent in graph.reverse_edges.get(node, []):
            if dependent in remaining:
                in_degree[dependent] -= 1

    return order


def detect_cycles(graph: DependencyGraph) -> list[list[str]]:
    """Find dependency cycles using DFS.

    Returns:
        A list of cycles, each a list of package names starting and ending
        with the same name. Empty if the graph is acyclic.
    """
    white, gray, black = 0, 1, 2
    color = {name: white for name in graph.packages}
    stack: list[str] = []
    cycles: list[list[str]] = []

    def visit(node: str) -> None:
        color[node] = gray
        stack.append(node)
        for dep in graph.edges.get(node, []):
            if color[dep] == gray:
                cycles.append(stack[stack.index(dep):] + [dep])
            elif color[dep] == white:
                visit(dep)
        stack.pop()
        color[node] = black

    for name in graph.packages:
        if color[name] == white:
            visit(name)
    return cycles


def adjacency(graph: DependencyGraph, names: Iterable[str]) -> dict[str, list[str]]:
    """Map each named package to its in-workspace dependencies.

    Dependencies are listed whether or not they are part of `names`.
    """
    return {name: list(graph.edges.get(name, [])) for name in names}
