"""Dependency handling utilities.

Collects declared dependency names from a package.json manifest. Only the
names matter: the graph keeps an edge when the name belongs to another
workspace package, and version ranges are never resolved.
"""

from __future__ import annotations

from collections.abc import Collection
from typing import Any

# Sections that take part in the workspace graph, in precedence order.
DEPENDENCY_SECTIONS = ("dependencies", "devDependencies", "optionalDependencies")


def dependency_names(manifest: dict[str, Any]) -> tuple[str, ...]:
    """Return every declared dependency name, deduplicated, in manifest order.

    Gathers names from three locations:
    - "dependencies" (runtime deps)
    - "devDependencies"
    - "optionalDependencies"

    Examples:
        {"dependencies": {"b": "^1.0.0"}, "devDependencies": {"a": "*"}}
        → ("b", "a")
    """
    seen: dict[str, None] = {}
    for section in DEPENDENCY_SECTIONS:
        deps = manifest.get(section)
        if not isinstance(deps, dict):
            continue
        for name in deps:
            seen.setdefault(str(name), None)
    return tuple(seen)


def internal_deps(
    dependencies: tuple[str, ...], workspace_names: Collection[str]
) -> list[str]:
    """Keep only dependencies that are workspace members, in declared order."""
    return [name for name in dependencies if name in workspace_names]
