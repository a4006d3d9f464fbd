"""Package filter pipeline.

Applies a FilterSpec to the workspace in a fixed order:

1. private      drop private packages unless spec.private
2. since        keep changed packages plus their dependents
3. scope        keep names matching any scope glob
4. ignore       drop names matching any ignore glob
5. include deps add transitive dependencies of what is left
6. exclude deps drop packages kept only because a dependency changed

Globs are case-sensitive and match the package name, never its path.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, field
from fnmatch import fnmatchcase

from . import shell
from .changes import detect_changes
from .errors import ConfigurationError
from .graph import DependencyGraph, dependencies_closure, dependents_closure
from .models import ChangeSet, FilterSpec, Package
from .vcs import Repository

ChangeDetector = Callable[[str, bool], ChangeSet]


@dataclass
class FilterResult:
    """Outcome of the pipeline.

    Attributes:
        packages: Selected packages in declaration order.
        changes: The ChangeSet used by the since step, if it ran.
        dependents_only: Names the since step added only as dependents.
    """

    packages: list[Package]
    changes: ChangeSet | None = None
    dependents_only: set[str] = field(default_factory=set)

    @property
    def names(self) -> list[str]:
        return [p.name for p in self.packages]


def validate_glob(pattern: str) -> str:
    """Reject globs fnmatch would silently mis-handle.

    Raises:
        ConfigurationError: If the glob is empty or has an unclosed "[".
    """
    if not pattern:
        raise ConfigurationError("Empty package glob")
    depth = 0
    for ch in pattern:
        if ch == "[":
            depth += 1
        elif ch == "]" and depth:
            depth -= 1
    if depth:
        raise ConfigurationError(f"Invalid package glob \"{pattern}\": unclosed \"[\"")
    return pattern


def matches_any(name: str, patterns: Iterable[str]) -> bool:
    return any(fnmatchcase(name, p) for p in patterns)


def log_filter_notices(spec: FilterSpec) -> None:
    """Describe the active filters the way they will be applied."""
    for glob in spec.scope_globs:
        shell.notice(f"including \"{glob}\"", prefix="filter")
    for glob in spec.ignore_globs:
        shell.notice(f"excluding \"{glob}\"", prefix="filter")
    if spec.since is not None:
        ref = spec.since or "last tag"
        shell.notice(f"changed since \"{ref}\"", prefix="filter")
    if spec.exclude_dependents:
        shell.notice("excluding dependents", prefix="filter")
    if spec.include_dependencies:
        shell.notice("including dependencies", prefix="filter")
    globs = list(spec.scope_globs) + [f"!{g}" for g in spec.ignore_globs]
    if globs:
        shell.info(f"{globs}", prefix="filter")


def filter_packages(
    graph: DependencyGraph,
    spec: FilterSpec,
    detector: ChangeDetector | None = None,
) -> FilterResult:
    """Run the filter pipeline.

    Args:
        graph: Workspace dependency graph.
        spec: Filter options.
        detector: Called as detector(since, include_merged_tags) when
                  spec.since is set. Required in that case.

    Returns:
        The selected packages and bookkeeping about how they were chosen.

    Raises:
        ConfigurationError: For invalid globs, or when since is set without
            a detector.
    """
    for pattern in [*spec.scope_globs, *spec.ignore_globs]:
        validate_glob(pattern)

    # 1. private
    selected = [
        n for n, p in graph.packages.items() if spec.private or not p.private
    ]

    # 2. since
    changes: ChangeSet | None = None
    dependents_only: set[str] = set()
    if spec.since is not None:
        if detector is None:
            raise ConfigurationError("Filtering by --since requires a git repository")
        changes = detector(spec.since, spec.include_merged_tags)
        direct = set(changes.changed)
        dependents_only = dependents_closure(graph, direct) - direct
        candidates = direct | dependents_only
        selected = [n for n in selected if n in candidates]

    # 3. scope
    if spec.scope_globs:
        selected = [n for n in selected if matches_any(n, spec.scope_globs)]

    # 4. ignore
    if spec.ignore_globs:
        selected = [n for n in selected if not matches_any(n, spec.ignore_globs)]

    # 5. include dependencies
    if spec.include_dependencies:
        keep = set(selected) | dependencies_closure(graph, selected)
        selected = [n for n in graph.packages if n in keep]

    # 6. exclude dependents. Directly changed packages always stay, and so
    # does anything a surviving package still needs under step 5.
    if spec.exclude_dependents and dependents_only:
        survivors = [n for n in selected if n not in dependents_only]
        needed: set[str] = set()
        if spec.include_dependencies:
            needed = dependencies_closure(graph, survivors)
        selected = [n for n in selected if n not in dependents_only or n in needed]

    return FilterResult(
        packages=[graph.packages[n] for n in selected],
        changes=changes,
        dependents_only=dependents_only,
    )


def git_detector(
    graph: DependencyGraph,
    repo: Repository,
    *,
    tag_pattern: str | None = None,
    ignore_changes: Iterable[str] = (),
) -> ChangeDetector:
    """Bind detect_changes to a repository for use by filter_packages."""

    def detect(since: str, include_merged_tags: bool) -> ChangeSet:
        return detect_changes(
            graph,
            repo,
            since=since,
            include_merged_tags=include_merged_tags,
            tag_pattern=tag_pattern,
            ignore_changes=ignore_changes,
        )

    return detect
