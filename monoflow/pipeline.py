"""Commands: discover → graph → select → render or run.

This module wires the pieces together for the three commands:

1. list     filter the workspace and print the selection
2. changed  print packages changed since the last release tag, plus
            their dependents
3. run      run a script in every selected package that defines it

Each command loads the workspace fresh: configuration, package
manifests, dependency graph and a git view of the root.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from . import shell
from .changes import detect_changes
from .clients import get_client
from .config import WorkspaceConfig, load_config
from .errors import TaskExecutionFailure
from .filters import filter_packages, git_detector, log_filter_notices
from .graph import DependencyGraph, build_graph, dependents_closure, detect_cycles
from .models import FilterSpec, Package, RunReport
from .output import (
    ListFormat,
    format_packages,
    listable,
    log_run_summary,
    order_packages,
    pluralize,
)
from .profiling import Profiler
from .scheduler import RunMode, TaskScheduler
from .vcs import GitRepository, Repository
from .workspace import discover_packages


@dataclass
class Workspace:
    """Everything a command needs about the workspace."""

    config: WorkspaceConfig
    packages: list[Package]
    graph: DependencyGraph
    repo: Repository

    @property
    def root(self) -> Path:
        return self.config.root


def load_workspace(root: Path, config: WorkspaceConfig | None = None) -> Workspace:
    """Discover packages under root and build the dependency graph.

    Raises:
        ConfigurationError: On invalid config, manifests or duplicate names.
    """
    config = config or load_config(root)
    packages = discover_packages(config)
    if not packages:
        shell.warn(f"No packages found matching {config.packages}")
    graph = build_graph(packages)
    cycles = detect_cycles(graph)
    if cycles:
        shell.warn(
            "Dependency cycles detected, you should fix these!\n"
            + "\n".join(" -> ".join(cycle) for cycle in cycles),
            prefix="ECYCLE",
        )
    return Workspace(
        config=config, packages=packages, graph=graph, repo=GitRepository(config.root)
    )


def emit(text: str) -> None:
    """Write command output to stdout."""
    if text:
        print(text)


def list_packages(
    ws: Workspace,
    spec: FilterSpec,
    *,
    fmt: ListFormat = ListFormat.PLAIN,
    long: bool = False,
    show_all: bool = False,
    toposort: bool = False,
) -> list[Package]:
    """Print the filtered package selection.

    Args:
        ws: Loaded workspace.
        spec: Filter options.
        fmt: Output format.
        long: Extra detail for PARSEABLE output.
        show_all: Show private packages.
        toposort: Order dependencies first.

    Returns:
        The packages that were printed.
    """
    log_filter_notices(spec)
    detector = git_detector(
        ws.graph,
        ws.repo,
        tag_pattern=ws.config.tag_pattern,
        ignore_changes=ws.config.ignore_changes,
    )
    result = filter_packages(ws.graph, spec, detector)
    packages = order_packages(
        listable(result.packages, show_all=show_all), ws.graph, toposort=toposort
    )
    emit(format_packages(packages, fmt, long=long, graph=ws.graph))
    shell.success(f"found {pluralize(len(packages), 'package')}")
    return packages


def changed_packages(
    ws: Workspace,
    *,
    include_merged_tags: bool = False,
    fmt: ListFormat = ListFormat.PLAIN,
    long: bool = False,
    show_all: bool = False,
    toposort: bool = False,
) -> list[Package]:
    """Print packages changed since the last release, with their dependents.

    Returns:
        The packages that were printed; empty when nothing changed.
    """
    changes = detect_changes(
        ws.graph,
        ws.repo,
        include_merged_tags=include_merged_tags,
        tag_pattern=ws.config.tag_pattern,
        ignore_changes=ws.config.ignore_changes,
    )
    names = set(changes.changed)
    if not changes.assumed_all:
        names |= dependents_closure(ws.graph, names)

    selected = [p for n, p in ws.graph.packages.items() if n in names]
    packages = order_packages(
        listable(selected, show_all=show_all), ws.graph, toposort=toposort
    )
    if not packages:
        shell.warn("No changed packages found")
        return []

    emit(format_packages(packages, fmt, long=long, graph=ws.graph))
    shell.success(f"found {pluralize(len(packages), 'package')} ready to publish")
    return packages


def run_script(
    ws: Workspace,
    script: str,
    spec: FilterSpec,
    *,
    args: list[str] | None = None,
    mode: RunMode = RunMode.TOPOLOGICAL,
    concurrency: int | None = None,
    bail: bool = True,
    prefix: bool = True,
    npm_client: str | None = None,
    profile: bool = False,
    profile_location: str | None = None,
) -> RunReport:
    """Run a package script across the filtered selection.

    Only packages whose manifest defines `script` take part.

    Returns:
        The RunReport.

    Raises:
        ConfigurationError: For bad filters or an unknown client.
        TaskExecutionFailure: If any script exited non-zero.
    """
    args = list(args or [])
    client = get_client(npm_client or ws.config.npm_client)

    log_filter_notices(spec)
    detector = git_detector(
        ws.graph,
        ws.repo,
        tag_pattern=ws.config.tag_pattern,
        ignore_changes=ws.config.ignore_changes,
    )
    result = filter_packages(ws.graph, spec, detector)
    packages = [p for p in result.packages if script in p.scripts]
    if not packages:
        shell.success(f"No packages found with the lifecycle script '{script}'", prefix="run")
        return RunReport(script=script)

    shell.info(
        f"Executing command in {pluralize(len(packages), 'package')}: "
        f"\"{client.describe(script, args)}\""
    )

    profiler = None
    if profile:
        directory = Path(profile_location) if profile_location else ws.root
        if not directory.is_absolute():
            directory = ws.root / directory
        profiler = Profiler(directory=directory)

    scheduler = TaskScheduler(
        ws.graph,
        client,
        script,
        args=args,
        mode=mode,
        concurrency=concurrency or ws.config.concurrency,
        bail=bail,
        prefix=prefix,
        profiler=profiler,
    )
    report = scheduler.run(packages)

    log_run_summary(report)
    if report.first_failure is not None:
        raise TaskExecutionFailure(report.failed)
    return report
