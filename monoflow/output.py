"""Rendering package selections and run summaries.

Exactly one ListFormat is active per invocation:

    PLAIN      package-a
               package-b (PRIVATE)
    LONG       package-a         v0.0.0 modules/package-a
               package-c v0.0.0-alpha.1 packages/package-c
    PARSEABLE  /abs/modules/package-a                      (plain)
               /abs/modules/package-a:package-a:0.0.0       (with long)
    JSON       indented array of {name, version, private, location}
    NDJSON     one compact JSON object per line
    GRAPH      {"package-a": ["package-c", "package-d"], ...}

Any format can be put in topological order first.
"""

from __future__ import annotations

import json
from collections.abc import Sequence
from enum import Enum

from . import shell
from .errors import ConfigurationError
from .graph import DependencyGraph, adjacency, topo_order
from .models import Package, RunReport


class ListFormat(str, Enum):
    PLAIN = "plain"
    LONG = "long"
    PARSEABLE = "parseable"
    JSON = "json"
    NDJSON = "ndjson"
    GRAPH = "graph"


def resolve_format(
    *,
    json_: bool = False,
    ndjson: bool = False,
    parseable: bool = False,
    graph: bool = False,
    long: bool = False,
) -> ListFormat:
    """Map CLI flags onto a single format.

    `long` combines with `parseable` (adding name and version) and is
    ignored by the structured formats.

    Raises:
        ConfigurationError: If more than one exclusive format is requested.
    """
    chosen = [
        fmt
        for flag, fmt in (
            (json_, ListFormat.JSON),
            (ndjson, ListFormat.NDJSON),
            (parseable, ListFormat.PARSEABLE),
            (graph, ListFormat.GRAPH),
        )
        if flag
    ]
    if len(chosen) > 1:
        names = ", ".join(f"--{f.value}" for f in chosen)
        raise ConfigurationError(f"Output options are mutually exclusive: {names}")
    if chosen:
        return chosen[0]
    return ListFormat.LONG if long else ListFormat.PLAIN


def listable(packages: Sequence[Package], *, show_all: bool) -> list[Package]:
    """Hide private packages unless show_all (--all)."""
    return [p for p in packages if show_all or not p.private]


def order_packages(
    packages: Sequence[Package], graph: DependencyGraph, *, toposort: bool
) -> list[Package]:
    """Declaration order, or dependencies-first when toposort is set."""
    if not toposort:
        return list(packages)
    by_name = {p.name: p for p in packages}
    return [by_name[n] for n in topo_order(graph, by_name)]


def _columns(rows: list[list[str]], align_right: set[int]) -> list[str]:
    widths = [max(len(row[i]) for row in rows) for i in range(len(rows[0]))]
    lines = []
    for row in rows:
        cells = [
            cell.rjust(widths[i]) if i in align_right else cell.ljust(widths[i])
            for i, cell in enumerate(row)
        ]
        lines.append(" ".join(cells).rstrip())
    return lines


def format_packages(
    packages: Sequence[Package],
    fmt: ListFormat,
    *,
    long: bool = False,
    graph: DependencyGraph | None = None,
) -> str:
    """Render packages in the given format.

    Args:
        packages: Packages to render, already filtered and ordered.
        fmt: Output format.
        long: With PARSEABLE, append name, version and PRIVATE.
        graph: Required for GRAPH.

    Returns:
        The rendered text without a trailing newline; empty for no packages
        (except JSON and GRAPH, which render an empty container).
    """
    if fmt is ListFormat.JSON:
        return json.dumps([p.listing() for p in packages], indent=2)

    if fmt is ListFormat.NDJSON:
        return "\n".join(
            json.dumps(p.listing(), separators=(",", ":")) for p in packages
        )

    if fmt is ListFormat.GRAPH:
        if graph is None:
            raise ValueError("GRAPH output needs the dependency graph")
        return json.dumps(adjacency(graph, [p.name for p in packages]), indent=2)

    if fmt is ListFormat.PARSEABLE:
        if not long:
            return "\n".join(str(p.location) for p in packages)
        lines = []
        for p in packages:
            fields = [str(p.location), p.name, p.version]
            if p.private:
                fields.append("PRIVATE")
            lines.append(":".join(fields))
        return "\n".join(lines)

    if not packages:
        return ""

    if fmt is ListFormat.LONG:
        rows = [
            [p.name, f"v{p.version}", p.relative_location, "(PRIVATE)" if p.private else ""]
            for p in packages
        ]
        return "\n".join(_columns(rows, align_right={1}))

    return "\n".join(f"{p.name} (PRIVATE)" if p.private else p.name for p in packages)


def pluralize(count: int, word: str) -> str:
    return f"{count} {word}" if count == 1 else f"{count} {word}s"


def log_run_summary(report: RunReport) -> None:
    """Log the end-of-run summary.

    Successful packages are always listed, even when the run failed.
    """
    seconds = report.duration_ms / 1000
    total = len(report.runs)
    succeeded = report.succeeded
    if report.ok:
        shell.success(
            f"Ran npm script '{report.script}' in {pluralize(total, 'package')} "
            f"in {seconds:.1f}s:",
            prefix="run",
        )
    else:
        shell.error(
            f"Ran npm script '{report.script}' in {pluralize(total, 'package')} "
            f"in {seconds:.1f}s: {len(succeeded)} succeeded, "
            f"{len(report.failed)} failed, {len(report.pending)} not started",
            prefix="run",
        )
    for run in succeeded:
        shell.success(f"- {run.name}")
    for run in report.failed:
        shell.error(f"- {run.name} (exit code {run.exit_code})")
    for run in report.pending:
        shell.warn(f"- {run.name} (not started)")
