"""Change detection: which packages differ from a baseline ref.

A package is "directly changed" when any file under its directory
differs between the baseline and HEAD. The baseline is either:

1. an explicit ref (--since <ref>), measured from its merge base with HEAD
   so that commits made on the ref's branch after forking are ignored;
2. the most recent reachable tag. By default only first-parent history
   is searched, so tags created on branches merged with --no-ff are
   skipped; include_merged_tags searches every parent and may find a
   newer tag from the merged branch;
3. nothing, when no tag is reachable. Then every public package is
   assumed changed.

Expanding the result to dependents or dependencies is left to the caller.
"""

from __future__ import annotations

from collections.abc import Iterable
from fnmatch import fnmatchcase
from pathlib import PurePosixPath

from . import shell
from .graph import DependencyGraph
from .models import ChangeBaseline, ChangeSet
from .vcs import Repository


def _ignored(path: str, patterns: Iterable[str]) -> bool:
    name = PurePosixPath(path).name
    return any(fnmatchcase(path, p) or fnmatchcase(name, p) for p in patterns)


def _owns(relative_location: str, path: str) -> bool:
    if relative_location in ("", "."):
        return True
    return path.startswith(relative_location.rstrip("/") + "/")


def assume_all_changed(
    graph: DependencyGraph, baseline: ChangeBaseline | None = None
) -> ChangeSet:
    """Treat every public package as changed."""
    shell.info("Assuming all packages changed")
    return ChangeSet(
        baseline=baseline or ChangeBaseline(),
        changed=tuple(n for n, p in graph.packages.items() if not p.private),
        assumed_all=True,
    )


def resolve_baseline(
    repo: Repository,
    *,
    since: str | None = None,
    include_merged_tags: bool = False,
    tag_pattern: str | None = None,
) -> tuple[ChangeBaseline, str | None, int | None]:
    """Work out what to diff against.

    Args:
        repo: Git capability.
        since: Explicit ref, or None / "" to use the most recent tag.
        include_merged_tags: Search tags on merged branches too.
        tag_pattern: Glob restricting which tags count as releases.

    Returns:
        (baseline, commit to diff from, commits since the tag). The commit
        is None when there is no baseline. The distance is only known for
        tag baselines.

    Raises:
        ConfigurationError: If an explicit ref cannot be resolved.
        ChangeDetectionError: If git fails.
    """
    if not repo.has_commits():
        return ChangeBaseline(include_merged_tags=include_merged_tags), None, None

    if since:
        repo.resolve_ref(since)
        base = repo.merge_base(since, "HEAD")
        baseline = ChangeBaseline(
            ref=since, include_merged_tags=include_merged_tags, explicit=True
        )
        return baseline, base, None

    described = repo.last_tag("HEAD", include_merged_tags, tag_pattern)
    if described is None:
        return ChangeBaseline(include_merged_tags=include_merged_tags), None, None

    baseline = ChangeBaseline(ref=described.tag, include_merged_tags=include_merged_tags)
    return baseline, described.tag, described.distance


def detect_changes(
    graph: DependencyGraph,
    repo: Repository,
    *,
    since: str | None = None,
    include_merged_tags: bool = False,
    tag_pattern: str | None = None,
    ignore_changes: Iterable[str] = (),
) -> ChangeSet:
    """Compute the directly-changed packages.

    Args:
        graph: Workspace dependency graph.
        repo: Git capability.
        since: Explicit baseline ref; None or "" means the last tag.
        include_merged_tags: Consider tags reachable through merges.
        tag_pattern: Glob restricting release tags.
        ignore_changes: Path globs whose changes are disregarded.

    Returns:
        The ChangeSet, with names in declaration order.
    """
    baseline, base, distance = resolve_baseline(
        repo,
        since=since,
        include_merged_tags=include_merged_tags,
        tag_pattern=tag_pattern,
    )
    if base is None:
        return assume_all_changed(graph, baseline)

    if distance == 0:
        shell.notice("Current HEAD is already released, skipping change detection.")
        return ChangeSet(baseline=baseline)

    shell.info(f"Looking for changed packages since {baseline.ref}")

    patterns = list(ignore_changes)
    files = [f for f in repo.diff_paths(base, "HEAD") if not _ignored(f, patterns)]
    if patterns:
        shell.verbose(f"ignoring changes matching {patterns}", prefix="ignore")

    changed = tuple(
        name
        for name, pkg in graph.packages.items()
        if any(_owns(pkg.relative_location, f) for f in files)
    )
    return ChangeSet(baseline=baseline, changed=changed, changed_files=tuple(files))
