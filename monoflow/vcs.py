"""Git capability used by change detection.

GitRepository is a narrow, read-only view of the repository: it resolves
refs, finds merge bases and tags, and lists changed paths. It never
writes to the repository.
"""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Protocol

from .errors import ChangeDetectionError, ConfigurationError
from .shell import git


@dataclass(frozen=True)
class TagInfo:
    """Result of describing a commit relative to its nearest tag.

    Attributes:
        tag: The tag name.
        distance: Number of commits between the tag and the described ref.
        sha: Abbreviated sha of the described ref.
    """

    tag: str
    distance: int
    sha: str


class Repository(Protocol):
    """What the change detector needs from version control."""

    def has_commits(self) -> bool: ...

    def resolve_ref(self, ref: str) -> str: ...

    def diff_paths(self, base: str, head: str = "HEAD") -> list[str]: ...

    def merge_base(self, a: str, b: str = "HEAD") -> str: ...

    def reachable_tags(
        self, ref: str = "HEAD", include_merged: bool = False, match: str | None = None
    ) -> list[str]: ...

    def last_tag(
        self, ref: str = "HEAD", include_merged: bool = False, match: str | None = None
    ) -> TagInfo | None: ...


class GitRepository:
    """Repository implementation backed by the git CLI.

    Args:
        root: Workspace root. Paths returned by diff_paths are relative to
              it, so a workspace nested inside a larger repository works.
    """

    def __init__(self, root: Path) -> None:
        self.root = root

    def _git(self, *args: str, baseline: str | None = None) -> str:
        try:
            return git(*args, cwd=str(self.root))
        except subprocess.CalledProcessError as exc:
            detail = (exc.stderr or "").strip() or f"exit code {exc.returncode}"
            raise ChangeDetectionError(
                f"git {' '.join(args)} failed: {detail}", baseline=baseline
            ) from exc
        except FileNotFoundError as exc:
            raise ChangeDetectionError(
                "git executable not found", hint="Install git or fix PATH."
            ) from exc

    def has_commits(self) -> bool:
        """Return True if HEAD points at a commit.

        Raises:
            ChangeDetectionError: If the root is not inside a git work tree.
        """
        self._git("rev-parse", "--is-inside-work-tree")
        head = git(
            "rev-parse", "--verify", "--quiet", "HEAD", cwd=str(self.root), check=False
        )
        return bool(head)

    def resolve_ref(self, ref: str) -> str:
        """Resolve a ref (tag, branch, sha) to a full commit sha.

        Raises:
            ConfigurationError: If the ref does not name a commit.
        """
        try:
            return git(
                "rev-parse", "--verify", "--quiet", f"{ref}^{{commit}}",
                cwd=str(self.root),
            )
        except subprocess.CalledProcessError as exc:
            raise ConfigurationError(
                f"Cannot resolve git ref \"{ref}\"",
                hint="Check that the tag or branch exists locally (git fetch --tags).",
            ) from exc

    def merge_base(self, a: str, b: str = "HEAD") -> str:
        """Return the best common ancestor of two refs."""
        return self._git("merge-base", a, b, baseline=a)

    def diff_paths(self, base: str, head: str = "HEAD") -> list[str]:
        """List paths that differ between two commits.

        Paths are relative to the workspace root; changes outside it are
        not reported.
        """
        out = self._git("diff", "--name-only", "--relative", base, head, baseline=base)
        return out.splitlines() if out else []

    def reachable_tags(
        self, ref: str = "HEAD", include_merged: bool = False, match: str | None = None
    ) -> list[str]:
        """Tags reachable from ref, nearest first.

        Args:
            ref: Where to start walking history.
            include_merged: Walk every parent. When False only first-parent
                            history is walked, so tags created on branches
                            merged with --no-ff are not seen.
            match: Optional glob the tag name must match.
        """
        args = ["log", "--format=%D", "--decorate=short", "--simplify-by-decoration"]
        if not include_merged:
            args.append("--first-parent")
        out = self._git(*args, ref, baseline=ref)
        tags: list[str] = []
        for line in out.splitlines():
            for decoration in line.split(", "):
                if decoration.startswith("tag: "):
                    tag = decoration[len("tag: "):]
                    if match is None or fnmatchcase(tag, match):
                        tags.append(tag)
        return tags

    def last_tag(
        self, ref: str = "HEAD", include_merged: bool = False, match: str | None = None
    ) -> TagInfo | None:
        """Find the tag nearest to ref.

        The distance of each reachable tag is counted with `git rev-list`
        over the same history reachable_tags walks. The smallest distance
        wins; ties go to the tag reachable_tags lists first.

        Returns:
            The nearest tag, or None if no tag is reachable.
        """
        tags = self.reachable_tags(ref, include_merged, match)
        if not tags:
            return None
        walk = [] if include_merged else ["--first-parent"]
        nearest: tuple[int, str] | None = None
        for tag in tags:
            count = int(
                self._git("rev-list", "--count", *walk, f"{tag}..{ref}", baseline=tag)
            )
            if nearest is None or count < nearest[0]:
                nearest = (count, tag)
        distance, tag = nearest
        sha = self._git("rev-parse", "--short", ref, baseline=ref)
        return TagInfo(tag=tag, distance=distance, sha=sha)
