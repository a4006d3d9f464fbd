"""Shared test fixtures."""

from __future__ import annotations

import json
import sys
from fnmatch import fnmatchcase
from pathlib import Path
from typing import Any

import pytest

from monoflow import shell
from monoflow.clients import ScriptClient
from monoflow.errors import ConfigurationError
from monoflow.graph import DependencyGraph, build_graph
from monoflow.models import Package
from monoflow.vcs import TagInfo


@pytest.fixture(autouse=True)
def reset_log_level() -> None:
    """Every test starts at the default log level."""
    shell.set_log_level("info")


def make_package(
    name: str,
    *,
    deps: tuple[str, ...] = (),
    private: bool = False,
    root: Path = Path("/ws"),
    directory: str = "packages",
    version: str = "1.0.0",
    scripts: dict[str, str] | None = None,
) -> Package:
    """Build a Package without touching the filesystem."""
    return Package(
        name=name,
        version=version,
        location=root / directory / name,
        root=root,
        private=private,
        dependencies=deps,
        scripts=scripts or {},
    )


def scenario_packages(root: Path = Path("/ws")) -> list[Package]:
    """a(→c,d), b(private →c), c, d(private), e."""
    return [
        make_package("a", deps=("c", "d"), root=root),
        make_package("b", deps=("c",), private=True, root=root),
        make_package("c", root=root),
        make_package("d", deps=("left-pad",), private=True, root=root),
        make_package("e", root=root),
    ]


@pytest.fixture
def scenario_graph() -> DependencyGraph:
    return build_graph(scenario_packages())


def write_package(
    root: Path,
    relative: str,
    name: str,
    *,
    version: str | None = "1.0.0",
    private: bool = False,
    dependencies: dict[str, str] | None = None,
    scripts: dict[str, str] | None = None,
    **extra: Any,
) -> Path:
    """Write a package.json under root/relative and return the directory."""
    directory = root / relative
    directory.mkdir(parents=True, exist_ok=True)
    manifest: dict[str, Any] = {"name": name}
    if version is not None:
        manifest["version"] = version
    if private:
        manifest["private"] = True
    if dependencies:
        manifest["dependencies"] = dependencies
    if scripts:
        manifest["scripts"] = scripts
    manifest.update(extra)
    (directory / "package.json").write_text(json.dumps(manifest, indent=2))
    return directory


@pytest.fixture
def workspace(tmp_path: Path) -> Path:
    """The a/b/c/d/e workspace written to disk under packages/."""
    write_package(tmp_path, "packages/a", "a", dependencies={"c": "^1.0.0", "d": "^1.0.0"})
    write_package(tmp_path, "packages/b", "b", private=True, dependencies={"c": "^1.0.0"})
    write_package(tmp_path, "packages/c", "c")
    write_package(tmp_path, "packages/d", "d", private=True, dependencies={"left-pad": "^1.3.0"})
    write_package(tmp_path, "packages/e", "e")
    return tmp_path


class FakeRepository:
    """In-memory Repository for change detection tests.

    Args:
        commits: Whether HEAD exists.
        tag: Result of first-parent tag lookup.
        merged_tag: Result when tags on merged branches count.
        files: Paths reported by every diff.
        refs: Refs that resolve; everything else is unknown.
    """

    def __init__(
        self,
        *,
        commits: bool = True,
        tag: TagInfo | None = None,
        merged_tag: TagInfo | None = None,
        files: list[str] | None = None,
        refs: set[str] | None = None,
    ) -> None:
        self.commits = commits
        self.tag = tag
        self.merged_tag = merged_tag
        self.files = files or []
        self.refs = refs or set()
        self.diffs: list[tuple[str, str]] = []

    def _tag(self, include_merged: bool) -> TagInfo | None:
        if include_merged and self.merged_tag is not None:
            return self.merged_tag
        return self.tag

    def has_commits(self) -> bool:
        return self.commits

    def resolve_ref(self, ref: str) -> str:
        if ref not in self.refs:
            raise ConfigurationError(f"Cannot resolve git ref \"{ref}\"")
        return f"sha-{ref}"

    def merge_base(self, a: str, b: str = "HEAD") -> str:
        return f"base-{a}"

    def diff_paths(self, base: str, head: str = "HEAD") -> list[str]:
        self.diffs.append((base, head))
        return list(self.files)

    def reachable_tags(
        self, ref: str = "HEAD", include_merged: bool = False, match: str | None = None
    ) -> list[str]:
        tag = self._tag(include_merged)
        if tag is None or (match and not fnmatchcase(tag.tag, match)):
            return []
        return [tag.tag]

    def last_tag(
        self, ref: str = "HEAD", include_merged: bool = False, match: str | None = None
    ) -> TagInfo | None:
        tag = self._tag(include_merged)
        if tag is None or (match and not fnmatchcase(tag.tag, match)):
            return None
        return tag


class PythonClient(ScriptClient):
    """Runs `<script>.py` from the package directory with this interpreter."""

    name = "python"
    executable = sys.executable

    def command(self, script: str, args: list[str] | tuple[str, ...] = ()) -> list[str]:
        return [self.executable, f"{script}.py", *args]


def write_script(directory: Path, script: str, code: str) -> None:
    """Create `<script>.py` in a package directory for PythonClient."""
    directory.mkdir(parents=True, exist_ok=True)
    (directory / f"{script}.py").write_text(code)
