"""Workspace package discovery.

Expands the configured package globs and reads each member's package.json
into an immutable Package record. Packages come back in declaration order:
glob by glob as configured, alphabetically within one glob.
"""

from __future__ import annotations

import glob
import json
from pathlib import Path

from . import shell
from .config import WorkspaceConfig
from .deps import dependency_names
from .errors import ConfigurationError
from .models import Package
from .versions import DEFAULT_VERSION, is_valid_version

MANIFEST = "package.json"


def find_member_dirs(root: Path, patterns: list[str]) -> list[Path]:
    """Expand workspace globs into package directories containing a manifest.

    Directories matched by more than one glob are returned once, at their
    first position. Anything under node_modules is skipped.
    """
    member_dirs: list[Path] = []
    seen: set[Path] = set()
    for pattern in patterns:
        pattern = pattern.rstrip("/")
        for match in sorted(glob.glob(str(root / pattern), recursive=True)):
            p = Path(match).resolve()
            if "node_modules" in p.parts or p in seen:
                continue
            if (p / MANIFEST).is_file():
                member_dirs.append(p)
                seen.add(p)
    return member_dirs


def load_package(directory: Path, root: Path) -> Package:
    """Read one package.json into a Package.

    Raises:
        ConfigurationError: If the manifest is unreadable or lacks a name.
    """
    manifest_path = directory / MANIFEST
    try:
        manifest = json.loads(manifest_path.read_text())
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in {manifest_path}: {exc}") from exc

    name = manifest.get("name")
    if not isinstance(name, str) or not name:
        raise ConfigurationError(
            f"{manifest_path} has no \"name\"",
            hint="Every workspace package needs a unique name.",
        )

    version = str(manifest.get("version") or DEFAULT_VERSION)
    if not is_valid_version(version):
        shell.warn(f"{name} has a non-semver version: {version}")

    scripts = manifest.get("scripts") or {}
    return Package(
        name=name,
        version=version,
        location=directory,
        root=root,
        private=bool(manifest.get("private", False)),
        dependencies=dependency_names(manifest),
        scripts={str(k): str(v) for k, v in scripts.items()},
    )


def discover_packages(config: WorkspaceConfig) -> list[Package]:
    """Scan the workspace and discover all packages.

    Args:
        config: Workspace configuration providing the root and globs.

    Returns:
        Packages in declaration order. Duplicate names are left for the
        graph builder to reject.
    """
    packages = [
        load_package(d, config.root)
        for d in find_member_dirs(config.root, config.packages)
    ]
    for pkg in packages:
        deps = f" → [{', '.join(pkg.dependencies)}]" if pkg.dependencies else ""
        shell.verbose(f"{pkg.name} {pkg.version} ({pkg.relative_location}){deps}")
    return packages
