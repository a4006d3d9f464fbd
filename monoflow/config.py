"""Workspace configuration.

The workspace root is configured by an optional monoflow.toml:

    packages = ["packages/*", "modules/*"]
    npm-client = "npm"
    concurrency = 4
    ignore-changes = ["**/*.md"]

    [command.run]
    stream = true

When monoflow.toml is absent, workspace globs come from the root
package.json "workspaces" field, and finally default to ["packages/*"].
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigurationError
from .toml import CONFIG_FILENAME, load_plain

DEFAULT_PACKAGE_GLOBS = ["packages/*"]
DEFAULT_CONCURRENCY = 4


class WorkspaceConfig(BaseModel):
    """Settings for one workspace.

    Attributes:
        root: Absolute path of the workspace root.
        packages: Glob patterns (relative to root) of package directories,
                  in declaration order.
        npm_client: Client used to run package scripts.
        concurrency: Worker pool size for `run`.
        tag_pattern: Optional `git describe --match` pattern for release tags.
        ignore_changes: Path globs whose changes never mark a package changed.
        command: Per-subcommand flag defaults, keyed by subcommand name.
    """

    model_config = ConfigDict(populate_by_name=True, extra="forbid")

    root: Path
    packages: list[str] = Field(default_factory=lambda: list(DEFAULT_PACKAGE_GLOBS))
    npm_client: str = Field(default="npm", alias="npm-client")
    concurrency: int = Field(default=DEFAULT_CONCURRENCY, ge=1)
    tag_pattern: str | None = Field(default=None, alias="tag-pattern")
    ignore_changes: list[str] = Field(default_factory=list, alias="ignore-changes")
    command: dict[str, dict[str, Any]] = Field(default_factory=dict)

    def command_defaults(self, name: str) -> dict[str, Any]:
        """Return flag defaults for a subcommand with dashes turned into
        underscores, matching CLI parameter names."""
        return {
            key.replace("-", "_"): value
            for key, value in self.command.get(name, {}).items()
        }


def _package_json_workspaces(root: Path) -> list[str] | None:
    manifest = root / "package.json"
    if not manifest.exists():
        return None
    try:
        data = json.loads(manifest.read_text())
    except json.JSONDecodeError as exc:
        raise ConfigurationError(f"Invalid JSON in {manifest}: {exc}") from exc
    workspaces = data.get("workspaces")
    # Yarn accepts {"packages": [...], "nohoist": [...]}
    if isinstance(workspaces, dict):
        workspaces = workspaces.get("packages")
    if isinstance(workspaces, list) and workspaces:
        return [str(w) for w in workspaces]
    return None


def load_config(root: Path) -> WorkspaceConfig:
    """Read the workspace configuration rooted at `root`.

    Args:
        root: Workspace root directory.

    Returns:
        A validated WorkspaceConfig.

    Raises:
        ConfigurationError: If monoflow.toml is malformed or has invalid
            values.
    """
    root = root.resolve()
    raw: dict[str, Any] = {}
    config_path = root / CONFIG_FILENAME
    if config_path.exists():
        raw = load_plain(config_path)

    if "packages" not in raw:
        globs = _package_json_workspaces(root)
        if globs:
            raw["packages"] = globs

    try:
        return WorkspaceConfig.model_validate({**raw, "root": root})
    except ValidationError as exc:
        raise ConfigurationError(
            f"Invalid configuration in {config_path.name}:\n{exc}"
        ) from exc
