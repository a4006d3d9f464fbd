"""TOML reading utilities.

Uses tomlkit to read the workspace's monoflow.toml. Values are unwrapped
into plain Python containers before they reach pydantic validation.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import ParseError

from .errors import ConfigurationError

CONFIG_FILENAME = "monoflow.toml"


def load_toml(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a TOML file.

    Raises:
        ConfigurationError: If the file is not valid TOML.
    """
    try:
        return tomlkit.parse(path.read_text())
    except ParseError as exc:
        raise ConfigurationError(f"Invalid TOML in {path}: {exc}") from exc


def load_plain(path: Path) -> dict[str, Any]:
    """Load a TOML file as builtin dicts, lists and scalars."""
    return load_toml(path).unwrap()
