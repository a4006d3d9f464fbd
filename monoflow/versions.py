"""Version parsing utilities.

Manifest versions are semver strings, including prereleases such as
"0.0.0-alpha.1". Incomplete versions ("1.0") are padded the way npm's
loose parser does.
"""

from __future__ import annotations

import semver

DEFAULT_VERSION = "0.0.0"


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3-beta.1" → "1.2.3-beta.1"

    A leading "v" is accepted and dropped.

    Raises:
        ValueError: If the string is not a valid semver version.
    """
    text = version_str.strip().removeprefix("v")
    core, sep, rest = text.partition("-")
    if not sep:
        core, sep, rest = text.partition("+")
    parts = core.split(".")
    while len(parts) < 3:
        parts.append("0")
    return semver.Version.parse(".".join(parts) + sep + rest)


def is_valid_version(version_str: str) -> bool:
    """Return True if version_str parses as semver."""
    try:
        parse_version(version_str)
    except ValueError:
        return False
    return True
