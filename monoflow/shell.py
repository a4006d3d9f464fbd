"""Shell, git and log output utilities.

Provides thin wrappers around subprocess calls for git, plus the leveled
log helpers every module uses. Log lines go to stderr so that package
listings and script output on stdout can be piped.
"""

from __future__ import annotations

import subprocess
import sys

LEVELS = {
    "silent": 0,
    "error": 1,
    "warn": 2,
    "notice": 3,
    "success": 4,
    "info": 5,
    "verbose": 6,
}

# Labels printed after the program name, e.g. "monoflow ERR! ...".
_LABELS = {"error": "ERR!", "warn": "WARN"}

_threshold = LEVELS["info"]


def set_log_level(level: str) -> None:
    """Set the minimum level that is printed.

    Raises:
        ValueError: If the level name is unknown.
    """
    global _threshold
    if level not in LEVELS:
        raise ValueError(f"Unknown log level: {level}")
    _threshold = LEVELS[level]


def log(level: str, msg: str, *, prefix: str | None = None) -> None:
    """Print one log line per line of msg to stderr.

    Args:
        level: One of LEVELS (other than "silent").
        msg: Message text; multi-line messages are split and each line
             is labelled.
        prefix: Optional topic printed between the label and the message
                (e.g. "filter", "run").
    """
    if LEVELS[level] > _threshold:
        return
    label = _LABELS.get(level, level)
    head = f"monoflow {label}"
    if prefix:
        head = f"{head} {prefix}"
    for line in msg.splitlines() or [""]:
        print(f"{head} {line}".rstrip(), file=sys.stderr)


def error(msg: str, *, prefix: str | None = None) -> None:
    log("error", msg, prefix=prefix)


def warn(msg: str, *, prefix: str | None = None) -> None:
    log("warn", msg, prefix=prefix)


def notice(msg: str, *, prefix: str | None = None) -> None:
    log("notice", msg, prefix=prefix)


def success(msg: str, *, prefix: str | None = None) -> None:
    log("success", msg, prefix=prefix)


def info(msg: str, *, prefix: str | None = None) -> None:
    log("info", msg, prefix=prefix)


def verbose(msg: str, *, prefix: str | None = None) -> None:
    log("verbose", msg, prefix=prefix)


def git(*args: str, cwd: str | None = None, check: bool = True) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "diff", "--name-only").
        cwd: Directory to run git in. Defaults to the current directory.
        check: If True (default), raise on non-zero exit. Set to False
               for commands that may legitimately fail (e.g., tag lookup).

    Returns:
        Stripped stdout from the git command.

    Raises:
        subprocess.CalledProcessError: If check is True and git fails.
    """
    verbose(f"git {' '.join(args)}", prefix="git")
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=check
    )
    return result.stdout.strip()
