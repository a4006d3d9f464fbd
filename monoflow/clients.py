"""Package-manager clients that run package scripts.

Each client turns (script, args) into the argv used to run that script
inside one package directory. The scheduler only sees this interface, so
adding a client means adding a subclass here.
"""

from __future__ import annotations

from .errors import ConfigurationError


class ScriptClient:
    """Base class for npm-like clients.

    Subclasses set `executable` and may override `command()`.
    """

    name = "npm"
    executable = "npm"

    def command(self, script: str, args: list[str] | tuple[str, ...] = ()) -> list[str]:
        """Return the argv that runs `script` with extra `args`."""
        return [self.executable, "run", script, *args]

    def describe(self, script: str, args: list[str] | tuple[str, ...] = ()) -> str:
        """Human-readable command line, e.g. for log messages."""
        return " ".join([self.name, "run", script, *args])


class NpmClient(ScriptClient):
    name = "npm"
    executable = "npm"


class YarnClient(ScriptClient):
    name = "yarn"
    executable = "yarn"


class PnpmClient(ScriptClient):
    name = "pnpm"
    executable = "pnpm"


CLIENTS: dict[str, type[ScriptClient]] = {
    cls.name: cls for cls in (NpmClient, YarnClient, PnpmClient)
}


def get_client(name: str) -> ScriptClient:
    """Look up a client by name.

    Raises:
        ConfigurationError: If the client is not supported.
    """
    try:
        return CLIENTS[name]()
    except KeyError:
        raise ConfigurationError(
            f"Unsupported npm client \"{name}\"",
            hint=f"Choose one of: {', '.join(sorted(CLIENTS))}",
        ) from None
