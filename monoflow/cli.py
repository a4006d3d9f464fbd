"""CLI entry point for monoflow."""

from __future__ import annotations

import functools
from collections.abc import Callable
from dataclasses import dataclass
from importlib.metadata import version as pkg_version
from pathlib import Path
from typing import Any

import click

from . import shell
from .config import WorkspaceConfig, load_config
from .errors import MonoflowError
from .models import FilterSpec
from .output import resolve_format
from .pipeline import changed_packages, list_packages, load_workspace, run_script
from .scheduler import RunMode

__version__ = pkg_version("monoflow")

# monoflow.toml [command.*] keys whose parameter name differs from the flag.
_PARAM_NAMES = {"all": "show_all", "json": "json_"}


@dataclass
class CliState:
    config: WorkspaceConfig
    concurrency: int | None = None
    ci: bool = False


def reported(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Turn MonoflowError into an ERR! line and the error's exit code."""

    @functools.wraps(fn)
    def wrapper(*args: Any, **kwargs: Any) -> Any:
        try:
            return fn(*args, **kwargs)
        except MonoflowError as exc:
            shell.error(str(exc))
            raise click.exceptions.Exit(exc.exit_code) from exc

    return wrapper


def _enable_ci(ctx: click.Context, param: click.Parameter, value: bool) -> None:
    state = ctx.find_object(CliState)
    if value and state is not None and not state.ci:
        state.ci = True
        shell.info("ci enabled")


ci_option = click.option(
    "--ci",
    is_flag=True,
    expose_value=False,
    callback=_enable_ci,
    help="Running in a CI environment.",
)


def output_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    options = [
        click.option("--json", "json_", is_flag=True, help="Show information as JSON array."),
        click.option("--ndjson", is_flag=True, help="Show information as newline-delimited JSON."),
        click.option("--parseable", "-p", is_flag=True, help="Show parseable output."),
        click.option("--graph", is_flag=True, help="Show dependency graph as a JSON adjacency list."),
        click.option("--all", "-a", "show_all", is_flag=True, help="Show private packages."),
        click.option("--long", "-l", is_flag=True, help="Show extended information."),
        click.option("--toposort", is_flag=True, help="Sort packages in topological order."),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def filter_options(fn: Callable[..., Any]) -> Callable[..., Any]:
    options = [
        click.option("--scope", multiple=True, metavar="GLOB", help="Include only packages with names matching the glob."),
        click.option("--ignore", multiple=True, metavar="GLOB", help="Exclude packages with names matching the glob."),
        click.option("--private/--no-private", default=True, show_default=True, help="Include private packages."),
        click.option(
            "--since",
            is_flag=False,
            flag_value="",
            default=None,
            metavar="[REF]",
            help="Only packages changed since REF, or since the last tag when REF is omitted.",
        ),
        click.option("--exclude-dependents", is_flag=True, help="Skip dependents of packages selected by --since."),
        click.option("--include-dependencies", is_flag=True, help="Include all transitive dependencies."),
        click.option("--include-merged-tags", is_flag=True, help="Include tags from merged branches when resolving --since."),
    ]
    for option in reversed(options):
        fn = option(fn)
    return fn


def _filter_spec(
    scope: tuple[str, ...],
    ignore: tuple[str, ...],
    private: bool,
    since: str | None,
    exclude_dependents: bool,
    include_dependencies: bool,
    include_merged_tags: bool,
) -> FilterSpec:
    return FilterSpec(
        scope_globs=list(scope),
        ignore_globs=list(ignore),
        private=private,
        since=since,
        exclude_dependents=exclude_dependents,
        include_dependencies=include_dependencies,
        include_merged_tags=include_merged_tags,
    )


def _command_defaults(config: WorkspaceConfig, name: str) -> dict[str, Any]:
    """[command.<name>] table as click parameter defaults.

    Negated flags are accepted too: `no-bail = true` sets bail to False.
    """
    defaults: dict[str, Any] = {}
    for key, value in config.command_defaults(name).items():
        if key.startswith("no_") and isinstance(value, bool):
            key, value = key[len("no_"):], not value
        defaults[_PARAM_NAMES.get(key, key)] = value
    return defaults


@click.group()
@click.version_option(package_name="monoflow")
@click.option(
    "--loglevel",
    type=click.Choice(list(shell.LEVELS)),
    default="info",
    show_default=True,
    help="What level of logs to report.",
)
@click.option("--ci", is_flag=True, help="Running in a CI environment.")
@click.option(
    "--concurrency",
    type=click.IntRange(min=1),
    default=None,
    help="How many processes to use when running scripts in parallel.",
)
@click.pass_context
@reported
def cli(ctx: click.Context, loglevel: str, ci: bool, concurrency: int | None) -> None:
    """Monorepo workspace manager: list packages, find what changed, run scripts."""
    shell.set_log_level(loglevel)
    shell.notice(f"cli v{__version__}")
    if ci:
        shell.info("ci enabled")

    config = load_config(Path.cwd())
    defaults = {name: _command_defaults(config, name) for name in config.command}
    if "list" in defaults:
        defaults.setdefault("ls", defaults["list"])
    ctx.default_map = defaults
    ctx.obj = CliState(config=config, concurrency=concurrency, ci=ci)


@cli.command()
@output_options
@ci_option
@click.option("--include-merged-tags", is_flag=True, help="Include tags from merged branches.")
@click.pass_obj
@reported
def changed(
    state: CliState,
    json_: bool,
    ndjson: bool,
    parseable: bool,
    graph: bool,
    show_all: bool,
    long: bool,
    toposort: bool,
    include_merged_tags: bool,
) -> None:
    """List local packages that have changed since the last tagged release."""
    fmt = resolve_format(json_=json_, ndjson=ndjson, parseable=parseable, graph=graph, long=long)
    ws = load_workspace(state.config.root, state.config)
    packages = changed_packages(
        ws,
        include_merged_tags=include_merged_tags,
        fmt=fmt,
        long=long,
        show_all=show_all,
        toposort=toposort,
    )
    if not packages:
        raise click.exceptions.Exit(1)


@cli.command(name="list")
@output_options
@filter_options
@ci_option
@click.pass_obj
@reported
def list_(
    state: CliState,
    json_: bool,
    ndjson: bool,
    parseable: bool,
    graph: bool,
    show_all: bool,
    long: bool,
    toposort: bool,
    **filters: Any,
) -> None:
    """List local packages."""
    fmt = resolve_format(json_=json_, ndjson=ndjson, parseable=parseable, graph=graph, long=long)
    ws = load_workspace(state.config.root, state.config)
    list_packages(
        ws,
        _filter_spec(**filters),
        fmt=fmt,
        long=long,
        show_all=show_all,
        toposort=toposort,
    )


cli.add_command(list_, name="ls")


@cli.command(context_settings={"ignore_unknown_options": True})
@click.argument("script")
@click.argument("args", nargs=-1, type=click.UNPROCESSED)
@filter_options
@ci_option
@click.option("--stream", is_flag=True, help="Stream output with lines prefixed by package name.")
@click.option("--parallel", is_flag=True, help="Run in all packages at once, ignoring dependencies.")
@click.option("--prefix/--no-prefix", default=True, show_default=True, help="Prefix streamed output with the package name.")
@click.option("--bail/--no-bail", default=True, show_default=True, help="Stop when a script fails in a package.")
@click.option("--npm-client", default=None, help="Executable used to run scripts (npm, yarn, pnpm).")
@click.option("--concurrency", type=click.IntRange(min=1), default=None, help="Worker pool size.")
@click.option("--profile", is_flag=True, help="Write a performance profile of the run.")
@click.option("--profile-location", default=None, type=click.Path(), help="Directory for the profile file.")
@click.pass_obj
@reported
def run(
    state: CliState,
    script: str,
    args: tuple[str, ...],
    stream: bool,
    parallel: bool,
    prefix: bool,
    bail: bool,
    npm_client: str | None,
    concurrency: int | None,
    profile: bool,
    profile_location: str | None,
    **filters: Any,
) -> None:
    """Run SCRIPT in each package that defines it. Pass extra arguments after --."""
    if parallel:
        mode = RunMode.PARALLEL
    elif stream:
        mode = RunMode.STREAM
    else:
        mode = RunMode.TOPOLOGICAL

    ws = load_workspace(state.config.root, state.config)
    run_script(
        ws,
        script,
        _filter_spec(**filters),
        args=list(args),
        mode=mode,
        concurrency=concurrency or state.concurrency,
        bail=bail,
        prefix=prefix,
        npm_client=npm_client,
        profile=profile,
        profile_location=profile_location,
    )
