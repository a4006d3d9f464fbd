"""Data models for monoflow.

These Pydantic models represent the core data structures passed between
discovery, change detection, filtering, scheduling and output.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field


class Package(BaseModel):
    """One workspace member, read from its package.json.

    Attributes:
        name: Package name, unique within the workspace.
        version: Version string from the manifest.
        location: Absolute path of the package directory.
        root: Absolute path of the workspace root.
        private: True when the manifest sets "private": true.
        dependencies: Declared dependency names in manifest order. External
                      names are kept here; the graph drops them.
        scripts: Map of script name → command from the manifest.
    """

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    location: Path
    root: Path
    private: bool = False
    dependencies: tuple[str, ...] = ()
    scripts: dict[str, str] = Field(default_factory=dict)

    @property
    def relative_location(self) -> str:
        """Location relative to the workspace root, "/"-separated."""
        try:
            return self.location.relative_to(self.root).as_posix()
        except ValueError:
            return self.location.as_posix()

    def listing(self) -> dict[str, object]:
        """The {name, version, private, location} record used by JSON output."""
        return {
            "name": self.name,
            "version": self.version,
            "private": self.private,
            "location": str(self.location),
        }


class ChangeBaseline(BaseModel):
    """The git reference changes are measured against.

    Attributes:
        ref: Tag, commit or ref name; None when no prior release exists.
        include_merged_tags: Whether tags reachable only through merged
                             branches were considered when resolving ref.
        explicit: True when ref came from the caller (--since <ref>)
                  rather than from tag lookup.
    """

    model_config = ConfigDict(frozen=True)

    ref: str | None = None
    include_merged_tags: bool = False
    explicit: bool = False


class ChangeSet(BaseModel):
    """Directly changed packages, before any graph expansion.

    Attributes:
        baseline: The resolved baseline.
        changed: Names of directly changed packages, in declaration order.
        assumed_all: True when no baseline existed and every public package
                     was assumed changed.
        changed_files: Repository-relative paths that differed.
    """

    model_config = ConfigDict(frozen=True)

    baseline: ChangeBaseline
    changed: tuple[str, ...] = ()
    assumed_all: bool = False
    changed_files: tuple[str, ...] = ()


class FilterSpec(BaseModel):
    """Selection options applied by the filter pipeline.

    Attributes:
        scope_globs: Keep only packages whose name matches one of these.
        ignore_globs: Drop packages whose name matches one of these.
        private: Keep private packages (False drops them first).
        since: Restrict to packages changed since this ref. An empty string
               means "since the most recent tag".
        include_merged_tags: Consider tags on merged branches when `since`
                             has to be resolved from tags.
        include_dependencies: Add transitive workspace dependencies.
        exclude_dependents: Drop packages selected only because one of
                            their dependencies changed.
    """

    model_config = ConfigDict(frozen=True)

    scope_globs: list[str] = Field(default_factory=list)
    ignore_globs: list[str] = Field(default_factory=list)
    private: bool = True
    since: str | None = None
    include_merged_tags: bool = False
    include_dependencies: bool = False
    exclude_dependents: bool = False


class TaskStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

    @property
    def terminal(self) -> bool:
        return self in (TaskStatus.SUCCEEDED, TaskStatus.FAILED)


class TaskRun(BaseModel):
    """One package's script execution.

    Instances are immutable; each status transition produces a new one.

    Attributes:
        package: The package the script ran in.
        status: Lifecycle state.
        exit_code: Process exit code once terminal.
        started_at: Epoch seconds when the process was spawned.
        finished_at: Epoch seconds when the process exited.
        stdout: Captured standard output.
        stderr: Captured standard error.
    """

    model_config = ConfigDict(frozen=True)

    package: Package
    status: TaskStatus = TaskStatus.PENDING
    exit_code: int | None = None
    started_at: float | None = None
    finished_at: float | None = None
    stdout: str = ""
    stderr: str = ""

    @property
    def name(self) -> str:
        return self.package.name

    @property
    def duration_ms(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at) * 1000


class RunReport(BaseModel):
    """Aggregate result of running one script across packages.

    Only the scheduler's coordinating thread mutates a report.
    """

    script: str
    runs: list[TaskRun] = Field(default_factory=list)
    bailed: bool = False
    started_at: float | None = None
    finished_at: float | None = None

    @property
    def succeeded(self) -> list[TaskRun]:
        return [r for r in self.runs if r.status is TaskStatus.SUCCEEDED]

    @property
    def failed(self) -> list[TaskRun]:
        return [r for r in self.runs if r.status is TaskStatus.FAILED]

    @property
    def pending(self) -> list[TaskRun]:
        return [r for r in self.runs if not r.status.terminal]

    @property
    def ok(self) -> bool:
        return not self.failed and not self.pending

    @property
    def first_failure(self) -> TaskRun | None:
        failed = self.failed
        return failed[0] if failed else None

    @property
    def duration_ms(self) -> float:
        if self.started_at is None or self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at) * 1000
