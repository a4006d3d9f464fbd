"""Performance profiles for script runs.

Each finished TaskRun becomes one "complete" event in the Chrome trace
event format, so the saved file opens in chrome://tracing or Perfetto.
Concurrent runs are spread over lanes (tid) so that overlapping events
never share a lane.
"""

from __future__ import annotations

import json
import time
from dataclasses import dataclass, field
from pathlib import Path

from . import shell
from .models import TaskRun

PROFILE_PREFIX = "Monoflow-Profile"


@dataclass(frozen=True)
class ProfileRecord:
    """One package's timing.

    Attributes:
        name: Package name.
        start: Epoch seconds at spawn.
        end: Epoch seconds at exit.
        lane: Lane index; concurrent records get distinct lanes.
    """

    name: str
    start: float
    end: float
    lane: int

    @property
    def duration(self) -> float:
        return self.end - self.start


@dataclass
class Profiler:
    """Collects timings and writes them to a profile file.

    Attributes:
        directory: Where the profile is written.
        records: Collected records in completion order.
    """

    directory: Path
    records: list[ProfileRecord] = field(default_factory=list)
    _lane_ends: list[float] = field(default_factory=list, init=False, repr=False)

    def record(self, run: TaskRun) -> None:
        """Add a finished run. Runs that never started are ignored."""
        if run.started_at is None or run.finished_at is None:
            return
        lane = next(
            (i for i, end in enumerate(self._lane_ends) if end <= run.started_at),
            len(self._lane_ends),
        )
        if lane == len(self._lane_ends):
            self._lane_ends.append(run.finished_at)
        else:
            self._lane_ends[lane] = run.finished_at
        self.records.append(
            ProfileRecord(
                name=run.name, start=run.started_at, end=run.finished_at, lane=lane
            )
        )

    def events(self) -> list[dict[str, object]]:
        """Trace events, with microsecond timestamps."""
        return [
            {
                "name": r.name,
                "ph": "X",
                "ts": int(r.start * 1_000_000),
                "dur": int(r.duration * 1_000_000),
                "pid": 1,
                "tid": r.lane,
                "args": {"lane": r.lane},
            }
            for r in self.records
        ]

    def output_path(self, now: float | None = None) -> Path:
        stamp = time.strftime("%Y%m%dT%H%M%S", time.localtime(now))
        return self.directory / f"{PROFILE_PREFIX}-{stamp}.json"

    def save(self, now: float | None = None) -> Path:
        """Write the profile and return its path."""
        path = self.output_path(now)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(json.dumps(self.events(), indent=2))
        shell.info(f"Performance profile saved to {path}", prefix="profiler")
        return path
