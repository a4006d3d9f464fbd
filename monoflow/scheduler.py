"""Task scheduler: run one script in many packages.

Three modes:

    TOPOLOGICAL  dependencies finish before dependents start; each
                 package's output is printed when it finishes.
    STREAM       same ordering, output printed live, one line at a time,
                 prefixed with the package name.
    PARALLEL     no ordering; every package starts at once, output is
                 printed live and prefixed.

Every package gets a countdown of unfinished dependencies inside the
selection. When a package reaches a terminal state its dependents' counts
drop, and a dependent is queued when its count hits zero:

    c finishes ──▶ a: 2 → 1     d finishes ──▶ a: 1 → 0 ──▶ a queued

The coordinating thread owns the counters and the RunReport. Workers in
the ThreadPoolExecutor only spawn a process, wait for it, and hand back
an immutable TaskRun.

Bail: after the first failure no new package is started. Processes that
are already running are awaited so their exit codes are recorded;
packages that never started stay PENDING in the report.
"""

from __future__ import annotations

import os
import subprocess
import sys
import threading
import time
from collections import deque
from collections.abc import Sequence
from concurrent.futures import FIRST_COMPLETED, Future, ThreadPoolExecutor, wait
from enum import Enum
from typing import IO, TextIO

from . import shell
from .clients import ScriptClient
from .config import DEFAULT_CONCURRENCY
from .graph import DependencyGraph, topo_order
from .models import Package, RunReport, TaskRun, TaskStatus
from .profiling import Profiler


class RunMode(str, Enum):
    TOPOLOGICAL = "topological"
    STREAM = "stream"
    PARALLEL = "parallel"

    @property
    def live(self) -> bool:
        """Whether output is written as it is produced."""
        return self is not RunMode.TOPOLOGICAL


class OutputWriter:
    """Serializes writes so concurrent packages never split a line."""

    def __init__(self, stdout: TextIO | None = None, stderr: TextIO | None = None) -> None:
        self._stdout = stdout
        self._stderr = stderr
        self._lock = threading.Lock()

    def write(self, text: str, *, err: bool = False) -> None:
        if not text:
            return
        sink = (self._stderr or sys.stderr) if err else (self._stdout or sys.stdout)
        with self._lock:
            sink.write(text)
            sink.flush()


class TaskScheduler:
    """Runs `script` across packages with ordering, concurrency and bail.

    Args:
        graph: Workspace dependency graph (read only).
        client: npm-like client that builds the command line.
        script: Script name to run.
        args: Extra arguments passed after the script name.
        mode: Scheduling mode.
        concurrency: Worker pool size (ignored by PARALLEL, which starts
                     every package at once).
        bail: Stop starting new packages after the first failure.
        prefix: Prefix live output lines with the package name.
        profiler: Receives timings; saved after the run unless bail left
                  packages unstarted.
        writer: Output sink for package stdout/stderr.
    """

    def __init__(
        self,
        graph: DependencyGraph,
        client: ScriptClient,
        script: str,
        *,
        args: Sequence[str] = (),
        mode: RunMode = RunMode.TOPOLOGICAL,
        concurrency: int = DEFAULT_CONCURRENCY,
        bail: bool = True,
        prefix: bool = True,
        profiler: Profiler | None = None,
        writer: OutputWriter | None = None,
    ) -> None:
        self.graph = graph
        self.client = client
        self.script = script
        self.args = list(args)
        self.mode = mode
        self.concurrency = max(1, concurrency)
        self.bail = bail
        self.prefix = prefix
        self.profiler = profiler
        self.writer = writer or OutputWriter()

    # -- worker side ------------------------------------------------------

    def _environment(self, pkg: Package) -> dict[str, str]:
        env = dict(os.environ)
        env["MONOFLOW_PACKAGE_NAME"] = pkg.name
        env["MONOFLOW_ROOT_PATH"] = str(pkg.root)
        return env

    def _pump(self, stream: IO[str], name: str, buffer: list[str], err: bool) -> None:
        for line in stream:
            buffer.append(line)
            if self.mode.live:
                if not line.endswith("\n"):
                    line += "\n"
                text = f"{name}: {line}" if self.prefix else line
                self.writer.write(text, err=err)
        stream.close()

    def execute(self, pkg: Package) -> TaskRun:
        """Run the script in one package and wait for it to exit.

        Called on a worker thread. Never raises for a failing script; the
        returned TaskRun carries the exit code.
        """
        argv = self.client.command(self.script, self.args)
        running = TaskRun(package=pkg, status=TaskStatus.RUNNING, started_at=time.time())
        try:
            proc = subprocess.Popen(
                argv,
                cwd=pkg.location,
                env=self._environment(pkg),
                stdin=subprocess.DEVNULL,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
                errors="replace",
            )
        except OSError as exc:
            return running.model_copy(
                update={
                    "status": TaskStatus.FAILED,
                    "exit_code": 127,
                    "finished_at": time.time(),
                    "stderr": f"{argv[0]}: {exc}\n",
                }
            )

        out: list[str] = []
        err: list[str] = []
        err_thread = threading.Thread(
            target=self._pump, args=(proc.stderr, pkg.name, err, True), daemon=True
        )
        err_thread.start()
        self._pump(proc.stdout, pkg.name, out, False)
        err_thread.join()
        code = proc.wait()

        return running.model_copy(
            update={
                "status": TaskStatus.SUCCEEDED if code == 0 else TaskStatus.FAILED,
                "exit_code": code,
                "finished_at": time.time(),
                "stdout": "".join(out),
                "stderr": "".join(err),
            }
        )

    # -- coordinator side -------------------------------------------------

    def _plan(
        self, names: list[str]
    ) -> tuple[list[str], dict[str, int], dict[str, list[str]]]:
        """Scheduling order, dependency countdowns and dependents lists.

        Only edges inside the selection count. Edges that point forward in
        the cycle-broken topological order close a cycle and are dropped,
        so every countdown can reach zero.
        """
        if self.mode is RunMode.PARALLEL:
            return names, {n: 0 for n in names}, {n: [] for n in names}

        order = topo_order(self.graph, names)
        position = {n: i for i, n in enumerate(order)}
        waiting = {n: 0 for n in order}
        dependents: dict[str, list[str]] = {n: [] for n in order}
        for name in order:
            for dep in self.graph.edges.get(name, []):
                if dep in position and position[dep] < position[name]:
                    waiting[name] += 1
                    dependents[dep].append(name)
        return order, waiting, dependents

    def _finish(self, run: TaskRun, report: RunReport) -> None:
        report.runs.append(run)
        if not self.mode.live:
            self.writer.write(run.stdout)
            self.writer.write(run.stderr, err=True)
            shell.info(
                f"Ran npm script '{self.script}' in '{run.name}' "
                f"in {run.duration_ms / 1000:.1f}s:",
                prefix="run",
            )
        if run.status is TaskStatus.FAILED:
            shell.error(
                f"{self.client.describe(self.script, self.args)} exited "
                f"{run.exit_code} in '{run.name}'"
            )
        if self.profiler is not None:
            self.profiler.record(run)

    def run(self, packages: Sequence[Package]) -> RunReport:
        """Run the script in every package and collect the results.

        Args:
            packages: Selected packages, in declaration order.

        Returns:
            A RunReport. Runs appear in completion order, followed by any
            package that never started because of bail.
        """
        by_name = {p.name: p for p in packages}
        order, waiting, dependents = self._plan(list(by_name))
        position = {n: i for i, n in enumerate(order)}
        workers = len(order) if self.mode is RunMode.PARALLEL else self.concurrency

        report = RunReport(script=self.script, started_at=time.time())
        ready: deque[str] = deque(n for n in order if waiting[n] == 0)
        finished: set[str] = set()
        stopping = False

        with ThreadPoolExecutor(max_workers=max(1, workers)) as pool:
            running: dict[Future[TaskRun], str] = {}
            while ready or running:
                while ready and not stopping and len(running) < workers:
                    name = ready.popleft()
                    running[pool.submit(self.execute, by_name[name])] = name
                if not running:
                    break

                done, _ = wait(running, return_when=FIRST_COMPLETED)
                for future in sorted(done, key=lambda f: position[running[f]]):
                    name = running.pop(future)
                    run = future.result()
                    finished.add(name)
                    self._finish(run, report)
                    if run.status is TaskStatus.FAILED and self.bail:
                        stopping = True
                    for dependent in dependents[name]:
                        waiting[dependent] -= 1
                        if waiting[dependent] == 0:
                            ready.append(dependent)

        for name in order:
            if name not in finished:
                report.runs.append(TaskRun(package=by_name[name]))
        report.finished_at = time.time()
        # Bail only aborted the run if it left something unstarted.
        report.bailed = stopping and bool(report.pending)

        if self.profiler is not None and not report.bailed:
            self.profiler.save()
        return report
