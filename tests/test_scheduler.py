"""Tests for monoflow.scheduler."""

from __future__ import annotations

import io
import json
from pathlib import Path

import pytest

from conftest import PythonClient, make_package, write_script
from monoflow.graph import DependencyGraph, build_graph
from monoflow.models import Package, RunReport, TaskStatus
from monoflow.profiling import PROFILE_PREFIX, Profiler
from monoflow.scheduler import OutputWriter, RunMode, TaskScheduler

OK = "print('hello from', __import__('os').path.basename(__import__('os').getcwd()))\n"


def runs_by_name(report: RunReport) -> dict[str, TaskStatus]:
    return {run.name: run.status for run in report.runs}


@pytest.fixture
def packages(tmp_path: Path) -> list[Package]:
    """a(→c,d), c, d, e on disk, each with a passing build script."""
    pkgs = [
        make_package("a", deps=("c", "d"), root=tmp_path),
        make_package("c", root=tmp_path),
        make_package("d", root=tmp_path),
        make_package("e", root=tmp_path),
    ]
    for pkg in pkgs:
        write_script(pkg.location, "build", OK)
    return pkgs


@pytest.fixture
def graph(packages: list[Package]) -> DependencyGraph:
    return build_graph(packages)


def scheduler(
    graph: DependencyGraph, writer: OutputWriter | None = None, **kwargs: object
) -> TaskScheduler:
    return TaskScheduler(
        graph,
        PythonClient(),
        "build",
        writer=writer or OutputWriter(stdout=io.StringIO(), stderr=io.StringIO()),
        **kwargs,  # type: ignore[arg-type]
    )


class TestTopological:
    def test_all_succeed(self, graph: DependencyGraph, packages: list[Package]) -> None:
        report = scheduler(graph).run(packages)

        assert report.ok
        assert len(report.runs) == 4
        assert all(run.exit_code == 0 for run in report.runs)

    def test_dependencies_finish_first(
        self, graph: DependencyGraph, packages: list[Package]
    ) -> None:
        report = scheduler(graph, concurrency=4).run(packages)

        runs = {run.name: run for run in report.runs}
        for dep in ("c", "d"):
            assert runs[dep].finished_at is not None
            assert runs["a"].started_at is not None
            assert runs[dep].finished_at <= runs["a"].started_at

    def test_buffered_output(
        self,
        graph: DependencyGraph,
        packages: list[Package],
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        out = io.StringIO()
        scheduler(graph, OutputWriter(stdout=out, stderr=io.StringIO())).run(packages[1:2])

        assert out.getvalue() == "hello from c\n"
        assert "monoflow info run Ran npm script 'build' in 'c' in" in capsys.readouterr().err

    def test_environment(self, tmp_path: Path) -> None:
        pkg = make_package("env-pkg", root=tmp_path)
        write_script(
            pkg.location,
            "build",
            "import os\nprint(os.environ['MONOFLOW_PACKAGE_NAME'], os.environ['MONOFLOW_ROOT_PATH'])\n",
        )
        out = io.StringIO()

        scheduler(build_graph([pkg]), OutputWriter(stdout=out, stderr=io.StringIO())).run([pkg])

        assert out.getvalue() == f"env-pkg {tmp_path}\n"

    def test_args_are_passed(self, tmp_path: Path) -> None:
        pkg = make_package("p", root=tmp_path)
        write_script(pkg.location, "build", "import sys\nprint(' '.join(sys.argv[1:]))\n")
        out = io.StringIO()

        scheduler(
            build_graph([pkg]),
            OutputWriter(stdout=out, stderr=io.StringIO()),
            args=["--watch", "x"],
        ).run([pkg])

        assert out.getvalue() == "--watch x\n"

    def test_subset_ignores_unselected_dependencies(
        self, graph: DependencyGraph, packages: list[Package]
    ) -> None:
        a = packages[0]
        report = scheduler(graph).run([a])
        assert runs_by_name(report) == {"a": TaskStatus.SUCCEEDED}


class TestFailures:
    @pytest.fixture
    def failing_c(self, packages: list[Package]) -> None:
        write_script(packages[1].location, "build", "import sys\nsys.exit(3)\n")

    def test_bail_stops_scheduling(
        self, graph: DependencyGraph, packages: list[Package], failing_c: None
    ) -> None:
        report = scheduler(graph, concurrency=1).run(packages)

        assert report.bailed
        assert not report.ok
        assert runs_by_name(report)["c"] is TaskStatus.FAILED
        assert runs_by_name(report)["a"] is TaskStatus.PENDING
        assert report.first_failure is not None
        assert report.first_failure.exit_code == 3

    def test_dependent_of_failure_never_starts(
        self, graph: DependencyGraph, packages: list[Package], failing_c: None
    ) -> None:
        report = scheduler(graph, concurrency=4).run(packages)
        a = next(run for run in report.runs if run.name == "a")
        assert a.started_at is None

    def test_no_bail_runs_everything(
        self, graph: DependencyGraph, packages: list[Package], failing_c: None
    ) -> None:
        report = scheduler(graph, bail=False).run(packages)

        assert not report.bailed
        assert len(report.runs) == len(packages)
        assert [r.name for r in report.failed] == ["c"]
        assert {r.name for r in report.succeeded} == {"a", "d", "e"}

    def test_failure_is_logged(
        self,
        graph: DependencyGraph,
        packages: list[Package],
        failing_c: None,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        scheduler(graph).run(packages[1:2])
        assert "monoflow ERR! python run build exited 3 in 'c'" in capsys.readouterr().err

    def test_missing_executable(self, graph: DependencyGraph, packages: list[Package]) -> None:
        client = PythonClient()
        client.executable = "monoflow-no-such-binary"
        sched = TaskScheduler(
            graph,
            client,
            "build",
            writer=OutputWriter(stdout=io.StringIO(), stderr=io.StringIO()),
        )

        report = sched.run(packages[1:2])

        assert report.runs[0].status is TaskStatus.FAILED
        assert report.runs[0].exit_code == 127


class TestLiveModes:
    def test_stream_prefixes_lines(self, graph: DependencyGraph, packages: list[Package]) -> None:
        out = io.StringIO()
        scheduler(
            graph, OutputWriter(stdout=out, stderr=io.StringIO()), mode=RunMode.STREAM
        ).run(packages)

        lines = out.getvalue().splitlines()
        assert sorted(lines) == [
            "a: hello from a",
            "c: hello from c",
            "d: hello from d",
            "e: hello from e",
        ]

    def test_no_prefix(self, graph: DependencyGraph, packages: list[Package]) -> None:
        out = io.StringIO()
        scheduler(
            graph,
            OutputWriter(stdout=out, stderr=io.StringIO()),
            mode=RunMode.STREAM,
            prefix=False,
        ).run(packages[1:2])

        assert out.getvalue() == "hello from c\n"

    def test_stderr_stream(self, tmp_path: Path) -> None:
        pkg = make_package("noisy", root=tmp_path)
        write_script(pkg.location, "build", "import sys\nsys.stderr.write('warning\\n')\n")
        err = io.StringIO()

        report = scheduler(
            build_graph([pkg]),
            OutputWriter(stdout=io.StringIO(), stderr=err),
            mode=RunMode.STREAM,
        ).run([pkg])

        assert err.getvalue() == "noisy: warning\n"
        assert report.runs[0].stderr == "warning\n"

    def test_parallel_ignores_dependencies(
        self, graph: DependencyGraph, packages: list[Package]
    ) -> None:
        sched = scheduler(graph, mode=RunMode.PARALLEL, concurrency=1)
        order, waiting, _ = sched._plan([p.name for p in packages])

        assert order == ["a", "c", "d", "e"]
        assert set(waiting.values()) == {0}
        assert sched.run(packages).ok

    def test_parallel_starts_everything(self, tmp_path: Path) -> None:
        # Each script waits for every other script's marker file, so the
        # run only finishes if all of them are running at once.
        names = ["p1", "p2", "p3"]
        pkgs = [make_package(n, root=tmp_path) for n in names]
        marker_dir = tmp_path / "markers"
        marker_dir.mkdir()
        code = (
            "import os, sys, time\n"
            f"d = {str(marker_dir)!r}\n"
            "open(os.path.join(d, os.path.basename(os.getcwd())), 'w').close()\n"
            "deadline = time.time() + 10\n"
            "while len(os.listdir(d)) < 3:\n"
            "    if time.time() > deadline:\n"
            "        sys.exit(1)\n"
            "    time.sleep(0.01)\n"
        )
        for pkg in pkgs:
            write_script(pkg.location, "build", code)

        report = scheduler(build_graph(pkgs), mode=RunMode.PARALLEL, concurrency=1).run(pkgs)

        assert report.ok


class TestPlan:
    def test_countdowns(self, graph: DependencyGraph) -> None:
        order, waiting, dependents = scheduler(graph)._plan(["a", "c", "d", "e"])

        assert order == ["c", "d", "a", "e"]
        assert waiting == {"c": 0, "d": 0, "a": 2, "e": 0}
        assert dependents["c"] == ["a"]
        assert dependents["d"] == ["a"]

    def test_cycle_edges_dropped(self, tmp_path: Path) -> None:
        pkgs = [
            make_package("x", deps=("y",), root=tmp_path),
            make_package("y", deps=("x",), root=tmp_path),
        ]
        order, waiting, _ = scheduler(build_graph(pkgs))._plan(["x", "y"])

        assert order == ["x", "y"]
        assert waiting == {"x": 0, "y": 1}


class TestProfiling:
    def test_profile_saved(
        self, tmp_path: Path, graph: DependencyGraph, packages: list[Package]
    ) -> None:
        profiler = Profiler(directory=tmp_path / "profiles")

        scheduler(graph, profiler=profiler).run(packages)

        files = list((tmp_path / "profiles").glob(f"{PROFILE_PREFIX}-*.json"))
        assert len(files) == 1
        events = json.loads(files[0].read_text())
        assert sorted(e["name"] for e in events) == ["a", "c", "d", "e"]

    def test_not_saved_after_bail(
        self, tmp_path: Path, graph: DependencyGraph, packages: list[Package]
    ) -> None:
        write_script(packages[1].location, "build", "raise SystemExit(1)\n")
        profiler = Profiler(directory=tmp_path / "profiles")

        scheduler(graph, profiler=profiler, concurrency=1).run(packages)

        assert not (tmp_path / "profiles").exists()

    def test_saved_when_failure_left_nothing_unstarted(self, tmp_path: Path) -> None:
        pkgs = [make_package("c", root=tmp_path), make_package("d", root=tmp_path)]
        write_script(pkgs[0].location, "build", "raise SystemExit(1)\n")
        write_script(pkgs[1].location, "build", OK)
        profiler = Profiler(directory=tmp_path / "profiles")

        report = scheduler(build_graph(pkgs), profiler=profiler, concurrency=2).run(pkgs)

        assert not report.ok
        assert report.pending == []
        assert not report.bailed
        assert len(list((tmp_path / "profiles").glob(f"{PROFILE_PREFIX}-*.json"))) == 1
