"""Tests for issueflow.coordinator."""

from __future__ import annotations

import json

import pytest
from conftest import FakeClassifier, FakeGenerator, FakePublisher, FakeReviewer

from issueflow.coordinator import (
    Coordinator,
    IssueFetchError,
    RunReport,
    build_executor_factory,
    report_path_for,
)
from issueflow.core.cancellation import CancelledException
from issueflow.core.dag.graph import CyclicDependencyError
from issueflow.core.executor import StageError, TaskExecutor
from issueflow.core.types import Issue


class FakeGitHub:
    """Serves issues from a dict and records fetches."""

    def __init__(self, issues: list[Issue], missing: set[int] | None = None):
        self.issues = {i.number: i for i in issues}
        self.missing = missing or set()
        self.fetched: list[int] = []

    async def get_issue(self, number: int) -> Issue:
        self.fetched.append(number)
        if number in self.missing or number not in self.issues:
            raise RuntimeError("404 Not Found")
        return self.issues[number]


def executor_factory(config, generator=None, publisher=None):
    generator = generator or FakeGenerator()
    publisher = publisher or FakePublisher()

    def factory(issues, log_writer, cancellation):
        return TaskExecutor(
            config=config,
            classifier=FakeClassifier(),
            generator=generator,
            reviewer=FakeReviewer(),
            publisher=publisher,
            log_writer=log_writer,
            issues=issues,
            cancellation=cancellation,
        )

    return factory


def read_report(coordinator: Coordinator) -> dict:
    assert coordinator.report_path is not None
    return json.loads(coordinator.report_path.read_text(encoding="utf-8"))


class TestFetchIssues:
    async def test_dedupes_in_order(self, config, make_issue):
        github = FakeGitHub([make_issue(1), make_issue(2)])
        coordinator = Coordinator(config, github)

        issues = await coordinator.fetch_issues([2, 1, 2])

        assert list(issues) == [2, 1]
        assert github.fetched == [2, 1]

    async def test_fetch_error(self, config, make_issue):
        github = FakeGitHub([make_issue(1)], missing={7})
        with pytest.raises(IssueFetchError) as exc_info:
            await Coordinator(config, github).fetch_issues([1, 7])

        assert exc_info.value.issue_number == 7
        assert "#7" in str(exc_info.value)


class TestPlan:
    async def test_levels(self, config, make_issue):
        github = FakeGitHub(
            [
                make_issue(1),
                make_issue(2, body="depends: #1"),
                make_issue(3, body="Relates to #2"),
            ]
        )
        nodes = await Coordinator(config, github).plan([3, 2, 1])

        assert [(n.id, n.level) for n in nodes] == [("issue-1", 0), ("issue-2", 1), ("issue-3", 2)]

    async def test_cycle(self, config, make_issue):
        github = FakeGitHub([make_issue(1, body="depends: #2"), make_issue(2, body="depends: #1")])
        with pytest.raises(CyclicDependencyError):
            await Coordinator(config, github).plan([1, 2])

    async def test_lenient_cycles(self, config, make_issue):
        config.lenient_cycles = True
        github = FakeGitHub([make_issue(1, body="depends: #2"), make_issue(2, body="depends: #1")])
        nodes = await Coordinator(config, github).plan([1, 2])
        assert len(nodes) == 2


class TestRun:
    """Tests for Coordinator.run."""

    async def test_requires_factory(self, config, make_issue):
        with pytest.raises(RuntimeError, match="executor_factory"):
            await Coordinator(config, FakeGitHub([make_issue(1)])).run([1])

    async def test_success_writes_report(self, config, make_issue):
        github = FakeGitHub([make_issue(1), make_issue(2, body="depends: #1")])
        publisher = FakePublisher()
        done = []
        coordinator = Coordinator(
            config,
            github,
            executor_factory(config, publisher=publisher),
            concurrency=2,
            on_node_done=lambda node_id, outcome: done.append((node_id, outcome.status)),
        )

        report = await coordinator.run([1, 2])

        assert isinstance(report, RunReport)
        assert report.status == "success"
        assert [n.status for n in report.nodes] == ["success", "success"]
        assert done == [("issue-1", "success"), ("issue-2", "success")]
        assert [r.issue_number for r in publisher.requests] == [1, 2]

        assert coordinator.report_path == report_path_for(config.report_directory, report.run_id)
        data = read_report(coordinator)
        assert data["status"] == "success"
        assert data["summary"] == {"total": 2, "success": 2, "failed": 0, "skipped": 0}
        assert data["nodes"][0]["pr_url"].endswith("/pull/101")
        assert data["nodes"][1]["dependencies"] == ["issue-1"]
        assert data["finished_at"] is not None

    async def test_failure_skips_later_levels(self, config, make_issue):
        github = FakeGitHub(
            [make_issue(1), make_issue(2), make_issue(3, body="depends: #1")]
        )
        coordinator = Coordinator(
            config,
            github,
            executor_factory(config, generator=FakeGenerator(fail_for={1})),
            concurrency=2,
        )

        with pytest.raises(StageError, match="rate limited"):
            await coordinator.run([1, 2, 3])

        data = read_report(coordinator)
        statuses = {n["node_id"]: n["status"] for n in data["nodes"]}
        assert statuses == {"issue-1": "failed", "issue-2": "success", "issue-3": "skipped"}
        assert data["status"] == "failed"
        assert "rate limited" in data["error"]
        assert data["summary"]["skipped"] == 1

    async def test_fetch_error_aborts_before_report(self, config, make_issue):
        github = FakeGitHub([make_issue(1)], missing={2})
        coordinator = Coordinator(config, github, executor_factory(config))

        with pytest.raises(IssueFetchError):
            await coordinator.run([1, 2])

        assert coordinator.report_path is None

    async def test_cycle_aborts_before_execution(self, config, make_issue):
        github = FakeGitHub([make_issue(1, body="depends: #2"), make_issue(2, body="depends: #1")])
        generator = FakeGenerator()
        coordinator = Coordinator(config, github, executor_factory(config, generator=generator))

        with pytest.raises(CyclicDependencyError):
            await coordinator.run([1, 2])

        assert generator.requests == []
        assert coordinator.report_path is None

    async def test_cancelled_before_start(self, config, make_issue):
        github = FakeGitHub([make_issue(1)])
        generator = FakeGenerator()
        coordinator = Coordinator(config, github, executor_factory(config, generator=generator))
        coordinator.cancellation.cancel()

        with pytest.raises(CancelledException):
            await coordinator.run([1])

        assert generator.requests == []
        assert read_report(coordinator)["status"] == "failed"


class TestBuildExecutorFactory:
    async def test_builds_dry_run_executor(self, config, make_issue):
        factory = build_executor_factory(config, github=object(), dry_run=True)
        executor = factory({1: make_issue(1)}, log_writer=None, cancellation=None)

        assert isinstance(executor, TaskExecutor)
        assert executor.dry_run is True
