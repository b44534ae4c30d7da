"""Run orchestration: fetch issues, build the DAG, schedule, report.

Coordinator ties the pieces together for one run:
1. Fetch every requested issue once (a fetch error aborts the run)
2. Build the leveled DAG (a cycle aborts the run)
3. Schedule nodes with the LevelScheduler and TaskExecutor
4. Write a JSON run report, whether the run succeeded or not
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Any

from issueflow.agents.classifier import IssueClassifier
from issueflow.agents.codegen import CodeGenerator
from issueflow.agents.github import GitHubClient
from issueflow.agents.llm_client import LLMClient
from issueflow.agents.publisher import PullRequestPublisher
from issueflow.agents.reviewer import CodeReviewer
from issueflow.core.cancellation import CancellationToken
from issueflow.core.config import Config
from issueflow.core.dag.graph import DAGNode, build_dag
from issueflow.core.dag.scheduler import LevelScheduler
from issueflow.core.execution_log import ExecutionLogWriter
from issueflow.core.executor import TaskExecutor
from issueflow.core.run_logging import generate_run_id, log_complete, log_start
from issueflow.core.types import Issue, NodeResult

logger = logging.getLogger(__name__)

ExecutorFactory = Callable[[Mapping[int, Issue], ExecutionLogWriter, CancellationToken], TaskExecutor]


class IssueFetchError(Exception):
    """Raised when a requested issue cannot be fetched."""

    def __init__(self, issue_number: int, cause: BaseException) -> None:
        super().__init__(f"Failed to fetch issue #{issue_number}: {cause}")
        self.issue_number = issue_number


@dataclass
class NodeOutcome:
    """Per-node entry of a run report."""

    node_id: str
    issue_number: int
    title: str
    level: int
    dependencies: list[str]
    status: str = "skipped"
    duration_ms: float | None = None
    score: int | None = None
    pr_url: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "issue_number": self.issue_number,
            "title": self.title,
            "level": self.level,
            "dependencies": list(self.dependencies),
            "status": self.status,
            "duration_ms": round(self.duration_ms, 1) if self.duration_ms is not None else None,
            "score": self.score,
            "pr_url": self.pr_url,
            "error": self.error,
        }


@dataclass
class RunReport:
    """Summary of one run, written as JSON to the report directory."""

    run_id: str
    repository: str
    device_identifier: str
    concurrency: int
    dry_run: bool
    started_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: datetime | None = None
    status: str = "running"
    error: str | None = None
    nodes: list[NodeOutcome] = field(default_factory=list)

    @property
    def succeeded(self) -> list[NodeOutcome]:
        return [n for n in self.nodes if n.status == "success"]

    @property
    def failed(self) -> list[NodeOutcome]:
        return [n for n in self.nodes if n.status == "failed"]

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "repository": self.repository,
            "device_identifier": self.device_identifier,
            "concurrency": self.concurrency,
            "dry_run": self.dry_run,
            "started_at": self.started_at.isoformat(),
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "status": self.status,
            "error": self.error,
            "summary": {
                "total": len(self.nodes),
                "success": len(self.succeeded),
                "failed": len(self.failed),
                "skipped": len(self.nodes) - len(self.succeeded) - len(self.failed),
            },
            "nodes": [n.to_dict() for n in self.nodes],
        }


def report_path_for(report_directory: str | Path, run_id: str) -> Path:
    return Path(report_directory) / f"execution-report-{run_id}.json"


def build_executor_factory(
    config: Config,
    github: GitHubClient,
    llm: LLMClient | None = None,
    dry_run: bool = False,
    on_stage: Callable[[str, str], None] | None = None,
) -> ExecutorFactory:
    """Factory wiring the real collaborators into a TaskExecutor."""

    def factory(
        issues: Mapping[int, Issue],
        log_writer: ExecutionLogWriter,
        cancellation: CancellationToken,
    ) -> TaskExecutor:
        return TaskExecutor(
            config=config,
            classifier=IssueClassifier(github),
            generator=CodeGenerator(
                llm=llm,
                use_task_tool=config.use_task_tool,
                task_request_directory=config.task_request_directory,
            ),
            reviewer=CodeReviewer(
                threshold=config.quality_threshold,
                lint_command=config.lint_command,
            ),
            publisher=PullRequestPublisher(github, cwd=config.workspace_root),
            log_writer=log_writer,
            issues=issues,
            dry_run=dry_run,
            cancellation=cancellation,
            on_stage=on_stage,
        )

    return factory


class Coordinator:
    """Runs a set of issues through the pipeline in dependency order.

    Args:
        config: Run configuration.
        github: Connected GitHub client used to fetch issues.
        executor_factory: Builds the TaskExecutor for a run. Only run() needs it.
        concurrency: Chunk size. Defaults to config.default_concurrency.
        dry_run: Recorded in the report. The executor decides what it skips.
        cancellation: Run-wide token. A fresh one is created when omitted.
        on_level_start: Passed through to the scheduler.
        on_chunk_start: Passed through to the scheduler.
        on_node_done: Called with (node_id, outcome) when a node settles.

    Example:
        >>> async with GitHubClient(gh_config) as github:
        ...     coordinator = Coordinator(config, github, build_executor_factory(config, github))
        ...     report = await coordinator.run([12, 13, 14])
    """

    def __init__(
        self,
        config: Config,
        github: GitHubClient,
        executor_factory: ExecutorFactory | None = None,
        concurrency: int | None = None,
        dry_run: bool = False,
        cancellation: CancellationToken | None = None,
        on_level_start: Callable[[int, list[DAGNode]], None] | None = None,
        on_chunk_start: Callable[[int, int, list[DAGNode]], None] | None = None,
        on_node_done: Callable[[str, NodeOutcome], None] | None = None,
    ) -> None:
        self._config = config
        self._github = github
        self._executor_factory = executor_factory
        self._concurrency = concurrency or config.default_concurrency
        self._dry_run = dry_run
        self._cancellation = cancellation or CancellationToken()
        self._on_level_start = on_level_start
        self._on_chunk_start = on_chunk_start
        self._on_node_done = on_node_done
        self.report_path: Path | None = None

    @property
    def cancellation(self) -> CancellationToken:
        return self._cancellation

    async def fetch_issues(self, issue_numbers: Iterable[int]) -> dict[int, Issue]:
        """Fetch each distinct issue once, in the order requested.

        Raises:
            IssueFetchError: On the first issue that cannot be fetched.
        """
        issues: dict[int, Issue] = {}
        for number in dict.fromkeys(issue_numbers):
            try:
                issues[number] = await self._github.get_issue(number)
            except Exception as e:
                raise IssueFetchError(number, e) from e
            logger.debug("Fetched issue #%d: %s", number, issues[number].title)
        return issues

    async def plan(self, issue_numbers: Iterable[int]) -> list[DAGNode]:
        """Fetch issues and build the leveled DAG without executing anything."""
        issues = await self.fetch_issues(issue_numbers)
        return build_dag(issues.values(), lenient_cycles=self._config.lenient_cycles)

    async def run(self, issue_numbers: Iterable[int]) -> RunReport:
        """Execute the run.

        Returns:
            RunReport with status "success".

        Raises:
            IssueFetchError: If an issue could not be fetched.
            CyclicDependencyError: If the issues depend on each other in a cycle.
            Exception: The first node failure, after the report is written.
        """
        if self._executor_factory is None:
            raise RuntimeError("Coordinator.run needs an executor_factory")
        run_id = generate_run_id()
        start = time.monotonic()
        log_start(logger, run_id, "run_start", concurrency=self._concurrency, dry_run=self._dry_run)

        issues = await self.fetch_issues(issue_numbers)
        nodes = build_dag(issues.values(), lenient_cycles=self._config.lenient_cycles)

        report = RunReport(
            run_id=run_id,
            repository=self._config.repository,
            device_identifier=self._config.device_identifier,
            concurrency=self._concurrency,
            dry_run=self._dry_run,
            nodes=[
                NodeOutcome(
                    node_id=n.id,
                    issue_number=n.number,
                    title=n.title,
                    level=n.level,
                    dependencies=list(n.dependencies),
                )
                for n in nodes
            ],
        )
        outcomes = {o.node_id: o for o in report.nodes}

        scheduler: LevelScheduler[NodeResult] = LevelScheduler(
            self._concurrency,
            cancellation=self._cancellation,
            hard_cancel=self._config.hard_cancel,
        )

        try:
            async with ExecutionLogWriter(self._config.log_directory) as log_writer:
                executor = self._executor_factory(issues, log_writer, self._cancellation)

                async def execute(node: DAGNode) -> NodeResult:
                    outcome = outcomes[node.id]
                    node_start = time.monotonic()
                    try:
                        result = await executor.execute_node(node)
                    except (Exception, asyncio.CancelledError) as e:
                        outcome.status = "cancelled" if isinstance(e, asyncio.CancelledError) else "failed"
                        outcome.duration_ms = (time.monotonic() - node_start) * 1000
                        outcome.error = str(e) or type(e).__name__
                        self._notify(node.id, outcome)
                        raise
                    outcome.status = "success"
                    outcome.duration_ms = result.duration_ms
                    outcome.score = result.score
                    outcome.pr_url = result.pr_url
                    self._notify(node.id, outcome)
                    return result

                await scheduler.run(
                    nodes,
                    execute,
                    on_level_start=self._on_level_start,
                    on_chunk_start=self._on_chunk_start,
                )
        except Exception as e:
            report.status = "failed"
            report.error = str(e) or type(e).__name__
            raise
        else:
            report.status = "success"
        finally:
            report.finished_at = datetime.now(timezone.utc)
            self.report_path = await self._write_report(report)
            log_complete(
                logger,
                run_id,
                "run_complete",
                time.monotonic() - start,
                status=report.status,
                succeeded=len(report.succeeded),
                failed=len(report.failed),
            )

        return report

    def _notify(self, node_id: str, outcome: NodeOutcome) -> None:
        if self._on_node_done:
            self._on_node_done(node_id, outcome)

    async def _write_report(self, report: RunReport) -> Path:
        path = report_path_for(self._config.report_directory, report.run_id)
        content = json.dumps(report.to_dict(), indent=2, ensure_ascii=False)
        await asyncio.to_thread(_write_text, path, content + "\n")
        logger.info("Run report written: %s", path)
        return path


def _write_text(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(content, encoding="utf-8")
