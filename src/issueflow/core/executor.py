"""Per-issue pipeline: classify, generate, review, publish.

Each stage that talks to the outside world runs under its StagePolicy
deadline and the run's CancellationToken. The outcome of every node,
success or failure, is appended to the execution log before the result
is returned or the error re-raised.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Mapping
from pathlib import Path
from typing import TYPE_CHECKING, TypeVar

from issueflow.core.cancellation import (
    CancellationToken,
    CancelledException,
    StageTimeoutError,
    run_guarded,
)
from issueflow.core.dag.parser import node_id_for
from issueflow.core.execution_log import ExecutionLogWriter, ExecutionRecord
from issueflow.core.policies import StagePolicy
from issueflow.core.run_logging import log_complete, log_error, log_start, log_warning
from issueflow.core.types import (
    CodeGenerationRequest,
    CodeGenerationResult,
    Issue,
    NodeResult,
    NodeStatus,
    PublishRequest,
    PublishResult,
    ReviewIssue,
    ReviewRequest,
    ReviewResult,
)

if TYPE_CHECKING:
    from issueflow.agents.classifier import IssueClassifier
    from issueflow.agents.codegen import CodeGenerator
    from issueflow.agents.publisher import PullRequestPublisher
    from issueflow.agents.reviewer import CodeReviewer
    from issueflow.core.config import Config
    from issueflow.core.dag.graph import DAGNode

logger = logging.getLogger(__name__)

T = TypeVar("T")

PR_LABELS = ["🤖 auto-generated", "📋 needs-review"]

# Review findings carried by a QualityGateError
MAX_GATE_ISSUES = 5


def branch_name_for(issue_number: int) -> str:
    return f"feature/issue-{issue_number}"


class StageError(Exception):
    """Raised when a pipeline stage fails.

    Attributes:
        stage: Name of the failed stage.
    """

    def __init__(self, stage: str, message: str) -> None:
        super().__init__(message)
        self.stage = stage


class QualityGateError(StageError):
    """Raised when the review score is below the quality threshold."""

    def __init__(self, score: int, threshold: int, issues: list[ReviewIssue] | None = None) -> None:
        self.score = score
        self.threshold = threshold
        self.issues = issues or []
        message = f"Quality score {score}/100 is below threshold {threshold}"
        if self.issues:
            message += ": " + "; ".join(str(i) for i in self.issues)
        super().__init__("review", message)


class TaskExecutor:
    """Runs the four-stage pipeline for one issue at a time.

    Instances are shared by every node of a run and hold no per-node state.

    Args:
        config: Run configuration.
        classifier: Label analysis and application.
        generator: Artifact generation.
        reviewer: Quality review.
        publisher: Branch, commit and pull request creation.
        log_writer: Execution log writer.
        issues: Issues by number, used by execute_node.
        dry_run: Skip every side effect on GitHub and on disk.
        cancellation: Run-wide cancellation token.
        on_stage: Called with (node_id, stage) when a stage starts.
    """

    def __init__(
        self,
        config: Config,
        classifier: IssueClassifier,
        generator: CodeGenerator,
        reviewer: CodeReviewer,
        publisher: PullRequestPublisher | None,
        log_writer: ExecutionLogWriter,
        issues: Mapping[int, Issue] | None = None,
        dry_run: bool = False,
        cancellation: CancellationToken | None = None,
        on_stage: Callable[[str, str], None] | None = None,
    ) -> None:
        if publisher is None and not dry_run:
            raise ValueError("A publisher is required unless dry_run is set")
        self._config = config
        self._classifier = classifier
        self._generator = generator
        self._reviewer = reviewer
        self._publisher = publisher
        self._log_writer = log_writer
        self._issues = dict(issues or {})
        self._dry_run = dry_run
        self._cancellation = cancellation
        self._on_stage = on_stage

    @property
    def dry_run(self) -> bool:
        return self._dry_run

    async def execute_node(self, node: DAGNode) -> NodeResult:
        """Run the pipeline for a DAG node using its preloaded issue.

        Raises:
            KeyError: If the node's issue was not loaded.
        """
        issue = self._issues.get(node.number)
        if issue is None:
            raise KeyError(f"No issue loaded for {node.id}")
        return await self.execute(issue)

    async def execute(self, issue: Issue) -> NodeResult:
        """Run the pipeline for one issue.

        Returns:
            NodeResult with status SUCCESS.

        Raises:
            StageError: A stage failed (QualityGateError for the review gate).
            StageTimeoutError: A stage passed its deadline.
            CancelledException: The run was cancelled.
        """
        node_id = node_id_for(issue.number)
        start = time.monotonic()
        log_start(logger, node_id, "node_start", title=issue.title, dry_run=self._dry_run)

        try:
            result, generation, review = await self._run_pipeline(node_id, issue)
        except (Exception, asyncio.CancelledError) as e:
            duration_ms = (time.monotonic() - start) * 1000
            message = str(e) or type(e).__name__
            log_error(logger, node_id, "node_failed", message, stage=getattr(e, "stage", None))
            await self._record(
                ExecutionRecord(
                    node_id=node_id,
                    issue_number=issue.number,
                    title=issue.title,
                    status=NodeStatus.FAILED,
                    duration_ms=duration_ms,
                    error=message,
                )
            )
            raise

        result.duration_ms = (time.monotonic() - start) * 1000
        await self._record(
            ExecutionRecord(
                node_id=node_id,
                issue_number=issue.number,
                title=issue.title,
                status=NodeStatus.SUCCESS,
                duration_ms=result.duration_ms,
                summary=generation.summary,
                score=review.score,
                files=list(result.files),
                review=review.summary,
            )
        )
        log_complete(
            logger, node_id, "node_complete", result.duration_ms / 1000, score=review.score
        )
        return result

    async def _run_pipeline(
        self, node_id: str, issue: Issue
    ) -> tuple[NodeResult, CodeGenerationResult, ReviewResult]:
        # 1. classify
        self._notify(node_id, "classify")
        analysis = self._classifier.analyze(issue)
        logger.debug("[%s] labels: %s (%s)", node_id, analysis.recommended_labels, analysis.reasoning)
        if not self._dry_run:
            await self._run_stage(
                node_id,
                "classify",
                lambda: self._classifier.apply_labels(issue.number, analysis.recommended_labels),
            )

        # 2. generate
        self._notify(node_id, "generate")
        request = CodeGenerationRequest(
            issue_number=issue.number,
            issue_title=issue.title,
            issue_body=issue.body,
            repository=self._config.repository,
        )
        generation = await self._run_stage(node_id, "generate", lambda: self._generate(request))
        paths = [f.path for f in generation.files]

        # 3. review
        self._notify(node_id, "review")
        review_request = ReviewRequest(
            files=paths,
            project_root=self._config.workspace_root,
            sources={f.path: f.content for f in generation.files} if self._dry_run else {},
        )
        review = await self._run_stage(
            node_id, "review", lambda: self._reviewer.review(review_request)
        )
        if not review.passed:
            raise QualityGateError(
                review.score, self._config.quality_threshold, review.issues[:MAX_GATE_ISSUES]
            )

        # 4. publish
        pr_url = None
        if not self._dry_run:
            self._notify(node_id, "publish")
            publish_request = PublishRequest(
                issue_number=issue.number,
                issue_title=issue.title,
                branch_name=branch_name_for(issue.number),
                files=paths,
                base_branch=self._config.base_branch,
            )
            published = await self._run_stage(
                node_id, "publish", lambda: self._publish(publish_request)
            )
            pr_url = published.pr_url
            if published.pr_number is not None:
                await self._label_pull_request(node_id, published.pr_number)

        result = NodeResult(
            node_id=node_id,
            status=NodeStatus.SUCCESS,
            duration_ms=0.0,
            summary=generation.summary,
            score=review.score,
            files=paths,
            pr_url=pr_url,
        )
        return result, generation, review

    async def _generate(self, request: CodeGenerationRequest) -> CodeGenerationResult:
        result = await self._generator.generate(request)
        if not result.success:
            raise StageError("generate", f"Code generation failed: {result.error}")
        if not self._dry_run:
            await self._generator.write_files(result.files, Path(self._config.workspace_root))
        return result

    async def _publish(self, request: PublishRequest) -> PublishResult:
        assert self._publisher is not None
        result = await self._publisher.create_pull_request(request)
        if not result.success:
            raise StageError("publish", f"PR creation failed: {result.error}")
        return result

    async def _label_pull_request(self, node_id: str, pr_number: int) -> None:
        """Apply PR_LABELS under the publish deadline. A timeout is only logged."""
        assert self._publisher is not None
        publisher = self._publisher
        try:
            await self._run_stage(
                node_id, "publish", lambda: publisher.add_labels(pr_number, PR_LABELS)
            )
        except StageTimeoutError as e:
            log_warning(logger, node_id, "pr_labels_skipped", pr=pr_number, error=e)

    async def _run_stage(
        self,
        node_id: str,
        stage: str,
        call: Callable[[], Awaitable[T]],
    ) -> T:
        """Run a stage call under its policy, retrying as the policy allows."""
        policy: StagePolicy = self._config.policy_for(stage)
        attempt = 0
        start = time.monotonic()
        while True:
            try:
                result = await run_guarded(
                    call(),
                    timeout=policy.timeout_seconds,
                    token=self._cancellation,
                    label=f"{node_id}:{stage}",
                )
            except CancelledException:
                raise
            except Exception as e:
                if not policy.should_retry(attempt):
                    raise
                delay = policy.get_delay_for_attempt(attempt)
                logger.warning(
                    "[%s] %s failed (%s), retrying in %.1fs (attempt %d/%d)",
                    node_id,
                    stage,
                    e,
                    delay,
                    attempt + 1,
                    policy.retry_count,
                )
                await asyncio.sleep(delay)
                attempt += 1
                continue
            log_complete(logger, node_id, "stage_complete", time.monotonic() - start, stage=stage)
            return result

    def _notify(self, node_id: str, stage: str) -> None:
        if self._on_stage:
            self._on_stage(node_id, stage)

    async def _record(self, record: ExecutionRecord) -> None:
        try:
            await self._log_writer.append(record)
        except OSError as e:
            logger.error("[%s] execution log not written: %s", record.node_id, e)
