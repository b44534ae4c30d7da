"""Pure data types for issueflow.core.

These are simple dataclasses with no behavior coupling.
They are shared by the DAG, the executor and the agent collaborators.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class NodeStatus(Enum):
    """Outcome of a node pipeline."""

    SUCCESS = "success"
    FAILED = "failed"


class Severity(Enum):
    """Severity of a review finding."""

    ERROR = "error"
    WARNING = "warning"
    INFO = "info"


@dataclass(frozen=True)
class Issue:
    """A GitHub issue as seen by the orchestrator.

    Attributes:
        number: Issue number in the repository.
        title: Issue title.
        body: Markdown body (empty string when the issue has none).
        labels: Label names currently applied.
        state: "open" or "closed".
    """

    number: int
    title: str
    body: str = ""
    labels: tuple[str, ...] = ()
    state: str = "open"

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> Issue:
        """Build an Issue from a GitHub REST payload.

        Labels may be plain strings or label objects.
        """
        labels = []
        for label in data.get("labels") or []:
            if isinstance(label, str):
                labels.append(label)
            else:
                labels.append(label.get("name") or "")
        return cls(
            number=int(data["number"]),
            title=data.get("title") or "",
            body=data.get("body") or "",
            labels=tuple(labels),
            state=data.get("state") or "open",
        )


@dataclass(frozen=True)
class LabelAnalysis:
    """Classification result for an issue."""

    recommended_labels: list[str]
    confidence: float
    reasoning: str


@dataclass(frozen=True)
class GeneratedFile:
    """A single artifact produced by the generation stage."""

    path: str
    content: str
    description: str


@dataclass(frozen=True)
class CodeGenerationRequest:
    issue_number: int
    issue_title: str
    issue_body: str
    repository: str


@dataclass
class CodeGenerationResult:
    success: bool
    files: list[GeneratedFile] = field(default_factory=list)
    summary: str = ""
    error: str | None = None


@dataclass(frozen=True)
class ReviewIssue:
    """A finding reported by the review stage."""

    file: str
    severity: Severity
    message: str
    rule: str | None = None
    line: int | None = None

    def __str__(self) -> str:
        location = f"{self.file}:{self.line}" if self.line else self.file
        return f"{self.severity.value}: {self.message} ({location})"


@dataclass
class ReviewRequest:
    """Input to the review stage.

    Attributes:
        files: Artifact paths relative to project_root.
        project_root: Directory the paths are relative to.
        sources: Optional in-memory contents keyed by path. Paths present
            here are not read from disk (dry runs never write artifacts).
    """

    files: list[str]
    project_root: str = "."
    sources: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ReviewSummary:
    errors: int = 0
    warnings: int = 0
    info: int = 0


@dataclass
class ReviewResult:
    """Outcome of the review stage.

    Attributes:
        score: Weighted quality score 0-100.
        passed: Whether the score met the quality gate.
        issues: Individual findings.
        summary: Finding counts per severity.
        details: Per-check sub-scores.
    """

    score: int
    passed: bool
    issues: list[ReviewIssue] = field(default_factory=list)
    summary: ReviewSummary = field(default_factory=ReviewSummary)
    details: dict[str, dict[str, int]] = field(default_factory=dict)


@dataclass(frozen=True)
class PublishRequest:
    issue_number: int
    issue_title: str
    branch_name: str
    files: list[str]
    base_branch: str = "main"


@dataclass(frozen=True)
class PublishResult:
    success: bool
    pr_number: int | None = None
    pr_url: str | None = None
    error: str | None = None


@dataclass
class NodeResult:
    """Result of one node's pipeline run.

    Attributes:
        node_id: DAG node id ("issue-<n>").
        status: Final status.
        duration_ms: Wall-clock duration of the pipeline.
        summary: Generation summary on success.
        score: Review score when the review stage ran.
        files: Generated artifact paths.
        pr_url: URL of the created pull request, if any.
        error: Error message on failure.
    """

    node_id: str
    status: NodeStatus
    duration_ms: float
    summary: str = ""
    score: int | None = None
    files: list[str] = field(default_factory=list)
    pr_url: str | None = None
    error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "node_id": self.node_id,
            "status": self.status.value,
            "duration_ms": round(self.duration_ms, 1),
            "summary": self.summary,
            "score": self.score,
            "files": list(self.files),
            "pr_url": self.pr_url,
            "error": self.error,
        }
