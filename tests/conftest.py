"""Pytest configuration and fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from issueflow.core.config import Config
from issueflow.core.types import (
    CodeGenerationRequest,
    CodeGenerationResult,
    GeneratedFile,
    Issue,
    LabelAnalysis,
    PublishRequest,
    PublishResult,
    ReviewRequest,
    ReviewResult,
    ReviewSummary,
)

GITHUB_API = "https://api.github.com"
REPOSITORY = "acme/widgets"


def repo_url(path: str = "") -> str:
    return f"{GITHUB_API}/repos/{REPOSITORY}{path}"


def issue_payload(number: int, title: str = "", body: str = "", labels: list[str] | None = None) -> dict:
    """GitHub REST payload for an issue."""
    return {
        "number": number,
        "title": title or f"Issue {number}",
        "body": body,
        "state": "open",
        "labels": [{"name": name} for name in labels or []],
    }


@pytest.fixture
def config(tmp_path: Path) -> Config:
    """Config writing everything under tmp_path, with the lint check off."""
    return Config(
        github_token="ghp_test",
        repository=REPOSITORY,
        log_directory=str(tmp_path / "logs"),
        report_directory=str(tmp_path / "reports"),
        task_request_directory=str(tmp_path / "task-requests"),
        workspace_root=str(tmp_path / "workspace"),
        lint_command=None,
        stage_timeout_seconds=5.0,
    )


@pytest.fixture
def make_issue():
    def _make(number: int, body: str = "", title: str | None = None) -> Issue:
        return Issue(number=number, title=title or f"Issue {number}", body=body)

    return _make


# =========================================================================
# Fake collaborators
# =========================================================================


class FakeClassifier:
    """Records label applications instead of calling GitHub."""

    def __init__(self) -> None:
        self.applied: list[tuple[int, list[str]]] = []

    def analyze(self, issue: Issue) -> LabelAnalysis:
        return LabelAnalysis(
            recommended_labels=["✨ type:feature"], confidence=0.5, reasoning="fake"
        )

    async def apply_labels(self, issue_number: int, labels: list[str]) -> None:
        self.applied.append((issue_number, labels))


class FakeGenerator:
    """Returns one clean Python file per issue, or fails for chosen issues."""

    def __init__(self, fail_for: set[int] | None = None) -> None:
        self.fail_for = fail_for or set()
        self.requests: list[CodeGenerationRequest] = []
        self.written: list[tuple[list[GeneratedFile], Path]] = []

    async def generate(self, request: CodeGenerationRequest) -> CodeGenerationResult:
        self.requests.append(request)
        if request.issue_number in self.fail_for:
            return CodeGenerationResult(success=False, error="rate limited")
        return CodeGenerationResult(
            success=True,
            files=[
                GeneratedFile(
                    path=f"features/issue_{request.issue_number}/__init__.py",
                    content="VALUE = 1\n",
                    description="impl",
                )
            ],
            summary="Generated 1 file(s)",
        )

    async def write_files(self, files: list[GeneratedFile], base_path: Path) -> list[Path]:
        self.written.append((files, Path(base_path)))
        return [Path(base_path) / f.path for f in files]


class FakeReviewer:
    """Returns a fixed score."""

    def __init__(self, score: int = 95, threshold: int = 80) -> None:
        self.score = score
        self.threshold = threshold
        self.requests: list[ReviewRequest] = []

    async def review(self, request: ReviewRequest) -> ReviewResult:
        self.requests.append(request)
        return ReviewResult(
            score=self.score,
            passed=self.score >= self.threshold,
            summary=ReviewSummary(errors=0, warnings=1, info=0),
        )


class FakePublisher:
    """Records pull request requests and label calls."""

    def __init__(self, success: bool = True) -> None:
        self.success = success
        self.requests: list[PublishRequest] = []
        self.labelled: list[tuple[int, list[str]]] = []

    async def create_pull_request(self, request: PublishRequest) -> PublishResult:
        self.requests.append(request)
        if not self.success:
            return PublishResult(success=False, error="push rejected")
        return PublishResult(
            success=True,
            pr_number=100 + request.issue_number,
            pr_url=f"https://github.com/{REPOSITORY}/pull/{100 + request.issue_number}",
        )

    async def add_labels(self, pr_number: int, labels: list[str]) -> None:
        self.labelled.append((pr_number, labels))


@pytest.fixture
def fake_classifier() -> FakeClassifier:
    return FakeClassifier()


@pytest.fixture
def fake_generator() -> FakeGenerator:
    return FakeGenerator()


@pytest.fixture
def fake_reviewer() -> FakeReviewer:
    return FakeReviewer()


@pytest.fixture
def fake_publisher() -> FakePublisher:
    return FakePublisher()
