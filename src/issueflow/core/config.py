"""Run configuration.

A Config is built once at process start (usually from the environment,
after the CLI has loaded .env files) and passed explicitly to everything
that needs it. Nothing below the CLI reads os.environ.
"""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass, field

from issueflow.core.policies import StagePolicy, default_policies

DEFAULT_ANTHROPIC_MODEL = "claude-sonnet-4-20250514"
DEFAULT_ANTHROPIC_BASE_URL = "https://api.anthropic.com"
DEFAULT_GITHUB_API_URL = "https://api.github.com"
DEFAULT_LINT_COMMAND = "ruff check --output-format=json"

_TRUE_VALUES = {"1", "true", "yes", "on"}


class ConfigError(Exception):
    """Raised when required settings are missing or invalid.

    Attributes:
        problems: One message per offending setting.
    """

    def __init__(self, problems: list[str]) -> None:
        self.problems = problems
        super().__init__("; ".join(problems))


@dataclass
class Config:
    """Settings for one orchestration run.

    Attributes:
        github_token: Token used for the GitHub REST API.
        repository: Target repository as "owner/repo".
        device_identifier: Free-form name of the machine running the tool.
        anthropic_api_key: Enables API generation mode when set.
        anthropic_model: Model used in API generation mode.
        anthropic_base_url: Messages API base URL.
        github_api_url: GitHub REST base URL.
        use_task_tool: Generate task request files instead of code.
        log_directory: Where daily execution logs are appended.
        report_directory: Where JSON run reports are written.
        task_request_directory: Where task request files are written.
        workspace_root: Root that generated files are written under.
        default_concurrency: Chunk size when the CLI gives none.
        base_branch: Branch pull requests target.
        quality_threshold: Minimum review score that passes.
        lint_command: Style check command; None or empty disables it.
        stage_timeout_seconds: Deadline applied to every stage.
        lenient_cycles: Tolerate dependency cycles instead of failing.
        hard_cancel: Cancel in-flight siblings when a node fails.
    """

    github_token: str = ""
    repository: str = ""
    device_identifier: str = "localhost"
    anthropic_api_key: str | None = None
    anthropic_model: str = DEFAULT_ANTHROPIC_MODEL
    anthropic_base_url: str = DEFAULT_ANTHROPIC_BASE_URL
    github_api_url: str = DEFAULT_GITHUB_API_URL
    use_task_tool: bool = False
    log_directory: str = ".ai/logs"
    report_directory: str = ".ai/parallel-reports"
    task_request_directory: str = ".ai/task-requests"
    workspace_root: str = "."
    default_concurrency: int = 2
    base_branch: str = "main"
    quality_threshold: int = 80
    lint_command: str | None = DEFAULT_LINT_COMMAND
    stage_timeout_seconds: float | None = 300.0
    lenient_cycles: bool = False
    hard_cancel: bool = False
    stage_policies: dict[str, StagePolicy] = field(default_factory=dict)

    def __post_init__(self) -> None:
        if not self.stage_policies:
            self.stage_policies = default_policies(self.stage_timeout_seconds)

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> Config:
        """Build a Config from environment variables.

        Args:
            environ: Mapping to read. Defaults to os.environ.

        Raises:
            ConfigError: If a numeric setting cannot be parsed.
        """
        env = os.environ if environ is None else environ
        problems: list[str] = []

        def number(name: str, default: str, kind: type) -> float | int | None:
            raw = env.get(name, default)
            if raw is None or raw == "":
                return None
            try:
                return kind(raw)
            except ValueError:
                problems.append(f"{name} must be a number, got {raw!r}")
                return None

        def flag(name: str) -> bool:
            return env.get(name, "").strip().lower() in _TRUE_VALUES

        concurrency = number("DEFAULT_CONCURRENCY", "2", int)
        threshold = number("QUALITY_THRESHOLD", "80", int)
        timeout = number("STAGE_TIMEOUT_SECONDS", "300", float)

        if problems:
            raise ConfigError(problems)

        return cls(
            github_token=env.get("GITHUB_TOKEN", ""),
            repository=env.get("REPOSITORY", ""),
            device_identifier=env.get("DEVICE_IDENTIFIER", "localhost"),
            anthropic_api_key=env.get("ANTHROPIC_API_KEY") or None,
            anthropic_model=env.get("ANTHROPIC_MODEL", DEFAULT_ANTHROPIC_MODEL),
            anthropic_base_url=env.get("ANTHROPIC_BASE_URL", DEFAULT_ANTHROPIC_BASE_URL),
            github_api_url=env.get("GITHUB_API_URL", DEFAULT_GITHUB_API_URL),
            use_task_tool=flag("USE_TASK_TOOL"),
            log_directory=env.get("LOG_DIRECTORY", ".ai/logs"),
            report_directory=env.get("REPORT_DIRECTORY", ".ai/parallel-reports"),
            task_request_directory=env.get("TASK_REQUEST_DIRECTORY", ".ai/task-requests"),
            workspace_root=env.get("WORKSPACE_ROOT", "."),
            default_concurrency=int(concurrency) if concurrency is not None else 2,
            base_branch=env.get("BASE_BRANCH", "main"),
            quality_threshold=int(threshold) if threshold is not None else 80,
            lint_command=env.get("LINT_COMMAND", DEFAULT_LINT_COMMAND) or None,
            stage_timeout_seconds=timeout if timeout and timeout > 0 else None,
            lenient_cycles=flag("LENIENT_CYCLES"),
            hard_cancel=flag("HARD_CANCEL"),
        )

    def policy_for(self, stage: str) -> StagePolicy:
        return self.stage_policies.get(stage) or StagePolicy(timeout_seconds=self.stage_timeout_seconds)

    def validate(self) -> None:
        """Check settings required before any scheduling.

        Raises:
            ConfigError: Listing every problem found.
        """
        problems: list[str] = []
        if not self.github_token:
            problems.append("GITHUB_TOKEN is required")
        if not self.repository:
            problems.append("REPOSITORY is required (format: owner/repo)")
        else:
            parts = self.repository.split("/")
            if len(parts) != 2 or not all(parts):
                problems.append(f"REPOSITORY must look like owner/repo, got {self.repository!r}")
        if self.default_concurrency < 1:
            problems.append("DEFAULT_CONCURRENCY must be >= 1")
        if not 0 <= self.quality_threshold <= 100:
            problems.append("QUALITY_THRESHOLD must be between 0 and 100")
        if problems:
            raise ConfigError(problems)
