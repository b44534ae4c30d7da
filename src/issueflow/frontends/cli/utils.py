"""Shared utilities for CLI commands."""

from __future__ import annotations

from pathlib import Path

from dotenv import load_dotenv

from issueflow.agents.github import GitHubClient, GitHubClientConfig
from issueflow.agents.llm_client import LLMClient, LLMClientConfig
from issueflow.core.config import Config

ENV_FILES = (".env.local", ".env")


def load_environment(directory: str | Path = ".") -> list[Path]:
    """Load .env files into os.environ without overriding set variables.

    Variables already set win, then .env.local, then .env.

    Returns:
        Files that were found and loaded.
    """
    loaded = []
    for name in ENV_FILES:
        path = Path(directory) / name
        if path.is_file():
            load_dotenv(path, override=False)
            loaded.append(path)
    return loaded


def parse_issue_list(value: str) -> list[int]:
    """Parse "1,2, 3" into [1, 2, 3].

    Raises:
        ValueError: If an entry is not a positive integer.
    """
    numbers = []
    for part in value.split(","):
        part = part.strip().lstrip("#")
        if not part:
            continue
        number = int(part)
        if number < 1:
            raise ValueError(f"Issue numbers must be positive, got {number}")
        numbers.append(number)
    if not numbers:
        raise ValueError("No issue numbers given")
    return numbers


def resolve_issue_numbers(issue: int | None, issues: str | None) -> list[int]:
    """Issue numbers from the mutually exclusive --issue/--issues options.

    Raises:
        ValueError: If neither or both are given, or --issues is malformed.
    """
    if (issue is None) == (issues is None):
        raise ValueError("Specify exactly one of --issue or --issues")
    if issue is not None:
        if issue < 1:
            raise ValueError(f"Issue numbers must be positive, got {issue}")
        return [issue]
    assert issues is not None
    return parse_issue_list(issues)


def create_github_client(config: Config) -> GitHubClient:
    return GitHubClient(
        GitHubClientConfig(
            token=config.github_token,
            repository=config.repository,
            base_url=config.github_api_url,
        )
    )


def create_llm_client(config: Config) -> LLMClient | None:
    """Client for API generation mode, or None when that mode is off."""
    if config.use_task_tool or not config.anthropic_api_key:
        return None
    return LLMClient(
        LLMClientConfig(
            api_key=config.anthropic_api_key,
            model=config.anthropic_model,
            base_url=config.anthropic_base_url,
        )
    )


def generation_mode(config: Config) -> str:
    if config.use_task_tool:
        return "task"
    return "api" if config.anthropic_api_key else "mock"
