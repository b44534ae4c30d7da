"""Tests for issueflow.core.config."""

from __future__ import annotations

import pytest

from issueflow.core.config import DEFAULT_LINT_COMMAND, Config, ConfigError
from issueflow.core.policies import StagePolicy

VALID_ENV = {"GITHUB_TOKEN": "ghp_x", "REPOSITORY": "acme/widgets"}


class TestFromEnv:
    """Tests for Config.from_env."""

    def test_defaults(self):
        config = Config.from_env(VALID_ENV)

        assert config.github_token == "ghp_x"
        assert config.repository == "acme/widgets"
        assert config.device_identifier == "localhost"
        assert config.anthropic_api_key is None
        assert config.use_task_tool is False
        assert config.log_directory == ".ai/logs"
        assert config.report_directory == ".ai/parallel-reports"
        assert config.default_concurrency == 2
        assert config.base_branch == "main"
        assert config.quality_threshold == 80
        assert config.lint_command == DEFAULT_LINT_COMMAND
        assert config.stage_timeout_seconds == 300.0
        assert config.lenient_cycles is False
        assert config.hard_cancel is False

    def test_overrides(self):
        env = {
            **VALID_ENV,
            "DEVICE_IDENTIFIER": "ci-runner",
            "ANTHROPIC_API_KEY": "sk-test",
            "USE_TASK_TOOL": "true",
            "DEFAULT_CONCURRENCY": "4",
            "QUALITY_THRESHOLD": "90",
            "STAGE_TIMEOUT_SECONDS": "30",
            "LINT_COMMAND": "",
            "LENIENT_CYCLES": "1",
            "HARD_CANCEL": "yes",
        }
        config = Config.from_env(env)

        assert config.device_identifier == "ci-runner"
        assert config.anthropic_api_key == "sk-test"
        assert config.use_task_tool is True
        assert config.default_concurrency == 4
        assert config.quality_threshold == 90
        assert config.stage_timeout_seconds == 30.0
        assert config.lint_command is None
        assert config.lenient_cycles is True
        assert config.hard_cancel is True

    def test_stage_timeout_applies_to_policies(self):
        config = Config.from_env({**VALID_ENV, "STAGE_TIMEOUT_SECONDS": "12"})
        assert config.policy_for("generate").timeout_seconds == 12.0

    def test_bad_number(self):
        with pytest.raises(ConfigError) as exc_info:
            Config.from_env({**VALID_ENV, "DEFAULT_CONCURRENCY": "many"})
        assert "DEFAULT_CONCURRENCY" in exc_info.value.problems[0]


class TestValidate:
    """Tests for Config.validate."""

    def test_valid(self):
        Config.from_env(VALID_ENV).validate()

    def test_missing_required_reports_all(self):
        with pytest.raises(ConfigError) as exc_info:
            Config.from_env({}).validate()

        problems = exc_info.value.problems
        assert any("GITHUB_TOKEN" in p for p in problems)
        assert any("REPOSITORY" in p for p in problems)

    @pytest.mark.parametrize("repository", ["widgets", "acme/", "/widgets", "a/b/c"])
    def test_bad_repository(self, repository):
        with pytest.raises(ConfigError, match="owner/repo"):
            Config(github_token="x", repository=repository).validate()

    def test_bad_concurrency(self):
        with pytest.raises(ConfigError, match="DEFAULT_CONCURRENCY"):
            Config(github_token="x", repository="a/b", default_concurrency=0).validate()

    def test_bad_threshold(self):
        with pytest.raises(ConfigError, match="QUALITY_THRESHOLD"):
            Config(github_token="x", repository="a/b", quality_threshold=101).validate()


class TestAccessors:
    """Tests for policy_for."""

    def test_custom_policy(self):
        policy = StagePolicy(timeout_seconds=10, retry_count=2)
        config = Config(stage_policies={"generate": policy})
        assert config.policy_for("generate") is policy
        assert config.policy_for("review").retry_count == 0
