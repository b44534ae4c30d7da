"""Tests for issueflow.frontends.cli.utils."""

from __future__ import annotations

import os

import pytest

from issueflow.core.config import Config
from issueflow.frontends.cli.utils import (
    create_llm_client,
    generation_mode,
    load_environment,
    parse_issue_list,
    resolve_issue_numbers,
)


class TestParseIssueList:
    def test_parses(self):
        assert parse_issue_list("1, 2,#3,") == [1, 2, 3]

    @pytest.mark.parametrize("value", ["", ",", "1,x", "0", "-4"])
    def test_invalid(self, value):
        with pytest.raises(ValueError):
            parse_issue_list(value)


class TestResolveIssueNumbers:
    def test_single(self):
        assert resolve_issue_numbers(5, None) == [5]

    def test_list(self):
        assert resolve_issue_numbers(None, "5,6") == [5, 6]

    @pytest.mark.parametrize("issue, issues", [(None, None), (5, "6")])
    def test_exactly_one(self, issue, issues):
        with pytest.raises(ValueError, match="exactly one"):
            resolve_issue_numbers(issue, issues)


class TestLoadEnvironment:
    def test_precedence(self, tmp_path, monkeypatch):
        for name in ("ISSUEFLOW_TEST_A", "ISSUEFLOW_TEST_B"):
            # Registered so values loaded from the files are removed afterwards
            monkeypatch.setenv(name, "")
            monkeypatch.delenv(name)
        monkeypatch.setenv("ISSUEFLOW_TEST_C", "shell")
        (tmp_path / ".env").write_text("ISSUEFLOW_TEST_A=env\nISSUEFLOW_TEST_B=env\nISSUEFLOW_TEST_C=env\n")
        (tmp_path / ".env.local").write_text("ISSUEFLOW_TEST_A=local\n")

        loaded = load_environment(tmp_path)

        assert [p.name for p in loaded] == [".env.local", ".env"]
        assert os.environ["ISSUEFLOW_TEST_A"] == "local"
        assert os.environ["ISSUEFLOW_TEST_B"] == "env"
        assert os.environ["ISSUEFLOW_TEST_C"] == "shell"

    def test_no_files(self, tmp_path):
        assert load_environment(tmp_path) == []


class TestGenerationMode:
    def test_modes(self):
        assert generation_mode(Config(use_task_tool=True, anthropic_api_key="k")) == "task"
        assert generation_mode(Config(anthropic_api_key="k")) == "api"
        assert generation_mode(Config()) == "mock"

    def test_llm_client_only_in_api_mode(self):
        assert create_llm_client(Config()) is None
        assert create_llm_client(Config(use_task_tool=True, anthropic_api_key="k")) is None
        assert create_llm_client(Config(anthropic_api_key="k")) is not None
