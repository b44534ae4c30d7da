"""Tests for issueflow.core.policies."""

from __future__ import annotations

import pytest

from issueflow.core.policies import STAGES, StagePolicy, default_policies


class TestStagePolicy:
    """Tests for StagePolicy."""

    def test_defaults(self):
        policy = StagePolicy()
        assert policy.timeout_seconds == 300.0
        assert policy.retry_count == 0
        assert policy.should_retry(0) is False

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"timeout_seconds": 0},
            {"retry_count": -1},
            {"retry_delay_ms": -5},
            {"retry_backoff": 0.5},
        ],
    )
    def test_validation(self, kwargs):
        with pytest.raises(ValueError):
            StagePolicy(**kwargs)

    def test_no_deadline_allowed(self):
        assert StagePolicy(timeout_seconds=None).timeout_seconds is None

    def test_backoff(self):
        policy = StagePolicy(retry_count=3, retry_delay_ms=1000, retry_backoff=2.0)
        assert policy.get_delay_for_attempt(0) == 1.0
        assert policy.get_delay_for_attempt(1) == 2.0
        assert policy.get_delay_for_attempt(2) == 4.0

    def test_should_retry(self):
        policy = StagePolicy(retry_count=2)
        assert policy.should_retry(0)
        assert policy.should_retry(1)
        assert not policy.should_retry(2)


class TestDefaultPolicies:
    """Tests for default_policies."""

    def test_one_per_stage(self):
        policies = default_policies(60.0)
        assert set(policies) == set(STAGES)
        assert all(p.timeout_seconds == 60.0 for p in policies.values())
        assert all(p.retry_count == 0 for p in policies.values())
