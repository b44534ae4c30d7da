"""Core - Orchestration logic for issueflow.

This module contains no knowledge of:
- Terminals or output formatting
- Where issues come from

Architecture:
    dag/            Dependency parsing, leveling and scheduling
    executor        Per-issue pipeline
    execution_log   Daily Markdown execution log
    cancellation    Cooperative cancellation and deadlines
    policies        Per-stage deadlines and retries
    config          Run configuration
    types           Pure data types
"""

from issueflow.core.cancellation import (
    CancellationToken,
    CancelledException,
    StageTimeoutError,
    run_guarded,
)
from issueflow.core.config import Config, ConfigError
from issueflow.core.dag import (
    CyclicDependencyError,
    DAGNode,
    LevelScheduler,
    build_dag,
    parse_dependencies,
)
from issueflow.core.execution_log import ExecutionLogWriter, ExecutionRecord
from issueflow.core.executor import QualityGateError, StageError, TaskExecutor
from issueflow.core.policies import StagePolicy
from issueflow.core.types import Issue, NodeResult, NodeStatus

__all__ = [
    "CancellationToken",
    "CancelledException",
    "StageTimeoutError",
    "run_guarded",
    "Config",
    "ConfigError",
    "CyclicDependencyError",
    "DAGNode",
    "LevelScheduler",
    "build_dag",
    "parse_dependencies",
    "ExecutionLogWriter",
    "ExecutionRecord",
    "QualityGateError",
    "StageError",
    "TaskExecutor",
    "StagePolicy",
    "Issue",
    "NodeResult",
    "NodeStatus",
]
