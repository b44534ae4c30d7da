"""Issueflow - Turn GitHub issues into reviewed draft pull requests.

Issueflow reads dependency references from issue bodies, orders the
issues into levels, and runs each one through a fixed pipeline with
bounded concurrency inside every level.

Layers:
    core/       Pure orchestration logic (DAG, scheduler, executor, config)
    agents/     Collaborators that talk to GitHub, the Messages API and git
    frontends/  User interfaces (CLI)

Key Concepts:
    Node:       One issue in the dependency graph ("issue-<n>")
    Level:      0 without dependencies, else 1 + deepest dependency
    Chunk:      Up to `concurrency` nodes of a level run together
    Pipeline:   classify -> generate -> review -> publish

Quick Start:
    >>> from issueflow import Issue, LevelScheduler, build_dag
    >>>
    >>> issues = [
    ...     Issue(number=1, title="Schema"),
    ...     Issue(number=2, title="API", body="depends: #1"),
    ... ]
    >>> nodes = build_dag(issues)
    >>> scheduler = LevelScheduler(concurrency=2)
    >>> results = await scheduler.run(nodes, execute)

Full run:
    >>> from issueflow.coordinator import Coordinator, build_executor_factory
    >>> async with GitHubClient(gh_config) as github:
    ...     factory = build_executor_factory(config, github)
    ...     report = await Coordinator(config, github, factory).run([1, 2])
"""

from issueflow.__version__ import __version__

from issueflow.core import (
    CancellationToken,
    Config,
    ConfigError,
    CyclicDependencyError,
    DAGNode,
    Issue,
    LevelScheduler,
    NodeResult,
    NodeStatus,
    QualityGateError,
    StageError,
    TaskExecutor,
    build_dag,
    parse_dependencies,
)

__all__ = [
    "__version__",
    # DAG
    "DAGNode",
    "CyclicDependencyError",
    "build_dag",
    "parse_dependencies",
    # Execution
    "LevelScheduler",
    "TaskExecutor",
    "StageError",
    "QualityGateError",
    "CancellationToken",
    # Types
    "Issue",
    "NodeResult",
    "NodeStatus",
    # Configuration
    "Config",
    "ConfigError",
]
