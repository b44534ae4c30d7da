"""Issue dependency graph: parsing, leveling and level scheduling."""

from issueflow.core.dag.graph import (
    DAG,
    CyclicDependencyError,
    DAGNode,
    build_dag,
    group_by_level,
    max_level,
)
from issueflow.core.dag.parser import node_id_for, parse_dependencies
from issueflow.core.dag.scheduler import LevelScheduler, chunk

__all__ = [
    "DAG",
    "CyclicDependencyError",
    "DAGNode",
    "build_dag",
    "group_by_level",
    "max_level",
    "node_id_for",
    "parse_dependencies",
    "LevelScheduler",
    "chunk",
]
