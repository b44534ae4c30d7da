"""Issue dependency graph and level computation."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field

from issueflow.core.dag.parser import node_id_for, parse_dependencies
from issueflow.core.types import Issue

logger = logging.getLogger(__name__)

_IN_PROGRESS = 1
_DONE = 2


class CyclicDependencyError(ValueError):
    """Raised when issue dependencies form a cycle.

    Attributes:
        cycle: Node ids along the cycle, first id repeated at the end.
    """

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"Cyclic dependency detected: {' -> '.join(cycle)}")


@dataclass
class DAGNode:
    """A node in the issue DAG.

    Attributes:
        id: Synthetic id ("issue-<number>").
        number: Issue number.
        title: Issue title (for display and logging).
        dependencies: Ids of nodes this node waits for. May include ids
            of issues that were not part of the run.
        level: Computed position in dependency order.
    """

    id: str
    number: int
    title: str
    dependencies: list[str] = field(default_factory=list)
    level: int = 0


class DAG:
    """Directed acyclic graph of issue nodes.

    Nodes keep insertion order, which is also the tie-break order
    within a level.

    Example:
        >>> dag = DAG.from_issues(issues)
        >>> dag.compute_levels()
        >>> for node in dag.sorted_nodes():
        ...     print(node.level, node.id)
    """

    def __init__(self) -> None:
        self._nodes: dict[str, DAGNode] = {}

    @classmethod
    def from_issues(cls, issues: Iterable[Issue]) -> DAG:
        dag = cls()
        for issue in issues:
            deps = [node_id_for(n) for n in parse_dependencies(issue.body)]
            dag.add_node(
                DAGNode(
                    id=node_id_for(issue.number),
                    number=issue.number,
                    title=issue.title,
                    dependencies=deps,
                )
            )
        return dag

    def add_node(self, node: DAGNode) -> DAG:
        """Add a node. Returns self for chaining.

        Raises:
            ValueError: If a node with the same id already exists.
        """
        if node.id in self._nodes:
            raise ValueError(f"Node '{node.id}' already exists")
        self._nodes[node.id] = node
        return self

    def get_node(self, node_id: str) -> DAGNode | None:
        return self._nodes.get(node_id)

    def list_nodes(self) -> list[str]:
        return list(self._nodes.keys())

    def unresolved_dependencies(self) -> dict[str, list[str]]:
        """Dependencies pointing at nodes outside the graph.

        Returns:
            Dict of node_id -> unknown dependency ids (only nodes that have any).
        """
        missing: dict[str, list[str]] = {}
        for node in self._nodes.values():
            unknown = [d for d in node.dependencies if d not in self._nodes]
            if unknown:
                missing[node.id] = unknown
        return missing

    def compute_levels(self, lenient_cycles: bool = False) -> None:
        """Assign a level to every node.

        A node without dependencies is level 0, otherwise one more than its
        deepest dependency. Unknown dependencies count as level 0.

        Args:
            lenient_cycles: Do not fail on cycles. A node reached again while
                still being resolved reports whatever level it currently
                holds, so levels inside a cycle are under-computed.

        Raises:
            CyclicDependencyError: On a cycle, unless lenient_cycles is set.
        """
        for node in self._nodes.values():
            node.level = 0

        for node_id, deps in self.unresolved_dependencies().items():
            logger.warning("Node %s depends on issues outside this run: %s", node_id, deps)

        if lenient_cycles:
            self._compute_levels_lenient()
        else:
            state: dict[str, int] = {}
            for node_id in self._nodes:
                self._visit(node_id, state, [])

    def _visit(self, node_id: str, state: dict[str, int], path: list[str]) -> int:
        node = self._nodes.get(node_id)
        if node is None:
            return 0

        mark = state.get(node_id)
        if mark == _DONE:
            return node.level
        if mark == _IN_PROGRESS:
            cycle = path[path.index(node_id) :] + [node_id]
            raise CyclicDependencyError(cycle)

        state[node_id] = _IN_PROGRESS
        path.append(node_id)
        if node.dependencies:
            node.level = 1 + max(self._visit(dep, state, path) for dep in node.dependencies)
        else:
            node.level = 0
        path.pop()
        state[node_id] = _DONE
        return node.level

    def _compute_levels_lenient(self) -> None:
        visited: set[str] = set()

        def level_of(node_id: str) -> int:
            node = self._nodes.get(node_id)
            if node_id in visited:
                return node.level if node else 0
            visited.add(node_id)

            if node is None or not node.dependencies:
                return 0

            node.level = 1 + max(level_of(dep) for dep in node.dependencies)
            return node.level

        for node_id in self._nodes:
            level_of(node_id)

    def sorted_nodes(self) -> list[DAGNode]:
        """Nodes ordered by ascending level, insertion order within a level."""
        return sorted(self._nodes.values(), key=lambda n: n.level)

    def __len__(self) -> int:
        return len(self._nodes)

    def __repr__(self) -> str:
        return f"DAG({self.list_nodes()})"


def build_dag(issues: Iterable[Issue], lenient_cycles: bool = False) -> list[DAGNode]:
    """Build a leveled node list from issues.

    Args:
        issues: Issues in the order they were supplied.
        lenient_cycles: See DAG.compute_levels.

    Returns:
        Nodes sorted by ascending level.

    Raises:
        CyclicDependencyError: On a cycle, unless lenient_cycles is set.
        ValueError: If the same issue number appears twice.
    """
    dag = DAG.from_issues(issues)
    dag.compute_levels(lenient_cycles=lenient_cycles)
    return dag.sorted_nodes()


def group_by_level(nodes: Iterable[DAGNode]) -> dict[int, list[DAGNode]]:
    """Group nodes by level, preserving their order inside each level."""
    levels: dict[int, list[DAGNode]] = {}
    for node in nodes:
        levels.setdefault(node.level, []).append(node)
    return levels


def max_level(nodes: Iterable[DAGNode]) -> int:
    """Greatest level present, or -1 when there are no nodes."""
    return max((node.level for node in nodes), default=-1)
