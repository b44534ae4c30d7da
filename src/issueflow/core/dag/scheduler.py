"""Level-ordered execution with bounded concurrency.

Levels run strictly in ascending order. Inside a level, nodes are split
into fixed-size chunks; a chunk runs all of its nodes concurrently and the
next chunk only starts once every node in the current one has settled.
"""

from __future__ import annotations

import asyncio
import logging
import time
from collections.abc import Awaitable, Callable, Sequence
from typing import Generic, TypeVar

from issueflow.core.cancellation import CancellationToken
from issueflow.core.dag.graph import DAGNode, group_by_level, max_level
from issueflow.core.run_logging import log_complete, log_error, log_start

logger = logging.getLogger(__name__)

T = TypeVar("T")


def chunk(nodes: Sequence[DAGNode], size: int) -> list[list[DAGNode]]:
    """Split nodes into consecutive chunks of at most ``size`` nodes.

    Raises:
        ValueError: If size is less than 1.
    """
    if size < 1:
        raise ValueError("chunk size must be >= 1")
    return [list(nodes[i : i + size]) for i in range(0, len(nodes), size)]


class LevelScheduler(Generic[T]):
    """Runs DAG nodes level by level.

    Failure is fail-fast at chunk granularity: once a node in a chunk
    fails, no further chunk or level starts. Siblings already running in
    that chunk are allowed to settle (their outcomes get logged) before
    the first failure is re-raised. With hard_cancel, unfinished siblings
    are cancelled instead.

    Args:
        concurrency: Chunk size, i.e. max nodes in flight at once.
        cancellation: Token checked before every chunk. Tripped on
            failure when hard_cancel is set.
        hard_cancel: Cancel unfinished siblings of a failed node.

    Example:
        >>> scheduler = LevelScheduler(concurrency=2)
        >>> results = await scheduler.run(nodes, executor.execute_node)
    """

    def __init__(
        self,
        concurrency: int,
        cancellation: CancellationToken | None = None,
        hard_cancel: bool = False,
    ) -> None:
        if concurrency < 1:
            raise ValueError("concurrency must be >= 1")
        self._concurrency = concurrency
        self._cancellation = cancellation
        self._hard_cancel = hard_cancel

    @property
    def concurrency(self) -> int:
        return self._concurrency

    def plan(self, nodes: Sequence[DAGNode]) -> list[tuple[int, list[list[DAGNode]]]]:
        """Levels with their chunks, in execution order. Empty levels are skipped."""
        levels = group_by_level(nodes)
        planned = []
        for level in range(max_level(nodes) + 1):
            level_nodes = levels.get(level, [])
            if level_nodes:
                planned.append((level, chunk(level_nodes, self._concurrency)))
        return planned

    async def run(
        self,
        nodes: Sequence[DAGNode],
        execute: Callable[[DAGNode], Awaitable[T]],
        on_level_start: Callable[[int, list[DAGNode]], None] | None = None,
        on_chunk_start: Callable[[int, int, list[DAGNode]], None] | None = None,
    ) -> dict[str, T]:
        """Execute every node.

        Args:
            nodes: Leveled nodes.
            execute: Coroutine function run once per node.
            on_level_start: Called with (level, nodes) before a level starts.
            on_chunk_start: Called with (level, chunk_index, nodes) before a chunk.

        Returns:
            Dict of node_id -> result of execute().

        Raises:
            CancelledException: If the token was cancelled between chunks.
            Exception: The first failure raised by execute().
        """
        results: dict[str, T] = {}
        start = time.monotonic()
        log_start(logger, "scheduler", "run_start", nodes=len(nodes), concurrency=self._concurrency)

        for level, chunks in self.plan(nodes):
            if on_level_start:
                on_level_start(level, [n for c in chunks for n in c])

            for index, batch in enumerate(chunks):
                if self._cancellation:
                    self._cancellation.check()
                if on_chunk_start:
                    on_chunk_start(level, index, batch)

                log_start(
                    logger,
                    "scheduler",
                    "chunk_start",
                    level=level,
                    chunk=index,
                    nodes=[n.id for n in batch],
                )
                results.update(await self._run_chunk(level, batch, execute))

        log_complete(logger, "scheduler", "run_complete", time.monotonic() - start, nodes=len(results))
        return results

    async def _run_chunk(
        self,
        level: int,
        batch: list[DAGNode],
        execute: Callable[[DAGNode], Awaitable[T]],
    ) -> dict[str, T]:
        tasks = {asyncio.ensure_future(execute(node)): node for node in batch}

        try:
            done, pending = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise

        failed = [t for t in done if not t.cancelled() and t.exception() is not None]
        if failed and pending:
            if self._hard_cancel:
                if self._cancellation:
                    self._cancellation.cancel()
                for task in pending:
                    task.cancel()
            # Let siblings settle so their outcomes are recorded.
            await asyncio.gather(*pending, return_exceptions=True)

        results: dict[str, T] = {}
        first_error: BaseException | None = None
        for task, node in tasks.items():
            if task.cancelled():
                continue
            error = task.exception()
            if error is None:
                results[node.id] = task.result()
                continue
            log_error(logger, node.id, "node_failed", error, level=level)
            # Only failures seen when the chunk aborted qualify as "first".
            if first_error is None and task in failed:
                first_error = error

        if first_error is not None:
            raise first_error
        return results
