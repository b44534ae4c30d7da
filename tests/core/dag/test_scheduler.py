"""Tests for issueflow.core.dag.scheduler."""

from __future__ import annotations

import asyncio

import pytest

from issueflow.core.cancellation import CancellationToken, CancelledException
from issueflow.core.dag.graph import DAGNode
from issueflow.core.dag.scheduler import LevelScheduler, chunk


def node(number: int, level: int = 0) -> DAGNode:
    return DAGNode(id=f"issue-{number}", number=number, title=f"Issue {number}", level=level)


class Recorder:
    """Execute function that records start/finish order and peak concurrency."""

    def __init__(self, fail: set[str] | None = None, delays: dict[str, float] | None = None):
        self.fail = fail or set()
        self.delays = delays or {}
        self.started: list[str] = []
        self.finished: list[str] = []
        self.in_flight = 0
        self.peak = 0

    async def __call__(self, n: DAGNode) -> str:
        self.started.append(n.id)
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(self.delays.get(n.id, 0.01))
            if n.id in self.fail:
                raise RuntimeError(f"{n.id} failed")
            return f"done:{n.id}"
        finally:
            self.in_flight -= 1
            self.finished.append(n.id)


class TestChunk:
    """Tests for chunk."""

    def test_fixed_size(self):
        nodes = [node(i) for i in range(5)]
        chunks = chunk(nodes, 2)
        assert [[n.number for n in c] for c in chunks] == [[0, 1], [2, 3], [4]]

    def test_size_larger_than_input(self):
        nodes = [node(1), node(2)]
        assert len(chunk(nodes, 10)) == 1

    def test_invalid_size(self):
        with pytest.raises(ValueError):
            chunk([node(1)], 0)


class TestLevelScheduler:
    """Tests for LevelScheduler.run."""

    def test_invalid_concurrency(self):
        with pytest.raises(ValueError):
            LevelScheduler(concurrency=0)

    async def test_all_results_returned(self):
        nodes = [node(1), node(2), node(3, level=1)]
        results = await LevelScheduler(concurrency=2).run(nodes, Recorder())
        assert results == {
            "issue-1": "done:issue-1",
            "issue-2": "done:issue-2",
            "issue-3": "done:issue-3",
        }

    async def test_levels_run_in_order(self):
        """No level-1 node starts before every level-0 node finished."""
        recorder = Recorder(delays={"issue-1": 0.05})
        nodes = [node(1), node(2), node(3, level=1), node(4, level=2)]
        await LevelScheduler(concurrency=4).run(nodes, recorder)

        assert recorder.started.index("issue-3") > recorder.finished.index("issue-1")
        assert recorder.started.index("issue-4") > recorder.finished.index("issue-3")

    async def test_concurrency_bound(self):
        """At most `concurrency` nodes are in flight at once."""
        recorder = Recorder()
        nodes = [node(i) for i in range(7)]
        await LevelScheduler(concurrency=3).run(nodes, recorder)
        assert recorder.peak == 3

    async def test_chunks_wait_for_slowest(self):
        """The next chunk starts only after every node of the current chunk finished."""
        recorder = Recorder(delays={"issue-1": 0.05, "issue-2": 0.01})
        nodes = [node(1), node(2), node(3)]
        await LevelScheduler(concurrency=2).run(nodes, recorder)
        assert recorder.started.index("issue-3") > recorder.finished.index("issue-1")

    async def test_empty_levels_skipped(self):
        seen_levels = []
        nodes = [node(1, level=0), node(2, level=2)]
        await LevelScheduler(concurrency=1).run(
            nodes, Recorder(), on_level_start=lambda level, ns: seen_levels.append(level)
        )
        assert seen_levels == [0, 2]

    async def test_chunk_callback(self):
        seen = []
        nodes = [node(1), node(2), node(3)]
        await LevelScheduler(concurrency=2).run(
            nodes,
            Recorder(),
            on_chunk_start=lambda level, index, batch: seen.append((level, index, len(batch))),
        )
        assert seen == [(0, 0, 2), (0, 1, 1)]

    async def test_failure_stops_later_levels(self):
        """Fail-fast: nothing after the failing chunk starts."""
        recorder = Recorder(fail={"issue-1"})
        nodes = [node(1), node(2, level=1)]

        with pytest.raises(RuntimeError, match="issue-1 failed"):
            await LevelScheduler(concurrency=1).run(nodes, recorder)

        assert "issue-2" not in recorder.started

    async def test_failure_stops_later_chunks(self):
        recorder = Recorder(fail={"issue-1"})
        nodes = [node(1), node(2), node(3)]

        with pytest.raises(RuntimeError):
            await LevelScheduler(concurrency=2).run(nodes, recorder)

        assert "issue-3" not in recorder.started

    async def test_siblings_settle_by_default(self):
        """A slower sibling of a failed node still finishes."""
        recorder = Recorder(fail={"issue-1"}, delays={"issue-1": 0.01, "issue-2": 0.05})
        nodes = [node(1), node(2)]

        with pytest.raises(RuntimeError, match="issue-1 failed"):
            await LevelScheduler(concurrency=2).run(nodes, recorder)

        assert "issue-2" in recorder.finished

    async def test_first_failure_reraised(self):
        """When siblings also fail later, the earliest failure wins."""
        recorder = Recorder(
            fail={"issue-1", "issue-2"}, delays={"issue-1": 0.05, "issue-2": 0.01}
        )
        nodes = [node(1), node(2)]

        with pytest.raises(RuntimeError, match="issue-2 failed"):
            await LevelScheduler(concurrency=2).run(nodes, recorder)

    async def test_hard_cancel_cancels_siblings(self):
        cancelled = []

        async def execute(n: DAGNode) -> str:
            if n.id == "issue-1":
                await asyncio.sleep(0.01)
                raise RuntimeError("boom")
            try:
                await asyncio.sleep(5)
            except asyncio.CancelledError:
                cancelled.append(n.id)
                raise
            return "late"

        token = CancellationToken()
        scheduler = LevelScheduler(concurrency=2, cancellation=token, hard_cancel=True)

        with pytest.raises(RuntimeError, match="boom"):
            await scheduler.run([node(1), node(2)], execute)

        assert cancelled == ["issue-2"]
        assert token.is_cancelled

    async def test_cancelled_token_stops_before_next_chunk(self):
        token = CancellationToken()
        recorder = Recorder()

        def cancel_after_first(level, index, batch):
            if index == 1:
                token.cancel()

        scheduler = LevelScheduler(concurrency=1, cancellation=token)
        with pytest.raises(CancelledException):
            await scheduler.run(
                [node(1), node(2), node(3)], recorder, on_chunk_start=cancel_after_first
            )

        # The chunk whose callback cancelled still started; nothing after it did
        assert recorder.started == ["issue-1", "issue-2"]

    def test_plan(self):
        nodes = [node(1), node(2), node(3), node(4, level=1)]
        planned = LevelScheduler(concurrency=2).plan(nodes)
        assert [(level, [[n.id for n in c] for c in chunks]) for level, chunks in planned] == [
            (0, [["issue-1", "issue-2"], ["issue-3"]]),
            (1, [["issue-4"]]),
        ]
