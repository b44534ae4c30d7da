"""Tests for issueflow.core.execution_log."""

from __future__ import annotations

import asyncio
import threading
from datetime import datetime, timezone

import pytest

from issueflow.core.execution_log import ExecutionLogWriter, ExecutionRecord, log_file_for
from issueflow.core.types import NodeStatus, ReviewSummary

EXECUTED_AT = datetime(2025, 1, 15, 9, 30, tzinfo=timezone.utc)


def success_record(number: int = 1) -> ExecutionRecord:
    return ExecutionRecord(
        node_id=f"issue-{number}",
        issue_number=number,
        title=f"Feature {number}",
        status=NodeStatus.SUCCESS,
        duration_ms=1234.5,
        executed_at=EXECUTED_AT,
        summary="Generated 2 file(s)",
        score=92,
        files=["features/issue_1/__init__.py", "features/issue_1/README.md"],
        review=ReviewSummary(errors=0, warnings=2, info=1),
    )


class TestExecutionRecord:
    """Tests for ExecutionRecord.to_markdown."""

    def test_success_block(self):
        text = success_record().to_markdown()

        assert text.startswith("## Issue #1: Feature 1\n")
        assert "**Executed at**: 2025-01-15T09:30:00+00:00" in text
        assert "**Duration**: 1234ms" in text
        assert "**Status**: ✅ Success" in text
        assert "**Quality Score**: 92/100" in text
        assert "- features/issue_1/README.md" in text
        assert "- Warnings: 2" in text
        assert "---" in text

    def test_failure_block(self):
        record = ExecutionRecord(
            node_id="issue-2",
            issue_number=2,
            title="Broken",
            status=NodeStatus.FAILED,
            duration_ms=50,
            executed_at=EXECUTED_AT,
            error="Code generation failed: rate limited",
        )
        text = record.to_markdown()

        assert "**Status**: ❌ Failed" in text
        assert "**Error**: Code generation failed: rate limited" in text
        assert "Quality Score" not in text


class TestLogFileFor:
    def test_daily_file_name(self, tmp_path):
        assert log_file_for(tmp_path, EXECUTED_AT) == tmp_path / "execution-2025-01-15.md"


class TestExecutionLogWriter:
    """Tests for ExecutionLogWriter."""

    async def test_append_writes_block(self, tmp_path):
        async with ExecutionLogWriter(tmp_path / "logs") as writer:
            path = await writer.append(success_record())

        assert path == tmp_path / "logs" / "execution-2025-01-15.md"
        assert "## Issue #1: Feature 1" in path.read_text(encoding="utf-8")

    async def test_concurrent_appends_do_not_interleave(self, tmp_path):
        """Every block is written whole, even when appended concurrently."""
        async with ExecutionLogWriter(tmp_path) as writer:
            await asyncio.gather(*(writer.append(success_record(n)) for n in range(1, 21)))

        text = log_file_for(tmp_path, EXECUTED_AT).read_text(encoding="utf-8")
        blocks = text.split("## Issue #")[1:]
        assert len(blocks) == 20
        for block in blocks:
            assert block.count("**Status**") == 1
            assert block.rstrip().endswith("---")

    async def test_appends_to_existing_file(self, tmp_path):
        async with ExecutionLogWriter(tmp_path) as writer:
            await writer.append(success_record(1))
        async with ExecutionLogWriter(tmp_path) as writer:
            await writer.append(success_record(2))

        text = log_file_for(tmp_path, EXECUTED_AT).read_text(encoding="utf-8")
        assert "## Issue #1:" in text
        assert "## Issue #2:" in text

    async def test_write_error_reported_to_caller(self, tmp_path):
        """A failed write surfaces on append() and the writer keeps running."""
        blocker = tmp_path / "not-a-dir"
        blocker.write_text("x")

        async with ExecutionLogWriter(blocker / "logs") as writer:
            with pytest.raises(OSError):
                await writer.append(success_record())

    async def test_close_without_start(self, tmp_path):
        writer = ExecutionLogWriter(tmp_path)
        await writer.close()

    async def test_writes_run_in_a_worker_thread(self, tmp_path, monkeypatch):
        writer = ExecutionLogWriter(tmp_path)
        write = writer._write
        threads = []

        def tracking_write(record):
            threads.append(threading.current_thread())
            return write(record)

        monkeypatch.setattr(writer, "_write", tracking_write)
        async with writer:
            await writer.append(success_record())

        assert len(threads) == 1
        assert threads[0] is not threading.main_thread()
