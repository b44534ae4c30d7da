"""Append-only daily execution log.

One Markdown block per executed node is appended to
``<log_directory>/execution-YYYY-MM-DD.md``. Nodes finish concurrently,
so every append goes through a single writer task that owns the file;
blocks never interleave.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path

from issueflow.core.types import NodeStatus, ReviewSummary

logger = logging.getLogger(__name__)


@dataclass
class ExecutionRecord:
    """Outcome of one node, as written to the execution log."""

    node_id: str
    issue_number: int
    title: str
    status: NodeStatus
    duration_ms: float
    executed_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    summary: str = ""
    score: int | None = None
    files: list[str] = field(default_factory=list)
    review: ReviewSummary | None = None
    error: str | None = None

    def to_markdown(self) -> str:
        lines = [
            f"## Issue #{self.issue_number}: {self.title}",
            "",
            f"**Executed at**: {self.executed_at.isoformat()}",
            f"**Duration**: {int(self.duration_ms)}ms",
        ]
        if self.status is NodeStatus.SUCCESS:
            lines.append("**Status**: ✅ Success")
            if self.summary:
                lines.append(f"**Summary**: {self.summary}")
            if self.score is not None:
                lines.append(f"**Quality Score**: {self.score}/100")
            lines += ["", "### Generated Files"]
            lines += [f"- {path}" for path in self.files] or ["- (none)"]
            if self.review is not None:
                lines += [
                    "",
                    "### Review Summary",
                    f"- Errors: {self.review.errors}",
                    f"- Warnings: {self.review.warnings}",
                    f"- Info: {self.review.info}",
                ]
        else:
            lines.append("**Status**: ❌ Failed")
            lines.append(f"**Error**: {self.error}")
        lines += ["", "---", "", ""]
        return "\n".join(lines)


def log_file_for(log_directory: str | Path, day: datetime) -> Path:
    return Path(log_directory) / f"execution-{day.strftime('%Y-%m-%d')}.md"


class ExecutionLogWriter:
    """Single-writer queue for execution log appends.

    Example:
        >>> async with ExecutionLogWriter(".ai/logs") as writer:
        ...     await writer.append(record)
    """

    def __init__(self, log_directory: str | Path) -> None:
        self._log_directory = Path(log_directory)
        self._queue: asyncio.Queue[tuple[ExecutionRecord, asyncio.Future[Path]] | None] = (
            asyncio.Queue()
        )
        self._worker: asyncio.Task[None] | None = None

    @property
    def log_directory(self) -> Path:
        return self._log_directory

    def start(self) -> None:
        if self._worker is None:
            self._worker = asyncio.create_task(self._drain())

    async def close(self) -> None:
        """Flush queued records and stop the writer."""
        if self._worker is None:
            return
        await self._queue.put(None)
        await self._worker
        self._worker = None

    async def append(self, record: ExecutionRecord) -> Path:
        """Queue a record and wait until it is on disk.

        Returns:
            Path of the log file written to.
        """
        self.start()
        done: asyncio.Future[Path] = asyncio.get_running_loop().create_future()
        await self._queue.put((record, done))
        return await done

    async def _drain(self) -> None:
        while True:
            item = await self._queue.get()
            if item is None:
                return
            record, done = item
            try:
                path = await asyncio.to_thread(self._write, record)
            except OSError as e:
                logger.error("Failed to append execution log for %s: %s", record.node_id, e)
                if not done.done():
                    done.set_exception(e)
                continue
            if not done.done():
                done.set_result(path)

    def _write(self, record: ExecutionRecord) -> Path:
        path = log_file_for(self._log_directory, record.executed_at)
        path.parent.mkdir(parents=True, exist_ok=True)
        with path.open("a", encoding="utf-8") as f:
            f.write(record.to_markdown())
        return path

    async def __aenter__(self) -> ExecutionLogWriter:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
