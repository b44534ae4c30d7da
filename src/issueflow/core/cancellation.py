"""Cooperative cancellation and deadlines for pipeline execution.

A CancellationToken is created once per run and threaded from the
scheduler into every executor stage. Stages never block past either
their deadline or a cancel request: run_guarded races the stage
against both.

Typical usage:
1. Create a CancellationToken before scheduling
2. Pass it to the LevelScheduler and the TaskExecutor
3. Call token.cancel() to stop scheduling and abort in-flight stages
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable
from typing import TypeVar

T = TypeVar("T")


class CancelledException(Exception):
    """Raised when execution is cancelled through a CancellationToken."""

    def __init__(self, message: str = "Execution was cancelled") -> None:
        super().__init__(message)


class StageTimeoutError(TimeoutError):
    """Raised when a guarded call exceeds its deadline."""

    def __init__(self, timeout: float, label: str | None = None) -> None:
        self.timeout = timeout
        self.label = label
        what = f"'{label}'" if label else "Call"
        super().__init__(f"{what} timed out after {timeout:.1f}s")


class CancellationToken:
    """Token for cooperative cancellation.

    Example:
        >>> token = CancellationToken()
        >>> scheduler = LevelScheduler(concurrency=2, cancellation=token)
        >>> task = asyncio.create_task(scheduler.run(nodes, execute))
        >>> token.cancel()
        >>> try:
        ...     await task
        ... except CancelledException:
        ...     print("Run was cancelled")
    """

    def __init__(self) -> None:
        self._cancelled = False
        self._event = asyncio.Event()

    def cancel(self) -> None:
        """Request cancellation. Safe to call multiple times."""
        self._cancelled = True
        self._event.set()

    @property
    def is_cancelled(self) -> bool:
        return self._cancelled

    def check(self) -> None:
        """Raise CancelledException if cancellation was requested.

        Raises:
            CancelledException: If cancel() has been called.
        """
        if self._cancelled:
            raise CancelledException()

    async def wait(self) -> None:
        """Block until cancel() is called."""
        await self._event.wait()


async def run_guarded(
    awaitable: Awaitable[T],
    timeout: float | None = None,
    token: CancellationToken | None = None,
    label: str | None = None,
) -> T:
    """Await a call under a deadline and a cancellation token.

    The call is cancelled as soon as the deadline passes or the token
    fires, whichever comes first.

    Args:
        awaitable: The call to run.
        timeout: Deadline in seconds. None means no deadline.
        token: Optional cancellation token.
        label: Name used in the timeout message.

    Returns:
        The call's result.

    Raises:
        StageTimeoutError: If the deadline passed first.
        CancelledException: If the token fired first.
        Exception: Whatever the call raised.
    """
    if token is not None:
        token.check()

    task = asyncio.ensure_future(awaitable)
    waiters: set[asyncio.Future] = {task}
    cancel_waiter: asyncio.Future | None = None
    if token is not None:
        cancel_waiter = asyncio.ensure_future(token.wait())
        waiters.add(cancel_waiter)

    try:
        done, _ = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
    finally:
        if cancel_waiter is not None:
            cancel_waiter.cancel()
        if not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

    if task in done:
        return task.result()
    if token is not None and token.is_cancelled:
        raise CancelledException()
    raise StageTimeoutError(timeout or 0.0, label)
