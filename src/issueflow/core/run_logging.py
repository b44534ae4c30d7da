"""Run identifiers and one-line structured log events.

Log Format:
    [<identifier>] action: key=value, key=value (duration)

Examples:
    [scheduler] chunk_start: level=0, chunk=0, nodes=['issue-12', 'issue-13']
    [issue-12] stage_complete: stage=generate, files=3 (4.2s)
    [issue-12] node_failed: error=Code generation failed: rate limited
"""

from __future__ import annotations

import logging
import random
import string
import time
from typing import Any


def generate_run_id() -> str:
    """Generate a unique run ID like "20251228_143022_x7k"."""
    timestamp = time.strftime("%Y%m%d_%H%M%S")
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=3))
    return f"{timestamp}_{suffix}"


def truncate(value: Any, max_length: int = 100) -> str:
    """Truncate a value for logging, noting the original length."""
    s = str(value)
    if len(s) <= max_length:
        return s
    return f"{s[:max_length]}... ({len(s)} chars)"


def _format(identifier: str, action: str, fields: dict[str, Any], suffix: str = "") -> str:
    kv_pairs = ", ".join(f"{k}={truncate(v)}" for k, v in fields.items())
    if kv_pairs:
        return f"[{identifier}] {action}: {kv_pairs}{suffix}"
    return f"[{identifier}] {action}:{suffix}" if suffix else f"[{identifier}] {action}"


def log_start(logger: logging.Logger | None, identifier: str, action: str, **kwargs: Any) -> None:
    """Log a start event at DEBUG. No-op without a logger."""
    if logger is None:
        return
    logger.debug(_format(identifier, action, kwargs))


def log_complete(
    logger: logging.Logger | None,
    identifier: str,
    action: str,
    duration_s: float,
    **kwargs: Any,
) -> None:
    """Log a completion event with its duration at DEBUG."""
    if logger is None:
        return
    logger.debug(_format(identifier, action, kwargs, f" ({duration_s:.1f}s)"))


def log_error(
    logger: logging.Logger | None,
    identifier: str,
    action: str,
    error: str | BaseException,
    **kwargs: Any,
) -> None:
    """Log an error event at ERROR."""
    if logger is None:
        return
    kwargs["error"] = truncate(str(error), max_length=200)
    logger.error(_format(identifier, action, kwargs))


def log_warning(logger: logging.Logger | None, identifier: str, action: str, **kwargs: Any) -> None:
    """Log a warning event at WARNING."""
    if logger is None:
        return
    logger.warning(_format(identifier, action, kwargs))
