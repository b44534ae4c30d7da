"""Dependency references in issue bodies."""

from __future__ import annotations

import re

NODE_ID_PREFIX = "issue-"

# Only the first "relates to" reference counts; every "depends:" does.
RELATES_TO_PATTERN = re.compile(r"relates to #(\d+)", re.IGNORECASE)
DEPENDS_PATTERN = re.compile(r"depends:\s*#(\d+)", re.IGNORECASE)


def parse_dependencies(body: str | None) -> list[int]:
    """Extract referenced issue numbers from free text.

    Recognises a single ``Relates to #N`` and any number of ``depends: #N``
    occurrences, case-insensitively.

    Args:
        body: Issue body. None is treated as empty.

    Returns:
        Deduplicated issue numbers in first-seen order.
    """
    if not body:
        return []

    refs: list[int] = []
    relates = RELATES_TO_PATTERN.search(body)
    if relates:
        refs.append(int(relates.group(1)))
    for match in DEPENDS_PATTERN.finditer(body):
        refs.append(int(match.group(1)))

    return list(dict.fromkeys(refs))


def node_id_for(number: int) -> str:
    """Synthetic DAG node id for an issue number."""
    return f"{NODE_ID_PREFIX}{number}"
