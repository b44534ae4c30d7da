"""Keyword-based issue classification.

Labels are grouped by category. A label is recommended when any of its
keywords appears in the issue title or body; each label counts once.
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING

from issueflow.core.types import Issue, LabelAnalysis

if TYPE_CHECKING:
    from issueflow.agents.github import GitHubClient

logger = logging.getLogger(__name__)

LABEL_RULES: dict[str, dict[str, list[str]]] = {
    "type": {
        "✨ type:feature": ["feature", "new", "add", "implement"],
        "🐛 type:bug": ["bug", "fix", "error", "issue"],
        "📚 type:docs": ["docs", "document", "readme"],
        "🧪 type:test": ["test", "testing", "spec"],
        "♻️ type:refactor": ["refactor", "cleanup", "improve"],
        "🎨 type:style": ["style", "format", "ui", "design"],
        "⚡ type:perf": ["perf", "performance", "optimize"],
        "🔧 type:chore": ["chore", "maintenance"],
    },
    "priority": {
        "📊 priority:P0-Critical": ["critical", "urgent", "blocker", "blocking"],
        "⚠️ priority:P1-High": ["high", "important"],
        "📊 priority:P2-Medium": ["medium"],
        "📉 priority:P3-Low": ["low", "minor"],
        "💡 priority:P4-Trivial": ["trivial", "nice to have"],
    },
    "state": {
        "📥 state:pending": ["pending", "new"],
        "🚧 state:in-progress": ["in progress", "wip"],
        "✅ state:completed": ["completed", "done"],
        "❌ state:blocked": ["blocked"],
    },
    "phase": {
        "🎯 phase:planning": ["planning", "design"],
        "🎯 phase:development": ["development", "coding"],
        "🎯 phase:review": ["review", "testing"],
        "🎯 phase:deployment": ["deployment", "deploy"],
    },
    "agent": {
        "🤖 agent:codegen": ["codegen", "code generation"],
        "🤖 agent:review": ["review", "quality"],
        "🤖 agent:pr": ["pr", "pull request"],
        "🤖 agent:deploy": ["deploy", "deployment"],
    },
    "special": {
        "🔒 special:security": ["security", "vulnerability", "rls"],
        "🎉 enhancement": ["enhancement", "improvement"],
        "❓ question": ["question", "help"],
        "💾 database": ["database", "sql", "schema"],
        "🔌 api": ["api", "endpoint"],
        "🎨 design": ["design", "ui", "ux"],
    },
}

DEFAULT_PRIORITY = "📊 priority:P2-Medium"
DEFAULT_STATE = "📥 state:pending"
DEFAULT_PHASE = "🎯 phase:planning"
CODEGEN_LABEL = "🤖 agent:codegen"
CODEGEN_TRIGGERS = ("implement", "create", "add")

LABEL_COLORS: list[tuple[str, str]] = [
    ("✨ type:", "1d76db"),
    ("🐛 type:", "d73a4a"),
    ("📚 type:", "0075ca"),
    ("🧪 type:", "d876e3"),
    ("📊 priority:P0", "b60205"),
    ("⚠️ priority:P1", "d93f0b"),
    ("📊 priority:P2", "fbca04"),
    ("📥 state:", "0e8a16"),
    ("🎯 phase:", "1d76db"),
    ("🤖 agent:", "5319e7"),
    ("🔒 special:security", "b60205"),
]
DEFAULT_LABEL_COLOR = "ededed"

LABEL_DESCRIPTIONS = {
    "✨ type:feature": "New feature or enhancement",
    "🐛 type:bug": "Bug fix",
    "📚 type:docs": "Documentation",
    "🧪 type:test": "Testing",
    "📊 priority:P0-Critical": "Critical priority",
    "⚠️ priority:P1-High": "High priority",
    "📊 priority:P2-Medium": "Medium priority",
    "📥 state:pending": "Pending",
    "🎯 phase:planning": "Planning phase",
    "🎯 phase:development": "Development phase",
    "🤖 agent:codegen": "Code generation agent",
    "🔒 special:security": "Security-related",
}


def all_labels() -> list[str]:
    """Every label the classifier can recommend, without duplicates."""
    labels: dict[str, None] = {}
    for category in LABEL_RULES.values():
        for label in category:
            labels[label] = None
    return list(labels)


def label_color(label: str) -> str:
    for prefix, color in LABEL_COLORS:
        if label.startswith(prefix):
            return color
    return DEFAULT_LABEL_COLOR


class IssueClassifier:
    """Recommends labels for issues and applies them through GitHub."""

    def __init__(self, github: GitHubClient | None = None) -> None:
        self._github = github

    def analyze(self, issue: Issue) -> LabelAnalysis:
        """Recommend labels for an issue. Pure, no side effects."""
        text = f"{issue.title} {issue.body}".lower()
        recommended: dict[str, None] = {}
        total_matches = 0
        category_matches = 0

        for labels in LABEL_RULES.values():
            category_matched = False
            for label, keywords in labels.items():
                if any(keyword in text for keyword in keywords):
                    recommended[label] = None
                    total_matches += 1
                    category_matched = True
            if category_matched:
                category_matches += 1

        for prefix, default in (
            ("📊 priority:", DEFAULT_PRIORITY),
            ("📥 state:", DEFAULT_STATE),
            ("🎯 phase:", DEFAULT_PHASE),
        ):
            if not any(label.startswith(prefix) for label in recommended):
                recommended[default] = None

        if any(trigger in text for trigger in CODEGEN_TRIGGERS):
            recommended[CODEGEN_LABEL] = None

        return LabelAnalysis(
            recommended_labels=list(recommended),
            confidence=min(1.0, (total_matches + category_matches) / 10),
            reasoning=f"Matched {total_matches} keywords across {category_matches} categories",
        )

    def _require_github(self) -> GitHubClient:
        if self._github is None:
            raise RuntimeError("IssueClassifier has no GitHub client")
        return self._github

    async def apply_labels(self, issue_number: int, labels: list[str]) -> None:
        await self._require_github().add_labels(issue_number, labels)
        logger.info("Added labels to issue #%d: %s", issue_number, ", ".join(labels))

    async def ensure_labels_exist(self) -> list[str]:
        """Create every known label missing from the repository.

        Returns:
            Names of the labels that were created.
        """
        github = self._require_github()
        created = []
        for label in all_labels():
            if await github.get_label(label) is not None:
                logger.debug("Label exists: %s", label)
                continue
            await github.create_label(
                label,
                color=label_color(label),
                description=LABEL_DESCRIPTIONS.get(label, ""),
            )
            created.append(label)
            logger.info("Created label: %s", label)
        return created
