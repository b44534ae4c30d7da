"""Quality review of generated artifacts.

The score is a weighted mean of four checks, each starting at 100 and
losing a fixed penalty per defect (floored at 0):

    structural  30%  Python sources must parse            -10 per syntax error
    style       30%  lint command findings                -5 per error, -2 per warning
    safety      30%  dangerous patterns                   -10 per match
    complexity  10%  average branch count per module      -10 per point above 10

A score of QUALITY_THRESHOLD or more passes.
"""

from __future__ import annotations

import ast
import asyncio
import json
import logging
import re
import shlex
from dataclasses import dataclass, field
from pathlib import Path

from issueflow.core.types import ReviewIssue, ReviewRequest, ReviewResult, ReviewSummary, Severity

logger = logging.getLogger(__name__)

QUALITY_THRESHOLD = 80

WEIGHTS = {"structural": 0.3, "style": 0.3, "safety": 0.3, "complexity": 0.1}

SYNTAX_ERROR_PENALTY = 10
LINT_ERROR_PENALTY = 5
LINT_WARNING_PENALTY = 2
SAFETY_PENALTY = 10
COMPLEXITY_BASELINE = 10
COMPLEXITY_PENALTY = 10

DANGEROUS_PATTERNS: list[tuple[re.Pattern[str], str]] = [
    (re.compile(r"\beval\("), "Avoid using eval()"),
    (re.compile(r"\bexec\("), "Avoid using exec()"),
    (re.compile(r"\bos\.system\("), "Avoid os.system(), use subprocess without a shell"),
    (re.compile(r"shell\s*=\s*True"), "Subprocess call runs through a shell"),
    (re.compile(r"\bpickle\.loads?\("), "Unpickling untrusted data can execute code"),
    (re.compile(r"\bos\.environ\b"), "Environment variable exposed"),
    (re.compile(r"password|secret|api[_-]?key", re.IGNORECASE), "Potential credential in code"),
]

_BRANCH_NODES = (ast.If, ast.For, ast.AsyncFor, ast.While, ast.ExceptHandler, ast.match_case)

# ruff codes that indicate broken code rather than style
_LINT_ERROR_PREFIXES = ("E9", "F")


def passes_quality_gate(score: int, threshold: int = QUALITY_THRESHOLD) -> bool:
    """Whether a review score passes. The threshold itself passes."""
    return score >= threshold


def penalize(defects: int, penalty: int) -> int:
    return max(0, 100 - defects * penalty)


@dataclass
class CheckResult:
    score: int
    issues: list[ReviewIssue] = field(default_factory=list)
    defects: int = 0


class CodeReviewer:
    """Scores generated artifacts.

    Args:
        threshold: Minimum passing score.
        lint_command: Command run with the artifact paths appended, expected
            to print ruff-style JSON. None disables the style check.
        lint_timeout: Seconds before the lint command is abandoned.
    """

    def __init__(
        self,
        threshold: int = QUALITY_THRESHOLD,
        lint_command: str | None = None,
        lint_timeout: float = 120.0,
    ) -> None:
        self.threshold = threshold
        self.lint_command = lint_command
        self.lint_timeout = lint_timeout

    async def review(self, request: ReviewRequest) -> ReviewResult:
        sources = await asyncio.to_thread(self._load_sources, request)

        structural = self.check_structure(sources)
        style = await self.check_style(request)
        safety = self.check_safety(sources)
        complexity = self.check_complexity(sources)

        score = round(
            structural.score * WEIGHTS["structural"]
            + style.score * WEIGHTS["style"]
            + safety.score * WEIGHTS["safety"]
            + complexity.score * WEIGHTS["complexity"]
        )
        issues = structural.issues + style.issues + safety.issues + complexity.issues
        summary = ReviewSummary(
            errors=sum(1 for i in issues if i.severity is Severity.ERROR),
            warnings=sum(1 for i in issues if i.severity is Severity.WARNING),
            info=sum(1 for i in issues if i.severity is Severity.INFO),
        )
        passed = passes_quality_gate(score, self.threshold)

        logger.info(
            "Review %s: %d/100 (threshold %d, errors=%d, warnings=%d)",
            "passed" if passed else "failed",
            score,
            self.threshold,
            summary.errors,
            summary.warnings,
        )
        return ReviewResult(
            score=score,
            passed=passed,
            issues=issues,
            summary=summary,
            details={
                "structural": {"errors": structural.defects, "score": structural.score},
                "style": {"findings": style.defects, "score": style.score},
                "safety": {"matches": safety.defects, "score": safety.score},
                "complexity": {"score": complexity.score},
            },
        )

    def _load_sources(self, request: ReviewRequest) -> dict[str, str]:
        """Artifact contents keyed by path. Unreadable files are reported and skipped."""
        sources: dict[str, str] = {}
        for path in request.files:
            if path in request.sources:
                sources[path] = request.sources[path]
                continue
            try:
                sources[path] = (Path(request.project_root) / path).read_text(encoding="utf-8")
            except (OSError, UnicodeDecodeError) as e:
                logger.warning("Skipping unreadable artifact %s: %s", path, e)
        return sources

    def check_structure(self, sources: dict[str, str]) -> CheckResult:
        issues = []
        for path, content in sources.items():
            if not path.endswith(".py"):
                continue
            try:
                ast.parse(content, filename=path)
            except SyntaxError as e:
                issues.append(
                    ReviewIssue(
                        file=path,
                        line=e.lineno,
                        severity=Severity.ERROR,
                        message=f"Syntax error: {e.msg}",
                        rule="syntax",
                    )
                )
        return CheckResult(penalize(len(issues), SYNTAX_ERROR_PENALTY), issues, len(issues))

    async def check_style(self, request: ReviewRequest) -> CheckResult:
        if not self.lint_command:
            return CheckResult(100)

        root = Path(request.project_root)
        on_disk = [p for p in request.files if p.endswith(".py") and (root / p).is_file()]
        if not on_disk:
            return CheckResult(100)

        try:
            proc = await asyncio.create_subprocess_exec(
                *shlex.split(self.lint_command),
                *on_disk,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.PIPE,
                cwd=root,
            )
        except (FileNotFoundError, PermissionError):
            logger.info("Style check skipped: %s is not available", self.lint_command)
            return CheckResult(100)

        try:
            stdout, _ = await asyncio.wait_for(proc.communicate(), timeout=self.lint_timeout)
        except TimeoutError:
            proc.kill()
            await proc.wait()
            logger.warning("Style check skipped: timed out after %.0fs", self.lint_timeout)
            return CheckResult(100)

        try:
            findings = json.loads(stdout.decode("utf-8") or "[]")
        except (json.JSONDecodeError, UnicodeDecodeError):
            logger.info("Style check skipped: lint output is not JSON")
            return CheckResult(100)

        return self.score_lint_findings(findings)

    def score_lint_findings(self, findings: list[dict]) -> CheckResult:
        issues = []
        errors = warnings = 0
        for item in findings:
            code = item.get("code") or ""
            if item.get("severity") in ("error", "warning"):
                severity = Severity(item["severity"])
            else:
                severity = Severity.ERROR if code.startswith(_LINT_ERROR_PREFIXES) else Severity.WARNING
            if severity is Severity.ERROR:
                errors += 1
            else:
                warnings += 1
            issues.append(
                ReviewIssue(
                    file=item.get("filename", ""),
                    line=(item.get("location") or {}).get("row"),
                    severity=severity,
                    message=item.get("message", ""),
                    rule=code or None,
                )
            )
        score = max(0, 100 - errors * LINT_ERROR_PENALTY - warnings * LINT_WARNING_PENALTY)
        return CheckResult(score, issues, errors + warnings)

    def check_safety(self, sources: dict[str, str]) -> CheckResult:
        issues = []
        matches = 0
        for path, content in sources.items():
            for pattern, message in DANGEROUS_PATTERNS:
                found = pattern.findall(content)
                if found:
                    matches += len(found)
                    issues.append(
                        ReviewIssue(file=path, severity=Severity.WARNING, message=message, rule="security")
                    )
        return CheckResult(penalize(matches, SAFETY_PENALTY), issues, matches)

    def check_complexity(self, sources: dict[str, str]) -> CheckResult:
        totals = []
        for path, content in sources.items():
            if not path.endswith(".py"):
                continue
            try:
                tree = ast.parse(content)
            except SyntaxError:
                continue
            branches = sum(isinstance(node, _BRANCH_NODES) for node in ast.walk(tree))
            totals.append(1 + branches)

        average = sum(totals) / len(totals) if totals else 0.0
        score = 100
        if average > COMPLEXITY_BASELINE:
            score = max(0, round(100 - (average - COMPLEXITY_BASELINE) * COMPLEXITY_PENALTY))

        issues = []
        if score < 100:
            issues.append(
                ReviewIssue(
                    file="*",
                    severity=Severity.INFO,
                    message=f"Average complexity {average:.1f} exceeds {COMPLEXITY_BASELINE}",
                    rule="complexity",
                )
            )
        return CheckResult(score, issues)
