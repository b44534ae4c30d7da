"""Branch, commit, push and open a draft pull request for an issue."""

from __future__ import annotations

import asyncio
import logging
from pathlib import Path

from issueflow.agents.github import GitHubClient
from issueflow.core.types import PublishRequest, PublishResult

logger = logging.getLogger(__name__)

# Checked in order, first match wins
COMMIT_TYPE_KEYWORDS: list[tuple[tuple[str, ...], str]] = [
    (("fix", "bug"), "fix"),
    (("docs", "document"), "docs"),
    (("test",), "test"),
    (("refactor",), "refactor"),
    (("style",), "style"),
    (("perf",), "perf"),
    (("chore",), "chore"),
]


class GitCommandError(RuntimeError):
    """Raised when a git command exits non-zero."""

    def __init__(self, args: list[str], returncode: int, output: str) -> None:
        super().__init__(f"git {' '.join(args)} failed ({returncode}): {output.strip()}")
        self.returncode = returncode
        self.output = output


def commit_type_for(title: str) -> str:
    """Conventional Commits type inferred from an issue title."""
    lowered = title.lower()
    for keywords, commit_type in COMMIT_TYPE_KEYWORDS:
        if any(keyword in lowered for keyword in keywords):
            return commit_type
    return "feat"


def generate_commit_message(request: PublishRequest) -> str:
    return f"{commit_type_for(request.issue_title)}: {request.issue_title}\n\nResolves #{request.issue_number}\n"


def generate_pr_title(request: PublishRequest) -> str:
    return f"[Issue #{request.issue_number}] {request.issue_title}"


def generate_pr_body(request: PublishRequest) -> str:
    n = request.issue_number
    changes = "\n".join(f"- `{path}`" for path in request.files) or "- No files"
    return f"""## Summary

This PR implements the change described in Issue #{n}.

## Changes

{changes}

## Related Issue

Closes #{n}

## Test Plan

```bash
pytest
```

## Checklist

- [x] Code generated automatically
- [x] Unit tests added
- [ ] Code review required
- [ ] Manual testing required

---

This is a **Draft PR** created automatically. Please review the generated code before merging.
"""


class PullRequestPublisher:
    """Publishes generated artifacts as a draft pull request.

    Args:
        github: Connected GitHub client.
        cwd: Working tree the git commands run in.

    Nodes of a chunk share one working tree and index, so the git sequence
    (checkout, add, commit, push) of one request runs under a lock and every
    branch starts from the request's base branch.
    """

    def __init__(self, github: GitHubClient, cwd: str | Path = ".") -> None:
        self._github = github
        self._cwd = Path(cwd)
        self._git_lock = asyncio.Lock()

    async def create_pull_request(self, request: PublishRequest) -> PublishResult:
        try:
            async with self._git_lock:
                await self._checkout(request.branch_name, request.base_branch)
                await self._stage(request.files)
                await self._commit(generate_commit_message(request))
                await self._push(request.branch_name)

            pr = await self._github.create_pull_request(
                title=generate_pr_title(request),
                head=request.branch_name,
                base=request.base_branch,
                body=generate_pr_body(request),
                draft=True,
            )
        except Exception as e:
            logger.error("Publishing issue #%d failed: %s", request.issue_number, e)
            return PublishResult(success=False, error=str(e))

        logger.info("PR created: #%s %s", pr.get("number"), pr.get("html_url"))
        return PublishResult(success=True, pr_number=pr.get("number"), pr_url=pr.get("html_url"))

    async def add_labels(self, pr_number: int, labels: list[str]) -> None:
        """Label a pull request. Failures are logged, not raised."""
        try:
            await self._github.add_labels(pr_number, labels)
        except Exception as e:
            logger.warning("Failed to add labels to PR #%d: %s", pr_number, e)
            return
        logger.info("Added labels to PR #%d: %s", pr_number, ", ".join(labels))

    # ------------------------------------------------------------------
    # Git
    # ------------------------------------------------------------------

    async def _git(self, *args: str) -> str:
        try:
            proc = await asyncio.create_subprocess_exec(
                "git",
                *args,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                cwd=self._cwd,
            )
        except FileNotFoundError as err:
            raise RuntimeError("git not found. Make sure git is installed and in PATH.") from err

        stdout, _ = await proc.communicate()
        output = stdout.decode("utf-8", errors="replace")
        if proc.returncode != 0:
            raise GitCommandError(list(args), proc.returncode, output)
        return output

    async def _checkout(self, branch: str, base: str) -> None:
        try:
            await self._git("checkout", branch)
            logger.debug("Checked out existing branch: %s", branch)
        except GitCommandError:
            await self._git("checkout", "-b", branch, base)
            logger.debug("Created branch %s from %s", branch, base)

    async def _stage(self, files: list[str]) -> None:
        if files:
            await self._git("add", "--", *files)
        else:
            await self._git("add", ".")
        logger.debug("Staged %d file(s)", len(files))

    async def _commit(self, message: str) -> None:
        try:
            await self._git("commit", "-m", message)
        except GitCommandError as e:
            if "nothing to commit" in e.output:
                logger.info("No changes to commit")
                return
            raise

    async def _push(self, branch: str) -> None:
        try:
            await self._git("push", "origin", branch)
        except GitCommandError:
            await self._git("push", "-u", "origin", branch)
        logger.debug("Pushed to origin/%s", branch)
