"""GitHub REST client.

Uses aiohttp.ClientSession, with retry and exponential backoff for
rate limiting and transient server errors.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Any
from urllib.parse import quote

import aiohttp

from issueflow.core.types import Issue

logger = logging.getLogger(__name__)


class GitHubError(Exception):
    """Raised when the GitHub API returns an error."""

    def __init__(self, message: str, status_code: int, response_body: str | None = None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


def split_repository(repository: str) -> tuple[str, str]:
    """Split "owner/repo" into its parts.

    Raises:
        ValueError: If the slug is malformed.
    """
    parts = repository.split("/")
    if len(parts) != 2 or not all(parts):
        raise ValueError(f"Repository must look like owner/repo, got {repository!r}")
    return parts[0], parts[1]


@dataclass
class GitHubClientConfig:
    token: str
    repository: str
    base_url: str = "https://api.github.com"
    connect_timeout: float = 10.0
    read_timeout: float = 60.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    retryable_status_codes: frozenset[int] = frozenset({429, 500, 502, 503, 504})


class GitHubClient:
    """Async client for the handful of GitHub endpoints the pipeline needs.

    Example:
        >>> async with GitHubClient(GitHubClientConfig(token, "acme/app")) as gh:
        ...     issue = await gh.get_issue(42)
    """

    def __init__(self, config: GitHubClientConfig) -> None:
        self.config = config
        self.owner, self.repo = split_repository(config.repository)
        self._session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        timeout = aiohttp.ClientTimeout(
            connect=self.config.connect_timeout,
            total=self.config.read_timeout,
        )
        self._session = aiohttp.ClientSession(
            headers={
                "Authorization": f"Bearer {self.config.token}",
                "Accept": "application/vnd.github+json",
                "X-GitHub-Api-Version": "2022-11-28",
            },
            timeout=timeout,
        )

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> GitHubClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    def _repo_url(self, path: str = "") -> str:
        return f"{self.config.base_url}/repos/{self.owner}/{self.repo}{path}"

    # ------------------------------------------------------------------
    # Endpoints
    # ------------------------------------------------------------------

    async def get_issue(self, number: int) -> Issue:
        data = await self._request("GET", self._repo_url(f"/issues/{number}"))
        return Issue.from_api(data)

    async def add_labels(self, number: int, labels: list[str]) -> list[dict[str, Any]]:
        """Add labels to an issue or pull request."""
        return await self._request(
            "POST", self._repo_url(f"/issues/{number}/labels"), json={"labels": labels}
        )

    async def get_label(self, name: str) -> dict[str, Any] | None:
        """Fetch a label, or None when it does not exist."""
        try:
            return await self._request("GET", self._repo_url(f"/labels/{quote(name, safe='')}"))
        except GitHubError as e:
            if e.status_code == 404:
                return None
            raise

    async def create_label(self, name: str, color: str, description: str = "") -> dict[str, Any]:
        return await self._request(
            "POST",
            self._repo_url("/labels"),
            json={"name": name, "color": color, "description": description},
        )

    async def create_pull_request(
        self,
        title: str,
        head: str,
        base: str,
        body: str,
        draft: bool = True,
    ) -> dict[str, Any]:
        return await self._request(
            "POST",
            self._repo_url("/pulls"),
            json={"title": title, "head": head, "base": base, "body": body, "draft": draft},
        )

    async def get_repository(self) -> dict[str, Any]:
        return await self._request("GET", self._repo_url())

    async def list_issues(self, state: str = "open", per_page: int = 10) -> list[dict[str, Any]]:
        return await self._request(
            "GET", self._repo_url("/issues"), params={"state": state, "per_page": per_page}
        )

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _backoff(self, attempt: int) -> float:
        return min(self.config.retry_base_delay * (2**attempt), self.config.retry_max_delay)

    async def _request(self, method: str, url: str, **kwargs: Any) -> Any:
        """Send a request, retrying transient failures.

        Raises:
            GitHubError: On a non-retryable status, or when retries run out.
            aiohttp.ClientError: When the connection keeps failing.
        """
        last_error: Exception | None = None

        for attempt in range(self.config.max_retries + 1):
            if self._session is None:
                raise RuntimeError("Client not connected. Call connect() first.")
            try:
                async with self._session.request(method, url, **kwargs) as response:
                    if 200 <= response.status < 300:
                        if response.status == 204:
                            return None
                        return await response.json()

                    error_body = await response.text()
                    error = GitHubError(
                        f"GitHub {method} {url} returned {response.status}: {error_body[:200]}",
                        response.status,
                        error_body,
                    )
                    if (
                        response.status in self.config.retryable_status_codes
                        and attempt < self.config.max_retries
                    ):
                        last_error = error
                        delay = self._backoff(attempt)
                        logger.warning(
                            "GitHub %s %s failed with %d, retrying in %.1fs (attempt %d/%d)",
                            method,
                            url,
                            response.status,
                            delay,
                            attempt + 1,
                            self.config.max_retries,
                        )
                        await asyncio.sleep(delay)
                        continue
                    raise error

            except aiohttp.ClientError as e:
                last_error = e
                if attempt < self.config.max_retries:
                    delay = self._backoff(attempt)
                    logger.warning(
                        "GitHub %s %s failed with %s, retrying in %.1fs (attempt %d/%d)",
                        method,
                        url,
                        type(e).__name__,
                        delay,
                        attempt + 1,
                        self.config.max_retries,
                    )
                    await asyncio.sleep(delay)
                    continue
                raise

        if last_error:
            raise last_error
        raise RuntimeError("Retry loop exited without result or error")
