"""Anthropic Messages API client used in API generation mode.

Same transport shape as GitHubClient: one aiohttp session per client and
exponential backoff on transient statuses. A breaker sits on top. After
enough consecutive failed completions it refuses further calls for a
cooldown period, so an outage or a revoked key fails the remaining nodes
quickly instead of each one waiting through its own retries.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any

import aiohttp

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
MESSAGES_PATH = "/v1/messages"


class BreakerState(Enum):
    CLOSED = "closed"
    OPEN = "open"
    PROBING = "probing"


class BreakerOpenError(Exception):
    """Raised when a completion is refused because the breaker is open."""


class CompletionError(Exception):
    """Raised when the Messages API answers with an error status.

    Attributes:
        status_code: HTTP status returned by the API.
        response_body: Raw response text.
    """

    def __init__(self, message: str, status_code: int, response_body: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body


@dataclass
class LLMClientConfig:
    """Settings for LLMClient."""

    api_key: str
    model: str
    base_url: str = "https://api.anthropic.com"
    max_tokens: int = 4096
    temperature: float = 0.7
    connect_timeout: float = 10.0
    request_timeout: float = 300.0
    max_retries: int = 3
    retry_base_delay: float = 1.0
    retry_max_delay: float = 30.0
    retryable_status_codes: frozenset[int] = frozenset({429, 500, 502, 503, 504, 529})
    breaker_threshold: int = 5
    breaker_cooldown: float = 30.0


class Breaker:
    """Counts consecutive failed completions.

    CLOSED lets every call through. Reaching ``threshold`` failures moves it
    to OPEN, which refuses calls until ``cooldown`` seconds have passed since
    the last failure. The next call then runs as a PROBING call: success
    closes the breaker again, failure reopens it immediately.
    """

    def __init__(self, threshold: int, cooldown: float) -> None:
        self.threshold = threshold
        self.cooldown = cooldown
        self.state = BreakerState.CLOSED
        self.failures = 0
        self._last_failure = 0.0

    def allow(self) -> bool:
        if (
            self.state is BreakerState.OPEN
            and time.monotonic() - self._last_failure >= self.cooldown
        ):
            logger.info("Breaker cooldown elapsed, probing the Messages API")
            self.state = BreakerState.PROBING
        return self.state is not BreakerState.OPEN

    def succeeded(self) -> None:
        self.failures = 0
        self.state = BreakerState.CLOSED

    def failed(self) -> None:
        self.failures += 1
        self._last_failure = time.monotonic()
        if self.state is BreakerState.OPEN:
            return
        if self.state is BreakerState.PROBING or self.failures >= self.threshold:
            logger.warning("Breaker opened after %d consecutive failures", self.failures)
            self.state = BreakerState.OPEN


def response_text(data: dict[str, Any]) -> str:
    """Join the text blocks of a Messages API response, skipping other block types."""
    return "\n".join(
        block.get("text", "") for block in data.get("content", []) if block.get("type") == "text"
    )


class LLMClient:
    """Text completion through the Messages API.

    Example:
        >>> async with LLMClient(LLMClientConfig(api_key=key, model=model)) as llm:
        ...     text = await llm.complete("Implement issue #12")
    """

    def __init__(self, config: LLMClientConfig, breaker: Breaker | None = None) -> None:
        self.config = config
        self.breaker = breaker or Breaker(config.breaker_threshold, config.breaker_cooldown)
        self._session: aiohttp.ClientSession | None = None

    async def connect(self) -> None:
        self._session = aiohttp.ClientSession(
            headers={
                "x-api-key": self.config.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
            timeout=aiohttp.ClientTimeout(
                connect=self.config.connect_timeout,
                total=self.config.request_timeout,
            ),
        )

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    async def __aenter__(self) -> LLMClient:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    async def complete(self, prompt: str) -> str:
        """Send one user prompt and return the response text.

        Raises:
            BreakerOpenError: If recent completions kept failing.
            CompletionError: If the API answers with an error status.
            aiohttp.ClientError: If the connection keeps failing.
        """
        if not self.breaker.allow():
            raise BreakerOpenError(
                f"Messages API breaker is open after {self.breaker.failures} failures"
            )

        payload = {
            "model": self.config.model,
            "max_tokens": self.config.max_tokens,
            "temperature": self.config.temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        start = time.monotonic()
        try:
            data = await self._post(payload)
        except Exception:
            self.breaker.failed()
            raise
        self.breaker.succeeded()

        usage = data.get("usage") or {}
        logger.debug(
            "Completion took %.1fs (input_tokens=%s, output_tokens=%s)",
            time.monotonic() - start,
            usage.get("input_tokens"),
            usage.get("output_tokens"),
        )
        return response_text(data)

    async def _post(self, payload: dict[str, Any]) -> dict[str, Any]:
        url = self.config.base_url.rstrip("/") + MESSAGES_PATH
        attempt = 0
        while True:
            if self._session is None:
                raise RuntimeError("Client not connected. Call connect() first.")

            error: Exception
            try:
                async with self._session.post(url, json=payload) as response:
                    if response.status == 200:
                        return await response.json()
                    body = await response.text()
                    error = CompletionError(
                        f"Messages API returned {response.status}: {body[:500]}",
                        response.status,
                        body,
                    )
                    retryable = response.status in self.config.retryable_status_codes
            except aiohttp.ClientError as e:
                error = e
                retryable = True

            if not retryable or attempt >= self.config.max_retries:
                raise error

            delay = min(self.config.retry_base_delay * (2**attempt), self.config.retry_max_delay)
            logger.warning(
                "Completion attempt %d/%d failed (%s), retrying in %.1fs",
                attempt + 1,
                self.config.max_retries + 1,
                error,
                delay,
            )
            await asyncio.sleep(delay)
            attempt += 1
