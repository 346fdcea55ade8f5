"""HTTP GET with bounded retries against the remote catalog."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Mapping

import httpx

from .errors import RetriesExhaustedError, UpstreamHttpError

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]

_ERROR_BODY_LIMIT = 100


class RetryFetcher:
    """Retry-aware wrapper around a shared ``httpx.AsyncClient``."""

    def __init__(
        self,
        http_client: httpx.AsyncClient,
        *,
        retries: int = 3,
        base_delay: float = 2.0,
        sleep: SleepFunc = asyncio.sleep,
    ):
        if retries < 1:
            raise ValueError("retries must be at least 1")
        self._client = http_client
        self._retries = retries
        self._base_delay = base_delay
        self._sleep = sleep

    @property
    def retries(self) -> int:
        return self._retries

    def backoff(self, attempt: int) -> float:
        """Delay in seconds before retrying after ``attempt`` (zero based)."""

        return self._base_delay * (attempt + 2)

    async def fetch(
        self, url: str, params: Mapping[str, Any] | None = None
    ) -> httpx.Response:
        """Return the first successful response or raise a terminal error."""

        for attempt in range(self._retries):
            last_attempt = attempt == self._retries - 1
            try:
                response = await self._client.get(url, params=params)
            except httpx.HTTPError as exc:
                logger.warning(
                    "Attempt %s/%s for %s failed: %s",
                    attempt + 1,
                    self._retries,
                    url,
                    exc,
                )
                if last_attempt:
                    raise
                await self._sleep(self.backoff(attempt))
                continue

            if response.status_code == 429:
                delay = self.backoff(attempt)
                logger.warning(
                    "Rate limited on %s, waiting %.1fs before retry %s/%s",
                    url,
                    delay,
                    attempt + 1,
                    self._retries,
                )
                await self._sleep(delay)
                continue

            if not response.is_success:
                error = self._http_error(response)
                logger.warning(
                    "Attempt %s/%s for %s failed: %s",
                    attempt + 1,
                    self._retries,
                    url,
                    error,
                )
                if last_attempt:
                    raise error
                await self._sleep(self.backoff(attempt))
                continue

            return response

        raise RetriesExhaustedError(self._retries)

    @staticmethod
    def _http_error(response: httpx.Response) -> UpstreamHttpError:
        content_type = response.headers.get("content-type")
        if content_type and "application/json" not in content_type:
            text = response.text[:_ERROR_BODY_LIMIT]
            return UpstreamHttpError(
                response.status_code, f"HTTP {response.status_code}: {text}"
            )
        return UpstreamHttpError(
            response.status_code,
            f"HTTP {response.status_code}: {response.reason_phrase}",
        )
