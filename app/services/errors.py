"""Typed exception hierarchy for catalog access.

FetchError (base)
├── UpstreamHttpError        non-2xx response other than 429, retried
└── RetriesExhaustedError    every attempt was spent without a response
NotFoundError                domain lookup without a candidate, never retried
CatalogQueryError            failure surfaced to the HTTP boundary

Network failures are retried and then re-raised as the underlying
``httpx.HTTPError``.
"""

from __future__ import annotations


class FetchError(Exception):
    """Base class for failures raised by the retry fetcher."""


class UpstreamHttpError(FetchError):
    """Upstream answered with an unsuccessful HTTP status."""

    def __init__(self, status_code: int, message: str):
        super().__init__(message)
        self.status_code = status_code
        self.message = message


class RetriesExhaustedError(FetchError):
    """All retry attempts were consumed without a successful response."""

    def __init__(self, attempts: int):
        super().__init__(f"All {attempts} attempts failed")
        self.attempts = attempts


class NotFoundError(Exception):
    """A domain lookup produced no candidate."""


class CatalogQueryError(Exception):
    """A catalog operation failed; the message names the operation."""

    def __init__(self, operation: str, reason: BaseException | str):
        self.operation = operation
        self.reason = str(reason)
        super().__init__(f"{operation} failed: {self.reason}")
