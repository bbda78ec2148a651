"""Bounded retry around a single fact extraction.

Only SUBJECT_NOT_FOUND is terminal. Every other failure is retried with a
linear backoff of ``attempt * backoff_base`` seconds.
"""

from __future__ import annotations

import asyncio
import logging
import os
from typing import Awaitable, Callable, Optional, Protocol

import httpx

from .errors import AuditError
from .models import AuditRequest, ErrorCode, ExtractedFacts

logger = logging.getLogger(__name__)

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BACKOFF_BASE_MS = 2000


class FactExtractor(Protocol):
    """Anything that can turn an AuditRequest into facts.

    Implementations clean up their own resources per call and raise
    ``AuditError`` with SUBJECT_NOT_FOUND, EXTRACTION_TIMEOUT or EXTRACTION_FAILED.
    """

    async def extract(self, request: AuditRequest) -> ExtractedFacts: ...


def classify_exception(exc: BaseException) -> AuditError:
    """Turn any extraction exception into a classified AuditError."""
    if isinstance(exc, AuditError):
        return exc
    if isinstance(exc, (asyncio.TimeoutError, httpx.TimeoutException)):
        return AuditError(ErrorCode.EXTRACTION_TIMEOUT, f"Extraction timed out: {exc}")
    return AuditError(ErrorCode.EXTRACTION_FAILED, f"Extraction failed: {exc}")


class RetryOrchestrator:
    """Runs the extractor up to ``max_attempts`` times for transient failures."""

    def __init__(
        self,
        extractor: FactExtractor,
        max_attempts: Optional[int] = None,
        backoff_base: Optional[float] = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ):
        self._extractor = extractor
        self._max_attempts = max(1, max_attempts or int(os.environ.get(
            "AUDIT_MAX_ATTEMPTS",
            str(DEFAULT_MAX_ATTEMPTS),
        )))
        if backoff_base is None:
            backoff_base = int(os.environ.get(
                "AUDIT_BACKOFF_BASE_MS",
                str(DEFAULT_BACKOFF_BASE_MS),
            )) / 1000
        self._backoff_base = backoff_base
        self._sleep = sleep

    @property
    def max_attempts(self) -> int:
        return self._max_attempts

    async def run(self, request: AuditRequest) -> ExtractedFacts:
        """Extract facts for ``request`` or raise the classified failure.

        Raises:
            AuditError: terminal failure on first sight, or the last transient
                failure once attempts are exhausted. ``attempts`` is set either way.
        """
        attempt = 1
        while True:
            logger.info("Extraction attempt %d/%d: %s", attempt, self._max_attempts, request.describe())
            try:
                return await self._extractor.extract(request)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                error = classify_exception(exc)

            error.attempts = attempt
            if error.terminal:
                logger.info("Terminal extraction failure for %s: %s", request.describe(), error.code.value)
                raise error

            logger.warning(
                "Transient extraction failure for %s (attempt %d/%d): %s",
                request.describe(), attempt, self._max_attempts, error.message,
            )
            if attempt >= self._max_attempts:
                raise error

            await self._sleep(attempt * self._backoff_base)
            attempt += 1
