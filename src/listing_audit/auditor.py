"""Audit orchestration: cache, scheduler, scoring and the response payloads.

Flow: cache lookup (hit returns immediately) -> scheduler -> retry ->
extractor -> scoring -> cache store -> payload.
"""

from __future__ import annotations

import logging
import time
from typing import Optional

from .cache import ResultCache, cache_key
from .core.errors import AuditError
from .core.models import AuditRequest, ErrorCode, ExtractedFacts, ScoreBreakdown
from .core.scoring import score_listing
from .scheduler import AuditScheduler

logger = logging.getLogger(__name__)

HIGH_LOAD_CODES = frozenset({
    ErrorCode.QUEUE_FULL,
    ErrorCode.EXTRACTION_TIMEOUT,
    ErrorCode.EXTRACTION_FAILED,
    ErrorCode.TASK_TIMEOUT,
})


def _high_load_message(retry_after: int) -> str:
    minutes = max(1, round(retry_after / 60))
    unit = "minute" if minutes == 1 else "minutes"
    return f"Traffic is high right now. Please try again in {minutes} {unit} ({retry_after} seconds)."


class AuditService:
    """Runs audits and reports the scheduler's state."""

    def __init__(self, scheduler: AuditScheduler, cache: ResultCache):
        self._scheduler = scheduler
        self._cache = cache

    async def run_audit(self, request: AuditRequest) -> dict:
        """Audit one business. Always returns a payload; failures never raise."""
        if not request.has_identity:
            return self.error_payload(AuditError(
                ErrorCode.MISSING_FIELDS,
                "Please provide either a listing URL or both business name and area",
            ))

        started = time.monotonic()
        key = cache_key(request)

        entry = await self._cache.lookup(key)
        if entry is not None:
            logger.info("Returning cached audit for %s", request.describe())
            return self._success_payload(
                request,
                entry.breakdown,
                captured_at=entry.captured_at.isoformat(),
                cached=True,
                started=started,
                display_name=entry.display_name,
                listing_url=entry.listing_url,
            )

        try:
            future = self._scheduler.submit(request)
            extracted: ExtractedFacts = await future
        except AuditError as exc:
            logger.info("Audit for %s failed: %s", request.describe(), exc.code.value)
            return self.error_payload(exc)

        breakdown = score_listing(extracted.facts)
        await self._cache.store(
            key,
            breakdown,
            extracted.facts,
            display_name=extracted.display_name,
            listing_url=extracted.listing_url,
        )

        payload = self._success_payload(
            request,
            breakdown,
            captured_at=extracted.captured_at.isoformat(),
            cached=False,
            started=started,
            display_name=extracted.display_name,
            listing_url=extracted.listing_url,
        )
        logger.info(
            "Audit for %s completed in %dms - score %d",
            request.describe(), payload["processing_time_ms"], breakdown.total_score,
        )
        return payload

    def queue_status(self) -> dict:
        return self._scheduler.stats().model_dump(mode="json")

    def error_payload(self, error: AuditError) -> dict:
        """Map a classified error onto what callers see."""
        if error.code in HIGH_LOAD_CODES:
            retry_after = error.retry_after_seconds or self._scheduler.retry_after_seconds
            code = ErrorCode.QUEUE_FULL if error.code is ErrorCode.QUEUE_FULL else ErrorCode.EXTRACTION_FAILED
            return {
                "success": False,
                "error_code": code.value,
                "message": _high_load_message(retry_after),
                "retry_after_seconds": retry_after,
            }
        return {
            "success": False,
            "error_code": error.code.value,
            "message": error.message,
        }

    def _success_payload(
        self,
        request: AuditRequest,
        breakdown: ScoreBreakdown,
        *,
        captured_at: str,
        cached: bool,
        started: float,
        display_name: Optional[str] = None,
        listing_url: Optional[str] = None,
    ) -> dict:
        payload = {
            "success": True,
            "cached": cached,
            "business_name": display_name or request.subject_name.strip() or None,
            "area": request.area.strip() or None,
            "listing_url": listing_url or request.resource_ref,
            "captured_at": captured_at,
            "processing_time_ms": int((time.monotonic() - started) * 1000),
        }
        payload.update(breakdown.model_dump(mode="json"))
        return payload
