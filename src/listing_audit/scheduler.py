"""Admission-controlled audit scheduler.

One global FIFO lane into the facts source: a single worker task dispatches
one audit at a time, at least ``min_interval`` seconds after the previous
dispatch started, and callers are turned away once too much work is queued.
All state lives on one asyncio event loop.
"""

from __future__ import annotations

import asyncio
import logging
import os
import time
from collections import deque
from datetime import datetime, timezone
from typing import Awaitable, Callable, Optional

from .core.errors import AuditError
from .core.models import AuditRequest, ErrorCode, ExtractedFacts, QueueStats
from .core.retry import classify_exception

logger = logging.getLogger(__name__)

DEFAULT_MIN_INTERVAL_SECONDS = 12
DEFAULT_MAX_QUEUE_DEPTH = 20
DEFAULT_TASK_TIMEOUT_SECONDS = 45
DEFAULT_RETRY_AFTER_SECONDS = 120

RunTask = Callable[[AuditRequest], Awaitable[ExtractedFacts]]


def _env_number(name: str, default: float) -> float:
    return float(os.environ.get(name, str(default)))


class AuditScheduler:
    """Serializes calls to ``run_task`` with spacing, backpressure and a per-task timeout."""

    def __init__(
        self,
        run_task: RunTask,
        min_interval: Optional[float] = None,
        max_depth: Optional[int] = None,
        task_timeout: Optional[float] = None,
        retry_after_seconds: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self._run_task = run_task
        self._min_interval = min_interval if min_interval is not None else _env_number(
            "AUDIT_MIN_INTERVAL_SECONDS", DEFAULT_MIN_INTERVAL_SECONDS,
        )
        self._max_depth = max_depth if max_depth is not None else int(_env_number(
            "AUDIT_MAX_QUEUE_DEPTH", DEFAULT_MAX_QUEUE_DEPTH,
        ))
        self._task_timeout = task_timeout if task_timeout is not None else _env_number(
            "AUDIT_TASK_TIMEOUT_SECONDS", DEFAULT_TASK_TIMEOUT_SECONDS,
        )
        self._retry_after = retry_after_seconds if retry_after_seconds is not None else int(_env_number(
            "AUDIT_RETRY_AFTER_SECONDS", DEFAULT_RETRY_AFTER_SECONDS,
        ))
        self._clock = clock

        self._pending: deque[tuple[AuditRequest, asyncio.Future]] = deque()
        self._wakeup = asyncio.Event()
        self._task: asyncio.Task | None = None
        self._running = False
        self._in_flight = False
        self._last_dispatch_started: Optional[float] = None
        self._last_dispatch_time: Optional[datetime] = None
        self._total_processed = 0
        self._total_failed = 0

    @property
    def retry_after_seconds(self) -> int:
        return self._retry_after

    @property
    def running(self) -> bool:
        return self._running

    async def start(self):
        """Start the dispatch worker."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.create_task(self._run_loop())
        logger.info(
            "Audit scheduler started (interval: %.1fs, max depth: %d, timeout: %.1fs)",
            self._min_interval, self._max_depth, self._task_timeout,
        )

    async def stop(self):
        """Stop the worker and fail whatever is still queued."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
            self._task = None

        while self._pending:
            _, future = self._pending.popleft()
            if not future.done():
                future.set_exception(AuditError(
                    ErrorCode.EXTRACTION_FAILED,
                    "Audit scheduler stopped before the request was processed",
                    retry_after_seconds=self._retry_after,
                ))
        logger.info("Audit scheduler stopped")

    def submit(self, request: AuditRequest) -> asyncio.Future:
        """Queue ``request`` and return a future for its facts.

        Raises:
            AuditError: MISSING_FIELDS for a request without identity, or
                QUEUE_FULL when the lane is saturated. EXTRACTION_FAILED before
                ``start`` or after ``stop``. Nothing is queued on error.
        """
        if not request.has_identity:
            raise AuditError(
                ErrorCode.MISSING_FIELDS,
                "Please provide either a listing URL or both business name and area",
            )

        if not self._running:
            logger.warning("Scheduler is not running, rejecting %s", request.describe())
            raise AuditError(
                ErrorCode.EXTRACTION_FAILED,
                "Audit scheduler is not running",
                retry_after_seconds=self._retry_after,
            )

        depth = len(self._pending) + (1 if self._in_flight else 0)
        if depth > self._max_depth:
            logger.warning("Queue full (%d pending), rejecting %s", depth, request.describe())
            raise AuditError(
                ErrorCode.QUEUE_FULL,
                "Too many audits in progress. Please try again in a few minutes.",
                retry_after_seconds=self._retry_after,
            )

        future = asyncio.get_running_loop().create_future()
        self._pending.append((request, future))
        self._wakeup.set()
        logger.info("Queued audit for %s (queue size: %d)", request.describe(), depth + 1)
        return future

    def stats(self) -> QueueStats:
        return QueueStats(
            queue_depth=len(self._pending),
            in_flight=self._in_flight,
            total_processed=self._total_processed,
            total_failed=self._total_failed,
            last_dispatch_time=self._last_dispatch_time,
        )

    async def _run_loop(self):
        """Worker loop: wait for work, respect spacing, dispatch one task."""
        while self._running:
            while not self._pending:
                self._wakeup.clear()
                await self._wakeup.wait()

            await self._wait_for_slot()
            request, future = self._pending.popleft()
            await self._dispatch(request, future)

    async def _wait_for_slot(self):
        if self._last_dispatch_started is None:
            return
        remaining = self._last_dispatch_started + self._min_interval - self._clock()
        if remaining > 0:
            logger.debug("Waiting %.2fs before next dispatch", remaining)
            await asyncio.sleep(remaining)

    async def _dispatch(self, request: AuditRequest, future: asyncio.Future):
        self._in_flight = True
        self._last_dispatch_started = self._clock()
        self._last_dispatch_time = datetime.now(timezone.utc)
        logger.info("Dispatching audit for %s", request.describe())

        call = asyncio.create_task(self._run_task(request))
        try:
            done, _ = await asyncio.wait({call}, timeout=self._task_timeout)
            if call in done and call.cancelled():
                self._resolve(future, error=AuditError(
                    ErrorCode.EXTRACTION_FAILED,
                    "Audit was cancelled by the extractor",
                    retry_after_seconds=self._retry_after,
                ))
            elif call in done:
                exc = call.exception()
                if exc is None:
                    self._resolve(future, result=call.result())
                else:
                    error = classify_exception(exc)
                    if not isinstance(exc, AuditError):
                        logger.error("Unexpected failure auditing %s", request.describe(), exc_info=exc)
                    self._resolve(future, error=error)
            else:
                call.cancel()
                call.add_done_callback(_consume_abandoned)
                logger.warning("Audit for %s exceeded %.1fs, abandoning it", request.describe(), self._task_timeout)
                self._resolve(future, error=AuditError(
                    ErrorCode.TASK_TIMEOUT,
                    f"Audit did not complete within {self._task_timeout:.0f} seconds",
                    retry_after_seconds=self._retry_after,
                ))
        except asyncio.CancelledError:
            call.cancel()
            if not future.done():
                future.set_exception(AuditError(
                    ErrorCode.EXTRACTION_FAILED,
                    "Audit scheduler stopped while the request was running",
                    retry_after_seconds=self._retry_after,
                ))
            raise
        finally:
            self._in_flight = False
            self._total_processed += 1

    def _resolve(self, future: asyncio.Future, result: Optional[ExtractedFacts] = None, error: Optional[AuditError] = None):
        if error is not None:
            self._total_failed += 1
            if not future.done():
                future.set_exception(error)
            logger.info("Audit failed: %s", error.code.value)
        elif not future.done():
            future.set_result(result)


def _consume_abandoned(task: asyncio.Task):
    """Retrieve the outcome of an abandoned call so it is not reported as unhandled."""
    if not task.cancelled():
        task.exception()
