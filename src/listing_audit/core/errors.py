"""Classified audit failures."""

from __future__ import annotations

from typing import Optional

from .models import ErrorCode

TERMINAL_CODES = frozenset({ErrorCode.SUBJECT_NOT_FOUND})


class AuditError(Exception):
    """A failure with a code the pipeline knows how to report.

    ``attempts`` is set by the retry layer once it gives up; ``retry_after_seconds``
    is the hint shown to callers for admission and transient failures.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str = "",
        *,
        attempts: int = 0,
        retry_after_seconds: Optional[int] = None,
    ):
        super().__init__(message or code.value)
        self.code = code
        self.message = message or code.value
        self.attempts = attempts
        self.retry_after_seconds = retry_after_seconds

    @property
    def terminal(self) -> bool:
        return self.code in TERMINAL_CODES

    def __repr__(self) -> str:
        return f"AuditError({self.code.value}, {self.message!r}, attempts={self.attempts})"
