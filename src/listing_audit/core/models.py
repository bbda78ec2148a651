"""Pydantic data models: the shared business objects.

The scheduler, retry layer, cache, scoring engine and MCP tools all pass
these models between each other.
"""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class Tier(str, Enum):
    """Severity of a score line or of the overall audit."""

    SUCCESS = "success"
    WARNING = "warning"
    DANGER = "danger"


class ErrorCode(str, Enum):
    """Classified failure codes, from caller input down to the extractor."""

    MISSING_FIELDS = "MISSING_FIELDS"
    QUEUE_FULL = "QUEUE_FULL"
    SUBJECT_NOT_FOUND = "SUBJECT_NOT_FOUND"
    EXTRACTION_TIMEOUT = "EXTRACTION_TIMEOUT"
    EXTRACTION_FAILED = "EXTRACTION_FAILED"
    TASK_TIMEOUT = "TASK_TIMEOUT"


class AuditRequest(BaseModel):
    """Identity of the business to audit. Immutable once submitted."""

    model_config = ConfigDict(frozen=True)

    subject_name: str = ""
    area: str = ""
    resource_ref: Optional[str] = Field(None, description="Direct listing URL; bypasses name/area search")

    @property
    def has_identity(self) -> bool:
        if self.resource_ref and self.resource_ref.strip():
            return True
        return bool(self.subject_name.strip() and self.area.strip())

    def describe(self) -> str:
        if self.subject_name.strip() and self.area.strip():
            return f"{self.subject_name.strip()} in {self.area.strip()}"
        return self.resource_ref or "<empty request>"


class RawFacts(BaseModel):
    """Observable attributes of a listing. Every field may be absent.

    Extractor payloads use camelCase keys (``isClaimed``, ``latestReviewAge``);
    both spellings are accepted.
    """

    model_config = ConfigDict(frozen=True, alias_generator=to_camel, populate_by_name=True)

    is_claimed: Optional[bool] = None
    rating: Optional[float] = None
    review_count: Optional[int] = None
    latest_review_age: Optional[str] = Field(None, description="Relative age label, e.g. '3 days ago'")
    owner_response_count: Optional[int] = Field(None, description="Owner replies among the last 5 reviews")
    has_owner_photos: Optional[bool] = None
    hours: Optional[str] = None
    hours_missing: Optional[bool] = None
    phone: Optional[str] = None
    address: Optional[str] = None
    secondary_listing: Optional[bool] = Field(None, description="Listed on the secondary directory")
    website: Optional[str] = None


class ExtractedFacts(BaseModel):
    """A successful extraction: the facts plus when they were captured."""

    facts: RawFacts
    captured_at: datetime
    display_name: Optional[str] = None
    listing_url: Optional[str] = None


class ScoreLine(BaseModel):
    """One explanatory line produced by one scoring rule."""

    model_config = ConfigDict(frozen=True)

    tier: Tier
    text: str


class CategoryScore(BaseModel):
    """Points earned within one weighted category."""

    model_config = ConfigDict(frozen=True)

    name: str
    earned: int = Field(ge=0)
    max_score: int = Field(ge=0)
    lines: list[ScoreLine] = Field(default_factory=list)


class ScoreBreakdown(BaseModel):
    """Deterministic score derived from RawFacts. Carries no identity or timestamp."""

    model_config = ConfigDict(frozen=True)

    total_score: int = Field(ge=0, le=100)
    max_score: int = 100
    categories: list[CategoryScore]
    status_tier: Tier
    status_message: str


class CacheEntry(BaseModel):
    """A previously completed audit held by the result cache."""

    key: str
    breakdown: ScoreBreakdown
    facts: RawFacts
    captured_at: datetime
    display_name: Optional[str] = None
    listing_url: Optional[str] = None


class QueueStats(BaseModel):
    """Point-in-time snapshot of the scheduler."""

    queue_depth: int
    in_flight: bool
    total_processed: int
    total_failed: int
    last_dispatch_time: Optional[datetime] = None
