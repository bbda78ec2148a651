"""Listing health scoring engine.

Maps extracted listing facts to a 0-100 score with one explanatory line per rule.
Positive reinforcement only: unmet rules earn 0 points and never subtract.

Weights:
    Primary listing       80
    Secondary directory   10
    Website               10
"""

from __future__ import annotations

import re
from enum import Enum
from typing import Optional

from .models import CategoryScore, RawFacts, ScoreBreakdown, ScoreLine, Tier

PRIMARY_MAX = 80
SECONDARY_MAX = 10
WEBSITE_MAX = 10

MIN_GOOD_RATING = 4.0
MIN_WEBSITE_LENGTH = 6

SUCCESS_THRESHOLD = 80
WARNING_THRESHOLD = 50

STATUS_MESSAGES = {
    Tier.SUCCESS: "Market leader. The listing is hard to beat.",
    Tier.WARNING: "Vulnerable. The listing needs optimization.",
    Tier.DANGER: "Critical condition. Customers searching online are being missed.",
}


class Recency(str, Enum):
    """How fresh the latest review is."""

    RECENT = "recent"
    STALE = "stale"
    UNKNOWN = "unknown"


class AgeUnit(str, Enum):
    SECOND = "second"
    MINUTE = "minute"
    HOUR = "hour"
    DAY = "day"
    WEEK = "week"
    MONTH = "month"
    YEAR = "year"


# Units where any quantity is within the ~30 day window.
RECENT_UNITS = frozenset({AgeUnit.SECOND, AgeUnit.MINUTE, AgeUnit.HOUR, AgeUnit.DAY, AgeUnit.WEEK})

# Labels without a number that all fall inside the window.
RECENT_PHRASES = ("just now", "moments ago", "a moment ago", "today", "yesterday", "this week", "last week")

# Quantity words and how many units they stand for.
QUANTITY_WORDS = {"a": 1, "an": 1, "one": 1, "a few": 3, "few": 3, "several": 3}

_AGE_PATTERN = re.compile(
    r"\b(?P<quantity>a few|few|several|an|a|one|\d+)\s+"
    r"(?P<unit>second|minute|hour|day|week|month|year)s?\s+ago\b"
)
_PHRASE_PATTERN = re.compile(r"\b(?:" + "|".join(re.escape(p) for p in RECENT_PHRASES) + r")\b")


def classify_recency(label: Optional[str]) -> Recency:
    """Bucket a relative-age label such as '3 days ago', 'yesterday' or 'a month ago'.

    Seconds through weeks, the enumerated day-level phrases and exactly one
    month are recent. Several months or any number of years are stale.
    Surrounding text ("Edited 2 days ago on Google") is ignored. Anything
    unparseable is unknown.
    """
    if not label:
        return Recency.UNKNOWN

    normalized = " ".join(label.lower().split())
    match = _AGE_PATTERN.search(normalized)
    if match is None:
        if _PHRASE_PATTERN.search(normalized):
            return Recency.RECENT
        return Recency.UNKNOWN

    unit = AgeUnit(match.group("unit"))
    quantity_text = match.group("quantity")
    quantity = QUANTITY_WORDS.get(quantity_text) or int(quantity_text)

    if unit in RECENT_UNITS:
        return Recency.RECENT
    if unit is AgeUnit.MONTH and quantity <= 1:
        return Recency.RECENT
    return Recency.STALE


def hours_published(facts: RawFacts) -> bool:
    """Hours count as published unless the extractor flagged them missing."""
    if facts.hours_missing is not None:
        return not facts.hours_missing
    return bool(facts.hours and facts.hours.strip())


def score_primary_listing(facts: RawFacts) -> CategoryScore:
    """Score the primary map listing (max 80)."""
    earned = 0
    lines: list[ScoreLine] = []

    if facts.is_claimed:
        earned += 20
        lines.append(ScoreLine(tier=Tier.SUCCESS, text="Business is claimed (+20)"))
    else:
        lines.append(ScoreLine(tier=Tier.DANGER, text="Business is unclaimed. Anyone can suggest edits to it (0)"))

    if classify_recency(facts.latest_review_age) is Recency.RECENT:
        earned += 10
        lines.append(ScoreLine(tier=Tier.SUCCESS, text="Recent reviews found (+10)"))
    else:
        lines.append(ScoreLine(tier=Tier.WARNING, text="No reviews in the last month (0)"))

    if facts.owner_response_count and facts.owner_response_count > 0:
        earned += 10
        lines.append(ScoreLine(tier=Tier.SUCCESS, text="Owner replies to reviews (+10)"))
    else:
        lines.append(ScoreLine(tier=Tier.WARNING, text="No owner replies to the latest reviews (0)"))

    if facts.has_owner_photos:
        earned += 10
        lines.append(ScoreLine(tier=Tier.SUCCESS, text="Owner-uploaded photos present (+10)"))
    else:
        lines.append(ScoreLine(tier=Tier.WARNING, text="No photos uploaded by the owner (0)"))

    if hours_published(facts):
        earned += 10
        lines.append(ScoreLine(tier=Tier.SUCCESS, text="Operating hours published (+10)"))
    else:
        lines.append(ScoreLine(tier=Tier.DANGER, text="Operating hours missing (0)"))

    rating = facts.rating or 0.0
    if rating >= MIN_GOOD_RATING:
        earned += 10
        lines.append(ScoreLine(tier=Tier.SUCCESS, text=f"Good rating ({rating:.1f}) (+10)"))
    else:
        lines.append(ScoreLine(tier=Tier.DANGER, text=f"Rating below {MIN_GOOD_RATING:.1f} ({rating:.1f}) (0)"))

    contact = 0
    if facts.phone and facts.phone.strip():
        contact += 5
    if facts.address and facts.address.strip():
        contact += 5
    earned += contact
    if contact == 10:
        lines.append(ScoreLine(tier=Tier.SUCCESS, text="Complete contact info, phone and address (+10)"))
    else:
        lines.append(ScoreLine(tier=Tier.WARNING, text=f"Incomplete contact info (+{contact})"))

    return CategoryScore(
        name="Primary listing",
        earned=min(earned, PRIMARY_MAX),
        max_score=PRIMARY_MAX,
        lines=lines,
    )


def score_secondary_directory(facts: RawFacts) -> CategoryScore:
    """All-or-nothing presence on the secondary directory (max 10)."""
    if facts.secondary_listing:
        line = ScoreLine(tier=Tier.SUCCESS, text="Listed on the secondary directory (+10)")
        earned = SECONDARY_MAX
    else:
        line = ScoreLine(tier=Tier.DANGER, text="Not found on the secondary directory (0)")
        earned = 0
    return CategoryScore(name="Secondary directory", earned=earned, max_score=SECONDARY_MAX, lines=[line])


def score_website(facts: RawFacts) -> CategoryScore:
    """All-or-nothing website presence (max 10)."""
    website = (facts.website or "").strip()
    if len(website) >= MIN_WEBSITE_LENGTH:
        line = ScoreLine(tier=Tier.SUCCESS, text="Website link present (+10)")
        earned = WEBSITE_MAX
    else:
        line = ScoreLine(tier=Tier.DANGER, text="No website link (0)")
        earned = 0
    return CategoryScore(name="Website", earned=earned, max_score=WEBSITE_MAX, lines=[line])


def status_for(total_score: int) -> Tier:
    if total_score >= SUCCESS_THRESHOLD:
        return Tier.SUCCESS
    if total_score >= WARNING_THRESHOLD:
        return Tier.WARNING
    return Tier.DANGER


def score_listing(facts: RawFacts) -> ScoreBreakdown:
    """Compute the full breakdown. Same facts in, same breakdown out."""
    categories = [
        score_primary_listing(facts),
        score_secondary_directory(facts),
        score_website(facts),
    ]
    total = sum(c.earned for c in categories)
    tier = status_for(total)

    return ScoreBreakdown(
        total_score=total,
        categories=categories,
        status_tier=tier,
        status_message=STATUS_MESSAGES[tier],
    )
