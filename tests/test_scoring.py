"""Tests for the listing scoring engine."""

import itertools

import pytest

from listing_audit.core.models import RawFacts, Tier
from listing_audit.core.scoring import (
    Recency,
    classify_recency,
    hours_published,
    score_listing,
    score_primary_listing,
    score_secondary_directory,
    score_website,
    status_for,
)

from .conftest import FAVORABLE_FACTS


class TestClassifyRecency:
    """Tests for the relative-age classifier."""

    @pytest.mark.parametrize("label", [
        "a second ago",
        "30 seconds ago",
        "5 minutes ago",
        "an hour ago",
        "3 days ago",
        "a week ago",
        "3 weeks ago",
        "a month ago",
        "1 month ago",
        "Edited 2 days ago",
        "  4 DAYS   ago ",
        "yesterday",
        "Today",
        "just now",
        "a few seconds ago",
        "3 days ago on Google",
        "Reviewed a week ago",
    ])
    def test_recent_labels(self, label):
        assert classify_recency(label) is Recency.RECENT

    @pytest.mark.parametrize("label", [
        "2 months ago",
        "11 months ago",
        "a year ago",
        "3 years ago",
        "a few months ago",
        "2 months ago on Google",
    ])
    def test_stale_labels(self, label):
        assert classify_recency(label) is Recency.STALE

    @pytest.mark.parametrize("label", [None, "", "   ", "2024-01-01", "recently", "sometime ago"])
    def test_unknown_labels(self, label):
        assert classify_recency(label) is Recency.UNKNOWN


class TestPrimaryListing:
    """Tests for the primary listing category."""

    def test_all_rules_met(self):
        category = score_primary_listing(RawFacts(**FAVORABLE_FACTS))

        assert category.earned == 80
        assert category.max_score == 80
        assert len(category.lines) == 7
        assert all(line.tier is Tier.SUCCESS for line in category.lines)

    def test_unclaimed_is_danger(self):
        category = score_primary_listing(RawFacts(is_claimed=False))

        assert category.lines[0].tier is Tier.DANGER
        assert "unclaimed" in category.lines[0].text

    def test_partial_contact_keeps_points(self):
        category = score_primary_listing(RawFacts(phone="123"))

        assert category.earned == 5
        assert category.lines[-1].tier is Tier.WARNING
        assert "+5" in category.lines[-1].text

    def test_rating_threshold(self):
        assert score_primary_listing(RawFacts(rating=4.0)).earned == 10
        assert score_primary_listing(RawFacts(rating=3.9)).earned == 0

    def test_stale_review_earns_nothing(self):
        category = score_primary_listing(RawFacts(latest_review_age="2 months ago"))

        assert category.earned == 0
        assert category.lines[1].tier is Tier.WARNING

    def test_one_line_per_rule_even_when_absent(self):
        category = score_primary_listing(RawFacts())

        assert category.earned == 0
        assert len(category.lines) == 7
        assert all(line.tier is not Tier.SUCCESS for line in category.lines)


class TestHoursPublished:
    """Tests for the published hours rule."""

    def test_flag_wins_over_text(self):
        assert hours_published(RawFacts(hours_missing=False)) is True
        assert hours_published(RawFacts(hours="9-5", hours_missing=True)) is False

    def test_text_used_when_flag_unknown(self):
        assert hours_published(RawFacts(hours="Mon-Fri 9-5")) is True
        assert hours_published(RawFacts(hours="  ")) is False
        assert hours_published(RawFacts()) is False


class TestAllOrNothingCategories:
    """Tests for the secondary directory and website categories."""

    def test_secondary_listing(self):
        assert score_secondary_directory(RawFacts(secondary_listing=True)).earned == 10
        missing = score_secondary_directory(RawFacts())
        assert missing.earned == 0
        assert missing.lines[0].tier is Tier.DANGER

    def test_website_must_be_non_trivial(self):
        assert score_website(RawFacts(website="http://x.com")).earned == 10
        assert score_website(RawFacts(website="x.io")).earned == 0
        assert score_website(RawFacts(website="       ")).earned == 0
        assert score_website(RawFacts()).earned == 0


class TestScoreListing:
    """Tests for the full breakdown."""

    def test_favorable_facts_score_100(self):
        breakdown = score_listing(RawFacts(**FAVORABLE_FACTS))

        assert breakdown.total_score == 100
        assert breakdown.status_tier is Tier.SUCCESS

    def test_absent_facts_score_0(self):
        breakdown = score_listing(RawFacts())

        assert breakdown.total_score == 0
        assert breakdown.status_tier is Tier.DANGER

    def test_worked_example(self):
        """camelCase extractor payload scores 70 + 10 + 10."""
        facts = RawFacts.model_validate({
            "isClaimed": True,
            "rating": 4.2,
            "latestReviewAge": "3 days ago",
            "ownerResponseCount": 1,
            "hasOwnerPhotos": False,
            "hoursMissing": False,
            "phone": "123",
            "address": "Main St",
            "secondaryListing": True,
            "website": "http://x.com",
        })

        breakdown = score_listing(facts)

        earned = {c.name: c.earned for c in breakdown.categories}
        assert earned == {"Primary listing": 70, "Secondary directory": 10, "Website": 10}
        assert breakdown.total_score == 90
        assert breakdown.status_tier is Tier.SUCCESS

    def test_deterministic(self):
        facts = RawFacts(is_claimed=True, rating=3.5, website="https://example.com")

        assert score_listing(facts).model_dump_json() == score_listing(facts).model_dump_json()

    def test_total_always_in_bounds(self):
        options = [
            {"is_claimed": None}, {"is_claimed": True},
            {"rating": None}, {"rating": 5.0}, {"rating": -3.0},
            {"owner_response_count": None}, {"owner_response_count": 9},
            {"secondary_listing": True}, {"website": "https://a-very-long-site.example.com"},
        ]
        for combo in itertools.combinations(options, 4):
            merged = {}
            for part in combo:
                merged.update(part)
            breakdown = score_listing(RawFacts(**merged))
            assert 0 <= breakdown.total_score <= 100
            assert breakdown.total_score == sum(c.earned for c in breakdown.categories)

    @pytest.mark.parametrize("total,tier", [
        (100, Tier.SUCCESS),
        (80, Tier.SUCCESS),
        (79, Tier.WARNING),
        (50, Tier.WARNING),
        (49, Tier.DANGER),
        (0, Tier.DANGER),
    ])
    def test_status_tiers(self, total, tier):
        assert status_for(total) is tier
