"""Tests for keyword-based pain scoring."""

from datetime import UTC, datetime, timedelta

import pytest

from pain_ingest.aggregator import (
    calculate_engagement_score,
    calculate_pain_score,
    get_engagement_multiplier,
    get_intensity,
    get_recency_multiplier,
    has_negative_context,
    match_keyword,
)
from pain_ingest.data import Intensity, WTPConfidence

NOW = datetime(2025, 6, 1, tzinfo=UTC)


def test_match_keyword_uses_word_boundaries_for_single_words() -> None:
    assert match_keyword("this is hard to do", "hard")
    assert not match_keyword("i hardly use it", "hard")
    assert match_keyword("i am so fed up with this", "fed up")


def test_high_intensity_keywords_score_three_each() -> None:
    result = calculate_pain_score("This invoicing tool is a nightmare and I hate it")

    assert result.score == 6.0
    assert result.high_intensity_count == 2
    assert result.strongest_signal == "nightmare"
    assert "hate" in result.signals


def test_low_intensity_only_is_capped_and_reduced() -> None:
    result = calculate_pain_score("I was wondering about this")

    assert result.low_intensity_count == 1
    assert result.score == 0.0


def test_high_willingness_to_pay_boosts_score() -> None:
    result = calculate_pain_score("Honestly I would pay for this")

    assert result.wtp_confidence is WTPConfidence.HIGH
    assert result.willingness_to_pay_count >= 1
    assert result.score >= 5.0


def test_wtp_exclusion_suppresses_payment_keywords() -> None:
    result = calculate_pain_score("I can't afford another subscription")

    assert result.has_wtp_exclusion
    assert result.wtp_confidence is WTPConfidence.NONE
    assert result.willingness_to_pay_count == 0


def test_negative_context_dampens_score() -> None:
    text = "anyone else frustrated with this"
    assert has_negative_context(text)

    result = calculate_pain_score(text)

    assert result.has_negative_context
    assert result.score == pytest.approx(1.8)


def test_score_is_clamped_to_ten() -> None:
    text = (
        "This is a nightmare, terrible, awful, horrible, the worst, broken and useless. "
        "I'm exhausted and overwhelmed and about to give up."
    )
    assert calculate_pain_score(text, upvotes=10_000).score == 10.0


def test_engagement_multiplier() -> None:
    assert get_engagement_multiplier(0) == 1.0
    assert get_engagement_multiplier(1) == 1.0
    assert get_engagement_multiplier(100) == pytest.approx(1.1)
    assert get_engagement_multiplier(10**10) == 1.2


def test_recency_multiplier_bands() -> None:
    assert get_recency_multiplier(None, NOW) == 1.0
    assert get_recency_multiplier(NOW - timedelta(days=10), NOW) == 1.5
    assert get_recency_multiplier(NOW - timedelta(days=30), NOW) == 1.5
    assert get_recency_multiplier(NOW - timedelta(days=60), NOW) == 1.25
    assert get_recency_multiplier(NOW - timedelta(days=150), NOW) == 1.0
    assert get_recency_multiplier(NOW - timedelta(days=300), NOW) == 0.75
    assert get_recency_multiplier(NOW - timedelta(days=400), NOW) == 0.5


def test_recent_item_scores_higher() -> None:
    text = "Invoicing is a nightmare"
    recent = calculate_pain_score(text, created_at=NOW - timedelta(days=5), now=NOW)
    old = calculate_pain_score(text, created_at=NOW - timedelta(days=500), now=NOW)

    assert recent.score == 4.5
    assert old.score == 1.5


def test_get_intensity_boundaries() -> None:
    assert get_intensity(7.0) is Intensity.HIGH
    assert get_intensity(6.9) is Intensity.MEDIUM
    assert get_intensity(4.0) is Intensity.MEDIUM
    assert get_intensity(3.9) is Intensity.LOW
    assert get_intensity(5.0, high_min=5.0, medium_min=2.0) is Intensity.HIGH


def test_engagement_score() -> None:
    assert calculate_engagement_score(9) == pytest.approx(2.0)
    assert calculate_engagement_score(9, 9) == 5.0
    assert calculate_engagement_score(-5) == 0.0
