"""Tests for data models."""

from dataclasses import FrozenInstanceError
from datetime import UTC, datetime
from types import SimpleNamespace

import pytest

from pain_ingest.data import (
    Comment,
    DiscussionVelocity,
    FilterMetrics,
    ItemKind,
    Post,
    ProgressEvent,
    RawItem,
    RelevanceTier,
    response_text,
    usage_from_response,
)

# -- Archive items --


def test_post_minimal() -> None:
    post = Post(id="abc")
    assert post.kind is ItemKind.POST
    assert post.title == ""
    assert post.created_utc is None


def test_community_is_lowercased() -> None:
    post = Post(id="abc", community="  Freelance ")
    assert post.community == "freelance"


def test_text_joins_title_and_body() -> None:
    post = Post(id="abc", title="Late invoices", body="Clients never pay on time")
    assert post.text == "Late invoices Clients never pay on time"
    assert Comment(id="c1", body="Same here").text == "Same here"


def test_post_link_from_relative_permalink() -> None:
    post = Post(id="abc", community="saas", permalink="/r/saas/comments/abc/late/")
    assert post.link == "https://reddit.com/r/saas/comments/abc/late/"


def test_post_link_without_permalink() -> None:
    post = Post(id="abc", community="SaaS")
    assert post.link == "https://reddit.com/r/saas/comments/abc"


def test_comment_link_and_post_id() -> None:
    comment = Comment(id="c1", community="freelance", link_id="t3_abc")
    assert comment.kind is ItemKind.COMMENT
    assert comment.post_id == "abc"
    assert comment.link == "https://reddit.com/r/freelance/comments/abc/_/c1"


def test_absolute_permalink_kept() -> None:
    comment = Comment(id="c1", permalink="https://old.reddit.com/r/x/comments/a/_/c1")
    assert comment.link == "https://old.reddit.com/r/x/comments/a/_/c1"


def test_created_utc() -> None:
    post = Post(id="abc", created_at=datetime(2025, 1, 1, tzinfo=UTC))
    assert post.created_utc == 1735689600


def test_post_is_frozen() -> None:
    post = Post(id="abc")
    with pytest.raises(FrozenInstanceError):
        post.title = "changed"  # type: ignore[misc]


def test_tier_values_match_oracle_tokens() -> None:
    assert [t.value for t in RelevanceTier] == ["CORE", "RELATED", "REJECTED"]


# -- FilterMetrics --


def test_filter_metrics_rate() -> None:
    metrics = FilterMetrics(before=110, after=50, filtered_out=60)
    assert metrics.filter_rate == pytest.approx(54.545, abs=1e-3)


def test_filter_metrics_empty_rate() -> None:
    assert FilterMetrics().filter_rate == 0.0


def test_filter_metrics_must_balance() -> None:
    with pytest.raises(ValueError, match="Inconsistent filter metrics"):
        FilterMetrics(before=10, after=5, filtered_out=4)


# -- Misc --


def test_progress_event_defaults() -> None:
    event = ProgressEvent(step="fetching", message="Fetching posts")
    assert event.type == "progress"
    assert event.data is None
    assert event.timestamp.tzinfo is not None


def test_velocity_insufficient_data() -> None:
    assert DiscussionVelocity(recent_count=1, previous_count=0).insufficient_data
    assert not DiscussionVelocity(
        recent_count=10, previous_count=5, percentage_change=100
    ).insufficient_data


def test_response_helpers() -> None:
    response = SimpleNamespace(
        content=[SimpleNamespace(text="C\n"), SimpleNamespace(type="tool_use"), SimpleNamespace(text="R")],
        usage=SimpleNamespace(
            input_tokens=100,
            output_tokens=4,
            cache_creation_input_tokens=None,
            cache_read_input_tokens=20,
        ),
    )

    assert response_text(response) == "C\nR"
    usage = usage_from_response("claude-haiku-4-5", response)
    assert usage.api_calls[0].model == "claude-haiku-4-5"
    assert usage.input_tokens == 100
    assert usage.cache_creation_input_tokens == 0
    assert usage.cache_read_input_tokens == 20


def test_base_item_has_no_kind() -> None:
    item = RawItem(id="x", body="text")
    with pytest.raises(NotImplementedError, match="RawItem"):
        _ = item.kind
    assert Post(id="p").kind is ItemKind.POST
