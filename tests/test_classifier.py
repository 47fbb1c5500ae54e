"""Tests for the Claude-based relevance classifier."""

import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from pain_ingest.classifier import ClassificationProgress, ClaudeRelevanceClassifier
from pain_ingest.data import Comment, Post, RelevanceTier, Usage
from pain_ingest.errors import ClassifierUnavailable

# -- Fixtures --


@pytest.fixture
def sample_posts() -> list[Post]:
    return [
        Post(
            id=f"p{i}",
            title=f"Invoicing keeps breaking {i}",
            body="Every month I chase clients for payments by hand.",
            community="freelance",
        )
        for i in range(20)
    ]


def _make_mock_api_response(text: str) -> MagicMock:
    """Create a mock Anthropic API response."""
    text_block = MagicMock()
    text_block.text = text
    text_block.type = "text"

    usage = MagicMock()
    usage.input_tokens = 400
    usage.output_tokens = 20
    usage.cache_creation_input_tokens = 0
    usage.cache_read_input_tokens = 0

    response = MagicMock()
    response.content = [text_block]
    response.usage = usage
    return response


def _classifier(create: AsyncMock, **kwargs: int) -> ClaudeRelevanceClassifier:
    c = ClaudeRelevanceClassifier(api_key="test-key", **kwargs)
    object.__setattr__(c._client.messages, "create", create)
    return c


# -- Tests --


async def test_classify_maps_tokens_to_tiers(sample_posts: list[Post]) -> None:
    tokens = ["C"] * 10 + ["R"] * 5 + ["N"] * 5
    create = AsyncMock(return_value=_make_mock_api_response(json.dumps(tokens)))
    classifier = _classifier(create)

    result = await classifier.classify(sample_posts, "Freelancers struggle to get paid")

    assert [d.item_id for d in result.decisions] == [p.id for p in sample_posts]
    assert result.count(RelevanceTier.CORE) == 10
    assert result.count(RelevanceTier.RELATED) == 5
    assert result.count(RelevanceTier.REJECTED) == 5
    assert result.parse_failures == 0
    assert result.fallback_count == 0


async def test_prose_response_includes_batch_as_core(sample_posts: list[Post]) -> None:
    create = AsyncMock(
        return_value=_make_mock_api_response("I think most of these are relevant.")
    )
    classifier = _classifier(create)

    result = await classifier.classify(sample_posts, "Freelancers struggle to get paid")

    assert len(result.decisions) == 20
    assert all(d.tier is RelevanceTier.CORE for d in result.decisions)
    assert result.fallback_count == 20
    assert result.parse_failures == 1


async def test_classify_tracks_usage(sample_posts: list[Post]) -> None:
    create = AsyncMock(return_value=_make_mock_api_response('["C"]'))
    classifier = _classifier(create, batch_size=10)

    result = await classifier.classify(sample_posts, "hypothesis")

    assert isinstance(result.usage, Usage)
    assert len(result.usage.api_calls) == 2
    assert result.usage.input_tokens == 800


async def test_classify_batches_by_size(sample_posts: list[Post]) -> None:
    create = AsyncMock(return_value=_make_mock_api_response("[]"))
    classifier = _classifier(create, batch_size=20)

    await classifier.classify(sample_posts, "hypothesis", batch_size=8)

    assert create.await_count == 3


async def test_classify_prompt_contains_hypothesis_and_items() -> None:
    create = AsyncMock(return_value=_make_mock_api_response('["R"]'))
    classifier = _classifier(create)
    comment = Comment(id="c1", body="Our payroll export breaks weekly", community="smallbusiness")

    await classifier.classify([comment], "Payroll exports are unreliable")

    prompt = create.call_args.kwargs["messages"][0]["content"]
    assert "Payroll exports are unreliable" in prompt
    assert "Our payroll export breaks weekly" in prompt
    assert "r/smallbusiness" in prompt


async def test_failed_batch_falls_back_while_others_succeed(sample_posts: list[Post]) -> None:
    create = AsyncMock(
        side_effect=[
            _make_mock_api_response(json.dumps(["N"] * 10)),
            RuntimeError("overloaded"),
        ]
    )
    classifier = _classifier(create, batch_size=10, max_concurrent_batches=1)

    result = await classifier.classify(sample_posts, "hypothesis")

    assert result.oracle_failures == 1
    assert result.count(RelevanceTier.REJECTED) == 10
    assert result.count(RelevanceTier.CORE) == 10
    assert all(d.fallback for d in result.decisions[10:])


async def test_all_batches_failing_raises(sample_posts: list[Post]) -> None:
    create = AsyncMock(side_effect=RuntimeError("service down"))
    classifier = _classifier(create, batch_size=10)

    with pytest.raises(ClassifierUnavailable):
        await classifier.classify(sample_posts, "hypothesis")


async def test_progress_reported_after_each_batch(sample_posts: list[Post]) -> None:
    create = AsyncMock(return_value=_make_mock_api_response(json.dumps(["C", "N", "N", "N", "N"])))
    classifier = _classifier(create, batch_size=5, max_concurrent_batches=1)
    updates: list[ClassificationProgress] = []

    await classifier.classify(sample_posts, "hypothesis", updates.append)

    assert [u.processed for u in updates] == [5, 10, 15, 20]
    assert all(u.total == 20 for u in updates)
    assert updates[-1].relevant == 4
    assert updates[-1].filter_rate == pytest.approx(80.0)


async def test_classify_empty_list() -> None:
    create = AsyncMock()
    classifier = _classifier(create)

    result = await classifier.classify([], "hypothesis")

    assert result.decisions == []
    create.assert_not_awaited()
