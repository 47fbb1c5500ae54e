"""Tests for keyword exclusion, the quality gate and the similarity filter."""

import numpy as np
from numpy.typing import NDArray

from pain_ingest.data import Comment, Post
from pain_ingest.prefilter import (
    FilterReason,
    SimilarityFilter,
    cosine_similarities,
    exclude_by_keywords,
    has_substantive_title,
    is_likely_non_english,
    is_removed,
    is_spam,
    quality_gate,
)

LONG_BODY = "I keep losing track of invoices and my accounting tool makes it worse every month."


def _post(i: int, title: str = "Invoicing pain", body: str = LONG_BODY) -> Post:
    return Post(id=f"p{i}", title=title, body=body, community="smallbusiness")


def _comment(i: int, body: str = LONG_BODY) -> Comment:
    return Comment(id=f"c{i}", body=body, community="smallbusiness")


# -- Keyword exclusion --


def test_exclude_by_keywords_drops_matching_posts() -> None:
    posts = [_post(i) for i in range(110)]
    posts += [_post(110 + i, title=f"Looking for a CRYPTO wallet {i}") for i in range(10)]

    kept = exclude_by_keywords(posts, ["crypto"])

    assert len(kept) == 110
    assert all("crypto" not in p.text.lower() for p in kept)


def test_exclude_by_keywords_matches_body_case_insensitively() -> None:
    items = [_comment(1, body="Hiring a Recruiter soon"), _comment(2)]

    kept = exclude_by_keywords(items, ["recruiter"])

    assert [c.id for c in kept] == ["c2"]


def test_exclude_by_keywords_without_keywords_returns_copy() -> None:
    items = [_post(1), _post(2)]

    kept = exclude_by_keywords(items, [])

    assert kept == items
    assert kept is not items


def test_exclude_by_keywords_ignores_blank_keywords() -> None:
    items = [_post(1)]

    assert exclude_by_keywords(items, ["", "   "]) == items


def test_exclude_by_keywords_preserves_order() -> None:
    items = [_post(i) for i in range(5)]

    assert exclude_by_keywords(items, ["nothing-matches"]) == items


# -- Quality gate --


def test_is_removed() -> None:
    assert is_removed("[removed]")
    assert is_removed("  [Deleted] ")
    assert not is_removed("This was removed from the store")


def test_has_substantive_title() -> None:
    assert has_substantive_title("Our invoicing software double-charges every customer")
    assert not has_substantive_title("Help")
    assert not has_substantive_title("Quick question about invoicing software pricing")


def test_is_likely_non_english() -> None:
    assert is_likely_non_english("Ça coûte très cher, éàèùâêîôûç éàèùâêîôûç")
    assert not is_likely_non_english(LONG_BODY)
    assert not is_likely_non_english("short")


def test_is_spam() -> None:
    assert is_spam("Use code SAVE20 for a discount! Click here")
    assert not is_spam(LONG_BODY)


def test_quality_gate_splits_items() -> None:
    good = _post(1)
    short = _post(2, title="Hi", body="meh")
    spam = _post(3, body=LONG_BODY + " Check out my channel, link in bio.")
    recoverable = _post(
        4, title="Our invoicing tool keeps double-charging customers", body="[removed]"
    )
    removed = _post(5, title="Help", body="[deleted]")

    result = quality_gate([good, short, spam, recoverable, removed])

    assert result.passed == [good]
    assert result.recoverable == [recoverable]
    reasons = {item.id: reason for item, reason in result.filtered}
    assert reasons == {
        "p2": FilterReason.TOO_SHORT,
        "p3": FilterReason.SPAM,
        "p5": FilterReason.REMOVED,
    }


def test_quality_gate_uses_comment_minimum() -> None:
    ok = _comment(1, body="This export bug costs me hours.")
    short = _comment(2, body="Same here.")

    result = quality_gate([ok, short])

    assert result.passed == [ok]
    assert result.filtered == [(short, FilterReason.TOO_SHORT)]


def test_quality_gate_removed_comment_is_never_recoverable() -> None:
    result = quality_gate([_comment(1, body="[removed]")])

    assert result.recoverable == []
    assert result.filtered[0][1] is FilterReason.REMOVED


def test_quality_gate_custom_minimums() -> None:
    item = _post(1, title="Short", body="A tiny complaint")

    assert quality_gate([item], min_post_length=10).passed == [item]


# -- Similarity filter --


class FixedEmbedder:
    """Embeds texts to preset vectors by matching a keyword."""

    def embed(self, texts: list[str]) -> NDArray[np.float32]:
        vectors = []
        for text in texts:
            if "invoice" in text.lower():
                vectors.append([1.0, 0.0])
            else:
                vectors.append([0.0, 1.0])
        return np.array(vectors, dtype=np.float32)


class BrokenEmbedder:
    def embed(self, texts: list[str]) -> NDArray[np.float32]:
        raise RuntimeError("model not available")


def test_cosine_similarities() -> None:
    query = np.array([1.0, 0.0], dtype=np.float32)
    vectors = np.array([[2.0, 0.0], [0.0, 3.0], [0.0, 0.0]], dtype=np.float32)

    sims = cosine_similarities(query, vectors)

    assert sims[0] == 1.0
    assert sims[1] == 0.0
    assert sims[2] == 0.0


def test_similarity_filter_drops_dissimilar_items() -> None:
    on_topic = _post(1, title="Invoice chaos", body="Invoices get lost constantly in our tool.")
    off_topic = _post(2, title="Holiday", body="Pictures from my trip to the mountains last week.")

    kept, dropped = SimilarityFilter(FixedEmbedder()).filter(
        [on_topic, off_topic], "Freelancers struggle with invoice tracking"
    )

    assert kept == [on_topic]
    assert dropped == [off_topic]


def test_similarity_filter_passes_everything_on_embedding_failure() -> None:
    items = [_post(1), _post(2)]

    kept, dropped = SimilarityFilter(BrokenEmbedder()).filter(items, "anything")

    assert kept == items
    assert dropped == []


def test_similarity_filter_empty_input() -> None:
    assert SimilarityFilter(FixedEmbedder()).filter([], "hypothesis") == ([], [])
