"""Content quality gate applied before the relevance oracle.

Removes items that cannot carry a pain signal: removed or deleted bodies,
bodies too short to say anything, text that is mostly non-English, and
obvious self-promotion. Removed posts whose title still says something
useful are kept aside as title-only candidates.
"""

import logging
import re
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import StrEnum

from pain_ingest.data import Comment, Post, RawItem

logger = logging.getLogger(__name__)

MIN_POST_LENGTH = 50
MIN_COMMENT_LENGTH = 30
MIN_TITLE_LENGTH = 30
NON_ENGLISH_MIN_LENGTH = 20
NON_ENGLISH_MAX_RATIO = 0.3

REMOVED_MARKERS = ("[removed]", "[deleted]", "[unavailable]")

SPAM_PATTERNS = (
    re.compile(r"\b(limited time offer|act now|click here|buy now)\b", re.IGNORECASE),
    re.compile(r"\b(check out my|my youtube channel|subscribe to my|follow me on)\b", re.IGNORECASE),
    re.compile(r"\b(dm me for|message me for|link in bio)\b", re.IGNORECASE),
    re.compile(r"\b(promo code|discount code|use code)\b", re.IGNORECASE),
)

GENERIC_TITLE_PATTERNS = (
    re.compile(r"^(help|question|advice|thoughts|opinions|ideas)\s*$", re.IGNORECASE),
    re.compile(r"^(anyone|somebody|can someone)\s", re.IGNORECASE),
    re.compile(r"^(quick question|simple question)", re.IGNORECASE),
)

_LETTERS = re.compile(r"[a-zA-Z\u00C0-\u024F\u1E00-\u1EFF]")
_ASCII_LETTERS = re.compile(r"[a-zA-Z]")


class FilterReason(StrEnum):
    """Why the quality gate dropped an item."""

    REMOVED = "removed"
    TOO_SHORT = "too_short"
    NON_ENGLISH = "non_english"
    SPAM = "spam"


@dataclass(frozen=True)
class QualityGateResult:
    """Outcome of the quality gate.

    ``recoverable`` holds removed posts with a substantive title; they are
    not in ``passed`` or ``filtered`` and may be classified on their title
    alone.
    """

    passed: list[RawItem] = field(default_factory=list)
    filtered: list[tuple[RawItem, FilterReason]] = field(default_factory=list)
    recoverable: list[Post] = field(default_factory=list)


def is_removed(body: str) -> bool:
    cleaned = body.strip().lower()
    return any(cleaned == m or cleaned.startswith(m) for m in REMOVED_MARKERS)


def has_substantive_title(title: str) -> bool:
    """A title long and specific enough to classify without the body."""
    cleaned = title.strip()
    if len(cleaned) < MIN_TITLE_LENGTH:
        return False
    return not any(p.search(cleaned) for p in GENERIC_TITLE_PATTERNS)


def is_likely_non_english(text: str) -> bool:
    """True when more than 30% of the letters in ``text`` are not ASCII."""
    if len(text) < NON_ENGLISH_MIN_LENGTH:
        return False
    letters = _LETTERS.findall(text)
    if not letters:
        return False
    non_ascii = len(letters) - len(_ASCII_LETTERS.findall(text))
    return non_ascii / len(letters) > NON_ENGLISH_MAX_RATIO


def is_spam(text: str) -> bool:
    return any(p.search(text) for p in SPAM_PATTERNS)


def check_item(
    item: RawItem,
    *,
    min_post_length: int = MIN_POST_LENGTH,
    min_comment_length: int = MIN_COMMENT_LENGTH,
) -> FilterReason | None:
    """Return the reason ``item`` fails the gate, or None if it passes."""
    if is_removed(item.body):
        return FilterReason.REMOVED

    if isinstance(item, Comment):
        length = len(item.body.strip())
        min_length = min_comment_length
    else:
        length = len(item.text)
        min_length = min_post_length
    if length < min_length:
        return FilterReason.TOO_SHORT

    if is_likely_non_english(item.text):
        return FilterReason.NON_ENGLISH
    if is_spam(item.text):
        return FilterReason.SPAM
    return None


def quality_gate(
    items: Sequence[RawItem],
    *,
    min_post_length: int = MIN_POST_LENGTH,
    min_comment_length: int = MIN_COMMENT_LENGTH,
) -> QualityGateResult:
    """Split items into passed, filtered and title-only recoverable.

    Args:
        items: Posts or comments after keyword exclusion.
        min_post_length: Minimum characters of title plus body for a post.
        min_comment_length: Minimum characters of body for a comment.

    Returns:
        The split, preserving input order within each list.
    """
    result = QualityGateResult()
    for item in items:
        reason = check_item(
            item, min_post_length=min_post_length, min_comment_length=min_comment_length
        )
        if reason is None:
            result.passed.append(item)
        elif (
            reason is FilterReason.REMOVED
            and isinstance(item, Post)
            and has_substantive_title(item.title)
        ):
            result.recoverable.append(item)
        else:
            result.filtered.append((item, reason))

    if result.filtered:
        counts: dict[str, int] = {}
        for _, reason in result.filtered:
            counts[reason] = counts.get(reason, 0) + 1
        logger.info("Quality gate removed %d items: %s", len(result.filtered), counts)
    return result
