"""Keyword exclusion, the cheap first pass before relevance filtering."""

import logging
from collections.abc import Sequence
from typing import TypeVar

from pain_ingest.data import RawItem

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT", bound=RawItem)


def exclude_by_keywords(items: Sequence[ItemT], exclude_keywords: Sequence[str]) -> list[ItemT]:
    """Drop items whose title or body contains any exclusion keyword.

    Matching is a case-insensitive substring test. With no keywords the
    input is returned unchanged (as a new list).

    Args:
        items: Posts or comments to screen.
        exclude_keywords: Keywords marking an item as off-topic.

    Returns:
        The items that contain none of the keywords, in input order.
    """
    needles = [k.strip().lower() for k in exclude_keywords if k and k.strip()]
    if not needles:
        return list(items)

    kept = [item for item in items if not any(n in item.text.lower() for n in needles)]
    if len(kept) < len(items):
        logger.info("Keyword exclusion removed %d of %d items", len(items) - len(kept), len(items))
    return kept
