"""Pre-filters applied before relevance classification."""

from pain_ingest.prefilter.base import TextEmbedder
from pain_ingest.prefilter.keywords import exclude_by_keywords
from pain_ingest.prefilter.quality import (
    FilterReason,
    QualityGateResult,
    has_substantive_title,
    is_likely_non_english,
    is_removed,
    is_spam,
    quality_gate,
)
from pain_ingest.prefilter.similarity import (
    SentenceTransformerEmbedder,
    SimilarityFilter,
    cosine_similarities,
)

__all__ = [
    # Protocols
    "TextEmbedder",
    # Keyword exclusion
    "exclude_by_keywords",
    # Quality gate
    "FilterReason",
    "QualityGateResult",
    "has_substantive_title",
    "is_likely_non_english",
    "is_removed",
    "is_spam",
    "quality_gate",
    # Similarity
    "SentenceTransformerEmbedder",
    "SimilarityFilter",
    "cosine_similarities",
]
