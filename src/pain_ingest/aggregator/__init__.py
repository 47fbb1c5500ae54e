"""Pain scoring and signal aggregation."""

from pain_ingest.aggregator.scoring import (
    ScoreResult,
    calculate_engagement_score,
    calculate_pain_score,
    get_engagement_multiplier,
    get_intensity,
    get_recency_multiplier,
    has_negative_context,
    has_wtp_exclusion,
    match_keyword,
)
from pain_ingest.aggregator.summary import (
    AggregationResult,
    SignalAggregator,
    apply_source_weights,
    calculate_discussion_velocity,
    calculate_quality_level,
    calculate_recency_score,
    calculate_temporal_distribution,
    get_data_confidence,
    normalize_community,
)

__all__ = [
    # Scoring
    "ScoreResult",
    "calculate_engagement_score",
    "calculate_pain_score",
    "get_engagement_multiplier",
    "get_intensity",
    "get_recency_multiplier",
    "has_negative_context",
    "has_wtp_exclusion",
    "match_keyword",
    # Aggregation
    "AggregationResult",
    "SignalAggregator",
    "apply_source_weights",
    "calculate_discussion_velocity",
    "calculate_quality_level",
    "calculate_recency_score",
    "calculate_temporal_distribution",
    "get_data_confidence",
    "normalize_community",
]
