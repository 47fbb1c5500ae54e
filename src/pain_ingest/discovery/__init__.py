"""Hypothesis-driven keyword and community discovery."""

from pain_ingest.discovery.base import (
    CommunityDiscoverer,
    CommunitySuggestion,
    CommunityWeigher,
    DiscoveryResult,
    KeywordExtractor,
    Recommendation,
)
from pain_ingest.discovery.claude import (
    ClaudeCommunityDiscoverer,
    ClaudeCommunityWeigher,
    ClaudeKeywordExtractor,
    clean_community_names,
    default_weights,
    extract_json_object,
    fallback_discovery,
    fallback_keywords,
)

__all__ = [
    # Protocols
    "CommunityDiscoverer",
    "CommunityWeigher",
    "KeywordExtractor",
    # Results
    "CommunitySuggestion",
    "DiscoveryResult",
    "Recommendation",
    # Implementations
    "ClaudeCommunityDiscoverer",
    "ClaudeCommunityWeigher",
    "ClaudeKeywordExtractor",
    # Fallbacks
    "clean_community_names",
    "default_weights",
    "extract_json_object",
    "fallback_discovery",
    "fallback_keywords",
]
