"""Configuration module for pain ingestion."""

from pain_ingest.config.factory import Components, create_from_config
from pain_ingest.config.loader import get_default_config_path, load_config
from pain_ingest.config.models import (
    AggregatorConfig,
    ArchiveConfig,
    CacheConfig,
    ClaudeClassifierConfig,
    ClaudeDiscoveryConfig,
    ClaudeKeywordConfig,
    IngestConfig,
    LoggingConfig,
    NoSimilarityConfig,
    PipelineConfig,
    PrefilterConfig,
    RateLimitConfig,
    SentenceTransformerSimilarityConfig,
    SimilarityConfig,
)

__all__ = [
    "AggregatorConfig",
    "ArchiveConfig",
    "CacheConfig",
    "ClaudeClassifierConfig",
    "ClaudeDiscoveryConfig",
    "ClaudeKeywordConfig",
    "Components",
    "IngestConfig",
    "LoggingConfig",
    "NoSimilarityConfig",
    "PipelineConfig",
    "PrefilterConfig",
    "RateLimitConfig",
    "SentenceTransformerSimilarityConfig",
    "SimilarityConfig",
    "create_from_config",
    "get_default_config_path",
    "load_config",
]
