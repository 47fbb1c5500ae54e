"""Pydantic configuration models for ingestion components."""

from typing import Annotated, Literal

from pydantic import BaseModel, Field, model_validator

from pain_ingest.data import DataConfidence

# ============================================================
# Archive Configs
# ============================================================


class RateLimitConfig(BaseModel):
    """Configuration for the process-wide RateLimiter."""

    max_concurrent: int = Field(default=20, ge=1)
    min_time: float = Field(default=0.05, ge=0.0)
    reservoir: int = Field(default=100, ge=0)
    reservoir_refresh_amount: int = Field(default=100, ge=1)
    reservoir_refresh_interval: float = Field(default=5.0, gt=0.0)
    quota_safety_threshold: int = 10
    low_quota_warning: int = 20

    model_config = {"frozen": True}


class ArchiveConfig(BaseModel):
    """Configuration for ArchiveClient."""

    base_url: str = "https://arctic-shift.photon-reddit.com"
    max_retries: int = Field(default=3, ge=1)
    backoff_base: float = Field(default=1.0, ge=0.0)
    timeout_backoff: tuple[float, ...] = (10.0, 15.0, 20.0)
    timeout: float = Field(default=30.0, gt=0.0)

    model_config = {"frozen": True}


class CacheConfig(BaseModel):
    """Configuration for the archive query cache."""

    enabled: bool = True
    ttl_seconds: float = Field(default=24 * 60 * 60, gt=0.0)

    model_config = {"frozen": True}


# ============================================================
# Pre-filter Configs
# ============================================================


class PrefilterConfig(BaseModel):
    """Configuration for the quality gate."""

    min_post_length: int = Field(default=50, ge=0)
    min_comment_length: int = Field(default=30, ge=0)

    model_config = {"frozen": True}


class SentenceTransformerSimilarityConfig(BaseModel):
    """Embedding similarity pre-filter."""

    type: Literal["sentence_transformer"] = "sentence_transformer"
    model: str = "all-MiniLM-L6-v2"
    threshold: float = Field(default=0.35, ge=-1.0, le=1.0)
    max_chars: int = 1000

    model_config = {"frozen": True}


class NoSimilarityConfig(BaseModel):
    """No similarity pre-filter."""

    type: Literal["none"] = "none"

    model_config = {"frozen": True}


SimilarityConfig = Annotated[
    SentenceTransformerSimilarityConfig | NoSimilarityConfig,
    Field(discriminator="type"),
]


# ============================================================
# Classifier and Discovery Configs
# ============================================================


class ClaudeClassifierConfig(BaseModel):
    """Configuration for ClaudeRelevanceClassifier."""

    type: Literal["claude"] = "claude"
    model: str = "claude-haiku-4-5-20251001"
    post_batch_size: int = Field(default=20, ge=1)
    comment_batch_size: int = Field(default=25, ge=1)
    max_concurrent_batches: int = Field(default=5, ge=1)
    max_tokens: int = 1024
    max_chars: int = 500

    model_config = {"frozen": True}


class ClaudeKeywordConfig(BaseModel):
    """Configuration for ClaudeKeywordExtractor."""

    enabled: bool = True
    model: str = "claude-haiku-4-5-20251001"

    model_config = {"frozen": True}


class ClaudeDiscoveryConfig(BaseModel):
    """Configuration for community discovery and weighting."""

    enabled: bool = True
    model: str = "claude-haiku-4-5-20251001"
    validate_communities: bool = True
    weigh_communities: bool = True
    max_communities: int = Field(default=15, ge=1)

    model_config = {"frozen": True}


# ============================================================
# Aggregator Config
# ============================================================


class AggregatorConfig(BaseModel):
    """Configuration for SignalAggregator and the quality grade."""

    high_intensity_min: float = 7.0
    medium_intensity_min: float = 4.0
    title_only_weight: float = Field(default=0.7, gt=0.0, le=1.0)
    high_quality_max_rate: float = Field(default=40.0, ge=0.0, le=100.0)
    medium_quality_max_rate: float = Field(default=70.0, ge=0.0, le=100.0)
    confidence_thresholds: dict[DataConfidence, int] = Field(
        default_factory=lambda: {
            DataConfidence.HIGH: 100,
            DataConfidence.MEDIUM: 30,
            DataConfidence.LOW: 10,
        }
    )
    max_text_length: int = 1000

    model_config = {"frozen": True}

    @model_validator(mode="after")
    def check_ordering(self) -> "AggregatorConfig":
        if self.medium_intensity_min > self.high_intensity_min:
            raise ValueError("medium_intensity_min must not exceed high_intensity_min")
        if self.high_quality_max_rate > self.medium_quality_max_rate:
            raise ValueError("high_quality_max_rate must not exceed medium_quality_max_rate")
        return self

    def threshold_pairs(self) -> tuple[tuple[int, DataConfidence], ...]:
        """(minimum count, level) pairs, highest minimum first."""
        return tuple(
            sorted(
                ((count, level) for level, count in self.confidence_thresholds.items()),
                key=lambda pair: pair[0],
                reverse=True,
            )
        )


# ============================================================
# Pipeline Config
# ============================================================


class PipelineConfig(BaseModel):
    """Configuration for PipelineOrchestrator."""

    step_name: str = "pain_analysis"
    posts_per_community: int = Field(default=300, ge=1, le=1000)
    comments_per_community: int = Field(default=300, ge=1, le=1000)
    lookback_days: int = Field(default=365, ge=1)

    model_config = {"frozen": True}


# ============================================================
# Logging Config
# ============================================================


class LoggingConfig(BaseModel):
    """Configuration for per-run JSON logging."""

    enabled: bool = False
    log_dir: str = "logs"

    model_config = {"frozen": True}


# ============================================================
# Root Config
# ============================================================


class IngestConfig(BaseModel):
    """Root configuration for pain ingestion."""

    rate_limit: RateLimitConfig = Field(default_factory=RateLimitConfig)
    archive: ArchiveConfig = Field(default_factory=ArchiveConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    prefilter: PrefilterConfig = Field(default_factory=PrefilterConfig)
    similarity: SentenceTransformerSimilarityConfig | NoSimilarityConfig = Field(
        default_factory=NoSimilarityConfig, discriminator="type"
    )
    classifier: ClaudeClassifierConfig = Field(default_factory=ClaudeClassifierConfig)
    keywords: ClaudeKeywordConfig = Field(default_factory=ClaudeKeywordConfig)
    discovery: ClaudeDiscoveryConfig = Field(default_factory=ClaudeDiscoveryConfig)
    aggregator: AggregatorConfig = Field(default_factory=AggregatorConfig)
    pipeline: PipelineConfig = Field(default_factory=PipelineConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    model_config = {"frozen": True}
