"""Factory functions to create components from configuration."""

from dataclasses import dataclass
from pathlib import Path

from pain_ingest.aggregator import SignalAggregator
from pain_ingest.archive import ArchiveClient, InMemoryQueryCache
from pain_ingest.classifier import ClaudeRelevanceClassifier
from pain_ingest.config.models import (
    AggregatorConfig,
    ArchiveConfig,
    CacheConfig,
    ClaudeClassifierConfig,
    IngestConfig,
    NoSimilarityConfig,
    RateLimitConfig,
    SentenceTransformerSimilarityConfig,
    SimilarityConfig,
)
from pain_ingest.discovery import (
    ClaudeCommunityDiscoverer,
    ClaudeCommunityWeigher,
    ClaudeKeywordExtractor,
)
from pain_ingest.pipeline import InMemoryJobStatusStore, JobStatusStore, PipelineOrchestrator
from pain_ingest.prefilter import SentenceTransformerEmbedder, SimilarityFilter
from pain_ingest.pricing import PriceCache
from pain_ingest.ratelimit import RateLimiter
from pain_ingest.run_logger import RunLogger


@dataclass(frozen=True)
class Components:
    """Everything ``create_from_config`` builds, for callers that need the parts."""

    orchestrator: PipelineOrchestrator
    archive: ArchiveClient
    rate_limiter: RateLimiter
    job_store: JobStatusStore
    run_logger: RunLogger | None
    price_cache: PriceCache


def create_rate_limiter(config: RateLimitConfig) -> RateLimiter:
    return RateLimiter(
        max_concurrent=config.max_concurrent,
        min_time=config.min_time,
        reservoir=config.reservoir,
        reservoir_refresh_amount=config.reservoir_refresh_amount,
        reservoir_refresh_interval=config.reservoir_refresh_interval,
        quota_safety_threshold=config.quota_safety_threshold,
        low_quota_warning=config.low_quota_warning,
    )


def create_archive(
    config: ArchiveConfig,
    cache_config: CacheConfig,
    rate_limiter: RateLimiter,
) -> ArchiveClient:
    """Create an archive client routed through the shared rate limiter."""
    return ArchiveClient(
        rate_limiter,
        base_url=config.base_url,
        cache=InMemoryQueryCache() if cache_config.enabled else None,
        cache_ttl=cache_config.ttl_seconds,
        max_retries=config.max_retries,
        backoff_base=config.backoff_base,
        timeout_backoff=config.timeout_backoff,
        timeout=config.timeout,
    )


def create_classifier(
    config: ClaudeClassifierConfig,
    *,
    api_key: str | None = None,
) -> ClaudeRelevanceClassifier:
    """Create a relevance classifier from config."""
    if isinstance(config, ClaudeClassifierConfig):
        return ClaudeRelevanceClassifier(
            model=config.model,
            api_key=api_key,
            batch_size=config.post_batch_size,
            max_concurrent_batches=config.max_concurrent_batches,
            max_tokens=config.max_tokens,
            max_chars=config.max_chars,
        )
    msg = f"Unknown classifier config type: {type(config)}"
    raise ValueError(msg)


def create_similarity_filter(config: SimilarityConfig) -> SimilarityFilter | None:
    """Create the embedding pre-filter, or None when disabled."""
    if isinstance(config, SentenceTransformerSimilarityConfig):
        return SimilarityFilter(
            SentenceTransformerEmbedder(config.model),
            threshold=config.threshold,
            max_chars=config.max_chars,
        )
    if isinstance(config, NoSimilarityConfig):
        return None
    msg = f"Unknown similarity config type: {type(config)}"
    raise ValueError(msg)


def create_aggregator(config: AggregatorConfig) -> SignalAggregator:
    return SignalAggregator(
        title_only_weight=config.title_only_weight,
        high_intensity_min=config.high_intensity_min,
        medium_intensity_min=config.medium_intensity_min,
        confidence_thresholds=config.threshold_pairs(),
        max_text_length=config.max_text_length,
    )


def create_from_config(
    config: IngestConfig,
    *,
    api_key: str | None = None,
    job_store: JobStatusStore | None = None,
    log_override: bool | None = None,
    log_dir_override: str | None = None,
) -> Components:
    """Create a complete orchestrator from root config.

    The rate limiter is built once here and shared by every component that
    calls the archive.

    Args:
        config: Root configuration.
        api_key: Anthropic API key (defaults to CLAUDE_API_KEY env var).
        job_store: External job store (defaults to an in-memory one).
        log_override: Override the config's logging.enabled setting.
        log_dir_override: Override the config's logging.log_dir setting.

    Returns:
        The orchestrator and the shared parts it was built from.
        ``run_logger`` is None if logging is disabled.
    """
    log_enabled = log_override if log_override is not None else config.logging.enabled
    log_dir = Path(log_dir_override if log_dir_override is not None else config.logging.log_dir)

    run_logger: RunLogger | None = None
    if log_enabled:
        run_logger = RunLogger(log_dir=log_dir, enabled=True)

    rate_limiter = create_rate_limiter(config.rate_limit)
    archive = create_archive(config.archive, config.cache, rate_limiter)
    store = job_store if job_store is not None else InMemoryJobStatusStore()
    price_cache = PriceCache()

    keyword_extractor = None
    if config.keywords.enabled:
        keyword_extractor = ClaudeKeywordExtractor(model=config.keywords.model, api_key=api_key)

    discoverer = None
    weigher = None
    if config.discovery.enabled:
        discoverer = ClaudeCommunityDiscoverer(
            archive=archive if config.discovery.validate_communities else None,
            model=config.discovery.model,
            api_key=api_key,
            max_communities=config.discovery.max_communities,
        )
        if config.discovery.weigh_communities:
            weigher = ClaudeCommunityWeigher(model=config.discovery.model, api_key=api_key)

    orchestrator = PipelineOrchestrator(
        archive=archive,
        classifier=create_classifier(config.classifier, api_key=api_key),
        aggregator=create_aggregator(config.aggregator),
        job_store=store,
        keyword_extractor=keyword_extractor,
        community_discoverer=discoverer,
        community_weigher=weigher,
        similarity_filter=create_similarity_filter(config.similarity),
        step_name=config.pipeline.step_name,
        posts_per_community=config.pipeline.posts_per_community,
        comments_per_community=config.pipeline.comments_per_community,
        lookback_days=config.pipeline.lookback_days,
        max_communities=config.discovery.max_communities,
        post_batch_size=config.classifier.post_batch_size,
        comment_batch_size=config.classifier.comment_batch_size,
        min_post_length=config.prefilter.min_post_length,
        min_comment_length=config.prefilter.min_comment_length,
        high_quality_max_rate=config.aggregator.high_quality_max_rate,
        medium_quality_max_rate=config.aggregator.medium_quality_max_rate,
        run_logger=run_logger,
        price_cache=price_cache,
    )
    return Components(
        orchestrator=orchestrator,
        archive=archive,
        rate_limiter=rate_limiter,
        job_store=store,
        run_logger=run_logger,
        price_cache=price_cache,
    )
