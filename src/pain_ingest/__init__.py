"""Pain Ingest: community discussion ingestion and pain-signal extraction."""

from pain_ingest.aggregator import AggregationResult, SignalAggregator
from pain_ingest.archive import Archive, ArchiveClient, InMemoryQueryCache, QueryCache
from pain_ingest.classifier import ClaudeRelevanceClassifier, RelevanceClassifier
from pain_ingest.config import IngestConfig, create_from_config, load_config
from pain_ingest.data import (
    APICallUsage,
    ClassificationDecision,
    Comment,
    FilterMetrics,
    PainSignal,
    PainSummary,
    Post,
    ProgressEvent,
    RawItem,
    RelevanceTier,
    Usage,
)
from pain_ingest.errors import (
    ArchiveHTTPError,
    ClassifierUnavailable,
    FetchExhausted,
    IngestionError,
    InvalidTransitionError,
    RejectReason,
    RunRejected,
)
from pain_ingest.pipeline import (
    InMemoryJobStatusStore,
    IngestionRequest,
    IngestionResult,
    JobStatusStore,
    PipelineOrchestrator,
    ProgressChannel,
    RunState,
)
from pain_ingest.prefilter import exclude_by_keywords
from pain_ingest.pricing import PriceCache
from pain_ingest.ratelimit import RateLimiter
from pain_ingest.run_logger import RunLogger

__all__ = [
    # Models
    "APICallUsage",
    "ClassificationDecision",
    "Comment",
    "FilterMetrics",
    "PainSignal",
    "PainSummary",
    "Post",
    "ProgressEvent",
    "RawItem",
    "RelevanceTier",
    "Usage",
    # Errors
    "ArchiveHTTPError",
    "ClassifierUnavailable",
    "FetchExhausted",
    "IngestionError",
    "InvalidTransitionError",
    "RejectReason",
    "RunRejected",
    # Protocols
    "Archive",
    "JobStatusStore",
    "QueryCache",
    "RelevanceClassifier",
    # Components
    "AggregationResult",
    "ArchiveClient",
    "ClaudeRelevanceClassifier",
    "InMemoryJobStatusStore",
    "InMemoryQueryCache",
    "RateLimiter",
    "SignalAggregator",
    "exclude_by_keywords",
    # Pipeline
    "IngestionRequest",
    "IngestionResult",
    "PipelineOrchestrator",
    "ProgressChannel",
    "RunState",
    # Logging and pricing
    "PriceCache",
    "RunLogger",
    # Config
    "IngestConfig",
    "create_from_config",
    "load_config",
]
