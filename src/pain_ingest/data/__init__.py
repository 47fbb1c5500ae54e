"""Data models for pain ingestion."""

from pain_ingest.data.models import (
    APICallUsage,
    ClassificationDecision,
    ClassifiedItem,
    Comment,
    Community,
    DataConfidence,
    DiscussionVelocity,
    ExtractedKeywords,
    FilterMetrics,
    Intensity,
    ItemKind,
    PainSignal,
    PainSummary,
    Post,
    Priority,
    ProgressEvent,
    QualityLevel,
    RawItem,
    RelevanceTier,
    SignalSource,
    StepStatus,
    TemporalDistribution,
    Usage,
    WTPConfidence,
    WTPQuote,
    response_text,
    usage_from_response,
)

__all__ = [
    "APICallUsage",
    "ClassificationDecision",
    "ClassifiedItem",
    "Comment",
    "Community",
    "DataConfidence",
    "DiscussionVelocity",
    "ExtractedKeywords",
    "FilterMetrics",
    "Intensity",
    "ItemKind",
    "PainSignal",
    "PainSummary",
    "Post",
    "Priority",
    "ProgressEvent",
    "QualityLevel",
    "RawItem",
    "RelevanceTier",
    "SignalSource",
    "StepStatus",
    "TemporalDistribution",
    "Usage",
    "WTPConfidence",
    "WTPQuote",
    "response_text",
    "usage_from_response",
]
