"""Core data models for pain ingestion."""

from dataclasses import dataclass, field
from datetime import UTC, datetime
from enum import StrEnum
from typing import Any

REDDIT_BASE_URL = "https://reddit.com"


class ItemKind(StrEnum):
    """Kind of archived item."""

    POST = "post"
    COMMENT = "comment"


class RelevanceTier(StrEnum):
    """Relevance verdict for a classified item.

    ``CORE`` items discuss the problem inside the hypothesis context,
    ``RELATED`` items touch only one side of it, ``REJECTED`` items are
    off-topic.
    """

    CORE = "CORE"
    RELATED = "RELATED"
    REJECTED = "REJECTED"


class Intensity(StrEnum):
    """Pain intensity bucket derived from a signal score."""

    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class QualityLevel(StrEnum):
    """Run quality derived from how much of the raw haul was on-topic."""

    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class DataConfidence(StrEnum):
    """Volume-based confidence in an aggregated summary."""

    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class WTPConfidence(StrEnum):
    """Confidence that a text expresses willingness to pay."""

    NONE = "none"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class StepStatus(StrEnum):
    """Status of a job step in the external job store."""

    PENDING = "pending"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"
    FAILED = "failed"
    LOCKED = "locked"


class Priority(StrEnum):
    """Routing hint for rate-limited archive requests."""

    RESEARCH = "research"
    COVERAGE = "coverage"


# ============================================================
# Archive items
# ============================================================


@dataclass(frozen=True)
class RawItem:
    """Base type for an archived text unit (post or comment).

    Only the ``Post`` and ``Comment`` subclasses are instantiated; each
    supplies ``kind``, which raises ``NotImplementedError`` on the base.
    Identity is ``id`` scoped to the archive. ``community`` is stored
    lowercased so lookups are case-insensitive.
    """

    id: str
    body: str = ""
    community: str = ""
    author: str = ""
    created_at: datetime | None = None
    engagement_score: int = 0
    permalink: str = ""

    def __post_init__(self) -> None:
        object.__setattr__(self, "community", self.community.strip().lower())

    @property
    def kind(self) -> ItemKind:
        raise NotImplementedError(f"{type(self).__name__} does not define an item kind")

    @property
    def text(self) -> str:
        """Title and body joined, as used by keyword matching."""
        title = getattr(self, "title", "")
        return f"{title} {self.body}".strip()

    @property
    def link(self) -> str:
        return self.permalink

    @property
    def created_utc(self) -> int | None:
        if self.created_at is None:
            return None
        return int(self.created_at.timestamp())


@dataclass(frozen=True)
class Post(RawItem):
    """A community post."""

    title: str = ""
    num_comments: int = 0
    url: str = ""

    @property
    def kind(self) -> ItemKind:
        return ItemKind.POST

    @property
    def link(self) -> str:
        """Full URL of the post on reddit."""
        if self.permalink.startswith("http"):
            return self.permalink
        if self.permalink:
            return f"{REDDIT_BASE_URL}{self.permalink}"
        return f"{REDDIT_BASE_URL}/r/{self.community}/comments/{self.id}"


@dataclass(frozen=True)
class Comment(RawItem):
    """A comment on a community post."""

    link_id: str = ""
    parent_id: str = ""

    @property
    def kind(self) -> ItemKind:
        return ItemKind.COMMENT

    @property
    def post_id(self) -> str:
        return self.link_id.removeprefix("t3_")

    @property
    def link(self) -> str:
        """Full URL of the comment on reddit."""
        if self.permalink.startswith("http"):
            return self.permalink
        if self.permalink:
            return f"{REDDIT_BASE_URL}{self.permalink}"
        return f"{REDDIT_BASE_URL}/r/{self.community}/comments/{self.post_id}/_/{self.id}"


@dataclass(frozen=True)
class Community:
    """A community (subreddit) known to the archive."""

    name: str
    title: str = ""
    description: str = ""
    subscribers: int = 0


# ============================================================
# Classification and filtering
# ============================================================


@dataclass(frozen=True)
class ClassificationDecision:
    """Per-item relevance verdict.

    ``fallback`` is True when the tier came from the conservative
    inclusion policy rather than from the oracle.
    """

    item_id: str
    tier: RelevanceTier
    rationale: str | None = None
    fallback: bool = False


@dataclass(frozen=True)
class ClassifiedItem:
    """An item paired with its decision, as handed to aggregation."""

    item: RawItem
    decision: ClassificationDecision
    title_only: bool = False


@dataclass(frozen=True)
class FilterMetrics:
    """Relevance-filter counters for one item kind.

    ``before`` counts items entering relevance filtering (after keyword
    exclusion, which is reported separately as ``pre_filter_skipped``).
    ``filtered_out`` is the sum of the quality, similarity and classifier
    rejections; ``after`` is ``core_signals + related_signals``.
    """

    before: int = 0
    after: int = 0
    filtered_out: int = 0
    pre_filter_skipped: int = 0
    quality_filtered: int = 0
    similarity_filtered: int = 0
    rejected: int = 0
    core_signals: int = 0
    related_signals: int = 0
    title_only: int = 0
    parse_failures: int = 0
    fallback_decisions: int = 0

    def __post_init__(self) -> None:
        if self.before != self.after + self.filtered_out:
            msg = (
                f"Inconsistent filter metrics: before={self.before} "
                f"after={self.after} filtered_out={self.filtered_out}"
            )
            raise ValueError(msg)

    @property
    def filter_rate(self) -> float:
        """Percentage of items filtered out, in [0, 100]."""
        if self.before == 0:
            return 0.0
        return self.filtered_out / self.before * 100


# ============================================================
# Signals and summaries
# ============================================================


@dataclass(frozen=True)
class SignalSource:
    """Provenance of a pain signal."""

    kind: ItemKind
    item_id: str
    community: str
    author: str = ""
    url: str = ""
    created_at: datetime | None = None
    engagement: float = 0.0
    upvotes: int = 0
    num_comments: int | None = None


@dataclass(frozen=True)
class PainSignal:
    """Canonical aggregated unit exposed downstream.

    Created once during aggregation. The only permitted change afterwards
    is the single source-weighting pass, which returns a copy with
    ``weight_applied`` set.
    """

    text: str
    score: float
    intensity: Intensity
    tier: RelevanceTier
    source: SignalSource
    willingness_to_pay_signal: bool = False
    wtp_confidence: WTPConfidence = WTPConfidence.NONE
    solution_seeking: bool = False
    keywords: tuple[str, ...] = ()
    title: str = ""
    title_only: bool = False
    duplicate_count: int = 0
    weight_applied: bool = False


@dataclass(frozen=True)
class TemporalDistribution:
    """Signal counts bucketed by age."""

    last_30_days: int = 0
    last_90_days: int = 0
    last_180_days: int = 0
    older: int = 0


@dataclass(frozen=True)
class DiscussionVelocity:
    """Recent (0-90 days) versus previous (91-180 days) discussion volume."""

    recent_count: int
    previous_count: int
    percentage_change: int | None = None
    trend: str = "insufficient_data"
    confidence: str = "none"

    @property
    def insufficient_data(self) -> bool:
        return self.percentage_change is None


@dataclass(frozen=True)
class WTPQuote:
    """A quote carrying explicit payment intent."""

    text: str
    community: str
    url: str = ""
    created_at: datetime | None = None
    upvotes: int = 0


@dataclass(frozen=True)
class PainSummary:
    """Confidence-tagged summary of a set of pain signals."""

    total_signals: int = 0
    average_score: float = 0.0
    high_intensity_count: int = 0
    medium_intensity_count: int = 0
    low_intensity_count: int = 0
    solution_seeking_count: int = 0
    willingness_to_pay_count: int = 0
    core_count: int = 0
    related_count: int = 0
    top_communities: tuple[tuple[str, int], ...] = ()
    strongest_signals: tuple[str, ...] = ()
    wtp_quotes: tuple[WTPQuote, ...] = ()
    data_confidence: DataConfidence = DataConfidence.VERY_LOW
    temporal_distribution: TemporalDistribution = field(default_factory=TemporalDistribution)
    recency_score: float = 0.0
    date_range: tuple[str, str] | None = None
    discussion_velocity: DiscussionVelocity | None = None


# ============================================================
# Pipeline inputs and events
# ============================================================


@dataclass(frozen=True)
class ExtractedKeywords:
    """Search keywords derived from a hypothesis."""

    primary: tuple[str, ...] = ()
    secondary: tuple[str, ...] = ()
    exclude: tuple[str, ...] = ()


@dataclass(frozen=True)
class ProgressEvent:
    """One entry of the ordered progress stream."""

    step: str
    message: str
    type: str = "progress"
    data: dict[str, Any] | None = None
    timestamp: datetime = field(default_factory=lambda: datetime.now(tz=UTC))


# ============================================================
# Usage
# ============================================================


@dataclass(frozen=True)
class APICallUsage:
    """Usage from a single oracle call, carrying the model for price lookup."""

    model: str
    input_tokens: int = 0
    output_tokens: int = 0
    cache_creation_input_tokens: int = 0
    cache_read_input_tokens: int = 0


@dataclass
class Usage:
    """Accumulated API usage across pipeline stages."""

    api_calls: list[APICallUsage] = field(default_factory=list)
    archive_requests: int = 0
    estimated_cost: float = 0.0

    @property
    def input_tokens(self) -> int:
        return sum(c.input_tokens for c in self.api_calls)

    @property
    def output_tokens(self) -> int:
        return sum(c.output_tokens for c in self.api_calls)

    @property
    def cache_creation_input_tokens(self) -> int:
        return sum(c.cache_creation_input_tokens for c in self.api_calls)

    @property
    def cache_read_input_tokens(self) -> int:
        return sum(c.cache_read_input_tokens for c in self.api_calls)

    def __add__(self, other: "Usage") -> "Usage":
        return Usage(
            api_calls=self.api_calls + other.api_calls,
            archive_requests=self.archive_requests + other.archive_requests,
            estimated_cost=self.estimated_cost + other.estimated_cost,
        )

    def __iadd__(self, other: "Usage") -> "Usage":
        self.api_calls.extend(other.api_calls)
        self.archive_requests += other.archive_requests
        self.estimated_cost += other.estimated_cost
        return self


def usage_from_response(model: str, response: Any) -> Usage:
    """Build a ``Usage`` from an Anthropic ``messages.create`` response."""
    return Usage(
        api_calls=[
            APICallUsage(
                model=model,
                input_tokens=response.usage.input_tokens,
                output_tokens=response.usage.output_tokens,
                cache_creation_input_tokens=getattr(
                    response.usage, "cache_creation_input_tokens", 0
                )
                or 0,
                cache_read_input_tokens=getattr(response.usage, "cache_read_input_tokens", 0)
                or 0,
            ),
        ],
    )


def response_text(response: Any) -> str:
    """Concatenate the text blocks of an Anthropic response."""
    text = ""
    for block in response.content:
        if hasattr(block, "text"):
            text += block.text
    return text
