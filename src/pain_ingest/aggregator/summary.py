"""Turn classified items into pain signals and a confidence-tagged summary."""

import logging
from collections import Counter
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass, field, replace
from datetime import UTC, datetime

import numpy as np
from numpy.typing import NDArray

from pain_ingest.aggregator.scoring import (
    HIGH_INTENSITY_MIN,
    MEDIUM_INTENSITY_MIN,
    OLDEST_RECENCY_MULTIPLIER,
    RECENCY_BANDS,
    calculate_engagement_score,
    calculate_pain_score,
    get_intensity,
)
from pain_ingest.data import (
    ClassifiedItem,
    DataConfidence,
    DiscussionVelocity,
    Intensity,
    PainSignal,
    PainSummary,
    Post,
    QualityLevel,
    RelevanceTier,
    SignalSource,
    TemporalDistribution,
    WTPConfidence,
    WTPQuote,
)

logger = logging.getLogger(__name__)

TITLE_ONLY_WEIGHT = 0.7
TITLE_ONLY_SIGNAL = "title-only"
MAX_SIGNAL_TEXT = 1000

HIGH_QUALITY_MAX_FILTER_RATE = 40.0
MEDIUM_QUALITY_MAX_FILTER_RATE = 70.0

# (minimum count, level), checked from the top.
DEFAULT_CONFIDENCE_THRESHOLDS: tuple[tuple[int, DataConfidence], ...] = (
    (100, DataConfidence.HIGH),
    (30, DataConfidence.MEDIUM),
    (10, DataConfidence.LOW),
)

MIN_WEIGHT = 0.5
MAX_WEIGHT = 1.5
DEFAULT_WEIGHT = 1.0

MIN_VELOCITY_BASE = 5
STABLE_CHANGE_PERCENT = 15
PAYMENT_WORDS = ("pay", "buy", "purchase", "worth", "money", "invest", "cost")
TOP_N = 5


# ============================================================
# Quality, confidence and weighting
# ============================================================


def calculate_quality_level(
    post_filter_rate: float,
    comment_filter_rate: float | None = None,
    *,
    high_max: float = HIGH_QUALITY_MAX_FILTER_RATE,
    medium_max: float = MEDIUM_QUALITY_MAX_FILTER_RATE,
) -> QualityLevel:
    """Grade a run by how much of the raw haul was filtered out.

    The post and comment filter rates are averaged; with no comment rate
    the post rate stands alone. Both bounds are inclusive.
    """
    if comment_filter_rate is None:
        comment_filter_rate = post_filter_rate
    average = (post_filter_rate + comment_filter_rate) / 2
    if average <= high_max:
        return QualityLevel.HIGH
    if average <= medium_max:
        return QualityLevel.MEDIUM
    return QualityLevel.LOW


def get_data_confidence(
    signal_count: int,
    thresholds: Sequence[tuple[int, DataConfidence]] = DEFAULT_CONFIDENCE_THRESHOLDS,
) -> DataConfidence:
    """Volume-based confidence for ``signal_count`` signals."""
    for minimum, level in thresholds:
        if signal_count >= minimum:
            return level
    return DataConfidence.VERY_LOW


def normalize_community(name: str) -> str:
    return name.strip().lower().removeprefix("r/")


def apply_source_weights(
    signals: Iterable[PainSignal],
    weights: Mapping[str, float],
    *,
    min_weight: float = MIN_WEIGHT,
    max_weight: float = MAX_WEIGHT,
    high_min: float = HIGH_INTENSITY_MIN,
    medium_min: float = MEDIUM_INTENSITY_MIN,
) -> list[PainSignal]:
    """Scale each signal's score by the weight of its community, once.

    Weights are clamped into [min_weight, max_weight]; communities without
    a weight get 1.0. Signals already weighted are returned untouched, so
    applying weights twice is a no-op.
    """
    clamped = {
        normalize_community(name): min(max(weight, min_weight), max_weight)
        for name, weight in weights.items()
    }
    weighted: list[PainSignal] = []
    for signal in signals:
        if signal.weight_applied:
            weighted.append(signal)
            continue
        weight = clamped.get(normalize_community(signal.source.community), DEFAULT_WEIGHT)
        score = round(min(max(signal.score * weight, 0.0), 10.0), 1)
        weighted.append(
            replace(
                signal,
                score=score,
                intensity=get_intensity(score, high_min=high_min, medium_min=medium_min),
                weight_applied=True,
            )
        )
    return weighted


# ============================================================
# Temporal analysis
# ============================================================


def _ages_in_days(created: Sequence[datetime], now: datetime) -> NDArray[np.float64]:
    return np.array([(now - c).total_seconds() / 86400 for c in created], dtype=np.float64)


def calculate_temporal_distribution(
    created: Sequence[datetime], now: datetime | None = None
) -> TemporalDistribution:
    """Bucket creation times into <=30, <=90, <=180 days and older."""
    if not created:
        return TemporalDistribution()
    now = now or datetime.now(tz=UTC)
    buckets = np.digitize(_ages_in_days(created, now), [30, 90, 180], right=True)
    counts = np.bincount(buckets, minlength=4)
    return TemporalDistribution(
        last_30_days=int(counts[0]),
        last_90_days=int(counts[1]),
        last_180_days=int(counts[2]),
        older=int(counts[3]),
    )


def calculate_recency_score(created: Sequence[datetime], now: datetime | None = None) -> float:
    """Mean recency multiplier mapped from [0.5, 1.5] onto [0, 1].

    Only dated signals contribute; with none the score is 0.
    """
    if not created:
        return 0.0
    now = now or datetime.now(tz=UTC)
    edges = [max_age for max_age, _ in RECENCY_BANDS]
    multipliers = np.array(
        [m for _, m in RECENCY_BANDS] + [OLDEST_RECENCY_MULTIPLIER], dtype=np.float64
    )
    bands = np.digitize(_ages_in_days(created, now), edges, right=True)
    mean = float(multipliers[bands].mean())
    return min(1.0, max(0.0, round(mean - 0.5, 2)))


def calculate_discussion_velocity(distribution: TemporalDistribution) -> DiscussionVelocity:
    """Compare the last 90 days against days 91-180."""
    recent = distribution.last_30_days + distribution.last_90_days
    previous = distribution.last_180_days
    if previous < MIN_VELOCITY_BASE:
        return DiscussionVelocity(recent_count=recent, previous_count=previous)

    total = recent + previous
    confidence = "high" if total >= 50 else "medium" if total >= 20 else "low"
    change = round((recent - previous) / previous * 100)
    if change > STABLE_CHANGE_PERCENT:
        trend = "rising"
    elif change < -STABLE_CHANGE_PERCENT:
        trend = "declining"
    else:
        trend = "stable"
    return DiscussionVelocity(
        recent_count=recent,
        previous_count=previous,
        percentage_change=change,
        trend=trend,
        confidence=confidence,
    )


# ============================================================
# Aggregator
# ============================================================


@dataclass(frozen=True)
class AggregationResult:
    """Signals sorted strongest first, plus their summary."""

    signals: list[PainSignal] = field(default_factory=list)
    summary: PainSummary = field(default_factory=PainSummary)
    duplicates_merged: int = 0


def _dedup_key(text: str) -> str:
    return " ".join(text.lower().split())


class SignalAggregator:
    """Build pain signals from classified items and summarize them.

    Args:
        title_only_weight: Score multiplier for title-only posts.
        high_intensity_min: Minimum score of a high-intensity signal.
        medium_intensity_min: Minimum score of a medium-intensity signal.
        confidence_thresholds: (minimum count, level) pairs, highest first.
        max_text_length: Characters of item text kept on a signal.
    """

    def __init__(
        self,
        title_only_weight: float = TITLE_ONLY_WEIGHT,
        high_intensity_min: float = HIGH_INTENSITY_MIN,
        medium_intensity_min: float = MEDIUM_INTENSITY_MIN,
        confidence_thresholds: Sequence[tuple[int, DataConfidence]] = (
            DEFAULT_CONFIDENCE_THRESHOLDS
        ),
        max_text_length: int = MAX_SIGNAL_TEXT,
    ) -> None:
        self._title_only_weight = title_only_weight
        self._high_min = high_intensity_min
        self._medium_min = medium_intensity_min
        self._confidence_thresholds = tuple(confidence_thresholds)
        self._max_text_length = max_text_length

    def intensity(self, score: float) -> Intensity:
        return get_intensity(score, high_min=self._high_min, medium_min=self._medium_min)

    def aggregate(
        self,
        classified: Iterable[ClassifiedItem],
        *,
        weights: Mapping[str, float] | None = None,
        now: datetime | None = None,
    ) -> AggregationResult:
        """Create, weight, deduplicate, sort and summarize signals.

        Args:
            classified: Items with their relevance decisions. REJECTED
                items are ignored.
            weights: Optional community weights, applied once.
            now: Reference time for recency (defaults to now).

        Returns:
            The signals and their summary.
        """
        now = now or datetime.now(tz=UTC)
        signals = [s for s in (self.build_signal(c, now) for c in classified) if s is not None]
        if weights:
            signals = apply_source_weights(
                signals, weights, high_min=self._high_min, medium_min=self._medium_min
            )

        signals, merged = self._deduplicate(signals)
        signals.sort(key=lambda s: (s.score, s.source.engagement), reverse=True)
        if merged:
            logger.info("Merged %d duplicate signals", merged)

        return AggregationResult(
            signals=signals,
            summary=self.summarize(signals, now=now),
            duplicates_merged=merged,
        )

    def build_signal(self, classified: ClassifiedItem, now: datetime) -> PainSignal | None:
        """Score one relevant item; None if it carries no pain language."""
        tier = classified.decision.tier
        if tier is RelevanceTier.REJECTED:
            return None

        item = classified.item
        title = item.title if isinstance(item, Post) else ""
        title_only = classified.title_only and isinstance(item, Post)
        scored_text = title if title_only else item.text

        result = calculate_pain_score(scored_text, item.engagement_score, item.created_at, now=now)
        score = result.score
        keywords = result.signals
        if title_only:
            score = round(score * self._title_only_weight, 1)
            keywords = (*keywords, TITLE_ONLY_SIGNAL)

        if score <= 0 and not result.signals:
            return None

        num_comments = item.num_comments if isinstance(item, Post) else None
        source = SignalSource(
            kind=item.kind,
            item_id=item.id,
            community=item.community,
            author=item.author,
            url=item.link,
            created_at=item.created_at,
            engagement=calculate_engagement_score(item.engagement_score, num_comments),
            upvotes=item.engagement_score,
            num_comments=num_comments,
        )
        display_text = title if title_only else (item.body or title)
        return PainSignal(
            text=display_text[: self._max_text_length],
            score=score,
            intensity=self.intensity(score),
            tier=tier,
            source=source,
            willingness_to_pay_signal=result.willingness_to_pay_count > 0,
            wtp_confidence=result.wtp_confidence,
            solution_seeking=result.solution_seeking_count > 0,
            keywords=keywords,
            title=title,
            title_only=title_only,
        )

    def _deduplicate(self, signals: list[PainSignal]) -> tuple[list[PainSignal], int]:
        """Collapse signals with identical normalized text, keeping the higher score."""
        by_key: dict[str, PainSignal] = {}
        merged = 0
        for signal in signals:
            key = _dedup_key(signal.text)
            existing = by_key.get(key)
            if existing is None:
                by_key[key] = signal
                continue
            merged += 1
            keep = signal if signal.score > existing.score else existing
            by_key[key] = replace(
                keep, duplicate_count=existing.duplicate_count + signal.duplicate_count + 1
            )
        return (list(by_key.values()), merged)

    def summarize(
        self, signals: Sequence[PainSignal], *, now: datetime | None = None
    ) -> PainSummary:
        """Summary statistics for ``signals``."""
        if not signals:
            return PainSummary(
                data_confidence=get_data_confidence(0, self._confidence_thresholds)
            )
        now = now or datetime.now(tz=UTC)

        intensities = Counter(s.intensity for s in signals)
        communities = Counter(s.source.community for s in signals)
        keywords = Counter(k for s in signals for k in s.keywords)
        dated = [s.source.created_at for s in signals if s.source.created_at is not None]
        distribution = calculate_temporal_distribution(dated, now)

        date_range = None
        if dated:
            date_range = (min(dated).date().isoformat(), max(dated).date().isoformat())

        return PainSummary(
            total_signals=len(signals),
            average_score=round(sum(s.score for s in signals) / len(signals), 1),
            high_intensity_count=intensities[Intensity.HIGH],
            medium_intensity_count=intensities[Intensity.MEDIUM],
            low_intensity_count=intensities[Intensity.LOW],
            solution_seeking_count=sum(1 for s in signals if s.solution_seeking),
            willingness_to_pay_count=sum(1 for s in signals if s.willingness_to_pay_signal),
            core_count=sum(1 for s in signals if s.tier is RelevanceTier.CORE),
            related_count=sum(1 for s in signals if s.tier is RelevanceTier.RELATED),
            top_communities=tuple(communities.most_common(TOP_N)),
            strongest_signals=tuple(k for k, _ in keywords.most_common(TOP_N)),
            wtp_quotes=tuple(self._wtp_quotes(signals)),
            data_confidence=get_data_confidence(len(signals), self._confidence_thresholds),
            temporal_distribution=distribution,
            recency_score=calculate_recency_score(dated, now),
            date_range=date_range,
            discussion_velocity=calculate_discussion_velocity(distribution),
        )

    def _wtp_quotes(self, signals: Sequence[PainSignal]) -> list[WTPQuote]:
        quotes: list[WTPQuote] = []
        for signal in signals:
            if len(quotes) >= TOP_N:
                break
            if signal.wtp_confidence not in (WTPConfidence.HIGH, WTPConfidence.MEDIUM):
                continue
            lower = signal.text.lower()
            if not any(word in lower for word in PAYMENT_WORDS):
                continue
            quotes.append(
                WTPQuote(
                    text=signal.text,
                    community=signal.source.community,
                    url=signal.source.url,
                    created_at=signal.source.created_at,
                    upvotes=signal.source.upvotes,
                )
            )
        return quotes
