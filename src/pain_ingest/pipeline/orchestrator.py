"""Ingestion run orchestration."""

import asyncio
import contextlib
import logging
import time
from collections.abc import AsyncIterator, Callable, Sequence
from dataclasses import dataclass, field
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any

from pain_ingest.aggregator import SignalAggregator, calculate_quality_level
from pain_ingest.aggregator.summary import (
    HIGH_QUALITY_MAX_FILTER_RATE,
    MEDIUM_QUALITY_MAX_FILTER_RATE,
)
from pain_ingest.archive.base import Archive
from pain_ingest.classifier.base import (
    ClassificationProgress,
    ClassificationResult,
    ProgressCallback,
    RelevanceClassifier,
)
from pain_ingest.data import (
    ClassifiedItem,
    ExtractedKeywords,
    FilterMetrics,
    PainSignal,
    PainSummary,
    Post,
    Priority,
    ProgressEvent,
    QualityLevel,
    RawItem,
    RelevanceTier,
    StepStatus,
    Usage,
)
from pain_ingest.discovery import (
    CommunityDiscoverer,
    CommunityWeigher,
    DiscoveryResult,
    KeywordExtractor,
    clean_community_names,
    fallback_keywords,
)
from pain_ingest.errors import RejectReason, RunRejected
from pain_ingest.pipeline.events import ProgressChannel
from pain_ingest.pipeline.jobs import JobStatusStore
from pain_ingest.pipeline.states import RunState, RunStateMachine
from pain_ingest.prefilter import SimilarityFilter, exclude_by_keywords, quality_gate
from pain_ingest.prefilter.quality import MIN_COMMENT_LENGTH, MIN_POST_LENGTH
from pain_ingest.pricing import PriceCache
from pain_ingest.run_logger import RunLogger, serialize

logger = logging.getLogger(__name__)

DEFAULT_STEP = "pain_analysis"


def _utcnow() -> datetime:
    return datetime.now(tz=UTC)


@dataclass(frozen=True)
class IngestionRequest:
    """Input of one ingestion run.

    ``communities`` and ``keywords`` skip discovery and extraction when
    given. The per-run sizes fall back to the orchestrator's defaults.
    """

    hypothesis: str
    job_id: str
    communities: tuple[str, ...] = ()
    keywords: ExtractedKeywords | None = None
    posts_per_community: int | None = None
    comments_per_community: int | None = None
    lookback_days: int | None = None
    priority: Priority = Priority.RESEARCH


@dataclass
class IngestionResult:
    """Outcome of a run, filled in stage by stage."""

    job_id: str
    state: RunState = RunState.CREATED
    keywords: ExtractedKeywords = field(default_factory=ExtractedKeywords)
    discovery: DiscoveryResult | None = None
    communities: tuple[str, ...] = ()
    weights: dict[str, float] = field(default_factory=dict)
    signals: list[PainSignal] = field(default_factory=list)
    summary: PainSummary = field(default_factory=PainSummary)
    post_metrics: FilterMetrics = field(default_factory=FilterMetrics)
    comment_metrics: FilterMetrics = field(default_factory=FilterMetrics)
    quality_level: QualityLevel | None = None
    duplicates_merged: int = 0
    usage: Usage = field(default_factory=Usage)
    failed_stage: RunState | None = None
    error: str | None = None
    log_path: Path | None = None

    @property
    def succeeded(self) -> bool:
        return self.state is RunState.COMPLETED

    def metrics(self) -> dict[str, Any]:
        """Filter metrics of both kinds, with their filter rates."""
        return {
            "posts": _metrics_payload(self.post_metrics),
            "comments": _metrics_payload(self.comment_metrics),
            "quality_level": self.quality_level,
        }

    def to_payload(self) -> dict[str, Any]:
        """JSON-compatible result persisted to the job store."""
        return serialize(
            {
                "job_id": self.job_id,
                "keywords": self.keywords,
                "communities": list(self.communities),
                "weights": self.weights,
                "discovery_warning": self.discovery.warning if self.discovery else None,
                "metrics": self.metrics(),
                "summary": self.summary,
                "signals": self.signals,
                "duplicates_merged": self.duplicates_merged,
                "usage": self.usage,
            }
        )


def _metrics_payload(metrics: FilterMetrics) -> dict[str, Any]:
    payload = serialize(metrics)
    payload["filter_rate"] = round(metrics.filter_rate, 1)
    return payload


@dataclass
class _KindTally:
    """Counts for one item kind as it moves through filtering."""

    fetched: int = 0
    before: int = 0
    quality_filtered: int = 0
    similarity_filtered: int = 0
    title_only: int = 0
    candidates: list[RawItem] = field(default_factory=list)
    recoverable: set[str] = field(default_factory=set)

    def to_metrics(self, outcome: ClassificationResult) -> FilterMetrics:
        core = outcome.count(RelevanceTier.CORE)
        related = outcome.count(RelevanceTier.RELATED)
        rejected = outcome.count(RelevanceTier.REJECTED)
        return FilterMetrics(
            before=self.before,
            after=core + related,
            filtered_out=self.quality_filtered + self.similarity_filtered + rejected,
            pre_filter_skipped=self.fetched - self.before,
            quality_filtered=self.quality_filtered,
            similarity_filtered=self.similarity_filtered,
            rejected=rejected,
            core_signals=core,
            related_signals=related,
            title_only=self.title_only,
            parse_failures=outcome.parse_failures,
            fallback_decisions=outcome.fallback_count,
        )


class PipelineOrchestrator:
    """Runs hypothesis -> keywords -> communities -> fetch -> filter ->
    classify -> aggregate for one job, reporting progress on a channel.

    Stages run strictly in sequence. Any exception raised by a stage fails
    the run: the state moves to ``failed``, the job step is marked failed
    and a failed ``IngestionResult`` is returned. Cancelling the task
    running ``run`` moves the state to ``cancelled`` without touching the
    job store.

    Args:
        archive: Archive client (shares the process-wide rate limiter).
        classifier: Relevance classifier.
        aggregator: Signal aggregator.
        job_store: External job-status store.
        keyword_extractor: Optional keyword extractor; without one,
            significant words of the hypothesis are used.
        community_discoverer: Optional discoverer, used when a request
            names no communities.
        community_weigher: Optional per-community weighting.
        similarity_filter: Optional embedding pre-filter.
        step_name: Job step this orchestrator reports on.
        posts_per_community: Default post target per community.
        comments_per_community: Default comment target per community.
        lookback_days: Default age limit of fetched items.
        max_communities: Cap on communities searched per run.
        post_batch_size: Classifier batch size for posts.
        comment_batch_size: Classifier batch size for comments.
        min_post_length: Quality-gate minimum for posts.
        min_comment_length: Quality-gate minimum for comments.
        high_quality_max_rate: Highest average filter rate graded high.
        medium_quality_max_rate: Highest average filter rate graded medium.
        run_logger: Optional RunLogger for per-stage JSON logs.
        price_cache: Optional PriceCache for cost estimation.
        clock: Returns the current time (timezone-aware).
    """

    def __init__(
        self,
        archive: Archive,
        classifier: RelevanceClassifier,
        aggregator: SignalAggregator,
        job_store: JobStatusStore,
        *,
        keyword_extractor: KeywordExtractor | None = None,
        community_discoverer: CommunityDiscoverer | None = None,
        community_weigher: CommunityWeigher | None = None,
        similarity_filter: SimilarityFilter | None = None,
        step_name: str = DEFAULT_STEP,
        posts_per_community: int = 300,
        comments_per_community: int = 300,
        lookback_days: int = 365,
        max_communities: int = 15,
        post_batch_size: int = 20,
        comment_batch_size: int = 25,
        min_post_length: int = MIN_POST_LENGTH,
        min_comment_length: int = MIN_COMMENT_LENGTH,
        high_quality_max_rate: float = HIGH_QUALITY_MAX_FILTER_RATE,
        medium_quality_max_rate: float = MEDIUM_QUALITY_MAX_FILTER_RATE,
        run_logger: RunLogger | None = None,
        price_cache: PriceCache | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ) -> None:
        self._archive = archive
        self._classifier = classifier
        self._aggregator = aggregator
        self._job_store = job_store
        self._keyword_extractor = keyword_extractor
        self._community_discoverer = community_discoverer
        self._community_weigher = community_weigher
        self._similarity_filter = similarity_filter
        self._step = step_name
        self._posts_per_community = posts_per_community
        self._comments_per_community = comments_per_community
        self._lookback_days = lookback_days
        self._max_communities = max_communities
        self._post_batch_size = post_batch_size
        self._comment_batch_size = comment_batch_size
        self._min_post_length = min_post_length
        self._min_comment_length = min_comment_length
        self._high_quality_max = high_quality_max_rate
        self._medium_quality_max = medium_quality_max_rate
        self._run_logger = run_logger
        self._price_cache = price_cache
        self._clock = clock

    @property
    def step_name(self) -> str:
        return self._step

    async def run(
        self,
        request: IngestionRequest,
        channel: ProgressChannel | None = None,
    ) -> IngestionResult:
        """Execute one ingestion run.

        Args:
            request: What to ingest and for which job.
            channel: Channel receiving progress events; closed on return.

        Returns:
            The completed or failed result.

        Raises:
            RunRejected: If validation fails. Nothing has been fetched and
                the job store is untouched.
            asyncio.CancelledError: If the run was cancelled.
        """
        channel = channel or ProgressChannel()
        try:
            communities = await self._validate(request)
            return await self._execute(request, communities, channel)
        finally:
            channel.close()

    async def stream(self, request: IngestionRequest) -> AsyncIterator[ProgressEvent]:
        """Run in a background task and yield its progress events.

        Closing the iterator before the run finishes cancels the run.
        ``RunRejected`` is raised from the iterator once the channel drains.
        """
        channel = ProgressChannel()
        task = asyncio.create_task(self.run(request, channel))
        try:
            async for event in channel:
                yield event
            await task
        finally:
            if not task.done():
                task.cancel()
                with contextlib.suppress(asyncio.CancelledError):
                    await task

    async def _validate(self, request: IngestionRequest) -> list[str]:
        if not request.hypothesis or not request.hypothesis.strip():
            raise RunRejected(RejectReason.MISSING_HYPOTHESIS, "hypothesis text is required")
        if not request.job_id or not request.job_id.strip():
            raise RunRejected(RejectReason.MISSING_JOB_ID, "job id is required")

        communities = clean_community_names(request.communities)
        if not communities and self._community_discoverer is None:
            raise RunRejected(
                RejectReason.NO_COMMUNITIES,
                "no communities given and no community discoverer configured",
            )

        status = await self._job_store.get_step_status(request.job_id, self._step)
        if status is StepStatus.LOCKED:
            raise RunRejected(
                RejectReason.STEP_LOCKED, f"step '{self._step}' of job {request.job_id} is locked"
            )
        return communities

    async def _execute(
        self,
        request: IngestionRequest,
        communities: list[str],
        channel: ProgressChannel,
    ) -> IngestionResult:
        machine = RunStateMachine()
        result = IngestionResult(job_id=request.job_id)

        if self._run_logger:
            self._run_logger.start_run(request.job_id, request.hypothesis)

        try:
            # Ensure prices are fetched before any stage stamps usage
            if self._price_cache:
                await self._price_cache.get()
            await self._job_store.set_step_status(
                request.job_id, self._step, StepStatus.IN_PROGRESS
            )

            await self._extract_keywords(request, machine, channel, result)
            await self._discover_communities(request, communities, machine, channel, result)
            posts, comments = await self._fetch(request, machine, channel, result)
            post_tally, comment_tally = await self._pre_filter(
                request, posts, comments, machine, channel, result
            )
            classified = await self._classify(
                request, post_tally, comment_tally, machine, channel, result
            )
            self._aggregate(classified, machine, channel, result)

            await self._job_store.save_result(request.job_id, self._step, result.to_payload())
            await self._job_store.set_step_status(request.job_id, self._step, StepStatus.COMPLETED)
        except asyncio.CancelledError:
            stage = machine.state
            machine.transition(RunState.CANCELLED)
            result.state = RunState.CANCELLED
            logger.info("Run for job %s cancelled during %s", request.job_id, stage.value)
            channel.emit(
                ProgressEvent(
                    step=stage.value,
                    message="Analysis cancelled",
                    type="cancelled",
                    data={"stage": stage.value},
                )
            )
            self._finish_log(result)
            raise
        except Exception as e:
            return await self._fail(request, machine, channel, result, e)

        machine.transition(RunState.COMPLETED)
        result.state = RunState.COMPLETED
        channel.emit(
            ProgressEvent(
                step=RunState.COMPLETED.value,
                message=f"Analysis complete: {len(result.signals)} pain signals",
                type="complete",
                data={
                    "signals": len(result.signals),
                    "quality_level": result.quality_level,
                    "data_confidence": result.summary.data_confidence,
                    "metrics": result.metrics(),
                },
            )
        )
        self._finish_log(result)
        return result

    async def _fail(
        self,
        request: IngestionRequest,
        machine: RunStateMachine,
        channel: ProgressChannel,
        result: IngestionResult,
        error: Exception,
    ) -> IngestionResult:
        stage = machine.state
        machine.transition(RunState.FAILED)
        result.state = RunState.FAILED
        result.failed_stage = stage
        result.error = str(error) or type(error).__name__
        logger.error(
            "Run for job %s failed during %s: %s", request.job_id, stage.value, result.error,
            exc_info=error,
        )

        await self._job_store.set_step_status(request.job_id, self._step, StepStatus.FAILED)
        channel.emit(
            ProgressEvent(
                step=stage.value,
                message=f"Analysis failed: {result.error}",
                type="error",
                data={"failed_stage": stage.value, "error_type": type(error).__name__},
            )
        )
        self._finish_log(result)
        return result

    def _finish_log(self, result: IngestionResult) -> None:
        if not self._run_logger:
            return
        result.log_path = self._run_logger.finish_run(
            result.state.value,
            result.usage,
            signal_count=len(result.signals),
            metrics=result.metrics(),
            summary=result.summary,
            failed_stage=result.failed_stage.value if result.failed_stage else None,
            error=result.error,
        )

    # ============================================================
    # Stage helpers
    # ============================================================

    @staticmethod
    def _enter(
        machine: RunStateMachine,
        channel: ProgressChannel,
        state: RunState,
        message: str,
    ) -> float:
        machine.transition(state)
        channel.progress(state.value, message)
        return time.monotonic()

    @staticmethod
    def _summarize_stage(
        channel: ProgressChannel,
        state: RunState,
        message: str,
        data: dict[str, Any] | None = None,
    ) -> None:
        channel.emit(
            ProgressEvent(step=state.value, message=message, type="stage_complete", data=data)
        )

    def _record(
        self,
        result: IngestionResult,
        state: RunState,
        component: str,
        input_data: Any,
        output_data: Any,
        usage: Usage | None,
        started: float,
    ) -> None:
        if usage is not None:
            if self._price_cache:
                self._price_cache.stamp_usage(usage)
            result.usage += usage

        if self._run_logger:
            self._run_logger.log_stage(
                stage=state.value,
                component=component,
                input_data=input_data,
                output_data=output_data,
                usage=usage,
                duration_seconds=time.monotonic() - started,
            )

    # ============================================================
    # Stages
    # ============================================================

    async def _extract_keywords(
        self,
        request: IngestionRequest,
        machine: RunStateMachine,
        channel: ProgressChannel,
        result: IngestionResult,
    ) -> None:
        state = RunState.KEYWORD_EXTRACTION
        t0 = self._enter(machine, channel, state, "Extracting search keywords")

        usage: Usage | None = None
        if request.keywords is not None:
            keywords = request.keywords
            component = "request"
        elif self._keyword_extractor is not None:
            keywords, usage = await self._keyword_extractor.extract(request.hypothesis)
            component = type(self._keyword_extractor).__name__
        else:
            keywords = fallback_keywords(request.hypothesis)
            component = "fallback_keywords"

        result.keywords = keywords
        self._record(result, state, component, request.hypothesis, keywords, usage, t0)
        self._summarize_stage(
            channel,
            state,
            f"Extracted {len(keywords.primary) + len(keywords.secondary)} keywords",
            {"primary": list(keywords.primary), "exclude": list(keywords.exclude)},
        )

    async def _discover_communities(
        self,
        request: IngestionRequest,
        communities: list[str],
        machine: RunStateMachine,
        channel: ProgressChannel,
        result: IngestionResult,
    ) -> None:
        state = RunState.COMMUNITY_DISCOVERY
        t0 = self._enter(machine, channel, state, "Finding communities")

        usage = Usage()
        if not communities and self._community_discoverer is not None:
            discovery, discovery_usage = await self._community_discoverer.discover(
                request.hypothesis
            )
            usage += discovery_usage
            result.discovery = discovery
            communities = list(discovery.communities)
            if discovery.warning:
                channel.progress(state.value, discovery.warning, {"warning": True})

        if not communities:
            raise RunRejected(RejectReason.NO_COMMUNITIES, "no communities found for hypothesis")
        communities = communities[: self._max_communities]

        if self._community_weigher is not None:
            weights, weight_usage = await self._community_weigher.weigh(
                request.hypothesis, communities
            )
            usage += weight_usage
            result.weights = weights

        result.communities = tuple(communities)
        component = (
            type(self._community_discoverer).__name__ if result.discovery else "request"
        )
        self._record(
            result,
            state,
            component,
            request.hypothesis,
            {"communities": communities, "weights": result.weights},
            usage,
            t0,
        )
        self._summarize_stage(
            channel,
            state,
            f"Searching {len(communities)} communities: {', '.join(communities)}",
            {"communities": communities, "weights": result.weights},
        )

    async def _fetch(
        self,
        request: IngestionRequest,
        machine: RunStateMachine,
        channel: ProgressChannel,
        result: IngestionResult,
    ) -> tuple[list[Post], list[RawItem]]:
        state = RunState.FETCHING
        t0 = self._enter(
            machine, channel, state, f"Fetching discussions from {len(result.communities)} communities"
        )

        lookback = request.lookback_days or self._lookback_days
        params = {"after": self._clock() - timedelta(days=lookback)}
        requests_before = self._archive.requests_made
        posts, comments = await self._archive.fetch_from_communities(
            result.communities,
            posts_per_community=request.posts_per_community or self._posts_per_community,
            comments_per_community=request.comments_per_community or self._comments_per_community,
            params=params,
            priority=request.priority,
            job_id=request.job_id,
        )
        usage = Usage(archive_requests=self._archive.requests_made - requests_before)

        self._record(
            result,
            state,
            type(self._archive).__name__,
            {"communities": result.communities, "lookback_days": lookback},
            {"posts": len(posts), "comments": len(comments)},
            usage,
            t0,
        )
        self._summarize_stage(
            channel,
            state,
            f"Fetched {len(posts)} posts and {len(comments)} comments",
            {"posts": len(posts), "comments": len(comments), "requests": usage.archive_requests},
        )
        return (posts, list(comments))

    async def _pre_filter(
        self,
        request: IngestionRequest,
        posts: Sequence[Post],
        comments: Sequence[RawItem],
        machine: RunStateMachine,
        channel: ProgressChannel,
        result: IngestionResult,
    ) -> tuple[_KindTally, _KindTally]:
        state = RunState.PRE_FILTERING
        t0 = self._enter(machine, channel, state, "Removing off-topic and low-quality items")

        tallies: list[_KindTally] = []
        for items in (posts, comments):
            tally = _KindTally(fetched=len(items))
            kept = exclude_by_keywords(items, result.keywords.exclude)
            tally.before = len(kept)

            gate = quality_gate(
                kept,
                min_post_length=self._min_post_length,
                min_comment_length=self._min_comment_length,
            )
            tally.quality_filtered = len(gate.filtered)
            tally.title_only = len(gate.recoverable)
            tally.recoverable = {p.id for p in gate.recoverable}

            candidates: list[RawItem] = list(gate.passed)
            if self._similarity_filter is not None and candidates:
                candidates, dropped = await asyncio.to_thread(
                    self._similarity_filter.filter, candidates, request.hypothesis
                )
                tally.similarity_filtered = len(dropped)
            tally.candidates = [*candidates, *gate.recoverable]
            tallies.append(tally)

        post_tally, comment_tally = tallies
        output = {
            kind: {
                "fetched": t.fetched,
                "excluded": t.fetched - t.before,
                "quality_filtered": t.quality_filtered,
                "similarity_filtered": t.similarity_filtered,
                "title_only": t.title_only,
                "remaining": len(t.candidates),
            }
            for kind, t in (("posts", post_tally), ("comments", comment_tally))
        }
        self._record(result, state, "prefilter", result.keywords.exclude, output, None, t0)
        self._summarize_stage(
            channel,
            state,
            f"{len(post_tally.candidates)} posts and {len(comment_tally.candidates)} comments "
            "left to classify",
            output,
        )
        return (post_tally, comment_tally)

    def _progress_reporter(self, channel: ProgressChannel, kind: str) -> ProgressCallback:
        def report(progress: ClassificationProgress) -> None:
            channel.progress(
                RunState.CLASSIFYING.value,
                f"Checked {progress.processed}/{progress.total} {kind} "
                f"({progress.relevant} relevant so far, {progress.filter_rate:.0f}% filtered)",
                {
                    "kind": kind,
                    "processed": progress.processed,
                    "total": progress.total,
                    "relevant": progress.relevant,
                    "filter_rate": round(progress.filter_rate, 1),
                },
            )

        return report

    async def _classify(
        self,
        request: IngestionRequest,
        post_tally: _KindTally,
        comment_tally: _KindTally,
        machine: RunStateMachine,
        channel: ProgressChannel,
        result: IngestionResult,
    ) -> list[ClassifiedItem]:
        state = RunState.CLASSIFYING
        total = len(post_tally.candidates) + len(comment_tally.candidates)
        t0 = self._enter(machine, channel, state, f"Checking relevance of {total} items")

        outcomes: list[ClassificationResult] = []
        for kind, tally, batch_size in (
            ("posts", post_tally, self._post_batch_size),
            ("comments", comment_tally, self._comment_batch_size),
        ):
            if not tally.candidates:
                outcomes.append(ClassificationResult())
                continue
            outcome = await self._classifier.classify(
                tally.candidates,
                request.hypothesis,
                self._progress_reporter(channel, kind),
                batch_size=batch_size,
            )
            outcomes.append(outcome)

        post_outcome, comment_outcome = outcomes
        result.post_metrics = post_tally.to_metrics(post_outcome)
        result.comment_metrics = comment_tally.to_metrics(comment_outcome)

        usage = post_outcome.usage + comment_outcome.usage
        self._record(
            result,
            state,
            type(self._classifier).__name__,
            {"posts": len(post_tally.candidates), "comments": len(comment_tally.candidates)},
            result.metrics(),
            usage,
            t0,
        )
        self._summarize_stage(
            channel,
            state,
            f"Found {result.post_metrics.after} relevant posts "
            f"({result.post_metrics.filter_rate:.0f}% filtered) and "
            f"{result.comment_metrics.after} relevant comments "
            f"({result.comment_metrics.filter_rate:.0f}% filtered)",
            result.metrics(),
        )

        classified: list[ClassifiedItem] = []
        for tally, outcome in ((post_tally, post_outcome), (comment_tally, comment_outcome)):
            for item, decision in zip(tally.candidates, outcome.decisions, strict=True):
                classified.append(
                    ClassifiedItem(
                        item=item,
                        decision=decision,
                        title_only=item.id in tally.recoverable,
                    )
                )
        return classified

    def _aggregate(
        self,
        classified: list[ClassifiedItem],
        machine: RunStateMachine,
        channel: ProgressChannel,
        result: IngestionResult,
    ) -> None:
        state = RunState.AGGREGATING
        t0 = self._enter(machine, channel, state, "Scoring pain signals")

        aggregation = self._aggregator.aggregate(
            classified, weights=result.weights or None, now=self._clock()
        )
        result.signals = aggregation.signals
        result.summary = aggregation.summary
        result.duplicates_merged = aggregation.duplicates_merged
        result.quality_level = self._quality_level(result.post_metrics, result.comment_metrics)

        self._record(
            result,
            state,
            type(self._aggregator).__name__,
            {"classified": len(classified)},
            {"signals": len(result.signals), "summary": result.summary},
            None,
            t0,
        )
        self._summarize_stage(
            channel,
            state,
            f"Scored {len(result.signals)} pain signals "
            f"(quality {result.quality_level}, confidence {result.summary.data_confidence})",
            {
                "signals": len(result.signals),
                "quality_level": result.quality_level,
                "data_confidence": result.summary.data_confidence,
                "recency_score": result.summary.recency_score,
            },
        )

    def _quality_level(self, posts: FilterMetrics, comments: FilterMetrics) -> QualityLevel:
        rates = [m.filter_rate for m in (posts, comments) if m.before > 0] or [0.0]
        return calculate_quality_level(
            rates[0],
            rates[1] if len(rates) > 1 else None,
            high_max=self._high_quality_max,
            medium_max=self._medium_quality_max,
        )
