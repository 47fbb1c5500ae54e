"""Tests for the ingestion orchestrator."""

import asyncio
import contextlib
import json
from collections.abc import Mapping, Sequence
from datetime import UTC, datetime, timedelta
from pathlib import Path
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest

from pain_ingest.aggregator import SignalAggregator
from pain_ingest.classifier import (
    ClassificationProgress,
    ClassificationResult,
    ClaudeRelevanceClassifier,
    ProgressCallback,
)
from pain_ingest.data import (
    ClassificationDecision,
    Comment,
    Community,
    ExtractedKeywords,
    Post,
    Priority,
    ProgressEvent,
    QualityLevel,
    RawItem,
    RelevanceTier,
    StepStatus,
    Usage,
)
from pain_ingest.discovery import DiscoveryResult
from pain_ingest.errors import ClassifierUnavailable, FetchExhausted, RejectReason, RunRejected
from pain_ingest.pipeline import (
    DEFAULT_STEP,
    STAGE_ORDER,
    InMemoryJobStatusStore,
    IngestionRequest,
    PipelineOrchestrator,
    ProgressChannel,
    RunState,
)
from pain_ingest.run_logger import RunLogger

NOW = datetime(2025, 6, 1, tzinfo=UTC)
JOB = "job-1"
HYPOTHESIS = "Freelancers struggle to get clients to pay invoices on time"


# -- Fakes --


class FakeArchive:
    """Archive returning a fixed haul, optionally failing or blocking."""

    def __init__(
        self,
        posts: Sequence[Post] = (),
        comments: Sequence[Comment] = (),
        *,
        error: Exception | None = None,
        block: bool = False,
    ) -> None:
        self.posts = list(posts)
        self.comments = list(comments)
        self.error = error
        self.block = block
        self.started = asyncio.Event()
        self.requests_made = 0
        self.calls: list[dict[str, Any]] = []

    async def search_subreddits(self, prefix: str, *, limit: int = 20) -> list[Community]:
        return []

    async def fetch_from_communities(
        self,
        communities: Sequence[str],
        *,
        posts_per_community: int,
        comments_per_community: int,
        params: Mapping[str, Any] | None = None,
        priority: Priority = Priority.RESEARCH,
        job_id: str | None = None,
    ) -> tuple[list[Post], list[Comment]]:
        self.calls.append(
            {
                "communities": list(communities),
                "posts_per_community": posts_per_community,
                "comments_per_community": comments_per_community,
                "params": dict(params or {}),
                "job_id": job_id,
            }
        )
        self.started.set()
        if self.block:
            await asyncio.Event().wait()
        if self.error is not None:
            raise self.error
        self.requests_made += 3
        return (self.posts, self.comments)


class FakeClassifier:
    """Classifier returning preset tiers by item id (REJECTED otherwise)."""

    def __init__(
        self, tiers: Mapping[str, RelevanceTier] | None = None, *, error: Exception | None = None
    ) -> None:
        self.tiers = dict(tiers or {})
        self.error = error
        self.batch_sizes: list[int | None] = []

    async def classify(
        self,
        items: Sequence[RawItem],
        context: str,
        on_progress: ProgressCallback | None = None,
        *,
        batch_size: int | None = None,
    ) -> ClassificationResult:
        self.batch_sizes.append(batch_size)
        if self.error is not None:
            raise self.error
        decisions = [
            ClassificationDecision(
                item_id=item.id, tier=self.tiers.get(item.id, RelevanceTier.REJECTED)
            )
            for item in items
        ]
        if on_progress is not None:
            relevant = sum(1 for d in decisions if d.tier is not RelevanceTier.REJECTED)
            on_progress(
                ClassificationProgress(processed=len(items), total=len(items), relevant=relevant)
            )
        return ClassificationResult(decisions=decisions)


class FakeDiscoverer:
    def __init__(self, result: DiscoveryResult) -> None:
        self.result = result

    async def discover(
        self, hypothesis: str, *, exclude: Sequence[str] = ()
    ) -> tuple[DiscoveryResult, Usage]:
        return (self.result, Usage())


class FakeWeigher:
    def __init__(self, weights: dict[str, float]) -> None:
        self.weights = weights

    async def weigh(
        self, hypothesis: str, communities: Sequence[str]
    ) -> tuple[dict[str, float], Usage]:
        return (self.weights, Usage())


def _post(i: int, body: str | None = None, title: str | None = None) -> Post:
    return Post(
        id=f"p{i}",
        title=title or f"Late invoices again, week {i}",
        body=body or f"Chasing unpaid invoices every month is a nightmare for me, case {i}.",
        community="freelance",
        created_at=NOW - timedelta(days=i % 200),
    )


def _comment(i: int) -> Comment:
    return Comment(
        id=f"c{i}",
        body=f"Same here, clients paying late is so frustrating, comment {i}.",
        community="freelance",
        created_at=NOW - timedelta(days=3),
    )


def _invoice_haul() -> tuple[list[Post], dict[str, RelevanceTier]]:
    """120 posts, 10 mention an excluded keyword; 30 CORE, 20 RELATED, 60 REJECTED."""
    posts = [_post(i) for i in range(110)]
    posts += [
        _post(110 + i, body=f"Anyone trading crypto to get paid faster? Asking for case {i}.")
        for i in range(10)
    ]
    tiers = {f"p{i}": RelevanceTier.CORE for i in range(30)}
    tiers.update({f"p{i}": RelevanceTier.RELATED for i in range(30, 50)})
    return (posts, tiers)


def _orchestrator(
    archive: FakeArchive,
    classifier: Any,
    store: InMemoryJobStatusStore | None = None,
    **kwargs: Any,
) -> PipelineOrchestrator:
    return PipelineOrchestrator(
        archive,  # type: ignore[arg-type]
        classifier,
        SignalAggregator(),
        store or InMemoryJobStatusStore(),
        clock=lambda: NOW,
        **kwargs,
    )


def _request(**kwargs: Any) -> IngestionRequest:
    defaults: dict[str, Any] = {
        "hypothesis": HYPOTHESIS,
        "job_id": JOB,
        "communities": ("r/Freelance",),
        "keywords": ExtractedKeywords(primary=("invoice",), exclude=("crypto",)),
    }
    defaults.update(kwargs)
    return IngestionRequest(**defaults)


async def _run_collecting(
    orchestrator: PipelineOrchestrator, request: IngestionRequest
) -> tuple[Any, list[ProgressEvent]]:
    channel = ProgressChannel()
    result = await orchestrator.run(request, channel)
    events = [event async for event in channel]
    return (result, events)


# -- Happy path --


async def test_filter_metrics_after_keyword_exclusion() -> None:
    posts, tiers = _invoice_haul()
    store = InMemoryJobStatusStore()
    orchestrator = _orchestrator(FakeArchive(posts), FakeClassifier(tiers), store)

    result = await orchestrator.run(_request())

    assert result.succeeded
    metrics = result.post_metrics
    assert metrics.pre_filter_skipped == 10
    assert metrics.before == 110
    assert metrics.after == 50
    assert metrics.filtered_out == 60
    assert metrics.core_signals == 30
    assert metrics.related_signals == 20
    assert metrics.rejected == 60
    assert metrics.filter_rate == pytest.approx(54.545, abs=0.01)
    assert result.metrics()["posts"]["filter_rate"] == 54.5
    assert result.quality_level is QualityLevel.MEDIUM
    assert len(result.signals) == 50
    assert result.usage.archive_requests == 3


async def test_metrics_balance_for_posts_and_comments() -> None:
    posts, tiers = _invoice_haul()
    posts.append(_post(500, body="too short"))
    comments = [_comment(i) for i in range(10)]
    tiers.update({f"c{i}": RelevanceTier.CORE for i in range(4)})
    orchestrator = _orchestrator(FakeArchive(posts, comments), FakeClassifier(tiers))

    result = await orchestrator.run(_request())

    for metrics in (result.post_metrics, result.comment_metrics):
        assert metrics.before == metrics.after + metrics.filtered_out
        assert metrics.filtered_out == (
            metrics.quality_filtered + metrics.similarity_filtered + metrics.rejected
        )
    assert result.post_metrics.quality_filtered == 1
    assert result.comment_metrics.after == 4


async def test_completed_run_updates_job_store_and_saves_payload() -> None:
    posts, tiers = _invoice_haul()
    store = InMemoryJobStatusStore()
    orchestrator = _orchestrator(FakeArchive(posts), FakeClassifier(tiers), store)

    await orchestrator.run(_request())

    assert store.history == [
        (JOB, DEFAULT_STEP, StepStatus.IN_PROGRESS),
        (JOB, DEFAULT_STEP, StepStatus.COMPLETED),
    ]
    payload = store.get_result(JOB, DEFAULT_STEP)
    assert payload is not None
    assert payload["job_id"] == JOB
    assert payload["metrics"]["posts"]["filter_rate"] == 54.5
    assert payload["metrics"]["quality_level"] == "medium"
    assert len(payload["signals"]) == 50
    json.dumps(payload)


async def test_progress_events_follow_stage_order() -> None:
    posts, tiers = _invoice_haul()
    orchestrator = _orchestrator(FakeArchive(posts), FakeClassifier(tiers))

    _, events = await _run_collecting(orchestrator, _request())

    entered = [e.step for e in events if e.type == "progress" and e.step != "classifying"]
    assert entered == [s.value for s in STAGE_ORDER if s is not RunState.CLASSIFYING]
    completed = [e.step for e in events if e.type == "stage_complete"]
    assert completed == [s.value for s in STAGE_ORDER]
    assert events[-1].type == "complete"
    assert events[-1].data is not None
    assert events[-1].data["signals"] == 50
    classifying = [e for e in events if e.step == "classifying" and e.type == "progress"]
    assert classifying[-1].data is not None
    assert classifying[-1].data["processed"] == 110


async def test_fetch_uses_cleaned_communities_and_lookback() -> None:
    archive = FakeArchive([_post(1)])
    orchestrator = _orchestrator(archive, FakeClassifier(), posts_per_community=50)

    await orchestrator.run(_request(communities=("r/Freelance", "freelance", "WebDev")))

    call = archive.calls[0]
    assert call["communities"] == ["freelance", "webdev"]
    assert call["posts_per_community"] == 50
    assert call["comments_per_community"] == 300
    assert call["params"]["after"] == NOW - timedelta(days=365)
    assert call["job_id"] == JOB


async def test_request_overrides_sizes() -> None:
    archive = FakeArchive([_post(1)])
    orchestrator = _orchestrator(archive, FakeClassifier())

    await orchestrator.run(_request(posts_per_community=10, lookback_days=30))

    assert archive.calls[0]["posts_per_community"] == 10
    assert archive.calls[0]["params"]["after"] == NOW - timedelta(days=30)


async def test_batch_sizes_differ_for_posts_and_comments() -> None:
    classifier = FakeClassifier()
    orchestrator = _orchestrator(
        FakeArchive([_post(1)], [_comment(1)]),
        classifier,
        post_batch_size=20,
        comment_batch_size=25,
    )

    await orchestrator.run(_request())

    assert classifier.batch_sizes == [20, 25]


async def test_title_only_posts_are_classified_and_flagged() -> None:
    removed = _post(1, title="Clients paying invoices late is a total nightmare", body="[removed]")
    orchestrator = _orchestrator(
        FakeArchive([removed, _post(2)]),
        FakeClassifier({"p1": RelevanceTier.CORE, "p2": RelevanceTier.CORE}),
    )

    result = await orchestrator.run(_request())

    assert result.post_metrics.title_only == 1
    assert result.post_metrics.after == 2
    title_only = [s for s in result.signals if s.title_only]
    assert [s.source.item_id for s in title_only] == ["p1"]


async def test_unparseable_oracle_output_includes_batch_as_core() -> None:
    text_block = MagicMock()
    text_block.text = "I think most of these are relevant."
    usage = MagicMock()
    usage.input_tokens = 300
    usage.output_tokens = 10
    usage.cache_creation_input_tokens = 0
    usage.cache_read_input_tokens = 0
    response = MagicMock()
    response.content = [text_block]
    response.usage = usage

    classifier = ClaudeRelevanceClassifier(api_key="test-key", batch_size=20)
    object.__setattr__(classifier._client.messages, "create", AsyncMock(return_value=response))
    orchestrator = _orchestrator(FakeArchive([_post(i) for i in range(20)]), classifier)

    result = await orchestrator.run(_request())

    assert result.post_metrics.core_signals == 20
    assert result.post_metrics.parse_failures == 1
    assert result.post_metrics.fallback_decisions == 20
    assert result.usage.input_tokens == 300


# -- Discovery --


async def test_discovered_communities_and_weights_are_used() -> None:
    archive = FakeArchive([_post(1)])
    orchestrator = _orchestrator(
        archive,
        FakeClassifier({"p1": RelevanceTier.CORE}),
        community_discoverer=FakeDiscoverer(
            DiscoveryResult(communities=("freelance", "smallbusiness"), warning="Limited results")
        ),
        community_weigher=FakeWeigher({"freelance": 1.5, "smallbusiness": 0.7}),
    )

    result, events = await _run_collecting(orchestrator, _request(communities=()))

    assert result.communities == ("freelance", "smallbusiness")
    assert archive.calls[0]["communities"] == ["freelance", "smallbusiness"]
    assert result.weights == {"freelance": 1.5, "smallbusiness": 0.7}
    assert all(s.weight_applied for s in result.signals)
    assert any(e.message == "Limited results" for e in events)


async def test_discovery_capped_by_max_communities() -> None:
    archive = FakeArchive()
    names = tuple(f"sub{i}" for i in range(20))
    orchestrator = _orchestrator(
        archive,
        FakeClassifier(),
        community_discoverer=FakeDiscoverer(DiscoveryResult(communities=names)),
        max_communities=15,
    )

    result = await orchestrator.run(_request(communities=()))

    assert len(result.communities) == 15


async def test_discovery_finding_nothing_fails_the_run() -> None:
    store = InMemoryJobStatusStore()
    archive = FakeArchive()
    orchestrator = _orchestrator(
        archive,
        FakeClassifier(),
        store,
        community_discoverer=FakeDiscoverer(DiscoveryResult()),
    )

    result = await orchestrator.run(_request(communities=()))

    assert result.state is RunState.FAILED
    assert result.failed_stage is RunState.COMMUNITY_DISCOVERY
    assert archive.calls == []
    assert await store.get_step_status(JOB, DEFAULT_STEP) is StepStatus.FAILED


# -- Failures --


async def test_fetch_failure_marks_job_failed() -> None:
    store = InMemoryJobStatusStore()
    archive = FakeArchive(error=FetchExhausted("/api/posts/search", 3))
    orchestrator = _orchestrator(archive, FakeClassifier(), store)

    result, events = await _run_collecting(orchestrator, _request())

    assert not result.succeeded
    assert result.state is RunState.FAILED
    assert result.failed_stage is RunState.FETCHING
    assert result.error is not None and "3 attempts" in result.error
    assert store.history == [
        (JOB, DEFAULT_STEP, StepStatus.IN_PROGRESS),
        (JOB, DEFAULT_STEP, StepStatus.FAILED),
    ]
    assert store.get_result(JOB, DEFAULT_STEP) is None
    assert events[-1].type == "error"
    assert events[-1].data == {"failed_stage": "fetching", "error_type": "FetchExhausted"}


async def test_classifier_unavailable_fails_during_classifying() -> None:
    store = InMemoryJobStatusStore()
    orchestrator = _orchestrator(
        FakeArchive([_post(1)]),
        FakeClassifier(error=ClassifierUnavailable("All 1 classification batches failed")),
        store,
    )

    result = await orchestrator.run(_request())

    assert result.failed_stage is RunState.CLASSIFYING
    assert await store.get_step_status(JOB, DEFAULT_STEP) is StepStatus.FAILED


# -- Rejections --


@pytest.mark.parametrize(
    ("overrides", "reason"),
    [
        ({"hypothesis": "   "}, RejectReason.MISSING_HYPOTHESIS),
        ({"job_id": ""}, RejectReason.MISSING_JOB_ID),
        ({"communities": ()}, RejectReason.NO_COMMUNITIES),
    ],
)
async def test_invalid_requests_are_rejected(
    overrides: dict[str, Any], reason: RejectReason
) -> None:
    store = InMemoryJobStatusStore()
    archive = FakeArchive([_post(1)])
    orchestrator = _orchestrator(archive, FakeClassifier(), store)
    channel = ProgressChannel()

    with pytest.raises(RunRejected) as exc_info:
        await orchestrator.run(_request(**overrides), channel)

    assert exc_info.value.reason is reason
    assert channel.closed
    assert archive.calls == []
    assert store.history == []


async def test_locked_step_is_rejected() -> None:
    store = InMemoryJobStatusStore()
    store.lock(JOB, DEFAULT_STEP)
    archive = FakeArchive([_post(1)])
    orchestrator = _orchestrator(archive, FakeClassifier(), store)

    with pytest.raises(RunRejected) as exc_info:
        await orchestrator.run(_request())

    assert exc_info.value.reason is RejectReason.STEP_LOCKED
    assert archive.calls == []
    assert await store.get_step_status(JOB, DEFAULT_STEP) is StepStatus.LOCKED


# -- Cancellation --


async def test_cancelled_run_is_not_marked_failed() -> None:
    store = InMemoryJobStatusStore()
    archive = FakeArchive(block=True)
    orchestrator = _orchestrator(archive, FakeClassifier(), store)
    channel = ProgressChannel()

    task = asyncio.create_task(orchestrator.run(_request(), channel))
    await archive.started.wait()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task

    events = [event async for event in channel]
    assert events[-1].type == "cancelled"
    assert events[-1].step == "fetching"
    assert store.history == [(JOB, DEFAULT_STEP, StepStatus.IN_PROGRESS)]


async def test_closing_stream_cancels_run() -> None:
    store = InMemoryJobStatusStore()
    archive = FakeArchive(block=True)
    orchestrator = _orchestrator(archive, FakeClassifier(), store)
    seen: list[str] = []

    async with contextlib.aclosing(orchestrator.stream(_request())) as events:
        async for event in events:
            seen.append(event.step)
            if event.step == "fetching":
                break

    assert seen[-1] == "fetching"
    assert store.history == [(JOB, DEFAULT_STEP, StepStatus.IN_PROGRESS)]


async def test_stream_yields_every_event_of_a_completed_run() -> None:
    posts, tiers = _invoice_haul()
    orchestrator = _orchestrator(FakeArchive(posts), FakeClassifier(tiers))

    events = [event async for event in orchestrator.stream(_request())]

    assert events[0].step == "keyword_extraction"
    assert events[-1].type == "complete"


# -- Run logging --


async def test_run_log_written(tmp_path: Path) -> None:
    posts, tiers = _invoice_haul()
    run_logger = RunLogger(tmp_path)
    orchestrator = _orchestrator(FakeArchive(posts), FakeClassifier(tiers), run_logger=run_logger)

    result = await orchestrator.run(_request())

    assert result.log_path is not None
    data = json.loads(result.log_path.read_text())
    assert data["job_id"] == JOB
    assert data["state"] == "completed"
    assert data["signal_count"] == 50
    assert [s["stage"] for s in data["stages"]] == [s.value for s in STAGE_ORDER]
    assert data["metrics"]["posts"]["filter_rate"] == 54.5


async def test_failed_run_log_records_stage(tmp_path: Path) -> None:
    run_logger = RunLogger(tmp_path)
    orchestrator = _orchestrator(
        FakeArchive(error=FetchExhausted("/api/posts/search", 3)),
        FakeClassifier(),
        run_logger=run_logger,
    )

    result = await orchestrator.run(_request())

    assert result.log_path is not None
    data = json.loads(result.log_path.read_text())
    assert data["state"] == "failed"
    assert data["failed_stage"] == "fetching"
