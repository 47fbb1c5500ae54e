"""Claude-based relevance classifier with batched, defensively parsed output."""

import asyncio
import logging
import os
from collections.abc import Sequence

import anthropic

from pain_ingest.classifier.base import (
    ClassificationProgress,
    ClassificationResult,
    ProgressCallback,
)
from pain_ingest.classifier.parsing import (
    Unparseable,
    fallback_decision,
    parse_tier_tokens,
    resolve_decisions,
)
from pain_ingest.data import (
    ClassificationDecision,
    Post,
    RawItem,
    RelevanceTier,
    Usage,
    response_text,
    usage_from_response,
)
from pain_ingest.errors import ClassifierUnavailable

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = """\
You screen reddit posts and comments for evidence about a problem \
hypothesis. The hypothesis names a problem and the people who have it.

Classify every numbered item into exactly one tier:
- "C" (CORE): the author describes experiencing the problem in the \
hypothesis, in the context the hypothesis describes.
- "R" (RELATED): the item discusses the problem or the audience, but not \
both together (a similar problem elsewhere, or the audience with a \
different problem).
- "N" (REJECTED): off-topic, promotional, a joke, or unrelated.

Respond ONLY with a JSON array of letters, one per item, in the same order \
as the input, for example ["C", "N", "R"]. No markdown fences, no \
commentary.\
"""


def _item_to_prompt_text(item: RawItem, index: int, max_chars: int) -> str:
    """Format an item for inclusion in the classification prompt."""
    parts = [f"[{index + 1}] r/{item.community}"]
    if isinstance(item, Post):
        if item.title:
            parts.append(f"  Title: {item.title}")
        if item.body:
            parts.append(f"  Body: {item.body[:max_chars]}")
    else:
        parts.append(f"  Comment: {item.body[:max_chars]}")
    return "\n".join(parts)


class ClaudeRelevanceClassifier:
    """Classify items as CORE, RELATED or REJECTED using Claude.

    Items are sent in batches with bounded concurrency. A batch whose reply
    cannot be decoded, or whose call fails, has every item included as CORE
    so no evidence is silently dropped. If every batch of a call fails at
    the oracle, ``ClassifierUnavailable`` is raised instead.

    Args:
        model: Anthropic model to use.
        api_key: API key (defaults to CLAUDE_API_KEY env var).
        batch_size: Default max items per API call.
        max_concurrent_batches: Max batches in flight at once.
        max_tokens: Response token cap per call.
        max_chars: Characters of each item body included in the prompt.
    """

    def __init__(
        self,
        model: str = "claude-haiku-4-5-20251001",
        api_key: str | None = None,
        batch_size: int = 20,
        max_concurrent_batches: int = 5,
        max_tokens: int = 1024,
        max_chars: int = 500,
    ) -> None:
        resolved_key = api_key or os.environ.get("CLAUDE_API_KEY")
        self._client = anthropic.AsyncAnthropic(api_key=resolved_key)
        self._model = model
        self._batch_size = batch_size
        self._max_concurrent_batches = max_concurrent_batches
        self._max_tokens = max_tokens
        self._max_chars = max_chars

    async def classify(
        self,
        items: Sequence[RawItem],
        context: str,
        on_progress: ProgressCallback | None = None,
        *,
        batch_size: int | None = None,
    ) -> ClassificationResult:
        """Classify items against a hypothesis.

        Args:
            items: Posts or comments to classify.
            context: The hypothesis the items are judged against.
            on_progress: Called after every batch completes.
            batch_size: Override for the configured batch size.

        Returns:
            Result with exactly one decision per input item, in input order.
        """
        if not items:
            return ClassificationResult()

        size = batch_size or self._batch_size
        batches: list[Sequence[RawItem]] = []
        for i in range(0, len(items), size):
            batches.append(items[i : i + size])

        semaphore = asyncio.Semaphore(self._max_concurrent_batches)
        processed = 0
        relevant = 0

        async def run_batch(index: int, batch: Sequence[RawItem]) -> ClassificationResult:
            nonlocal processed, relevant
            async with semaphore:
                try:
                    outcome = await self._classify_batch(batch, context)
                except Exception as e:
                    logger.warning("Classification batch %d failed: %s", index, e)
                    outcome = ClassificationResult(
                        decisions=[fallback_decision(item, "oracle call failed") for item in batch],
                        oracle_failures=1,
                    )

            processed += len(batch)
            relevant += sum(1 for d in outcome.decisions if d.tier is not RelevanceTier.REJECTED)
            if on_progress is not None:
                on_progress(
                    ClassificationProgress(processed=processed, total=len(items), relevant=relevant)
                )
            return outcome

        results = await asyncio.gather(*(run_batch(i, b) for i, b in enumerate(batches)))

        combined = ClassificationResult()
        for outcome in results:
            combined.decisions.extend(outcome.decisions)
            combined.usage += outcome.usage
            combined.parse_failures += outcome.parse_failures
            combined.oracle_failures += outcome.oracle_failures

        if combined.oracle_failures == len(batches):
            msg = f"All {len(batches)} classification batches failed"
            raise ClassifierUnavailable(msg)

        return combined

    async def _classify_batch(
        self,
        batch: Sequence[RawItem],
        context: str,
    ) -> ClassificationResult:
        """Classify a single batch of items."""
        item_texts = [_item_to_prompt_text(item, i, self._max_chars) for i, item in enumerate(batch)]
        user_prompt = (
            f"Hypothesis: {context}\n\n"
            f"Classify these {len(batch)} items:\n\n" + "\n\n".join(item_texts)
        )

        response = await self._client.messages.create(
            model=self._model,
            max_tokens=self._max_tokens,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": user_prompt}],
        )
        usage: Usage = usage_from_response(self._model, response)

        parsed = parse_tier_tokens(response_text(response))
        parse_failures = 0
        if isinstance(parsed, Unparseable):
            parse_failures = 1
            logger.warning(
                "Could not parse classification output, including %d items as CORE: %r",
                len(batch),
                parsed.text[:200],
            )

        decisions: list[ClassificationDecision] = resolve_decisions(batch, parsed)
        return ClassificationResult(
            decisions=decisions,
            usage=usage,
            parse_failures=parse_failures,
        )
