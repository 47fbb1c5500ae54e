"""Protocol for relevance classifiers."""

from collections.abc import Callable, Sequence
from dataclasses import dataclass, field
from typing import Protocol

from pain_ingest.data import ClassificationDecision, RawItem, RelevanceTier, Usage


@dataclass(frozen=True)
class ClassificationProgress:
    """Snapshot emitted after each classified batch."""

    processed: int
    total: int
    relevant: int

    @property
    def filter_rate(self) -> float:
        """Percentage of processed items rejected so far."""
        if self.processed == 0:
            return 0.0
        return (self.processed - self.relevant) / self.processed * 100


@dataclass
class ClassificationResult:
    """Decisions for one ``classify`` call plus its accounting.

    ``parse_failures`` counts batches whose oracle output could not be
    decoded at all; ``oracle_failures`` counts batches whose oracle call
    raised.
    """

    decisions: list[ClassificationDecision] = field(default_factory=list)
    usage: Usage = field(default_factory=Usage)
    parse_failures: int = 0
    oracle_failures: int = 0

    @property
    def fallback_count(self) -> int:
        return sum(1 for d in self.decisions if d.fallback)

    def count(self, tier: RelevanceTier) -> int:
        return sum(1 for d in self.decisions if d.tier is tier)


ProgressCallback = Callable[[ClassificationProgress], None]


class RelevanceClassifier(Protocol):
    """Interface for batched relevance classification."""

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
            on_progress: Called after every batch.
            batch_size: Override for the configured batch size.

        Returns:
            Result with exactly one decision per input item, in input order.
        """
        ...
