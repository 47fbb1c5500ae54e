"""Protocols and result types for hypothesis-driven discovery helpers."""

from collections.abc import Sequence
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol

from pain_ingest.data import ExtractedKeywords, Usage


class Recommendation(StrEnum):
    """How confidently a run should proceed with the discovered communities."""

    PROCEED = "proceed"
    PROCEED_WITH_CAUTION = "proceed_with_caution"
    RECONSIDER = "reconsider"


@dataclass(frozen=True)
class CommunitySuggestion:
    """A suggested community and why it was suggested."""

    name: str
    reason: str = ""
    relevance: str = "medium"


@dataclass(frozen=True)
class DiscoveryResult:
    """Communities to search for a hypothesis."""

    communities: tuple[str, ...] = ()
    suggestions: tuple[CommunitySuggestion, ...] = ()
    warning: str | None = None
    recommendation: Recommendation = Recommendation.PROCEED
    fallback: bool = False


class KeywordExtractor(Protocol):
    """Interface for deriving search keywords from a hypothesis."""

    async def extract(self, hypothesis: str) -> tuple[ExtractedKeywords, Usage]:
        """Extract keywords.

        Args:
            hypothesis: Free-text problem hypothesis.

        Returns:
            Tuple of (keywords, usage).
        """
        ...


class CommunityDiscoverer(Protocol):
    """Interface for finding communities that discuss a hypothesis."""

    async def discover(
        self,
        hypothesis: str,
        *,
        exclude: Sequence[str] = (),
    ) -> tuple[DiscoveryResult, Usage]:
        """Suggest communities.

        Args:
            hypothesis: Free-text problem hypothesis.
            exclude: Community names to leave out.

        Returns:
            Tuple of (discovery result, usage).
        """
        ...


class CommunityWeigher(Protocol):
    """Interface for weighting communities by relevance to a hypothesis."""

    async def weigh(
        self,
        hypothesis: str,
        communities: Sequence[str],
    ) -> tuple[dict[str, float], Usage]:
        """Assign a weight in [0.5, 1.5] to every community.

        Returns:
            Tuple of (normalized community name -> weight, usage).
        """
        ...
