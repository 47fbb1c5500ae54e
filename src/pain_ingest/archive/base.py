"""Protocols for the archive layer."""

from collections.abc import Mapping, Sequence
from typing import Any, Protocol

from pain_ingest.data import Comment, Community, Post, Priority


class QueryCache(Protocol):
    """Best-effort key-value store for archive payloads."""

    async def get(self, key: str) -> Any | None:
        """Return the payload stored under ``key``, or None on miss/expiry."""
        ...

    async def set(self, key: str, payload: Any, ttl: float) -> None:
        """Store ``payload`` under ``key`` for ``ttl`` seconds."""
        ...


class Archive(Protocol):
    """Interface for fetching community items from a data archive."""

    requests_made: int

    async def search_subreddits(
        self,
        prefix: str,
        *,
        limit: int = 20,
    ) -> list[Community]:
        """Look up communities whose name starts with ``prefix``."""
        ...

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
        """Fetch posts and comments from every community.

        Args:
            communities: Community names to query.
            posts_per_community: Target post count per community.
            comments_per_community: Target comment count per community.
            params: Extra query parameters shared by every request.
            priority: Rate-limiter routing hint.
            job_id: Calling job, passed to the rate limiter.

        Returns:
            Tuple of (posts, comments), each deduplicated by id.
        """
        ...
