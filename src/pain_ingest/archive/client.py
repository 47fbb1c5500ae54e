"""Retrying, caching client for the Arctic Shift reddit archive."""

import asyncio
import json
import logging
import math
import re
from collections.abc import Awaitable, Callable, Mapping, Sequence
from datetime import UTC, datetime
from typing import Any, TypeVar

import httpx

from pain_ingest.archive.base import QueryCache
from pain_ingest.archive.cache import DEFAULT_TTL_SECONDS, generate_cache_key
from pain_ingest.data import Comment, Community, Post, Priority, RawItem
from pain_ingest.errors import ArchiveHTTPError, FetchExhausted
from pain_ingest.ratelimit import RateLimiter

logger = logging.getLogger(__name__)

BASE_URL = "https://arctic-shift.photon-reddit.com"
POSTS_ENDPOINT = "/api/posts/search"
COMMENTS_ENDPOINT = "/api/comments/search"
SUBREDDITS_ENDPOINT = "/api/subreddits/search"

DEFAULT_LIMIT = 50
DEFAULT_SUBREDDIT_LIMIT = 20
MAX_PAGE_SIZE = 100
AUTO_LIMIT = "auto"
TIMEOUT_BACKOFF_SECONDS = (10.0, 15.0, 20.0)
USER_AGENT = "pain-ingest/0.1 (research tool)"

_COMMUNITY_PREFIX = re.compile(r"^/?r/", re.IGNORECASE)

ItemT = TypeVar("ItemT", bound=RawItem)


def sanitize_community(name: str | None) -> str | None:
    """Normalize a community name: no ``r/`` marker, trimmed, lowercase."""
    if not name:
        return None
    cleaned = _COMMUNITY_PREFIX.sub("", name.strip()).strip().lower()
    return cleaned or None


def _clamp_limit(value: Any, default: int) -> str:
    if value == AUTO_LIMIT:
        return AUTO_LIMIT
    try:
        limit = int(value)
    except (TypeError, ValueError):
        limit = default
    return str(min(max(limit, 1), MAX_PAGE_SIZE))


def _format_value(value: Any) -> str:
    if isinstance(value, datetime):
        return str(int(value.timestamp()))
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def sanitize_params(
    params: Mapping[str, Any],
    *,
    default_limit: int = DEFAULT_LIMIT,
) -> dict[str, str]:
    """Normalize query parameters before caching and sending.

    Drops ``None`` and empty-string values (the archive rejects empty
    filters), normalizes ``subreddit``, clamps ``limit`` into 1-100 unless it
    is ``"auto"``, and returns the parameters sorted by key.
    """
    cleaned: dict[str, str] = {}
    for key, value in params.items():
        if value is None or value == "":
            continue
        if key == "subreddit":
            community = sanitize_community(str(value))
            if community is None:
                continue
            cleaned[key] = community
        elif key == "limit":
            cleaned[key] = _clamp_limit(value, default_limit)
        else:
            cleaned[key] = _format_value(value)

    cleaned.setdefault("limit", str(default_limit))
    return dict(sorted(cleaned.items()))


def _is_timeout_error(body: str) -> bool:
    """Whether a 422 body reports a server-side query timeout."""
    try:
        parsed = json.loads(body)
    except ValueError:
        return "timeout" in body.lower()
    if not isinstance(parsed, dict):
        return "timeout" in body.lower()

    fields: list[Any] = [parsed.get("error"), parsed.get("message"), parsed.get("detail")]
    errors = parsed.get("errors")
    fields.extend(errors if isinstance(errors, list) else [errors])
    return any(isinstance(v, str) and "timeout" in v.lower() for v in fields)


def _parse_timestamp(value: Any) -> datetime | None:
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(float(value), tz=UTC)
    except (TypeError, ValueError, OverflowError, OSError):
        return None


def _as_int(value: Any) -> int:
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        return 0


def post_from_payload(raw: Mapping[str, Any]) -> Post:
    """Convert an archive post record into a ``Post``."""
    return Post(
        id=str(raw["id"]),
        title=raw.get("title") or "",
        body=raw.get("selftext") or "",
        community=raw.get("subreddit") or "",
        author=raw.get("author") or "",
        created_at=_parse_timestamp(raw.get("created_utc")),
        engagement_score=_as_int(raw.get("score")),
        permalink=raw.get("permalink") or "",
        num_comments=_as_int(raw.get("num_comments")),
        url=raw.get("url") or "",
    )


def comment_from_payload(raw: Mapping[str, Any]) -> Comment:
    """Convert an archive comment record into a ``Comment``."""
    return Comment(
        id=str(raw["id"]),
        body=raw.get("body") or "",
        community=raw.get("subreddit") or "",
        author=raw.get("author") or "",
        created_at=_parse_timestamp(raw.get("created_utc")),
        engagement_score=_as_int(raw.get("score")),
        permalink=raw.get("permalink") or "",
        link_id=raw.get("link_id") or "",
        parent_id=raw.get("parent_id") or "",
    )


def community_from_payload(raw: Mapping[str, Any]) -> Community:
    """Convert an archive subreddit record into a ``Community``."""
    name = raw.get("display_name") or raw.get("name") or ""
    return Community(
        name=sanitize_community(name) or "",
        title=raw.get("title") or "",
        description=raw.get("public_description") or raw.get("description") or "",
        subscribers=_as_int(raw.get("subscribers")),
    )


def _payload_records(payload: Any) -> list[Mapping[str, Any]]:
    if not isinstance(payload, dict):
        return []
    data = payload.get("data") or []
    return [r for r in data if isinstance(r, dict) and r.get("id") is not None]


class ArchiveClient:
    """Client for the Arctic Shift archive API.

    Every request goes through the shared ``RateLimiter``; responses are
    cached for 24 hours keyed by the sanitized, sorted parameters. Failed
    requests are retried up to ``max_retries`` times: generic failures back
    off exponentially, while a 422 reporting a server-side query timeout
    waits on the longer ``timeout_backoff`` schedule.

    Args:
        rate_limiter: The process-wide rate limiter.
        base_url: Archive base URL.
        cache: Query cache; caching is skipped when None.
        cache_ttl: Cache lifetime in seconds.
        max_retries: Attempts per logical request.
        backoff_base: First generic backoff in seconds, doubled per attempt.
        timeout_backoff: Waits after successive 422 timeouts.
        timeout: HTTP timeout in seconds.
        http_client: Preconfigured ``httpx.AsyncClient`` (created if None).
        sleep: Coroutine used for backoff waits.
    """

    def __init__(
        self,
        rate_limiter: RateLimiter,
        *,
        base_url: str = BASE_URL,
        cache: QueryCache | None = None,
        cache_ttl: float = DEFAULT_TTL_SECONDS,
        max_retries: int = 3,
        backoff_base: float = 1.0,
        timeout_backoff: Sequence[float] = TIMEOUT_BACKOFF_SECONDS,
        timeout: float = 30.0,
        http_client: httpx.AsyncClient | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        if max_retries < 1:
            raise ValueError("max_retries must be at least 1")
        self._rate_limiter = rate_limiter
        self._base_url = base_url.rstrip("/")
        self._cache = cache
        self._cache_ttl = cache_ttl
        self._max_retries = max_retries
        self._backoff_base = backoff_base
        self._timeout_backoff = tuple(timeout_backoff) or TIMEOUT_BACKOFF_SECONDS
        self._client = http_client or httpx.AsyncClient(timeout=timeout)
        self._sleep = sleep
        self.requests_made = 0
        self._inflight: dict[str, asyncio.Future[Any]] = {}

    async def __aenter__(self) -> "ArchiveClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    # ------------------------------------------------------------
    # Single-page searches
    # ------------------------------------------------------------

    async def search_posts(
        self,
        params: Mapping[str, Any],
        *,
        priority: Priority = Priority.RESEARCH,
        job_id: str | None = None,
    ) -> list[Post]:
        """Search posts.

        Args:
            params: Archive query parameters (``subreddit``, ``query``,
                ``title``, ``author``, ``after``, ``before``, ``limit``, ``sort``).
            priority: Rate-limiter routing hint.
            job_id: Calling job, passed to the rate limiter.

        Returns:
            Posts from one page of results.
        """
        payload = await self._get_json(
            POSTS_ENDPOINT, sanitize_params(params), priority=priority, job_id=job_id
        )
        return [post_from_payload(r) for r in _payload_records(payload)]

    async def search_comments(
        self,
        params: Mapping[str, Any],
        *,
        priority: Priority = Priority.RESEARCH,
        job_id: str | None = None,
    ) -> list[Comment]:
        """Search comments.

        Args:
            params: Archive query parameters (``subreddit``, ``body``,
                ``author``, ``link_id``, ``after``, ``before``, ``limit``, ``sort``).
            priority: Rate-limiter routing hint.
            job_id: Calling job, passed to the rate limiter.

        Returns:
            Comments from one page of results.
        """
        payload = await self._get_json(
            COMMENTS_ENDPOINT, sanitize_params(params), priority=priority, job_id=job_id
        )
        return [comment_from_payload(r) for r in _payload_records(payload)]

    async def search_subreddits(
        self,
        prefix: str,
        *,
        limit: int = DEFAULT_SUBREDDIT_LIMIT,
        priority: Priority = Priority.RESEARCH,
    ) -> list[Community]:
        """Look up communities whose name starts with ``prefix``."""
        params = sanitize_params(
            {"subreddit_prefix": sanitize_community(prefix), "limit": limit},
            default_limit=DEFAULT_SUBREDDIT_LIMIT,
        )
        payload = await self._get_json(SUBREDDITS_ENDPOINT, params, priority=priority)
        return [community_from_payload(r) for r in _payload_records(payload)]

    # ------------------------------------------------------------
    # Paginated searches
    # ------------------------------------------------------------

    async def search_posts_paginated(
        self,
        params: Mapping[str, Any],
        target_count: int,
        *,
        priority: Priority = Priority.RESEARCH,
        job_id: str | None = None,
    ) -> list[Post]:
        """Collect up to ``target_count`` unique posts across pages."""

        async def fetch(page_params: dict[str, Any]) -> list[Post]:
            return await self.search_posts(page_params, priority=priority, job_id=job_id)

        return await self._paginate(fetch, params, target_count)

    async def search_comments_paginated(
        self,
        params: Mapping[str, Any],
        target_count: int,
        *,
        priority: Priority = Priority.RESEARCH,
        job_id: str | None = None,
    ) -> list[Comment]:
        """Collect up to ``target_count`` unique comments across pages."""

        async def fetch(page_params: dict[str, Any]) -> list[Comment]:
            return await self.search_comments(page_params, priority=priority, job_id=job_id)

        return await self._paginate(fetch, params, target_count)

    async def _paginate(
        self,
        fetch_page: Callable[[dict[str, Any]], Awaitable[list[ItemT]]],
        params: Mapping[str, Any],
        target_count: int,
    ) -> list[ItemT]:
        """Walk pages newest-first using the oldest timestamp as the cursor.

        Stops when a page comes back empty or the target is reached. A
        failure on the first page propagates; a failure on a later page ends
        pagination with what was collected so far.
        """
        items: list[ItemT] = []
        seen_ids: set[str] = set()
        cursor: int | None = None
        max_pages = math.ceil(target_count / MAX_PAGE_SIZE)

        for page in range(max_pages):
            if len(items) >= target_count:
                break
            page_params: dict[str, Any] = {**params, "limit": MAX_PAGE_SIZE}
            page_params.setdefault("sort", "desc")
            if cursor is not None:
                page_params["before"] = cursor

            try:
                batch = await fetch_page(page_params)
            except FetchExhausted as e:
                if page == 0:
                    raise
                logger.warning("Stopping pagination after %d pages: %s", page, e)
                break

            if not batch:
                break

            for item in batch:
                if item.id not in seen_ids and len(items) < target_count:
                    seen_ids.add(item.id)
                    items.append(item)

            oldest = batch[-1].created_utc
            if oldest is None:
                break
            cursor = oldest

        return items

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
        """Fetch posts and comments from every community concurrently.

        A community whose fetch fails is logged and skipped. Raises
        ``FetchExhausted`` only when every request failed.
        """
        shared = dict(params or {})
        tasks: list[Awaitable[list[Post]] | Awaitable[list[Comment]]] = []
        for community in communities:
            community_params = {**shared, "subreddit": community}
            tasks.append(
                self.search_posts_paginated(
                    community_params, posts_per_community, priority=priority, job_id=job_id
                )
            )
            tasks.append(
                self.search_comments_paginated(
                    community_params, comments_per_community, priority=priority, job_id=job_id
                )
            )

        results = await asyncio.gather(*tasks, return_exceptions=True)

        posts: list[Post] = []
        comments: list[Comment] = []
        seen_posts: set[str] = set()
        seen_comments: set[str] = set()
        failures = 0
        last_error: BaseException | None = None

        for i, result in enumerate(results):
            community = communities[i // 2]
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                failures += 1
                last_error = result
                logger.warning("Failed to fetch from r/%s: %s", community, result)
                continue
            for item in result:
                if isinstance(item, Post) and item.id not in seen_posts:
                    seen_posts.add(item.id)
                    posts.append(item)
                elif isinstance(item, Comment) and item.id not in seen_comments:
                    seen_comments.add(item.id)
                    comments.append(item)

        if results and failures == len(results):
            raise FetchExhausted(
                f"{len(communities)} communities", self._max_retries, last_error
            )

        return (posts, comments)

    # ------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------

    async def _get_json(
        self,
        endpoint: str,
        params: dict[str, str],
        *,
        priority: Priority = Priority.RESEARCH,
        job_id: str | None = None,
    ) -> Any:
        """GET ``endpoint``, sharing one request among identical concurrent callers.

        Callers whose sanitized parameters produce the same cache key while a
        request is in flight await that request instead of issuing their own.
        """
        key = generate_cache_key(endpoint, params)
        inflight = self._inflight.get(key)
        if inflight is not None:
            logger.debug("Joining in-flight archive request: %s %s", endpoint, params)
            try:
                return await asyncio.shield(inflight)
            except asyncio.CancelledError:
                task = asyncio.current_task()
                if not inflight.cancelled() or (task is not None and task.cancelling()):
                    raise
            # The owning caller was cancelled; issue the request ourselves.
            return await self._get_json(endpoint, params, priority=priority, job_id=job_id)

        future: asyncio.Future[Any] = asyncio.get_running_loop().create_future()
        self._inflight[key] = future
        try:
            payload = await self._request_json(
                endpoint, params, key, priority=priority, job_id=job_id
            )
        except asyncio.CancelledError:
            future.cancel()
            raise
        except Exception as e:
            future.set_exception(e)
            # Joined callers re-raise it; mark it retrieved for the owner.
            future.exception()
            raise
        else:
            future.set_result(payload)
            return payload
        finally:
            del self._inflight[key]

    async def _request_json(
        self,
        endpoint: str,
        params: dict[str, str],
        key: str,
        *,
        priority: Priority,
        job_id: str | None,
    ) -> Any:
        """GET ``endpoint`` with caching, rate limiting and retries."""
        cached = await self._cache_get(key)
        if cached is not None:
            logger.debug("Archive cache hit: %s %s", endpoint, params)
            return cached

        url = f"{self._base_url}{endpoint}"
        headers = {"Accept": "application/json", "User-Agent": USER_AGENT}
        last_error: BaseException | None = None

        for attempt in range(self._max_retries):
            try:
                delay = self._rate_limiter.get_rate_limit_delay()
                if delay > 0:
                    logger.info("Waiting %.1fs for archive rate limit reset", delay)
                    await self._sleep(delay)

                if attempt == 0:
                    logger.info("Archive request (%s): %s %s", priority, endpoint, params)

                response = await self._rate_limiter.schedule(
                    lambda: self._client.get(url, params=params, headers=headers),
                    priority,
                    job_id,
                )
                self.requests_made += 1
                self._rate_limiter.update_rate_limit_state(response.headers)

                if response.is_error:
                    body = response.text
                    logger.warning(
                        "Archive error response %d for %s: %s",
                        response.status_code,
                        endpoint,
                        body[:500],
                    )
                    if (
                        response.status_code == 422
                        and _is_timeout_error(body)
                        and attempt < self._max_retries - 1
                    ):
                        last_error = ArchiveHTTPError(response.status_code, body)
                        wait = self._timeout_backoff[min(attempt, len(self._timeout_backoff) - 1)]
                        logger.warning(
                            "Archive server timeout (422), waiting %.0fs before retry", wait
                        )
                        await self._sleep(wait)
                        continue
                    raise ArchiveHTTPError(response.status_code, body)

                payload = response.json()
            except (httpx.HTTPError, ArchiveHTTPError, ValueError) as e:
                last_error = e
                logger.warning(
                    "Archive request failed (attempt %d/%d): %s",
                    attempt + 1,
                    self._max_retries,
                    e,
                )
                if attempt < self._max_retries - 1:
                    await self._sleep(self._backoff_base * 2**attempt)
                continue

            await self._cache_set(key, payload)
            return payload

        raise FetchExhausted(url, self._max_retries, last_error)

    async def _cache_get(self, key: str) -> Any | None:
        if self._cache is None:
            return None
        try:
            return await self._cache.get(key)
        except Exception:
            logger.warning("Query cache read failed", exc_info=True)
            return None

    async def _cache_set(self, key: str, payload: Any) -> None:
        if self._cache is None:
            return
        try:
            await self._cache.set(key, payload, self._cache_ttl)
        except Exception:
            logger.warning("Query cache write failed", exc_info=True)
