"""Archive access: client, cache and protocols."""

from pain_ingest.archive.base import Archive, QueryCache
from pain_ingest.archive.cache import (
    DEFAULT_TTL_SECONDS,
    InMemoryQueryCache,
    QueryCacheEntry,
    generate_cache_key,
)
from pain_ingest.archive.client import (
    ArchiveClient,
    comment_from_payload,
    community_from_payload,
    post_from_payload,
    sanitize_community,
    sanitize_params,
)

__all__ = [
    "DEFAULT_TTL_SECONDS",
    "Archive",
    "ArchiveClient",
    "InMemoryQueryCache",
    "QueryCache",
    "QueryCacheEntry",
    "comment_from_payload",
    "community_from_payload",
    "generate_cache_key",
    "post_from_payload",
    "sanitize_community",
    "sanitize_params",
]
