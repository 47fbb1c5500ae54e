"""Embedding similarity pre-filter against the hypothesis."""

import logging
from collections.abc import Sequence
from typing import TypeVar

import numpy as np
from numpy.typing import NDArray
from sentence_transformers import SentenceTransformer

from pain_ingest.data import RawItem
from pain_ingest.prefilter.base import TextEmbedder

logger = logging.getLogger(__name__)

ItemT = TypeVar("ItemT", bound=RawItem)

DEFAULT_MODEL = "all-MiniLM-L6-v2"
DEFAULT_THRESHOLD = 0.35


class SentenceTransformerEmbedder:
    """Embedder using sentence-transformers library."""

    def __init__(self, model_name: str = DEFAULT_MODEL) -> None:
        self._model: SentenceTransformer = SentenceTransformer(model_name)

    def embed(self, texts: list[str]) -> NDArray[np.float32]:
        embeddings: NDArray[np.float32] = self._model.encode(texts, convert_to_numpy=True).astype(
            np.float32
        )
        return embeddings


def cosine_similarities(
    query: NDArray[np.float32], vectors: NDArray[np.float32]
) -> NDArray[np.float32]:
    """Cosine similarity of each row of ``vectors`` with ``query``."""
    query_norm = np.linalg.norm(query)
    row_norms = np.linalg.norm(vectors, axis=1)
    denominators = row_norms * query_norm
    denominators[denominators == 0] = 1.0
    similarities: NDArray[np.float32] = (vectors @ query) / denominators
    return similarities


class SimilarityFilter:
    """Drop items whose embedding is far from the hypothesis.

    Only ever excludes: if embedding fails for any reason, every item is
    passed through so the oracle still sees it.

    Args:
        embedder: Text embedder.
        threshold: Minimum cosine similarity to keep an item.
        max_chars: Characters of item text embedded.
    """

    def __init__(
        self,
        embedder: TextEmbedder,
        threshold: float = DEFAULT_THRESHOLD,
        max_chars: int = 1000,
    ) -> None:
        self._embedder = embedder
        self._threshold = threshold
        self._max_chars = max_chars

    def filter(
        self, items: Sequence[ItemT], hypothesis: str
    ) -> tuple[list[ItemT], list[ItemT]]:
        """Split items by similarity to ``hypothesis``.

        Returns:
            Tuple of (kept, dropped), each in input order.
        """
        if not items:
            return ([], [])

        texts = [item.text[: self._max_chars] for item in items]
        try:
            vectors = self._embedder.embed([hypothesis, *texts])
        except Exception as e:
            logger.warning("Embedding failed, skipping similarity filter: %s", e)
            return (list(items), [])

        similarities = cosine_similarities(vectors[0], vectors[1:])
        kept: list[ItemT] = []
        dropped: list[ItemT] = []
        for item, similarity in zip(items, similarities, strict=True):
            if similarity >= self._threshold:
                kept.append(item)
            else:
                dropped.append(item)

        if dropped:
            logger.info(
                "Similarity filter removed %d of %d items (threshold %.2f)",
                len(dropped),
                len(items),
                self._threshold,
            )
        return (kept, dropped)
