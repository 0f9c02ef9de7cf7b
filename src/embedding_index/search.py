"""Cosine-similarity search over a loaded index."""

import math
from collections.abc import Sequence

from loguru import logger

from embedding_index.embedding import EmbeddingClient
from embedding_index.models import EmbeddingIndex, SearchResult


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Return ``dot(a, b) / (norm(a) * norm(b))``.

    A zero-norm vector has similarity 0.0 with everything, so no NaN ever
    reaches the ranking.

    Raises:
        ValueError: If the vectors differ in length
    """
    if len(a) != len(b):
        raise ValueError(f"Vector length mismatch: {len(a)} != {len(b)}")

    dot = norm_a = norm_b = 0.0
    for x, y in zip(a, b, strict=True):
        dot += x * y
        norm_a += x * x
        norm_b += y * y

    if norm_a == 0.0 or norm_b == 0.0:
        return 0.0
    return dot / (math.sqrt(norm_a) * math.sqrt(norm_b))


def rank_documents(
    query_vector: Sequence[float], index: EmbeddingIndex, top_k: int
) -> list[SearchResult]:
    """Score every document and return the ``top_k`` most similar.

    Ties keep index order. ``top_k`` larger than the index returns every
    document.
    """
    if top_k <= 0:
        return []

    scored = [
        (cosine_similarity(query_vector, embedding), position)
        for position, embedding in enumerate(index.embeddings)
    ]
    scored.sort(key=lambda item: (-item[0], item[1]))

    return [
        SearchResult(
            **index.documents[position].model_dump(),
            similarity=similarity,
            rank=rank,
        )
        for rank, (similarity, position) in enumerate(scored[:top_k], start=1)
    ]


async def search_index(
    query: str,
    index: EmbeddingIndex,
    embedding_client: EmbeddingClient,
    top_k: int = 5,
) -> list[SearchResult]:
    """Embed ``query`` and rank the index against it.

    An empty index or a ``top_k`` below 1 returns no results without calling
    the embedding service.
    """
    if index.is_empty:
        logger.info("Index is empty. Run 'build' first.")
        return []
    if top_k < 1:
        return []

    logger.info(f"Searching {len(index)} documents...")
    query_vector = await embedding_client.embed_single(query)
    return rank_documents(query_vector, index, top_k)
