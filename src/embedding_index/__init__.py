"""Flat embedding index, similarity search and RAG over watsonx.ai.

Architecture:
    - embedding: Adapter turning texts into vectors via watsonx.ai
    - index: JSON index file persistence and full rebuilds
    - search: Cosine-similarity ranking
    - rag: Retrieval-augmented answer assembly
    - models: Pydantic schemas for documents, results and answers

Usage:
    >>> from embedding_index.index import IndexStore
    >>> index = IndexStore("embeddings-index.json").load()
    >>> len(index)
    0
"""

__version__ = "2.0.0"

from embedding_index.models import (
    EmbeddingIndex,
    IndexedDocument,
    RagAnswer,
    SearchResult,
)

__all__ = [
    "EmbeddingIndex",
    "IndexedDocument",
    "RagAnswer",
    "SearchResult",
]
