"""Embedding client adapter over the watsonx.ai embeddings endpoint.

Texts are truncated to a fixed character budget before submission. No retry
is performed; transport and service errors reach the caller unmodified.
"""

from typing import Protocol

from loguru import logger

from embedding_index.config import EmbeddingConfig
from watsonx_mcp.client import WatsonxClient


class EmbeddingClient(Protocol):
    """Protocol for embedding client implementations."""

    @property
    def model_id(self) -> str: ...

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a batch of texts.

        Args:
            texts: List of input texts

        Returns:
            List of embedding vectors (same order as inputs)
        """
        ...

    async def embed_single(self, text: str) -> list[float]:
        """Generate embedding for a single text."""
        ...


def truncate(text: str, max_chars: int) -> str:
    return text[:max_chars]


class WatsonxEmbedding:
    """Embed texts through an injected ``WatsonxClient``."""

    def __init__(self, client: WatsonxClient, config: EmbeddingConfig | None = None):
        self.client = client
        self.config = config or EmbeddingConfig()

    @property
    def model_id(self) -> str:
        return self.config.model_id

    async def embed_batch(self, texts: list[str]) -> list[list[float]]:
        """Generate embeddings for a batch of texts.

        Args:
            texts: List of input texts, each truncated to ``config.max_chars``

        Returns:
            List of embedding vectors (same order as inputs)

        Raises:
            ValueError: If the service returns a different number of vectors
            WatsonxAPIError: For service failures
        """
        if not texts:
            return []

        inputs = [truncate(text, self.config.max_chars) for text in texts]
        response = await self.client.embed_texts(inputs, self.config.model_id)

        if len(response.vectors) != len(inputs):
            raise ValueError(
                f"Expected {len(inputs)} embeddings from {self.config.model_id}, "
                f"got {len(response.vectors)}"
            )

        logger.debug(f"Embedded {len(inputs)} texts with {self.config.model_id}")
        return response.vectors

    async def embed_single(self, text: str) -> list[float]:
        embeddings = await self.embed_batch([text])
        return embeddings[0]
