"""Embedding generation through the OpenAI embeddings API."""

from typing import Protocol

import numpy as np
import structlog
from openai import AsyncOpenAI

from docweave.config import get_settings

logger = structlog.get_logger()


class Embedder(Protocol):
    """Turns text into vectors."""

    async def embed_query(self, text: str) -> np.ndarray:
        ...

    async def embed_texts(self, texts: list[str]) -> np.ndarray:
        ...


class OpenAIEmbedder:
    """
    Embedding provider backed by OpenAI.

    Requests are batched; vectors come back as float32 rows in input order.
    """

    def __init__(
        self,
        model: str | None = None,
        dimensions: int | None = None,
        batch_size: int | None = None,
        client: AsyncOpenAI | None = None,
    ):
        settings = get_settings()
        self.model = model or settings.embedding_model
        self.dimensions = dimensions or settings.embedding_dimensions
        self.batch_size = batch_size or settings.embedding_batch_size
        self._client = client

    def _get_client(self) -> AsyncOpenAI:
        """Lazily initialize the OpenAI client."""
        if self._client is None:
            settings = get_settings()
            if not settings.openai_api_key:
                raise ValueError("OpenAI API key not configured (set DOCWEAVE_OPENAI_API_KEY)")
            self._client = AsyncOpenAI(
                api_key=settings.openai_api_key,
                base_url=settings.openai_base_url,
            )
        return self._client

    async def embed_query(self, text: str) -> np.ndarray:
        """Embed a single query string."""
        return (await self.embed_texts([text]))[0]

    async def embed_texts(self, texts: list[str]) -> np.ndarray:
        """
        Embed several texts.

        Args:
            texts: Texts to embed

        Returns:
            Array of shape (len(texts), dimensions)
        """
        if not texts:
            return np.zeros((0, self.dimensions), dtype="float32")

        client = self._get_client()
        vectors: list[list[float]] = []

        for i in range(0, len(texts), self.batch_size):
            batch = texts[i : i + self.batch_size]
            response = await client.embeddings.create(
                model=self.model,
                input=batch,
                dimensions=self.dimensions,
            )
            # Ensure correct ordering
            vectors.extend(item.embedding for item in sorted(response.data, key=lambda d: d.index))

            logger.debug(
                "embedded_batch",
                batch_size=len(batch),
                total_processed=len(vectors),
                total_remaining=len(texts) - len(vectors),
            )

        return np.array(vectors, dtype="float32")


# Singleton instance
_embedder: OpenAIEmbedder | None = None


def get_embedder() -> OpenAIEmbedder:
    """Get the singleton embedder instance."""
    global _embedder
    if _embedder is None:
        _embedder = OpenAIEmbedder()
    return _embedder
