"""Embedding service for query vectorization using the Gemini API.

This module provides the litellm-backed Gemini client and the chunked embedding
fetcher that turns an arbitrarily long, ordered list of query texts into an
equally long, equally ordered list of vectors. Failed chunks and failed items
become ``None`` markers instead of exceptions.
"""

import asyncio
import time
from collections.abc import Sequence
from typing import Any, Protocol

from litellm import aembedding

from uniclass_gateway.config import EmbeddingSettings
from uniclass_gateway.core.errors import ConfigurationError, EmbeddingUnavailable
from uniclass_gateway.observability.logging import get_logger
from uniclass_gateway.observability.metrics import MetricsManager, get_metrics_manager

logger = get_logger(__name__)

Vector = list[float]


class EmbeddingProvider(Protocol):
    """Anything that embeds a bounded batch of texts in one call."""

    async def embed_batch(self, texts: Sequence[str]) -> list[Vector | None]:
        ...


class GeminiEmbeddingClient:
    """Gemini embedding client backed by litellm.

    Example:
        >>> async with GeminiEmbeddingClient(settings.embedding) as client:
        ...     vectors = await client.embed_batch(["concrete wall", "door"])
    """

    def __init__(self, settings: EmbeddingSettings):
        """Initialize the client.

        Args:
            settings: Embedding provider settings

        Raises:
            ConfigurationError: If no API key is configured
        """
        if not settings.api_key:
            raise ConfigurationError(
                "Gemini API key not configured. Set GEMINI_API_KEY.",
                context={"model": settings.model},
            )

        self.settings = settings
        self.model = settings.model

    @property
    def litellm_model(self) -> str:
        if "/" in self.model:
            return self.model
        return f"gemini/{self.model}"

    def to_litellm_params(self) -> dict[str, Any]:
        return {
            "model": self.litellm_model,
            "api_key": self.settings.api_key,
            "timeout": self.settings.timeout_seconds,
        }

    async def embed_batch(self, texts: Sequence[str]) -> list[Vector | None]:
        """Embed up to ``chunk_max`` texts in one provider call.

        Returns:
            One entry per input text; ``None`` where the provider returned no
            values for that text

        Raises:
            EmbeddingUnavailable: If the call fails or the response does not
                line up with the inputs
        """
        if len(texts) > self.settings.chunk_max:
            raise EmbeddingUnavailable(
                f"Batch of {len(texts)} exceeds provider limit {self.settings.chunk_max}",
                context={"size": len(texts), "limit": self.settings.chunk_max},
            )

        params = self.to_litellm_params()
        params["input"] = list(texts)

        try:
            response = await aembedding(**params)
        except Exception as e:
            raise EmbeddingUnavailable(
                f"Gemini request failed: {e}",
                context={"model": self.litellm_model, "size": len(texts)},
            ) from e

        data = getattr(response, "data", None)
        if not isinstance(data, list):
            raise EmbeddingUnavailable(
                "Unexpected response format from Gemini API",
                context={"model": self.litellm_model},
            )
        if len(data) != len(texts):
            raise EmbeddingUnavailable(
                f"Gemini returned {len(data)} embeddings for {len(texts)} texts",
                context={"expected": len(texts), "actual": len(data)},
            )

        return [_extract_values(item) for item in data]

    async def aclose(self) -> None:
        """Nothing to release; litellm manages its own HTTP sessions."""

    async def __aenter__(self) -> "GeminiEmbeddingClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


def _extract_values(item: Any) -> Vector | None:
    if isinstance(item, dict):
        values = item.get("embedding")
    else:
        values = getattr(item, "embedding", None)
    if not isinstance(values, list) or not values:
        return None
    return [float(v) for v in values]


def chunk_texts(texts: Sequence[str], size: int) -> list[list[str]]:
    """Split texts into contiguous chunks of at most ``size`` items."""
    if size < 1:
        raise ValueError(f"Chunk size must be positive, got {size}")
    return [list(texts[start:start + size]) for start in range(0, len(texts), size)]


class EmbeddingService:
    """Chunked, failure-tolerant embedding fetcher.

    Splits the input into provider-sized chunks, embeds all chunks
    concurrently and flattens the results back into input order. The output
    always has the same length as the input; element ``i`` is the vector for
    text ``i`` or ``None`` if it could not be produced.

    Example:
        >>> service = EmbeddingService(client, chunk_max=100)
        >>> vectors = await service.fetch(texts)  # len(vectors) == len(texts)
    """

    def __init__(
        self,
        provider: EmbeddingProvider,
        chunk_max: int = 100,
        max_retries: int = 0,
        retry_backoff_seconds: float = 0.5,
        metrics: MetricsManager | None = None,
    ):
        """Initialize the embedding service.

        Args:
            provider: Client used for each chunk call
            chunk_max: Maximum texts per provider call
            max_retries: Extra attempts per failed chunk (0 disables retry)
            retry_backoff_seconds: Base delay, doubled after each attempt
            metrics: Metrics manager, defaults to the global one
        """
        if chunk_max < 1:
            raise ValueError(f"chunk_max must be positive, got {chunk_max}")
        self.provider = provider
        self.chunk_max = chunk_max
        self.max_retries = max_retries
        self.retry_backoff_seconds = retry_backoff_seconds
        self.metrics = metrics or get_metrics_manager()
        self.logger = logger

    @classmethod
    def from_settings(
        cls,
        settings: EmbeddingSettings,
        provider: EmbeddingProvider,
    ) -> "EmbeddingService":
        return cls(
            provider,
            chunk_max=settings.chunk_max,
            max_retries=settings.max_retries,
            retry_backoff_seconds=settings.retry_backoff_seconds,
        )

    async def fetch(self, texts: Sequence[str]) -> list[Vector | None]:
        """Embed all texts, preserving order and length.

        Args:
            texts: Query texts in batch order

        Returns:
            List of vectors or ``None`` markers, one per input text
        """
        if not texts:
            return []

        chunks = chunk_texts(texts, self.chunk_max)
        start_time = time.monotonic()

        self.logger.info(
            "batch_embedding_started",
            total_texts=len(texts),
            chunks=len(chunks),
            chunk_max=self.chunk_max,
        )

        chunk_results = await asyncio.gather(
            *(self._fetch_chunk(index, chunk) for index, chunk in enumerate(chunks))
        )

        vectors: list[Vector | None] = [
            vector for chunk_result in chunk_results for vector in chunk_result
        ]

        failed = sum(1 for vector in vectors if vector is None)
        self.logger.info(
            "batch_embedding_completed",
            total_texts=len(texts),
            failed=failed,
            duration_ms=round((time.monotonic() - start_time) * 1000, 2),
        )
        return vectors

    async def _fetch_chunk(self, index: int, chunk: list[str]) -> list[Vector | None]:
        """Embed one chunk; never raises.

        A chunk-level failure yields a run of ``None`` of the chunk's length
        so later chunks keep their offsets.
        """
        attempt = 0
        while True:
            try:
                vectors = await self.provider.embed_batch(chunk)
                if len(vectors) != len(chunk):
                    raise EmbeddingUnavailable(
                        f"Provider returned {len(vectors)} vectors for {len(chunk)} texts",
                        context={"chunk_index": index},
                    )
                self.metrics.record_embedding_chunk("success")
                return list(vectors)
            except Exception as e:
                attempt += 1
                if attempt > self.max_retries:
                    self.metrics.record_embedding_chunk("failed")
                    self.logger.error(
                        "embedding_chunk_failed",
                        chunk_index=index,
                        chunk_size=len(chunk),
                        attempts=attempt,
                        error=str(e),
                    )
                    return [None] * len(chunk)

                delay = self.retry_backoff_seconds * (2 ** (attempt - 1))
                self.metrics.record_embedding_chunk("retried")
                self.logger.warning(
                    "embedding_chunk_retry",
                    chunk_index=index,
                    attempt=attempt,
                    delay_seconds=delay,
                    error=str(e),
                )
                await asyncio.sleep(delay)
