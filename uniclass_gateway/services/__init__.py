"""Service layer for the matching pipeline."""

from uniclass_gateway.services.batch_match_service import BatchMatchResult, BatchMatchService
from uniclass_gateway.services.embedding_service import (
    EmbeddingProvider,
    EmbeddingService,
    GeminiEmbeddingClient,
    chunk_texts,
)
from uniclass_gateway.services.lookup_service import SimilarityLookupDispatcher
from uniclass_gateway.services.similarity_store import SimilarityStore, SupabaseSimilarityStore

__all__ = [
    "BatchMatchResult",
    "BatchMatchService",
    "EmbeddingProvider",
    "EmbeddingService",
    "GeminiEmbeddingClient",
    "SimilarityLookupDispatcher",
    "SimilarityStore",
    "SupabaseSimilarityStore",
    "chunk_texts",
]
