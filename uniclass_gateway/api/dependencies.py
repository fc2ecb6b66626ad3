"""FastAPI dependencies for the API layer.

Collaborators are built per request and closed afterwards, so the process
holds no state between batches and tests can override
``get_batch_match_service`` with fakes.

Request bodies are decoded and validated by their own dependencies. Routes
declare them before the service, so a malformed request is answered with 400
before any credentials are checked or clients are built.
"""

from typing import Any, AsyncGenerator

from fastapi import Depends, Request

from uniclass_gateway.config import Settings, get_settings
from uniclass_gateway.core.errors import InvalidRequest
from uniclass_gateway.core.models import Query
from uniclass_gateway.core.validation import (
    INVALID_QUERIES_MESSAGE,
    SINGLE_INVALID_MESSAGE,
    parse_single_query,
    validate_batch,
)
from uniclass_gateway.services.batch_match_service import BatchMatchService
from uniclass_gateway.services.embedding_service import EmbeddingService, GeminiEmbeddingClient
from uniclass_gateway.services.lookup_service import SimilarityLookupDispatcher
from uniclass_gateway.services.similarity_store import SupabaseSimilarityStore


async def get_config() -> Settings:
    """Get application settings dependency."""
    return get_settings()


async def _read_json(request: Request, invalid_message: str) -> Any:
    """Decode the request body, mapping undecodable input to InvalidRequest."""
    try:
        return await request.json()
    except ValueError as e:
        raise InvalidRequest(invalid_message, context={"reason": str(e)}) from e


async def get_batch_queries(
    request: Request,
    settings: Settings = Depends(get_config),
) -> list[Query]:
    """Decode and validate a batch request body.

    Raises:
        InvalidRequest: If the body or its ``queries`` array is invalid
        BatchTooLarge: If the batch exceeds the configured cap
    """
    payload = await _read_json(request, INVALID_QUERIES_MESSAGE)
    return validate_batch(payload, settings.matching.max_batch_size)


async def get_single_query(request: Request) -> Query:
    """Decode and validate a single-query request body.

    Raises:
        InvalidRequest: If ``query`` or ``uniclass_type`` is missing
    """
    payload = await _read_json(request, SINGLE_INVALID_MESSAGE)
    return parse_single_query(payload)


async def get_batch_match_service(
    settings: Settings = Depends(get_config),
) -> AsyncGenerator[BatchMatchService, None]:
    """Build the matching pipeline for one request.

    Yields:
        BatchMatchService wired to Gemini and Supabase

    Raises:
        ConfigurationError: If credentials are missing
    """
    embedding_client = GeminiEmbeddingClient(settings.embedding)
    try:
        store = SupabaseSimilarityStore(settings.store)
    except Exception:
        await embedding_client.aclose()
        raise

    async with embedding_client, store:
        yield BatchMatchService(
            EmbeddingService.from_settings(settings.embedding, embedding_client),
            SimilarityLookupDispatcher.from_settings(settings.matching, store),
            max_batch_size=settings.matching.max_batch_size,
        )
