"""Match API routes.

This module exposes the batch endpoint used by spreadsheet clients and a
single-query endpoint. Bodies are decoded and validated by dependencies
declared ahead of the service, so malformed requests are rejected before any
client is built, and malformed batch items become per-row sentinels instead
of rejecting the whole request.
"""

from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Response, status

from uniclass_gateway.api.dependencies import (
    get_batch_match_service,
    get_batch_queries,
    get_single_query,
)
from uniclass_gateway.api.models import (
    BatchMatchResponse,
    ErrorResponse,
    QueryItem,
    SingleMatchResponse,
)
from uniclass_gateway.core.errors import EmbeddingUnavailable, LookupFailed
from uniclass_gateway.core.models import Query
from uniclass_gateway.observability.logging import get_logger, update_request_context
from uniclass_gateway.services.batch_match_service import BatchMatchService

router = APIRouter(prefix="/api", tags=["Match"])
logger = get_logger(__name__)

INTERNAL_ERROR_MESSAGE = "Internal server error"

_ERROR_RESPONSES: dict[int | str, dict[str, Any]] = {
    status.HTTP_400_BAD_REQUEST: {"model": ErrorResponse},
    status.HTTP_500_INTERNAL_SERVER_ERROR: {"model": ErrorResponse},
}


# ============================================================================
# Batch Endpoint
# ============================================================================

@router.post(
    "/batch-match-uniclass",
    response_model=BatchMatchResponse,
    responses=_ERROR_RESPONSES,
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": {
                "type": "object",
                "required": ["queries"],
                "properties": {
                    "queries": {"type": "array", "minItems": 1, "items": QueryItem.model_json_schema()},
                },
            }}},
        }
    },
)
async def batch_match(
    queries: list[Query] = Depends(get_batch_queries),
    service: BatchMatchService = Depends(get_batch_match_service),
) -> BatchMatchResponse:
    """Classify a batch of free-text descriptions against Uniclass.

    Every query yields exactly one result, in request order. Per-query
    failures are reported inline as ``<reason>:0.00`` match strings.

    A missing, invalid or oversized queries array is rejected with 400 by
    ``get_batch_queries`` before the pipeline is built.

    Raises:
        HTTPException: 500 on an unexpected failure
    """
    update_request_context(endpoint="batch-match-uniclass", batch_size=len(queries))

    try:
        result = await service.match_queries(queries)
    except Exception as e:
        logger.error("batch_match_failed", error=str(e), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=INTERNAL_ERROR_MESSAGE,
        ) from e

    return BatchMatchResponse.from_result(result)


@router.options("/batch-match-uniclass", include_in_schema=False)
async def batch_match_preflight() -> Response:
    """Answer CORS preflight with an empty body."""
    return Response(status_code=status.HTTP_200_OK)


# ============================================================================
# Single Endpoint
# ============================================================================

@router.post(
    "/match-uniclass",
    response_model=SingleMatchResponse,
    responses=_ERROR_RESPONSES,
    openapi_extra={
        "requestBody": {
            "required": True,
            "content": {"application/json": {"schema": QueryItem.model_json_schema()}},
        }
    },
)
async def match_single(
    query: Query = Depends(get_single_query),
    service: BatchMatchService = Depends(get_batch_match_service),
) -> SingleMatchResponse:
    """Classify one description, failing with an error status on upstream errors."""
    update_request_context(endpoint="match-uniclass")

    try:
        entry = await service.match_query(query)
    except EmbeddingUnavailable as e:
        logger.error("single_embedding_failed", error=e.message)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to get embedding",
        ) from e
    except LookupFailed as e:
        logger.error("single_lookup_failed", error=e.message, context=e.context)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Database search failed",
        ) from e
    except Exception as e:
        logger.error("single_match_failed", error=str(e), exc_info=True)
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=INTERNAL_ERROR_MESSAGE,
        ) from e

    return SingleMatchResponse.from_entry(entry)


@router.options("/match-uniclass", include_in_schema=False)
async def match_single_preflight() -> Response:
    """Answer CORS preflight with an empty body."""
    return Response(status_code=status.HTTP_200_OK)
