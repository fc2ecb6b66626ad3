"""Batch matching pipeline: validate, embed, look up, reassemble.

``BatchMatchService`` is the single entry point used by the HTTP layer. Its
collaborators are injected so the pipeline can run against fakes in tests.
"""

import time
from collections.abc import Sequence
from dataclasses import dataclass
from typing import Any

from uniclass_gateway.core.errors import EmbeddingUnavailable
from uniclass_gateway.core.formatting import build_result_entry, reassemble
from uniclass_gateway.core.models import LookupOutcome, MatchOutcome, Query, ResultEntry
from uniclass_gateway.core.validation import (
    DEFAULT_MAX_BATCH_SIZE,
    parse_single_query,
    validate_batch,
)
from uniclass_gateway.observability.logging import get_logger
from uniclass_gateway.observability.metrics import MetricsManager, get_metrics_manager
from uniclass_gateway.services.embedding_service import EmbeddingService
from uniclass_gateway.services.lookup_service import SimilarityLookupDispatcher

logger = get_logger(__name__)


@dataclass
class BatchMatchResult:
    """Combined response for one batch, in input order."""
    results: list[ResultEntry]

    @property
    def processed(self) -> int:
        return len(self.results)


class BatchMatchService:
    """Runs the matching pipeline for one request.

    Example:
        >>> service = BatchMatchService(embedding_service, dispatcher)
        >>> result = await service.match_batch({"queries": [...]})
        >>> result.processed
        3
    """

    def __init__(
        self,
        embedding_service: EmbeddingService,
        dispatcher: SimilarityLookupDispatcher,
        max_batch_size: int = DEFAULT_MAX_BATCH_SIZE,
        metrics: MetricsManager | None = None,
    ):
        self.embedding_service = embedding_service
        self.dispatcher = dispatcher
        self.max_batch_size = max_batch_size
        self.metrics = metrics or get_metrics_manager()
        self.logger = logger

    async def match_batch(self, payload: Any) -> BatchMatchResult:
        """Validate a raw batch payload and match every query in it.

        Args:
            payload: Decoded request body, expected ``{"queries": [...]}``

        Returns:
            BatchMatchResult with exactly one entry per input query

        Raises:
            InvalidRequest: If the payload is malformed
            BatchTooLarge: If the batch exceeds ``max_batch_size``
        """
        return await self.match_queries(validate_batch(payload, self.max_batch_size))

    async def match_queries(self, queries: Sequence[Query]) -> BatchMatchResult:
        """Match already validated queries, one result per query in order."""
        start_time = time.monotonic()

        self.metrics.record_batch(len(queries))

        valid = [query for query in queries if query.is_valid]
        self.logger.info(
            "batch_received",
            total_queries=len(queries),
            valid_queries=len(valid),
        )

        with self.metrics.time_stage("embed"):
            vectors = await self.embedding_service.fetch([query.text for query in valid])

        embeddings: list[list[float] | None] = [None] * len(queries)
        for query, vector in zip(valid, vectors):
            embeddings[query.position] = vector

        with self.metrics.time_stage("lookup"):
            outcomes = await self.dispatcher.dispatch(queries, embeddings)

        results = reassemble(queries, outcomes)

        self.logger.info(
            "batch_completed",
            processed=len(results),
            sentinels=sum(1 for entry in results if entry.is_sentinel),
            duration_ms=round((time.monotonic() - start_time) * 1000, 2),
        )
        return BatchMatchResult(results=results)

    async def match_single(self, payload: Any) -> ResultEntry:
        """Validate a single-query payload and match it.

        Raises:
            InvalidRequest: If ``query`` or ``uniclass_type`` is missing
            EmbeddingUnavailable: If the query could not be embedded
            LookupFailed: If the similarity store call failed
        """
        return await self.match_query(parse_single_query(payload))

    async def match_query(self, query: Query) -> ResultEntry:
        """Match one query, failing loudly instead of returning sentinels.

        A query with no candidates still returns a ``No match found`` entry.

        Raises:
            EmbeddingUnavailable: If the query could not be embedded
            LookupFailed: If the similarity store call failed
        """
        vectors = await self.embedding_service.fetch([query.text])
        if not vectors or vectors[0] is None:
            raise EmbeddingUnavailable("Failed to get embedding")

        candidates = await self.dispatcher.store.match(
            vectors[0],
            query.category_filter,
            self.dispatcher.similarity_threshold,
            self.dispatcher.match_count,
        )

        outcome = MatchOutcome.MATCHED if candidates else MatchOutcome.NO_MATCH
        self.metrics.record_match_outcome(outcome.value)
        return build_result_entry(LookupOutcome(query, outcome, candidates=list(candidates)))
