"""Similarity lookup dispatch for a batch of embedded queries.

Each query is looked up independently and concurrently. Whatever happens to
one query (missing embedding, store error, empty result) is recorded as that
query's outcome and never affects the others.
"""

import asyncio
import time
from collections.abc import Sequence

from uniclass_gateway.config import MatchingSettings
from uniclass_gateway.core.models import LookupOutcome, MatchOutcome, Query
from uniclass_gateway.observability.logging import get_logger
from uniclass_gateway.observability.metrics import MetricsManager, get_metrics_manager
from uniclass_gateway.services.similarity_store import SimilarityStore

logger = get_logger(__name__)


class SimilarityLookupDispatcher:
    """Runs one similarity lookup per query and collects outcomes by position.

    Example:
        >>> dispatcher = SimilarityLookupDispatcher(store)
        >>> outcomes = await dispatcher.dispatch(queries, vectors)
        >>> outcomes[0].outcome
        <MatchOutcome.MATCHED: 'matched'>
    """

    def __init__(
        self,
        store: SimilarityStore,
        similarity_threshold: float = 0.1,
        match_count: int = 3,
        max_concurrent_lookups: int = 50,
        metrics: MetricsManager | None = None,
    ):
        """Initialize the dispatcher.

        Args:
            store: Similarity store client
            similarity_threshold: Minimum similarity passed to the store
            match_count: Best match plus alternatives
            max_concurrent_lookups: Upper bound on in-flight store calls
            metrics: Metrics manager, defaults to the global one
        """
        self.store = store
        self.similarity_threshold = similarity_threshold
        self.match_count = match_count
        self.max_concurrent_lookups = max_concurrent_lookups
        self.metrics = metrics or get_metrics_manager()
        self.logger = logger

    @classmethod
    def from_settings(
        cls,
        settings: MatchingSettings,
        store: SimilarityStore,
    ) -> "SimilarityLookupDispatcher":
        return cls(
            store,
            similarity_threshold=settings.similarity_threshold,
            match_count=settings.match_count,
            max_concurrent_lookups=settings.max_concurrent_lookups,
        )

    async def dispatch(
        self,
        queries: Sequence[Query],
        embeddings: Sequence[list[float] | None],
    ) -> dict[int, LookupOutcome]:
        """Look up every query concurrently.

        Args:
            queries: Validated queries in batch order
            embeddings: Vectors aligned with ``queries``; ``None`` marks failure

        Returns:
            Mapping of query position to its outcome
        """
        start_time = time.monotonic()
        semaphore = asyncio.Semaphore(self.max_concurrent_lookups)

        async def bounded(query: Query, embedding: list[float] | None) -> LookupOutcome:
            async with semaphore:
                return await self.lookup(query, embedding)

        tasks = []
        for index, query in enumerate(queries):
            embedding = embeddings[index] if index < len(embeddings) else None
            tasks.append(bounded(query, embedding))

        outcomes = await asyncio.gather(*tasks)

        by_position = {outcome.query.position: outcome for outcome in outcomes}

        self.logger.info(
            "lookup_dispatch_completed",
            total_queries=len(queries),
            matched=sum(1 for o in outcomes if o.outcome is MatchOutcome.MATCHED),
            duration_ms=round((time.monotonic() - start_time) * 1000, 2),
        )
        return by_position

    async def lookup(self, query: Query, embedding: list[float] | None) -> LookupOutcome:
        """Look up one query; never raises."""
        try:
            outcome = await self._lookup(query, embedding)
        except Exception as e:
            self.logger.error(
                "query_processing_failed",
                request_id=query.identifier,
                position=query.position,
                error=str(e),
                exc_info=True,
            )
            outcome = LookupOutcome(query, MatchOutcome.PROCESSING_ERROR, error=str(e))
        self.metrics.record_match_outcome(outcome.outcome.value)
        return outcome

    async def _lookup(self, query: Query, embedding: list[float] | None) -> LookupOutcome:
        if not query.is_valid:
            return LookupOutcome(query, MatchOutcome.PROCESSING_ERROR, error=query.error)

        if embedding is None:
            return LookupOutcome(query, MatchOutcome.EMBEDDING_FAILED)

        try:
            candidates = await self.store.match(
                embedding,
                query.category_filter,
                self.similarity_threshold,
                self.match_count,
            )
        except Exception as e:
            self.logger.error(
                "lookup_failed",
                request_id=query.identifier,
                position=query.position,
                category_filter=query.category_filter,
                error=str(e),
            )
            return LookupOutcome(query, MatchOutcome.DATABASE_ERROR, error=str(e))

        if not candidates:
            return LookupOutcome(query, MatchOutcome.NO_MATCH)

        return LookupOutcome(
            query,
            MatchOutcome.MATCHED,
            candidates=list(candidates[: self.match_count]),
        )
