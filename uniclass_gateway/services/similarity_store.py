"""Similarity store client for Uniclass reference vectors.

Calls the Supabase RPC function that ranks Uniclass entries by cosine
similarity to a query embedding, filtered to one Uniclass table. The RPC goes
through the supabase-py async client.
"""

import asyncio
import time
from collections.abc import Sequence
from typing import Any, Protocol

import httpx
from postgrest.exceptions import APIError
from supabase import AsyncClient, AsyncClientOptions, acreate_client

from uniclass_gateway.config import SimilarityStoreSettings
from uniclass_gateway.core.errors import ConfigurationError, LookupFailed
from uniclass_gateway.core.models import MatchCandidate
from uniclass_gateway.observability.logging import get_logger

logger = get_logger(__name__)


class SimilarityStore(Protocol):
    """Anything that returns ranked candidates for one query vector."""

    async def match(
        self,
        query_embedding: Sequence[float],
        category_filter: str,
        match_threshold: float,
        match_count: int,
    ) -> list[MatchCandidate]:
        ...


class SupabaseSimilarityStore:
    """Client for the ``match_uniclass`` RPC, backed by supabase-py.

    Example:
        >>> async with SupabaseSimilarityStore(settings.store) as store:
        ...     candidates = await store.match(vector, "SS", 0.1, 3)
    """

    def __init__(
        self,
        settings: SimilarityStoreSettings,
        client: AsyncClient | None = None,
    ):
        """Initialize the store client.

        Args:
            settings: Supabase connection settings
            client: Optional pre-built Supabase client (not closed by this object)

        Raises:
            ConfigurationError: If the URL or key is missing
        """
        if not settings.url or not settings.anon_key:
            raise ConfigurationError(
                "Supabase not configured. Set SUPABASE_URL and SUPABASE_ANON_KEY.",
            )

        self.settings = settings
        self.function = settings.match_function
        self._owns_client = client is None
        self._client = client
        self._client_lock = asyncio.Lock()

    async def _get_client(self) -> AsyncClient:
        """Return the Supabase client, creating it on first use."""
        if self._client is not None:
            return self._client

        async with self._client_lock:
            if self._client is None:
                try:
                    self._client = await acreate_client(
                        self.settings.url,
                        self.settings.anon_key,
                        options=AsyncClientOptions(
                            postgrest_client_timeout=self.settings.timeout_seconds,
                        ),
                    )
                except Exception as e:
                    raise LookupFailed(
                        f"Similarity store client could not be created: {e}",
                        context={"url": self.settings.url},
                    ) from e
                logger.debug("similarity_store_connected", url=self.settings.url)
        return self._client

    async def match(
        self,
        query_embedding: Sequence[float],
        category_filter: str,
        match_threshold: float,
        match_count: int,
    ) -> list[MatchCandidate]:
        """Return up to ``match_count`` candidates, best first.

        Args:
            query_embedding: Query vector
            category_filter: Uniclass table code, already uppercased
            match_threshold: Minimum similarity (0-1)
            match_count: Maximum number of candidates

        Returns:
            Candidates ordered by similarity descending; empty if nothing
            clears the threshold

        Raises:
            LookupFailed: If the RPC errors or returns malformed rows
        """
        start_time = time.monotonic()
        params = {
            "query_embedding": list(query_embedding),
            "uniclass_type_filter": category_filter,
            "match_threshold": match_threshold,
            "match_count": match_count,
        }

        client = await self._get_client()
        try:
            response = await client.rpc(self.function, params).execute()
        except APIError as e:
            raise LookupFailed(
                f"Similarity store error: {e.message}",
                context={
                    "code": e.code,
                    "details": e.details,
                    "category_filter": category_filter,
                },
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise LookupFailed(
                f"Similarity store request failed: {e}",
                context={"category_filter": category_filter},
            ) from e

        candidates = _parse_rows(response.data)

        logger.debug(
            "similarity_lookup_completed",
            category_filter=category_filter,
            result_count=len(candidates),
            duration_ms=round((time.monotonic() - start_time) * 1000, 2),
        )
        return candidates[:match_count]

    async def aclose(self) -> None:
        if self._owns_client and self._client is not None:
            await self._client.postgrest.aclose()
            self._client = None

    async def __aenter__(self) -> "SupabaseSimilarityStore":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.aclose()


def _parse_rows(rows: Any) -> list[MatchCandidate]:
    if rows is None:
        return []
    if not isinstance(rows, list):
        raise LookupFailed(
            "Unexpected response format from similarity store",
            context={"type": type(rows).__name__},
        )

    candidates = []
    for rank, row in enumerate(rows):
        try:
            candidates.append(
                MatchCandidate(
                    code=str(row["code"]),
                    title=str(row["title"]),
                    similarity=float(row["similarity"]),
                )
            )
        except (KeyError, TypeError, ValueError) as e:
            raise LookupFailed(
                f"Malformed similarity store row at rank {rank}: {e}",
                context={"rank": rank},
            ) from e
    return candidates
