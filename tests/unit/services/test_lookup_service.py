"""Unit tests for the similarity lookup dispatcher."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest

from uniclass_gateway.config import MatchingSettings
from uniclass_gateway.core.errors import LookupFailed
from uniclass_gateway.core.models import MatchCandidate, MatchOutcome, Query
from uniclass_gateway.services.lookup_service import SimilarityLookupDispatcher


def _candidates(n):
    return [
        MatchCandidate(code=f"Ss_25_10_{i}", title=f"Wall type {i}", similarity=0.9 - i * 0.1)
        for i in range(n)
    ]


def _query(identifier, position=0, error=None):
    return Query(
        position=position,
        identifier=identifier,
        text="wall",
        category_filter="SS",
        error=error,
    )


@pytest.fixture
def metrics():
    """Metrics manager mock."""
    return MagicMock()


@pytest.fixture
def store():
    """Similarity store returning three candidates."""
    mock = AsyncMock()
    mock.match.return_value = _candidates(3)
    return mock


@pytest.mark.unit
class TestLookup:
    """Tests for single-query lookups."""

    @pytest.mark.asyncio
    async def test_matched(self, store, metrics):
        """Candidates are returned best first."""
        dispatcher = SimilarityLookupDispatcher(store, metrics=metrics)

        outcome = await dispatcher.lookup(_query("a"), [0.1, 0.2])

        assert outcome.outcome is MatchOutcome.MATCHED
        assert outcome.best.code == "Ss_25_10_0"
        store.match.assert_awaited_once_with([0.1, 0.2], "SS", 0.1, 3)
        metrics.record_match_outcome.assert_called_once_with("matched")

    @pytest.mark.asyncio
    async def test_invalid_query_skips_store(self, store, metrics):
        """Invalid queries are a processing error before anything else."""
        dispatcher = SimilarityLookupDispatcher(store, metrics=metrics)

        outcome = await dispatcher.lookup(_query("a", error="missing query text"), None)

        assert outcome.outcome is MatchOutcome.PROCESSING_ERROR
        store.match.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_missing_embedding_skips_store(self, store, metrics):
        """A missing vector is an embedding failure."""
        dispatcher = SimilarityLookupDispatcher(store, metrics=metrics)

        outcome = await dispatcher.lookup(_query("a"), None)

        assert outcome.outcome is MatchOutcome.EMBEDDING_FAILED
        store.match.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_store_error(self, store, metrics):
        """Store errors are a database error."""
        store.match.side_effect = LookupFailed("boom")
        dispatcher = SimilarityLookupDispatcher(store, metrics=metrics)

        outcome = await dispatcher.lookup(_query("a"), [0.1])

        assert outcome.outcome is MatchOutcome.DATABASE_ERROR
        assert outcome.error == "boom"

    @pytest.mark.asyncio
    async def test_empty_result(self, store, metrics):
        """No candidates is a no-match."""
        store.match.return_value = []
        dispatcher = SimilarityLookupDispatcher(store, metrics=metrics)

        outcome = await dispatcher.lookup(_query("a"), [0.1])

        assert outcome.outcome is MatchOutcome.NO_MATCH

    @pytest.mark.asyncio
    async def test_candidates_capped(self, store, metrics):
        """A store returning too many rows is trimmed to match_count."""
        store.match.return_value = _candidates(5)
        dispatcher = SimilarityLookupDispatcher(store, match_count=2, metrics=metrics)

        outcome = await dispatcher.lookup(_query("a"), [0.1])

        assert len(outcome.candidates) == 2

    @pytest.mark.asyncio
    async def test_unexpected_failure_is_processing_error(self, store, metrics):
        """Anything else going wrong is contained to the query."""
        dispatcher = SimilarityLookupDispatcher(store, metrics=metrics)
        dispatcher._lookup = AsyncMock(side_effect=RuntimeError("bug"))

        outcome = await dispatcher.lookup(_query("a"), [0.1])

        assert outcome.outcome is MatchOutcome.PROCESSING_ERROR
        metrics.record_match_outcome.assert_called_once_with("processing_error")


@pytest.mark.unit
class TestDispatch:
    """Tests for concurrent dispatch."""

    @pytest.mark.asyncio
    async def test_outcomes_keyed_by_position(self, store, metrics):
        """Every query gets an outcome under its own position."""
        queries = [_query("a", 0), _query("a", 1), _query(0, 2)]
        dispatcher = SimilarityLookupDispatcher(store, metrics=metrics)

        outcomes = await dispatcher.dispatch(queries, [[0.1], None, [0.3]])

        assert set(outcomes) == {0, 1, 2}
        assert outcomes[0].outcome is MatchOutcome.MATCHED
        assert outcomes[1].outcome is MatchOutcome.EMBEDDING_FAILED
        assert outcomes[2].outcome is MatchOutcome.MATCHED
        assert outcomes[2].query.identifier == 0

    @pytest.mark.asyncio
    async def test_out_of_order_completion(self, metrics):
        """Lookups finishing in reverse order keep their own results."""
        completed = []

        class SlowStore:
            async def match(self, query_embedding, category_filter, match_threshold, match_count):
                delay = query_embedding[0]
                await asyncio.sleep(delay)
                completed.append(delay)
                return [MatchCandidate(code=f"C{delay}", title="t", similarity=0.5)]

        queries = [_query(i, i) for i in range(3)]
        dispatcher = SimilarityLookupDispatcher(SlowStore(), metrics=metrics)

        outcomes = await dispatcher.dispatch(queries, [[0.03], [0.02], [0.01]])

        assert completed == [0.01, 0.02, 0.03]
        assert [outcomes[i].best.code for i in range(3)] == ["C0.03", "C0.02", "C0.01"]

    @pytest.mark.asyncio
    async def test_sibling_failure_isolated(self, metrics):
        """One failing lookup does not affect the others."""
        class FlakyStore:
            async def match(self, query_embedding, category_filter, match_threshold, match_count):
                if query_embedding[0] < 0:
                    raise LookupFailed("db down")
                return _candidates(1)

        queries = [_query("ok-1", 0), _query("bad", 1), _query("ok-2", 2)]
        dispatcher = SimilarityLookupDispatcher(FlakyStore(), metrics=metrics)

        outcomes = await dispatcher.dispatch(queries, [[0.1], [-1.0], [0.2]])

        assert outcomes[1].outcome is MatchOutcome.DATABASE_ERROR
        assert outcomes[0].outcome is MatchOutcome.MATCHED
        assert outcomes[2].outcome is MatchOutcome.MATCHED

    @pytest.mark.asyncio
    async def test_concurrency_is_bounded(self, metrics):
        """No more than max_concurrent_lookups calls are in flight."""
        in_flight = 0
        peak = 0

        class CountingStore:
            async def match(self, query_embedding, category_filter, match_threshold, match_count):
                nonlocal in_flight, peak
                in_flight += 1
                peak = max(peak, in_flight)
                await asyncio.sleep(0.001)
                in_flight -= 1
                return []

        queries = [_query(i, i) for i in range(20)]
        dispatcher = SimilarityLookupDispatcher(
            CountingStore(),
            max_concurrent_lookups=4,
            metrics=metrics,
        )

        await dispatcher.dispatch(queries, [[0.1]] * 20)

        assert peak == 4

    @pytest.mark.asyncio
    async def test_short_embeddings_list(self, store, metrics):
        """Queries without an aligned vector are embedding failures."""
        queries = [_query("a", 0), _query("b", 1)]
        dispatcher = SimilarityLookupDispatcher(store, metrics=metrics)

        outcomes = await dispatcher.dispatch(queries, [[0.1]])

        assert outcomes[1].outcome is MatchOutcome.EMBEDDING_FAILED

    def test_from_settings(self, store):
        """Matching settings drive threshold, count and concurrency."""
        settings = MatchingSettings(similarity_threshold=0.3, match_count=5, max_concurrent_lookups=7)

        dispatcher = SimilarityLookupDispatcher.from_settings(settings, store)

        assert dispatcher.similarity_threshold == 0.3
        assert dispatcher.match_count == 5
        assert dispatcher.max_concurrent_lookups == 7
