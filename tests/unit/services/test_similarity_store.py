"""Unit tests for the Supabase similarity store client."""

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from postgrest.exceptions import APIError

from uniclass_gateway.config import SimilarityStoreSettings
from uniclass_gateway.core.errors import ConfigurationError, LookupFailed
from uniclass_gateway.core.models import MatchCandidate
from uniclass_gateway.services.similarity_store import SupabaseSimilarityStore


@pytest.fixture
def store_settings():
    """Store settings pointing at a fake project."""
    return SimilarityStoreSettings(url="https://project.supabase.test", anon_key="anon-key")


def _supabase_client(data=None, error=None):
    """Fake async Supabase client whose RPC returns ``data`` or raises ``error``."""
    client = MagicMock()
    execute = AsyncMock()
    if error is not None:
        execute.side_effect = error
    else:
        execute.return_value = MagicMock(data=data)
    client.rpc.return_value.execute = execute
    client.postgrest.aclose = AsyncMock()
    return client


ROWS = [
    {"code": "Ss_25_10_30", "title": "Concrete block wall systems", "similarity": 0.91},
    {"code": "Ss_25_10_20", "title": "Brick wall systems", "similarity": 0.82},
    {"code": "Ss_25_10_50", "title": "Stone wall systems", "similarity": 0.64},
]


@pytest.mark.unit
class TestSupabaseSimilarityStore:
    """Tests for SupabaseSimilarityStore."""

    @pytest.mark.parametrize(
        "url,key",
        [(None, "anon"), ("https://x.supabase.test", None), (None, None)],
    )
    def test_missing_configuration(self, url, key):
        """Both the URL and the key are required."""
        with pytest.raises(ConfigurationError):
            SupabaseSimilarityStore(SimilarityStoreSettings(url=url, anon_key=key))

    @pytest.mark.asyncio
    async def test_match_request_shape(self, store_settings):
        """The RPC receives the vector, filter, threshold and count."""
        client = _supabase_client(ROWS)
        store = SupabaseSimilarityStore(store_settings, client=client)

        candidates = await store.match([0.1, 0.2], "SS", 0.1, 3)

        client.rpc.assert_called_once_with(
            "match_uniclass",
            {
                "query_embedding": [0.1, 0.2],
                "uniclass_type_filter": "SS",
                "match_threshold": 0.1,
                "match_count": 3,
            },
        )
        assert candidates[0] == MatchCandidate(
            code="Ss_25_10_30",
            title="Concrete block wall systems",
            similarity=0.91,
        )
        assert len(candidates) == 3

    @pytest.mark.asyncio
    async def test_custom_function_name(self, store_settings):
        settings = store_settings.model_copy(update={"match_function": "match_uniclass_v2"})
        client = _supabase_client([])

        await SupabaseSimilarityStore(settings, client=client).match([0.1], "PR", 0.1, 3)

        assert client.rpc.call_args.args[0] == "match_uniclass_v2"

    @pytest.mark.asyncio
    async def test_result_is_capped_at_match_count(self, store_settings):
        """Extra rows from the store are dropped."""
        store = SupabaseSimilarityStore(store_settings, client=_supabase_client(ROWS))

        candidates = await store.match([0.1], "SS", 0.1, 2)

        assert [c.code for c in candidates] == ["Ss_25_10_30", "Ss_25_10_20"]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("data", [[], None])
    async def test_empty_result(self, store_settings, data):
        """An empty or null result means no candidates."""
        store = SupabaseSimilarityStore(store_settings, client=_supabase_client(data))

        assert await store.match([0.1], "PR", 0.1, 3) == []

    @pytest.mark.asyncio
    async def test_api_error(self, store_settings):
        """RPC errors surface as LookupFailed."""
        error = APIError({"message": "function does not exist", "code": "42883", "details": None, "hint": None})
        store = SupabaseSimilarityStore(store_settings, client=_supabase_client(error=error))

        with pytest.raises(LookupFailed) as exc_info:
            await store.match([0.1], "SS", 0.1, 3)

        assert exc_info.value.context["code"] == "42883"
        assert "function does not exist" in exc_info.value.message

    @pytest.mark.asyncio
    async def test_timeout(self, store_settings):
        """Timeouts surface as LookupFailed."""
        error = httpx.ReadTimeout("timed out")
        store = SupabaseSimilarityStore(store_settings, client=_supabase_client(error=error))

        with pytest.raises(LookupFailed):
            await store.match([0.1], "SS", 0.1, 3)

    @pytest.mark.asyncio
    async def test_non_list_body(self, store_settings):
        """A non-list body is not a candidate list."""
        store = SupabaseSimilarityStore(store_settings, client=_supabase_client({"rows": ROWS}))

        with pytest.raises(LookupFailed):
            await store.match([0.1], "SS", 0.1, 3)

    @pytest.mark.asyncio
    async def test_malformed_row(self, store_settings):
        """A row missing a field is rejected."""
        rows = [{"code": "Ss_25_10_30", "similarity": 0.9}]
        store = SupabaseSimilarityStore(store_settings, client=_supabase_client(rows))

        with pytest.raises(LookupFailed) as exc_info:
            await store.match([0.1], "SS", 0.1, 3)

        assert exc_info.value.context["rank"] == 0

    @pytest.mark.asyncio
    async def test_client_created_once_and_closed(self, store_settings):
        """An owned client is created lazily, reused, and closed on exit."""
        client = _supabase_client(ROWS)
        target = "uniclass_gateway.services.similarity_store.acreate_client"

        with patch(target, new_callable=AsyncMock, return_value=client) as mock_create:
            async with SupabaseSimilarityStore(store_settings) as store:
                await store.match([0.1], "SS", 0.1, 3)
                await store.match([0.2], "PR", 0.1, 3)

        mock_create.assert_awaited_once()
        assert mock_create.call_args.args == ("https://project.supabase.test", "anon-key")
        client.postgrest.aclose.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_injected_client_is_not_closed(self, store_settings):
        client = _supabase_client(ROWS)

        async with SupabaseSimilarityStore(store_settings, client=client) as store:
            await store.match([0.1], "SS", 0.1, 3)

        client.postgrest.aclose.assert_not_called()

    @pytest.mark.asyncio
    async def test_client_creation_failure(self, store_settings):
        """A client that cannot be created fails the lookup, not the process."""
        target = "uniclass_gateway.services.similarity_store.acreate_client"

        with patch(target, new_callable=AsyncMock, side_effect=Exception("Invalid API key")):
            store = SupabaseSimilarityStore(store_settings)

            with pytest.raises(LookupFailed):
                await store.match([0.1], "SS", 0.1, 3)
