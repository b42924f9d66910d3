"""
Tests for ProofsPagination: page windows, on-demand fills and fetch state.
"""

import asyncio

import pytest

from conftest import make_data_event, make_record
from taas_explorer.proofs.cache import ProofsCache
from taas_explorer.proofs.correlation import correlate_events
from taas_explorer.proofs.graphql import FallbackFetcher, Fetcher
from taas_explorer.proofs.pagination import ProofsPagination
from taas_explorer.shared.results import ErrorSeverity


class FakeFetcher(Fetcher):
    """Serves records older than the cursor from a fixed, newest-first list."""

    def __init__(self, records=(), error=None):
        self.records = list(records)
        self.error = error
        self.calls = []

    async def fetch_page(self, config, min_count, cursor=None):
        self.calls.append((min_count, cursor))
        if self.error is not None:
            raise self.error
        eligible = [
            r for r in self.records
            if cursor is None or r["blockNumber"] <= cursor
        ]
        return {"events": eligible[:min_count], "lastCheckedBlock": 0}


def _chain(count, start_block=1000):
    """count records, one per block, newest first."""
    return [
        make_record(f"0x{i:02x}", count - i, block_number=start_block - i)
        for i in range(count)
    ]


@pytest.fixture
def cache(memory_storage):
    return ProofsCache(memory_storage)


class TestConstruction:
    @pytest.mark.parametrize("page_size", [0, -1, 101])
    def test_rejects_bad_page_size(self, chain_config, page_size):
        with pytest.raises(ValueError):
            ProofsPagination(page_size, chain_config)

    def test_defaults(self, chain_config):
        pagination = ProofsPagination(10, chain_config)

        assert isinstance(pagination.fetcher, FallbackFetcher)
        assert pagination.has_more is True
        assert pagination.loading is False
        assert pagination.error is None
        assert pagination.proofs == []
        assert pagination.total_pages == 0


class TestLoad:
    @pytest.mark.asyncio
    async def test_initial_load_fills_first_page(self, chain_config, cache):
        fetcher = FakeFetcher(_chain(30))
        pagination = ProofsPagination(10, chain_config, cache, fetcher)

        result = await pagination.load()

        assert result.success
        assert fetcher.calls == [(10, None)]
        assert len(pagination.proofs) == 10
        assert pagination.total_items == 10
        assert pagination.page == 0

    @pytest.mark.asyncio
    async def test_load_with_full_cache_fetches_nothing(
        self, chain_config, cache
    ):
        cache.update_proofs(_chain(10))
        fetcher = FakeFetcher(_chain(30))
        pagination = ProofsPagination(10, chain_config, cache, fetcher)

        assert await pagination.load() is None
        assert fetcher.calls == []

    @pytest.mark.asyncio
    async def test_next_page_resumes_from_oldest_block(
        self, chain_config, cache
    ):
        fetcher = FakeFetcher(_chain(30))
        pagination = ProofsPagination(10, chain_config, cache, fetcher)
        await pagination.load()

        await pagination.handle_page_change(None, 1)

        # Oldest cached block is 991, holding one cached record
        assert fetcher.calls[1] == (11, 991)
        assert pagination.total_items == 20
        assert pagination.page == 1
        assert [r["blockNumber"] for r in pagination.proofs] == list(
            range(990, 980, -1)
        )

    @pytest.mark.asyncio
    async def test_page_change_is_persisted(self, chain_config, memory_storage):
        cache = ProofsCache(memory_storage)
        pagination = ProofsPagination(
            10, chain_config, cache, FakeFetcher(_chain(30))
        )

        await pagination.handle_page_change(None, 2)

        assert ProofsCache(memory_storage).current_page == 2
        assert pagination.total_items == 30

    @pytest.mark.asyncio
    async def test_shared_block_records_are_not_skipped(
        self, chain_config, cache
    ):
        records = [
            make_record("0xa", 5, block_number=100),
            make_record("0xb", 4, block_number=100),
            make_record("0xc", 3, block_number=100),
            make_record("0xd", 2, block_number=90),
        ]
        fetcher = FakeFetcher(records)
        pagination = ProofsPagination(2, chain_config, cache, fetcher)

        await pagination.load()
        await pagination.handle_page_change(None, 1)

        assert fetcher.calls[1] == (4, 100)
        assert cache.keys() == {"0xa-5", "0xb-4", "0xc-3", "0xd-2"}


class TestHasMore:
    @pytest.mark.asyncio
    async def test_exhausted_source_stops_fetching(self, chain_config, cache):
        fetcher = FakeFetcher(_chain(5))
        pagination = ProofsPagination(10, chain_config, cache, fetcher)

        await pagination.load()

        assert pagination.has_more is False
        assert pagination.total_items == 5
        # The second call only returned already cached records
        assert len(fetcher.calls) == 2

        await pagination.handle_page_change(None, 3)
        assert len(fetcher.calls) == 2

    @pytest.mark.asyncio
    async def test_empty_source(self, chain_config, cache):
        fetcher = FakeFetcher([])
        pagination = ProofsPagination(10, chain_config, cache, fetcher)

        result = await pagination.load()

        assert result.success
        assert result.data == []
        assert pagination.has_more is False
        assert pagination.proofs == []


class TestErrors:
    @pytest.mark.asyncio
    async def test_failure_sets_error_and_keeps_has_more(
        self, chain_config, cache
    ):
        fetcher = FakeFetcher(error=ConnectionError("indexer down"))
        pagination = ProofsPagination(10, chain_config, cache, fetcher)

        result = await pagination.load()

        assert not result.success
        assert [e.message for e in result.errors] == ["indexer down"]
        assert result.errors[0].source == "proofs_pagination"
        assert pagination.error == "indexer down"
        assert pagination.has_more is True
        assert pagination.loading is False
        assert len(fetcher.calls) == 1

    @pytest.mark.asyncio
    async def test_retry_after_failure(self, chain_config, cache):
        fetcher = FakeFetcher(_chain(10), error=TimeoutError())
        pagination = ProofsPagination(10, chain_config, cache, fetcher)
        await pagination.load()
        assert pagination.error == "TimeoutError"

        fetcher.error = None
        result = await pagination.retry_fetch()

        assert result.success
        assert pagination.error is None
        assert pagination.total_items == 10

    @pytest.mark.asyncio
    async def test_concurrent_fetch_is_rejected(self, chain_config, cache):
        release = asyncio.Event()

        class SlowFetcher(Fetcher):
            async def fetch_page(self, config, min_count, cursor=None):
                await release.wait()
                return {"events": _chain(min_count), "lastCheckedBlock": 0}

        pagination = ProofsPagination(10, chain_config, cache, SlowFetcher())
        first = asyncio.ensure_future(pagination.fetch_and_cache_proofs(10))
        await asyncio.sleep(0)
        assert pagination.loading is True

        second = await pagination.fetch_and_cache_proofs(10)
        release.set()
        first_result = await first

        assert not second.success
        assert second.errors[0].severity == ErrorSeverity.WARNING
        assert first_result.success
        assert pagination.total_items == 10


class TestPageWindow:
    def test_stale_page_is_clamped(self, chain_config, memory_storage):
        cache = ProofsCache(memory_storage)
        cache.update_proofs(_chain(25))
        cache.update_current_page(7)

        pagination = ProofsPagination(10, chain_config, cache, FakeFetcher())

        assert pagination.page == 2
        assert len(pagination.proofs) == 5
        assert pagination.total_pages == 3

    def test_page_slices(self, chain_config, cache):
        cache.update_proofs(_chain(25))
        cache.update_current_page(1)

        pagination = ProofsPagination(10, chain_config, cache, FakeFetcher())

        assert [r["epoch"] for r in pagination.proofs] == list(
            range(15, 5, -1)
        )


class ChainFetcher(Fetcher):
    """Correlates raw data events at or below the cursor, newest first."""

    def __init__(self, data_events):
        self.data_events = sorted(
            data_events, key=lambda e: e["blockNumber"], reverse=True
        )
        self.calls = []

    async def fetch_page(self, config, min_count, cursor=None):
        self.calls.append((min_count, cursor))
        visible = [
            e for e in self.data_events
            if cursor is None or e["blockNumber"] <= cursor
        ]
        records = correlate_events(visible, [])
        return {"events": records[:min_count], "lastCheckedBlock": 0}


class TestRecordsSpanningTheCursor:
    @pytest.mark.asyncio
    async def test_cached_record_keeps_its_newer_events(
        self, chain_config, cache
    ):
        fetcher = ChainFetcher(
            [
                make_data_event("0xk", 3, block_number=100),
                make_data_event("0xj", 2, block_number=60),
                make_data_event("0xk", 3, block_number=50),
                make_data_event("0xl", 1, block_number=40),
            ]
        )
        pagination = ProofsPagination(2, chain_config, cache, fetcher)

        await pagination.load()
        await pagination.handle_page_change(None, 2)

        # The second fetch starts at block 60 and sees only half of 0xk
        assert fetcher.calls[1][1] == 60
        by_trader = {r["traderId"]: r for r in cache.proofs}
        assert set(by_trader) == {"0xk", "0xj", "0xl"}
        assert by_trader["0xk"]["blockNumber"] == 100
        assert [
            e["blockNumber"] for e in by_trader["0xk"]["dataEvents"]
        ] == [100, 50]
        assert pagination.has_more is False
