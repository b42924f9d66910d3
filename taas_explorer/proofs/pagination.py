"""
Page windowing over the proofs cache, filling it on demand.

A page that the cache cannot fill triggers a fetch of the missing records,
starting at the oldest block already cached and walking back in time.
"""

import math
from typing import Any, List, Optional

from taas_explorer.proofs.cache import ProofsCache, record_block
from taas_explorer.proofs.correlation import record_key
from taas_explorer.proofs.fetchers import RPCFetcher
from taas_explorer.proofs.graphql import FallbackFetcher, Fetcher, GraphQLFetcher
from taas_explorer.shared.constants import PaginationConfig
from taas_explorer.shared.logging import get_logger
from taas_explorer.shared.results import ErrorSeverity, Result
from taas_explorer.shared.types import ChainConfig, CorrelatedRecord
from taas_explorer.utils.storage import MemoryStorage

_logger = get_logger(__name__)

_SOURCE = "proofs_pagination"


class ProofsPagination:
    """
    Args:
        page_size: Rows per page, 1 to 100
        config: Chain config handed to the fetcher
        cache: Proofs cache; an in-memory one by default
        fetcher: Record source; GraphQL falling back to RPC by default
    """

    def __init__(
        self,
        page_size: int,
        config: ChainConfig,
        cache: Optional[ProofsCache] = None,
        fetcher: Optional[Fetcher] = None,
    ):
        if not 1 <= page_size <= PaginationConfig.MAX_ROWS:
            raise ValueError(
                f"page_size must be between 1 and {PaginationConfig.MAX_ROWS},"
                f" got {page_size}"
            )
        self.page_size = page_size
        self.config = config
        self.cache = cache or ProofsCache(MemoryStorage())
        self.fetcher = fetcher or FallbackFetcher(GraphQLFetcher(), RPCFetcher())

        self.has_more = True
        self.loading = False
        self.error: Optional[str] = None

    @property
    def page(self) -> int:
        """Persisted page index, clamped to the data actually cached"""
        return min(
            self.cache.current_page,
            self.cache.proofs_length // self.page_size,
        )

    @property
    def proofs(self) -> List[CorrelatedRecord]:
        start = self.page * self.page_size
        return self.cache.proofs[start : start + self.page_size]

    @property
    def total_items(self) -> int:
        return self.cache.proofs_length

    @property
    def total_pages(self) -> int:
        return math.ceil(self.cache.proofs_length / self.page_size)

    def _missing_through(self, page: int) -> int:
        return (page + 1) * self.page_size - self.cache.proofs_length

    def _cursor(self):
        """Oldest cached block and how many cached records sit on it"""
        blocks = [
            block
            for block in map(record_block, self.cache.proofs)
            if block is not None
        ]
        if not blocks:
            return None, 0
        oldest = min(blocks)
        return oldest, blocks.count(oldest)

    async def fetch_and_cache_proofs(self, min_count: int) -> Result:
        """
        Fetch at least min_count records older than the cache and merge them.

        The cursor block itself is fetched again, since more records than
        the cached ones may share it. Records already cached are kept as
        they are: a refetched copy only holds the events at or below the
        cursor. has_more turns False once a fetch brings no record the cache
        did not already hold.
        """
        if self.loading:
            return Result.fail_with_message(
                _SOURCE,
                "A fetch is already in progress",
                severity=ErrorSeverity.WARNING,
            )

        cursor, at_cursor = self._cursor()
        request = min_count + at_cursor
        self.loading = True
        self.error = None
        try:
            result = await self.fetcher.fetch_page(self.config, request, cursor)
        except Exception as e:
            self.error = str(e) or type(e).__name__
            _logger.error(f"Failed to fetch proofs: {self.error}")
            return Result.fail_with_message(
                _SOURCE,
                self.error,
                context={"min_count": request, "cursor": cursor},
                exception=e,
            )
        finally:
            self.loading = False

        records = result.get("events") or []
        known = self.cache.keys()
        new_records = [r for r in records if record_key(r) not in known]

        self.cache.update_proofs(new_records)
        self.has_more = bool(new_records)
        _logger.info(
            f"Fetched {len(records)} records ({len(new_records)} new) "
            f"from cursor {cursor}"
        )
        return Result.ok(new_records)

    async def _fill_through(self, page: int) -> Optional[Result]:
        outcome = None
        while self.has_more and self._missing_through(page) > 0:
            outcome = await self.fetch_and_cache_proofs(
                self._missing_through(page)
            )
            if not outcome.success:
                break
        return outcome

    async def load(self) -> Optional[Result]:
        """Fill the persisted page, fetching only what the cache lacks"""
        return await self._fill_through(self.cache.current_page)

    async def handle_page_change(
        self, event: Any, new_page: int
    ) -> Optional[Result]:
        self.cache.update_current_page(new_page)
        return await self._fill_through(self.cache.current_page)

    async def retry_fetch(self) -> Optional[Result]:
        self.error = None
        return await self._fill_through(self.cache.current_page)
