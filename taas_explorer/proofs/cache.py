"""
Persisted, deduplicated and sorted store of correlated proof records.
"""

import json
from typing import Dict, Iterable, List, Optional

from taas_explorer.proofs.correlation import record_key
from taas_explorer.shared.constants import StorageKeys
from taas_explorer.shared.logging import get_logger
from taas_explorer.shared.types import CorrelatedRecord
from taas_explorer.utils.storage import StorageBackend

_logger = get_logger(__name__)


def _sort_key(record: CorrelatedRecord):
    return (int(record.get("epoch") or 0), str(record.get("traderId") or ""))


def record_block(record: CorrelatedRecord) -> Optional[int]:
    """Block of a record, falling back to its first data event"""
    block = record.get("blockNumber")
    if block is None and record.get("dataEvents"):
        block = record["dataEvents"][0].get("blockNumber")
    return None if block is None else int(block)


class ProofsCache:
    """
    Proof records keyed by (traderId, epoch), plus the current page index.

    Records are kept sorted by epoch then traderId, both descending. Every
    update is written through to the storage backend, so state and storage
    agree once a call returns.
    """

    def __init__(
        self,
        storage: StorageBackend,
        cache_key: str = StorageKeys.PROOFS_CACHE,
        page_key: str = StorageKeys.PROOFS_CURRENT_PAGE,
    ):
        self.storage = storage
        self.cache_key = cache_key
        self.page_key = page_key
        self._proofs: List[CorrelatedRecord] = self._load_proofs()
        self._current_page: int = self._load_page()

    def _load_proofs(self) -> List[CorrelatedRecord]:
        raw = self.storage.get(self.cache_key)
        if not raw:
            return []
        try:
            proofs = json.loads(raw)
        except ValueError as e:
            _logger.warning(f"Discarding unreadable proofs cache: {e}")
            return []
        if not isinstance(proofs, list):
            _logger.warning("Discarding proofs cache that is not a list")
            return []
        return sorted(proofs, key=_sort_key, reverse=True)

    def _load_page(self) -> int:
        raw = self.storage.get(self.page_key)
        try:
            return max(0, int(raw)) if raw is not None else 0
        except ValueError:
            return 0

    @property
    def proofs(self) -> List[CorrelatedRecord]:
        return list(self._proofs)

    @property
    def proofs_length(self) -> int:
        return len(self._proofs)

    @property
    def current_page(self) -> int:
        return self._current_page

    def keys(self) -> set:
        return {record_key(record) for record in self._proofs}

    def update_proofs(self, records: Iterable[CorrelatedRecord]) -> None:
        """Merge records in, a record replacing any stored one with its key"""
        merged: Dict[str, CorrelatedRecord] = {
            record_key(record): record for record in self._proofs
        }
        for record in records or []:
            merged[record_key(record)] = record

        self._proofs = sorted(merged.values(), key=_sort_key, reverse=True)
        self.storage.set(self.cache_key, json.dumps(self._proofs))

    def update_current_page(self, page: int) -> None:
        self._current_page = max(0, int(page))
        self.storage.set(self.page_key, str(self._current_page))

    def clear(self) -> None:
        self._proofs = []
        self._current_page = 0
        self.storage.remove(self.cache_key)
        self.storage.remove(self.page_key)
