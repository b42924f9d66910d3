import json
import time
from typing import Callable, Optional

from taas_explorer.shared.constants import GlobalConstants, StorageKeys
from taas_explorer.shared.logging import get_logger
from taas_explorer.utils.storage import StorageBackend

_logger = get_logger(__name__)


def _now_ms() -> int:
    return int(time.time() * 1000)


class LatestBlockCache:
    """
    Short-lived memo of the latest active block per (rpcUrl, contract).

    Entries live for ten minutes; reading a stale entry deletes it, and a
    malformed entry reads as a miss.
    """

    def __init__(
        self,
        storage: StorageBackend,
        ttl_ms: int = GlobalConstants.LATEST_BLOCK_TTL_MS,
        clock: Optional[Callable[[], int]] = None,
    ):
        self.storage = storage
        self.ttl_ms = ttl_ms
        self._clock = clock or _now_ms

    @staticmethod
    def cache_key(rpc_url: str, address: str) -> str:
        return f"{StorageKeys.LATEST_ACTIVE_BLOCK_PREFIX}:{rpc_url}:{address}"

    def cache_latest_active_block(
        self, rpc_url: str, address: str, block_number: int
    ) -> None:
        entry = {"blockNumber": block_number, "timestamp": self._clock()}
        self.storage.set(self.cache_key(rpc_url, address), json.dumps(entry))

    def get_cached_latest_active_block(
        self, rpc_url: str, address: str
    ) -> Optional[int]:
        key = self.cache_key(rpc_url, address)
        raw = self.storage.get(key)
        if raw is None:
            return None

        try:
            entry = json.loads(raw)
            block_number = int(entry["blockNumber"])
            timestamp = int(entry["timestamp"])
        except (ValueError, TypeError, KeyError) as e:
            _logger.debug(f"Ignoring malformed cache entry {key}: {e}")
            return None

        if self._clock() - timestamp > self.ttl_ms:
            self.storage.remove(key)
            return None

        return block_number
