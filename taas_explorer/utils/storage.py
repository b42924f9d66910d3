"""
Key/value persistence backends for the proofs and latest-block caches.

Values are plain strings (the callers store JSON text), mirroring the
semantics of browser localStorage:

1. ``get`` returns the stored string or None
2. ``set`` overwrites the value for a key
3. ``remove`` deletes a key, ignoring missing ones

FileStorage keeps one file per key in a cache directory (``.cache`` by
default), named after a sha256 of the namespaced key.
"""

import hashlib
from pathlib import Path
from typing import Dict, Optional, Protocol, Union

from taas_explorer.shared.logging import get_logger

_logger = get_logger(__name__)


class StorageBackend(Protocol):
    """Interface every persistence backend implements."""

    def get(self, key: str) -> Optional[str]: ...

    def set(self, key: str, value: str) -> None: ...

    def remove(self, key: str) -> None: ...


class MemoryStorage:
    """In-process storage, used by tests and one-shot CLI runs."""

    def __init__(self, initial: Optional[Dict[str, str]] = None):
        self._data: Dict[str, str] = dict(initial or {})

    def get(self, key: str) -> Optional[str]:
        return self._data.get(key)

    def set(self, key: str, value: str) -> None:
        self._data[key] = value

    def remove(self, key: str) -> None:
        self._data.pop(key, None)

    def clear(self) -> None:
        self._data.clear()

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __len__(self) -> int:
        return len(self._data)


class FileStorage:
    """File-based persistent storage."""

    def __init__(
        self, cache_dir: Union[str, Path] = ".cache", namespace: str = "taas"
    ):
        """
        Initialize file storage.

        Args:
            cache_dir: Directory holding one file per key
            namespace: Prefix mixed into file names so several stores can
                share a directory
        """
        self.cache_dir = Path(cache_dir)
        self._namespace = namespace

    def _get_path(self, key: str) -> Path:
        safe_key = hashlib.sha256(
            f"{self._namespace}:{key}".encode()
        ).hexdigest()
        return self.cache_dir / f"{safe_key}.cache"

    def get(self, key: str) -> Optional[str]:
        path = self._get_path(key)
        if not path.exists():
            return None
        try:
            return path.read_text(encoding="utf-8")
        except OSError as e:
            _logger.warning(f"Could not read storage key {key}: {e}")
            return None

    def set(self, key: str, value: str) -> None:
        self.cache_dir.mkdir(parents=True, exist_ok=True)
        self._get_path(key).write_text(value, encoding="utf-8")

    def remove(self, key: str) -> None:
        path = self._get_path(key)
        if path.exists():
            path.unlink()
