from taas_explorer.utils.storage import FileStorage, MemoryStorage, StorageBackend

__all__ = [
    "FileStorage",
    "MemoryStorage",
    "StorageBackend",
]
