"""TaaS Explorer Toolkit - discover, correlate and page trade/risk attestations."""

__version__ = "0.1.0"

from .proofs import ProofsCache, ProofsPagination, correlate_events
from .utils.storage import FileStorage, MemoryStorage

__all__ = [
    "ProofsCache",
    "ProofsPagination",
    "correlate_events",
    "FileStorage",
    "MemoryStorage",
]
