"""
Shared type definitions used across the TaaS explorer toolkit.

Event and record dicts keep the camelCase keys of the indexer schema so
persisted caches and GraphQL payloads share one shape.
"""

from dataclasses import dataclass, replace
from typing import Any, Dict, List, Optional, TypedDict, Union

# =============================================================================
# EVENT TYPES
# =============================================================================


class DataPayload(TypedDict):
    """Off-chain trade data reference carried by an AttestedToData event."""

    merkleRoot: str  # Merkle root of the trade batch
    cid: str  # Content ID of the encrypted blob


class AttestationEvent(TypedDict, total=False):
    """Canonical event shape produced by both RPC and GraphQL formatters."""

    transactionHash: str
    blockNumber: Optional[int]
    traderId: str
    epoch: Optional[int]
    attester: str
    eventName: str  # "Data" | "Risk" | "Error"
    eventColor: str  # "success" | "warning" | "error"
    data: Union[DataPayload, int, Dict[str, Any]]
    parameterId: Optional[int]


class CorrelatedRecord(TypedDict):
    """All attestations for one (traderId, epoch) pair."""

    traderId: str
    epoch: int
    blockNumber: Optional[int]  # Block of the first-seen data event
    dataEvents: List[AttestationEvent]
    riskEvents: List[AttestationEvent]


# =============================================================================
# BLOCK SCANNING TYPES
# =============================================================================

# "from" is a keyword, hence the functional syntax
BlockSearchRange = TypedDict(
    "BlockSearchRange", {"from": int, "to": int, "step": int}
)


class CachedBlockEntry(TypedDict):
    """Persisted latest-active-block entry."""

    blockNumber: int
    timestamp: int  # Epoch milliseconds


class FetchResult(TypedDict):
    """Result of a scanning/paging fetch."""

    events: List[Any]
    lastCheckedBlock: int


# =============================================================================
# CONFIG
# =============================================================================


@dataclass(frozen=True)
class ChainConfig:
    """Connection settings passed through fetchers."""

    rpc_url: Optional[str]
    attestation_address: Optional[str]
    graphql_endpoint: Optional[str] = None
    use_graphql: Optional[bool] = None  # Only an explicit False disables it
    from_block: Optional[int] = None
    to_block: Optional[int] = None

    def with_blocks(
        self, from_block: Optional[int], to_block: Optional[int]
    ) -> "ChainConfig":
        return replace(self, from_block=from_block, to_block=to_block)
