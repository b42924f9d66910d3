from taas_explorer.proofs.block_search import (
    find_latest_active_block,
    generate_search_ranges,
)
from taas_explorer.proofs.cache import ProofsCache
from taas_explorer.proofs.consensus import fetch_record_consensus
from taas_explorer.proofs.correlation import OrphanRiskPolicy, correlate_events
from taas_explorer.proofs.fetchers import (
    RPCFetcher,
    fetch_correlated_events_rpc,
    fetch_data_record,
    fetch_events_batch,
    fetch_risk_record,
    fetch_until_enough_events,
)
from taas_explorer.proofs.graphql import (
    DEFAULT_GRAPHQL_ENDPOINT,
    FallbackFetcher,
    Fetcher,
    GraphQLFetcher,
    fetch_events_with_fallback,
    fetch_graphql_attestations,
    fetch_graphql_risk_events,
    fetch_until_enough_events_graphql,
)
from taas_explorer.proofs.latest_block_cache import LatestBlockCache
from taas_explorer.proofs.pagination import ProofsPagination
from taas_explorer.proofs.priority_queue import PriorityQueue

__all__ = [
    "DEFAULT_GRAPHQL_ENDPOINT",
    "FallbackFetcher",
    "Fetcher",
    "GraphQLFetcher",
    "LatestBlockCache",
    "OrphanRiskPolicy",
    "PriorityQueue",
    "ProofsCache",
    "ProofsPagination",
    "RPCFetcher",
    "correlate_events",
    "fetch_correlated_events_rpc",
    "fetch_data_record",
    "fetch_events_batch",
    "fetch_events_with_fallback",
    "fetch_graphql_attestations",
    "fetch_graphql_risk_events",
    "fetch_record_consensus",
    "fetch_risk_record",
    "fetch_until_enough_events",
    "fetch_until_enough_events_graphql",
    "find_latest_active_block",
    "generate_search_ranges",
]
