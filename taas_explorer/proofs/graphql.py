"""
Attestation retrieval through the GraphQL indexer, and the fetcher strategy.

The indexer answers the same question as a backward eth_getLogs scan in a
handful of requests, so it is tried first. The RPC path stays the ground
truth: any indexer failure hands the request to a fallback fetcher.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx

from taas_explorer.proofs.correlation import correlate_events
from taas_explorer.shared.constants import GlobalConstants
from taas_explorer.shared.exceptions import (
    APIException,
    ConfigurationException,
    GraphQLException,
)
from taas_explorer.shared.logging import get_logger
from taas_explorer.shared.services.http_client import get_async_client
from taas_explorer.shared.types import (
    AttestationEvent,
    ChainConfig,
    CorrelatedRecord,
    FetchResult,
)

_logger = get_logger(__name__)

DEFAULT_GRAPHQL_ENDPOINT = GlobalConstants.DEFAULT_GRAPHQL_ENDPOINT

ATTESTATIONS_QUERY = """
query Attestations(
  $first: Int!
  $skip: Int!
  $dataOrderBy: AttestedToData_orderBy
  $riskOrderBy: AttestedToRisk_orderBy
  $orderDirection: OrderDirection
  $dataWhere: AttestedToData_filter
  $riskWhere: AttestedToRisk_filter
) {
  attestedToDatas(
    first: $first
    skip: $skip
    orderBy: $dataOrderBy
    orderDirection: $orderDirection
    where: $dataWhere
  ) {
    id
    traderId
    epoch
    attester
    record_merkleRoot
    record_cid
    blockNumber
    blockTimestamp
    transactionHash
  }
  attestedToRisks(
    first: $first
    skip: $skip
    orderBy: $riskOrderBy
    orderDirection: $orderDirection
    where: $riskWhere
  ) {
    id
    traderId
    epoch
    parameterId
    attester
    record_value
    blockNumber
    blockTimestamp
    transactionHash
  }
}
"""


RISK_ATTESTATIONS_QUERY = """
query RiskAttestations(
  $first: Int!
  $skip: Int!
  $orderBy: AttestedToRisk_orderBy
  $orderDirection: OrderDirection
  $where: AttestedToRisk_filter
) {
  attestedToRisks(
    first: $first
    skip: $skip
    orderBy: $orderBy
    orderDirection: $orderDirection
    where: $where
  ) {
    id
    traderId
    epoch
    parameterId
    attester
    record_value
    blockNumber
    blockTimestamp
    transactionHash
  }
}
"""


def _optional_int(value: Any) -> Optional[int]:
    if value is None or value == "":
        return None
    return int(value)


def format_graphql_data_event(item: Dict[str, Any]) -> AttestationEvent:
    """Indexer AttestedToData entity -> AttestationEvent"""
    event: AttestationEvent = {
        "transactionHash": item.get("transactionHash"),
        "blockNumber": _optional_int(item.get("blockNumber")),
        "traderId": item.get("traderId"),
        "epoch": _optional_int(item.get("epoch")),
        "attester": item.get("attester"),
        "data": {
            "merkleRoot": item.get("record_merkleRoot"),
            "cid": item.get("record_cid"),
        },
        "eventName": "Data",
        "eventColor": "success",
    }
    if item.get("parameterId") is not None:
        event["parameterId"] = _optional_int(item["parameterId"])
    return event


def format_graphql_risk_event(item: Dict[str, Any]) -> AttestationEvent:
    """Indexer AttestedToRisk entity -> AttestationEvent"""
    return {
        "transactionHash": item.get("transactionHash"),
        "blockNumber": _optional_int(item.get("blockNumber")),
        "traderId": item.get("traderId"),
        "epoch": _optional_int(item.get("epoch")),
        "attester": item.get("attester"),
        "data": _optional_int(item.get("record_value")),
        "parameterId": _optional_int(item.get("parameterId")),
        "eventName": "Risk",
        "eventColor": "warning",
    }


@dataclass
class AttestationBatch:
    """One page of formatted indexer results."""

    data_events: List[AttestationEvent] = field(default_factory=list)
    risk_events: List[AttestationEvent] = field(default_factory=list)

    def is_empty(self) -> bool:
        return not self.data_events and not self.risk_events


async def _post_query(
    config: Optional[ChainConfig], query: str, variables: Dict[str, Any]
) -> Dict[str, Any]:
    """POST a query to the indexer and return its data object"""
    endpoint = (config.graphql_endpoint if config else None) or (
        DEFAULT_GRAPHQL_ENDPOINT
    )

    client = get_async_client()
    try:
        response = await client.post(
            endpoint,
            json={"query": query, "variables": variables},
            headers={"Content-Type": "application/json"},
        )
    except httpx.RequestError as e:
        raise APIException(f"Failed to reach GraphQL endpoint: {e}")

    try:
        body = response.json()
    except ValueError as e:
        raise GraphQLException(f"Invalid JSON returned from GraphQL: {e}")

    body = body or {}
    if body.get("errors"):
        messages = [
            error.get("message", str(error)) for error in body["errors"]
        ]
        raise GraphQLException(f"GraphQL errors: {', '.join(messages)}")

    data = body.get("data")
    if not data:
        raise GraphQLException("No data returned from GraphQL")
    return data


def _block_filter(max_block: Optional[int]) -> Dict[str, Any]:
    if max_block is None:
        return {}
    return {"blockNumber_lte": str(max_block)}


async def fetch_graphql_attestations(
    config: Optional[ChainConfig],
    first: int = GlobalConstants.GRAPHQL_PAGE_SIZE,
    skip: int = 0,
    order_by: str = "blockNumber",
    order_direction: str = "desc",
    max_block: Optional[int] = None,
) -> AttestationBatch:
    """
    Fetch one page of data and risk attestations from the indexer.

    Args:
        config: Chain config; graphql_endpoint falls back to the default
        first: Page size for both collections
        skip: Number of entities to skip in both collections
        order_by: Entity field to order on
        order_direction: "asc" or "desc"
        max_block: Only return entities at or below this block

    Raises:
        APIException: The endpoint could not be reached
        GraphQLException: The response held errors, no data, or no JSON
    """
    where = _block_filter(max_block)
    data = await _post_query(
        config,
        ATTESTATIONS_QUERY,
        {
            "first": first,
            "skip": skip,
            "dataOrderBy": order_by,
            "riskOrderBy": order_by,
            "orderDirection": order_direction,
            "dataWhere": where,
            "riskWhere": where,
        },
    )

    batch = AttestationBatch(
        data_events=[
            format_graphql_data_event(item)
            for item in data.get("attestedToDatas") or []
        ],
        risk_events=[
            format_graphql_risk_event(item)
            for item in data.get("attestedToRisks") or []
        ],
    )
    _logger.debug(
        f"GraphQL page skip={skip}: {len(batch.data_events)} data, "
        f"{len(batch.risk_events)} risk events"
    )
    return batch


async def fetch_graphql_risk_events(
    config: Optional[ChainConfig],
    first: int = GlobalConstants.GRAPHQL_PAGE_SIZE,
    skip: int = 0,
    order_by: str = "blockNumber",
    order_direction: str = "desc",
    max_block: Optional[int] = None,
) -> List[AttestationEvent]:
    """One page of the risk collection alone, same paging as above"""
    data = await _post_query(
        config,
        RISK_ATTESTATIONS_QUERY,
        {
            "first": first,
            "skip": skip,
            "orderBy": order_by,
            "orderDirection": order_direction,
            "where": _block_filter(max_block),
        },
    )
    return [
        format_graphql_risk_event(item)
        for item in data.get("attestedToRisks") or []
    ]


def _lowest_block(records: List[CorrelatedRecord]) -> int:
    blocks = [
        record["blockNumber"]
        for record in records
        if record.get("blockNumber") is not None
    ]
    return min(blocks) if blocks else 0


def _oldest_event_block(events: List[AttestationEvent]) -> Optional[int]:
    blocks = [
        event["blockNumber"]
        for event in events
        if event.get("blockNumber") is not None
    ]
    return min(blocks) if blocks else None


def _risk_pages_behind(
    data_events: List[AttestationEvent], risk_events: List[AttestationEvent]
) -> bool:
    oldest_data = _oldest_event_block(data_events)
    oldest_risk = _oldest_event_block(risk_events)
    if oldest_data is None or oldest_risk is None:
        return False
    return oldest_risk >= oldest_data


async def fetch_until_enough_events_graphql(
    config: Optional[ChainConfig],
    min_count: int,
    start_from_block: Optional[int] = None,
    page_size: int = GlobalConstants.GRAPHQL_PAGE_SIZE,
) -> FetchResult:
    """
    Page through the indexer until min_count correlated records exist.

    Raw events from every page are kept and correlated together, so a data
    event and its risk events landing on different pages still form a
    single record. An empty page ends the paging, and so does a page that
    is short in both collections: with skip-based paging a short page is
    the end of the collection, so no further request is made for it.

    A record usually carries several risk events, so the risk pages cover
    fewer blocks than the data pages. Once the data side is done, risk
    pages alone are read on until they reach below the oldest data event
    or run out.
    """
    data_events: List[AttestationEvent] = []
    risk_events: List[AttestationEvent] = []
    records: List[CorrelatedRecord] = []
    skip = 0
    pages = 0
    risk_exhausted = True

    while True:
        batch = await fetch_graphql_attestations(
            config, first=page_size, skip=skip, max_block=start_from_block
        )
        pages += 1
        if batch.is_empty():
            risk_exhausted = True
            break

        data_events.extend(batch.data_events)
        risk_events.extend(batch.risk_events)
        records = correlate_events(data_events, risk_events)
        risk_exhausted = len(batch.risk_events) < page_size

        if len(records) >= min_count:
            break
        if len(batch.data_events) < page_size and risk_exhausted:
            break
        skip += page_size

    risk_skip = skip + page_size
    filled = False
    while (
        records
        and not risk_exhausted
        and _risk_pages_behind(data_events, risk_events)
    ):
        page = await fetch_graphql_risk_events(
            config, first=page_size, skip=risk_skip, max_block=start_from_block
        )
        pages += 1
        risk_events.extend(page)
        risk_skip += page_size
        risk_exhausted = len(page) < page_size
        filled = True

    if filled:
        records = correlate_events(data_events, risk_events)

    _logger.info(
        f"GraphQL returned {len(records)} records from {pages} page(s)"
    )
    return {"events": records, "lastCheckedBlock": _lowest_block(records)}


FallbackFn = Callable[
    [ChainConfig, int, Optional[int]], Awaitable[FetchResult]
]


async def fetch_events_with_fallback(
    config: ChainConfig,
    min_count: int,
    start_from_block: Optional[int] = None,
    fallback_fetcher: Optional[FallbackFn] = None,
) -> FetchResult:
    """
    Fetch correlated records from GraphQL, falling back on any failure.

    GraphQL is skipped entirely when config.use_graphql is False. When it
    fails, fallback_fetcher is awaited exactly once; without a fallback the
    error propagates.
    """
    if config.use_graphql is not False:
        try:
            return await fetch_until_enough_events_graphql(
                config, min_count, start_from_block
            )
        except Exception as e:
            if fallback_fetcher is None:
                raise
            _logger.warning(f"GraphQL fetch failed, using fallback: {e}")
            return await fallback_fetcher(config, min_count, start_from_block)

    if fallback_fetcher is None:
        raise ConfigurationException(
            "GraphQL is disabled and no fallback fetcher was provided"
        )
    return await fallback_fetcher(config, min_count, start_from_block)


class Fetcher(ABC):
    """Source of correlated proof records, paged backward from a cursor."""

    def is_enabled(self, config: ChainConfig) -> bool:
        return True

    @abstractmethod
    async def fetch_page(
        self,
        config: ChainConfig,
        min_count: int,
        cursor: Optional[int] = None,
    ) -> FetchResult:
        """Return at least min_count records at or below cursor, if any"""


class GraphQLFetcher(Fetcher):
    def __init__(self, page_size: int = GlobalConstants.GRAPHQL_PAGE_SIZE):
        self.page_size = page_size

    def is_enabled(self, config: ChainConfig) -> bool:
        return config.use_graphql is not False

    async def fetch_page(
        self,
        config: ChainConfig,
        min_count: int,
        cursor: Optional[int] = None,
    ) -> FetchResult:
        return await fetch_until_enough_events_graphql(
            config, min_count, cursor, page_size=self.page_size
        )


class FallbackFetcher(Fetcher):
    """Try primary, and use secondary when it is disabled or fails."""

    def __init__(self, primary: Fetcher, secondary: Fetcher):
        self.primary = primary
        self.secondary = secondary

    async def fetch_page(
        self,
        config: ChainConfig,
        min_count: int,
        cursor: Optional[int] = None,
    ) -> FetchResult:
        if self.primary.is_enabled(config):
            try:
                return await self.primary.fetch_page(config, min_count, cursor)
            except Exception as e:
                _logger.warning(
                    f"{type(self.primary).__name__} failed, using "
                    f"{type(self.secondary).__name__}: {e}"
                )
        return await self.secondary.fetch_page(config, min_count, cursor)
