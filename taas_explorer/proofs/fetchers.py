"""
RPC fetchers for Attestations events and consensus records.

Log queries are issued per event name over inclusive block windows and the
decoded logs are normalised with the formatters module. Scans walk backward
from an upper bound resolved from the caller, the config, the latest block
cache, or a fresh backward search, in that order.
"""

from typing import Any, Callable, List, Mapping, Optional

from web3 import Web3
from web3.exceptions import Web3Exception

from taas_explorer.proofs.block_search import (
    find_latest_active_block,
    generate_search_ranges,
)
from taas_explorer.proofs.correlation import correlate_events
from taas_explorer.proofs.formatters import format_risk_event, format_trade_event
from taas_explorer.proofs.graphql import Fetcher
from taas_explorer.proofs.latest_block_cache import LatestBlockCache
from taas_explorer.shared.constants import AttestationConstants, GlobalConstants
from taas_explorer.shared.logging import get_logger
from taas_explorer.shared.services.web3_service import (
    Web3Service,
    create_provider_and_contract,
)
from taas_explorer.shared.types import (
    AttestationEvent,
    BlockSearchRange,
    ChainConfig,
    FetchResult,
)

_logger = get_logger(__name__)

FormatEventFn = Callable[[Any], AttestationEvent]


async def fetch_events_batch(
    config: ChainConfig,
    event_name: str,
    format_event_fn: FormatEventFn,
    web3_service: Optional[Web3Service] = None,
) -> FetchResult:
    """
    Fetch and format every event_name log in [from_block, to_block].

    A log that fails to decode or format is logged and skipped. A missing
    to_block means the current chain head.

    Returns:
        {"events": [...], "lastCheckedBlock": config.from_block}
    """
    from_block = (config.from_block if config else None) or 0
    service, contract = create_provider_and_contract(config, web3_service)
    if contract is None:
        return {"events": [], "lastCheckedBlock": from_block}

    to_block = config.to_block
    if to_block is None:
        to_block = await service.get_block_number()

    topic = Web3Service.get_event_topic(event_name)
    logs = await service.get_logs(
        config.attestation_address, from_block, to_block, topics=[topic]
    )
    contract_event = getattr(contract.events, event_name)()

    events: List[AttestationEvent] = []
    for log in logs:
        try:
            events.append(format_event_fn(contract_event.process_log(log)))
        except (Web3Exception, ValueError, KeyError, TypeError) as e:
            _logger.warning(
                f"Skipping unreadable {event_name} log "
                f"{log.get('transactionHash')}: {e}"
            )

    _logger.debug(
        f"{event_name}: {len(events)} events in [{from_block}, {to_block}]"
    )
    return {"events": events, "lastCheckedBlock": from_block}


async def _resolve_upper_bound(
    config: ChainConfig,
    service: Web3Service,
    start_from_block: Optional[int],
    block_cache: Optional[LatestBlockCache],
    batch_size: int,
) -> int:
    if start_from_block is not None:
        return start_from_block
    if config.to_block is not None:
        return config.to_block

    if block_cache is not None:
        cached = block_cache.get_cached_latest_active_block(
            config.rpc_url, config.attestation_address
        )
        if cached is not None:
            return cached

    latest = await find_latest_active_block(
        config.rpc_url,
        config.attestation_address,
        batch_size,
        web3_service=service,
    )
    if block_cache is not None:
        block_cache.cache_latest_active_block(
            config.rpc_url, config.attestation_address, latest
        )
    return latest


def _scan_ranges(upper: int, batch_size: int) -> List[BlockSearchRange]:
    """Backward windows down to block 0; an upper bound of 0 still scans block 0"""
    if upper == 0:
        return [{"from": 0, "to": 0, "step": batch_size}]
    return generate_search_ranges(upper, batch_size)


async def fetch_until_enough_events(
    config: ChainConfig,
    min_count: int,
    event_name: str,
    format_event_fn: FormatEventFn,
    start_from_block: Optional[int] = None,
    web3_service: Optional[Web3Service] = None,
    block_cache: Optional[LatestBlockCache] = None,
    batch_size: int = GlobalConstants.BLOCK_STEP_SIZE,
) -> FetchResult:
    """
    Scan backward in batch_size windows until min_count events are found.

    Every window is disjoint from and older than the previous one, and none
    goes below config.from_block. The scan ends at block 0 at the latest.

    Returns:
        Accumulated events and the lowest block scanned.
    """
    service, contract = create_provider_and_contract(config, web3_service)
    if contract is None:
        return {"events": [], "lastCheckedBlock": 0}

    upper = await _resolve_upper_bound(
        config, service, start_from_block, block_cache, batch_size
    )
    floor = config.from_block or 0

    events: List[AttestationEvent] = []
    last_checked = upper
    for search_range in _scan_ranges(upper, batch_size):
        if search_range["to"] < floor:
            break

        window = config.with_blocks(
            max(search_range["from"], floor), search_range["to"]
        )
        batch = await fetch_events_batch(
            window, event_name, format_event_fn, web3_service=service
        )
        events.extend(batch["events"])
        last_checked = window.from_block

        if len(events) >= min_count:
            break

    _logger.info(
        f"Found {len(events)} {event_name} events between blocks "
        f"{last_checked} and {upper}"
    )
    return {"events": events, "lastCheckedBlock": last_checked}


async def _fetch_window(
    config: ChainConfig,
    from_block: int,
    to_block: int,
    event_name: str,
    format_event_fn: FormatEventFn,
    service: Web3Service,
    batch_size: int,
) -> List[AttestationEvent]:
    """All events in [from_block, to_block], queried batch_size at a time"""
    events: List[AttestationEvent] = []
    for search_range in _scan_ranges(to_block, batch_size):
        if search_range["to"] < from_block:
            break
        window = config.with_blocks(
            max(search_range["from"], from_block), search_range["to"]
        )
        batch = await fetch_events_batch(
            window, event_name, format_event_fn, web3_service=service
        )
        events.extend(batch["events"])
    return events


async def fetch_correlated_events_rpc(
    config: ChainConfig,
    min_count: int,
    start_from_block: Optional[int] = None,
    web3_service: Optional[Web3Service] = None,
    block_cache: Optional[LatestBlockCache] = None,
    batch_size: int = GlobalConstants.BLOCK_STEP_SIZE,
) -> FetchResult:
    """
    Correlated records straight from the chain.

    Data events are scanned until min_count are found, then risk events are
    read over the same block window and joined to them.
    """
    service, contract = create_provider_and_contract(config, web3_service)
    if contract is None:
        return {"events": [], "lastCheckedBlock": 0}

    upper = await _resolve_upper_bound(
        config, service, start_from_block, block_cache, batch_size
    )
    data = await fetch_until_enough_events(
        config,
        min_count,
        AttestationConstants.DATA_EVENT,
        format_trade_event,
        start_from_block=upper,
        web3_service=service,
        batch_size=batch_size,
    )
    if not data["events"]:
        return {"events": [], "lastCheckedBlock": data["lastCheckedBlock"]}

    risk_events = await _fetch_window(
        config,
        data["lastCheckedBlock"],
        upper,
        AttestationConstants.RISK_EVENT,
        format_risk_event,
        service,
        batch_size,
    )
    records = correlate_events(data["events"], risk_events)
    return {"events": records, "lastCheckedBlock": data["lastCheckedBlock"]}


def _to_int(value: Any) -> int:
    if isinstance(value, str):
        return int(value, 16) if value.startswith("0x") else int(value)
    return int(value)


def _struct_field(record: Any, name: str, index: int) -> Any:
    if isinstance(record, Mapping):
        return record[name]
    return record[index]


def _to_hex(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return value


async def fetch_data_record(
    config: ChainConfig,
    trader_id: str,
    epoch: int,
    parameter_id: Optional[int] = None,
    web3_service: Optional[Web3Service] = None,
) -> dict:
    """
    Read the consensus data record of (trader_id, epoch).

    parameter_id is accepted for symmetry with fetch_risk_record; data
    records are not keyed by it.
    """
    service, contract = create_provider_and_contract(config, web3_service)
    if contract is None:
        return {"record": None, "hasConsensus": False}

    record, has_consensus = await service.call_function(
        contract.functions.getDataRecord((trader_id, int(epoch)))
    )
    return {
        "record": {
            "merkleRoot": _to_hex(_struct_field(record, "merkleRoot", 0)),
            "cid": _struct_field(record, "cid", 1),
        },
        "hasConsensus": bool(has_consensus),
    }


async def fetch_risk_record(
    config: ChainConfig,
    trader_id: str,
    epoch: int,
    parameter_id: int,
    risk_group_id: int = AttestationConstants.DEFAULT_RISK_GROUP_ID,
    web3_service: Optional[Web3Service] = None,
) -> dict:
    """Read the consensus risk value of (trader_id, epoch, parameter_id)"""
    service, contract = create_provider_and_contract(config, web3_service)
    if contract is None:
        return {"record": None, "hasConsensus": False}

    record, has_consensus = await service.call_function(
        contract.functions.getRiskRecord(
            (trader_id, int(epoch), int(parameter_id)), risk_group_id
        )
    )
    return {
        "record": {"value": _to_int(_struct_field(record, "value", 0))},
        "hasConsensus": bool(has_consensus),
    }


class RPCFetcher(Fetcher):
    """Fetcher backed by eth_getLogs scans."""

    def __init__(
        self,
        web3_service: Optional[Web3Service] = None,
        block_cache: Optional[LatestBlockCache] = None,
        batch_size: int = GlobalConstants.BLOCK_STEP_SIZE,
    ):
        self.web3_service = web3_service
        self.block_cache = block_cache
        self.batch_size = batch_size

    async def fetch_page(
        self,
        config: ChainConfig,
        min_count: int,
        cursor: Optional[int] = None,
    ) -> FetchResult:
        return await fetch_correlated_events_rpc(
            config,
            min_count,
            start_from_block=cursor,
            web3_service=self.web3_service,
            block_cache=self.block_cache,
            batch_size=self.batch_size,
        )
