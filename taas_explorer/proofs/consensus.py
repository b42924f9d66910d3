"""
Consensus view of one (trader, epoch) record.

Combines what the attesters emitted (events, re-read from their receipts or
taken from a correlated record) with what the contract settled on
(getDataRecord / getRiskRecord).
"""

import asyncio
from collections import Counter
from typing import Any, Callable, Dict, List, Optional

from eth_utils import event_abi_to_log_topic
from web3 import Web3
from web3.exceptions import Web3Exception

from taas_explorer.proofs.fetchers import fetch_data_record, fetch_risk_record
from taas_explorer.proofs.risk_grouping import group_risk_events_by_parameter_id
from taas_explorer.shared.exceptions import RetryableException
from taas_explorer.shared.logging import get_logger
from taas_explorer.shared.services.web3_service import Web3Service
from taas_explorer.shared.types import (
    AttestationEvent,
    ChainConfig,
    CorrelatedRecord,
)

_logger = get_logger(__name__)


def _most_common(values: List[Any]):
    """(value, count) of the most frequent value; ties go to the first seen"""
    best, best_count = None, 0
    for value, count in Counter(values).items():
        if count > best_count:
            best, best_count = value, count
    return best, best_count


def aggregate_data_consensus(
    data_events: Optional[List[AttestationEvent]],
    consensus: Optional[Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    if not data_events:
        return None

    roots = [
        event["data"]["merkleRoot"]
        for event in data_events
        if isinstance(event.get("data"), dict)
        and event["data"].get("merkleRoot")
    ]
    merkle_root, count = _most_common(roots)
    return {
        "merkleRoot": merkle_root,
        "count": count,
        "total": len(data_events),
        "hasConsensus": bool((consensus or {}).get("hasConsensus", False)),
    }


def aggregate_risk_consensus(
    risk_events: Optional[List[AttestationEvent]],
    consensus: Optional[Dict[str, Any]],
) -> Optional[Dict[str, Any]]:
    if not risk_events:
        return None

    values = [
        int(event["data"])
        for event in risk_events
        if event.get("data") is not None
    ]
    value, count = _most_common(values)
    return {
        "value": value,
        "count": count,
        "total": len(risk_events),
        "hasConsensus": bool((consensus or {}).get("hasConsensus", False)),
    }


def _event_names_by_topic(contract: Any) -> Dict[str, str]:
    return {
        Web3.to_hex(event_abi_to_log_topic(entry)): entry["name"]
        for entry in contract.abi
        if entry.get("type") == "event"
    }


def _parse_log(contract: Any, log: Any, names_by_topic: Dict[str, str]):
    topics = log["topics"]
    if not topics:
        return None
    topic = topics[0]
    topic_hex = topic if isinstance(topic, str) else Web3.to_hex(topic)
    name = names_by_topic.get(topic_hex.lower())
    if name is None:
        return None
    return getattr(contract.events, name)().process_log(log)


def process_transaction_receipt(
    receipt: Any,
    contract: Any,
    tx_hash: str,
    event_name: str,
    format_event_fn: Callable[[Any], AttestationEvent],
) -> Optional[AttestationEvent]:
    """
    Format the first Attestations event of a receipt if it is event_name.

    Logs that cannot be decoded are ignored.
    """
    if not receipt or contract is None:
        return None

    names_by_topic = _event_names_by_topic(contract)
    parsed = []
    for log in receipt["logs"]:
        try:
            decoded = _parse_log(contract, log, names_by_topic)
        except (Web3Exception, ValueError, KeyError, TypeError) as e:
            _logger.debug(f"Could not parse log in {tx_hash}: {e}")
            continue
        if decoded is not None:
            parsed.append(decoded)

    if not parsed or parsed[0]["event"] != event_name:
        return None

    return format_event_fn(
        {
            **dict(parsed[0]),
            "transactionHash": tx_hash,
            "blockNumber": receipt["blockNumber"],
        }
    )


async def process_transactions(
    tx_hashes: List[str],
    web3_service: Optional[Web3Service],
    contract: Any,
    event_name: str,
    format_event_fn: Callable[[Any], AttestationEvent],
) -> List[AttestationEvent]:
    """Re-read event_name from each transaction; failed ones are left out"""
    if web3_service is None or contract is None:
        _logger.error("Invalid web3 service or contract")
        return []

    async def _process(tx_hash: str) -> Optional[AttestationEvent]:
        try:
            receipt = await web3_service.get_transaction_receipt(tx_hash)
        except (Web3Exception, RetryableException, OSError) as e:
            _logger.error(f"Error processing tx {tx_hash}: {e}")
            return None
        return process_transaction_receipt(
            receipt, contract, tx_hash, event_name, format_event_fn
        )

    events = await asyncio.gather(*(_process(h) for h in tx_hashes))
    return [event for event in events if event is not None]


async def _read_consensus(fetch, *args, **kwargs) -> Optional[Dict[str, Any]]:
    try:
        return await fetch(*args, **kwargs)
    except (Web3Exception, RetryableException, OSError, ValueError) as e:
        _logger.error(f"Failed to fetch consensus record: {e}")
        return None


async def fetch_record_consensus(
    config: ChainConfig,
    record: CorrelatedRecord,
    web3_service: Optional[Web3Service] = None,
) -> Dict[str, Any]:
    """
    Aggregate attester agreement for a correlated record.

    Returns:
        {"traderId", "epoch", "data": aggregate or None,
         "risk": {parameterId: aggregate}}
    """
    trader_id, epoch = record["traderId"], record["epoch"]

    data_events = record.get("dataEvents") or []
    data_consensus = None
    if data_events:
        data_consensus = await _read_consensus(
            fetch_data_record,
            config,
            trader_id,
            epoch,
            web3_service=web3_service,
        )

    risk: Dict[Any, Optional[Dict[str, Any]]] = {}
    groups = group_risk_events_by_parameter_id(record.get("riskEvents") or [])
    for parameter_id, events in groups.items():
        risk_consensus = None
        if parameter_id != "unknown":
            risk_consensus = await _read_consensus(
                fetch_risk_record,
                config,
                trader_id,
                epoch,
                parameter_id,
                web3_service=web3_service,
            )
        risk[parameter_id] = aggregate_risk_consensus(events, risk_consensus)

    return {
        "traderId": trader_id,
        "epoch": epoch,
        "data": aggregate_data_consensus(data_events, data_consensus),
        "risk": risk,
    }
