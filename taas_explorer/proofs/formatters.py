"""
Formatters turning decoded Attestations logs into AttestationEvent dicts.

Both the RPC fetchers and the receipt-based consensus reader use these, so
the event shape matches the one produced from GraphQL payloads.
"""

from typing import Any, Mapping

from web3 import Web3

from taas_explorer.shared.logging import get_logger
from taas_explorer.shared.types import AttestationEvent

_logger = get_logger(__name__)


def _to_hex(value: Any) -> Any:
    if isinstance(value, (bytes, bytearray)):
        return Web3.to_hex(value)
    return value


def _field(record: Any, name: str, index: int) -> Any:
    """Read a struct member from a decoded mapping or a positional tuple"""
    if isinstance(record, Mapping):
        return record[name]
    return record[index]


def _optional_int(value: Any):
    return None if value is None else int(value)


def format_trade_event(log: Mapping[str, Any]) -> AttestationEvent:
    args = log["args"]
    record = args["record"]
    event: AttestationEvent = {
        "transactionHash": _to_hex(log["transactionHash"]),
        "blockNumber": _optional_int(log.get("blockNumber")),
        "traderId": _to_hex(args["traderId"]),
        "epoch": int(args["epoch"]),
        "attester": args["attester"],
        "data": {
            "merkleRoot": _to_hex(_field(record, "merkleRoot", 0)),
            "cid": _field(record, "cid", 1),
        },
        "eventName": "Data",
        "eventColor": "success",
    }
    _logger.debug(f"Formatted data event: {event}")
    return event


def format_risk_event(log: Mapping[str, Any]) -> AttestationEvent:
    args = log["args"]
    event: AttestationEvent = {
        "transactionHash": _to_hex(log["transactionHash"]),
        "blockNumber": _optional_int(log.get("blockNumber")),
        "traderId": _to_hex(args["traderId"]),
        "epoch": int(args["epoch"]),
        "attester": args["attester"],
        "data": int(_field(args["record"], "value", 0)),
        "parameterId": int(args["parameterId"]),
        "eventName": "Risk",
        "eventColor": "warning",
    }
    _logger.debug(f"Formatted risk event: {event}")
    return event


def create_empty_event() -> AttestationEvent:
    """Placeholder event for a log that could not be read"""
    return {
        "transactionHash": "",
        "blockNumber": None,
        "traderId": "",
        "epoch": None,
        "attester": "",
        "data": {},
        "eventName": "Error",
        "eventColor": "error",
    }
