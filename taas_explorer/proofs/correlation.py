"""
Correlation of data and risk attestations into per-(trader, epoch) records.
"""

from enum import Enum
from typing import Dict, Iterable, List, Optional

from taas_explorer.shared.logging import get_logger
from taas_explorer.shared.types import AttestationEvent, CorrelatedRecord

_logger = get_logger(__name__)


class OrphanRiskPolicy(Enum):
    """What to do with risk events whose (traderId, epoch) has no data event."""

    DROP = "drop"
    RETAIN = "retain"  # Keep them as data-less records


def record_key(event) -> str:
    return f"{event['traderId']}-{event['epoch']}"


def correlate_events(
    data_events: Optional[Iterable[AttestationEvent]],
    risk_events: Optional[Iterable[AttestationEvent]],
    orphan_policy: OrphanRiskPolicy = OrphanRiskPolicy.DROP,
) -> List[CorrelatedRecord]:
    """
    Group data and risk events by (traderId, epoch).

    Records come out in first-appearance order of their key in data_events.
    A record's blockNumber is the one of its first data event; later data
    events for the same key only extend dataEvents.

    Args:
        data_events: AttestedToData events, None is treated as empty
        risk_events: AttestedToRisk events, None is treated as empty
        orphan_policy: Whether risk events without a data record are dropped
            or kept as records with empty dataEvents (appended last)

    Returns:
        List of CorrelatedRecord
    """
    records: Dict[str, CorrelatedRecord] = {}

    for event in data_events or []:
        key = record_key(event)
        record = records.get(key)
        if record is None:
            records[key] = {
                "traderId": event["traderId"],
                "epoch": event["epoch"],
                "blockNumber": event.get("blockNumber"),
                "dataEvents": [event],
                "riskEvents": [],
            }
        else:
            record["dataEvents"].append(event)

    orphans: Dict[str, CorrelatedRecord] = {}
    dropped = 0
    for event in risk_events or []:
        key = record_key(event)
        if key in records:
            records[key]["riskEvents"].append(event)
        elif orphan_policy is OrphanRiskPolicy.RETAIN:
            orphan = orphans.setdefault(
                key,
                {
                    "traderId": event["traderId"],
                    "epoch": event["epoch"],
                    "blockNumber": event.get("blockNumber"),
                    "dataEvents": [],
                    "riskEvents": [],
                },
            )
            orphan["riskEvents"].append(event)
        else:
            dropped += 1

    if dropped:
        _logger.debug(f"Dropped {dropped} risk events without a data record")

    return list(records.values()) + list(orphans.values())
