from typing import Dict, Iterable, List, Union

from taas_explorer.shared.types import AttestationEvent

ParameterKey = Union[int, str]


def _is_int_like(value) -> bool:
    if isinstance(value, bool):
        return False
    try:
        int(value)
    except (TypeError, ValueError):
        return False
    return True


def group_risk_events_by_parameter_id(
    events: Iterable[AttestationEvent] = (),
) -> Dict[ParameterKey, List[AttestationEvent]]:
    """Bucket risk events by parameterId; unreadable ids go under "unknown"."""
    groups: Dict[ParameterKey, List[AttestationEvent]] = {}
    for event in events or ():
        parameter_id = event.get("parameterId")
        key = int(parameter_id) if _is_int_like(parameter_id) else "unknown"
        groups.setdefault(key, []).append(event)
    return groups


def create_risk_tx_hashes_by_parameter_id(
    groups: Dict[ParameterKey, List[AttestationEvent]],
) -> Dict[ParameterKey, List[str]]:
    return {
        parameter_id: [event["transactionHash"] for event in events]
        for parameter_id, events in (groups or {}).items()
    }
