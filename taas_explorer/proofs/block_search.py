"""
Backward block-range scanning for the most recent attestation activity.

The chain is walked newest-first in fixed-size inclusive windows; the first
window holding at least one log of the contract ends the search. Recently
active contracts therefore cost one or two log queries, while a contract last
active in ancient history costs one query per window.
"""

from typing import List, Optional

from taas_explorer.proofs.priority_queue import PriorityQueue
from taas_explorer.shared.constants import GlobalConstants
from taas_explorer.shared.logging import get_logger
from taas_explorer.shared.services.web3_service import Web3Service
from taas_explorer.shared.types import BlockSearchRange

_logger = get_logger(__name__)


def generate_search_ranges(
    latest_block: int, batch_size: int
) -> List[BlockSearchRange]:
    """
    Split [0, latest_block] into inclusive windows of at most batch_size
    blocks, newest first.

    Args:
        latest_block: Highest block to cover
        batch_size: Maximum number of blocks per window

    Returns:
        Contiguous, non-overlapping ranges; the last one always starts at 0.
        Empty when latest_block <= 0.

    Example:
        >>> generate_search_ranges(5, 2)
        [{'from': 4, 'to': 5, 'step': 2}, {'from': 2, 'to': 3, 'step': 2},
         {'from': 0, 'to': 1, 'step': 2}]
    """
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")
    if latest_block <= 0:
        return []

    ranges: List[BlockSearchRange] = []
    to_block = latest_block
    while to_block >= 0:
        from_block = max(0, to_block - batch_size + 1)
        ranges.append({"from": from_block, "to": to_block, "step": batch_size})
        to_block = from_block - 1

    return ranges


async def find_latest_active_block(
    rpc_url: str,
    contract_address: str,
    batch_size: int = GlobalConstants.BLOCK_STEP_SIZE,
    web3_service: Optional[Web3Service] = None,
) -> int:
    """
    Find the most recent block holding a log emitted by contract_address.

    Args:
        rpc_url: Chain RPC endpoint
        contract_address: Contract whose logs are searched (no event filter)
        batch_size: Width of each eth_getLogs window
        web3_service: Optional service to use instead of the shared instance

    Returns:
        Block number of the latest matching log, or 0 when none exists.
    """
    service = web3_service or Web3Service.get_instance(rpc_url)
    latest_block = await service.get_block_number()

    queue = PriorityQueue()
    for search_range in generate_search_ranges(latest_block, batch_size):
        queue.enqueue(search_range, search_range["to"])

    queries = 0
    while len(queue):
        search_range = queue.dequeue()
        logs = await service.get_logs(
            contract_address, search_range["from"], search_range["to"]
        )
        queries += 1

        if logs:
            block_number = max(int(log["blockNumber"]) for log in logs)
            _logger.debug(
                f"Latest activity for {contract_address} at block "
                f"{block_number} after {queries} log queries"
            )
            return block_number

    _logger.info(
        f"No activity found for {contract_address} up to block {latest_block}"
    )
    return 0
