"""
Web3 Service module for interacting with the attestation chain.

This module provides a Web3Service class that manages one connection per RPC
URL, caches contract instances, and exposes the handful of chain reads the
proof fetchers need (block height, log queries, contract calls, receipts) as
coroutines. The underlying web3 calls are blocking, so they run in the
default executor and are retried on transient failures. A transport failure
that outlasts the retries surfaces as RPCException; contract reverts
propagate unchanged.
"""

import asyncio
import functools
from typing import Any, Callable, Dict, List, Optional, Tuple

from eth_utils import event_abi_to_log_topic
from web3 import Web3
from web3.exceptions import Web3Exception

from taas_explorer.shared.constants import AttestationConstants
from taas_explorer.shared.exceptions import RPCException
from taas_explorer.shared.logging import get_logger
from taas_explorer.shared.retry import (
    DEFAULT_NON_RETRYABLE_EXCEPTIONS,
    RPC_RETRY_CONFIG,
)
from taas_explorer.shared.services.resource_manager import (
    resource_manager,
)
from taas_explorer.shared.types import ChainConfig

_logger = get_logger(__name__)


class Web3Service:
    """
    A service class for managing a Web3 connection and its contract reads.
    """

    _instances: Dict[str, "Web3Service"] = {}

    def __init__(self, rpc_url: str):
        """
        Initialize the Web3Service.

        Args:
            rpc_url (str): The RPC URL to use.
        """
        self.rpc_url = rpc_url
        self.w3 = self._initialize_web3(rpc_url)
        self._contract_cache: Dict[Tuple[str, str], Any] = {}

    def _initialize_web3(self, rpc_url: str) -> Web3:
        return Web3(Web3.HTTPProvider(rpc_url))

    @classmethod
    def get_instance(cls, rpc_url: str) -> "Web3Service":
        """Get or create a Web3Service instance for an RPC URL"""
        if rpc_url not in cls._instances:
            cls._instances[rpc_url] = cls(rpc_url)
        return cls._instances[rpc_url]

    def get_contract(
        self, address: str, abi_name: str = AttestationConstants.ABI_NAME
    ) -> Any:
        """Get a contract instance for a given address and ABI name"""
        key = (address.lower(), abi_name)
        if key not in self._contract_cache:
            abi = resource_manager.load_abi(abi_name)
            self._contract_cache[key] = self.w3.eth.contract(
                address=Web3.to_checksum_address(address.lower()), abi=abi
            )
        return self._contract_cache[key]

    @staticmethod
    def get_event_topic(
        event_name: str, abi_name: str = AttestationConstants.ABI_NAME
    ) -> str:
        """topic0 of a named event, as 0x-prefixed hex"""
        event_abi = resource_manager.get_event_abi(abi_name, event_name)
        return Web3.to_hex(event_abi_to_log_topic(event_abi))

    async def _call(
        self, fn: Callable[..., Any], *args: Any, operation_name: str = None
    ) -> Any:
        async def _run_in_executor():
            loop = asyncio.get_running_loop()
            return await loop.run_in_executor(
                None, functools.partial(fn, *args)
            )

        name = operation_name or getattr(fn, "__name__", "call")
        try:
            return await RPC_RETRY_CONFIG.run(
                _run_in_executor, operation_name=name
            )
        except DEFAULT_NON_RETRYABLE_EXCEPTIONS:
            raise
        except (Web3Exception, OSError) as e:
            raise RPCException(f"{name} failed on {self.rpc_url}: {e}") from e

    async def get_block_number(self) -> int:
        """Current chain height"""
        return await self._call(
            lambda: self.w3.eth.block_number, operation_name="block_number"
        )

    async def get_logs(
        self,
        address: str,
        from_block: int,
        to_block: int,
        topics: Optional[List[str]] = None,
    ) -> List[Any]:
        """
        Query logs of one contract over an inclusive block window.

        Bounds are sent hex-encoded; both ends are included by the node.
        """
        filter_params: Dict[str, Any] = {
            "address": Web3.to_checksum_address(address.lower()),
            "fromBlock": hex(from_block),
            "toBlock": hex(to_block),
        }
        if topics:
            filter_params["topics"] = topics

        return list(
            await self._call(
                self.w3.eth.get_logs, filter_params, operation_name="get_logs"
            )
        )

    async def call_function(self, contract_function: Any) -> Any:
        """Execute a prepared contract function call (view)"""
        return await self._call(
            contract_function.call,
            operation_name=getattr(contract_function, "fn_name", "call"),
        )

    async def get_transaction_receipt(self, tx_hash: str) -> Any:
        return await self._call(
            self.w3.eth.get_transaction_receipt,
            tx_hash,
            operation_name="get_transaction_receipt",
        )


def create_provider_and_contract(
    config: Optional[ChainConfig], web3_service: Optional[Web3Service] = None
) -> Tuple[Optional[Web3Service], Any]:
    """
    Resolve the Web3Service and Attestations contract for a config.

    Returns (None, None) and logs when the config lacks an RPC URL or an
    attestation address.
    """
    if not config or not config.rpc_url or not config.attestation_address:
        _logger.error(f"Invalid config for provider or contract: {config}")
        return None, None

    service = web3_service or Web3Service.get_instance(config.rpc_url)
    contract = service.get_contract(config.attestation_address)
    return service, contract
