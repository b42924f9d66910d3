"""
Pytest configuration and shared fixtures.

This module provides common fixtures and configuration for all tests.
"""

from typing import Any, Dict, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest

from taas_explorer.shared.services.web3_service import Web3Service
from taas_explorer.shared.types import ChainConfig
from taas_explorer.utils.storage import MemoryStorage

ATTESTATION_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
ATTESTER_ADDRESS = "0x70997970C51812dc3A010C7d01b50e0d17dc79C8"
RPC_URL = "http://localhost:8545"


@pytest.fixture(autouse=True)
def reset_web3_instances():
    """Keep the per-RPC Web3Service registry from leaking across tests."""
    Web3Service._instances.clear()
    yield
    Web3Service._instances.clear()


@pytest.fixture
def memory_storage() -> MemoryStorage:
    return MemoryStorage()


@pytest.fixture
def chain_config() -> ChainConfig:
    """Config with GraphQL left at its default (enabled)."""
    return ChainConfig(
        rpc_url=RPC_URL,
        attestation_address=ATTESTATION_ADDRESS,
        graphql_endpoint="https://indexer.test/graphql",
    )


@pytest.fixture
def mock_web3_service():
    """Mock Web3Service with coroutine chain reads and a mock contract."""
    service = MagicMock()
    service.rpc_url = RPC_URL
    service.get_block_number = AsyncMock(return_value=0)
    service.get_logs = AsyncMock(return_value=[])
    service.call_function = AsyncMock()
    service.get_transaction_receipt = AsyncMock()
    service.contract = MagicMock()
    service.get_contract.return_value = service.contract
    return service


def make_data_event(
    trader_id: str = "0xtrader1",
    epoch: int = 1,
    block_number: Optional[int] = 100,
    merkle_root: str = "0x" + "aa" * 32,
    tx_hash: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "transactionHash": tx_hash or f"0xdata{trader_id}{epoch}{block_number}",
        "blockNumber": block_number,
        "traderId": trader_id,
        "epoch": epoch,
        "attester": ATTESTER_ADDRESS,
        "data": {"merkleRoot": merkle_root, "cid": "bafy-cid"},
        "eventName": "Data",
        "eventColor": "success",
    }


def make_risk_event(
    trader_id: str = "0xtrader1",
    epoch: int = 1,
    block_number: Optional[int] = 100,
    value: int = 7,
    parameter_id: Any = 1,
    tx_hash: Optional[str] = None,
) -> Dict[str, Any]:
    return {
        "transactionHash": tx_hash or f"0xrisk{trader_id}{epoch}{block_number}",
        "blockNumber": block_number,
        "traderId": trader_id,
        "epoch": epoch,
        "attester": ATTESTER_ADDRESS,
        "data": value,
        "parameterId": parameter_id,
        "eventName": "Risk",
        "eventColor": "warning",
    }


def make_record(
    trader_id: str, epoch: int, block_number: Optional[int] = 1000
) -> Dict[str, Any]:
    return {
        "traderId": trader_id,
        "epoch": epoch,
        "blockNumber": block_number,
        "dataEvents": [make_data_event(trader_id, epoch, block_number)],
        "riskEvents": [],
    }


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "integration: mark test as integration test"
    )
    config.addinivalue_line("markers", "slow: mark test as slow-running")
