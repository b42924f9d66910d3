"""
Unit tests for consensus aggregation and receipt-based event re-reads.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from hexbytes import HexBytes
from web3.exceptions import Web3Exception

from conftest import ATTESTER_ADDRESS, make_data_event, make_risk_event
from taas_explorer.proofs.consensus import (
    aggregate_data_consensus,
    aggregate_risk_consensus,
    fetch_record_consensus,
    process_transaction_receipt,
    process_transactions,
)
from taas_explorer.proofs.formatters import format_risk_event, format_trade_event
from taas_explorer.shared.services.resource_manager import resource_manager
from taas_explorer.shared.services.web3_service import Web3Service

DATA_TOPIC = Web3Service.get_event_topic("AttestedToData")
RISK_TOPIC = Web3Service.get_event_topic("AttestedToRisk")
ROOT_A = "0x" + "aa" * 32
ROOT_B = "0x" + "bb" * 32


def _data_args(trader="0xtrader1", epoch=1):
    return {
        "traderId": trader,
        "epoch": epoch,
        "attester": ATTESTER_ADDRESS,
        "record": {"merkleRoot": ROOT_A, "cid": "cid"},
    }


def _risk_args(trader="0xtrader1", epoch=1, parameter_id=2, value=11):
    return {
        "traderId": trader,
        "epoch": epoch,
        "parameterId": parameter_id,
        "attester": ATTESTER_ADDRESS,
        "record": {"value": value},
    }


@pytest.fixture
def contract():
    """Contract mock decoding logs that carry their args inline."""
    contract = MagicMock()
    contract.abi = resource_manager.load_abi("Attestations")
    for name in ("AttestedToData", "AttestedToRisk"):
        getattr(contract.events, name).return_value.process_log.side_effect = (
            lambda log, name=name: {"event": name, "args": log["args"]}
        )
    return contract


class TestAggregateDataConsensus:
    def test_majority_root(self):
        events = [
            make_data_event(merkle_root=ROOT_A),
            make_data_event(merkle_root=ROOT_B),
            make_data_event(merkle_root=ROOT_B),
        ]

        result = aggregate_data_consensus(events, {"hasConsensus": True})

        assert result == {
            "merkleRoot": ROOT_B,
            "count": 2,
            "total": 3,
            "hasConsensus": True,
        }

    def test_tie_goes_to_first_seen(self):
        events = [
            make_data_event(merkle_root=ROOT_A),
            make_data_event(merkle_root=ROOT_B),
        ]

        result = aggregate_data_consensus(events, None)

        assert result["merkleRoot"] == ROOT_A
        assert result["count"] == 1
        assert result["hasConsensus"] is False

    @pytest.mark.parametrize("events", [None, []])
    def test_no_events(self, events):
        assert aggregate_data_consensus(events, {"hasConsensus": True}) is None


class TestAggregateRiskConsensus:
    def test_majority_value(self):
        events = [
            make_risk_event(value=3),
            make_risk_event(value=7),
            make_risk_event(value=7),
        ]

        result = aggregate_risk_consensus(events, {"hasConsensus": False})

        assert result == {
            "value": 7,
            "count": 2,
            "total": 3,
            "hasConsensus": False,
        }

    def test_no_events(self):
        assert aggregate_risk_consensus([], None) is None


class TestProcessTransactionReceipt:
    def test_formats_first_matching_event(self, contract):
        receipt = {
            "blockNumber": 77,
            "logs": [{"topics": [DATA_TOPIC], "args": _data_args()}],
        }

        event = process_transaction_receipt(
            receipt, contract, "0xtx", "AttestedToData", format_trade_event
        )

        assert event["transactionHash"] == "0xtx"
        assert event["blockNumber"] == 77
        assert event["traderId"] == "0xtrader1"
        assert event["data"] == {"merkleRoot": ROOT_A, "cid": "cid"}

    def test_bytes_topics_are_matched(self, contract):
        receipt = {
            "blockNumber": 5,
            "logs": [{"topics": [HexBytes(RISK_TOPIC)], "args": _risk_args()}],
        }

        event = process_transaction_receipt(
            receipt, contract, "0xtx", "AttestedToRisk", format_risk_event
        )

        assert event["parameterId"] == 2
        assert event["data"] == 11

    def test_first_event_of_other_kind(self, contract):
        receipt = {
            "blockNumber": 5,
            "logs": [
                {"topics": [RISK_TOPIC], "args": _risk_args()},
                {"topics": [DATA_TOPIC], "args": _data_args()},
            ],
        }

        assert (
            process_transaction_receipt(
                receipt, contract, "0xtx", "AttestedToData", format_trade_event
            )
            is None
        )

    def test_foreign_and_undecodable_logs_are_skipped(self, contract):
        contract.events.AttestedToRisk.return_value.process_log.side_effect = (
            ValueError("bad data")
        )
        receipt = {
            "blockNumber": 5,
            "logs": [
                {"topics": []},
                {"topics": ["0x" + "00" * 32]},
                {"topics": [RISK_TOPIC], "args": _risk_args()},
                {"topics": [DATA_TOPIC], "args": _data_args(epoch=9)},
            ],
        }

        event = process_transaction_receipt(
            receipt, contract, "0xtx", "AttestedToData", format_trade_event
        )

        assert event["epoch"] == 9

    def test_missing_receipt(self, contract):
        assert (
            process_transaction_receipt(
                None, contract, "0xtx", "AttestedToData", format_trade_event
            )
            is None
        )


class TestProcessTransactions:
    @pytest.mark.asyncio
    async def test_failed_receipts_are_left_out(
        self, contract, mock_web3_service
    ):
        receipts = {
            "0x01": {
                "blockNumber": 1,
                "logs": [{"topics": [DATA_TOPIC], "args": _data_args(epoch=1)}],
            },
            "0x03": {
                "blockNumber": 3,
                "logs": [{"topics": [DATA_TOPIC], "args": _data_args(epoch=3)}],
            },
        }

        def get_receipt(tx_hash):
            if tx_hash not in receipts:
                raise Web3Exception("not found")
            return receipts[tx_hash]

        mock_web3_service.get_transaction_receipt.side_effect = get_receipt

        events = await process_transactions(
            ["0x01", "0x02", "0x03"],
            mock_web3_service,
            contract,
            "AttestedToData",
            format_trade_event,
        )

        assert [e["transactionHash"] for e in events] == ["0x01", "0x03"]

    @pytest.mark.asyncio
    async def test_missing_service(self, contract):
        events = await process_transactions(
            ["0x01"], None, contract, "AttestedToData", format_trade_event
        )
        assert events == []


class TestFetchRecordConsensus:
    @pytest.mark.asyncio
    async def test_combines_events_and_contract_state(self, chain_config):
        record = {
            "traderId": "0xtrader1",
            "epoch": 4,
            "blockNumber": 100,
            "dataEvents": [
                make_data_event(epoch=4, merkle_root=ROOT_A),
                make_data_event(epoch=4, merkle_root=ROOT_A),
                make_data_event(epoch=4, merkle_root=ROOT_B),
            ],
            "riskEvents": [
                make_risk_event(epoch=4, parameter_id=1, value=5),
                make_risk_event(epoch=4, parameter_id=1, value=5),
                make_risk_event(epoch=4, parameter_id=2, value=9),
                make_risk_event(epoch=4, parameter_id=None, value=3),
            ],
        }
        data_mock = AsyncMock(
            return_value={"record": {"merkleRoot": ROOT_A}, "hasConsensus": True}
        )
        risk_mock = AsyncMock(
            side_effect=lambda config, trader, epoch, pid, **kw: {
                "record": {"value": 5},
                "hasConsensus": pid == 1,
            }
        )

        with patch(
            "taas_explorer.proofs.consensus.fetch_data_record", data_mock
        ), patch("taas_explorer.proofs.consensus.fetch_risk_record", risk_mock):
            result = await fetch_record_consensus(chain_config, record)

        assert result["traderId"] == "0xtrader1"
        assert result["epoch"] == 4
        assert result["data"] == {
            "merkleRoot": ROOT_A,
            "count": 2,
            "total": 3,
            "hasConsensus": True,
        }
        assert result["risk"][1]["hasConsensus"] is True
        assert result["risk"][1]["count"] == 2
        assert result["risk"][2]["value"] == 9
        assert result["risk"][2]["hasConsensus"] is False
        assert result["risk"]["unknown"]["hasConsensus"] is False
        assert sorted(c.args[3] for c in risk_mock.await_args_list) == [1, 2]

    @pytest.mark.asyncio
    async def test_contract_read_failure_is_not_fatal(self, chain_config):
        record = {
            "traderId": "0xtrader1",
            "epoch": 4,
            "blockNumber": 100,
            "dataEvents": [make_data_event(epoch=4)],
            "riskEvents": [],
        }
        failing = AsyncMock(side_effect=Web3Exception("node down"))

        with patch("taas_explorer.proofs.consensus.fetch_data_record", failing):
            result = await fetch_record_consensus(chain_config, record)

        assert result["data"]["hasConsensus"] is False
        assert result["risk"] == {}

    @pytest.mark.asyncio
    async def test_record_without_events(self, chain_config):
        record = {
            "traderId": "0xtrader1",
            "epoch": 4,
            "blockNumber": None,
            "dataEvents": [],
            "riskEvents": [],
        }
        data_mock = AsyncMock()

        with patch("taas_explorer.proofs.consensus.fetch_data_record", data_mock):
            result = await fetch_record_consensus(chain_config, record)

        assert result["data"] is None
        data_mock.assert_not_awaited()
