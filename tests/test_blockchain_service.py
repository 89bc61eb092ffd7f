"""
Tests for the ledger client: simulation mode, the poll loop and token id
decoding. No test talks to a node.
"""

import asyncio
from dataclasses import replace
from unittest.mock import AsyncMock, MagicMock, Mock

import pytest
from eth_account import Account
from web3.exceptions import TransactionNotFound

from app.core.exceptions import ChainError, LedgerTimeout
from app.models.ledger import ChainReceipt, ChainStatus, DecodeError, DecodeOk, SimulationError, SimulationOk
from app.services.blockchain_service import (
    PLACEHOLDER_TOKEN_PREFIX,
    SIMULATED_TOKEN_PREFIX,
    SIMULATION_PREFIX,
    LedgerClient,
    is_simulated,
)

RECEIVER = "0xE70530BdAe091D597840FD787f5Dafa7c6Ef796A"


def _live_client(settings, w3=None):
    configured = replace(
        settings,
        test_registry_address="0x5FbDB2315678afecb367f032d93F642f64180aa3",
        badge_nft_address="0xe7f1725E7734CE288F8367e1Bb143E90bb3F0512",
    )
    return LedgerClient(configured, w3=w3 or MagicMock(), signer=Account.create())


class TestSimulationMode:

    async def test_register_returns_marked_hash(self, ledger):
        receipt = await ledger.register_test("t1", "0xcreator", "bafy")

        assert receipt.success
        assert receipt.simulated
        assert receipt.tx_hash.startswith(SIMULATION_PREFIX)

    async def test_mint_returns_marked_token(self, ledger):
        receipt = await ledger.mint_badge(RECEIVER, "http://x/meta.json", test_id="t1")

        assert receipt.tx_hash.startswith(SIMULATION_PREFIX)
        assert receipt.token_id.startswith(SIMULATED_TOKEN_PREFIX)
        assert is_simulated(receipt.token_id)

    async def test_identifiers_are_unique(self, ledger):
        first = await ledger.mint_badge(RECEIVER, "http://x/a.json")
        second = await ledger.mint_badge(RECEIVER, "http://x/a.json")
        assert first.token_id != second.token_id

    async def test_simulated_hash_is_final_without_polling(self, ledger):
        receipt = await ledger.poll_until_final("sim_123_abcd")
        assert receipt.status == ChainStatus.SUCCESS

    async def test_read_calls_without_contracts(self, ledger):
        assert await ledger.get_test("t1") is None
        assert await ledger.list_tests() == []
        assert await ledger.get_token_uri("1") is None

    def test_network_info(self, ledger):
        info = ledger.network_info()
        assert info["mode"] == "simulation"
        assert info["account_address"] is None


class TestPollUntilFinal:

    async def test_pending_then_success(self, settings):
        w3 = MagicMock()
        w3.eth.get_transaction_receipt = AsyncMock(
            side_effect=[TransactionNotFound("pending"), {"status": 1, "blockNumber": 7, "gasUsed": 21000}]
        )
        client = _live_client(settings, w3)

        receipt = await client.poll_until_final("0xabc", max_attempts=5, interval=0)

        assert receipt.status == ChainStatus.SUCCESS
        assert receipt.block_number == 7
        assert w3.eth.get_transaction_receipt.await_count == 2

    async def test_reverted_transaction(self, settings):
        w3 = MagicMock()
        w3.eth.get_transaction_receipt = AsyncMock(return_value={"status": 0})
        client = _live_client(settings, w3)

        receipt = await client.poll_until_final("0xabc", max_attempts=5, interval=0)

        assert receipt.status == ChainStatus.FAILED
        assert not receipt.success

    async def test_times_out_after_budget(self, settings):
        w3 = MagicMock()
        w3.eth.get_transaction_receipt = AsyncMock(side_effect=TransactionNotFound("pending"))
        client = _live_client(settings, w3)

        with pytest.raises(LedgerTimeout) as exc_info:
            await client.poll_until_final("0xabc", max_attempts=3, interval=0)

        assert exc_info.value.attempts == 3
        assert w3.eth.get_transaction_receipt.await_count == 3

    async def test_repeated_polls_agree(self, settings):
        w3 = MagicMock()
        w3.eth.get_transaction_receipt = AsyncMock(return_value={"status": 1})
        client = _live_client(settings, w3)

        first = await client.poll_until_final("0xabc", interval=0)
        second = await client.poll_until_final("0xabc", interval=0)
        assert first.status == second.status == ChainStatus.SUCCESS

    async def test_cancellable(self, settings):
        w3 = MagicMock()
        w3.eth.get_transaction_receipt = AsyncMock(side_effect=TransactionNotFound("pending"))
        client = _live_client(settings, w3)

        task = asyncio.ensure_future(client.poll_until_final("0xabc", max_attempts=30, interval=10))
        await asyncio.sleep(0)
        task.cancel()

        with pytest.raises(asyncio.CancelledError):
            await task


class TestExecute:

    async def test_simulation_error_aborts_before_submit(self, settings):
        client = _live_client(settings)
        client.simulate = AsyncMock(return_value=SimulationError(reason="execution reverted: exists"))
        client.submit = AsyncMock()

        with pytest.raises(ChainError, match="exists"):
            await client.register_test("t1", "0xcreator", "bafy")

        client.submit.assert_not_awaited()

    async def test_failed_status_raises(self, settings):
        client = _live_client(settings)
        client.simulate = AsyncMock(return_value=SimulationOk(cost=50000))
        client.submit = AsyncMock(return_value=ChainReceipt(success=False, tx_hash="0xabc", status=ChainStatus.PENDING))
        client.poll_until_final = AsyncMock(
            return_value=ChainReceipt(success=False, tx_hash="0xabc", status=ChainStatus.FAILED)
        )

        with pytest.raises(ChainError, match="FAILED"):
            await client.register_test("t1", "0xcreator", "bafy")

    async def test_submit_requires_signer(self, settings, ledger):
        with pytest.raises(ChainError):
            await ledger.submit(Mock())


class TestTokenIdDecoding:

    async def test_placeholder_when_receipt_has_no_transfer(self, settings):
        client = _live_client(settings)
        client._execute = AsyncMock(
            return_value=ChainReceipt(success=True, tx_hash="0xabc", status=ChainStatus.SUCCESS, raw=None)
        )

        receipt = await client.mint_badge(RECEIVER, "http://x/meta.json", test_id="t1")

        assert receipt.token_id.startswith(f"{PLACEHOLDER_TOKEN_PREFIX}t1_")
        assert not receipt.token_id_decoded
        assert receipt.tx_hash == "0xabc"

    async def test_decoded_token_id(self, settings):
        client = _live_client(settings)
        raw = {"status": 1, "logs": []}
        client._execute = AsyncMock(
            return_value=ChainReceipt(success=True, tx_hash="0xabc", status=ChainStatus.SUCCESS, raw=raw)
        )
        contract = MagicMock()
        contract.events.Transfer.return_value.process_receipt.return_value = [
            {"args": {"from": "0x" + "0" * 40, "to": RECEIVER, "tokenId": 42}}
        ]
        client._badge_nft = Mock(return_value=contract)

        receipt = await client.mint_badge(RECEIVER.lower(), "http://x/meta.json", test_id="t1")

        assert receipt.token_id == "42"
        assert receipt.token_id_decoded

    def test_decode_ignores_transfers_to_others(self, settings):
        client = _live_client(settings)
        contract = MagicMock()
        contract.events.Transfer.return_value.process_receipt.return_value = [
            {"args": {"to": "0x" + "1" * 40, "tokenId": 1}}
        ]
        client._badge_nft = Mock(return_value=contract)

        result = client.decode_token_id({"logs": []}, RECEIVER)

        assert isinstance(result, DecodeError)
        assert not isinstance(result, DecodeOk)
