"""
Tests for settings loading and small shared helpers.
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from app.core.config import NETWORKS, NetworkType, load_settings
from app.core.exceptions import ChainError, IssuanceFailed, LedgerTimeout, TransientStorageError
from app.utils.cancellation import ClientDisconnected, run_until_disconnect
from app.utils.wallet import normalize_wallet

ENV_VARS = [
    "BLOCKCHAIN_NETWORK", "BLOCKCHAIN_RPC_URL", "BLOCKCHAIN_CHAIN_ID", "BLOCKCHAIN_PRIVATE_KEY",
    "STORAGE_BACKEND", "CORS_ORIGINS", "LEDGER_POLL_ATTEMPTS", "LEDGER_POLL_INTERVAL",
]


@pytest.fixture
def clean_env(monkeypatch, tmp_path):
    monkeypatch.chdir(tmp_path)
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestLoadSettings:

    def test_defaults(self, clean_env):
        settings = load_settings()

        assert settings.network == NETWORKS[NetworkType.AMOY]
        assert settings.poll_max_attempts == 30
        assert settings.poll_interval == 1.0
        assert not settings.has_signer

    def test_network_selection_and_override(self, clean_env):
        clean_env.setenv("BLOCKCHAIN_NETWORK", "sepolia")
        clean_env.setenv("BLOCKCHAIN_RPC_URL", "http://node:8545")

        settings = load_settings()

        assert settings.network.name == "sepolia"
        assert settings.network.rpc_url == "http://node:8545"
        assert settings.network.chain_id == 11155111

    def test_unknown_network_falls_back(self, clean_env):
        clean_env.setenv("BLOCKCHAIN_NETWORK", "mainnet-beta")
        assert load_settings().network.name == "amoy"

    def test_cors_origins_split(self, clean_env):
        clean_env.setenv("CORS_ORIGINS", "http://a.test, http://b.test")
        assert load_settings().cors_origins == ("http://a.test", "http://b.test")

    def test_signer_detected(self, clean_env):
        clean_env.setenv("BLOCKCHAIN_PRIVATE_KEY", "0x" + "11" * 32)
        assert load_settings().has_signer


class TestNormalizeWallet:

    def test_evm_addresses_lowercased(self):
        assert normalize_wallet(" 0xABCdef ") == "0xabcdef"

    def test_other_addresses_only_stripped(self):
        assert normalize_wallet(" GABC ") == "GABC"

    def test_empty(self):
        assert normalize_wallet(None) == ""


class TestIssuanceFailedCause:

    @pytest.mark.parametrize("cause,kind", [
        (LedgerTimeout("0xabc", 30), "Timeout"),
        (ChainError("reverted"), "ChainError"),
        (TransientStorageError("503"), "StorageError"),
        (RuntimeError("boom"), "Unknown"),
    ])
    def test_cause_kind(self, cause, kind):
        assert IssuanceFailed("failed", cause=cause).cause_kind == kind

    def test_details_carry_cause(self):
        error = IssuanceFailed("NFT minting failed", cause=ChainError("rpc down"))
        assert error.details == "rpc down"


class TestRunUntilDisconnect:

    async def test_returns_result(self):
        request = Mock()
        request.is_disconnected = AsyncMock(return_value=False)

        async def work():
            return 42

        assert await run_until_disconnect(request, work()) == 42

    async def test_cancels_work_on_disconnect(self):
        request = Mock()
        request.is_disconnected = AsyncMock(return_value=True)
        cancelled = asyncio.Event()

        async def work():
            try:
                await asyncio.sleep(10)
            except asyncio.CancelledError:
                cancelled.set()
                raise

        with pytest.raises(ClientDisconnected):
            await run_until_disconnect(request, work(), interval=0)

        assert cancelled.is_set()
