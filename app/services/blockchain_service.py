"""
Blockchain service integration for SkillBadge backend.
Wraps the Test Registry and Badge NFT contracts behind a
simulate -> submit -> poll-until-final protocol.

Without a signer the client runs in simulation mode: writes return
synthetic identifiers prefixed with `sim_` and never touch the network.
"""

import asyncio
import secrets
import time
from typing import Any, Dict, List, Optional

import aiohttp
from eth_account import Account
from web3 import AsyncHTTPProvider, AsyncWeb3, Web3
from web3.exceptions import (
    ContractLogicError,
    TransactionNotFound,
    Web3Exception,
    Web3RPCError,
)
from web3.logs import DISCARD
from web3.middleware import ExtraDataToPOAMiddleware

from ..core.config import Settings
from ..core.exceptions import ChainError, LedgerTimeout
from ..models.ledger import (
    ChainReceipt,
    ChainStatus,
    DecodeError,
    DecodeOk,
    DecodeResult,
    LedgerOperation,
    MintBadge,
    MintReceipt,
    RegisterTest,
    SimulationError,
    SimulationOk,
    SimulationResult,
)
from ..utils.logger import get_logger

logger = get_logger("blockchain_service")

SIMULATION_PREFIX = "sim_"
SIMULATED_TOKEN_PREFIX = "sim_nft_"
PLACEHOLDER_TOKEN_PREFIX = "nft_"

TRANSPORT_ERRORS = (Web3Exception, aiohttp.ClientError, asyncio.TimeoutError, ValueError)


def is_simulated(value: Optional[str]) -> bool:
    """Whether a tx hash or token id came from simulation mode."""
    return bool(value) and value.startswith(SIMULATION_PREFIX)


def _synthetic_id(prefix: str) -> str:
    return f"{prefix}{int(time.time() * 1000)}_{secrets.token_hex(4)}"


class LedgerClient:
    """Client for the Test Registry and Badge NFT contracts"""

    def __init__(self, settings: Settings, w3: Optional[AsyncWeb3] = None, signer=None):
        self.settings = settings
        self.w3 = w3 if w3 is not None else self._setup_web3()
        self.account = signer if signer is not None else self._setup_account()

    def _setup_web3(self) -> AsyncWeb3:
        """Setup Web3 connection. Construction performs no I/O."""
        network = self.settings.network
        w3 = AsyncWeb3(AsyncHTTPProvider(network.rpc_url))

        # Polygon networks need the PoA extraData middleware
        if network.uses_poa:
            w3.middleware_onion.inject(ExtraDataToPOAMiddleware, layer=0)

        logger.info(f"Ledger client configured for {network.name} (chain {network.chain_id})")
        return w3

    def _setup_account(self):
        """Setup account from private key"""
        if not self.settings.private_key:
            logger.warning("No private key provided - ledger writes run in simulation mode")
            return None
        return Account.from_key(self.settings.private_key)

    @property
    def is_simulation(self) -> bool:
        return self.account is None

    # Contracts

    def _get_test_registry_abi(self) -> List[Dict]:
        """Get TestRegistry contract ABI"""
        test_record = [
            {"internalType": "string", "name": "testId", "type": "string"},
            {"internalType": "string", "name": "creator", "type": "string"},
            {"internalType": "string", "name": "metadataCid", "type": "string"},
            {"internalType": "uint64", "name": "createdAt", "type": "uint64"}
        ]
        return [
            {
                "inputs": [
                    {"internalType": "string", "name": "testId", "type": "string"},
                    {"internalType": "string", "name": "creator", "type": "string"},
                    {"internalType": "string", "name": "metadataCid", "type": "string"}
                ],
                "name": "registerTest",
                "outputs": [],
                "stateMutability": "nonpayable",
                "type": "function"
            },
            {
                "inputs": [{"internalType": "string", "name": "testId", "type": "string"}],
                "name": "getTest",
                "outputs": test_record,
                "stateMutability": "view",
                "type": "function"
            },
            {
                "inputs": [],
                "name": "listTests",
                "outputs": [
                    {
                        "components": test_record,
                        "internalType": "struct TestRegistry.TestRecord[]",
                        "name": "",
                        "type": "tuple[]"
                    }
                ],
                "stateMutability": "view",
                "type": "function"
            }
        ]

    def _get_badge_nft_abi(self) -> List[Dict]:
        """Get BadgeNFT contract ABI"""
        return [
            {
                "inputs": [
                    {"internalType": "address", "name": "to", "type": "address"},
                    {"internalType": "string", "name": "uri", "type": "string"}
                ],
                "name": "mint",
                "outputs": [{"internalType": "uint256", "name": "", "type": "uint256"}],
                "stateMutability": "nonpayable",
                "type": "function"
            },
            {
                "inputs": [{"internalType": "uint256", "name": "tokenId", "type": "uint256"}],
                "name": "tokenURI",
                "outputs": [{"internalType": "string", "name": "", "type": "string"}],
                "stateMutability": "view",
                "type": "function"
            },
            {
                "inputs": [{"internalType": "uint256", "name": "tokenId", "type": "uint256"}],
                "name": "ownerOf",
                "outputs": [{"internalType": "address", "name": "", "type": "address"}],
                "stateMutability": "view",
                "type": "function"
            },
            {
                "anonymous": False,
                "inputs": [
                    {"indexed": True, "internalType": "address", "name": "from", "type": "address"},
                    {"indexed": True, "internalType": "address", "name": "to", "type": "address"},
                    {"indexed": True, "internalType": "uint256", "name": "tokenId", "type": "uint256"}
                ],
                "name": "Transfer",
                "type": "event"
            }
        ]

    def _test_registry(self):
        address = self.settings.test_registry_address
        if not address:
            raise ChainError("TEST_REGISTRY_ADDRESS is not configured")
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=self._get_test_registry_abi())

    def _badge_nft(self):
        address = self.settings.badge_nft_address
        if not address:
            raise ChainError("BADGE_NFT_ADDRESS is not configured")
        return self.w3.eth.contract(address=Web3.to_checksum_address(address), abi=self._get_badge_nft_abi())

    def _function(self, op: LedgerOperation):
        if isinstance(op, RegisterTest):
            return self._test_registry().functions.registerTest(op.test_id, op.creator, op.metadata_cid)
        if isinstance(op, MintBadge):
            try:
                receiver = Web3.to_checksum_address(op.receiver)
            except ValueError as e:
                raise ChainError(f"Invalid receiver address: {op.receiver}", cause=e)
            return self._badge_nft().functions.mint(receiver, op.metadata_uri)
        raise TypeError(f"Unsupported ledger operation: {type(op).__name__}")

    # Protocol

    async def simulate(self, op: LedgerOperation) -> SimulationResult:
        """
        Dry-run an operation against current chain state.

        Args:
            op: Operation to simulate

        Returns:
            SimulationOk with gas cost and return value, or SimulationError
            when the contract would revert

        Raises:
            ChainError: If the RPC endpoint cannot be reached
        """
        sender = self.account.address if self.account else Account.create().address
        fn = self._function(op)

        try:
            preview = await fn.call({"from": sender})
            cost = await fn.estimate_gas({"from": sender})
        except (ContractLogicError, Web3RPCError) as e:
            return SimulationError(reason=str(e))
        except TRANSPORT_ERRORS as e:
            raise ChainError("Simulation request failed", cause=e)

        return SimulationOk(cost=cost, preview=preview)

    async def submit(self, op: LedgerOperation, signer=None) -> ChainReceipt:
        """
        Build, sign and broadcast a transaction.

        Returns:
            ChainReceipt with status PENDING

        Raises:
            ChainError: If no signer is available or the node rejects the transaction
        """
        signer = signer or self.account
        if signer is None:
            raise ChainError("A signer is required to submit transactions")

        fn = self._function(op)
        try:
            nonce = await self.w3.eth.get_transaction_count(signer.address, "pending")
            gas_price = await self.w3.eth.gas_price
            transaction = await fn.build_transaction({
                'from': signer.address,
                'gas': self.settings.gas_limit,
                'gasPrice': gas_price,
                'nonce': nonce,
                'chainId': self.settings.network.chain_id,
            })
            signed_txn = self.w3.eth.account.sign_transaction(transaction, signer.key)
            tx_hash = await self.w3.eth.send_raw_transaction(signed_txn.raw_transaction)
        except TRANSPORT_ERRORS as e:
            raise ChainError("Transaction submission failed", cause=e)

        tx_hash_hex = Web3.to_hex(tx_hash)
        logger.info(f"Submitted {type(op).__name__} with tx hash: {tx_hash_hex}")
        return ChainReceipt(success=False, tx_hash=tx_hash_hex, status=ChainStatus.PENDING)

    async def poll_until_final(
        self,
        tx_hash: str,
        max_attempts: int = 30,
        interval: float = 1.0
    ) -> ChainReceipt:
        """
        Poll for a transaction receipt until it is final.

        Suspends with asyncio.sleep between polls, so cancelling the
        calling task aborts the wait. Nothing is cached between calls;
        a mined receipt is the single source of the terminal status.

        Args:
            tx_hash: Transaction hash returned by submit()
            max_attempts: Number of receipt lookups before giving up
            interval: Seconds between lookups

        Returns:
            ChainReceipt with status SUCCESS or FAILED

        Raises:
            LedgerTimeout: If no receipt appears within max_attempts
        """
        if is_simulated(tx_hash):
            return ChainReceipt(success=True, tx_hash=tx_hash, status=ChainStatus.SUCCESS, simulated=True)

        for attempt in range(1, max_attempts + 1):
            try:
                receipt = await self.w3.eth.get_transaction_receipt(tx_hash)
            except TransactionNotFound:
                receipt = None
            except TRANSPORT_ERRORS as e:
                logger.warning(f"Receipt lookup {attempt}/{max_attempts} for {tx_hash} failed: {e}")
                receipt = None

            if receipt is not None:
                succeeded = receipt["status"] == 1
                return ChainReceipt(
                    success=succeeded,
                    tx_hash=tx_hash,
                    status=ChainStatus.SUCCESS if succeeded else ChainStatus.FAILED,
                    block_number=receipt.get("blockNumber"),
                    gas_used=receipt.get("gasUsed"),
                    raw=receipt,
                )

            if attempt < max_attempts:
                await asyncio.sleep(interval)

        raise LedgerTimeout(tx_hash, max_attempts)

    async def _execute(self, op: LedgerOperation) -> ChainReceipt:
        simulation = await self.simulate(op)
        if isinstance(simulation, SimulationError):
            raise ChainError(f"Simulation failed: {simulation.reason}")

        pending = await self.submit(op)
        final = await self.poll_until_final(
            pending.tx_hash,
            max_attempts=self.settings.poll_max_attempts,
            interval=self.settings.poll_interval,
        )
        if final.status != ChainStatus.SUCCESS:
            raise ChainError(f"Transaction {final.tx_hash} failed with status: {final.status.value}")
        return final

    # Workflow-facing operations

    async def register_test(self, test_id: str, creator: str, metadata_cid: str) -> ChainReceipt:
        """Register a test on the Test Registry contract."""
        op = RegisterTest(test_id=test_id, creator=creator, metadata_cid=metadata_cid)

        if self.is_simulation:
            tx_hash = _synthetic_id(SIMULATION_PREFIX)
            logger.warning(f"Simulation mode: test {test_id} not sent to chain (tx {tx_hash})")
            return ChainReceipt(success=True, tx_hash=tx_hash, status=ChainStatus.SUCCESS, simulated=True)

        receipt = await self._execute(op)
        logger.info(f"Test {test_id} registered on-chain with tx hash: {receipt.tx_hash}")
        return receipt

    async def mint_badge(self, receiver: str, metadata_uri: str, test_id: Optional[str] = None) -> MintReceipt:
        """
        Mint a badge NFT for `receiver` pointing at `metadata_uri`.

        If the token id cannot be decoded from the receipt a placeholder
        id is returned and a warning logged; the chain stays authoritative.
        """
        op = MintBadge(receiver=receiver, metadata_uri=metadata_uri, test_id=test_id)

        if self.is_simulation:
            receipt = MintReceipt(
                success=True,
                tx_hash=_synthetic_id(SIMULATION_PREFIX),
                status=ChainStatus.SUCCESS,
                simulated=True,
                token_id=_synthetic_id(SIMULATED_TOKEN_PREFIX),
            )
            logger.warning(
                f"Simulation mode: badge for {receiver} not minted on chain "
                f"(token {receipt.token_id}, tx {receipt.tx_hash})"
            )
            return receipt

        final = await self._execute(op)
        decoded = self.decode_token_id(final.raw, receiver)

        if isinstance(decoded, DecodeOk):
            token_id = str(decoded.value)
            token_id_decoded = True
        else:
            token_id = f"{PLACEHOLDER_TOKEN_PREFIX}{test_id or 'badge'}_{int(time.time() * 1000)}"
            token_id_decoded = False
            logger.warning(
                f"Could not decode token id from {final.tx_hash} ({decoded.reason}); using {token_id}"
            )

        logger.info(f"Badge NFT minted for {receiver}: token {token_id}, tx {final.tx_hash}")
        return MintReceipt(
            success=True,
            tx_hash=final.tx_hash,
            status=final.status,
            block_number=final.block_number,
            gas_used=final.gas_used,
            raw=final.raw,
            token_id=token_id,
            token_id_decoded=token_id_decoded,
        )

    def decode_token_id(self, receipt: Optional[Dict[str, Any]], receiver: str) -> DecodeResult:
        """Extract the minted token id from the receipt's ERC-721 Transfer event."""
        if not receipt:
            return DecodeError(raw=receipt, reason="no receipt")

        try:
            events = self._badge_nft().events.Transfer().process_receipt(receipt, errors=DISCARD)
        except (Web3Exception, KeyError, TypeError, ValueError) as e:
            return DecodeError(raw=receipt, reason=str(e))

        for event in events:
            args = event["args"]
            if str(args["to"]).lower() == receiver.lower():
                return DecodeOk(value=args["tokenId"])
        return DecodeError(raw=receipt, reason="no Transfer event for receiver")

    # Read-only calls, always from a throwaway identity and never submitted

    async def get_test(self, test_id: str) -> Optional[Dict[str, Any]]:
        """Get test registration from the chain, or None if unknown."""
        if not self.settings.test_registry_address:
            return None

        sender = Account.create().address
        try:
            result = await self._test_registry().functions.getTest(test_id).call({"from": sender})
        except (ContractLogicError, Web3RPCError) as e:
            logger.info(f"Test {test_id} not found on chain: {e}")
            return None
        except TRANSPORT_ERRORS as e:
            raise ChainError("Error getting test from chain", cause=e)

        (chain_test_id, creator, metadata_cid, created_at) = result
        if not chain_test_id:
            return None
        return {
            "testId": chain_test_id,
            "creator": creator,
            "metadataCid": metadata_cid,
            "createdAt": created_at
        }

    async def list_tests(self) -> List[Dict[str, Any]]:
        """List all registered tests."""
        if not self.settings.test_registry_address:
            return []

        sender = Account.create().address
        try:
            records = await self._test_registry().functions.listTests().call({"from": sender})
        except (ContractLogicError, Web3RPCError) as e:
            logger.warning(f"listTests reverted: {e}")
            return []
        except TRANSPORT_ERRORS as e:
            raise ChainError("Error listing tests from chain", cause=e)

        return [
            {"testId": t[0], "creator": t[1], "metadataCid": t[2], "createdAt": t[3]}
            for t in records
        ]

    async def get_token_uri(self, token_id: str) -> Optional[str]:
        """Get the metadata URI of a minted badge."""
        if not self.settings.badge_nft_address or is_simulated(token_id):
            return None
        try:
            numeric_id = int(token_id)
        except (TypeError, ValueError):
            return None

        sender = Account.create().address
        try:
            return await self._badge_nft().functions.tokenURI(numeric_id).call({"from": sender})
        except (ContractLogicError, Web3RPCError) as e:
            logger.info(f"Token {token_id} has no URI: {e}")
            return None
        except TRANSPORT_ERRORS as e:
            raise ChainError("Error getting token URI", cause=e)

    def network_info(self) -> Dict[str, Any]:
        """Static description of the ledger configuration. No I/O."""
        network = self.settings.network
        return {
            "mode": "simulation" if self.is_simulation else "live",
            "network_name": network.name,
            "chain_id": network.chain_id,
            "explorer_url": network.explorer_url,
            "test_registry_address": self.settings.test_registry_address,
            "badge_nft_address": self.settings.badge_nft_address,
            "account_address": self.account.address if self.account else None
        }
