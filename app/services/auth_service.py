"""
Authentication service for wallet sign-in.
A user proves control of a wallet by signing a plain-text message; the
signer is recovered from the signature and must match the claimed wallet.
"""

from typing import Optional

from eth_account import Account
from eth_account.messages import encode_defunct

from ..core.exceptions import InvalidRequest, NotFound
from ..db.record_store import RecordStore
from ..models.user import User, WalletAuthResponse
from ..utils.logger import get_logger
from ..utils.wallet import normalize_wallet

logger = get_logger("auth_service")


def recover_signer(message: str, signature: str) -> Optional[str]:
    """
    Recover the address that signed `message` (EIP-191 personal_sign).

    Returns:
        Optional[str]: Checksummed address, or None if the signature is malformed
    """
    try:
        return Account.recover_message(encode_defunct(text=message), signature=signature)
    except Exception as e:
        # eth_account raises a mix of ValueError/TypeError/BadSignature here
        logger.warning(f"Could not recover signer: {e}")
        return None


class AuthService:
    """Service class for authentication operations."""

    def __init__(self, store: RecordStore):
        self.store = store

    async def authenticate_wallet(
        self,
        wallet_address: Optional[str],
        signature: Optional[str],
        message: Optional[str]
    ) -> WalletAuthResponse:
        """
        Verify a wallet signature and sign the user in.

        Creates the user on first sign-in and refreshes `last_login` on
        every successful one.

        Args:
            wallet_address: Wallet the client claims to control
            signature: Hex signature of `message`
            message: The signed text

        Returns:
            WalletAuthResponse; `success` is False when the signature does
            not belong to the wallet

        Raises:
            InvalidRequest: If any field is missing
        """
        wallet = normalize_wallet(wallet_address)
        if not wallet or not signature or not message:
            raise InvalidRequest("Missing required fields: walletAddress, signature, message")

        recovered = recover_signer(message, signature)
        if recovered is None or recovered.lower() != wallet.lower():
            logger.warning(f"Wallet sign-in rejected for {wallet}: signer {recovered}")
            return WalletAuthResponse(success=False, error="Signature does not match wallet address")

        document = await self.store.upsert_wallet_user(wallet)
        logger.info(f"Wallet signed in: {wallet}")
        return WalletAuthResponse(success=True, user=User(**document))

    async def get_user(self, wallet_address: str) -> User:
        wallet = normalize_wallet(wallet_address)
        document = await self.store.get_user(wallet)
        if document is None:
            raise NotFound(f"User not found: {wallet}")
        return User(**document)
