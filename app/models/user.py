"""
User models and schemas for wallet authentication.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class WalletAuthRequest(BaseModel):
    """Schema for wallet sign-in."""

    wallet_address: Optional[str] = Field(None, alias="walletAddress", description="Wallet address")
    signature: Optional[str] = Field(None, description="Hex signature of `message`")
    message: Optional[str] = Field(None, description="Message the wallet signed")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "walletAddress": "0x5868c5Fa4eeF9db8Ca998F16845CCffA3B85C472",
                "signature": "0x...",
                "message": "Sign this message to authenticate with your wallet.\nTimestamp: 1735689600000"
            }
        }
    )


class User(BaseModel):
    wallet_address: str = Field(..., alias="walletAddress")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    last_login: Optional[datetime] = Field(None, alias="lastLogin")

    model_config = ConfigDict(populate_by_name=True)


class WalletAuthResponse(BaseModel):
    success: bool
    user: Optional[User] = None
    error: Optional[str] = None
