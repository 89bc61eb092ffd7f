"""
Badge models and schemas.
A badge row exists once eligibility is established and becomes "minted"
when both nft_token_id and mint_tx_hash are set.
"""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field


class MintBadgeRequest(BaseModel):
    """Body of POST /api/blockchain/mint-nft. Presence is checked by the workflow."""

    receiver: Optional[str] = Field(None, description="Wallet receiving the badge")
    test_id: Optional[str] = Field(None, alias="testId", description="Test the badge is for")
    test_title: Optional[str] = Field(None, alias="testTitle")
    score: Optional[int] = Field(None, ge=0)
    total_score: Optional[int] = Field(None, alias="totalScore", ge=0)
    practice: bool = Field(default=False, description="Practice attempts never produce badges")

    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "receiver": "0xE70530BdAe091D597840FD787f5Dafa7c6Ef796A",
                "testId": "python-basics-2025",
                "testTitle": "Python Basics",
                "score": 9,
                "totalScore": 10
            }
        }
    )


class Badge(BaseModel):
    """Badge record as stored."""

    test_id: str = Field(..., alias="testId")
    owner_wallet: str = Field(..., alias="ownerWallet")
    nft_token_id: Optional[str] = Field(None, alias="nftTokenId")
    mint_tx_hash: Optional[str] = Field(None, alias="mintTxHash")
    metadata_url: Optional[str] = Field(None, alias="metadataUrl")
    created_at: Optional[datetime] = Field(None, alias="createdAt")
    minted_at: Optional[datetime] = Field(None, alias="mintedAt")
    last_error: Optional[str] = Field(None, alias="lastError")

    model_config = ConfigDict(populate_by_name=True)

    @property
    def minted(self) -> bool:
        return bool(self.nft_token_id and self.mint_tx_hash)


class BadgeView(Badge):
    """Badge as returned to the dashboard."""

    minted_flag: bool = Field(default=False, alias="minted")
    can_retry_mint: bool = Field(default=False, alias="canRetryMint")

    @classmethod
    def from_badge(cls, badge: Badge) -> "BadgeView":
        data = badge.model_dump()
        return cls(**data, minted_flag=badge.minted, can_retry_mint=badge.nft_token_id is None)


class BadgeIssuanceResult(BaseModel):
    success: bool
    tx_hash: Optional[str] = Field(None, alias="txHash")
    token_id: Optional[str] = Field(None, alias="tokenId")
    metadata_url: Optional[str] = Field(None, alias="metadataUrl")
    already_minted: bool = Field(default=False, alias="alreadyMinted")
    simulated: bool = False

    model_config = ConfigDict(populate_by_name=True)
