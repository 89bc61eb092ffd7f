"""
Badge issuance service.
Handles the complete badge flow: eligibility, metadata generation and
upload, NFT minting and persistence of the chain references.

A badge row is created before any external call. When storage or the
ledger fails the row keeps a null token id, which is what the dashboard
offers a retry for; the retry is a fresh call to issue_badge().
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, List, Optional

from ..core.config import Settings
from ..core.exceptions import (
    ChainError,
    Conflict,
    InvalidRequest,
    IssuanceFailed,
    IssuanceRefused,
    StorageError,
)
from ..db.record_store import RecordStore
from ..models.badge import Badge, BadgeIssuanceResult, BadgeView
from ..models.skill_test import SkillTest
from ..services.blob_storage_service import BlobStorageService
from ..services.blockchain_service import LedgerClient, is_simulated
from ..services.metadata_service import generate_badge_metadata, metadata_key, serialize_metadata
from ..utils.logger import get_logger
from ..utils.wallet import normalize_wallet

logger = get_logger("badge_issuance_service")


def score_percentage(score: Optional[int], total_score: Optional[int]) -> Optional[float]:
    if score is None or not total_score:
        return None
    return score / total_score * 100


def meets_pass_score(score: int, total_score: int, pass_score: float) -> bool:
    """Exact comparison of score/total_score against a percentage threshold."""
    if not total_score:
        return False
    return Decimal(score) * 100 >= Decimal(str(pass_score)) * total_score


class BadgeIssuanceService:
    """Service for issuing badge NFTs"""

    def __init__(
        self,
        store: RecordStore,
        storage: BlobStorageService,
        ledger: LedgerClient,
        settings: Settings
    ):
        self.store = store
        self.storage = storage
        self.ledger = ledger
        self.settings = settings

    async def issue_badge(
        self,
        receiver: Optional[str],
        test_id: Optional[str],
        test_title: Optional[str] = None,
        score: Optional[int] = None,
        total_score: Optional[int] = None,
        practice: bool = False
    ) -> BadgeIssuanceResult:
        """
        Issue (or finish issuing) the badge for `receiver` on `test_id`.

        Args:
            receiver: Wallet receiving the badge
            test_id: Test the badge is for
            test_title: Title written into the metadata
            score: Correct answers, if known
            total_score: Total answers, if known
            practice: Practice attempts are always refused

        Returns:
            BadgeIssuanceResult; `already_minted` is set when an existing
            minted badge is returned unchanged

        Raises:
            InvalidRequest: If receiver or test_id is missing
            IssuanceRefused: Practice mode, inactive test, failing score or
                no stored passing attempt
            IssuanceFailed: Storage or ledger failure, with `cause` set
        """
        receiver = normalize_wallet(receiver)
        test_id = (test_id or "").strip()
        if not receiver or not test_id:
            raise InvalidRequest("Missing required fields: receiver, testId")

        if practice:
            logger.info(f"Refusing badge for practice attempt by {receiver} on test {test_id}")
            raise IssuanceRefused("Practice attempts do not earn badges")

        badge = await self.store.get_badge(test_id, receiver)
        if badge and badge.get("nft_token_id"):
            logger.info(f"Badge for {receiver} on test {test_id} already minted: {badge['nft_token_id']}")
            return self._minted_result(badge)

        if badge is None:
            # Eligibility is decided once, when the badge row is first created.
            # A pending row already records it, so retries skip the window check.
            test = await self._load_test(test_id)
            attempt = await self._check_eligibility(test, receiver, score, total_score)
            test_title = test_title or test.title
            if score is None:
                score, total_score = attempt["score"], attempt["total_score"]

            try:
                badge = await self.store.create_pending_badge(test_id, receiver)
            except Conflict:
                badge = await self.store.get_badge(test_id, receiver)
                logger.warning(f"Badge row for {receiver} on test {test_id} created concurrently")
                if badge and badge.get("nft_token_id"):
                    return self._minted_result(badge)
        else:
            if not test_title:
                document = await self.store.get_test(test_id)
                test_title = document.get("title") if document else None
            if score is None:
                attempt = await self.store.get_eligible_attempt(test_id, receiver)
                if attempt:
                    score, total_score = attempt["score"], attempt["total_score"]

        return await self._mint(receiver, test_id, test_title, score, total_score)

    async def _load_test(self, test_id: str) -> SkillTest:
        document = await self.store.get_test(test_id)
        if document is None:
            raise IssuanceRefused(f"Unknown test: {test_id}")
        return SkillTest(**document)

    async def _check_eligibility(
        self,
        test: SkillTest,
        receiver: str,
        score: Optional[int],
        total_score: Optional[int]
    ) -> Dict[str, Any]:
        """
        Refuse first issuance unless the test is active and the receiver has a
        stored badge-eligible attempt on it. Returns that attempt.
        """
        if not test.is_active(datetime.utcnow()):
            raise IssuanceRefused(f"Test {test.test_id} is not active; badges are only issued during the test window")

        if score is not None and total_score and not meets_pass_score(score, total_score, test.pass_score):
            percentage = score_percentage(score, total_score)
            raise IssuanceRefused(
                f"Score {percentage:.2f}% is below the pass score of {test.pass_score}%"
            )

        attempt = await self.store.get_eligible_attempt(test.test_id, receiver)
        if attempt is None:
            raise IssuanceRefused(f"No passing attempt by {receiver} on test {test.test_id}")
        return attempt

    async def _mint(
        self,
        receiver: str,
        test_id: str,
        test_title: Optional[str],
        score: Optional[int],
        total_score: Optional[int]
    ) -> BadgeIssuanceResult:
        # Step 1: Generate metadata
        metadata = generate_badge_metadata(
            test_id,
            receiver,
            test_title=test_title,
            score=score,
            total_score=total_score,
            image_url=self.settings.default_badge_image
        )

        # Step 2: Upload metadata; overwrite so retries reuse one object
        try:
            metadata_url = await self.storage.upload(
                metadata_key(test_id, receiver),
                serialize_metadata(metadata),
                content_type="application/json",
                overwrite=True
            )
        except StorageError as e:
            raise await self._failure(receiver, test_id, "Metadata upload failed", e) from e

        await self.store.set_badge_metadata_url(test_id, receiver, metadata_url)

        # Step 3: Mint
        try:
            receipt = await self.ledger.mint_badge(receiver, metadata_url, test_id=test_id)
        except ChainError as e:
            raise await self._failure(receiver, test_id, "NFT minting failed", e) from e

        # Step 4: Persist chain references
        updated = await self.store.mark_badge_minted(
            test_id, receiver, receipt.token_id, receipt.tx_hash, metadata_url
        )
        if not updated:
            existing = await self.store.get_badge(test_id, receiver)
            logger.warning(
                f"Badge for {receiver} on test {test_id} was minted concurrently; "
                f"keeping token {existing['nft_token_id']}, discarding {receipt.token_id}"
            )
            return self._minted_result(existing)

        logger.info(f"Badge issued for {receiver} on test {test_id}: token {receipt.token_id}")
        return BadgeIssuanceResult(
            success=True,
            tx_hash=receipt.tx_hash,
            token_id=receipt.token_id,
            metadata_url=metadata_url,
            simulated=receipt.simulated
        )

    async def _failure(self, receiver: str, test_id: str, message: str, cause: Exception) -> IssuanceFailed:
        logger.error(f"{message} for {receiver} on test {test_id}: {cause}")
        await self.store.record_badge_error(test_id, receiver, f"{message}: {cause}")
        return IssuanceFailed(f"{message}: {cause}", cause=cause)

    async def list_badges(self, owner_wallet: str) -> List[BadgeView]:
        """Badges of a wallet, newest first, flagged for the dashboard's retry action."""
        documents = await self.store.list_badges(normalize_wallet(owner_wallet))
        return [BadgeView.from_badge(Badge(**d)) for d in documents]

    def _minted_result(self, badge: Dict[str, Any]) -> BadgeIssuanceResult:
        return BadgeIssuanceResult(
            success=True,
            tx_hash=badge.get("mint_tx_hash"),
            token_id=badge.get("nft_token_id"),
            metadata_url=badge.get("metadata_url"),
            already_minted=True,
            simulated=is_simulated(badge.get("mint_tx_hash"))
        )
