"""
On-chain test registration workflow.
Registers a test on the Test Registry once and records the reference;
repeat calls return the stored reference.
"""

import time
from typing import Any, Dict, Optional

from ..core.exceptions import ChainError, Conflict, InvalidRequest, RegistrationFailed
from ..db.record_store import RecordStore
from ..models.skill_test import RegistrationResult, TestMetadata
from ..services.blockchain_service import LedgerClient, is_simulated
from ..utils.logger import get_logger

logger = get_logger("registration_service")


class RegistrationService:
    """Service for registering tests on the ledger"""

    def __init__(self, store: RecordStore, ledger: LedgerClient):
        self.store = store
        self.ledger = ledger

    async def register_test(
        self,
        test_id: Optional[str],
        creator: Optional[str],
        metadata_cid: Optional[str]
    ) -> RegistrationResult:
        """
        Register a test on-chain and record the transaction.

        Args:
            test_id: Test identifier
            creator: Creator wallet
            metadata_cid: Content id of the test metadata

        Returns:
            RegistrationResult with the registry tx hash

        Raises:
            InvalidRequest: If any field is missing or blank
            RegistrationFailed: If the ledger rejects or times out; nothing is written
        """
        test_id = (test_id or "").strip()
        creator = (creator or "").strip()
        metadata_cid = (metadata_cid or "").strip()
        if not test_id or not creator or not metadata_cid:
            raise InvalidRequest("Missing required fields: testId, creator, metadataCid")

        existing = await self.store.get_registration(test_id)
        if existing:
            logger.info(f"Test {test_id} already registered (tx {existing['tx_hash']})")
            return self._result(existing, already_registered=True)

        try:
            receipt = await self.ledger.register_test(test_id, creator, metadata_cid)
        except ChainError as e:
            logger.error(f"Blockchain registration failed for test {test_id}: {e.details}")
            raise RegistrationFailed(f"Blockchain registration failed: {e.details}", cause=e)

        registration = {
            "test_id": test_id,
            "creator": creator,
            "metadata_cid": metadata_cid,
            "tx_hash": receipt.tx_hash,
            "created_at": int(time.time() * 1000),
            "simulated": receipt.simulated
        }

        try:
            await self.store.save_registration(registration)
        except Conflict:
            # A concurrent request stored its reference first; that one wins
            stored = await self.store.get_registration(test_id)
            logger.warning(
                f"Registration race on test {test_id}: keeping {stored['tx_hash']}, discarding {receipt.tx_hash}"
            )
            return self._result(stored, already_registered=True)

        logger.info(f"Test {test_id} registered with tx hash: {receipt.tx_hash}")
        return self._result(registration)

    def _result(self, registration: Dict[str, Any], already_registered: bool = False) -> RegistrationResult:
        return RegistrationResult(
            success=True,
            tx_hash=registration["tx_hash"],
            test_metadata=TestMetadata(
                test_id=registration["test_id"],
                creator=registration["creator"],
                metadata_cid=registration["metadata_cid"],
                created_at=registration["created_at"]
            ),
            already_registered=already_registered,
            simulated=registration.get("simulated", is_simulated(registration["tx_hash"]))
        )
