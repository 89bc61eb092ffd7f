"""
Record store adapter over MongoDB.
Unique indexes enforce one user per wallet, one registration per test and
one badge per (test, owner); callers get Conflict when an insert loses a race.
"""

from datetime import datetime
from typing import Any, Dict, List, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo import ASCENDING, DESCENDING
from pymongo.errors import DuplicateKeyError

from ..core.exceptions import Conflict
from ..utils.logger import get_logger

logger = get_logger("record_store")

NO_ID = {"_id": 0}


class RecordStore:
    """Persistence for users, tests, attempts, registrations and badges."""

    def __init__(self, db: AsyncIOMotorDatabase):
        self.db = db

    async def ensure_indexes(self) -> None:
        await self.db.users.create_index("wallet_address", unique=True)
        await self.db.skill_tests.create_index("test_id", unique=True)
        await self.db.test_registrations.create_index("test_id", unique=True)
        await self.db.badges.create_index(
            [("test_id", ASCENDING), ("owner_wallet", ASCENDING)], unique=True
        )
        await self.db.test_candidates.create_index(
            [("test_id", ASCENDING), ("wallet_address", ASCENDING)], unique=True
        )
        await self.db.attempts.create_index(
            [("wallet_address", ASCENDING), ("completed_at", DESCENDING)]
        )
        logger.info("Record store indexes ensured")

    # Users

    async def upsert_wallet_user(self, wallet_address: str) -> Dict[str, Any]:
        """Create the user on first sign-in, refresh last_login otherwise."""
        now = datetime.utcnow()
        update = {"$set": {"last_login": now}, "$setOnInsert": {"created_at": now}}
        try:
            await self.db.users.update_one({"wallet_address": wallet_address}, update, upsert=True)
        except DuplicateKeyError:
            # Concurrent first sign-in inserted the row; update it instead
            await self.db.users.update_one({"wallet_address": wallet_address}, {"$set": {"last_login": now}})
        return await self.get_user(wallet_address)

    async def get_user(self, wallet_address: str) -> Optional[Dict[str, Any]]:
        return await self.db.users.find_one({"wallet_address": wallet_address}, NO_ID)

    # Tests

    async def create_test(self, test: Dict[str, Any]) -> Dict[str, Any]:
        document = dict(test)
        document.setdefault("registration_count", 0)
        document.setdefault("attempt_count", 0)
        document.setdefault("created_at", datetime.utcnow())
        try:
            await self.db.skill_tests.insert_one(document)
        except DuplicateKeyError as e:
            raise Conflict(f"Test {test['test_id']} already exists", cause=e)
        document.pop("_id", None)
        return document

    async def get_test(self, test_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.skill_tests.find_one({"test_id": test_id}, NO_ID)

    async def register_candidate(self, test_id: str, wallet_address: str) -> bool:
        """
        Record that a wallet signed up for a test.

        Returns:
            bool: False if the wallet was already registered
        """
        try:
            await self.db.test_candidates.insert_one({
                "test_id": test_id,
                "wallet_address": wallet_address,
                "registered_at": datetime.utcnow()
            })
        except DuplicateKeyError:
            return False

        await self.db.skill_tests.update_one({"test_id": test_id}, {"$inc": {"registration_count": 1}})
        return True

    async def increment_attempt_count(self, test_id: str) -> None:
        await self.db.skill_tests.update_one({"test_id": test_id}, {"$inc": {"attempt_count": 1}})

    # Attempts

    async def insert_attempt(self, attempt: Dict[str, Any]) -> Dict[str, Any]:
        document = dict(attempt)
        await self.db.attempts.insert_one(document)
        document.pop("_id", None)
        return document

    async def list_attempts(self, wallet_address: str) -> List[Dict[str, Any]]:
        cursor = self.db.attempts.find({"wallet_address": wallet_address}, NO_ID).sort("completed_at", DESCENDING)
        return await cursor.to_list(length=None)

    async def get_eligible_attempt(self, test_id: str, wallet_address: str) -> Optional[Dict[str, Any]]:
        """Best badge-eligible attempt of a wallet on a test, or None."""
        cursor = self.db.attempts.find(
            {"test_id": test_id, "wallet_address": wallet_address, "badge_eligible": True}, NO_ID
        ).sort("percentage", DESCENDING).limit(1)
        attempts = await cursor.to_list(length=1)
        return attempts[0] if attempts else None

    # On-chain registrations

    async def get_registration(self, test_id: str) -> Optional[Dict[str, Any]]:
        return await self.db.test_registrations.find_one({"test_id": test_id}, NO_ID)

    async def save_registration(self, registration: Dict[str, Any]) -> None:
        """
        Persist a registry reference. Written once and never updated.

        Raises:
            Conflict: If the test already has a reference
        """
        try:
            await self.db.test_registrations.insert_one(dict(registration))
        except DuplicateKeyError as e:
            raise Conflict(f"Test {registration['test_id']} already registered", cause=e)

    # Badges

    async def get_badge(self, test_id: str, owner_wallet: str) -> Optional[Dict[str, Any]]:
        return await self.db.badges.find_one({"test_id": test_id, "owner_wallet": owner_wallet}, NO_ID)

    async def create_pending_badge(self, test_id: str, owner_wallet: str) -> Dict[str, Any]:
        """
        Insert a badge row with no chain references yet.

        Raises:
            Conflict: If a row for (test_id, owner_wallet) exists
        """
        document = {
            "test_id": test_id,
            "owner_wallet": owner_wallet,
            "nft_token_id": None,
            "mint_tx_hash": None,
            "metadata_url": None,
            "created_at": datetime.utcnow(),
            "minted_at": None,
            "last_error": None
        }
        try:
            await self.db.badges.insert_one(document)
        except DuplicateKeyError as e:
            raise Conflict(f"Badge for {owner_wallet} on test {test_id} already exists", cause=e)
        document.pop("_id", None)
        return document

    async def set_badge_metadata_url(self, test_id: str, owner_wallet: str, metadata_url: str) -> None:
        await self.db.badges.update_one(
            {"test_id": test_id, "owner_wallet": owner_wallet},
            {"$set": {"metadata_url": metadata_url}}
        )

    async def record_badge_error(self, test_id: str, owner_wallet: str, error: str) -> None:
        await self.db.badges.update_one(
            {"test_id": test_id, "owner_wallet": owner_wallet},
            {"$set": {"last_error": error}}
        )

    async def mark_badge_minted(
        self,
        test_id: str,
        owner_wallet: str,
        token_id: str,
        tx_hash: str,
        metadata_url: str
    ) -> bool:
        """
        Attach chain references to a pending badge.

        Returns:
            bool: False if the badge was already minted by someone else
        """
        result = await self.db.badges.update_one(
            {"test_id": test_id, "owner_wallet": owner_wallet, "nft_token_id": None},
            {"$set": {
                "nft_token_id": token_id,
                "mint_tx_hash": tx_hash,
                "metadata_url": metadata_url,
                "minted_at": datetime.utcnow(),
                "last_error": None
            }}
        )
        return result.matched_count == 1

    async def list_badges(self, owner_wallet: str) -> List[Dict[str, Any]]:
        cursor = self.db.badges.find({"owner_wallet": owner_wallet}, NO_ID).sort("created_at", DESCENDING)
        return await cursor.to_list(length=None)
