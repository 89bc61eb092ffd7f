"""
Skill test service: test creation, candidate registration and attempt
submission. A submitted attempt is stored before any badge work starts,
so a failed issuance never loses the result.
"""

from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from ..core.exceptions import InvalidRequest, IssuanceFailed, NotFound
from ..db.record_store import RecordStore
from ..models.skill_test import Attempt, AttemptResult, BadgeError, SkillTest, SkillTestCreate
from ..services.badge_issuance_service import BadgeIssuanceService, meets_pass_score, score_percentage
from ..utils.logger import get_logger
from ..utils.wallet import normalize_wallet

logger = get_logger("skill_test_service")


def _to_naive_utc(value: datetime) -> datetime:
    if value.tzinfo is not None:
        return value.astimezone(timezone.utc).replace(tzinfo=None)
    return value


class SkillTestService:
    """Service class for tests and attempts."""

    def __init__(self, store: RecordStore, issuance: BadgeIssuanceService):
        self.store = store
        self.issuance = issuance

    async def create_test(self, data: SkillTestCreate) -> SkillTest:
        document = data.model_dump()
        document["creator_wallet"] = normalize_wallet(data.creator_wallet)
        document["start_time"] = _to_naive_utc(data.start_time)
        document["end_time"] = _to_naive_utc(data.end_time)

        stored = await self.store.create_test(document)
        logger.info(f"Test {data.test_id} created by {document['creator_wallet']}")
        return SkillTest(**stored)

    async def get_test(self, test_id: str) -> SkillTest:
        document = await self.store.get_test(test_id)
        if document is None:
            raise NotFound(f"Test not found: {test_id}")
        return SkillTest(**document)

    async def register_candidate(self, test_id: str, wallet_address: Optional[str]) -> Dict[str, Any]:
        wallet = normalize_wallet(wallet_address)
        if not wallet:
            raise InvalidRequest("Missing required field: walletAddress")
        await self.get_test(test_id)

        created = await self.store.register_candidate(test_id, wallet)
        return {"testId": test_id, "walletAddress": wallet, "alreadyRegistered": not created}

    async def submit_attempt(
        self,
        test_id: str,
        wallet_address: Optional[str],
        score: int,
        total_score: int,
        practice: bool = False
    ) -> AttemptResult:
        """
        Store an attempt and issue a badge when it qualifies.

        An attempt qualifies when it is not a practice attempt, the test is
        inside its window and the percentage reaches the pass score.

        Returns:
            AttemptResult with the stored attempt and, when issued, the
            badge result or the issuance error
        """
        wallet = normalize_wallet(wallet_address)
        if not wallet:
            raise InvalidRequest("Missing required field: walletAddress")
        if score > total_score:
            raise InvalidRequest("score cannot exceed totalScore")

        test = await self.get_test(test_id)
        now = datetime.utcnow()
        percentage = score_percentage(score, total_score) or 0.0
        active = test.is_active(now)
        eligible = not practice and active and meets_pass_score(score, total_score, test.pass_score)

        # Attempts outside the window are recorded as practice
        attempt = await self.store.insert_attempt({
            "test_id": test_id,
            "wallet_address": wallet,
            "score": score,
            "total_score": total_score,
            "percentage": round(percentage, 2),
            "practice": practice or not active,
            "badge_eligible": eligible,
            "completed_at": now
        })
        await self.store.increment_attempt_count(test_id)

        result = AttemptResult(attempt=Attempt(**attempt))
        if not eligible:
            return result

        try:
            result.badge = await self.issuance.issue_badge(
                wallet,
                test_id,
                test_title=test.title,
                score=score,
                total_score=total_score
            )
        except IssuanceFailed as e:
            # The badge row stays pending and can be retried from the dashboard
            logger.error(f"Badge issuance failed after attempt on test {test_id} by {wallet}: {e}")
            result.badge_error = BadgeError(error=e.message, cause=e.cause_kind)

        return result

    async def list_attempts(self, wallet_address: str) -> List[Attempt]:
        documents = await self.store.list_attempts(normalize_wallet(wallet_address))
        return [Attempt(**d) for d in documents]
