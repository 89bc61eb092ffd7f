"""
Dashboard API endpoints.
A wallet's badges (with mint state) and attempt history.
"""

from fastapi import APIRouter, Depends

from ...core.dependencies import get_issuance_service, get_skill_test_service
from ...services.badge_issuance_service import BadgeIssuanceService
from ...services.skill_test_service import SkillTestService
from ...utils.logger import get_logger

logger = get_logger("dashboard_api")

router = APIRouter(
    prefix="/api",
    tags=["dashboard"],
    responses={
        500: {"description": "Internal Server Error"}
    }
)


@router.get(
    "/badges/{wallet_address}",
    summary="List badges",
    description="Badges of a wallet; `canRetryMint` marks badges whose mint has not completed"
)
async def list_badges(
    wallet_address: str,
    service: BadgeIssuanceService = Depends(get_issuance_service)
):
    badges = await service.list_badges(wallet_address)
    return {
        "success": True,
        "data": [b.model_dump(mode="json", by_alias=True) for b in badges],
        "count": len(badges)
    }


@router.get(
    "/attempts/{wallet_address}",
    summary="List attempts",
    description="Attempt history of a wallet, newest first"
)
async def list_attempts(
    wallet_address: str,
    service: SkillTestService = Depends(get_skill_test_service)
):
    attempts = await service.list_attempts(wallet_address)
    return {
        "success": True,
        "data": [a.model_dump(mode="json", by_alias=True) for a in attempts],
        "count": len(attempts)
    }
