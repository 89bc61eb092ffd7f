"""
Blockchain API endpoints.
Test registration on the Test Registry, badge NFT minting and read-only
chain lookups.
"""

from fastapi import APIRouter, Depends, Request

from ...core.dependencies import get_issuance_service, get_ledger_client, get_registration_service
from ...core.exceptions import ChainError, IssuanceFailed, SkillBadgeError
from ...models.badge import MintBadgeRequest
from ...models.skill_test import RegisterTestRequest
from ...services.badge_issuance_service import BadgeIssuanceService
from ...services.blockchain_service import LedgerClient
from ...services.registration_service import RegistrationService
from ...utils.cancellation import ClientDisconnected, run_until_disconnect
from ...utils.logger import get_logger
from .responses import CLIENT_CLOSED_REQUEST, error_response, exception_response, success_response

logger = get_logger("blockchain_api")

router = APIRouter(
    prefix="/api/blockchain",
    tags=["blockchain"],
    responses={
        400: {"description": "Bad Request"},
        404: {"description": "Not Found"},
        500: {"description": "Internal Server Error"}
    }
)


@router.post(
    "/register-test",
    summary="Register a test on-chain",
    description="Register a test on the Test Registry contract; repeat calls return the stored reference"
)
async def register_test(
    request: Request,
    body: RegisterTestRequest,
    service: RegistrationService = Depends(get_registration_service)
):
    """
    Register a test on the blockchain.

    Returns:
        {success, message, data: {success, txHash, testMetadata}}
    """
    try:
        result = await run_until_disconnect(
            request, service.register_test(body.test_id, body.creator, body.metadata_cid)
        )
        return success_response("Test registered on blockchain", result)

    except ClientDisconnected:
        return error_response(CLIENT_CLOSED_REQUEST, "Client closed request")
    except SkillBadgeError as e:
        logger.error(f"Blockchain registration error: {e}")
        return exception_response(e, "Failed to register test on blockchain")
    except Exception as e:
        logger.error(f"Blockchain registration error: {e}", exc_info=True)
        return error_response(500, "Failed to register test on blockchain", str(e))


@router.post(
    "/mint-nft",
    summary="Mint a badge NFT",
    description="Generate badge metadata, upload it and mint the badge NFT to the receiver"
)
async def mint_nft(
    request: Request,
    body: MintBadgeRequest,
    service: BadgeIssuanceService = Depends(get_issuance_service)
):
    """
    Mint a badge NFT. Also serves the dashboard's retry action for a
    badge whose earlier mint failed.

    Returns:
        {success, message, data: {success, txHash, tokenId, metadataUrl}}
    """
    try:
        result = await run_until_disconnect(
            request,
            service.issue_badge(
                body.receiver,
                body.test_id,
                test_title=body.test_title,
                score=body.score,
                total_score=body.total_score,
                practice=body.practice
            )
        )
        return success_response("NFT badge minted successfully", result)

    except ClientDisconnected:
        return error_response(CLIENT_CLOSED_REQUEST, "Client closed request")
    except IssuanceFailed as e:
        logger.error(f"NFT minting error ({e.cause_kind}): {e}")
        return error_response(500, "Failed to mint NFT badge", e.details, cause=e.cause_kind)
    except SkillBadgeError as e:
        logger.warning(f"NFT minting rejected: {e}")
        return exception_response(e, "Failed to mint NFT badge")
    except Exception as e:
        logger.error(f"NFT minting error: {e}", exc_info=True)
        return error_response(500, "Failed to mint NFT badge", str(e))


@router.get(
    "/tests",
    summary="List registered tests",
    description="List every test on the Test Registry contract"
)
async def list_chain_tests(ledger: LedgerClient = Depends(get_ledger_client)):
    try:
        tests = await ledger.list_tests()
    except ChainError as e:
        return exception_response(e, "Failed to list tests from blockchain")
    return {"success": True, "data": tests, "count": len(tests)}


@router.get(
    "/tests/{test_id}",
    summary="Get a registered test",
    description="Read a test record from the Test Registry contract"
)
async def get_chain_test(test_id: str, ledger: LedgerClient = Depends(get_ledger_client)):
    try:
        test = await ledger.get_test(test_id)
    except ChainError as e:
        return exception_response(e, "Failed to get test from blockchain")

    if test is None:
        return error_response(404, f"Test not registered on blockchain: {test_id}")
    return {"success": True, "data": test}


@router.get(
    "/tokens/{token_id}/uri",
    summary="Get badge token URI",
    description="Read the metadata URI of a minted badge NFT"
)
async def get_token_uri(token_id: str, ledger: LedgerClient = Depends(get_ledger_client)):
    try:
        uri = await ledger.get_token_uri(token_id)
    except ChainError as e:
        return exception_response(e, "Failed to get token URI")

    if uri is None:
        return error_response(404, f"Token not found: {token_id}")
    return {"success": True, "data": {"tokenId": token_id, "tokenURI": uri}}


@router.get(
    "/network",
    summary="Ledger configuration",
    description="Network, contract addresses and whether writes are simulated"
)
async def network_info(ledger: LedgerClient = Depends(get_ledger_client)):
    return {"success": True, "data": ledger.network_info()}
