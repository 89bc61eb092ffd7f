"""
Service dependencies for FastAPI routes.
Shared clients live on `app.state` (built in the lifespan); per-request
services are assembled from them here.
"""

from fastapi import Depends, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

from ..core.config import Settings
from ..db.mongo import DatabaseDep
from ..db.record_store import RecordStore
from ..services.auth_service import AuthService
from ..services.badge_issuance_service import BadgeIssuanceService
from ..services.blob_storage_service import BlobStorageService
from ..services.blockchain_service import LedgerClient
from ..services.registration_service import RegistrationService
from ..services.skill_test_service import SkillTestService


def get_settings(request: Request) -> Settings:
    return request.app.state.settings


def get_ledger_client(request: Request) -> LedgerClient:
    return request.app.state.ledger


def get_blob_storage(request: Request) -> BlobStorageService:
    return request.app.state.storage


def get_record_store(db: AsyncIOMotorDatabase = DatabaseDep) -> RecordStore:
    return RecordStore(db)


def get_auth_service(store: RecordStore = Depends(get_record_store)) -> AuthService:
    return AuthService(store)


def get_registration_service(
    store: RecordStore = Depends(get_record_store),
    ledger: LedgerClient = Depends(get_ledger_client)
) -> RegistrationService:
    return RegistrationService(store, ledger)


def get_issuance_service(
    store: RecordStore = Depends(get_record_store),
    storage: BlobStorageService = Depends(get_blob_storage),
    ledger: LedgerClient = Depends(get_ledger_client),
    settings: Settings = Depends(get_settings)
) -> BadgeIssuanceService:
    return BadgeIssuanceService(store, storage, ledger, settings)


def get_skill_test_service(
    store: RecordStore = Depends(get_record_store),
    issuance: BadgeIssuanceService = Depends(get_issuance_service)
) -> SkillTestService:
    return SkillTestService(store, issuance)
