"""
Shared fixtures: an in-memory Mongo, local object storage under tmp_path
and a ledger client without a signer (simulation mode).
"""

from datetime import datetime, timedelta
from unittest.mock import Mock

import httpx
import pytest
from mongomock_motor import AsyncMongoMockClient

from app.core.config import Settings
from app.db.mongo import get_database_dependency
from app.db.record_store import RecordStore
from app.main import create_app
from app.models.skill_test import SkillTestCreate
from app.services.badge_issuance_service import BadgeIssuanceService
from app.services.blob_storage_service import BlobStorageService
from app.services.blockchain_service import LedgerClient
from app.services.registration_service import RegistrationService
from app.services.skill_test_service import SkillTestService

WALLET = "0xE70530BdAe091D597840FD787f5Dafa7c6Ef796A"
CREATOR = "0x5868c5Fa4eeF9db8Ca998F16845CCffA3B85C472"


@pytest.fixture
def settings(tmp_path):
    return Settings(
        database_name="skillbadge_test",
        private_key=None,
        poll_max_attempts=3,
        poll_interval=0,
        storage_backend="local",
        storage_base_url="http://testserver/uploads",
        storage_bucket="badges",
        upload_root=str(tmp_path / "uploads"),
        max_upload_size=4096,
        cors_origins=("*",),
    )


@pytest.fixture
def db():
    return AsyncMongoMockClient()["skillbadge_test"]


@pytest.fixture
async def store(db):
    record_store = RecordStore(db)
    await record_store.ensure_indexes()
    return record_store


@pytest.fixture
def storage(settings):
    return BlobStorageService.from_settings(settings)


@pytest.fixture
def ledger(settings):
    # Any attribute access on the web3 stub fails, so simulation mode is provably offline
    return LedgerClient(settings, w3=Mock(spec=[]))


@pytest.fixture
def issuance(store, storage, ledger, settings):
    return BadgeIssuanceService(store, storage, ledger, settings)


@pytest.fixture
def registration(store, ledger):
    return RegistrationService(store, ledger)


@pytest.fixture
def skill_tests(store, issuance):
    return SkillTestService(store, issuance)


def make_test(test_id="python-basics", pass_score=70, active=True, title="Python Basics"):
    now = datetime.utcnow()
    if active:
        start, end = now - timedelta(hours=1), now + timedelta(hours=1)
    else:
        start, end = now - timedelta(days=2), now - timedelta(days=1)
    return SkillTestCreate(
        test_id=test_id,
        creator_wallet=CREATOR,
        title=title,
        start_time=start,
        end_time=end,
        pass_score=pass_score,
        question_count=10,
    )


@pytest.fixture
async def active_test(skill_tests):
    return await skill_tests.create_test(make_test())


@pytest.fixture
async def client(settings, db, store, ledger, storage):
    app = create_app(settings)
    app.state.ledger = ledger
    app.state.storage = storage
    app.dependency_overrides[get_database_dependency] = lambda: db

    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://testserver") as c:
        yield c


async def record_attempt(store, test_id="python-basics", wallet=WALLET, score=9, total_score=10, eligible=True):
    """Store an attempt the way submit_attempt would, without issuing."""
    return await store.insert_attempt({
        "test_id": test_id,
        "wallet_address": wallet.lower(),
        "score": score,
        "total_score": total_score,
        "percentage": round(score / total_score * 100, 2),
        "practice": False,
        "badge_eligible": eligible,
        "completed_at": datetime.utcnow()
    })


@pytest.fixture
async def passed_attempt(store, active_test):
    return await record_attempt(store)
