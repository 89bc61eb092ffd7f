"""
HTTP tests against the app built by create_app(), with the record store,
object storage and ledger injected.
"""

import os
from datetime import datetime, timedelta
from unittest.mock import AsyncMock

from eth_account import Account
from eth_account.messages import encode_defunct
from web3 import Web3

from conftest import CREATOR, WALLET, record_attempt

from app.core.exceptions import ChainError
from app.main import create_app

MESSAGE = "Sign this message to authenticate with your wallet.\nTimestamp: 1735689600000"


def _sign(account, message=MESSAGE):
    signed = Account.sign_message(encode_defunct(text=message), private_key=account.key)
    return Web3.to_hex(signed.signature)


def _test_body(test_id="python-basics", pass_score=70):
    now = datetime.utcnow()
    return {
        "testId": test_id,
        "creatorWallet": CREATOR,
        "title": "Python Basics",
        "startTime": (now - timedelta(hours=1)).isoformat(),
        "endTime": (now + timedelta(hours=1)).isoformat(),
        "passScore": pass_score,
        "questionCount": 10
    }


class TestWalletAuth:

    async def test_sign_in_creates_user(self, client):
        account = Account.create()

        response = await client.post("/api/auth/wallet", json={
            "walletAddress": account.address,
            "signature": _sign(account),
            "message": MESSAGE
        })

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["user"]["walletAddress"] == account.address.lower()
        assert body["user"]["createdAt"]

        lookup = await client.get(f"/api/auth/user/{account.address}")
        assert lookup.status_code == 200
        assert lookup.json()["walletAddress"] == account.address.lower()

    async def test_repeat_sign_in_keeps_one_user(self, client, db):
        account = Account.create()
        payload = {"walletAddress": account.address, "signature": _sign(account), "message": MESSAGE}

        await client.post("/api/auth/wallet", json=payload)
        await client.post("/api/auth/wallet", json=payload)

        assert await db.users.count_documents({"wallet_address": account.address.lower()}) == 1

    async def test_signature_from_other_key_rejected(self, client, db):
        claimed, signer = Account.create(), Account.create()

        response = await client.post("/api/auth/wallet", json={
            "walletAddress": claimed.address,
            "signature": _sign(signer),
            "message": MESSAGE
        })

        assert response.status_code == 401
        assert response.json()["success"] is False
        assert "error" in response.json()
        assert await db.users.count_documents({}) == 0

    async def test_garbage_signature_rejected(self, client):
        response = await client.post("/api/auth/wallet", json={
            "walletAddress": WALLET,
            "signature": "0x1234",
            "message": MESSAGE
        })

        assert response.status_code == 401
        assert response.json()["success"] is False

    async def test_missing_fields(self, client):
        response = await client.post("/api/auth/wallet", json={"walletAddress": WALLET})

        assert response.status_code == 400
        assert response.json()["success"] is False

    async def test_unknown_user(self, client):
        response = await client.get(f"/api/auth/user/{WALLET}")
        assert response.status_code == 404


class TestRegisterTestEndpoint:

    async def test_register(self, client):
        payload = {"testId": "t1", "creator": CREATOR, "metadataCid": "bafy"}

        response = await client.post("/api/blockchain/register-test", json=payload)

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["message"] == "Test registered on blockchain"
        assert body["data"]["txHash"].startswith("sim_")
        assert body["data"]["testMetadata"] == {
            "testId": "t1",
            "creator": CREATOR,
            "metadataCid": "bafy",
            "createdAt": body["data"]["testMetadata"]["createdAt"]
        }

        again = await client.post("/api/blockchain/register-test", json=payload)
        assert again.json()["data"]["txHash"] == body["data"]["txHash"]

    async def test_missing_field(self, client):
        response = await client.post("/api/blockchain/register-test", json={"testId": "t1", "creator": CREATOR})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields: testId, creator, metadataCid"}

    async def test_ledger_failure(self, client, ledger):
        ledger.register_test = AsyncMock(side_effect=ChainError("Simulation failed: execution reverted"))

        response = await client.post(
            "/api/blockchain/register-test",
            json={"testId": "t1", "creator": CREATOR, "metadataCid": "bafy"}
        )

        assert response.status_code == 500
        body = response.json()
        assert body["error"] == "Failed to register test on blockchain"
        assert "execution reverted" in body["details"]


class TestMintEndpoint:

    async def test_mint(self, client, store):
        await client.post("/api/tests", json=_test_body())
        await record_attempt(store)

        response = await client.post("/api/blockchain/mint-nft", json={
            "receiver": WALLET,
            "testId": "python-basics",
            "score": 9,
            "totalScore": 10
        })

        assert response.status_code == 200
        body = response.json()
        assert body["message"] == "NFT badge minted successfully"
        assert body["data"]["tokenId"].startswith("sim_nft_")
        assert body["data"]["metadataUrl"].endswith(f"python-basics_{WALLET.lower()}.json")

    async def test_missing_receiver(self, client):
        response = await client.post("/api/blockchain/mint-nft", json={"testId": "python-basics"})

        assert response.status_code == 400
        assert response.json() == {"error": "Missing required fields: receiver, testId"}

    async def test_mint_without_passing_attempt_refused(self, client, db):
        await client.post("/api/tests", json=_test_body())

        response = await client.post("/api/blockchain/mint-nft", json={"receiver": WALLET, "testId": "python-basics"})

        assert response.status_code == 400
        assert "No passing attempt" in response.json()["error"]
        assert await db.badges.count_documents({}) == 0

    async def test_practice_attempt_cannot_be_minted(self, client, db):
        await client.post("/api/tests", json=_test_body())
        await client.post(
            "/api/tests/python-basics/attempts",
            json={"walletAddress": WALLET, "score": 10, "totalScore": 10, "practice": True}
        )

        response = await client.post("/api/blockchain/mint-nft", json={"receiver": WALLET, "testId": "python-basics"})

        assert response.status_code == 400
        assert await db.badges.count_documents({}) == 0

    async def test_practice_refused(self, client):
        await client.post("/api/tests", json=_test_body())

        response = await client.post("/api/blockchain/mint-nft", json={
            "receiver": WALLET,
            "testId": "python-basics",
            "practice": True
        })

        assert response.status_code == 400

    async def test_mint_failure_then_retry(self, client, ledger, store):
        await client.post("/api/tests", json=_test_body())
        await record_attempt(store)
        real_mint = ledger.mint_badge
        ledger.mint_badge = AsyncMock(side_effect=ChainError("Transaction submission failed"))

        failed = await client.post("/api/blockchain/mint-nft", json={"receiver": WALLET, "testId": "python-basics"})

        assert failed.status_code == 500
        assert failed.json()["error"] == "Failed to mint NFT badge"
        assert failed.json()["cause"] == "ChainError"

        badges = (await client.get(f"/api/badges/{WALLET}")).json()["data"]
        assert badges[0]["canRetryMint"] is True
        assert badges[0]["minted"] is False

        ledger.mint_badge = real_mint
        retried = await client.post("/api/blockchain/mint-nft", json={"receiver": WALLET, "testId": "python-basics"})

        assert retried.status_code == 200
        badges = (await client.get(f"/api/badges/{WALLET}")).json()["data"]
        assert len(badges) == 1
        assert badges[0]["minted"] is True
        assert badges[0]["canRetryMint"] is False
        assert badges[0]["nftTokenId"] == retried.json()["data"]["tokenId"]


class TestSkillTestEndpoints:

    async def test_create_and_get(self, client):
        created = await client.post("/api/tests", json=_test_body())
        assert created.status_code == 201

        response = await client.get("/api/tests/python-basics")
        assert response.status_code == 200
        assert response.json()["data"]["title"] == "Python Basics"
        assert response.json()["data"]["creatorWallet"] == CREATOR.lower()

    async def test_duplicate_test_conflicts(self, client):
        await client.post("/api/tests", json=_test_body())
        response = await client.post("/api/tests", json=_test_body())
        assert response.status_code == 409

    async def test_window_validation(self, client):
        body = _test_body()
        body["endTime"], body["startTime"] = body["startTime"], body["endTime"]

        response = await client.post("/api/tests", json=body)
        assert response.status_code == 422

    async def test_unknown_test(self, client):
        response = await client.get("/api/tests/missing")
        assert response.status_code == 404

    async def test_candidate_registration_is_idempotent(self, client):
        await client.post("/api/tests", json=_test_body())

        first = await client.post("/api/tests/python-basics/register", json={"walletAddress": WALLET})
        second = await client.post("/api/tests/python-basics/register", json={"walletAddress": WALLET})

        assert first.json()["data"]["alreadyRegistered"] is False
        assert second.json()["data"]["alreadyRegistered"] is True
        test = (await client.get("/api/tests/python-basics")).json()["data"]
        assert test["registrationCount"] == 1

    async def test_submit_passing_attempt(self, client):
        await client.post("/api/tests", json=_test_body())

        response = await client.post(
            "/api/tests/python-basics/attempts",
            json={"walletAddress": WALLET, "score": 9, "totalScore": 10}
        )

        assert response.status_code == 200
        data = response.json()["data"]
        assert data["attempt"]["badgeEligible"] is True
        assert data["badge"]["tokenId"].startswith("sim_nft_")
        assert data["badgeError"] is None

        attempts = (await client.get(f"/api/attempts/{WALLET}")).json()
        assert attempts["count"] == 1
        assert attempts["data"][0]["percentage"] == 90.0


class TestHealthAndChainReads:

    async def test_live(self, client):
        response = await client.get("/api/health/live")
        assert response.status_code == 200
        assert response.json()["status"] == "alive"

    async def test_health_reports_ledger_mode(self, client):
        response = await client.get("/api/health")
        assert response.status_code == 200
        assert response.json()["ledger"]["mode"] == "simulation"

    async def test_chain_test_lookup_without_registry(self, client):
        response = await client.get("/api/blockchain/tests/t1")
        assert response.status_code == 404

    async def test_chain_list_without_registry(self, client):
        response = await client.get("/api/blockchain/tests")
        assert response.json() == {"success": True, "data": [], "count": 0}

    async def test_network(self, client):
        response = await client.get("/api/blockchain/network")
        assert response.json()["data"]["mode"] == "simulation"


class TestUploadsMount:

    def test_building_app_creates_no_directories(self, settings):
        create_app(settings)
        assert not os.path.exists(settings.upload_root)

    async def test_uploaded_metadata_is_served(self, client, storage):
        url = await storage.upload("t1_0xabc.json", b'{"name": "Badge"}')

        response = await client.get(url.replace("http://testserver", ""))

        assert response.status_code == 200
        assert response.json() == {"name": "Badge"}
