import time
from unittest.mock import AsyncMock

import pytest
from httpx import ASGITransport, AsyncClient

from factories import CONTRACT, OTHER_CONTRACT, block, mint_tx, transfer_tx
from traitvault.api.deps import get_cache, get_coordinator, get_rarity_engine, get_scheduler
from traitvault.core.config import settings
from traitvault.core.database import get_session
from traitvault.main import app
from traitvault.services.ingestion import IngestionCoordinator
from traitvault.services.rarity import RarityEngine
from traitvault.services.scheduler import RarityScheduler

TOKEN = "chainhook-secret"
AUTH = {"Authorization": f"Bearer {TOKEN}"}


@pytest.fixture
def scheduler():
    return RarityScheduler(AsyncMock(), interval=60)


@pytest.fixture
async def client(session_factory, notifier, scheduler, monkeypatch):
    monkeypatch.setattr(settings, "WEBHOOK_AUTH_TOKEN", TOKEN)
    monkeypatch.setattr(settings, "WEBHOOK_AUTH_BYPASS", False)
    monkeypatch.setattr(settings, "ENVIRONMENT", "development")

    async def _session():
        async with session_factory() as session:
            yield session

    coordinator = IngestionCoordinator(session_factory, notifier=notifier, default_contract=CONTRACT)
    app.dependency_overrides[get_session] = _session
    app.dependency_overrides[get_coordinator] = lambda: coordinator
    app.dependency_overrides[get_rarity_engine] = lambda: RarityEngine(session_factory, notifier)
    app.dependency_overrides[get_scheduler] = lambda: scheduler
    app.dependency_overrides[get_cache] = lambda: None

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


def _body(*blocks, rollback=()):
    return {"apply": list(blocks), "rollback": list(rollback)}


NOW = int(time.time())


async def _ingest_sample(client):
    response = await client.post(
        "/webhooks/chainhook",
        json=_body(
            block(
                100,
                mint_tx("0x1", 1, "addrA", {"background": "blue", "eyes": "laser"}),
                mint_tx("0x2", 2, "addrA", {"background": "blue", "eyes": "sleepy"}),
                mint_tx("0x3", 3, "addrB", {"background": "red", "eyes": "sleepy"}),
                timestamp=NOW,
            ),
            block(101, transfer_tx("0x4", 2, "addrA", "addrC"), timestamp=NOW),
        ),
        headers=AUTH,
    )
    assert response.status_code == 200
    return response.json()


# ── Webhooks ──────────────────────────────────────────────────────────────


async def test_webhook_requires_bearer_token(client, collection):
    body = _body(block(100, mint_tx("0x1", 1, "addrA")))

    assert (await client.post("/webhooks/mint", json=body)).status_code == 401
    wrong = {"Authorization": "Bearer nope"}
    assert (await client.post("/webhooks/mint", json=body, headers=wrong)).status_code == 401


async def test_bypass_switch_only_outside_production(client, collection, monkeypatch):
    body = _body(block(100, mint_tx("0x1", 1, "addrA")))
    monkeypatch.setattr(settings, "WEBHOOK_AUTH_BYPASS", True)

    assert (await client.post("/webhooks/mint", json=body)).status_code == 200

    monkeypatch.setattr(settings, "ENVIRONMENT", "production")
    assert (await client.post("/webhooks/mint", json=body)).status_code == 401


async def test_mint_webhook_reports_and_marks_collection_dirty(client, collection, scheduler):
    response = await client.post(
        "/webhooks/mint",
        json=_body(block(100, mint_tx("0x1", 7, "addrA", {"background": "blue"}))),
        headers=AUTH,
    )

    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["message"] == "Mint events processed"
    assert data["report"]["mints_applied"] == 1
    assert data["report"]["touched_collections"] == [collection.id]
    assert scheduler.pending == {collection.id}


async def test_transfer_hook_accepts_transfers(client, collection):
    await client.post(
        "/webhooks/mint", json=_body(block(100, mint_tx("0x1", 7, "addrA"))), headers=AUTH
    )

    response = await client.post(
        "/webhooks/transfer",
        json=_body(block(101, transfer_tx("0x2", 7, "addrA", "addrB"))),
        headers=AUTH,
    )

    assert response.json()["report"]["transfers_applied"] == 1


async def test_failed_unit_answers_500(client, collection):
    response = await client.post(
        "/webhooks/mint",
        json=_body(block(100, mint_tx("0x1", 1, "addrA", contract=OTHER_CONTRACT))),
        headers=AUTH,
    )

    assert response.status_code == 500
    assert response.json()["success"] is False
    assert OTHER_CONTRACT in response.json()["message"]


async def test_malformed_envelope_is_rejected(client, collection):
    response = await client.post("/webhooks/chainhook", json={"apply": "nope"}, headers=AUTH)
    assert response.status_code == 422


async def test_webhook_health(client):
    response = await client.get("/webhooks/health")
    assert response.json()["status"] == "ok"


# ── Collections API ───────────────────────────────────────────────────────


async def test_calculate_rarity_and_list_by_rank(client, collection):
    await _ingest_sample(client)

    response = await client.post(f"/api/v1/collections/{collection.id}/calculate-rarity")
    assert response.status_code == 200
    assert response.json()["tokens_ranked"] == 3

    response = await client.get(
        f"/api/v1/collections/{collection.id}/nfts", params={"sort": "rarity_rank"}
    )
    data = response.json()
    assert data["total"] == 3
    assert [n["token_id"] for n in data["nfts"]] == [1, 3, 2]
    assert {t["trait_type"] for t in data["nfts"][0]["traits"]} == {"background", "eyes"}


async def test_calculate_rarity_unknown_collection(client):
    response = await client.post("/api/v1/collections/999/calculate-rarity")
    assert response.status_code == 404


async def test_nft_detail_includes_history(client, collection):
    await _ingest_sample(client)

    response = await client.get(f"/api/v1/collections/{collection.id}/nfts/2")

    data = response.json()
    assert data["owner_address"] == "addrC"
    assert [tx["tx_type"] for tx in data["transactions"]] == ["transfer", "mint"]

    missing = await client.get(f"/api/v1/collections/{collection.id}/nfts/77")
    assert missing.status_code == 404


async def test_search_traits_distribution_and_holders(client, collection):
    await _ingest_sample(client)
    base = f"/api/v1/collections/{collection.id}"

    search = await client.post(f"{base}/nfts/search", json={"traits": {"eyes": "sleepy"}})
    assert sorted(n["token_id"] for n in search.json()["nfts"]) == [2, 3]

    distribution = (await client.get(f"{base}/traits/distribution")).json()
    assert distribution["background"][0] == {"value": "blue", "count": 2, "rarity_score": None}

    holders = (await client.get(f"{base}/holders")).json()
    assert holders["total_holders"] == 3
    assert {h["holder_address"] for h in holders["holders"]} == {"addrA", "addrB", "addrC"}


async def test_stats_and_activity(client, collection):
    await _ingest_sample(client)
    base = f"/api/v1/collections/{collection.id}"

    stats = (await client.get(f"{base}/stats", params={"period": "7d"})).json()
    assert stats["total_nfts"] == 3
    assert stats["recent_mints"] == 3
    assert stats["recent_transfers"] == 1
    assert stats["collection"]["total_supply"] == 3

    activity = (await client.get(f"{base}/activity", params={"limit": 2})).json()
    assert len(activity) == 2
    assert activity[0]["tx_hash"] == "0x4"
    assert activity[0]["token_id"] == 2


async def test_unknown_collection_is_404(client):
    assert (await client.get("/api/v1/collections/999")).status_code == 404
    assert (await client.get("/api/v1/collections/999/nfts")).status_code == 404
