import pytest
from httpx import AsyncClient

FILES = [
    {"name": "a.txt", "size": "100", "storageKey": "k1"},
    {"name": "b.png", "size": "2500", "storageKey": "k2"},
]

async def create_share(client: AsyncClient, **extra) -> dict:
    response = await client.post("/api/store", json={"files": FILES, **extra})
    assert response.status_code == 201, response.text
    return response.json()

@pytest.mark.asyncio
async def test_create_share_returns_entry(async_client: AsyncClient):
    response = await async_client.post("/api/store", json={"files": FILES})

    assert response.status_code == 201
    data = response.json()
    assert len(data["shareCode"]) == 6
    assert data["shareCode"] == data["shareCode"].upper()
    assert data["files"] == [
        {"name": "a.txt", "size": 100, "storageKey": "k1"},
        {"name": "b.png", "size": 2500, "storageKey": "k2"},
    ]
    assert data["totalSize"] == 2600
    assert data["createdAt"] == "2026-01-01T12:00:00+00:00"
    assert data["expiresInSeconds"] == 86400
    assert data["expiresAt"] == "2026-01-02T12:00:00+00:00"
    assert data["oneTimeCode"] is False

@pytest.mark.asyncio
async def test_create_share_with_options(async_client: AsyncClient):
    data = await create_share(async_client, expiresInSeconds=3600, oneTimeCode=True)

    assert data["expiresInSeconds"] == 3600
    assert data["expiresAt"].startswith("2026-01-01T13:00:00")
    assert data["oneTimeCode"] is True

@pytest.mark.asyncio
@pytest.mark.parametrize("payload", [
    {},
    {"files": []},
    {"files": None},
    {"files": [{"name": "a.txt", "size": "lots", "storageKey": "k1"}]},
    {"files": [{"name": "a.txt", "size": "1", "storageKey": ""}]},
    {"files": FILES, "expiresInSeconds": 0},
])
async def test_create_share_invalid_input_returns_400(async_client: AsyncClient, payload):
    response = await async_client.post("/api/store", json=payload)
    assert response.status_code == 400, response.text
    assert "detail" in response.json()

@pytest.mark.asyncio
async def test_get_share_roundtrip(async_client: AsyncClient):
    created = await create_share(async_client)

    response = await async_client.get("/api/store", params={"code": created["shareCode"]})

    assert response.status_code == 200
    assert response.json() == created

@pytest.mark.asyncio
async def test_get_share_requires_code(async_client: AsyncClient):
    response = await async_client.get("/api/store")
    assert response.status_code == 400

@pytest.mark.asyncio
async def test_get_unknown_share_returns_404(async_client: AsyncClient):
    response = await async_client.get("/api/store", params={"code": "ZZZZZZ"})

    assert response.status_code == 404
    assert response.json() == {"detail": "File not found"}

@pytest.mark.asyncio
async def test_get_expired_share_returns_410(async_client: AsyncClient, clock):
    created = await create_share(async_client, expiresInSeconds=60)
    clock.advance(60)

    response = await async_client.get("/api/store", params={"code": created["shareCode"]})

    assert response.status_code == 410
    assert response.json() == {"detail": "File has expired"}

@pytest.mark.asyncio
async def test_one_time_share_can_be_fetched_once(async_client: AsyncClient, blob_store):
    created = await create_share(async_client, oneTimeCode=True)
    code = created["shareCode"]

    peeked = await async_client.get("/api/store", params={"code": code, "peek": "true"})
    assert peeked.status_code == 200

    first = await async_client.get("/api/store", params={"code": code})
    assert first.status_code == 200
    assert first.json()["oneTimeCode"] is True

    second = await async_client.get("/api/store", params={"code": code})
    assert second.status_code == 404
    assert blob_store.deleted == ["k1", "k2"]

@pytest.mark.asyncio
async def test_delete_share(async_client: AsyncClient, blob_store):
    created = await create_share(async_client)

    response = await async_client.delete("/api/store", params={"code": created["shareCode"]})
    assert response.status_code == 204
    assert blob_store.deleted == ["k1", "k2"]

    response = await async_client.delete("/api/store", params={"code": created["shareCode"]})
    assert response.status_code == 404

    response = await async_client.get("/api/store", params={"code": created["shareCode"]})
    assert response.status_code == 404

@pytest.mark.asyncio
async def test_clear_expired(async_client: AsyncClient, blob_store, clock):
    expired = await create_share(async_client, expiresInSeconds=60)
    live = await create_share(async_client)
    clock.advance(61)

    response = await async_client.get("/api/store/clearExpired")

    assert response.status_code == 200
    assert response.json() == {
        "message": "Expired files deleted successfully",
        "removed": 1,
        "orphansReconciled": 0,
    }
    assert (await async_client.get("/api/store", params={"code": expired["shareCode"]})).status_code == 404
    assert (await async_client.get("/api/store", params={"code": live["shareCode"]})).status_code == 200

    response = await async_client.post("/api/store/clearExpired")
    assert response.status_code == 200
    assert response.json()["removed"] == 0

@pytest.mark.asyncio
async def test_clear_expired_reconciles_queued_blob_deletions(async_client: AsyncClient, blob_store, clock):
    await create_share(async_client, expiresInSeconds=60)
    blob_store.fail_deletes = True
    clock.advance(61)

    response = await async_client.get("/api/store/clearExpired")
    assert response.json()["removed"] == 1
    assert response.json()["orphansReconciled"] == 0

    blob_store.fail_deletes = False
    response = await async_client.get("/api/store/clearExpired")
    assert response.json()["removed"] == 0
    assert response.json()["orphansReconciled"] == 2
    assert sorted(blob_store.deleted) == ["k1", "k2"]

@pytest.mark.asyncio
async def test_usage_stats(async_client: AsyncClient):
    response = await async_client.get("/api/store/stats")

    assert response.status_code == 200
    assert response.json() == {
        "totalBytes": 2048,
        "appTotalBytes": 1024,
        "filesUploaded": 3,
        "limitBytes": 2147483648,
    }

@pytest.mark.asyncio
async def test_usage_stats_blob_store_failure_returns_502(async_client: AsyncClient, blob_store):
    blob_store.usage = None

    response = await async_client.get("/api/store/stats")

    assert response.status_code == 502
