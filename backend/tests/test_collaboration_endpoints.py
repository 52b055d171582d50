"""Tests for the collaboration server hooks (bootstrap and snapshots)."""

import pytest

from collabdocs.core.config import settings

OWNER = {"X-User-Id": "10"}


def _webhook_headers(token=None):
    return {"X-Webhook-Token": token if token is not None else settings.SNAPSHOT_WEBHOOK_TOKEN}


def _payload(sha="abc", size=512):
    return {"snapshot_url": f"s3://snapshots/{sha}", "sha256": sha, "size_bytes": size}


@pytest.mark.asyncio
async def test_webhook_ingests_snapshot(client, store):
    store.add_document(1, owner_id=10)

    response = await client.post(
        "/api/v1/collab/snapshot/1", json=_payload(), headers=_webhook_headers()
    )

    assert response.status_code == 200
    data = response.json()
    assert data["version_number"] == 1
    assert data["created"] is True
    row = store.versions[data["version_id"]]
    assert row.source == "auto"
    assert row.created_by == 10
    assert row.size_bytes == 512


@pytest.mark.asyncio
async def test_repeated_delivery_is_idempotent(client, store):
    store.add_document(1, owner_id=10)

    responses = [
        await client.post("/api/v1/collab/snapshot/1", json=_payload(), headers=_webhook_headers())
        for _ in range(3)
    ]

    assert {r.status_code for r in responses} == {200}
    assert len({r.json()["version_id"] for r in responses}) == 1
    assert [r.json()["created"] for r in responses] == [True, False, False]
    assert len(store.versions_for(1)) == 1


@pytest.mark.asyncio
async def test_webhook_rejects_wrong_token(client, store):
    store.add_document(1, owner_id=10)

    response = await client.post(
        "/api/v1/collab/snapshot/1", json=_payload(), headers=_webhook_headers("nope")
    )

    assert response.status_code == 401
    assert store.versions == {}


@pytest.mark.asyncio
async def test_webhook_rejects_missing_token(client, store):
    store.add_document(1, owner_id=10)

    response = await client.post("/api/v1/collab/snapshot/1", json=_payload())

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_webhook_disabled_without_configured_token(client, store, monkeypatch):
    store.add_document(1, owner_id=10)
    monkeypatch.setattr(settings, "SNAPSHOT_WEBHOOK_TOKEN", "")

    response = await client.post(
        "/api/v1/collab/snapshot/1", json=_payload(), headers=_webhook_headers("")
    )

    assert response.status_code == 401


@pytest.mark.asyncio
async def test_webhook_for_unknown_document(client):
    response = await client.post(
        "/api/v1/collab/snapshot/404", json=_payload(), headers=_webhook_headers()
    )

    assert response.status_code == 404
    assert response.json()["stage"] == "lookup"


@pytest.mark.asyncio
async def test_webhook_applies_retention(client, store):
    store.add_document(1, owner_id=10, retention_limit=2)

    for i in range(5):
        await client.post(
            "/api/v1/collab/snapshot/1", json=_payload(f"sha-{i}"), headers=_webhook_headers()
        )

    assert [v.version_number for v in store.versions_for(1)] == [4, 5]


@pytest.mark.asyncio
async def test_bootstrap_null_until_published(client, store):
    store.add_document(1, owner_id=10)

    before = await client.get("/api/v1/collab/bootstrap/1", headers=OWNER)
    await client.post("/api/v1/collab/snapshot/1", json=_payload("v1"), headers=_webhook_headers())
    after = await client.get("/api/v1/collab/bootstrap/1", headers=OWNER)

    assert before.status_code == 200
    assert before.json() == {"snapshot_url": None, "sha256": None, "version_id": None}
    assert after.json()["snapshot_url"] == "s3://snapshots/v1"
    assert after.json()["sha256"] == "v1"
    assert after.json()["version_id"] is not None


@pytest.mark.asyncio
async def test_bootstrap_requires_access(client, store):
    store.add_document(1, owner_id=10)

    response = await client.get("/api/v1/collab/bootstrap/1", headers={"X-User-Id": "99"})

    assert response.status_code == 403


@pytest.mark.asyncio
async def test_editor_save_is_attributed_to_caller(client, store):
    store.add_document(1, owner_id=10)

    response = await client.post("/api/v1/collab/snapshot/1/save", json=_payload(), headers=OWNER)

    assert response.status_code == 200
    row = store.versions[response.json()["version_id"]]
    assert row.source == "auto"
    assert row.created_by == 10


@pytest.mark.asyncio
async def test_save_and_webhook_share_dedup(client, store):
    store.add_document(1, owner_id=10)

    saved = await client.post("/api/v1/collab/snapshot/1/save", json=_payload(), headers=OWNER)
    delivered = await client.post(
        "/api/v1/collab/snapshot/1", json=_payload(), headers=_webhook_headers()
    )

    assert delivered.json()["version_id"] == saved.json()["version_id"]
    assert delivered.json()["created"] is False


@pytest.mark.asyncio
async def test_payload_requires_sha256(client, store):
    store.add_document(1, owner_id=10)

    response = await client.post(
        "/api/v1/collab/snapshot/1",
        json={"snapshot_url": "s3://x", "size_bytes": 1},
        headers=_webhook_headers(),
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_payload_requires_size_bytes(client, store):
    store.add_document(1, owner_id=10)

    response = await client.post(
        "/api/v1/collab/snapshot/1",
        json={"snapshot_url": "s3://x", "sha256": "abc"},
        headers=_webhook_headers(),
    )

    assert response.status_code == 422
    assert store.versions_for(1) == []
