"""Tests for health and metrics endpoints."""

import pytest

from collabdocs.middleware.prometheus import metrics_registry

MANUAL_CREATED = {"source": "manual", "outcome": "created"}


def _ingested(labels) -> float:
    return metrics_registry.get_sample_value("document_versions_ingested_total", labels) or 0.0


@pytest.mark.asyncio
async def test_health(client):
    response = await client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


@pytest.mark.asyncio
async def test_request_id_is_echoed(client):
    response = await client.get("/health", headers={"X-Request-ID": "req-123"})

    assert response.headers["X-Request-ID"] == "req-123"
    assert response.headers["X-Trace-ID"] == "req-123"


@pytest.mark.asyncio
async def test_metrics_expose_versioning_counters(client, store):
    store.add_document(1, owner_id=10)
    before = _ingested(MANUAL_CREATED)
    await client.post(
        "/api/v1/docs/1/versions",
        json={"snapshot_url": "s3://m", "sha256": "m", "size_bytes": 1},
        headers={"X-User-Id": "10"},
    )

    response = await client.get("/metrics")

    assert response.status_code == 200
    body = response.text
    assert _ingested(MANUAL_CREATED) == before + 1.0
    assert "document_versions_ingested_total" in body
    assert "document_version_write_conflicts_total" in body
    assert "http_requests_total" in body
