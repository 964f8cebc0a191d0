from __future__ import annotations

import pytest

pytestmark = pytest.mark.integration


@pytest.mark.asyncio
async def test_health_endpoint_ok(async_client):
    response = await async_client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_not_found_returns_error_envelope(async_client):
    response = await async_client.get("/api/does-not-exist")
    assert response.status_code == 404
    assert response.json() == {"ok": False, "error": "Not Found", "code": "http_404"}


@pytest.mark.asyncio
async def test_request_id_is_echoed(async_client):
    response = await async_client.get("/health", headers={"X-Request-Id": "trace-123"})
    assert response.headers["X-Request-Id"] == "trace-123"
