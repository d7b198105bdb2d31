"""Health endpoint tests."""

import pytest


@pytest.mark.asyncio
async def test_health_without_redis_is_degraded(client):
    """No Redis → rate limiting off, so degraded but still 200."""
    resp = await client.get("/api/v1/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["server"] == "ok"
    assert data["database"] == "ok"
    assert data["redis"] == "unavailable"
    assert data["status"] == "degraded"
    assert "version" in data


@pytest.mark.asyncio
async def test_health_all_ok(client, fake_redis):
    fake_redis()
    data = (await client.get("/api/v1/health")).json()
    assert data["redis"] == "ok"
    assert data["status"] == "healthy"


@pytest.mark.asyncio
async def test_health_redis_error(client, fake_redis):
    fake_redis(fail=True)
    data = (await client.get("/api/v1/health")).json()
    assert data["redis"].startswith("error:")
    assert data["status"] == "degraded"
