import pytest
from httpx import ASGITransport, AsyncClient

from signal_relay.main import app


@pytest.mark.asyncio
async def test_health_endpoint() -> None:
    transport = ASGITransport(app=app)

    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/api/health")
        head = await client.head("/api/health")
        root = await client.head("/")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}
    assert head.status_code == 200
    assert root.status_code == 200


@pytest.mark.asyncio
async def test_rooms_listing_starts_empty() -> None:
    transport = ASGITransport(app=app)

    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        response = await client.get("/api/rtc/rooms")

    assert response.status_code == 200
    body = response.json()
    assert body["rooms"] == []
    assert body["connections"] == 0


@pytest.mark.asyncio
async def test_robots() -> None:
    transport = ASGITransport(app=app)

    async with AsyncClient(transport=transport, base_url="http://testserver") as client:
        robots = await client.get("/robots.txt")

    assert robots.status_code == 200
    assert "User-agent" in robots.text
