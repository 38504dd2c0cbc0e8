import asyncio
from unittest.mock import AsyncMock

import pytest
from fastapi.testclient import TestClient

from sitejo.main import create_app
from sitejo.services.database import DatabaseConnectionTester


@pytest.mark.asyncio
async def test_database_connection_tester(engine):
    tester = DatabaseConnectionTester(engine)
    assert await tester.test_connection() is True


@pytest.mark.asyncio
async def test_database_connection_tester_times_out(engine, monkeypatch):
    async def hang(self):
        await asyncio.sleep(1)

    monkeypatch.setattr(DatabaseConnectionTester, "_probe", hang)
    tester = DatabaseConnectionTester(engine, timeout=0.01)
    with pytest.raises(asyncio.TimeoutError):
        await tester.test_connection()


def test_ping_routes():
    app = create_app()
    client = TestClient(app)
    assert client.get("/ping").json() == {"status": "ok"}

    app.state.db_tester = None
    assert client.get("/ping/db").status_code == 503

    app.state.db_tester = AsyncMock()
    assert client.get("/ping/db").json() == {"status": "ok", "database": "ok"}

    app.state.db_tester.test_connection.side_effect = ConnectionError("refused")
    response = client.get("/ping/db")
    assert response.status_code == 503
    assert response.json() == {"success": False, "message": "Database unavailable"}
