from __future__ import annotations

import asyncio
from dataclasses import dataclass

from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncEngine


@dataclass(slots=True)
class DatabaseConnectionTester:
    """Explicit round-trip check against the configured database."""

    engine: AsyncEngine
    timeout: float = 5.0

    async def _probe(self) -> None:
        async with self.engine.connect() as connection:
            await connection.execute(text("SELECT 1"))

    async def test_connection(self) -> bool:
        await asyncio.wait_for(self._probe(), timeout=self.timeout)
        return True
