"""Health check endpoints."""

import asyncio
from typing import Any

from sqlalchemy import text

from .database import get_engine


async def _database_version() -> str:
    async with get_engine().connect() as conn:
        result = await conn.execute(text("SELECT version()"))
        return str(result.scalar())


async def check_postgresql() -> dict[str, Any]:
    """Check PostgreSQL connectivity."""
    try:
        version = await asyncio.wait_for(_database_version(), timeout=5.0)
        return {"status": "healthy", "version": version[:50] + "..."}
    except Exception as e:
        return {"status": "unhealthy", "error": str(e)}


async def get_health_status() -> dict[str, Any]:
    """Get overall health status."""
    postgres = await check_postgresql()

    return {
        "status": "healthy" if postgres.get("status") == "healthy" else "degraded",
        "services": {
            "postgresql": postgres,
        },
    }
