from __future__ import annotations

import logging
import time
from dataclasses import dataclass

logger = logging.getLogger(__name__)


@dataclass
class HealthStatus:
    component: str
    healthy: bool
    latency_ms: float | None = None
    message: str | None = None


async def check_database() -> HealthStatus:
    from sqlalchemy import text

    from podium.db.session import engine

    start = time.monotonic()
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        return HealthStatus("database", True, latency_ms=(time.monotonic() - start) * 1000)
    except Exception as e:
        logger.warning("Database health check failed", extra={"error": str(e)})
        return HealthStatus("database", False, message=str(e))


async def check_belt_settings() -> HealthStatus:
    """Belt operations refuse to run for belt types with no settings row."""
    from sqlalchemy import select

    from podium.db.models.belt import BeltSettings
    from podium.db.session import async_session_factory
    from podium.engine.records import BeltType

    start = time.monotonic()
    try:
        async with async_session_factory() as db:
            result = await db.execute(select(BeltSettings.belt_type))
            configured = {row[0] for row in result.all()}
        missing = sorted(t.value for t in BeltType if t.value not in configured)
        return HealthStatus(
            "belt_settings",
            not missing,
            latency_ms=(time.monotonic() - start) * 1000,
            message=f"missing: {', '.join(missing)}" if missing else None,
        )
    except Exception as e:
        return HealthStatus("belt_settings", False, message=str(e))


async def get_all_health() -> list[HealthStatus]:
    results = []
    for check in [check_database, check_belt_settings]:
        try:
            results.append(await check())
        except Exception as e:
            results.append(HealthStatus(check.__name__.replace("check_", ""), False, message=str(e)))
    return results
