"""Rate limit repository — per-endpoint budgets and API call statistics."""
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import ApiStat, RateLimitConfig
from db.repositories.base import upsert_insert

logger = logging.getLogger(__name__)

DEFAULT_REQUESTS_PER_MINUTE = 60


async def get_config(session: AsyncSession, endpoint: str) -> Optional[RateLimitConfig]:
    result = await session.execute(
        select(RateLimitConfig).where(RateLimitConfig.endpoint == endpoint)
    )
    return result.scalar_one_or_none()


async def upsert_config(
    session: AsyncSession, endpoint: str, requests_per_minute: int, enabled: bool = True
) -> RateLimitConfig:
    """Insert or update the budget for an endpoint.

    Dedup key: endpoint.
    """
    now = datetime.now(timezone.utc)
    stmt = (
        upsert_insert(session, RateLimitConfig)
        .values(
            endpoint=endpoint,
            requests_per_minute=requests_per_minute,
            enabled=enabled,
            updated_at=now,
        )
        .on_conflict_do_update(
            index_elements=["endpoint"],
            set_={
                "requests_per_minute": requests_per_minute,
                "enabled": enabled,
                "updated_at": now,
            },
        )
        .returning(RateLimitConfig)
        .execution_options(populate_existing=True)
    )
    result = await session.execute(stmt)
    await session.flush()
    return result.scalar_one()


async def record_api_call(
    session: AsyncSession,
    endpoint: str,
    response_time_ms: int,
    success: bool,
    rate_limit_remaining: Optional[int] = None,
    rate_limit_reset: Optional[datetime] = None,
) -> ApiStat:
    stat = ApiStat(
        endpoint=endpoint,
        timestamp=datetime.now(timezone.utc),
        response_time=response_time_ms,
        success=success,
        rate_limit_remaining=rate_limit_remaining,
        rate_limit_reset=rate_limit_reset,
    )
    session.add(stat)
    await session.flush()
    return stat


async def get_api_stats(session: AsyncSession, endpoint: str, hours: int = 24) -> dict:
    """Aggregate calls for an endpoint over the trailing window."""
    since = datetime.now(timezone.utc) - timedelta(hours=hours)
    window = (ApiStat.endpoint == endpoint, ApiStat.timestamp >= since)
    total = await session.scalar(select(func.count(ApiStat.id)).where(*window))
    succeeded = await session.scalar(
        select(func.count(ApiStat.id)).where(*window).where(ApiStat.success == True)  # noqa: E712
    )
    avg_ms = await session.scalar(select(func.avg(ApiStat.response_time)).where(*window))
    total = total or 0
    succeeded = succeeded or 0
    return {
        "endpoint": endpoint,
        "hours": hours,
        "total_calls": total,
        "successful_calls": succeeded,
        "failed_calls": total - succeeded,
        "average_response_time_ms": round(float(avg_ms), 1) if avg_ms is not None else None,
    }
