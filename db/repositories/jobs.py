"""Job log repository — one row per scheduled auto-answer run."""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import JobLog

logger = logging.getLogger(__name__)


async def record_job_start(session: AsyncSession, running_at: Optional[datetime] = None) -> JobLog:
    job = JobLog(state="running", running_at=running_at or datetime.now(timezone.utc))
    session.add(job)
    await session.flush()
    return job


async def finish_job(
    session: AsyncSession, job_id: int, state: str, result: str
) -> Optional[JobLog]:
    """Move a running job to completed or failed."""
    job = await session.get(JobLog, job_id)
    if job is None:
        logger.warning("finish_job: job %s not found", job_id)
        return None
    job.state = state
    job.result = result
    await session.flush()
    return job


async def get_job_logs(session: AsyncSession, limit: int = 50) -> list[JobLog]:
    """Most recent runs first."""
    result = await session.execute(
        select(JobLog).order_by(JobLog.running_at.desc(), JobLog.id.desc()).limit(limit)
    )
    return list(result.scalars().all())
