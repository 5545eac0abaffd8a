"""Settings repository — the single auto-answer schedule row."""
import logging
from typing import Optional

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import SettingsConfig
from schemas.settings import ScheduleSettings

logger = logging.getLogger(__name__)


async def get_settings(session: AsyncSession) -> Optional[SettingsConfig]:
    """Return the stored schedule row, or None before the first save."""
    result = await session.execute(
        select(SettingsConfig).order_by(SettingsConfig.id).limit(1)
    )
    return result.scalar_one_or_none()


async def save_settings(session: AsyncSession, settings: ScheduleSettings) -> SettingsConfig:
    """Create the row on first save, overwrite it afterwards."""
    row = await get_settings(session)
    if row is None:
        row = SettingsConfig()
        session.add(row)
        logger.info("Creating settings_config row")
    row.automatic_answer = settings.automatic_answer
    row.weekdays = ",".join(settings.weekdays)
    row.start_time = settings.start_time
    row.end_time = settings.end_time
    row.time_zone = settings.time_zone
    await session.flush()
    return row


def to_schedule_settings(row: Optional[SettingsConfig], default_time_zone: str) -> ScheduleSettings:
    """Convert a stored row to the validated schema; no row means disabled."""
    if row is None:
        return ScheduleSettings(automatic_answer=False, time_zone=default_time_zone)
    return ScheduleSettings.model_construct(
        automatic_answer=bool(row.automatic_answer),
        weekdays=row.weekday_list,
        start_time=row.start_time,
        end_time=row.end_time,
        time_zone=row.time_zone or default_time_zone,
    )
