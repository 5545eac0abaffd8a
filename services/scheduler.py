"""Time-zone-aware recurring auto-answer scheduler.

The recurrence fires every even minute inside the operating window on the
selected weekdays, in the configured IANA time zone. Firing times are computed
with dateutil.rrule over local wall-clock time; the equivalent cron expression
(`*/2 <hours> * * <days>`, Sunday = 0) is kept for display and logs.

Each firing records a JobLog row (running -> completed | failed) and runs one
reconciliation cycle. Only one cycle runs at a time; a firing that arrives
while a cycle is in flight is skipped. Replacing the schedule cancels the old
recurrence and installs the new one without yielding to the event loop in
between. Stopping only prevents future firings.
"""
import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Awaitable, Callable, List, Optional, Protocol, Set, Tuple
from zoneinfo import ZoneInfoNotFoundError

from dateutil.rrule import DAILY, FR, MO, SA, SU, TH, TU, WE, rrule
from pydantic import ValidationError
from sqlalchemy.ext.asyncio import async_sessionmaker

from app_config import DEFAULT_TIME_ZONE
from db.connection import session_scope
from db.models import JobLog
from db.repositories import jobs, settings as settings_repo
from schemas.settings import HHMM, WEEKDAY_NAMES, ScheduleSettings
from services.errors import InvalidScheduleError
from tools.time_utils import format_log_date, to_local, to_utc, utc_now, zone

logger = logging.getLogger(__name__)

FIRING_MINUTES = tuple(range(0, 60, 2))
MAX_LOOKAHEAD_DAYS = 8
DST_SHIFT_HOURS = 1
MIN_RECHECK_SECONDS = 1.0

_RRULE_DAYS = {
    "Sunday": SU,
    "Monday": MO,
    "Tuesday": TU,
    "Wednesday": WE,
    "Thursday": TH,
    "Friday": FR,
    "Saturday": SA,
}


class Schedule(Protocol):
    def next_fire(self, after: datetime) -> Optional[datetime]:
        ...


def _minutes(hhmm: str) -> int:
    match = HHMM.match(hhmm or "")
    if not match:
        raise InvalidScheduleError(f"Time must be HH:MM (24h), got {hhmm!r}")
    return int(match.group(1)) * 60 + int(match.group(2))


@dataclass(frozen=True)
class CronSchedule:
    """A validated operating window; build with build_schedule()."""

    weekdays: Tuple[str, ...]
    start_time: str
    end_time: str
    time_zone: str

    @property
    def start_minute(self) -> int:
        return _minutes(self.start_time)

    @property
    def end_minute(self) -> int:
        return _minutes(self.end_time)

    @property
    def overnight(self) -> bool:
        return self.end_minute < self.start_minute

    @property
    def hours(self) -> List[int]:
        """Hours the recurrence may fire in, in firing order.

        The end hour is included when the window ends part-way through it.
        """
        start_hour, end_hour = self.start_minute // 60, self.end_minute // 60
        if self.overnight:
            hours = list(range(start_hour, 24)) + list(range(0, end_hour))
        else:
            hours = list(range(start_hour, end_hour))
        if self.end_minute % 60 and end_hour not in hours:
            hours.append(end_hour)
        return hours

    @property
    def cron_days(self) -> List[int]:
        return [WEEKDAY_NAMES.index(day) for day in self.weekdays]

    @property
    def expression(self) -> str:
        hours = ",".join(str(h) for h in self.hours)
        days = ",".join(str(d) for d in self.cron_days)
        return f"*/2 {hours} * * {days}"

    def in_window(self, minute_of_day: int) -> bool:
        """[start, end) membership at minute granularity."""
        if self.overnight:
            return minute_of_day >= self.start_minute or minute_of_day < self.end_minute
        return self.start_minute <= minute_of_day < self.end_minute

    def _instants(self, wall: datetime) -> List[datetime]:
        """UTC instants showing `wall` on the local clock.

        Two during a fall-back hour, none inside a spring-forward gap.
        """
        instants = set()
        for fold in (0, 1):
            instant = to_utc(wall.replace(fold=fold), self.time_zone)
            if to_local(instant, self.time_zone).replace(tzinfo=None) == wall:
                instants.add(instant)
        return sorted(instants)

    def next_fire(self, after: datetime) -> Optional[datetime]:
        """First firing instant strictly after `after`, as aware UTC."""
        after = to_utc(after, "UTC")
        local = to_local(after, self.time_zone).replace(tzinfo=None, fold=0)
        # The repeated hour can put the next firing behind `after` on the wall clock
        start = local.replace(second=0, microsecond=0) - timedelta(hours=DST_SHIFT_HOURS)
        rule = rrule(
            DAILY,
            dtstart=start,
            until=start + timedelta(days=MAX_LOOKAHEAD_DAYS),
            byweekday=[_RRULE_DAYS[day] for day in self.weekdays],
            byhour=self.hours,
            byminute=FIRING_MINUTES,
            bysecond=0,
        )
        best: Optional[datetime] = None
        best_wall: Optional[datetime] = None
        for candidate in rule:
            if best_wall is not None and candidate > best_wall + timedelta(hours=2 * DST_SHIFT_HOURS):
                break
            if not self.in_window(candidate.hour * 60 + candidate.minute):
                continue
            for instant in self._instants(candidate):
                if instant > after and (best is None or instant < best):
                    best, best_wall = instant, candidate
        return best


def build_schedule(
    weekdays: List[str], start_time: str, end_time: str, time_zone: str
) -> CronSchedule:
    """Validate an operating window and turn it into a CronSchedule.

    Raises:
        InvalidScheduleError: empty or unknown weekdays, malformed times,
            start == end, unknown zone, or a window with no even minute.
    """
    if not weekdays:
        raise InvalidScheduleError("Please select at least one weekday.")
    unknown = [day for day in weekdays if day not in WEEKDAY_NAMES]
    if unknown:
        raise InvalidScheduleError(f"Unknown weekday(s): {', '.join(unknown)}")
    if not start_time or not end_time:
        raise InvalidScheduleError("Start time and end time are required.")
    start, end = _minutes(start_time), _minutes(end_time)
    if start == end:
        raise InvalidScheduleError("Start time and end time must differ.")
    try:
        zone(time_zone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise InvalidScheduleError(f"Unknown time zone: {time_zone}") from exc

    schedule = CronSchedule(
        weekdays=tuple(day for day in WEEKDAY_NAMES if day in weekdays),
        start_time=start_time,
        end_time=end_time,
        time_zone=time_zone,
    )
    if not any(schedule.in_window(h * 60 + m) for h in schedule.hours for m in FIRING_MINUTES):
        raise InvalidScheduleError(
            f"Window {start_time}-{end_time} contains no even minute to run in."
        )
    return schedule


class AutoAnswerScheduler:
    """Owns the single active recurrence and the JobLog bookkeeping."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        run_cycle: Callable[[], Awaitable[object]],
        *,
        default_time_zone: str = DEFAULT_TIME_ZONE,
        clock: Callable[[], datetime] = utc_now,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self.session_factory = session_factory
        self.run_cycle = run_cycle
        self.default_time_zone = default_time_zone
        self.clock = clock
        self.sleep = sleep
        self.schedule: Optional[Schedule] = None
        self._recurrence: Optional[asyncio.Task] = None
        self._apply_lock = asyncio.Lock()
        self._cycle_running = False
        self._cycle_tasks: Set[asyncio.Task] = set()

    @property
    def active(self) -> bool:
        return self._recurrence is not None and not self._recurrence.done()

    @property
    def cycle_running(self) -> bool:
        return self._cycle_running

    # ------------------------------------------------------------------
    # Settings
    # ------------------------------------------------------------------

    async def get_settings(self) -> ScheduleSettings:
        async with session_scope(self.session_factory) as session:
            row = await settings_repo.get_settings(session)
            return settings_repo.to_schedule_settings(row, self.default_time_zone)

    async def update_settings(
        self,
        automatic_answer: bool,
        weekdays: List[str],
        start_time: Optional[str],
        end_time: Optional[str],
        time_zone: Optional[str] = None,
    ) -> ScheduleSettings:
        """Validate, persist and apply new schedule settings."""
        try:
            settings = ScheduleSettings(
                automatic_answer=automatic_answer,
                weekdays=weekdays,
                start_time=start_time,
                end_time=end_time,
                time_zone=time_zone or self.default_time_zone,
            )
        except ValidationError as exc:
            messages = "; ".join(
                str(error["msg"]).removeprefix("Value error, ") for error in exc.errors()
            )
            raise InvalidScheduleError(messages) from exc
        if settings.automatic_answer:
            build_schedule(
                settings.weekdays, settings.start_time, settings.end_time, settings.time_zone
            )

        async with session_scope(self.session_factory) as session:
            await settings_repo.save_settings(session, settings)
        logger.info(
            "Schedule settings saved: automatic_answer=%s weekdays=%s %s-%s %s",
            settings.automatic_answer, ",".join(settings.weekdays),
            settings.start_time, settings.end_time, settings.time_zone,
        )
        await self.apply_schedule(settings)
        return settings

    # ------------------------------------------------------------------
    # Recurrence
    # ------------------------------------------------------------------

    async def start(self) -> Optional[Schedule]:
        """Load the saved settings and (re)apply them."""
        settings = await self.get_settings()
        return await self.apply_schedule(settings)

    async def apply_schedule(self, settings: ScheduleSettings) -> Optional[CronSchedule]:
        """Replace the active recurrence with one built from `settings`.

        Disabled or incomplete settings leave nothing scheduled.
        """
        async with self._apply_lock:
            schedule = None
            if settings.automatic_answer:
                schedule = build_schedule(
                    settings.weekdays, settings.start_time, settings.end_time,
                    settings.time_zone or self.default_time_zone,
                )
            if schedule is None:
                self._cancel()
                logger.info("Automatic answering disabled; no recurrence scheduled")
                return None
            self.install(schedule)
            logger.info(
                "Auto-answer scheduled with cron '%s' (%s)",
                schedule.expression, schedule.time_zone,
            )
            return schedule

    def install(self, schedule: Schedule) -> None:
        """Cancel any active recurrence and start one for `schedule`."""
        self._cancel()
        self.schedule = schedule
        self._recurrence = asyncio.get_running_loop().create_task(self._recur(schedule))

    async def stop(self) -> None:
        """Prevent future firings; an in-flight cycle runs to completion."""
        async with self._apply_lock:
            self._cancel()
        logger.info("Auto-answer scheduler stopped")

    def _cancel(self) -> None:
        if self._recurrence is not None:
            self._recurrence.cancel()
        self._recurrence = None
        self.schedule = None

    async def _recur(self, schedule: Schedule) -> None:
        while True:
            now = self.clock()
            fire_at = schedule.next_fire(now)
            if fire_at is None:
                logger.warning("Schedule has no upcoming firing; recurrence ends")
                return
            if fire_at <= now:
                logger.warning("Schedule returned past firing %s; rechecking", fire_at.isoformat())
                await self.sleep(MIN_RECHECK_SECONDS)
                continue
            await self.sleep((fire_at - now).total_seconds())
            self._fire()

    def _fire(self) -> None:
        if self._cycle_running:
            logger.warning("Previous auto-answer cycle still running; skipping this firing")
            return
        self._cycle_running = True
        task = asyncio.get_running_loop().create_task(self._run_job())
        self._cycle_tasks.add(task)
        task.add_done_callback(self._cycle_tasks.discard)

    async def wait_idle(self) -> None:
        """Wait for any in-flight cycle started by a firing."""
        if self._cycle_tasks:
            await asyncio.gather(*list(self._cycle_tasks))

    # ------------------------------------------------------------------
    # Jobs
    # ------------------------------------------------------------------

    async def run_job(self) -> Optional[JobLog]:
        """Run one logged cycle now, unless one is already in flight."""
        if self._cycle_running:
            logger.warning("Auto-answer cycle already running; not starting another")
            return None
        self._cycle_running = True
        return await self._run_job()

    async def _run_job(self) -> Optional[JobLog]:
        time_zone = getattr(self.schedule, "time_zone", None) or self.default_time_zone
        try:
            async with session_scope(self.session_factory) as session:
                job = await jobs.record_job_start(session)
                job_id = job.id
            logger.info("Auto-answer job %s running at %s", job_id, format_log_date(time_zone))

            try:
                report = await self.run_cycle()
            except Exception as exc:
                logger.exception("Auto-answer job %s failed", job_id)
                state, result = "failed", str(exc) or exc.__class__.__name__
            else:
                state = "completed"
                result = f"Task completed successfully at {format_log_date(time_zone)}"
                summary = getattr(report, "summary", None)
                if callable(summary):
                    result = f"{result}: {summary()}"

            async with session_scope(self.session_factory) as session:
                return await jobs.finish_job(session, job_id, state, result)
        except Exception:
            # Job bookkeeping itself failed; the recurrence keeps going
            logger.exception("Could not record auto-answer job")
            return None
        finally:
            self._cycle_running = False
