"""AutoAnswerService — the operations exposed to the CLI and admin surfaces.

Wires one shared RateLimitedQueue, the marketplace and Chatbase clients, the
QuestionReconciler and the AutoAnswerScheduler. Nothing here is a module-level
singleton; build one with build_service(config).
"""
import logging
from datetime import date
from typing import List, Optional

from sqlalchemy import text
from sqlalchemy.ext.asyncio import async_sessionmaker

from app_config import AppConfig
from db.connection import get_session_factory, session_scope
from db.models import JobLog, Question, RateLimitConfig
from db.repositories import jobs, questions, rate_limits
from schemas.settings import ScheduleSettings
from services.question_sync import CycleReport, QuestionReconciler
from services.scheduler import AutoAnswerScheduler
from tools.chatbase_tools import ChatbaseClient
from tools.marketplace_tools import MarketplaceClient
from tools.rate_limiter import RateLimitedQueue

logger = logging.getLogger(__name__)


class ApiStatRecorder:
    """Attempt observer that stores one api_stats row per outbound call."""

    def __init__(self, session_factory: async_sessionmaker) -> None:
        self.session_factory = session_factory

    async def __call__(self, endpoint: str, elapsed_ms: int, success: bool) -> None:
        async with session_scope(self.session_factory) as session:
            await rate_limits.record_api_call(session, endpoint, elapsed_ms, success)


class AutoAnswerService:
    def __init__(
        self,
        session_factory: async_sessionmaker,
        reconciler: QuestionReconciler,
        scheduler: AutoAnswerScheduler,
    ) -> None:
        self.session_factory = session_factory
        self.reconciler = reconciler
        self.scheduler = scheduler

    # ------------------------------------------------------------------
    # Questions
    # ------------------------------------------------------------------

    async def poll_questions(self) -> List[Question]:
        """Reconcile the marketplace's waiting set and return open questions.

        A question that fails to reconcile is logged and counted; the others
        are still stored. AuthenticationError propagates.
        """
        remote_questions = await self.reconciler.fetch_remote_questions()
        report = await self.reconciler.reconcile_all(remote_questions)
        if report.errors:
            logger.warning("Poll finished with %d failed question(s)", report.errors)
        async with session_scope(self.session_factory) as session:
            return await questions.list_pending(session)

    async def get_question_by_id(self, question_id: str) -> Question:
        return await self.reconciler.get_question_by_id(question_id)

    async def handle_approval(
        self, question_id: str, approved: bool, edited_answer: Optional[str] = None
    ) -> Question:
        return await self.reconciler.handle_approval(question_id, approved, edited_answer)

    async def get_question_stats(self) -> dict:
        async with session_scope(self.session_factory) as session:
            return await questions.get_stats(session)

    async def run_cycle_now(self) -> Optional[JobLog]:
        """Run one logged cycle immediately, outside the recurrence."""
        return await self.scheduler.run_job()

    async def sync_history(self, start_day: date, end_day: date) -> CycleReport:
        return await self.reconciler.sync_history(start_day, end_day)

    # ------------------------------------------------------------------
    # Schedule
    # ------------------------------------------------------------------

    async def get_settings(self) -> ScheduleSettings:
        return await self.scheduler.get_settings()

    async def update_settings(
        self,
        automatic_answer: bool,
        weekdays: List[str],
        start_time: Optional[str],
        end_time: Optional[str],
        time_zone: Optional[str] = None,
    ) -> ScheduleSettings:
        return await self.scheduler.update_settings(
            automatic_answer, weekdays, start_time, end_time, time_zone
        )

    async def get_job_logs(self, limit: int = 50) -> List[JobLog]:
        async with session_scope(self.session_factory) as session:
            return await jobs.get_job_logs(session, limit)

    # ------------------------------------------------------------------
    # Rate limits and health
    # ------------------------------------------------------------------

    async def get_rate_limit_config(self, endpoint: str) -> dict:
        """Stored budget for `endpoint`, or the default when none is saved."""
        async with session_scope(self.session_factory) as session:
            config = await rate_limits.get_config(session, endpoint)
        if config is None:
            return {
                "endpoint": endpoint,
                "enabled": True,
                "requests_per_minute": rate_limits.DEFAULT_REQUESTS_PER_MINUTE,
            }
        return {
            "endpoint": config.endpoint,
            "enabled": config.enabled,
            "requests_per_minute": config.requests_per_minute,
        }

    async def update_rate_limit_config(
        self, endpoint: str, requests_per_minute: int, enabled: bool = True
    ) -> RateLimitConfig:
        if requests_per_minute < 1:
            raise ValueError("requests_per_minute must be at least 1")
        async with session_scope(self.session_factory) as session:
            return await rate_limits.upsert_config(
                session, endpoint, requests_per_minute, enabled
            )

    async def get_api_stats(self, endpoint: str, hours: int = 24) -> dict:
        async with session_scope(self.session_factory) as session:
            return await rate_limits.get_api_stats(session, endpoint, hours)

    async def check_database(self) -> bool:
        """True if the database answers a trivial query."""
        try:
            async with session_scope(self.session_factory) as session:
                await session.execute(text("SELECT 1"))
        except Exception as e:
            logger.error("Database health check failed: %s", e)
            return False
        return True

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self) -> None:
        await self.scheduler.start()

    async def stop(self) -> None:
        await self.scheduler.stop()
        await self.scheduler.wait_idle()


def build_service(
    config: AppConfig, session_factory: Optional[async_sessionmaker] = None
) -> AutoAnswerService:
    """Construct the service graph for one process."""
    session_factory = session_factory or get_session_factory()
    queue = RateLimitedQueue(interval=config.queue_interval_seconds)
    observer = ApiStatRecorder(session_factory)
    client_options = {
        "retries": config.request_retries,
        "retry_delay": config.request_retry_delay_seconds,
        "timeout": config.request_timeout_seconds,
        "observer": observer,
    }
    marketplace = MarketplaceClient(
        queue,
        config.marketplace_base_url,
        config.seller_id,
        config.marketplace_token,
        **client_options,
    )
    generator = ChatbaseClient(
        queue,
        config.chatbase_api_key,
        config.chatbase_agent_id,
        config.chatbase_url,
        **client_options,
    )
    reconciler = QuestionReconciler(
        session_factory,
        marketplace,
        generator,
        unknown_sentinel=config.unknown_answer_sentinel,
        time_zone=config.default_time_zone,
    )
    scheduler = AutoAnswerScheduler(
        session_factory,
        reconciler.run_cycle,
        default_time_zone=config.default_time_zone,
    )
    return AutoAnswerService(session_factory, reconciler, scheduler)
