"""Tests for the AutoAnswerService facade and its wiring."""
from unittest.mock import AsyncMock, MagicMock

import pytest

from app_config import AppConfig
from schemas.question import RemoteQuestion
from services.autoanswer_service import ApiStatRecorder, AutoAnswerService, build_service
from services.question_sync import QuestionReconciler
from services.scheduler import AutoAnswerScheduler
from tools.http_tools import AuthenticationError


def _config():
    return AppConfig(
        seller_id="42",
        marketplace_api_key="key",
        marketplace_api_secret="secret",
        chatbase_agent_id="agent-1",
        chatbase_api_key="cb-key",
        queue_interval_seconds=0,
    )


def _remote(question_id, product):
    return RemoteQuestion.model_validate({
        "id": question_id, "customerId": 7, "productMainId": product,
        "productName": "Mug", "text": "Kargo ne zaman?",
    })


@pytest.fixture
def service(session_factory):
    marketplace = MagicMock()
    marketplace.list_waiting_questions = AsyncMock(return_value=[_remote(1, "P1")])
    generator = MagicMock()
    generator.generate_answer = AsyncMock(return_value=None)
    reconciler = QuestionReconciler(session_factory, marketplace, generator)
    scheduler = AutoAnswerScheduler(session_factory, reconciler.run_cycle)
    return AutoAnswerService(session_factory, reconciler, scheduler)


class TestQuestions:
    @pytest.mark.asyncio
    async def test_poll_reconciles_and_lists_open_questions(self, service):
        pending = await service.poll_questions()

        assert [q.question_id for q in pending] == ["1"]

    @pytest.mark.asyncio
    async def test_poll_continues_past_a_failing_question(self, service):
        service.reconciler.marketplace.list_waiting_questions.return_value = [
            _remote(1, "P1"), _remote(2, "P2"), _remote(3, "P3"),
        ]
        reconcile_one = service.reconciler.reconcile_one

        async def flaky(remote):
            if remote.id == "2":
                raise RuntimeError("constraint violated")
            return await reconcile_one(remote)

        service.reconciler.reconcile_one = flaky

        pending = await service.poll_questions()

        assert sorted(q.question_id for q in pending) == ["1", "3"]

    @pytest.mark.asyncio
    async def test_poll_stops_on_authentication_error(self, service):
        service.reconciler.reconcile_one = AsyncMock(
            side_effect=AuthenticationError("Authentication error", 401)
        )

        with pytest.raises(AuthenticationError):
            await service.poll_questions()
        stats = await service.get_question_stats()
        assert stats["waiting"] == 1

    @pytest.mark.asyncio
    async def test_run_cycle_now_records_job(self, service):
        job = await service.run_cycle_now()

        assert job.state == "completed"
        logs = await service.get_job_logs()
        assert [log.id for log in logs] == [job.id]


class TestRateLimits:
    @pytest.mark.asyncio
    async def test_default_config_when_absent(self, service):
        config = await service.get_rate_limit_config("marketplace")
        assert config == {"endpoint": "marketplace", "enabled": True, "requests_per_minute": 60}

    @pytest.mark.asyncio
    async def test_update_then_read(self, service):
        await service.update_rate_limit_config("chatbase", 20, enabled=False)

        config = await service.get_rate_limit_config("chatbase")
        assert config["requests_per_minute"] == 20
        assert config["enabled"] is False

    @pytest.mark.asyncio
    async def test_rejects_non_positive_budget(self, service):
        with pytest.raises(ValueError):
            await service.update_rate_limit_config("chatbase", 0)

    @pytest.mark.asyncio
    async def test_recorder_feeds_api_stats(self, service, session_factory):
        recorder = ApiStatRecorder(session_factory)
        await recorder("marketplace", 120, True)
        await recorder("marketplace", 80, False)

        stats = await service.get_api_stats("marketplace")
        assert stats["total_calls"] == 2
        assert stats["failed_calls"] == 1


class TestHealth:
    @pytest.mark.asyncio
    async def test_database_check(self, service):
        assert await service.check_database() is True


class TestBuildService:
    def test_clients_share_one_queue(self):
        service = build_service(_config(), session_factory=MagicMock())

        marketplace = service.reconciler.marketplace
        generator = service.reconciler.generator
        assert marketplace.queue is generator.queue
        assert isinstance(marketplace.observer, ApiStatRecorder)
        assert service.reconciler.unknown_sentinel == "xyz"
        assert service.scheduler.run_cycle == service.reconciler.run_cycle
