"""Integration tests for core repository methods (in-memory SQLite)."""
from datetime import datetime, timezone

import pytest

from db.connection import session_scope
from db.repositories import jobs as jobs_repo
from db.repositories import questions as questions_repo
from db.repositories import rate_limits as rate_limits_repo
from db.repositories import settings as settings_repo
from schemas.settings import ScheduleSettings


def _question(question_id, customer="C1", product="P1", **overrides):
    data = {
        "question_id": question_id,
        "customer_id": customer,
        "product_main_id": product,
        "product_name": "Ceramic Mug",
        "question_text": "Kargo ne zaman?",
        "question_date": datetime(2026, 10, 19, 9, 0, tzinfo=timezone.utc),
        "status": "WAITING_FOR_ANSWER",
    }
    data.update(overrides)
    return data


# ---------------------------------------------------------------------------
# Questions
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_question_create_and_dedup(session_factory):
    """Inserting the same question_id twice returns the stored row, not a new one."""
    async with session_scope(session_factory) as session:
        first, created_first = await questions_repo.create(session, _question("Q1"))
        second, created_second = await questions_repo.create(
            session, _question("Q1", question_text="Changed text")
        )
    assert created_first is True
    assert created_second is False
    assert first.id == second.id
    assert second.question_text == "Kargo ne zaman?", "Existing row must not be overwritten"


@pytest.mark.asyncio
async def test_has_prior_question(session_factory):
    async with session_scope(session_factory) as session:
        assert not await questions_repo.has_prior_question(session, "C1", "P1")
        await questions_repo.create(session, _question("Q1"))
        assert await questions_repo.has_prior_question(session, "C1", "P1")
        assert not await questions_repo.has_prior_question(session, "C1", "P2")
        assert not await questions_repo.has_prior_question(session, "C2", "P1")


@pytest.mark.asyncio
async def test_auto_answerable_excludes_follow_ups_and_held(session_factory):
    async with session_scope(session_factory) as session:
        await questions_repo.create(session, _question("Q1"))
        await questions_repo.create(
            session, _question("Q2", is_follow_up=True, needs_approval=True)
        )
        await questions_repo.create(session, _question("Q3", customer="C3", needs_approval=True))
        await questions_repo.create(session, _question("Q4", customer="C4", status="ANSWERED"))

    async with session_scope(session_factory) as session:
        answerable = await questions_repo.list_auto_answerable(session)
        pending = await questions_repo.list_pending(session)

    assert [q.question_id for q in answerable] == ["Q1"]
    assert {q.question_id for q in pending} == {"Q1", "Q2", "Q3"}


@pytest.mark.asyncio
async def test_question_stats(session_factory):
    async with session_scope(session_factory) as session:
        q1, _ = await questions_repo.create(session, _question("Q1"))
        await questions_repo.create(session, _question("Q2", customer="C2", needs_approval=True))
        await questions_repo.mark_auto_answered(session, q1)

    async with session_scope(session_factory) as session:
        stats = await questions_repo.get_stats(session)

    assert stats["total"] == 2
    assert stats["waiting"] == 1
    assert stats["needs_approval"] == 1
    assert stats["automatic"] == 1


# ---------------------------------------------------------------------------
# Settings and jobs
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_settings_single_row(session_factory):
    """The first save creates the row; later saves overwrite it."""
    async with session_scope(session_factory) as session:
        assert await settings_repo.get_settings(session) is None
        first = await settings_repo.save_settings(
            session,
            ScheduleSettings(
                automatic_answer=True, weekdays=["Monday"], start_time="09:00", end_time="17:00"
            ),
        )
    async with session_scope(session_factory) as session:
        second = await settings_repo.save_settings(
            session, ScheduleSettings(automatic_answer=False)
        )
    assert first.id == second.id
    assert second.automatic_answer is False
    assert second.weekday_list == []


@pytest.mark.asyncio
async def test_job_lifecycle(session_factory):
    async with session_scope(session_factory) as session:
        job = await jobs_repo.record_job_start(session)
        assert job.state == "running"
        finished = await jobs_repo.finish_job(session, job.id, "failed", "Authentication error")
    assert finished.state == "failed"
    assert finished.result == "Authentication error"

    async with session_scope(session_factory) as session:
        assert await jobs_repo.finish_job(session, 999, "completed", "") is None


# ---------------------------------------------------------------------------
# Rate limits
# ---------------------------------------------------------------------------


@pytest.mark.asyncio
async def test_rate_limit_upsert_and_dedup(session_factory):
    """Upserting the same endpoint twice updates the one row."""
    async with session_scope(session_factory) as session:
        first = await rate_limits_repo.upsert_config(session, "marketplace", 60)
    async with session_scope(session_factory) as session:
        second = await rate_limits_repo.upsert_config(session, "marketplace", 30, enabled=False)
    async with session_scope(session_factory) as session:
        stored = await rate_limits_repo.get_config(session, "marketplace")

    assert first.id == second.id
    assert stored.requests_per_minute == 30
    assert stored.enabled is False


@pytest.mark.asyncio
async def test_api_stats_window(session_factory):
    async with session_scope(session_factory) as session:
        await rate_limits_repo.record_api_call(session, "chatbase", 100, True)
        await rate_limits_repo.record_api_call(session, "chatbase", 300, False)
        await rate_limits_repo.record_api_call(session, "marketplace", 50, True)

    async with session_scope(session_factory) as session:
        stats = await rate_limits_repo.get_api_stats(session, "chatbase", hours=1)

    assert stats["total_calls"] == 2
    assert stats["successful_calls"] == 1
    assert stats["failed_calls"] == 1
    assert stats["average_response_time_ms"] == 200.0
