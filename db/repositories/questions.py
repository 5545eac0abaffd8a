"""Question repository — dedup by question_id and answer lifecycle updates."""
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy import func, select
from sqlalchemy.ext.asyncio import AsyncSession

from db.models import Question
from db.repositories.base import upsert_insert
from schemas.question import ANSWERED, REJECTED, WAITING_FOR_ANSWER

logger = logging.getLogger(__name__)


async def get_by_question_id(session: AsyncSession, question_id: str) -> Optional[Question]:
    """Return the Question with this marketplace id, or None."""
    result = await session.execute(
        select(Question).where(Question.question_id == question_id)
    )
    return result.scalar_one_or_none()


async def has_prior_question(
    session: AsyncSession, customer_id: str, product_main_id: str
) -> bool:
    """True if this customer already asked about this product (follow-up check)."""
    result = await session.execute(
        select(Question.id)
        .where(Question.customer_id == customer_id)
        .where(Question.product_main_id == product_main_id)
        .limit(1)
    )
    return result.scalar_one_or_none() is not None


async def create(session: AsyncSession, data: dict) -> tuple[Question, bool]:
    """Insert a question; idempotent on question_id.

    data dict keys: question_id, customer_id, product_main_id, product_name,
    product_web_url, question_text, question_date, is_public, status,
    is_follow_up, needs_approval, answer_id, answer_text, answer_type, answer_date

    Returns (question, created). created is False when the id already existed,
    in which case the stored row is returned untouched.
    """
    data = {"processed_date": datetime.now(timezone.utc), **data}
    stmt = (
        upsert_insert(session, Question)
        .values(**data)
        .on_conflict_do_nothing(index_elements=["question_id"])
        .returning(Question)
    )
    result = await session.execute(stmt)
    await session.flush()
    row = result.scalar_one_or_none()
    if row is not None:
        return row, True
    # Already stored
    existing = await get_by_question_id(session, data["question_id"])
    return existing, False


async def apply_remote_answer(
    session: AsyncSession,
    question: Question,
    *,
    answer_id: Optional[str],
    answer_text: Optional[str],
    answer_date: Optional[datetime],
    status: str,
    answer_type: str,
    question_date: Optional[datetime] = None,
) -> Question:
    """Copy an answer that already exists on the marketplace into the record."""
    question.answer_id = answer_id
    question.answer_text = answer_text
    question.answer_date = answer_date
    question.status = status
    question.answer_type = answer_type
    if question_date is not None:
        question.question_date = question_date
    await session.flush()
    return question


async def store_draft(
    session: AsyncSession,
    question: Question,
    conversation_id: str,
    answer_text: str,
    is_unknown: bool,
) -> Question:
    """Persist a Chatbase draft; unknown drafts are routed to approval."""
    question.chatbase_conversation_id = conversation_id
    question.answer_text = answer_text
    question.is_chatbase_unknown_answer = is_unknown
    if is_unknown:
        question.needs_approval = True
    await session.flush()
    return question


async def mark_auto_answered(
    session: AsyncSession, question: Question, answered_at: Optional[datetime] = None
) -> Question:
    """The draft was posted to the marketplace without human review."""
    question.answer_type = "AUTOMATIC"
    question.status = ANSWERED
    question.success = True
    question.answer_date = answered_at or datetime.now(timezone.utc)
    await session.flush()
    return question


async def mark_post_failed(session: AsyncSession, question: Question) -> Question:
    """The marketplace rejected the automatic post; hand over to a human."""
    question.answer_type = "PROVIDER"
    question.success = False
    question.needs_approval = True
    await session.flush()
    return question


async def update_approval(
    session: AsyncSession,
    question: Question,
    approved: bool,
    edited_answer: Optional[str] = None,
    answered_at: Optional[datetime] = None,
) -> Question:
    """Record an operator's approve/reject decision."""
    question.approved = approved
    question.needs_approval = False
    question.answer_text_edited = edited_answer or None
    question.success = approved
    question.answer_type = "MANUAL"
    question.status = ANSWERED if approved else REJECTED
    if approved:
        question.answer_date = answered_at or datetime.now(timezone.utc)
    await session.flush()
    return question


async def list_waiting(session: AsyncSession) -> list[Question]:
    """All questions still waiting for an answer on the marketplace."""
    result = await session.execute(
        select(Question)
        .where(Question.status == WAITING_FOR_ANSWER)
        .order_by(Question.question_date, Question.id)
    )
    return list(result.scalars().all())


async def list_auto_answerable(session: AsyncSession) -> list[Question]:
    """Waiting questions the auto-answer policy may act on.

    Follow-ups and questions already held for approval are excluded.
    """
    result = await session.execute(
        select(Question)
        .where(Question.status == WAITING_FOR_ANSWER)
        .where(Question.is_follow_up == False)  # noqa: E712
        .where(Question.needs_approval == False)  # noqa: E712
        .order_by(Question.question_date, Question.id)
    )
    return list(result.scalars().all())


async def list_pending(session: AsyncSession) -> list[Question]:
    """Open questions for the approval screen, newest first."""
    result = await session.execute(
        select(Question)
        .where(Question.status == WAITING_FOR_ANSWER)
        .order_by(Question.question_date.desc(), Question.id.desc())
    )
    return list(result.scalars().all())


async def get_stats(session: AsyncSession) -> dict:
    """Counts by workflow state for the dashboard."""
    total = await session.scalar(select(func.count(Question.id)))
    waiting = await session.scalar(
        select(func.count(Question.id)).where(Question.status == WAITING_FOR_ANSWER)
    )
    needs_approval = await session.scalar(
        select(func.count(Question.id))
        .where(Question.status == WAITING_FOR_ANSWER)
        .where(Question.needs_approval == True)  # noqa: E712
    )
    by_type_result = await session.execute(
        select(Question.answer_type, func.count(Question.id)).group_by(Question.answer_type)
    )
    by_type = {answer_type or "": count for answer_type, count in by_type_result.all()}
    return {
        "total": total or 0,
        "waiting": waiting or 0,
        "needs_approval": needs_approval or 0,
        "automatic": by_type.get("AUTOMATIC", 0),
        "manual": by_type.get("MANUAL", 0),
        "provider": by_type.get("PROVIDER", 0),
    }
