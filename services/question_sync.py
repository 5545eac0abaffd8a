"""Question reconciliation and the auto-answer policy.

One cycle pulls the marketplace's waiting questions, reconciles each against
the local questions table, refreshes local questions the marketplace no longer
lists as waiting, then drafts and posts answers for every question the policy
allows. Follow-ups and low-confidence drafts are always left for a human.

Each question is handled in its own short database session so a failure on
one question never rolls back the others, and no session is held open across
an outbound HTTP call.
"""
import logging
from dataclasses import dataclass
from datetime import date, datetime, timedelta
from typing import List, Optional, Union

from sqlalchemy.ext.asyncio import async_sessionmaker

from app_config import DEFAULT_TIME_ZONE, DEFAULT_UNKNOWN_SENTINEL
from db.connection import session_scope
from db.models import Question
from db.repositories import questions
from schemas.question import WAITING_FOR_ANSWER, QuestionPage, RemoteQuestion
from services.errors import AnswerPostError, QuestionNotFoundError
from tools.chatbase_tools import ChatbaseClient
from tools.http_tools import AuthenticationError
from tools.marketplace_tools import MarketplaceClient
from tools.time_utils import day_bounds

logger = logging.getLogger(__name__)

# Outcomes of reconcile_one / decide_and_answer
CREATED = "created"
UPDATED = "updated"
UNCHANGED = "unchanged"
SKIPPED = "skipped"
PENDING = "pending"
HELD = "held"
ANSWERED = "answered"
POST_FAILED = "post_failed"

UNKNOWN_PRODUCT = "Unknown Product"
PROVIDER = "PROVIDER"


@dataclass
class CycleReport:
    """Counters for one reconciliation pass."""

    fetched: int = 0
    created: int = 0
    updated: int = 0
    unchanged: int = 0
    refreshed: int = 0
    skipped: int = 0
    pending: int = 0
    held: int = 0
    answered: int = 0
    post_failed: int = 0
    errors: int = 0

    def record(self, outcome: str) -> None:
        setattr(self, outcome, getattr(self, outcome) + 1)

    def summary(self) -> str:
        return (
            f"fetched {self.fetched}, created {self.created}, updated {self.updated}, "
            f"refreshed {self.refreshed}, answered {self.answered}, "
            f"held for approval {self.held + self.post_failed}, "
            f"pending {self.pending}, errors {self.errors}"
        )


def build_prompt(question: Question) -> str:
    return f"Product: {question.product_name} Question: {question.question_text}"


class QuestionReconciler:
    """Keeps the local questions table in step with the marketplace."""

    def __init__(
        self,
        session_factory: async_sessionmaker,
        marketplace: MarketplaceClient,
        generator: ChatbaseClient,
        *,
        unknown_sentinel: str = DEFAULT_UNKNOWN_SENTINEL,
        time_zone: str = DEFAULT_TIME_ZONE,
    ) -> None:
        self.session_factory = session_factory
        self.marketplace = marketplace
        self.generator = generator
        self.unknown_sentinel = unknown_sentinel
        self.time_zone = time_zone

    def is_unknown(self, answer_text: str) -> bool:
        return bool(self.unknown_sentinel) and self.unknown_sentinel in answer_text

    # ------------------------------------------------------------------
    # Fetch
    # ------------------------------------------------------------------

    async def fetch_remote_questions(
        self,
        page: Optional[int] = None,
        start_date: Optional[datetime] = None,
        end_date: Optional[datetime] = None,
    ) -> Union[List[RemoteQuestion], QuestionPage]:
        """Unpaged: the current waiting set. Paged: one page of a date range.

        Raises:
            AuthenticationError: the marketplace rejected our credentials.
        """
        if page is None:
            return await self.marketplace.list_waiting_questions()
        if start_date is None or end_date is None:
            raise ValueError("start_date and end_date are required for a paged fetch")
        return await self.marketplace.list_questions_page(page, start_date, end_date)

    # ------------------------------------------------------------------
    # Reconcile
    # ------------------------------------------------------------------

    async def reconcile_one(self, remote: RemoteQuestion) -> str:
        """Create or update the local record for one remote question.

        Returns CREATED, UPDATED or UNCHANGED. Safe to call repeatedly with
        the same payload.
        """
        async with session_scope(self.session_factory) as session:
            existing = await questions.get_by_question_id(session, remote.id)
            if existing is None:
                return await self._create(session, remote)

            if remote.is_waiting:
                return UNCHANGED

            answer = remote.answer
            answer_id = answer.id if answer and answer.id else existing.answer_id
            if existing.status == remote.status and existing.answer_id == answer_id:
                return UNCHANGED

            answer_text = existing.answer_text
            if answer and answer.text and existing.answer_type in (None, "", PROVIDER):
                answer_text = answer.text
            await questions.apply_remote_answer(
                session,
                existing,
                answer_id=answer_id,
                answer_text=answer_text,
                answer_date=(answer.answered_at if answer else None) or existing.answer_date,
                status=remote.status,
                answer_type=existing.answer_type or PROVIDER,
                question_date=remote.asked_at,
            )
            logger.info(
                "Question %s updated from marketplace (status %s)", remote.id, remote.status
            )
            return UPDATED

    async def _create(self, session, remote: RemoteQuestion) -> str:
        follow_up = await questions.has_prior_question(
            session, remote.customer_id, remote.product_main_id
        )
        data = {
            "question_id": remote.id,
            "customer_id": remote.customer_id,
            "product_main_id": remote.product_main_id,
            "product_name": remote.product_name or UNKNOWN_PRODUCT,
            "product_web_url": remote.web_url,
            "question_text": remote.text,
            "question_date": remote.asked_at,
            "is_public": remote.public,
            "status": remote.status,
            "is_follow_up": follow_up,
            "needs_approval": follow_up,
        }
        if remote.answer is not None and not remote.is_waiting:
            data.update(
                answer_id=remote.answer.id,
                answer_text=remote.answer.text,
                answer_date=remote.answer.answered_at,
                answer_type=PROVIDER,
            )
        _, created = await questions.create(session, data)
        if not created:
            return UNCHANGED
        if follow_up:
            logger.info(
                "Question %s is a follow-up for customer %s on product %s",
                remote.id, remote.customer_id, remote.product_main_id,
            )
        else:
            logger.info("Question %s created: %s", remote.id, data["product_name"])
        return CREATED

    # ------------------------------------------------------------------
    # Answer
    # ------------------------------------------------------------------

    async def post_answer(self, question_id: str, text: str) -> bool:
        """True iff the marketplace accepted the answer."""
        return await self.marketplace.post_answer(question_id, text)

    async def decide_and_answer(self, question_id: str) -> str:
        """Apply the auto-answer policy to one local question.

        Returns one of SKIPPED, PENDING, HELD, ANSWERED, POST_FAILED.
        """
        async with session_scope(self.session_factory) as session:
            question = await questions.get_by_question_id(session, question_id)
            if question is None:
                raise QuestionNotFoundError(question_id)
            if (
                question.status != WAITING_FOR_ANSWER
                or question.is_follow_up
                or question.needs_approval
            ):
                return SKIPPED
            draft = question.answer_text if question.has_draft else None
            prompt = build_prompt(question)

        if draft is None:
            generated = await self.generator.generate_answer(prompt)
            if generated is None:
                logger.info("No draft available for question %s yet", question_id)
                return PENDING
            unknown = self.is_unknown(generated.answer_text)
            async with session_scope(self.session_factory) as session:
                question = await questions.get_by_question_id(session, question_id)
                await questions.store_draft(
                    session, question, generated.conversation_id, generated.answer_text, unknown
                )
            if unknown:
                logger.info(
                    "Automatic answer blocked by unknown-answer draft for question %s",
                    question_id,
                )
                return HELD
            draft = generated.answer_text

        posted = await self.post_answer(question_id, draft)
        async with session_scope(self.session_factory) as session:
            question = await questions.get_by_question_id(session, question_id)
            if posted:
                await questions.mark_auto_answered(session, question)
                logger.info("Question %s answered automatically", question_id)
                return ANSWERED
            await questions.mark_post_failed(session, question)
        logger.warning("Automatic answer for question %s was not accepted", question_id)
        return POST_FAILED

    # ------------------------------------------------------------------
    # Cycles
    # ------------------------------------------------------------------

    async def run_cycle(self) -> CycleReport:
        """One full reconciliation + auto-answer pass.

        Per-question failures are logged and counted. AuthenticationError
        aborts the cycle.
        """
        report = CycleReport()
        remote_questions = await self.fetch_remote_questions()
        report.fetched = len(remote_questions)
        seen = {remote.id for remote in remote_questions}
        await self.reconcile_all(remote_questions, report)

        async with session_scope(self.session_factory) as session:
            stale = [
                q.question_id for q in await questions.list_waiting(session)
                if q.question_id not in seen
            ]
        for question_id in stale:
            await self._guarded(report, question_id, self._refresh(question_id), refresh=True)

        async with session_scope(self.session_factory) as session:
            candidates = [q.question_id for q in await questions.list_auto_answerable(session)]
        for question_id in candidates:
            await self._guarded(report, question_id, self.decide_and_answer(question_id))

        logger.info("Cycle finished: %s", report.summary())
        return report

    async def reconcile_all(
        self, remote_questions: List[RemoteQuestion], report: Optional[CycleReport] = None
    ) -> CycleReport:
        """Reconcile each question on its own; one failure does not stop the rest."""
        report = report if report is not None else CycleReport()
        for remote in remote_questions:
            await self._guarded(report, remote.id, self.reconcile_one(remote))
        return report

    async def _refresh(self, question_id: str) -> str:
        remote = await self.marketplace.get_question(question_id)
        return await self.reconcile_one(remote)

    async def _guarded(self, report: CycleReport, question_id: str, step, refresh: bool = False) -> None:
        try:
            outcome = await step
        except AuthenticationError:
            raise
        except Exception:
            report.errors += 1
            logger.exception("Failed to process question %s", question_id)
            return
        if refresh:
            report.refreshed += 1
        report.record(outcome)

    async def sync_history(self, start_day: date, end_day: date) -> CycleReport:
        """Reconcile every question modified between two local calendar days.

        Pages through each day until the marketplace's totalPages is reached.
        Does not draft or post answers.
        """
        if end_day < start_day:
            raise ValueError("end_day must not be before start_day")
        report = CycleReport()
        day = start_day
        while day <= end_day:
            start, end = day_bounds(day, self.time_zone)
            page = 0
            while True:
                result = await self.fetch_remote_questions(page, start, end)
                report.fetched += len(result.content)
                await self.reconcile_all(result.content, report)
                page += 1
                if not result.content or page >= result.total_pages:
                    break
            logger.info("Synced marketplace questions for %s", day.isoformat())
            day += timedelta(days=1)
        return report

    # ------------------------------------------------------------------
    # Approval screen
    # ------------------------------------------------------------------

    async def get_question_by_id(self, question_id: str) -> Question:
        """Load a question, preparing a draft if it has none. Never posts."""
        async with session_scope(self.session_factory) as session:
            question = await questions.get_by_question_id(session, question_id)
            if question is None:
                raise QuestionNotFoundError(question_id)
            if question.has_draft or question.status != WAITING_FOR_ANSWER:
                return question
            prompt = build_prompt(question)

        generated = await self.generator.generate_answer(prompt)
        async with session_scope(self.session_factory) as session:
            question = await questions.get_by_question_id(session, question_id)
            if generated is not None:
                await questions.store_draft(
                    session,
                    question,
                    generated.conversation_id,
                    generated.answer_text,
                    self.is_unknown(generated.answer_text),
                )
            return question

    async def handle_approval(
        self, question_id: str, approved: bool, edited_answer: Optional[str] = None
    ) -> Question:
        """Post (when approved) and finalise an operator's decision.

        Raises:
            QuestionNotFoundError: unknown question id.
            ValueError: approved without any answer text.
            AnswerPostError: the marketplace did not accept the answer.
        """
        async with session_scope(self.session_factory) as session:
            question = await questions.get_by_question_id(session, question_id)
            if question is None:
                raise QuestionNotFoundError(question_id)
            text = edited_answer or question.answer_text

        if approved:
            if not text:
                raise ValueError(f"No answer text to post for question {question_id}")
            if not await self.post_answer(question_id, text):
                raise AnswerPostError(question_id)

        async with session_scope(self.session_factory) as session:
            question = await questions.get_by_question_id(session, question_id)
            await questions.update_approval(session, question, approved, edited_answer)
        logger.info(
            "Question %s %s by operator", question_id, "approved" if approved else "rejected"
        )
        return question
