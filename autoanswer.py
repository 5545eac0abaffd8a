"""Marketplace question auto-answer pipeline — command line entry point.

Usage:
  # Run the scheduler with the saved settings until interrupted
  python autoanswer.py serve

  # One logged reconciliation + auto-answer cycle
  python autoanswer.py run-once

  # Pull the waiting questions and list what is still open
  python autoanswer.py poll

  # Reconcile history for a range of local calendar days
  python autoanswer.py sync --start 2026-03-01 --end 2026-03-07

  # Approve (optionally with an edited answer) or reject a question
  python autoanswer.py approve --question-id 123456 --answer "Kargonuz yarın yola çıkacak."
  python autoanswer.py approve --question-id 123456 --reject

  # Show or change the auto-answer schedule
  python autoanswer.py settings show
  python autoanswer.py settings update --enable --weekdays Monday,Tuesday \
      --start-time 09:00 --end-time 17:30

  python autoanswer.py health
"""
import argparse
import asyncio
import json
import logging
import os
import sys
from datetime import date

from app_config import AppConfig
from db.connection import dispose_engine
from services.autoanswer_service import AutoAnswerService, build_service
from services.errors import AnswerPostError, InvalidScheduleError, QuestionNotFoundError
from tools.http_tools import AuthenticationError

logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    level = os.environ.get("LOG_LEVEL", "INFO").upper()
    logging.basicConfig(
        level=getattr(logging, level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )


def _question_line(question) -> str:
    flags = []
    if question.is_follow_up:
        flags.append("follow-up")
    if question.needs_approval:
        flags.append("needs approval")
    if question.is_chatbase_unknown_answer:
        flags.append("unknown answer")
    suffix = f" [{', '.join(flags)}]" if flags else ""
    return f"  {question.question_id} {question.product_name}: {question.question_text}{suffix}"


async def serve(service: AutoAnswerService) -> None:
    await service.start()
    schedule = service.scheduler.schedule
    if schedule is None:
        print("Automatic answering is disabled; waiting for settings changes.")
    else:
        print(f"Auto-answer scheduled: {schedule.expression} ({schedule.time_zone})")
    try:
        await asyncio.Event().wait()
    finally:
        await service.stop()


async def run_once(service: AutoAnswerService) -> None:
    job = await service.run_cycle_now()
    if job is None:
        print("Cycle not started (another cycle is running or the job could not be recorded).")
        return
    print(f"Job {job.id}: {job.state} - {job.result}")


async def poll(service: AutoAnswerService) -> None:
    pending = await service.poll_questions()
    print(f"{len(pending)} open question(s):")
    for question in pending:
        print(_question_line(question))


async def sync(service: AutoAnswerService, start: date, end: date) -> None:
    report = await service.sync_history(start, end)
    print(f"Synced {start.isoformat()} to {end.isoformat()}: {report.summary()}")


async def approve(
    service: AutoAnswerService, question_id: str, approved: bool, answer: str = ""
) -> None:
    question = await service.get_question_by_id(question_id)
    print(_question_line(question))
    if question.answer_text:
        print(f"  Draft: {question.answer_text}")
    question = await service.handle_approval(question_id, approved, answer or None)
    print(f"  Status: {question.status} (answer type {question.answer_type})")


async def show_settings(service: AutoAnswerService) -> None:
    settings = await service.get_settings()
    print(json.dumps(settings.model_dump(), indent=2))
    for job in await service.get_job_logs(limit=5):
        print(f"  job {job.id} {job.state} at {job.running_at}: {job.result or ''}")


async def update_settings(service: AutoAnswerService, args: argparse.Namespace) -> None:
    weekdays = [day.strip() for day in (args.weekdays or "").split(",") if day.strip()]
    settings = await service.update_settings(
        automatic_answer=args.enable,
        weekdays=weekdays,
        start_time=args.start_time,
        end_time=args.end_time,
        time_zone=args.time_zone,
    )
    print(json.dumps(settings.model_dump(), indent=2))


async def health(service: AutoAnswerService) -> bool:
    db_ok = await service.check_database()
    print(f"database: {'ok' if db_ok else 'unavailable'}")
    if db_ok:
        print(json.dumps(await service.get_question_stats(), indent=2))
        for endpoint in ("marketplace", "chatbase"):
            print(json.dumps(await service.get_api_stats(endpoint), indent=2))
    return db_ok


async def main(args: argparse.Namespace) -> int:
    service = build_service(AppConfig.from_env())
    try:
        if args.command == "serve":
            await serve(service)
        elif args.command == "run-once":
            await run_once(service)
        elif args.command == "poll":
            await poll(service)
        elif args.command == "sync":
            await sync(service, args.start, args.end)
        elif args.command == "approve":
            await approve(service, args.question_id, not args.reject, args.answer)
        elif args.command == "settings" and args.action == "update":
            await update_settings(service, args)
        elif args.command == "settings":
            await show_settings(service)
        elif args.command == "health":
            return 0 if await health(service) else 1
    except (QuestionNotFoundError, InvalidScheduleError, AnswerPostError, ValueError) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except AuthenticationError:
        print("Error: marketplace authentication failed; check the API key and secret.", file=sys.stderr)
        return 1
    finally:
        await dispose_engine()
    return 0


def _build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Marketplace question sync and auto-answer pipeline"
    )
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("serve", help="Run the auto-answer scheduler until interrupted")
    sub.add_parser("run-once", help="Run one logged reconciliation + auto-answer cycle")
    sub.add_parser("poll", help="Reconcile waiting questions and list open ones")

    sync_cmd = sub.add_parser("sync", help="Reconcile questions for a range of days")
    sync_cmd.add_argument("--start", required=True, type=date.fromisoformat, help="First day (YYYY-MM-DD)")
    sync_cmd.add_argument("--end", required=True, type=date.fromisoformat, help="Last day (YYYY-MM-DD)")

    approve_cmd = sub.add_parser("approve", help="Approve or reject a held question")
    approve_cmd.add_argument("--question-id", required=True)
    approve_cmd.add_argument("--reject", action="store_true", default=False)
    approve_cmd.add_argument("--answer", default="", help="Edited answer text to post instead of the draft")

    settings_cmd = sub.add_parser("settings", help="Show or update the auto-answer schedule")
    settings_cmd.add_argument("action", choices=["show", "update"])
    settings_cmd.add_argument("--enable", action="store_true", default=False, help="Turn automatic answering on")
    settings_cmd.add_argument("--weekdays", default="", help="Comma-separated weekday names, e.g. Monday,Friday")
    settings_cmd.add_argument("--start-time", default=None, help="Local HH:MM")
    settings_cmd.add_argument("--end-time", default=None, help="Local HH:MM")
    settings_cmd.add_argument("--time-zone", default=None, help="IANA zone (default: DEFAULT_TIME_ZONE)")

    sub.add_parser("health", help="Check the database and print stats")

    return parser


if __name__ == "__main__":
    _configure_logging()
    parser = _build_arg_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    try:
        sys.exit(asyncio.run(main(args)))
    except KeyboardInterrupt:
        logger.info("Interrupted; scheduler stopped")
