"""Marketplace (Trendyol seller API) question tools.

Calls the seller REST API directly (no official Python SDK). Every call goes
through the shared rate-limited queue and the retrying executor; 401/403
responses surface as AuthenticationError so a cycle can abort early.
"""
import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import requests
from pydantic import ValidationError

from schemas.question import WAITING_FOR_ANSWER, QuestionPage, RemoteQuestion
from tools.http_tools import (
    ApiError,
    AttemptObserver,
    AuthenticationError,
    RequestSpec,
    execute,
)
from tools.rate_limiter import RateLimitedQueue
from tools.time_utils import epoch_millis

logger = logging.getLogger(__name__)

WAITING_PAGE_SIZE = 50
HISTORY_PAGE_SIZE = 100
USER_AGENT = "MarketplaceAutoAnswer/1.0"


def parse_question_page(payload: Optional[Dict[str, Any]]) -> QuestionPage:
    """Validate a /filter response item by item.

    Malformed questions are logged and left out so the rest of the page
    can still be processed.
    """
    payload = dict(payload or {})
    items = payload.pop("content", None) or []
    page = QuestionPage.model_validate(payload)
    for item in items:
        try:
            page.content.append(RemoteQuestion.model_validate(item))
        except ValidationError as e:
            item_id = item.get("id") if isinstance(item, dict) else None
            logger.warning("Skipping malformed marketplace question %s: %s", item_id, e)
    return page


class MarketplaceClient:
    """Question listing, lookup and answering for one seller account."""

    def __init__(
        self,
        queue: RateLimitedQueue,
        base_url: str,
        seller_id: str,
        token: str,
        *,
        retries: int = 1,
        retry_delay: float = 5.0,
        timeout: float = 30.0,
        observer: Optional[AttemptObserver] = None,
    ) -> None:
        self.queue = queue
        self.base_url = base_url.rstrip("/")
        self.seller_id = seller_id
        self.token = token
        self.retries = retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.observer = observer

    @property
    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Basic {self.token}",
            "Content-Type": "application/json",
            "User-Agent": USER_AGENT,
        }

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{self.seller_id}/questions{path}"

    async def _call(
        self,
        method: str,
        path: str,
        *,
        params: Optional[Dict[str, Any]] = None,
        json: Optional[Any] = None,
    ) -> requests.Response:
        spec = RequestSpec(
            method=method,
            url=self._url(path),
            endpoint="marketplace",
            headers=self._headers,
            params=params,
            json=json,
            timeout=self.timeout,
        )
        try:
            return await self.queue.enqueue(
                lambda: execute(spec, self.retries, self.retry_delay, observer=self.observer)
            )
        except ApiError as exc:
            if exc.is_auth_failure:
                logger.error("Marketplace authentication error - token may be expired")
                raise AuthenticationError(
                    "Authentication error", exc.status_code, exc.response
                ) from exc
            raise

    async def list_waiting_questions(self) -> List[RemoteQuestion]:
        """Return the current WAITING_FOR_ANSWER questions (first page)."""
        response = await self._call(
            "get",
            "/filter",
            params={"size": WAITING_PAGE_SIZE, "status": WAITING_FOR_ANSWER},
        )
        page = parse_question_page(response.json())
        logger.info("Marketplace returned %d waiting questions", len(page.content))
        return page.content

    async def list_questions_page(
        self, page: int, start: datetime, end: datetime
    ) -> QuestionPage:
        """Return one page of questions last modified between start and end."""
        response = await self._call(
            "get",
            "/filter",
            params={
                "size": HISTORY_PAGE_SIZE,
                "page": page,
                "startDate": epoch_millis(start),
                "endDate": epoch_millis(end),
                "orderByField": "LastModifiedDate",
                "orderByDirection": "ASC",
            },
        )
        result = parse_question_page(response.json())
        logger.info(
            "Marketplace page %d/%d returned %d questions",
            page + 1, result.total_pages, len(result.content),
        )
        return result

    async def get_question(self, question_id: str) -> RemoteQuestion:
        """Fetch a single question by id."""
        response = await self._call("get", f"/{question_id}")
        return RemoteQuestion.model_validate(response.json())

    async def post_answer(self, question_id: str, text: str) -> bool:
        """Post an answer; True iff the API replied with a 2xx status.

        Failures are logged and reported as False, except authentication
        failures which propagate.
        """
        logger.info("Posting answer to marketplace for question %s", question_id)
        try:
            response = await self._call("post", f"/{question_id}/answers", json={"text": text})
        except AuthenticationError:
            raise
        except ApiError as exc:
            logger.error(
                "Error posting answer for question %s (status %s): %s",
                question_id, exc.status_code, exc.response or exc,
            )
            return False
        return 200 <= response.status_code < 300
