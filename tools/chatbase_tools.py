"""Chatbase answer generator client.

Calls the Chatbase REST chat endpoint directly (no official Python SDK),
always through the shared rate-limited queue and the retrying executor.
"""
import logging
import uuid
from typing import Optional

from schemas.settings import GeneratedAnswer
from tools.http_tools import ApiError, AttemptObserver, RequestSpec, execute
from tools.rate_limiter import RateLimitedQueue

logger = logging.getLogger(__name__)

DIRECT_ANSWER_INSTRUCTION = (
    "Please provide a direct and complete answer to this customer question "
    "without asking follow-up questions: "
)


class ChatbaseClient:
    """Single-turn draft generation against one Chatbase bot."""

    def __init__(
        self,
        queue: RateLimitedQueue,
        api_key: str,
        agent_id: str,
        url: str,
        *,
        retries: int = 1,
        retry_delay: float = 5.0,
        timeout: float = 30.0,
        observer: Optional[AttemptObserver] = None,
    ) -> None:
        self.queue = queue
        self.api_key = api_key
        self.agent_id = agent_id
        self.url = url
        self.retries = retries
        self.retry_delay = retry_delay
        self.timeout = timeout
        self.observer = observer

    def _request(self, conversation_id: str, prompt: str) -> RequestSpec:
        return RequestSpec(
            method="post",
            url=self.url,
            endpoint="chatbase",
            headers={
                "Authorization": f"Bearer {self.api_key}",
                "Content-Type": "application/json",
            },
            json={
                "conversationId": conversation_id,
                "messages": [
                    {"role": "user", "content": DIRECT_ANSWER_INSTRUCTION + prompt},
                ],
                "chatbotId": self.agent_id,
                "stream": False,
            },
            timeout=self.timeout,
        )

    async def generate_answer(self, prompt: str) -> Optional[GeneratedAnswer]:
        """Ask the bot for a draft answer to `prompt`.

        Returns:
            GeneratedAnswer, or None when no usable text came back (missing or
            empty text, or a failure the executor could not recover from).
            None means "try again next cycle", never a fatal error.
        """
        conversation_id = str(uuid.uuid4())
        spec = self._request(conversation_id, prompt)
        logger.info("Requesting Chatbase draft (conversation %s)", conversation_id)
        try:
            response = await self.queue.enqueue(
                lambda: execute(
                    spec, self.retries, self.retry_delay, observer=self.observer
                )
            )
        except ApiError as exc:
            logger.error(
                "Chatbase API error (status %s): %s", exc.status_code, exc.response or exc
            )
            return None

        try:
            data = response.json()
        except ValueError:
            logger.warning("Chatbase response was not JSON")
            return None
        if not isinstance(data, dict):
            logger.warning("Chatbase response data is empty")
            return None

        text = data.get("text")
        if text is None:
            logger.warning("Chatbase response text is missing")
            return None
        if text == "":
            logger.warning("Chatbase response text is empty")
            return None

        logger.info("Chatbase draft generated for conversation %s", conversation_id)
        return GeneratedAnswer(answer_text=text, conversation_id=conversation_id)
