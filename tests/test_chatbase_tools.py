"""Unit tests for the Chatbase answer generator client."""
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from tools.chatbase_tools import DIRECT_ANSWER_INSTRUCTION, ChatbaseClient
from tools.http_tools import ApiError
from tools.rate_limiter import RateLimitedQueue


CHATBASE_MODULE = "tools.chatbase_tools"


def _client():
    return ChatbaseClient(
        RateLimitedQueue(interval=0),
        api_key="cb-key",
        agent_id="agent-1",
        url="https://chatbase.test/api/v1/chat",
    )


def _response(payload):
    resp = MagicMock()
    resp.json.return_value = payload
    return resp


class TestGenerateAnswer:
    @pytest.mark.asyncio
    @patch(f"{CHATBASE_MODULE}.execute", new_callable=AsyncMock)
    async def test_returns_draft_and_conversation_id(self, mock_execute):
        mock_execute.return_value = _response({"text": "Kargonuz 2 gün içinde yola çıkar."})

        result = await _client().generate_answer("Product: Mug Question: Kargo ne zaman?")

        assert result.answer_text == "Kargonuz 2 gün içinde yola çıkar."
        spec = mock_execute.call_args.args[0]
        assert spec.endpoint == "chatbase"
        assert spec.headers["Authorization"] == "Bearer cb-key"
        assert spec.json["chatbotId"] == "agent-1"
        assert spec.json["stream"] is False
        assert spec.json["conversationId"] == result.conversation_id
        message = spec.json["messages"][0]
        assert message["role"] == "user"
        assert message["content"] == DIRECT_ANSWER_INSTRUCTION + "Product: Mug Question: Kargo ne zaman?"

    @pytest.mark.asyncio
    @patch(f"{CHATBASE_MODULE}.execute", new_callable=AsyncMock)
    async def test_new_conversation_per_call(self, mock_execute):
        mock_execute.return_value = _response({"text": "ok"})
        client = _client()

        first = await client.generate_answer("a")
        second = await client.generate_answer("b")

        assert first.conversation_id != second.conversation_id

    @pytest.mark.asyncio
    @pytest.mark.parametrize("payload", [{}, {"text": ""}, {"text": None}, [], None])
    @patch(f"{CHATBASE_MODULE}.execute", new_callable=AsyncMock)
    async def test_missing_or_empty_text_returns_none(self, mock_execute, payload):
        mock_execute.return_value = _response(payload)

        assert await _client().generate_answer("question") is None

    @pytest.mark.asyncio
    @patch(f"{CHATBASE_MODULE}.execute", new_callable=AsyncMock)
    async def test_non_json_returns_none(self, mock_execute):
        resp = MagicMock()
        resp.json.side_effect = ValueError("not json")
        mock_execute.return_value = resp

        assert await _client().generate_answer("question") is None

    @pytest.mark.asyncio
    @patch(f"{CHATBASE_MODULE}.execute", new_callable=AsyncMock)
    async def test_unrecovered_failure_returns_none(self, mock_execute):
        mock_execute.side_effect = ApiError("server error", 500, {"message": "down"})

        assert await _client().generate_answer("question") is None
