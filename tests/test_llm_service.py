"""
LLM service tests: reply parsing, the disabled path and every failure
branch of a real HTTP exchange against a local server.
"""
import asyncio

import pytest
from aiohttp import web

from brandbuddy.services.llm_service import LLMService, parse_json_content, strip_code_fences


@pytest.fixture
def enabled_llm():
    """An enabled service pointed at the given URL with a short timeout"""

    def _make(url, timeout=5.0):
        service = LLMService()
        service.enabled = True
        service.api_key = "test-key"
        service.api_url = url
        service.timeout = timeout
        return service

    return _make


class TestReplyParsing:

    def test_strip_code_fences(self):
        assert strip_code_fences('```json\n[{"title": "x"}]\n```') == '[{"title": "x"}]'
        assert strip_code_fences("  plain  ") == "plain"

    def test_parse_json_content(self):
        assert parse_json_content('```json\n{"analysis": "ok"}\n```') == {"analysis": "ok"}
        assert parse_json_content("[1, 2]") == [1, 2]

    def test_unparseable_reply_is_none(self):
        assert parse_json_content("Here are your insights!") is None
        assert parse_json_content("") is None
        assert parse_json_content(None) is None


class TestDisabledService:

    def test_disabled_without_key(self):
        assert LLMService().enabled is False

    async def test_calls_return_none_when_disabled(self):
        service = LLMService()
        assert await service.complete("prompt") is None
        assert await service.complete_json("prompt", system="system") is None


# ────────────────────────────────────────────
# HTTP EXCHANGE
# ────────────────────────────────────────────


class TestChat:

    async def test_reply_content_is_returned(self, chat_server, enabled_llm):
        seen = []

        async def handler(request):
            seen.append({"auth": request.headers.get("Authorization"), "body": await request.json()})
            return web.json_response({"choices": [{"message": {"content": '[{"title": "x"}]'}}]})

        llm = enabled_llm(await chat_server(handler))
        reply = await llm.complete_json("prompt", system="persona", model="m-1")

        assert reply == [{"title": "x"}]
        assert seen[0]["auth"] == "Bearer test-key"
        assert seen[0]["body"]["model"] == "m-1"
        assert [m["role"] for m in seen[0]["body"]["messages"]] == ["system", "user"]

    async def test_server_error_is_none(self, chat_server, enabled_llm):
        async def handler(request):
            return web.Response(status=500, text="upstream exploded")

        llm = enabled_llm(await chat_server(handler))
        assert await llm.complete("prompt") is None
        assert await llm.complete_json("prompt") is None

    async def test_timeout_is_none(self, chat_server, enabled_llm):
        async def handler(request):
            await asyncio.sleep(1)
            return web.json_response({"choices": [{"message": {"content": "late"}}]})

        llm = enabled_llm(await chat_server(handler), timeout=0.1)
        assert await llm.complete("prompt") is None

    @pytest.mark.parametrize("body", [
        {"choices": []},
        {"error": {"message": "rate limited"}},
        {"choices": [{"text": "legacy shape"}]},
        ["not", "an", "object"],
    ])
    async def test_unexpected_shape_is_none(self, chat_server, enabled_llm, body):
        async def handler(request):
            return web.json_response(body)

        llm = enabled_llm(await chat_server(handler))
        assert await llm.complete("prompt") is None

    async def test_non_json_body_is_none(self, chat_server, enabled_llm):
        async def handler(request):
            return web.Response(status=200, text="<html>gateway</html>")

        llm = enabled_llm(await chat_server(handler))
        assert await llm.complete("prompt") is None
