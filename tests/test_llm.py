"""Tests for the OpenAI-compatible backend wrapper and JSON extraction."""

from types import SimpleNamespace
from unittest.mock import AsyncMock, MagicMock

import httpx
import openai
import pytest

from placelens import config
from placelens.errors import BackendUnavailable
from placelens.llm import OpenAIChatBackend, RawToolCall, backend_from_env, parse_json_object


class TestParseJsonObject:
    def test_plain(self):
        assert parse_json_object('{"a": 1}') == {"a": 1}

    def test_fenced_with_chatter(self):
        assert parse_json_object('Sure!\n```json\n{"a": [1, 2]}\n```\nAnything else?') == {"a": [1, 2]}

    def test_object_inside_prose(self):
        assert parse_json_object('The report is {"summary": "ok"} as requested.') == {"summary": "ok"}

    @pytest.mark.parametrize("raw", [None, "", "   ", "no braces here", "[1, 2, 3]", "{broken: json}"])
    def test_rejected(self, raw):
        with pytest.raises(ValueError):
            parse_json_object(raw)


def _completion(content=None, tool_calls=None):
    message = SimpleNamespace(content=content, tool_calls=tool_calls)
    return SimpleNamespace(choices=[SimpleNamespace(message=message)])


def _client(create: AsyncMock) -> MagicMock:
    client = MagicMock()
    client.chat.completions.create = create
    return client


class TestOpenAIChatBackend:
    @pytest.mark.asyncio
    async def test_tool_calls_and_json_mode(self):
        call = SimpleNamespace(id="c1", function=SimpleNamespace(name="land_cover_at", arguments='{"lat": 1, "lon": 2}'))
        create = AsyncMock(return_value=_completion(tool_calls=[call]))
        backend = OpenAIChatBackend("key", "gpt-4o-mini", client=_client(create))

        tools = [{"type": "function", "function": {"name": "land_cover_at"}}]
        turn = await backend.complete([{"role": "user", "content": "hi"}], tools=tools, json_mode=True)

        assert turn.tool_calls == (RawToolCall(id="c1", name="land_cover_at", arguments='{"lat": 1, "lon": 2}'),)
        kwargs = create.await_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["tools"] == tools
        assert kwargs["tool_choice"] == "auto"
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["temperature"] == 0.2

    @pytest.mark.asyncio
    async def test_plain_text(self):
        create = AsyncMock(return_value=_completion(content="Hello"))
        turn = await OpenAIChatBackend("key", "m", client=_client(create)).complete([])

        assert turn.content == "Hello"
        assert turn.tool_calls == ()
        assert "tools" not in create.await_args.kwargs
        assert "response_format" not in create.await_args.kwargs

    @pytest.mark.asyncio
    async def test_api_error_becomes_backend_unavailable(self):
        error = openai.APIConnectionError(request=httpx.Request("POST", "https://api.test/v1/chat/completions"))
        backend = OpenAIChatBackend("key", "m", client=_client(AsyncMock(side_effect=error)))
        with pytest.raises(BackendUnavailable):
            await backend.complete([])

    @pytest.mark.asyncio
    async def test_empty_choices(self):
        create = AsyncMock(return_value=SimpleNamespace(choices=[]))
        with pytest.raises(BackendUnavailable):
            await OpenAIChatBackend("key", "m", client=_client(create)).complete([])


class TestBackendFromEnv:
    @pytest.fixture(autouse=True)
    def clean_env(self, monkeypatch):
        monkeypatch.setattr(config, "LLM_PROVIDER", "")
        for name in ("OPENAI_API_KEY", "GROQ_API_KEY", "OLLAMA_BASE_URL"):
            monkeypatch.setattr(config, name, None)

    def test_nothing_configured(self):
        assert backend_from_env() is None

    def test_first_configured_key_wins(self, monkeypatch):
        monkeypatch.setattr(config, "GROQ_API_KEY", "gsk-test")
        backend = backend_from_env()
        assert backend.model == config.GROQ_MODEL
        assert str(backend.client.base_url).startswith(config.GROQ_BASE_URL)

    def test_ollama(self, monkeypatch):
        monkeypatch.setattr(config, "LLM_PROVIDER", "ollama")
        monkeypatch.setattr(config, "OLLAMA_BASE_URL", "http://localhost:11434/")
        backend = backend_from_env()
        assert str(backend.client.base_url).startswith("http://localhost:11434/v1")

    def test_selected_but_unconfigured(self, monkeypatch):
        monkeypatch.setattr(config, "LLM_PROVIDER", "openai")
        assert backend_from_env() is None
