"""
Generative backend: an OpenAI-compatible chat-completions client.

OpenAI, Groq and Ollama all speak the same chat-completions dialect, so one
``AsyncOpenAI`` wrapper covers the three; only the base URL, key and default
model differ.
"""

from __future__ import annotations

import json
import logging
import re
from dataclasses import dataclass
from typing import Any, Protocol

import openai
from openai import AsyncOpenAI

from placelens import config
from placelens.errors import BackendUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class RawToolCall:
    id: str
    name: str
    arguments: str


@dataclass(frozen=True)
class ModelTurn:
    content: str | None
    tool_calls: tuple[RawToolCall, ...] = ()


class GenerativeBackend(Protocol):
    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
        json_mode: bool = False,
    ) -> ModelTurn: ...


class OpenAIChatBackend:
    def __init__(
        self,
        api_key: str,
        model: str,
        *,
        base_url: str | None = None,
        temperature: float = 0.2,
        timeout: float = config.LLM_TIMEOUT_S,
        client: AsyncOpenAI | None = None,
    ):
        self.model = model
        self.temperature = temperature
        self.client = client or AsyncOpenAI(api_key=api_key, base_url=base_url, timeout=timeout, max_retries=0)

    async def complete(
        self,
        messages: list[dict[str, Any]],
        *,
        tools: list[dict[str, Any]] | None = None,
        json_mode: bool = False,
    ) -> ModelTurn:
        kwargs: dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
        }
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}

        try:
            response = await self.client.chat.completions.create(**kwargs)
        except openai.OpenAIError as exc:
            logger.error("%s completion failed: %s", self.model, exc)
            raise BackendUnavailable(str(exc)) from exc

        if not response.choices:
            raise BackendUnavailable("empty completion")
        message = response.choices[0].message
        calls = tuple(
            RawToolCall(id=call.id, name=call.function.name, arguments=call.function.arguments or "{}")
            for call in (message.tool_calls or [])
            if getattr(call, "function", None) is not None
        )
        return ModelTurn(content=message.content, tool_calls=calls)


def backend_from_env() -> OpenAIChatBackend | None:
    """Pick a backend from ``LLM_PROVIDER`` or the first configured key."""
    provider = config.LLM_PROVIDER
    if not provider:
        if config.OPENAI_API_KEY:
            provider = "openai"
        elif config.GROQ_API_KEY:
            provider = "groq"
        elif config.OLLAMA_BASE_URL:
            provider = "ollama"

    if provider == "openai" and config.OPENAI_API_KEY:
        return OpenAIChatBackend(config.OPENAI_API_KEY, config.OPENAI_MODEL)
    if provider == "groq" and config.GROQ_API_KEY:
        return OpenAIChatBackend(config.GROQ_API_KEY, config.GROQ_MODEL, base_url=config.GROQ_BASE_URL)
    if provider == "ollama" and config.OLLAMA_BASE_URL:
        base = config.OLLAMA_BASE_URL.rstrip("/")
        return OpenAIChatBackend("ollama", config.OLLAMA_MODEL, base_url=f"{base}/v1")

    if provider:
        logger.warning("LLM provider %r selected but not configured; using deterministic reports", provider)
    else:
        logger.info("No LLM provider configured; using deterministic reports")
    return None


def parse_json_object(raw: str | None) -> dict[str, Any]:
    """Extract a JSON object from model text (handles code fences and chatter)."""
    if not raw or not raw.strip():
        raise ValueError("empty model output")
    text = raw.strip()
    if "```" in text:
        text = re.sub(r"^.*?```(?:json)?\s*", "", text, flags=re.DOTALL)
        text = re.sub(r"\s*```.*$", "", text, flags=re.DOTALL).strip()
    try:
        data = json.loads(text)
    except json.JSONDecodeError:
        start, end = text.find("{"), text.rfind("}")
        if start < 0 or end <= start:
            raise ValueError("no JSON object in model output")
        try:
            data = json.loads(text[start:end + 1])
        except json.JSONDecodeError as exc:
            raise ValueError(f"malformed JSON: {exc.msg}") from exc
    if not isinstance(data, dict):
        raise ValueError("model output is not a JSON object")
    return data
