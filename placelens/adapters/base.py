"""
Shared plumbing for upstream adapters.

Every adapter exposes ``name`` and ``async fetch(center, radius_or_query)``
returning a normalized record from ``placelens.models`` or raising
``AdapterUnavailable``. HTTP errors, timeouts and undecodable bodies are all
turned into that one exception here.
"""

from __future__ import annotations

import logging
from typing import Any, Protocol

import httpx

from placelens import config
from placelens.errors import AdapterUnavailable
from placelens.models import Coordinate

logger = logging.getLogger(__name__)


class Adapter(Protocol):
    name: str

    async def fetch(self, center: Coordinate, radius_m: int) -> Any: ...


class HttpAdapter:
    """Base for adapters talking HTTP through httpx.

    A shared ``client`` may be injected (tests pass one backed by
    ``httpx.MockTransport``); otherwise a short-lived client is opened per call.
    """

    name = "http"

    def __init__(self, *, client: httpx.AsyncClient | None = None, timeout: float = config.ADAPTER_TIMEOUT_S):
        self.client = client
        self.timeout = timeout

    @property
    def headers(self) -> dict[str, str]:
        return {"User-Agent": config.USER_AGENT}

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        headers = {**self.headers, **kwargs.pop("headers", {})}
        try:
            if self.client is not None:
                resp = await self.client.request(method, url, headers=headers, timeout=self.timeout, **kwargs)
            else:
                async with httpx.AsyncClient(timeout=self.timeout) as client:
                    resp = await client.request(method, url, headers=headers, **kwargs)
            resp.raise_for_status()
        except httpx.HTTPStatusError as exc:
            logger.warning("%s returned HTTP %d", self.name, exc.response.status_code)
            raise AdapterUnavailable(self.name, f"HTTP {exc.response.status_code}") from exc
        except httpx.HTTPError as exc:
            logger.warning("%s unavailable: %s", self.name, exc)
            raise AdapterUnavailable(self.name, type(exc).__name__) from exc
        return resp

    async def _get_json(self, url: str, **kwargs: Any) -> Any:
        resp = await self._request("GET", url, **kwargs)
        return self._decode(resp)

    async def _post_json(self, url: str, **kwargs: Any) -> Any:
        resp = await self._request("POST", url, **kwargs)
        return self._decode(resp)

    async def _get_text(self, url: str, **kwargs: Any) -> str:
        resp = await self._request("GET", url, **kwargs)
        return resp.text

    def _decode(self, resp: httpx.Response) -> Any:
        try:
            return resp.json()
        except ValueError as exc:
            logger.warning("%s sent a malformed payload (%d bytes)", self.name, len(resp.content))
            raise AdapterUnavailable(self.name, "malformed payload") from exc


def to_float(value: Any) -> float | None:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def summarize_properties(props: dict[str, Any], limit: int = 6) -> str | None:
    """``key: value | key: value`` for the first scalar properties."""
    entries = [
        f"{key}: {value}"
        for key, value in props.items()
        if isinstance(value, (str, int, float)) and not isinstance(value, bool)
    ][:limit]
    return " | ".join(entries) if entries else None


def truncate(text: str, limit: int = 240) -> str:
    return text if len(text) <= limit else text[: limit - 3] + "..."
