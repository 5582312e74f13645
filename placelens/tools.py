"""
Tools the reporting agent may call, as a closed tagged union.

Calls arrive from the model as a name plus a JSON argument string; they are
decoded into one of the typed models below right at the boundary. Anything
else is rejected before it reaches an adapter.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Annotated, Any, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, ValidationError

from placelens.errors import AdapterUnavailable
from placelens.models import Coordinate

logger = logging.getLogger(__name__)


class _Tool(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")


class GeocodeAddress(_Tool):
    """Find coordinates for a street address or place name."""

    name: Literal["geocode_address"] = "geocode_address"
    address: str = Field(..., min_length=1, max_length=200)


class LandCoverAt(_Tool):
    """CORINE land-cover class at a coordinate."""

    name: Literal["land_cover_at"] = "land_cover_at"
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


class FloodRiskAt(_Tool):
    """Official flood hazard reading at a coordinate."""

    name: Literal["flood_risk_at"] = "flood_risk_at"
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


ToolCall = Annotated[Union[GeocodeAddress, LandCoverAt, FloodRiskAt], Field(discriminator="name")]

_TOOL_MODELS: tuple[type[_Tool], ...] = (GeocodeAddress, LandCoverAt, FloodRiskAt)
_DECODER: TypeAdapter = TypeAdapter(ToolCall)


class ToolDecodeError(ValueError):
    pass


def decode_tool_call(name: str, arguments: str | None) -> GeocodeAddress | LandCoverAt | FloodRiskAt:
    try:
        args = json.loads(arguments or "{}")
    except json.JSONDecodeError as exc:
        raise ToolDecodeError(f"arguments for {name} are not JSON") from exc
    if not isinstance(args, dict):
        raise ToolDecodeError(f"arguments for {name} must be an object")
    try:
        return _DECODER.validate_python({**args, "name": name})
    except ValidationError as exc:
        raise ToolDecodeError(f"invalid call to {name}: {exc.error_count()} error(s)") from exc


def tool_schemas() -> list[dict[str, Any]]:
    """OpenAI ``tools`` payload derived from the tool models."""
    specs = []
    for model in _TOOL_MODELS:
        schema = model.model_json_schema()
        props = {k: v for k, v in schema.get("properties", {}).items() if k != "name"}
        specs.append({
            "type": "function",
            "function": {
                "name": model.model_fields["name"].default,
                "description": (model.__doc__ or "").strip(),
                "parameters": {
                    "type": "object",
                    "properties": props,
                    "required": [r for r in schema.get("required", []) if r != "name"],
                },
            },
        })
    return specs


class ToolExecutor:
    """Runs decoded tool calls against adapters, caching by (tool, arguments)."""

    def __init__(self, *, address_search=None, land_cover=None, flood=None, timeout: float = 8.0):
        self.address_search = address_search
        self.land_cover = land_cover
        self.flood = flood
        self.timeout = timeout
        # Keyed by the call's JSON; holds the task so identical calls in one round share it.
        self._cache: dict[str, asyncio.Task] = {}
        self.calls_made = 0

    async def execute(self, call: GeocodeAddress | LandCoverAt | FloodRiskAt) -> dict[str, Any]:
        key = call.model_dump_json()
        task = self._cache.get(key)
        if task is None:
            task = asyncio.ensure_future(self._guarded(call))
            self._cache[key] = task
        return await task

    async def _guarded(self, call: GeocodeAddress | LandCoverAt | FloodRiskAt) -> dict[str, Any]:
        try:
            return await asyncio.wait_for(self._dispatch(call), self.timeout)
        except asyncio.TimeoutError:
            return {"error": f"{call.name} timed out"}
        except AdapterUnavailable as exc:
            return {"error": f"{call.name} unavailable: {exc.details}"}
        except Exception as exc:
            logger.error("Tool %s failed: %s", call.name, exc)
            return {"error": f"{call.name} failed"}

    async def _dispatch(self, call: GeocodeAddress | LandCoverAt | FloodRiskAt) -> dict[str, Any]:
        self.calls_made += 1
        if isinstance(call, GeocodeAddress):
            if self.address_search is None:
                return {"error": "address search not configured"}
            matches = await self.address_search.fetch(call.address)
            if not matches:
                return {"found": False}
            best = matches[0]
            return {"found": True, "display_name": best.display_name,
                    "lat": best.coordinate.lat, "lon": best.coordinate.lon}

        point = Coordinate(lat=call.lat, lon=call.lon)
        if isinstance(call, LandCoverAt):
            if self.land_cover is None:
                return {"error": "land cover not configured"}
            cover = await self.land_cover.fetch(point, 0)
            return {"found": False} if cover is None else {"found": True, **cover.model_dump()}

        if self.flood is None:
            return {"error": "flood service not configured"}
        layer = await self.flood.fetch(point, 0)
        return layer.model_dump(mode="json", exclude={"raw_evidence"})
