"""OGC WMS helpers: point GetFeatureInfo and a GetCapabilities probe."""

from __future__ import annotations

import logging
import re
from typing import Any

from placelens.adapters.base import HttpAdapter
from placelens.errors import AdapterUnavailable
from placelens.geo import bbox
from placelens.models import Coordinate

logger = logging.getLogger(__name__)

_CAPABILITIES_RE = re.compile(r"WMS_Capabilities|WMT_MS_Capabilities", re.IGNORECASE)


def feature_info_params(
    layers: str,
    center: Coordinate,
    *,
    buffer_deg: float = 0.002,
    info_format: str = "application/json",
    version: str = "1.3.0",
) -> dict[str, str]:
    # WMS 1.3.0 with EPSG:4326 uses lat/lon axis order in BBOX.
    min_lat, min_lon, max_lat, max_lon = bbox(center.lat, center.lon, buffer_deg)
    return {
        "SERVICE": "WMS",
        "REQUEST": "GetFeatureInfo",
        "VERSION": version,
        "CRS": "EPSG:4326",
        "BBOX": f"{min_lat},{min_lon},{max_lat},{max_lon}",
        "WIDTH": "101",
        "HEIGHT": "101",
        "LAYERS": layers,
        "QUERY_LAYERS": layers,
        "INFO_FORMAT": info_format,
        "I": "50",
        "J": "50",
        "FEATURE_COUNT": "5",
    }


class WmsAdapter(HttpAdapter):
    name = "wms"

    async def feature_info(
        self,
        base_url: str,
        layers: str,
        center: Coordinate,
        *,
        buffer_deg: float = 0.002,
    ) -> dict[str, Any] | str:
        """JSON body when the server answers JSON, stripped text otherwise."""
        resp = await self._request("GET", base_url, params=feature_info_params(layers, center, buffer_deg=buffer_deg))
        if "json" in resp.headers.get("content-type", ""):
            return self._decode(resp)
        return resp.text.strip()

    async def has_capabilities(self, base_url: str) -> bool:
        try:
            text = await self._get_text(base_url, params={"service": "WMS", "request": "GetCapabilities"})
        except AdapterUnavailable:
            return False
        return bool(_CAPABILITIES_RE.search(text))


def features_of(payload: dict[str, Any] | str) -> list[dict[str, Any]]:
    if not isinstance(payload, dict):
        return []
    features = payload.get("features")
    return [f for f in features if isinstance(f, dict)] if isinstance(features, list) else []


def text_has_hit(text: str) -> bool:
    lower = text.lower()
    return bool(text) and "no features" not in lower and "sin resultados" not in lower and "<body></body>" not in lower
