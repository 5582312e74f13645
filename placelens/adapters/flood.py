"""
Official flood hazard (MITECO / SNCZI WMS). When MITECO cannot be reached the
Copernicus EFAS WMS is probed: if it answers, the layer is still drawable, so
the result is VISUAL_ONLY instead of DOWN.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from placelens import config
from placelens.adapters.base import summarize_properties, truncate
from placelens.adapters.wms import WmsAdapter, features_of, text_has_hit
from placelens.errors import AdapterUnavailable
from placelens.models import Coordinate, RiskLayer, RiskStatus

logger = logging.getLogger(__name__)

SOURCE = "MITECO"
_LEVELS = {3: "high", 2: "medium", 1: "low"}


def layer_score(layer: str) -> int:
    """Score a hazard layer by the return period in its name (T10 worst)."""
    numbers = re.findall(r"\d+", layer)
    period = int(numbers[-1]) if numbers else None
    if period == 10:
        return 3
    if period in (50, 100):
        return 2
    return 1


def parse_hit(payload: dict[str, Any] | str) -> tuple[bool, str | None]:
    if isinstance(payload, dict):
        features = features_of(payload)
        if not features:
            return False, None
        return True, summarize_properties(features[0].get("properties") or {})
    return (True, truncate(payload)) if text_has_hit(payload) else (False, None)


class FloodRiskService(WmsAdapter):
    name = "flood"

    def __init__(
        self,
        url: str = config.FLOOD_WMS_URL,
        layers: list[str] | None = None,
        efas_url: str | None = config.EFAS_WMS_URL,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.url = url
        self.layers = layers or list(config.FLOOD_WMS_LAYERS)
        self.efas_url = efas_url

    async def fetch(self, center: Coordinate, radius_m: int = 0) -> RiskLayer:
        reachable = False
        hits: list[tuple[str, str | None]] = []
        evidence: list[str] = []

        for layer in self.layers:
            try:
                payload = await self.feature_info(self.url, layer, center, buffer_deg=0.0015)
            except AdapterUnavailable:
                continue
            reachable = True
            hit, detail = parse_hit(payload)
            evidence.append(f"{layer}: {detail or ('hit' if hit else 'no features')}")
            if hit:
                hits.append((layer, detail))

        if not reachable:
            if self.efas_url and await self.has_capabilities(self.efas_url):
                logger.info("MITECO flood WMS down, EFAS layer reachable: visual only")
                return RiskLayer(
                    ok=True,
                    status=RiskStatus.VISUAL_ONLY,
                    source="Copernicus EFAS",
                    details="EFAS flood layer available for display only; no point reading.",
                )
            raise AdapterUnavailable(self.name, "flood hazard WMS unreachable")

        if not hits:
            return RiskLayer(
                ok=True,
                status=RiskStatus.OK,
                source=SOURCE,
                level="low",
                details="No flood-prone zone mapped at this point.",
                raw_evidence=tuple(evidence),
            )

        score = max(layer_score(layer) for layer, _ in hits)
        details = " | ".join(
            f"Intersects {layer}: {detail}" if detail else f"Intersects {layer}"
            for layer, detail in hits
        )
        return RiskLayer(
            ok=True,
            status=RiskStatus.OK,
            source=SOURCE,
            level=_LEVELS[score],
            details=details,
            raw_evidence=tuple(evidence),
        )
