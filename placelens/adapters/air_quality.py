"""Copernicus CAMS air quality, sampled through the ECMWF WMS."""

from __future__ import annotations

import logging
import re
from typing import Any

from placelens import config
from placelens.adapters.base import to_float, truncate
from placelens.adapters.wms import WmsAdapter, features_of
from placelens.errors import AdapterUnavailable
from placelens.models import Coordinate, RiskLayer, RiskStatus

logger = logging.getLogger(__name__)

SOURCE = "Copernicus CAMS"
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?")
# Bodies carrying these are error pages or markup, never a reading.
_NOT_A_READING = ("serviceexception", "<?xml", "<html", "<!doctype")


def extract_value(payload: dict[str, Any] | str) -> float | None:
    """First numeric property of the first feature, or first number in text."""
    if isinstance(payload, dict):
        features = features_of(payload)
        props = features[0].get("properties") if features else None
        if not isinstance(props, dict):
            return None
        for value in props.values():
            number = to_float(value)
            if number is not None:
                return number
            if isinstance(value, str):
                match = _NUMBER_RE.search(value)
                if match:
                    return float(match.group(0))
        return None
    text = (payload or "").strip()
    lowered = text.lower()
    if any(marker in lowered for marker in _NOT_A_READING):
        return None
    match = _NUMBER_RE.search(text)
    return float(match.group(0)) if match else None


class AirQualityService(WmsAdapter):
    name = "air_quality"

    def __init__(
        self,
        url: str = config.CAMS_WMS_URL,
        layer: str = config.CAMS_LAYER,
        metric: str = config.CAMS_METRIC,
        units: str | None = config.CAMS_UNITS,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.url = url
        self.layer = layer
        self.metric = metric
        self.units = units

    def _visual_only(self, details: str) -> RiskLayer:
        return RiskLayer(
            ok=True,
            status=RiskStatus.VISUAL_ONLY,
            source=SOURCE,
            level=self.metric,
            unit=self.units,
            details=details,
        )

    async def fetch(self, center: Coordinate, radius_m: int = 0) -> RiskLayer:
        try:
            payload = await self.feature_info(self.url, self.layer, center, buffer_deg=0.2)
        except AdapterUnavailable:
            if await self.has_capabilities(self.url):
                return self._visual_only("CAMS layer available for display; the point value could not be sampled.")
            raise

        value = extract_value(payload)
        if value is None:
            return self._visual_only("CAMS layer available for display; no point value in the response.")

        unit = f" {self.units}" if self.units else ""
        evidence = (truncate(str(payload)),)
        logger.info("CAMS %s at (%s, %s): %s%s", self.metric, center.lat, center.lon, value, unit)
        return RiskLayer(
            ok=True,
            status=RiskStatus.OK,
            source=SOURCE,
            level=self.metric,
            value=value,
            unit=self.units,
            details=f"Estimated {self.metric}: {value:g}{unit}",
            raw_evidence=evidence,
        )
