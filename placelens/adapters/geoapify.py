"""Geoapify Places: the alternate places index."""

from __future__ import annotations

import logging
from typing import Any

from placelens import config
from placelens.adapters.base import HttpAdapter, to_float
from placelens.errors import AdapterUnavailable
from placelens.models import Coordinate, Provider, RawPlace

logger = logging.getLogger(__name__)

CATEGORIES = (
    "catering.restaurant",
    "catering.fast_food",
    "catering.cafe",
    "catering.bar",
    "catering.pub",
    "entertainment.nightclub",
    "commercial.supermarket",
    "healthcare.pharmacy",
    "healthcare.hospital",
    "education.school",
    "public_transport",
    "accommodation.hotel",
    "tourism.attraction",
    "entertainment.museum",
    "tourism.sights",
)


def feature_to_place(feature: dict[str, Any]) -> RawPlace | None:
    props = feature.get("properties") or {}
    coords = (feature.get("geometry") or {}).get("coordinates") or []
    lon = to_float(coords[0]) if len(coords) >= 2 else to_float(props.get("lon"))
    lat = to_float(coords[1]) if len(coords) >= 2 else to_float(props.get("lat"))
    if lat is None or lon is None:
        return None
    name = props.get("name") if isinstance(props.get("name"), str) else None
    categories = tuple(c for c in props.get("categories") or [] if isinstance(c, str))
    catering = props.get("catering") or {}
    raw = (props.get("datasource") or {}).get("raw") or {}
    return RawPlace(
        name=name,
        coordinate=Coordinate(lat=lat, lon=lon),
        kinds=categories,
        provider=Provider.GEOAPIFY,
        cuisine=catering.get("cuisine") if isinstance(catering, dict) else None,
        rating=to_float(raw.get("stars")) if isinstance(raw, dict) else None,
    )


class AltPlacesIndex(HttpAdapter):
    name = "geoapify"

    def __init__(
        self,
        api_key: str | None = config.GEOAPIFY_API_KEY,
        url: str = config.GEOAPIFY_API_URL,
        limit: int = 60,
        **kwargs: Any,
    ):
        super().__init__(**kwargs)
        self.api_key = api_key
        self.url = url
        self.limit = max(10, min(limit, 100))

    async def fetch(self, center: Coordinate, radius_m: int) -> list[RawPlace]:
        if not self.api_key:
            raise AdapterUnavailable(self.name, "GEOAPIFY_API_KEY not set")
        data = await self._get_json(
            self.url,
            params={
                "categories": ",".join(CATEGORIES),
                "filter": f"circle:{center.lon},{center.lat},{int(radius_m)}",
                "bias": f"proximity:{center.lon},{center.lat}",
                "limit": self.limit,
                "apiKey": self.api_key,
            },
        )
        features = data.get("features") if isinstance(data, dict) else None
        if not isinstance(features, list):
            raise AdapterUnavailable(self.name, "unexpected payload")
        places = [p for p in (feature_to_place(f) for f in features if isinstance(f, dict)) if p]
        logger.info("Geoapify: %d places", len(places))
        return places
