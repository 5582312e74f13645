"""
Overpass API adapters: the primary places index, the tag-filtered on-demand
query used by chat, nearest waterways and the land-use tag summary.
"""

from __future__ import annotations

import logging
import re
from collections import Counter
from typing import Any

from placelens import config
from placelens.adapters.base import HttpAdapter
from placelens.errors import AdapterUnavailable
from placelens.models import Coordinate, LandUseSummary, Provider, RawPlace, Waterway
from placelens.geo import distance_m

logger = logging.getLogger(__name__)

# Tag keys whose value identifies what a POI is, in lookup order.
_KIND_KEYS = ("amenity", "shop", "tourism", "highway", "public_transport", "railway", "leisure")

_POI_FILTERS = (
    '["amenity"~"^(restaurant|fast_food|bar|pub|nightclub|cafe|pharmacy|hospital|clinic|doctors'
    '|school|college|university|bus_station)$"]',
    '["shop"="supermarket"]',
    '["tourism"~"^(hotel|hostel|guest_house|attraction|museum|viewpoint)$"]',
    '["highway"="bus_stop"]',
    '["public_transport"~"^(platform|station)$"]',
    '["railway"~"^(station|subway_entrance)$"]',
)

_KEY_RE = re.compile(r"^[a-zA-Z0-9:_-]+$")


def _around(radius_m: int, center: Coordinate) -> str:
    return f"(around:{int(radius_m)},{center.lat},{center.lon})"


def build_union_query(filters: tuple[str, ...] | list[str], radius_m: int, center: Coordinate, limit: int = 120) -> str:
    around = _around(radius_m, center)
    lines = [
        f"  {element}{flt}{around};"
        for flt in filters
        for element in ("node", "way", "relation")
    ]
    return "[out:json][timeout:25];\n(\n" + "\n".join(lines) + f"\n);\nout center {limit};\n"


def parse_tag_filters(tags: list[str]) -> list[str]:
    """Turn ``key=value`` / ``key~regex`` strings into Overpass filter clauses.

    Keys that are not plain OSM keys are discarded; quotes are stripped from
    values so user text cannot break out of the query.
    """
    filters: list[str] = []
    for raw in tags:
        text = re.sub(r"\s+", "", raw or "")
        if not text:
            continue
        op = "~" if "~" in text else "="
        key, _, value = text.partition(op)
        value = value.replace('"', "")
        if not key or not value or not _KEY_RE.match(key):
            logger.debug("Dropping unusable tag filter %r", raw)
            continue
        if "|" in value or "*" in value:
            op = "~"
        filters.append(f'["{key}"{op}"{value}"]')
    return filters


def _element_point(element: dict[str, Any]) -> Coordinate | None:
    lat = element.get("lat")
    lon = element.get("lon")
    if lat is None or lon is None:
        center = element.get("center") or {}
        lat, lon = center.get("lat"), center.get("lon")
    if not isinstance(lat, (int, float)) or not isinstance(lon, (int, float)):
        return None
    return Coordinate(lat=lat, lon=lon)


def element_to_place(element: dict[str, Any]) -> RawPlace | None:
    tags = element.get("tags") or {}
    point = _element_point(element)
    if point is None:
        return None
    kinds = tuple(f"{key}={tags[key]}" for key in _KIND_KEYS if tags.get(key))
    name = (tags.get("name") or tags.get("brand") or tags.get("operator") or "").strip() or None
    price = tags.get("price") or tags.get("price_range") or tags.get("price:range")
    return RawPlace(
        name=name,
        coordinate=point,
        kinds=kinds,
        provider=Provider.OSM,
        cuisine=tags.get("cuisine"),
        price_range=price,
    )


class _OverpassAdapter(HttpAdapter):
    def __init__(self, url: str = config.OVERPASS_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self.url = url

    async def _run(self, query: str) -> list[dict[str, Any]]:
        data = await self._post_json(
            self.url,
            content=query,
            headers={"Content-Type": "text/plain"},
        )
        if not isinstance(data, dict):
            raise AdapterUnavailable(self.name, "unexpected payload")
        if data.get("remark") and not data.get("elements"):
            # Overpass reports its own timeouts/overload as a 200 with a remark.
            raise AdapterUnavailable(self.name, str(data["remark"])[:120])
        elements = data.get("elements") or []
        return [el for el in elements if isinstance(el, dict)]


class PlacesIndex(_OverpassAdapter):
    name = "overpass"

    async def fetch(self, center: Coordinate, radius_m: int) -> list[RawPlace]:
        elements = await self._run(build_union_query(_POI_FILTERS, radius_m, center))
        places = [p for p in (element_to_place(el) for el in elements) if p is not None]
        logger.info("Overpass: %d elements -> %d places around (%s, %s)", len(elements), len(places), center.lat, center.lon)
        return places

    async def fetch_by_tags(self, center: Coordinate, radius_m: int, tags: list[str]) -> list[RawPlace]:
        filters = parse_tag_filters(tags)
        if not filters:
            return []
        elements = await self._run(build_union_query(filters, radius_m, center))
        return [p for p in (element_to_place(el) for el in elements) if p is not None]


_WATER_FILTERS = (
    '["waterway"~"^(river|stream|canal|riverbank)$"]',
    '["natural"~"^(water|coastline|bay|beach)$"]',
)


class WaterwayIndex(_OverpassAdapter):
    """Nearest water features; searches twice the query radius, capped at 4 km."""

    name = "overpass_waterways"
    max_radius_m = 4000

    async def fetch(self, center: Coordinate, radius_m: int) -> list[Waterway]:
        search_radius = min(radius_m * 2, self.max_radius_m)
        elements = await self._run(build_union_query(_WATER_FILTERS, search_radius, center, limit=60))
        out: list[Waterway] = []
        for el in elements:
            tags = el.get("tags") or {}
            point = _element_point(el)
            if point is None:
                continue
            kind = tags.get("waterway") or tags.get("natural") or "water"
            out.append(Waterway(
                name=tags.get("name"),
                kind=kind,
                coordinate=point,
                distance_m=distance_m(center, point),
            ))
        out.sort(key=lambda w: (w.distance_m, w.name or "", w.kind))
        return out[:10]


class LandUseIndex(_OverpassAdapter):
    """Counts of ``landuse=*`` / ``leisure=park`` areas around the point."""

    name = "overpass_landuse"
    max_radius_m = 2500

    async def fetch(self, center: Coordinate, radius_m: int) -> LandUseSummary:
        search_radius = min(radius_m * 2, self.max_radius_m)
        around = _around(search_radius, center)
        query = (
            "[out:json][timeout:25];\n(\n"
            f'  way["landuse"]{around};\n'
            f'  relation["landuse"]{around};\n'
            f'  way["leisure"="park"]{around};\n'
            ");\nout tags 200;\n"
        )
        elements = await self._run(query)
        counts: Counter[str] = Counter()
        for el in elements:
            tags = el.get("tags") or {}
            value = tags.get("landuse") or ("park" if tags.get("leisure") == "park" else None)
            if value:
                counts[value] += 1
        return LandUseSummary(counts=dict(counts.most_common()))
