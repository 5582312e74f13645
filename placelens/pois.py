"""
POI Fusion: classify, de-duplicate and sort place records coming from several
providers into the closed category set.

The mapping tables below are the only place where provider type strings meet
``PoiCategory``; anything not listed is dropped rather than guessed.
"""

from __future__ import annotations

import logging
import re
import unicodedata
from dataclasses import dataclass
from typing import Iterable, Sequence

from placelens.geo import distance_m, haversine_m
from placelens.models import (
    CATEGORY_ORDER,
    PROVIDER_PRIORITY,
    Coordinate,
    PoiCategory,
    PoiSummary,
    PointOfInterest,
    Provider,
    RawPlace,
)

logger = logging.getLogger(__name__)

DEDUP_TOLERANCE_M = 30.0

# ------------------------------------------------------------------ #
#  Provider type string -> category                                   #
# ------------------------------------------------------------------ #

_OSM_KINDS: dict[str, PoiCategory] = {
    "amenity=restaurant": PoiCategory.RESTAURANT,
    "amenity=fast_food": PoiCategory.FAST_FOOD,
    "amenity=bar": PoiCategory.BAR,
    "amenity=pub": PoiCategory.BAR,
    "amenity=nightclub": PoiCategory.CLUB,
    "amenity=cafe": PoiCategory.CAFE,
    "amenity=pharmacy": PoiCategory.PHARMACY,
    "amenity=hospital": PoiCategory.HOSPITAL,
    "amenity=clinic": PoiCategory.HOSPITAL,
    "amenity=doctors": PoiCategory.HOSPITAL,
    "amenity=school": PoiCategory.SCHOOL,
    "amenity=college": PoiCategory.SCHOOL,
    "amenity=university": PoiCategory.SCHOOL,
    "amenity=bus_station": PoiCategory.TRANSPORT,
    "highway=bus_stop": PoiCategory.TRANSPORT,
    "public_transport=platform": PoiCategory.TRANSPORT,
    "public_transport=station": PoiCategory.TRANSPORT,
    "railway=station": PoiCategory.TRANSPORT,
    "railway=subway_entrance": PoiCategory.TRANSPORT,
    "shop=supermarket": PoiCategory.SUPERMARKET,
    "tourism=hotel": PoiCategory.HOTEL,
    "tourism=hostel": PoiCategory.HOTEL,
    "tourism=guest_house": PoiCategory.HOTEL,
    "tourism=attraction": PoiCategory.ATTRACTION,
    "tourism=museum": PoiCategory.MUSEUM,
    "tourism=viewpoint": PoiCategory.VIEWPOINT,
}

_GEOAPIFY_KINDS: dict[str, PoiCategory] = {
    "catering.restaurant": PoiCategory.RESTAURANT,
    "catering.fast_food": PoiCategory.FAST_FOOD,
    "catering.cafe": PoiCategory.CAFE,
    "catering.bar": PoiCategory.BAR,
    "catering.pub": PoiCategory.BAR,
    "entertainment.nightclub": PoiCategory.CLUB,
    "adult.nightclub": PoiCategory.CLUB,
    "commercial.supermarket": PoiCategory.SUPERMARKET,
    "healthcare.pharmacy": PoiCategory.PHARMACY,
    "service.pharmacy": PoiCategory.PHARMACY,
    "healthcare.hospital": PoiCategory.HOSPITAL,
    "healthcare.clinic_or_praxis": PoiCategory.HOSPITAL,
    "education.school": PoiCategory.SCHOOL,
    "education.university": PoiCategory.SCHOOL,
    "public_transport": PoiCategory.TRANSPORT,
    "public_transport.bus": PoiCategory.TRANSPORT,
    "public_transport.subway": PoiCategory.TRANSPORT,
    "public_transport.train": PoiCategory.TRANSPORT,
    "accommodation.hotel": PoiCategory.HOTEL,
    "accommodation.hostel": PoiCategory.HOTEL,
    "accommodation.guest_house": PoiCategory.HOTEL,
    "tourism.attraction": PoiCategory.ATTRACTION,
    "tourism.sights": PoiCategory.ATTRACTION,
    "tourism.museum": PoiCategory.MUSEUM,
    "entertainment.museum": PoiCategory.MUSEUM,
    "tourism.viewpoint": PoiCategory.VIEWPOINT,
    "tourism.attraction.viewpoint": PoiCategory.VIEWPOINT,
}

# Wikidata "instance of" items.
_WIKIDATA_KINDS: dict[str, PoiCategory] = {
    "wikidata:Q11707": PoiCategory.RESTAURANT,
    "wikidata:Q1751429": PoiCategory.FAST_FOOD,
    "wikidata:Q187456": PoiCategory.BAR,
    "wikidata:Q212198": PoiCategory.BAR,
    "wikidata:Q622425": PoiCategory.CLUB,
    "wikidata:Q30022": PoiCategory.CAFE,
    "wikidata:Q13107184": PoiCategory.PHARMACY,
    "wikidata:Q16917": PoiCategory.HOSPITAL,
    "wikidata:Q3914": PoiCategory.SCHOOL,
    "wikidata:Q3918": PoiCategory.SCHOOL,
    "wikidata:Q180846": PoiCategory.SUPERMARKET,
    "wikidata:Q55488": PoiCategory.TRANSPORT,
    "wikidata:Q928830": PoiCategory.TRANSPORT,
    "wikidata:Q494829": PoiCategory.TRANSPORT,
    "wikidata:Q27686": PoiCategory.HOTEL,
    "wikidata:Q570116": PoiCategory.ATTRACTION,
    "wikidata:Q4989906": PoiCategory.ATTRACTION,
    "wikidata:Q33506": PoiCategory.MUSEUM,
    "wikidata:Q207694": PoiCategory.MUSEUM,
    "wikidata:Q6017969": PoiCategory.VIEWPOINT,
}

CATEGORY_TABLES: dict[Provider, dict[str, PoiCategory]] = {
    Provider.OSM: _OSM_KINDS,
    Provider.GEOAPIFY: _GEOAPIFY_KINDS,
    Provider.WIKIDATA: _WIKIDATA_KINDS,
}


def classify(record: RawPlace) -> PoiCategory | None:
    """Map a raw record to a category, or None when no kind is in the table.

    Kinds are tried most specific first (Geoapify sends the whole hierarchy).
    """
    table = CATEGORY_TABLES.get(record.provider, {})
    for kind in sorted(record.kinds, key=lambda k: (-k.count("."), k)):
        category = table.get(kind)
        if category is not None:
            return category
    return None


# ------------------------------------------------------------------ #
#  Name normalisation                                                  #
# ------------------------------------------------------------------ #

_NON_WORD = re.compile(r"[^\w]+", re.UNICODE)


def normalize_name(name: str) -> str:
    decomposed = unicodedata.normalize("NFKD", name)
    ascii_only = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return _NON_WORD.sub(" ", ascii_only.casefold()).strip()


# ------------------------------------------------------------------ #
#  Fusion                                                              #
# ------------------------------------------------------------------ #

@dataclass(frozen=True)
class FusionResult:
    pois_by_category: dict[PoiCategory, tuple[PointOfInterest, ...]]
    summary: PoiSummary


def _priority(provider: Provider) -> int:
    try:
        return PROVIDER_PRIORITY.index(provider)
    except ValueError:
        return len(PROVIDER_PRIORITY)


def _merge(winner: PointOfInterest, loser: PointOfInterest) -> PointOfInterest:
    update = {}
    for attr in ("cuisine", "price_range", "rating"):
        if getattr(winner, attr) is None and getattr(loser, attr) is not None:
            update[attr] = getattr(loser, attr)
    return winner.model_copy(update=update) if update else winner


def _dedupe(candidates: list[PointOfInterest]) -> list[PointOfInterest]:
    # Candidates arrive in a canonical order, so the first of a cluster wins.
    kept: list[PointOfInterest] = []
    keys: list[str] = []
    for poi in candidates:
        key = normalize_name(poi.name)
        for i, existing in enumerate(kept):
            if keys[i] != key:
                continue
            gap = haversine_m(
                existing.coordinate.lat, existing.coordinate.lon,
                poi.coordinate.lat, poi.coordinate.lon,
            )
            if gap <= DEDUP_TOLERANCE_M:
                kept[i] = _merge(existing, poi)
                break
        else:
            kept.append(poi)
            keys.append(key)
    return kept


def fuse_pois(
    sources: Iterable[tuple[Provider, Sequence[RawPlace]]],
    center: Coordinate,
    radius_m: int,
) -> FusionResult:
    """Fuse provider record lists into distance-sorted category buckets."""
    buckets: dict[PoiCategory, list[PointOfInterest]] = {}
    dropped = 0

    for provider, records in sources:
        for record in records:
            name = (record.name or "").strip()
            if not name or record.coordinate is None:
                dropped += 1
                continue
            d = distance_m(center, record.coordinate)
            if d > radius_m:
                dropped += 1
                continue
            category = classify(record)
            if category is None:
                dropped += 1
                continue
            buckets.setdefault(category, []).append(
                PointOfInterest(
                    name=name,
                    coordinate=record.coordinate,
                    distance_m=d,
                    category=category,
                    source_provider=provider,
                    cuisine=record.cuisine,
                    price_range=record.price_range,
                    rating=record.rating,
                )
            )

    fused: dict[PoiCategory, tuple[PointOfInterest, ...]] = {}
    for category in CATEGORY_ORDER:
        items = buckets.get(category)
        if not items:
            continue
        items.sort(key=lambda p: (
            _priority(p.source_provider), normalize_name(p.name),
            p.coordinate.lat, p.coordinate.lon, p.name,
        ))
        unique = _dedupe(items)
        unique.sort(key=lambda p: (p.distance_m, _priority(p.source_provider), p.name))
        fused[category] = tuple(unique)

    counts = {cat: len(items) for cat, items in fused.items()}
    total = sum(counts.values())
    logger.debug("Fused %d POIs in %d categories (%d raw records dropped)", total, len(fused), dropped)
    return FusionResult(pois_by_category=fused, summary=PoiSummary(counts=counts, total=total))
