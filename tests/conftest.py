"""
Shared fixtures: fake adapters, coordinate helpers and a snapshot factory.

Nothing here touches the network.
"""

from __future__ import annotations

import asyncio
import math

import pytest

from placelens.geo import EARTH_RADIUS_M
from placelens.llm import ModelTurn
from placelens.models import (
    CATEGORY_ORDER,
    AdminInfo,
    ContextSnapshot,
    Coordinate,
    GeocodedPlace,
    LandUseSummary,
    Place,
    PointOfInterest,
    PoiSummary,
    Provider,
    RiskLayer,
    RiskStatus,
    SourcesUsed,
    WeatherReading,
)

MADRID = Coordinate(lat=40.4168, lon=-3.7038)


def offset(center: Coordinate, north_m: float = 0.0, east_m: float = 0.0) -> Coordinate:
    """Point ``north_m`` / ``east_m`` metres away on the same sphere as geo.haversine_m."""
    dlat = math.degrees(north_m / EARTH_RADIUS_M)
    dlon = math.degrees(east_m / (EARTH_RADIUS_M * math.cos(math.radians(center.lat))))
    return Coordinate(lat=center.lat + dlat, lon=center.lon + dlon)


def make_poi(
    name: str,
    category,
    distance: int,
    *,
    provider: Provider = Provider.OSM,
    rating: float | None = None,
    center: Coordinate = MADRID,
) -> PointOfInterest:
    return PointOfInterest(
        name=name,
        coordinate=offset(center, north_m=distance),
        distance_m=distance,
        category=category,
        source_provider=provider,
        rating=rating,
    )


def build_snapshot(
    pois=(),
    *,
    center: Coordinate = MADRID,
    radius_m: int = 1200,
    flood: RiskLayer | None = None,
    air: RiskLayer | None = None,
    sources: SourcesUsed | None = None,
    **overrides,
) -> ContextSnapshot:
    buckets: dict = {}
    for poi in pois:
        buckets.setdefault(poi.category, []).append(poi)
    fused = {
        category: tuple(sorted(buckets[category], key=lambda p: (p.distance_m, p.name)))
        for category in CATEGORY_ORDER
        if category in buckets
    }
    counts = {category: len(items) for category, items in fused.items()}
    fields = dict(
        center=center,
        radius_m=radius_m,
        place=Place(name="Puerta del Sol", municipality="Madrid"),
        admin=AdminInfo(municipality="Madrid", country="España"),
        pois_by_category=fused,
        poi_summary=PoiSummary(counts=counts, total=sum(counts.values())),
        flood_risk=flood or RiskLayer(ok=True, status=RiskStatus.OK, source="MITECO", level="low"),
        air_quality=air or RiskLayer.down("Copernicus CAMS"),
        sources_used=sources or SourcesUsed(reverse_geocoder=True, places_index=True, flood_risk=True),
    )
    fields.update(overrides)
    return ContextSnapshot(**fields)


class FakeAdapter:
    """Returns ``result`` (or raises ``exc``) after an optional delay."""

    def __init__(self, name: str, result=None, *, exc: Exception | None = None, delay: float = 0.0):
        self.name = name
        self.result = result
        self.exc = exc
        self.delay = delay
        self.calls = 0

    async def fetch(self, center, radius_m):
        self.calls += 1
        if self.delay:
            await asyncio.sleep(self.delay)
        if self.exc is not None:
            raise self.exc
        return self.result


class ScriptedBackend:
    """Generative backend replaying a list of turns (or exceptions)."""

    def __init__(self, *turns, delay: float = 0.0):
        self.turns = list(turns)
        self.delay = delay
        self.calls: list[list[dict]] = []

    async def complete(self, messages, *, tools=None, json_mode=False):
        self.calls.append([dict(m) for m in messages])
        if self.delay:
            await asyncio.sleep(self.delay)
        turn = self.turns.pop(0) if len(self.turns) > 1 else self.turns[0]
        if isinstance(turn, Exception):
            raise turn
        if isinstance(turn, str):
            return ModelTurn(content=turn)
        return turn


# ---------- fixtures ---------- #

@pytest.fixture
def madrid() -> Coordinate:
    return MADRID


@pytest.fixture
def geocoded() -> GeocodedPlace:
    return GeocodedPlace(
        place=Place(name="Puerta del Sol", address="Puerta del Sol, Madrid", municipality="Madrid", category="highway"),
        admin=AdminInfo(municipality="Madrid", district="Centro", country="España"),
    )


@pytest.fixture
def empty_adapters(geocoded):
    """Every slot answers, but with nothing in it."""
    return dict(
        geocoder=FakeAdapter("nominatim", geocoded),
        places=FakeAdapter("overpass", []),
        alt_places=FakeAdapter("geoapify", []),
        flood=FakeAdapter("flood", RiskLayer(ok=True, status=RiskStatus.OK, source="MITECO", level="low")),
        air_quality=FakeAdapter("air_quality", RiskLayer(
            ok=True, status=RiskStatus.OK, source="Copernicus CAMS", level="PM2.5", value=9.0, unit="µg/m³",
        )),
        land_cover=FakeAdapter("land_cover", None),
        knowledge=FakeAdapter("wikidata", None),
        encyclopedia=FakeAdapter("wikipedia", []),
        weather=FakeAdapter("open_meteo", WeatherReading(temperature_c=21.0, description="Clear sky", elevation_m=657)),
        waterways=FakeAdapter("overpass_waterways", []),
        land_use=FakeAdapter("overpass_landuse", LandUseSummary()),
    )
