"""
Typed records shared by the adapters, the context builder and the reporters.

Everything that ends up inside a ``ContextSnapshot`` is frozen; a snapshot is
built once per (center, radius) query and only ever replaced, never edited.
"""

from __future__ import annotations

from enum import Enum
from typing import Annotated

from pydantic import BaseModel, ConfigDict, Field, StringConstraints, model_validator


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


NonEmptyStr = Annotated[str, StringConstraints(strip_whitespace=True, min_length=1)]


# ---------- Geometry ---------- #

class Coordinate(_Frozen):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)


# ---------- Points of interest ---------- #

class PoiCategory(str, Enum):
    RESTAURANT = "restaurant"
    FAST_FOOD = "fast_food"
    BAR = "bar"
    CLUB = "club"
    CAFE = "cafe"
    PHARMACY = "pharmacy"
    HOSPITAL = "hospital"
    SCHOOL = "school"
    SUPERMARKET = "supermarket"
    TRANSPORT = "transport"
    HOTEL = "hotel"
    ATTRACTION = "attraction"
    MUSEUM = "museum"
    VIEWPOINT = "viewpoint"


CATEGORY_ORDER: tuple[PoiCategory, ...] = tuple(PoiCategory)


class Provider(str, Enum):
    OSM = "osm"
    GEOAPIFY = "geoapify"
    WIKIDATA = "wikidata"


# De-duplication winner order; never arrival order.
PROVIDER_PRIORITY: tuple[Provider, ...] = (Provider.OSM, Provider.GEOAPIFY, Provider.WIKIDATA)


class RawPlace(_Frozen):
    """A place record as handed over by an adapter, before fusion."""

    name: str | None = None
    coordinate: Coordinate | None = None
    kinds: tuple[str, ...] = ()
    provider: Provider
    cuisine: str | None = None
    price_range: str | None = None
    rating: float | None = None


class PointOfInterest(_Frozen):
    name: str
    coordinate: Coordinate
    distance_m: int
    category: PoiCategory
    source_provider: Provider
    cuisine: str | None = None
    price_range: str | None = None
    rating: float | None = None


class PoiSummary(_Frozen):
    counts: dict[PoiCategory, int] = Field(default_factory=dict)
    total: int = 0


# ---------- Risk layers ---------- #

class RiskStatus(str, Enum):
    OK = "OK"
    DOWN = "DOWN"
    VISUAL_ONLY = "VISUAL_ONLY"


# Prefix of the note added to a degraded flood layer from nearby water features.
PROXY_MARKER = "OSM proxy:"


class RiskLayer(_Frozen):
    """Flood or air-quality reading.

    ``level`` holds the qualitative level or the metric name, ``value`` the
    numeric reading. A VISUAL_ONLY layer can be drawn on a map but carries no
    trustworthy number, so ``value`` must stay empty.
    """

    ok: bool
    status: RiskStatus
    source: str
    level: str | None = None
    value: float | None = None
    unit: str | None = None
    details: str = ""
    raw_evidence: tuple[str, ...] = ()

    @model_validator(mode="after")
    def _check_flags(self) -> RiskLayer:
        if self.status is RiskStatus.DOWN and self.ok:
            raise ValueError("status DOWN requires ok=False")
        if self.status is RiskStatus.OK and not self.ok:
            raise ValueError("status OK requires ok=True")
        if self.status is RiskStatus.VISUAL_ONLY:
            if not self.ok:
                raise ValueError("status VISUAL_ONLY requires ok=True")
            if self.value is not None:
                raise ValueError("VISUAL_ONLY layers carry no numeric value")
        return self

    @classmethod
    def down(cls, source: str, details: str = "Service unavailable") -> RiskLayer:
        return cls(ok=False, status=RiskStatus.DOWN, source=source, details=details)

    @property
    def usable(self) -> bool:
        return self.status is RiskStatus.OK


# ---------- Environment ---------- #

class LandCover(_Frozen):
    code: str
    label: str
    source: str


class Waterway(_Frozen):
    name: str | None = None
    kind: str
    coordinate: Coordinate
    distance_m: int = 0


class WeatherReading(_Frozen):
    temperature_c: float | None = None
    wind_kph: float | None = None
    precipitation_mm: float | None = None
    weather_code: int | None = None
    description: str | None = None
    observed_at: str | None = None
    elevation_m: float | None = None


class LandUseSummary(_Frozen):
    counts: dict[str, int] = Field(default_factory=dict)


class Environment(_Frozen):
    land_use_summary: str | None = None
    land_use_counts: dict[str, int] = Field(default_factory=dict)
    nearest_waterways: tuple[Waterway, ...] = ()
    elevation_m: float | None = None
    is_coastal: bool | None = None
    weather: WeatherReading | None = None


# ---------- Knowledge ---------- #

class KnowledgeFacts(_Frozen):
    entity_id: str
    label: str | None = None
    description: str | None = None
    url: str
    facts: tuple[str, ...] = ()
    nearby: tuple[RawPlace, ...] = ()


class Article(_Frozen):
    title: str
    url: str
    distance_m: int | None = None


# ---------- Place identity ---------- #

class AdminInfo(_Frozen):
    municipality: str | None = None
    district: str | None = None
    neighbourhood: str | None = None
    province: str | None = None
    region: str | None = None
    country: str | None = None
    postcode: str | None = None
    road: str | None = None
    house_number: str | None = None


class Place(_Frozen):
    name: str
    address: str | None = None
    municipality: str | None = None
    category: str | None = None


class GeocodedPlace(_Frozen):
    place: Place
    admin: AdminInfo = Field(default_factory=AdminInfo)


class AddressMatch(_Frozen):
    display_name: str
    coordinate: Coordinate


# ---------- Snapshot ---------- #

SOURCE_LABELS: dict[str, str] = {
    "reverse_geocoder": "OpenStreetMap Nominatim",
    "places_index": "OpenStreetMap Overpass",
    "alt_places": "Geoapify",
    "flood_risk": "MITECO flood hazard maps",
    "air_quality": "Copernicus CAMS",
    "land_cover": "Copernicus CORINE Land Cover",
    "knowledge_base": "Wikidata",
    "encyclopedia": "Wikipedia",
    "weather": "Open-Meteo",
    "waterways": "OpenStreetMap waterways",
    "land_use": "OpenStreetMap land use",
}


class SourcesUsed(_Frozen):
    """Audit trail: a flag is set only when that adapter returned usable data."""

    reverse_geocoder: bool = False
    places_index: bool = False
    alt_places: bool = False
    flood_risk: bool = False
    air_quality: bool = False
    land_cover: bool = False
    knowledge_base: bool = False
    encyclopedia: bool = False
    weather: bool = False
    waterways: bool = False
    land_use: bool = False

    def labels(self) -> list[str]:
        return [label for field, label in SOURCE_LABELS.items() if getattr(self, field)]


class ContextSnapshot(_Frozen):
    center: Coordinate
    radius_m: int
    place: Place
    admin: AdminInfo = Field(default_factory=AdminInfo)
    pois_by_category: dict[PoiCategory, tuple[PointOfInterest, ...]] = Field(default_factory=dict)
    poi_summary: PoiSummary = Field(default_factory=PoiSummary)
    land_cover: LandCover | None = None
    flood_risk: RiskLayer
    air_quality: RiskLayer
    environment: Environment = Field(default_factory=Environment)
    knowledge: KnowledgeFacts | None = None
    articles: tuple[Article, ...] = ()
    sources_used: SourcesUsed = Field(default_factory=SourcesUsed)
    warnings: tuple[str, ...] = ()
    stale: bool = False

    def pois(self, category: PoiCategory) -> tuple[PointOfInterest, ...]:
        return self.pois_by_category.get(category, ())

    def all_pois(self) -> list[PointOfInterest]:
        out: list[PointOfInterest] = []
        for category in CATEGORY_ORDER:
            out.extend(self.pois(category))
        return out

    def names(self, category: PoiCategory) -> set[str]:
        return {poi.name for poi in self.pois(category)}

    def reduced(self, k: int) -> ContextSnapshot:
        """Same snapshot keeping only the nearest ``k`` POIs per category."""
        trimmed = {cat: items[:k] for cat, items in self.pois_by_category.items()}
        return self.model_copy(update={"pois_by_category": trimmed})


# ---------- Report ---------- #

class ReportItem(_Frozen):
    name: NonEmptyStr
    category: PoiCategory
    distance_m: int | None = None


class Report(_Frozen):
    summary: NonEmptyStr
    nearby_highlights: tuple[ReportItem, ...]
    categories: dict[PoiCategory, tuple[ReportItem, ...]]
    risks: NonEmptyStr
    land_use: NonEmptyStr
    recommendation: NonEmptyStr
    sources: tuple[str, ...]
    limitations: tuple[str, ...]
    insufficient_data: bool
