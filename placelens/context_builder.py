"""
Context Builder: one concurrent fan-out to every upstream adapter, then the
degradation rules, then an immutable ``ContextSnapshot``.

Adapter failures never escape this module; they become ``None`` fields,
``sources_used`` flags and ``warnings`` entries. The only exception raised is
``NoViableSnapshot``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, fields
from typing import Any

import httpx

from placelens import config
from placelens.adapters import (
    Adapter,
    AirQualityService,
    AltPlacesIndex,
    Encyclopedia,
    FloodRiskService,
    KnowledgeBase,
    LandCoverClassifier,
    LandUseIndex,
    PlacesIndex,
    ReverseGeocoder,
    WaterwayIndex,
    WeatherService,
)
from placelens.cache import CacheEntry, ResilienceCache, cache_key
from placelens.errors import AdapterUnavailable, NoViableSnapshot
from placelens.geo import distance_m
from placelens.models import (
    AdminInfo,
    ContextSnapshot,
    Coordinate,
    Environment,
    LandCover,
    PROXY_MARKER,
    Place,
    Provider,
    RiskLayer,
    RiskStatus,
    SourcesUsed,
    Waterway,
)
from placelens.pois import fuse_pois

logger = logging.getLogger(__name__)

_FAILED = object()


@dataclass
class AdapterSet:
    """The adapters a builder fans out to; ``None`` means not configured."""

    geocoder: Adapter | None = None
    places: Adapter | None = None
    alt_places: Adapter | None = None
    flood: Adapter | None = None
    air_quality: Adapter | None = None
    land_cover: Adapter | None = None
    knowledge: Adapter | None = None
    encyclopedia: Adapter | None = None
    weather: Adapter | None = None
    waterways: Adapter | None = None
    land_use: Adapter | None = None

    @classmethod
    def from_config(cls, client: httpx.AsyncClient | None = None) -> AdapterSet:
        return cls(
            geocoder=ReverseGeocoder(client=client),
            places=PlacesIndex(client=client),
            alt_places=AltPlacesIndex(client=client),
            flood=FloodRiskService(client=client),
            air_quality=AirQualityService(client=client),
            land_cover=LandCoverClassifier(client=client),
            knowledge=KnowledgeBase(client=client),
            encyclopedia=Encyclopedia(client=client),
            weather=WeatherService(client=client),
            waterways=WaterwayIndex(client=client),
            land_use=LandUseIndex(client=client),
        )

    def slots(self) -> list[str]:
        return [f.name for f in fields(self)]


@dataclass(frozen=True)
class BuildResult:
    snapshot: ContextSnapshot
    warnings: tuple[str, ...]
    from_cache: bool = False
    stale: bool = False


# ------------------------------------------------------------------ #
#  Degradation rules                                                   #
# ------------------------------------------------------------------ #

def needs_flood_proxy(flood: RiskLayer) -> bool:
    return flood.status is not RiskStatus.OK or not flood.level or flood.level == "unknown"


def apply_flood_proxy(flood: RiskLayer, waterways: tuple[Waterway, ...] | list[Waterway]) -> RiskLayer:
    """Annotate a degraded flood layer with the nearest water feature.

    Only ``details`` changes; status and ok are left alone. Applying it twice
    is a no-op thanks to the marker check.
    """
    if not waterways or not needs_flood_proxy(flood) or PROXY_MARKER in flood.details:
        return flood
    nearest = waterways[0]
    note = f"{PROXY_MARKER} nearest water feature {nearest.name or nearest.kind} at {nearest.distance_m} m."
    details = f"{flood.details.rstrip()} {note}" if flood.details.strip() else note
    return flood.model_copy(update={"details": details})


def detect_coastal(waterways: list[Waterway] | None) -> bool | None:
    if waterways is None:
        return None
    return any("coastline" in w.kind.lower() for w in waterways)


def land_use_text(land_cover: LandCover | None, counts: dict[str, int]) -> str | None:
    if land_cover is not None:
        return f"CORINE: {land_cover.label} ({land_cover.code})"
    if counts:
        top = ", ".join(f"{tag} ({n})" for tag, n in list(counts.items())[:5])
        return f"OpenStreetMap land-use tags nearby: {top}"
    return None


# ------------------------------------------------------------------ #
#  Builder                                                             #
# ------------------------------------------------------------------ #

class ContextBuilder:
    def __init__(
        self,
        adapters: AdapterSet,
        cache: ResilienceCache | None = None,
        *,
        adapter_timeout_s: float = config.ADAPTER_TIMEOUT_S,
        timeouts: dict[str, float] | None = None,
    ):
        self.adapters = adapters
        self.cache = cache
        self.adapter_timeout_s = adapter_timeout_s
        self.timeouts = timeouts or {}

    async def _call(self, slot: str, center: Coordinate, radius_m: int) -> tuple[str, Any]:
        adapter = getattr(self.adapters, slot)
        if adapter is None:
            logger.debug("%s not configured", slot)
            return slot, _FAILED
        timeout = self.timeouts.get(slot, self.adapter_timeout_s)
        try:
            return slot, await asyncio.wait_for(adapter.fetch(center, radius_m), timeout)
        except asyncio.TimeoutError:
            logger.warning("%s timed out after %.1fs", slot, timeout)
        except AdapterUnavailable as exc:
            logger.warning("%s unavailable: %s", slot, exc.details)
        except Exception as exc:
            logger.error("%s failed: %s", slot, exc)
        return slot, _FAILED

    async def build(
        self,
        center: Coordinate,
        radius_m: int = config.DEFAULT_RADIUS_M,
        *,
        allow_stale: bool = False,
    ) -> BuildResult:
        key = cache_key(center, radius_m)
        if self.cache is not None:
            entry = self.cache.get(key)
            if entry is not None:
                logger.info("Context cache hit %s", key)
                return BuildResult(entry.snapshot, entry.snapshot.warnings, from_cache=True)

        pairs = await asyncio.gather(*(self._call(slot, center, radius_m) for slot in self.adapters.slots()))
        results = dict(pairs)
        ok = {slot: value is not _FAILED for slot, value in results.items()}

        if not ok["places"]:
            last_good = self.cache.last_good if self.cache is not None else None
            if allow_stale and last_good is not None:
                logger.info("Places index down, serving last known good snapshot for %s", key)
                stale = last_good.model_copy(update={
                    "stale": True,
                    "warnings": last_good.warnings + (
                        "Places index unavailable; showing the last known good snapshot from an earlier query.",
                    ),
                })
                return BuildResult(stale, stale.warnings, stale=True)
            if not ok["geocoder"]:
                raise NoViableSnapshot(f"places index and geocoder both failed for {key} and no fallback is available")

        snapshot = self._assemble(center, radius_m, results)

        if self.cache is not None and ok["places"]:
            self.cache.set(key, CacheEntry(snapshot))
            if ok["geocoder"]:
                self.cache.remember_good(snapshot)

        logger.info(
            "Built context %s: %d POIs, %d warnings",
            key, snapshot.poi_summary.total, len(snapshot.warnings),
        )
        return BuildResult(snapshot, snapshot.warnings)

    def _assemble(self, center: Coordinate, radius_m: int, results: dict[str, Any]) -> ContextSnapshot:
        warnings: list[str] = []

        def get(slot: str) -> Any:
            value = results.get(slot, _FAILED)
            return None if value is _FAILED else value

        def failed(slot: str) -> bool:
            return results.get(slot, _FAILED) is _FAILED

        # ---- place identity ---- #
        geocoded = get("geocoder")
        if geocoded is None:
            warnings.append("Reverse geocoder unavailable; the place name is approximate.")
            place = Place(name=f"{center.lat:.5f}, {center.lon:.5f}")
            admin = AdminInfo()
        else:
            place, admin = geocoded.place, geocoded.admin

        # ---- POIs ---- #
        if failed("places"):
            warnings.append("Places index (OpenStreetMap) unavailable; POI lists are limited.")
        if failed("alt_places"):
            warnings.append("Alternate places index (Geoapify) unavailable.")
        knowledge = get("knowledge")
        if failed("knowledge"):
            warnings.append("Knowledge base (Wikidata) unavailable.")

        fusion = fuse_pois(
            [
                (Provider.OSM, get("places") or []),
                (Provider.GEOAPIFY, get("alt_places") or []),
                (Provider.WIKIDATA, knowledge.nearby if knowledge else ()),
            ],
            center,
            radius_m,
        )

        # ---- waterways ---- #
        raw_waterways = get("waterways")
        if raw_waterways is None:
            warnings.append("Waterway data unavailable; coastal status unknown.")
            waterways: tuple[Waterway, ...] = ()
        else:
            waterways = tuple(sorted(
                (w.model_copy(update={"distance_m": distance_m(center, w.coordinate)}) for w in raw_waterways),
                key=lambda w: (w.distance_m, w.name or "", w.kind),
            ))
        is_coastal = detect_coastal(list(waterways) if raw_waterways is not None else None)

        # ---- flood ---- #
        flood_raw = get("flood")
        flood = flood_raw or RiskLayer.down("MITECO")
        if flood.status is RiskStatus.DOWN:
            warnings.append("Flood risk service unavailable.")
        elif flood.status is RiskStatus.VISUAL_ONLY:
            warnings.append("Flood risk is visual-only; no point reading.")
        proxied = apply_flood_proxy(flood, waterways)
        if proxied is not flood:
            warnings.append("Flood risk annotated from nearby water features (OpenStreetMap proxy, not an official reading).")
            flood = proxied

        # ---- air ---- #
        air = get("air_quality") or RiskLayer.down("Copernicus CAMS")
        if air.status is RiskStatus.DOWN:
            warnings.append("Air quality service unavailable.")
        elif air.status is RiskStatus.VISUAL_ONLY:
            warnings.append("Air quality is visual-only; no point reading.")

        # ---- land cover / land use ---- #
        land_cover = get("land_cover")
        land_use = get("land_use")
        counts = dict(sorted(land_use.counts.items(), key=lambda kv: (-kv[1], kv[0]))) if land_use else {}
        if failed("land_use"):
            warnings.append("OpenStreetMap land-use summary unavailable.")
        if land_cover is None and counts:
            warnings.append("Land cover unavailable; land use derived from OpenStreetMap tags, not an official source.")
        elif land_cover is None:
            warnings.append("No land cover or land-use data for this point.")

        # ---- weather / encyclopedia ---- #
        weather = get("weather")
        if weather is None:
            warnings.append("Weather service unavailable.")
        articles = tuple(get("encyclopedia") or ())
        if failed("encyclopedia"):
            warnings.append("Encyclopedia (Wikipedia) unavailable.")

        sources_used = SourcesUsed(
            reverse_geocoder=geocoded is not None,
            places_index=not failed("places"),
            alt_places=not failed("alt_places"),
            flood_risk=flood_raw is not None and flood_raw.usable,
            air_quality=air.usable,
            land_cover=land_cover is not None,
            knowledge_base=knowledge is not None,
            encyclopedia=bool(articles),
            weather=weather is not None,
            waterways=raw_waterways is not None,
            land_use=bool(counts),
        )

        return ContextSnapshot(
            center=center,
            radius_m=radius_m,
            place=place,
            admin=admin,
            pois_by_category=fusion.pois_by_category,
            poi_summary=fusion.summary,
            land_cover=land_cover,
            flood_risk=flood,
            air_quality=air,
            environment=Environment(
                land_use_summary=land_use_text(land_cover, counts),
                land_use_counts=counts,
                nearest_waterways=waterways[:5],
                elevation_m=weather.elevation_m if weather else None,
                is_coastal=is_coastal,
                weather=weather,
            ),
            knowledge=knowledge,
            articles=articles,
            sources_used=sources_used,
            warnings=tuple(warnings),
        )
