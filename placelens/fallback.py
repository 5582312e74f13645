"""
Deterministic fallback reporter.

Builds a complete ``Report`` from the snapshot alone, with fixed sentence
templates. Same snapshot in, same report out; the result always passes
``validate_report`` against that snapshot.
"""

from __future__ import annotations

from placelens.models import (
    CATEGORY_ORDER,
    PROXY_MARKER,
    ContextSnapshot,
    PointOfInterest,
    Report,
    ReportItem,
    RiskLayer,
    RiskStatus,
)

HIGHLIGHT_COUNT = 6
ITEMS_PER_CATEGORY = 5

_CATEGORY_RANK = {category: i for i, category in enumerate(CATEGORY_ORDER)}

QUALITATIVE_NOTE = (
    "Qualitative data such as ambience, service quality and current prices is not available "
    "from the sources consulted."
)


def density_label(total: int) -> str:
    if total >= 30:
        return "high"
    if total >= 12:
        return "medium"
    return "low"


def _item(poi: PointOfInterest) -> ReportItem:
    return ReportItem(name=poi.name, category=poi.category, distance_m=poi.distance_m)


def _highlights(snapshot: ContextSnapshot) -> tuple[ReportItem, ...]:
    ranked = sorted(
        snapshot.all_pois(),
        key=lambda p: (p.distance_m, _CATEGORY_RANK[p.category], p.name),
    )
    return tuple(_item(p) for p in ranked[:HIGHLIGHT_COUNT])


def _risk_sentence(label: str, layer: RiskLayer) -> str | None:
    if layer.status is RiskStatus.DOWN:
        return None
    if layer.status is RiskStatus.VISUAL_ONLY:
        return f"{label}: only a visual map layer is available from {layer.source}; no point reading."
    if layer.value is not None:
        unit = f" {layer.unit}" if layer.unit else ""
        metric = layer.level or "value"
        return f"{label}: {metric} {layer.value:g}{unit} ({layer.source})."
    if layer.level:
        return f"{label}: {layer.level} ({layer.source})."
    # The proxy note is rendered separately.
    details = layer.details.split(PROXY_MARKER, 1)[0].strip().rstrip(".")
    return f"{label}: {details or 'no level reported'} ({layer.source})."


def _risks_text(snapshot: ContextSnapshot) -> str:
    parts = []
    flood = _risk_sentence("Flood risk", snapshot.flood_risk)
    if flood:
        parts.append(flood)
    details = snapshot.flood_risk.details
    if PROXY_MARKER in details:
        proxy = details[details.index(PROXY_MARKER):]
        parts.append(f"Flood context ({proxy.strip()}) This is not an official hazard reading.")
    air = _risk_sentence("Air quality", snapshot.air_quality)
    if air:
        parts.append(air)
    if snapshot.environment.is_coastal:
        parts.append("The area is near the coastline.")
    return " ".join(parts) or "No official risk readings are available for this point."


def _land_use_text(snapshot: ContextSnapshot) -> str:
    env = snapshot.environment
    parts = []
    if env.land_use_summary:
        parts.append(f"{env.land_use_summary}.")
    if env.elevation_m is not None:
        parts.append(f"Elevation about {env.elevation_m:.0f} m.")
    return " ".join(parts) or "Land use could not be determined for this point."


def _summary_text(snapshot: ContextSnapshot, total: int, density: str) -> str:
    where = snapshot.place.name
    if snapshot.admin.municipality and snapshot.admin.municipality not in where:
        where = f"{where}, {snapshot.admin.municipality}"
    text = (
        f"{where}: {total} points of interest found within {snapshot.radius_m} m "
        f"({density} density)."
    )
    if snapshot.knowledge and snapshot.knowledge.description:
        text += f" {snapshot.knowledge.label or 'Nearest entity'}: {snapshot.knowledge.description}."
    weather = snapshot.environment.weather
    if weather and weather.temperature_c is not None:
        desc = f", {weather.description.lower()}" if weather.description else ""
        text += f" Current weather {weather.temperature_c:.0f} °C{desc}."
    return text


def _recommendation_text(snapshot: ContextSnapshot, highlights: tuple[ReportItem, ...]) -> str:
    if not highlights:
        return "No nearby services were found; verify the area in person before deciding."
    nearest = highlights[0]
    counts = snapshot.poi_summary.counts
    busiest = max(CATEGORY_ORDER, key=lambda c: (counts.get(c, 0), -_CATEGORY_RANK[c]))
    return (
        f"Start with {nearest.name} ({nearest.category.value.replace('_', ' ')}, {nearest.distance_m} m). "
        f"The best covered category nearby is {busiest.value.replace('_', ' ')} "
        f"with {counts.get(busiest, 0)} places."
    )


def _limitations(snapshot: ContextSnapshot, reason: str | None) -> tuple[str, ...]:
    used = snapshot.sources_used
    notes: list[str] = []
    if snapshot.land_cover is None:
        notes.append("Official land cover (CORINE) is not available for this point.")
    if snapshot.flood_risk.status is RiskStatus.DOWN:
        notes.append("The official flood risk service was unavailable.")
    elif snapshot.flood_risk.status is RiskStatus.VISUAL_ONLY:
        notes.append("Flood risk is visual-only: no numeric or point reading could be obtained.")
    if snapshot.air_quality.status is RiskStatus.DOWN:
        notes.append("The official air quality service was unavailable.")
    elif snapshot.air_quality.status is RiskStatus.VISUAL_ONLY:
        notes.append("Air quality is visual-only: no numeric or point reading could be obtained.")
    if snapshot.poi_summary.total == 0:
        notes.append("No POIs within the radius.")
    if snapshot.knowledge is None and not snapshot.articles:
        notes.append("No encyclopedic facts were found for this area.")
    if not used.alt_places:
        notes.append("External places data (Geoapify) was not available.")
    if not used.weather:
        notes.append("Current weather was not available.")
    if snapshot.stale:
        notes.append("This report is based on an earlier snapshot because the places index is down.")
    if reason:
        notes.append(reason)
    notes.append(QUALITATIVE_NOTE)
    return tuple(notes)


def build_fallback_report(snapshot: ContextSnapshot, reason: str | None = None) -> Report:
    total = snapshot.poi_summary.total
    density = density_label(total)
    highlights = _highlights(snapshot)
    categories = {
        category: tuple(_item(p) for p in snapshot.pois(category)[:ITEMS_PER_CATEGORY])
        for category in CATEGORY_ORDER
        if snapshot.pois(category)
    }
    return Report(
        summary=_summary_text(snapshot, total, density),
        nearby_highlights=highlights,
        categories=categories,
        risks=_risks_text(snapshot),
        land_use=_land_use_text(snapshot),
        recommendation=_recommendation_text(snapshot, highlights),
        sources=tuple(snapshot.sources_used.labels()),
        limitations=_limitations(snapshot, reason),
        insufficient_data=not categories,
    )
