"""
Wikidata SPARQL: facts about the nearest entity and nearby items, the latter
handed to POI fusion as a third, lowest-priority provider.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Any

from placelens import config
from placelens.adapters.base import HttpAdapter, to_float
from placelens.errors import AdapterUnavailable
from placelens.models import Coordinate, KnowledgeFacts, Provider, RawPlace

logger = logging.getLogger(__name__)

_QID_RE = re.compile(r"Q\d+")
_POINT_RE = re.compile(r"Point\(([-\d.]+)\s+([-\d.]+)\)", re.IGNORECASE)

_PREFIXES = """\
PREFIX wikibase: <http://wikiba.se/ontology#>
PREFIX wdt: <http://www.wikidata.org/prop/direct/>
PREFIX schema: <http://schema.org/>
PREFIX geo: <http://www.opengis.net/ont/geosparql#>
PREFIX bd: <http://www.bigdata.com/rdf#>
"""


def _around(center: Coordinate, radius_km: float) -> str:
    return (
        "  SERVICE wikibase:around {\n"
        "    ?item wdt:P625 ?coord .\n"
        f'    bd:serviceParam wikibase:center "Point({center.lon} {center.lat})"^^geo:wktLiteral .\n'
        f'    bd:serviceParam wikibase:radius "{radius_km:.2f}" .\n'
        "    bd:serviceParam wikibase:distance ?dist .\n"
        "  }\n"
    )


def entity_query(center: Coordinate, radius_km: float) -> str:
    return (
        _PREFIXES
        + "SELECT ?item ?itemLabel ?itemDescription ?dist ?coord\n"
        "       (SAMPLE(?population) AS ?population) (SAMPLE(?elevation) AS ?elevation)\n"
        "       (SAMPLE(?inception) AS ?inception) (SAMPLE(?website) AS ?website)\n"
        "       (SAMPLE(?countryLabel) AS ?countryName) (SAMPLE(?article) AS ?article)\n"
        "WHERE {\n"
        + _around(center, radius_km)
        + "  OPTIONAL { ?item wdt:P1082 ?population . }\n"
        "  OPTIONAL { ?item wdt:P2044 ?elevation . }\n"
        "  OPTIONAL { ?item wdt:P571 ?inception . }\n"
        "  OPTIONAL { ?item wdt:P856 ?website . }\n"
        "  OPTIONAL { ?item wdt:P17 ?country . }\n"
        "  OPTIONAL { ?article schema:about ?item; schema:isPartOf <https://es.wikipedia.org/> . }\n"
        '  SERVICE wikibase:label { bd:serviceParam wikibase:language "es,en" . }\n'
        "}\n"
        "GROUP BY ?item ?itemLabel ?itemDescription ?dist ?coord\n"
        "ORDER BY ?dist\n"
        "LIMIT 1"
    )


def nearby_query(center: Coordinate, radius_km: float, limit: int) -> str:
    return (
        _PREFIXES
        + "SELECT ?item ?itemLabel ?dist ?coord (GROUP_CONCAT(DISTINCT ?type; separator=\"|\") AS ?types)\n"
        "WHERE {\n"
        + _around(center, radius_km)
        + "  OPTIONAL { ?item wdt:P31 ?type . }\n"
        '  SERVICE wikibase:label { bd:serviceParam wikibase:language "es,en" . }\n'
        "}\n"
        "GROUP BY ?item ?itemLabel ?dist ?coord\n"
        "ORDER BY ?dist\n"
        f"LIMIT {max(1, min(limit, 20))}"
    )


def _bindings(data: Any) -> list[dict[str, Any]]:
    if not isinstance(data, dict):
        raise AdapterUnavailable("wikidata", "unexpected payload")
    rows = (data.get("results") or {}).get("bindings")
    return rows if isinstance(rows, list) else []


def _value(row: dict[str, Any], key: str) -> str | None:
    cell = row.get(key)
    return cell.get("value") if isinstance(cell, dict) else None


def _qid(value: str | None) -> str | None:
    match = _QID_RE.search(value or "")
    return match.group(0) if match else None


def parse_point(value: str | None) -> Coordinate | None:
    match = _POINT_RE.search(value or "")
    if not match:
        return None
    lon, lat = float(match.group(1)), float(match.group(2))
    if not (-90 <= lat <= 90 and -180 <= lon <= 180):
        return None
    return Coordinate(lat=lat, lon=lon)


def parse_nearby(data: Any) -> list[RawPlace]:
    places: list[RawPlace] = []
    for row in _bindings(data):
        label = _value(row, "itemLabel")
        qid = _qid(_value(row, "item"))
        # Unlabelled items come back with their QID as label.
        if not label or label == qid:
            label = None
        types = [_qid(t) for t in (_value(row, "types") or "").split("|")]
        places.append(RawPlace(
            name=label,
            coordinate=parse_point(_value(row, "coord")),
            kinds=tuple(f"wikidata:{t}" for t in types if t),
            provider=Provider.WIKIDATA,
        ))
    return places


def parse_entity(data: Any, nearby: list[RawPlace]) -> KnowledgeFacts | None:
    rows = _bindings(data)
    if not rows:
        return None
    row = rows[0]
    qid = _qid(_value(row, "item"))
    if not qid:
        return None

    facts: list[str] = []
    country = _value(row, "countryName")
    if country:
        facts.append(f"Country: {country}")
    population = to_float(_value(row, "population"))
    if population:
        facts.append(f"Population: {int(population):,}")
    elevation = to_float(_value(row, "elevation"))
    if elevation is not None:
        facts.append(f"Elevation: {elevation:g} m")
    inception = _value(row, "inception")
    if inception:
        facts.append(f"Inception: {inception[:10].lstrip('+')}")
    website = _value(row, "website")
    if website:
        facts.append(f"Website: {website}")
    article = _value(row, "article")
    if article:
        facts.append(f"Wikipedia: {article}")
    dist_km = to_float(_value(row, "dist"))
    if dist_km is not None:
        facts.append(f"Distance to point: {round(dist_km * 1000)} m")

    return KnowledgeFacts(
        entity_id=qid,
        label=_value(row, "itemLabel"),
        description=_value(row, "itemDescription"),
        url=f"https://www.wikidata.org/wiki/{qid}",
        facts=tuple(facts),
        nearby=tuple(nearby),
    )


class KnowledgeBase(HttpAdapter):
    """Returns None when Wikidata has no geotagged entity near the point."""

    name = "wikidata"

    def __init__(self, url: str = config.WIKIDATA_SPARQL_URL, nearby_limit: int = 12, **kwargs: Any):
        super().__init__(**kwargs)
        self.url = url
        self.nearby_limit = nearby_limit

    async def _sparql(self, query: str) -> Any:
        return await self._post_json(
            self.url,
            data={"query": query},
            headers={"Accept": "application/sparql-results+json"},
        )

    async def fetch(self, center: Coordinate, radius_m: int) -> KnowledgeFacts | None:
        entity_km = min(max(radius_m / 1000, 1.0), 10.0)
        nearby_km = min(max(radius_m / 1000, 0.5), 8.0)
        entity_raw, nearby_raw = await asyncio.gather(
            self._sparql(entity_query(center, entity_km)),
            self._sparql(nearby_query(center, nearby_km, self.nearby_limit)),
        )
        facts = parse_entity(entity_raw, parse_nearby(nearby_raw))
        if facts is not None:
            logger.info("Wikidata: %s (%s), %d nearby items", facts.label, facts.entity_id, len(facts.nearby))
        return facts
