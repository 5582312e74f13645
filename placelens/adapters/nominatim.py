"""
Nominatim: reverse geocoding for the snapshot's place identity and forward
address search for the reporting agent's ``geocode_address`` tool.
"""

from __future__ import annotations

import logging
from typing import Any

from placelens import config
from placelens.adapters.base import HttpAdapter, to_float
from placelens.errors import AdapterUnavailable
from placelens.models import AddressMatch, AdminInfo, Coordinate, GeocodedPlace, Place

logger = logging.getLogger(__name__)


def _first(address: dict[str, Any], *keys: str) -> str | None:
    for key in keys:
        value = address.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


def parse_reverse(data: dict[str, Any]) -> GeocodedPlace:
    address = data.get("address") or {}
    display_name = data.get("display_name")
    municipality = _first(address, "city", "town", "village", "municipality", "hamlet")
    name = data.get("name") or _first(address, "road", "neighbourhood", "suburb") or municipality

    if not name and not display_name:
        raise AdapterUnavailable("nominatim", "no place at this point")

    road = _first(address, "road", "pedestrian", "footway")
    number = _first(address, "house_number")
    address_line = ", ".join(p for p in (f"{road} {number}" if road and number else road, municipality) if p)

    place = Place(
        name=name or display_name,
        address=address_line or display_name,
        municipality=municipality,
        category=data.get("category") or data.get("class"),
    )
    admin = AdminInfo(
        municipality=municipality,
        district=_first(address, "city_district", "district", "borough", "suburb"),
        neighbourhood=_first(address, "neighbourhood", "quarter"),
        province=_first(address, "province", "county"),
        region=_first(address, "state", "region"),
        country=_first(address, "country"),
        postcode=_first(address, "postcode"),
        road=road,
        house_number=number,
    )
    return GeocodedPlace(place=place, admin=admin)


class ReverseGeocoder(HttpAdapter):
    name = "nominatim"

    def __init__(self, base_url: str = config.NOMINATIM_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")

    async def fetch(self, center: Coordinate, radius_m: int = 0) -> GeocodedPlace:
        data = await self._get_json(
            f"{self.base_url}/reverse",
            params={
                "lat": center.lat,
                "lon": center.lon,
                "format": "jsonv2",
                "addressdetails": 1,
                "zoom": 18,
            },
        )
        if not isinstance(data, dict):
            raise AdapterUnavailable(self.name, "unexpected payload")
        if data.get("error"):
            raise AdapterUnavailable(self.name, str(data["error"]))
        geocoded = parse_reverse(data)
        logger.info("Reverse geocode: (%s, %s) -> %s", center.lat, center.lon, geocoded.place.name)
        return geocoded


class AddressSearch(HttpAdapter):
    name = "nominatim_search"

    def __init__(self, base_url: str = config.NOMINATIM_URL, **kwargs: Any):
        super().__init__(**kwargs)
        self.base_url = base_url.rstrip("/")

    async def fetch(self, query: str, limit: int = 1) -> list[AddressMatch]:
        query = query.strip()
        if not query:
            return []
        data = await self._get_json(
            f"{self.base_url}/search",
            params={"q": query, "format": "json", "limit": max(1, min(limit, 5))},
        )
        if not isinstance(data, list):
            raise AdapterUnavailable(self.name, "unexpected payload")
        matches: list[AddressMatch] = []
        for row in data:
            lat, lon = to_float(row.get("lat")), to_float(row.get("lon"))
            if lat is None or lon is None:
                continue
            matches.append(AddressMatch(
                display_name=row.get("display_name") or query,
                coordinate=Coordinate(lat=lat, lon=lon),
            ))
        return matches
