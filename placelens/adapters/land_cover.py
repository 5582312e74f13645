"""Copernicus CORINE Land Cover 2018, via the EEA ArcGIS ``identify`` endpoint."""

from __future__ import annotations

import logging
from typing import Any

from placelens import config
from placelens.adapters.base import HttpAdapter
from placelens.errors import AdapterUnavailable
from placelens.models import Coordinate, LandCover

logger = logging.getLogger(__name__)

SOURCE = "Copernicus CLC 2018"

CLC_LABELS: dict[str, str] = {
    "111": "Continuous urban fabric",
    "112": "Discontinuous urban fabric",
    "121": "Industrial or commercial units",
    "122": "Road and rail networks",
    "123": "Port areas",
    "124": "Airports",
    "131": "Mineral extraction sites",
    "132": "Dump sites",
    "133": "Construction sites",
    "141": "Green urban areas",
    "142": "Sport and leisure facilities",
    "211": "Non-irrigated arable land",
    "212": "Permanently irrigated land",
    "213": "Rice fields",
    "221": "Vineyards",
    "222": "Fruit trees and berry plantations",
    "223": "Olive groves",
    "231": "Pastures",
    "241": "Annual crops associated with permanent crops",
    "242": "Complex cultivation patterns",
    "243": "Agriculture with significant natural vegetation",
    "244": "Agro-forestry areas",
    "311": "Broad-leaved forest",
    "312": "Coniferous forest",
    "313": "Mixed forest",
    "321": "Natural grasslands",
    "322": "Moors and heathland",
    "323": "Sclerophyllous vegetation",
    "324": "Transitional woodland-shrub",
    "331": "Beaches, dunes, sands",
    "332": "Bare rocks",
    "333": "Sparsely vegetated areas",
    "334": "Burnt areas",
    "335": "Glaciers and perpetual snow",
    "411": "Inland marshes",
    "412": "Peat bogs",
    "421": "Salt marshes",
    "422": "Salines",
    "423": "Intertidal flats",
    "511": "Water courses",
    "512": "Water bodies",
    "521": "Coastal lagoons",
    "522": "Estuaries",
    "523": "Sea and ocean",
}


def parse_identify(data: Any) -> LandCover | None:
    if not isinstance(data, dict):
        raise AdapterUnavailable("land_cover", "unexpected payload")
    error = data.get("error")
    if error:
        message = error.get("message", "service error") if isinstance(error, dict) else str(error)
        raise AdapterUnavailable("land_cover", message)
    results = data.get("results") or []
    if not results:
        return None
    attributes = results[0].get("attributes") or {}
    raw = attributes.get("Code_18") or attributes.get("CODE_18") or attributes.get("code_18")
    if raw in (None, ""):
        return None
    code = str(int(raw)) if isinstance(raw, (int, float)) else str(raw).strip()
    return LandCover(code=code, label=CLC_LABELS.get(code, f"CLC class {code}"), source=SOURCE)


class LandCoverClassifier(HttpAdapter):
    """Returns None when CORINE has no coverage at the point (e.g. outside Europe)."""

    name = "land_cover"

    def __init__(self, url: str = config.CLC_ARCGIS_URL, layer: str = config.CLC_LAYER, **kwargs: Any):
        super().__init__(**kwargs)
        self.url = url.rstrip("/")
        self.layer = layer

    async def fetch(self, center: Coordinate, radius_m: int = 0) -> LandCover | None:
        data = await self._get_json(
            f"{self.url}/identify",
            params={
                "f": "json",
                "geometry": f"{center.lon},{center.lat}",
                "geometryType": "esriGeometryPoint",
                "sr": "4326",
                "layers": f"all:{self.layer}",
                "tolerance": "2",
                "mapExtent": f"{center.lon - 0.02},{center.lat - 0.02},{center.lon + 0.02},{center.lat + 0.02}",
                "imageDisplay": "100,100,96",
                "returnGeometry": "false",
            },
        )
        cover = parse_identify(data)
        if cover is None:
            logger.info("CORINE has no class at (%s, %s)", center.lat, center.lon)
        return cover
