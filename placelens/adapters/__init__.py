# PlaceLens: upstream source adapters.
#
# Each adapter owns its provider's wire format and hands back only the
# normalized records from placelens.models.

from placelens.adapters.air_quality import AirQualityService
from placelens.adapters.base import Adapter, HttpAdapter
from placelens.adapters.flood import FloodRiskService
from placelens.adapters.geoapify import AltPlacesIndex
from placelens.adapters.land_cover import LandCoverClassifier
from placelens.adapters.nominatim import AddressSearch, ReverseGeocoder
from placelens.adapters.open_meteo import WeatherService
from placelens.adapters.overpass import LandUseIndex, PlacesIndex, WaterwayIndex
from placelens.adapters.wikidata import KnowledgeBase
from placelens.adapters.wikipedia import Encyclopedia

__all__ = [
    "Adapter",
    "AddressSearch",
    "AirQualityService",
    "AltPlacesIndex",
    "Encyclopedia",
    "FloodRiskService",
    "HttpAdapter",
    "KnowledgeBase",
    "LandCoverClassifier",
    "LandUseIndex",
    "PlacesIndex",
    "ReverseGeocoder",
    "WaterwayIndex",
    "WeatherService",
]
