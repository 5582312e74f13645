"""
Runtime configuration, read once from the environment at import time.
A local ``.env`` file is loaded first.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv

load_dotenv()


def _float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


def _int(name: str, default: int) -> int:
    return int(_float(name, default))


# ---------------------------------------------------------------------------
# Upstream endpoints
# ---------------------------------------------------------------------------

USER_AGENT = os.getenv("PLACELENS_USER_AGENT", "PlaceLens/0.1 (+https://github.com/placelens)")

OVERPASS_URL = os.getenv("OVERPASS_URL", "https://overpass-api.de/api/interpreter")
NOMINATIM_URL = os.getenv("NOMINATIM_URL", "https://nominatim.openstreetmap.org")

GEOAPIFY_API_KEY = os.getenv("GEOAPIFY_API_KEY")
GEOAPIFY_API_URL = os.getenv("GEOAPIFY_API_URL", "https://api.geoapify.com/v2/places")

FLOOD_WMS_URL = os.getenv(
    "FLOOD_WMS_URL",
    "https://servicios.mapama.gob.es/arcgis/services/Agua/Riesgo/MapServer/WMSServer",
)
FLOOD_WMS_LAYERS = [
    layer.strip()
    for layer in os.getenv("FLOOD_WMS_LAYERS", "AreaImp_100").split(",")
    if layer.strip()
]
EFAS_WMS_URL = os.getenv("EFAS_WMS_URL", "https://european-flood.emergency.copernicus.eu/api/wms/")

CAMS_WMS_URL = os.getenv("CAMS_WMS_URL", "https://eccharts.ecmwf.int/wms/")
CAMS_LAYER = os.getenv("CAMS_LAYER", "composition_europe_pm2p5_forecast_surface")
CAMS_METRIC = os.getenv("CAMS_METRIC", "PM2.5")
CAMS_UNITS = os.getenv("CAMS_UNITS", "ug/m3")

CLC_ARCGIS_URL = os.getenv(
    "CLC_ARCGIS_URL",
    "https://image.discomap.eea.europa.eu/arcgis/rest/services/Corine/CLC2018_WM/MapServer",
)
CLC_LAYER = os.getenv("CLC_LAYER", "0")

WIKIDATA_SPARQL_URL = os.getenv("WIKIDATA_SPARQL_URL", "https://query.wikidata.org/sparql")
WIKIPEDIA_API_URL = os.getenv("WIKIPEDIA_API_URL", "https://es.wikipedia.org/w/api.php")
OPEN_METEO_URL = os.getenv("OPEN_METEO_URL", "https://api.open-meteo.com/v1/forecast")

# ---------------------------------------------------------------------------
# Pipeline tuning
# ---------------------------------------------------------------------------

DEFAULT_RADIUS_M = 1200
ADAPTER_TIMEOUT_S = _float("PLACELENS_ADAPTER_TIMEOUT", 6.0)
CACHE_TTL_S = _float("PLACELENS_CACHE_TTL", 480.0)

AGENT_MAX_ROUNDS = _int("PLACELENS_AGENT_MAX_ROUNDS", 4)
AGENT_TIMEOUT_S = _float("PLACELENS_AGENT_TIMEOUT", 45.0)
PROMPT_ITEMS_PER_CATEGORY = 20
RETRY_ITEMS_PER_CATEGORY = 8

REPORT_LOG_PATH = os.getenv("PLACELENS_REPORT_LOG", os.path.join("data", "reports.jsonl"))

# ---------------------------------------------------------------------------
# Generative backend
# ---------------------------------------------------------------------------

LLM_PROVIDER = os.getenv("LLM_PROVIDER", "").strip().lower()
OPENAI_API_KEY = os.getenv("OPENAI_API_KEY")
OPENAI_MODEL = os.getenv("OPENAI_MODEL", "gpt-4o-mini")
GROQ_API_KEY = os.getenv("GROQ_API_KEY")
GROQ_MODEL = os.getenv("GROQ_MODEL", "llama-3.3-70b-versatile")
GROQ_BASE_URL = "https://api.groq.com/openai/v1"
OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL")
OLLAMA_MODEL = os.getenv("OLLAMA_MODEL", "llama3.1")
LLM_TIMEOUT_S = _float("PLACELENS_LLM_TIMEOUT", 30.0)
