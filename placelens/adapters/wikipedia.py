"""Wikipedia geosearch: encyclopedia articles geotagged near the point."""

from __future__ import annotations

import logging
from typing import Any
from urllib.parse import quote

from placelens import config
from placelens.adapters.base import HttpAdapter, to_float
from placelens.errors import AdapterUnavailable
from placelens.models import Article, Coordinate

logger = logging.getLogger(__name__)


def article_url(api_url: str, title: str) -> str:
    base = api_url.split("/w/api.php")[0]
    return f"{base}/wiki/{quote(title.replace(' ', '_'))}"


class Encyclopedia(HttpAdapter):
    name = "wikipedia"

    def __init__(self, url: str = config.WIKIPEDIA_API_URL, limit: int = 8, **kwargs: Any):
        super().__init__(**kwargs)
        self.url = url
        self.limit = max(1, min(limit, 12))

    async def fetch(self, center: Coordinate, radius_m: int) -> list[Article]:
        radius = int(min(max(min(radius_m * 2, 4000), 300), 10000))
        data = await self._get_json(
            self.url,
            params={
                "action": "query",
                "list": "geosearch",
                "gscoord": f"{center.lat}|{center.lon}",
                "gsradius": radius,
                "gslimit": self.limit,
                "format": "json",
            },
        )
        if not isinstance(data, dict) or "error" in data:
            raise AdapterUnavailable(self.name, "geosearch error")
        rows = (data.get("query") or {}).get("geosearch") or []
        articles = []
        for row in rows:
            title = row.get("title")
            if not title:
                continue
            dist = to_float(row.get("dist"))
            articles.append(Article(
                title=title,
                url=article_url(self.url, title),
                distance_m=round(dist) if dist is not None else None,
            ))
        return articles
