"""
Process-wide service instance shared by the route modules.
"""

from __future__ import annotations

from functools import lru_cache

from placelens.service import PlaceIntelService


@lru_cache(maxsize=1)
def get_service() -> PlaceIntelService:
    return PlaceIntelService.from_env()
