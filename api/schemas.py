"""
Pydantic models: request/response contracts for the PlaceLens API.

The domain records themselves (snapshot, report) live in placelens.models and
are returned as-is; the models here only wrap them for transport.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field

from placelens import config
from placelens.models import ContextSnapshot, Report


# ---------- Analyze ---------- #

class AnalyzePlaceRequest(BaseModel):
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    radius: int = Field(default=config.DEFAULT_RADIUS_M, ge=100, le=5000)
    session_id: str | None = Field(default=None, max_length=128)
    allow_stale: bool = False


class AnalyzePlaceResponse(BaseModel):
    request_id: int
    report: Report
    snapshot: ContextSnapshot
    used_generative: bool
    warnings: list[str]
    from_cache: bool = False
    stale: bool = False


# ---------- Chat ---------- #

class PlaceChatRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=500)
    lat: float = Field(..., ge=-90, le=90)
    lon: float = Field(..., ge=-180, le=180)
    radius: int = Field(default=config.DEFAULT_RADIUS_M, ge=100, le=5000)
    prior_report: Report | None = None
    allow_stale: bool = False


class PlaceChatResponse(BaseModel):
    answer: str
    limitations: list[str]
    sources_used: dict[str, int]
    intent: str


# ---------- Report log ---------- #

class ReportsResponse(BaseModel):
    reports: list[dict[str, Any]]
