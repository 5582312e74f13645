"""
Place routes: analysis and chat for a point on the map.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException

from api.dependencies import get_service
from api.schemas import (
    AnalyzePlaceRequest,
    AnalyzePlaceResponse,
    PlaceChatRequest,
    PlaceChatResponse,
)
from placelens.errors import NoViableSnapshot
from placelens.models import Coordinate
from placelens.service import PlaceIntelService

logger = logging.getLogger(__name__)

router = APIRouter()


@router.get("/health")
async def health():
    return {"status": "ok"}


@router.post("/analyze-place", response_model=AnalyzePlaceResponse)
async def analyze_place(req: AnalyzePlaceRequest, service: PlaceIntelService = Depends(get_service)):
    """Snapshot and report for a point. 503 when no data at all, 409 when superseded."""
    center = Coordinate(lat=req.lat, lon=req.lon)
    try:
        result = await service.analyze(center, req.radius, session_id=req.session_id, allow_stale=req.allow_stale)
    except NoViableSnapshot as exc:
        logger.warning("analyze-place (%.5f, %.5f): %s", req.lat, req.lon, exc)
        raise HTTPException(status_code=503, detail="No data available for this point right now") from exc

    if result is None:
        raise HTTPException(status_code=409, detail="Superseded by a newer request in this session")

    return AnalyzePlaceResponse(
        request_id=result.request_id,
        report=result.report,
        snapshot=result.snapshot,
        used_generative=result.used_generative,
        warnings=list(result.warnings),
        from_cache=result.from_cache,
        stale=result.stale,
    )


@router.post("/place-chat", response_model=PlaceChatResponse)
async def place_chat(req: PlaceChatRequest, service: PlaceIntelService = Depends(get_service)):
    """Answer a question about a point; never fails on upstream errors."""
    center = Coordinate(lat=req.lat, lon=req.lon)
    answer = await service.answer(req.question, center, req.radius, req.prior_report, allow_stale=req.allow_stale)
    return PlaceChatResponse(
        answer=answer.answer,
        limitations=answer.limitations,
        sources_used=answer.sources_used,
        intent=answer.intent,
    )
