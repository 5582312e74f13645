"""
Report log routes.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from api.dependencies import get_service
from api.schemas import ReportsResponse
from placelens.service import PlaceIntelService

router = APIRouter()


@router.get("/reports", response_model=ReportsResponse)
async def recent_reports(
    limit: int = Query(default=20, ge=1, le=200),
    service: PlaceIntelService = Depends(get_service),
):
    """Most recent persisted reports, newest first."""
    return ReportsResponse(reports=service.recent_reports(limit))
