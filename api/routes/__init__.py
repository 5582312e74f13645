"""
api.routes: aggregates the route modules into a single router.

app.py imports ``from api.routes import router`` which resolves here.
"""

from fastapi import APIRouter

from api.routes.place import router as place_router
from api.routes.reports import router as reports_router

router = APIRouter()

router.include_router(place_router)
router.include_router(reports_router)
