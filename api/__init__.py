"""
API Module
FastAPI routers for the CareCadence application
"""

from api.water import router as water_router
from api.medicines import router as medicines_router
from api.adherence import router as adherence_router

from api.deps import get_engine


__all__ = [
    # Routers
    "water_router",
    "medicines_router",
    "adherence_router",
    # Dependencies
    "get_engine",
]


def include_routers(app, prefix: str = "/api/v1"):
    """
    Include all API routers in the FastAPI app

    Usage:
        from api import include_routers
        include_routers(app)
    """
    app.include_router(water_router, prefix=prefix)
    app.include_router(medicines_router, prefix=prefix)
    app.include_router(adherence_router, prefix=prefix)
