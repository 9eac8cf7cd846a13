"""
API Dependencies
Common dependencies for FastAPI endpoints
"""

from fastapi import Request, HTTPException, status

from services.care_engine import CareEngine


def get_engine(request: Request) -> CareEngine:
    """
    Care engine dependency
    Returns the engine created at application startup
    """
    engine = getattr(request.app.state, "engine", None)
    if engine is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Care engine is not initialized",
        )
    return engine
