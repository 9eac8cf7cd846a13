"""
CareCadence Backend
FastAPI application serving hydration reminders and medicine adherence tracking
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

# Configuration and database
from config import settings
from database import init_db, DatabaseHealthCheck

from api import include_routers
from services.care_engine import CareEngine
from services.persistence import PersistenceError, SqlBlobStore
from tools.notification_service import NotificationRequest
from tools.schedule_registry import ConflictWarning, ScheduleNotFound

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL),
    format=settings.LOG_FORMAT
)
logger = logging.getLogger(__name__)


EngineFactory = Callable[[], CareEngine]


def default_engine() -> CareEngine:
    """Engine persisting to the configured database"""
    init_db()
    logger.info("Database initialized successfully")
    return CareEngine(blob_store=SqlBlobStore())


def log_notification(request: NotificationRequest):
    logger.info(f"[{request.notification_type.value}] {request.title}: {request.body}")


async def run_ticker(engine: CareEngine, interval_seconds: int):
    """Drive engine.tick() from the event loop until cancelled"""
    while True:
        try:
            fired = [d for d in engine.tick() if d.fire]
            if fired:
                logger.debug(f"Background tick fired {len(fired)} reminder(s)")
        except Exception as e:
            logger.error(f"Background tick failed: {e}", exc_info=True)
        await asyncio.sleep(interval_seconds)


def _error(status_code: int, message, **extra) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content={
            "error": True,
            "message": message,
            "status_code": status_code,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            **extra,
        }
    )


def create_app(
    engine_factory: Optional[EngineFactory] = None,
    tick_interval_seconds: Optional[int] = None
) -> FastAPI:
    """
    Build the application

    The engine is created in the lifespan and kept on app.state.engine.
    A tick interval of 0 disables the background ticker; callers then
    drive reminders through POST /reminders/tick.
    """
    factory = engine_factory or default_engine
    interval = settings.TICK_INTERVAL_SECONDS if tick_interval_seconds is None else tick_interval_seconds

    # ==================== LIFESPAN ====================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup and shutdown"""
        # Startup
        logger.info(f"Starting {settings.APP_NAME} v{settings.APP_VERSION}")
        logger.info(f"Environment: {settings.ENV}")

        try:
            engine = factory()
            engine.load()
        except Exception as e:
            logger.error(f"Engine initialization failed: {e}")
            raise

        engine.notifier.register_handler(log_notification)
        app.state.engine = engine

        ticker = None
        if interval > 0:
            ticker = asyncio.create_task(run_ticker(engine, interval))
            logger.info(f"Background ticker running every {interval}s")

        yield

        # Shutdown
        if ticker is not None:
            ticker.cancel()
            try:
                await ticker
            except asyncio.CancelledError:
                pass
        engine.save()
        logger.info(f"Shutting down {settings.APP_NAME}")

    # ==================== APP INITIALIZATION ====================

    app = FastAPI(
        title=settings.APP_NAME,
        description="""
        ## CareCadence API

        Recurring reminders and adherence tracking for one person.

        ### Features
        - **Hydration reminders**: interval reminders inside a daily window until the goal is met
        - **Medicine schedules**: fixed daily dose times with conflict checks
        - **Dose tracking**: taken, skipped, missed and snoozed doses with a daily plan
        - **Adherence reports**: trailing-window compliance and refill projections
        """,
        version=settings.APP_VERSION,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Attach modular API routers (prefix /api/v1)
    include_routers(app, prefix=settings.API_PREFIX)

    # ==================== EXCEPTION HANDLERS ====================

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        return _error(exc.status_code, exc.detail)

    @app.exception_handler(ScheduleNotFound)
    async def not_found_handler(request: Request, exc: ScheduleNotFound):
        return _error(404, f"Schedule not found: {exc.args[0] if exc.args else ''}")

    @app.exception_handler(ConflictWarning)
    async def conflict_handler(request: Request, exc: ConflictWarning):
        return _error(
            409,
            str(exc),
            conflicts=[c.to_dict() for c in exc.check.conflicts],
            name_collisions=exc.check.name_collisions,
        )

    @app.exception_handler(ValueError)
    async def value_error_handler(request: Request, exc: ValueError):
        return _error(422, str(exc))

    @app.exception_handler(PersistenceError)
    async def persistence_error_handler(request: Request, exc: PersistenceError):
        logger.error(f"Persistence failure: {exc}")
        return _error(503, "Storage is unavailable")

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unexpected error: {exc}", exc_info=True)
        return _error(500, "An unexpected error occurred" if not settings.DEBUG else str(exc))

    # ==================== HEALTH ====================

    @app.get("/health", tags=["health"])
    async def health_check(request: Request):
        """Service and storage health"""
        engine = getattr(request.app.state, "engine", None)
        return {
            "status": "healthy" if engine is not None else "starting",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "database": DatabaseHealthCheck.is_connected(),
            "engine": engine.stats() if engine is not None else None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(
        "app:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
