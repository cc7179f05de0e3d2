import structlog
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from scalar_fastapi import get_scalar_api_reference

from src.config.settings import settings
from src.core.exceptions import SchedulingError
from src.core.observability import init_observability
from src.domains.notifications.router import router as notifications_router
from src.domains.schedule.router import router as schedule_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    # Startup
    logger.info("app_starting", app_name=settings.APP_NAME, environment=settings.APP_ENV, database_configured=bool(settings.DATABASE_URL))

    # Initialize database tables
    try:
        from src.config.database import init_db
        await init_db()
        logger.info("database_initialized")
    except Exception as e:
        logger.error("database_init_failed", error=str(e), type=type(e).__name__)
        # Re-raise in production to prevent unhealthy startup
        if settings.is_production:
            raise

    # Start background scheduler
    from src.core.scheduler import scheduler
    try:
        await scheduler.start()
        logger.info("scheduler_started")
    except Exception as e:
        logger.warning("scheduler_start_failed", error=str(e), type=type(e).__name__)

    yield
    # Shutdown
    logger.info("app_shutting_down", app_name=settings.APP_NAME)
    try:
        await scheduler.stop()
        logger.info("scheduler_stopped")
    except Exception as e:
        logger.warning("scheduler_stop_failed", error=str(e), type=type(e).__name__)


async def scheduling_error_handler(request: Request, exc: SchedulingError) -> JSONResponse:
    """Render domain errors as ``{"detail": {code, message, details}}``."""
    logger.info(
        "scheduling_error",
        code=exc.code,
        status_code=exc.status_code,
        path=request.url.path,
        message=exc.message,
    )
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.to_dict()})


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    # Initialize observability (GlitchTip/Sentry)
    init_observability()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Coach availability and session scheduling API",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
        # Disable automatic trailing slash redirects - they lose Authorization headers
        redirect_slashes=False,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=["Authorization", "Content-Type", "X-Request-Id"],
    )

    app.add_exception_handler(SchedulingError, scheduling_error_handler)

    # Include routers
    app.include_router(schedule_router, prefix=settings.API_V1_PREFIX, tags=["Scheduling"])
    app.include_router(notifications_router, prefix=settings.API_V1_PREFIX, tags=["Notifications"])

    # Health check endpoint
    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.APP_ENV,
        }

    # Scalar API Reference - Modern API documentation
    @app.get("/reference", include_in_schema=False)
    async def scalar_html():
        return get_scalar_api_reference(
            openapi_url=app.openapi_url,
            title=f"{settings.APP_NAME} - API Reference",
        )

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "src.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
