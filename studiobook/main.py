import structlog
from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from studiobook.config.settings import settings
from studiobook.core.observability import init_observability
from studiobook.domains.bookings.exceptions import BookingError
from studiobook.domains.bookings.router import admin_router as bookings_admin_router
from studiobook.domains.bookings.router import router as bookings_router
from studiobook.domains.packages.router import router as packages_router

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan events."""
    # Startup
    logger.info("app_starting", app_name=settings.APP_NAME, environment=settings.APP_ENV, database_configured=bool(settings.DATABASE_URL))

    # Initialize database tables
    try:
        from studiobook.config.database import init_db
        await init_db()
        logger.info("database_initialized")
    except Exception as e:
        logger.error("database_init_failed", error=str(e), type=type(e).__name__)
        # Re-raise in production to prevent unhealthy startup
        if settings.is_production:
            raise

    # Start background scheduler
    from studiobook.core.scheduler import scheduler
    if settings.REMINDERS_ENABLED:
        try:
            await scheduler.start()
            logger.info("scheduler_started")
        except Exception as e:
            logger.warning("scheduler_start_failed", error=str(e), type=type(e).__name__)

    yield
    # Shutdown
    logger.info("app_shutting_down", app_name=settings.APP_NAME)
    if settings.REMINDERS_ENABLED:
        try:
            await scheduler.stop()
            logger.info("scheduler_stopped")
        except Exception as e:
            logger.warning("scheduler_stop_failed", error=str(e), type=type(e).__name__)


async def booking_error_handler(request: Request, exc: BookingError) -> JSONResponse:
    """Render a typed booking error as ``{"detail", "code", "reason"?}``."""
    content = {"detail": exc.message, "code": exc.code}
    reason = getattr(exc, "reason", None)
    if reason is not None:
        content["reason"] = reason.value
    logger.info(
        "booking_rejected",
        path=request.url.path,
        code=exc.code,
        reason=content.get("reason"),
        status=exc.status_code,
    )
    return JSONResponse(status_code=exc.status_code, content=content)


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    # Initialize observability (GlitchTip/Sentry)
    init_observability()

    app = FastAPI(
        title=settings.APP_NAME,
        description="Studio booking API",
        version=settings.APP_VERSION,
        docs_url="/docs" if settings.DEBUG else None,
        redoc_url="/redoc" if settings.DEBUG else None,
        lifespan=lifespan,
        # Disable automatic trailing slash redirects - they lose identity headers
        redirect_slashes=False,
    )

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.CORS_ORIGINS,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Content-Type", "X-User-Id", "X-User-Role", "X-Request-Id"],
    )

    app.add_exception_handler(BookingError, booking_error_handler)

    # Include routers
    app.include_router(bookings_router, prefix=f"{settings.API_V1_PREFIX}", tags=["Bookings"])
    app.include_router(bookings_admin_router, prefix=f"{settings.API_V1_PREFIX}/admin", tags=["Admin"])
    app.include_router(packages_router, prefix=f"{settings.API_V1_PREFIX}/packages", tags=["Packages"])

    # Health check endpoint
    @app.get("/health")
    async def health_check() -> dict[str, str]:
        return {
            "status": "healthy",
            "app": settings.APP_NAME,
            "version": settings.APP_VERSION,
            "environment": settings.APP_ENV,
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "studiobook.main:app",
        host=settings.HOST,
        port=settings.PORT,
        reload=settings.DEBUG,
    )
