"""
FastAPI application entry point.

This module creates and configures the FastAPI application.
Using an application factory pattern (create_app function) because:
- Easier to test with different configurations
- Explicit about initialization order

For local development:
    uvicorn src.main:app --reload

For production:
    gunicorn src.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import health, medals, program_state, sessions, stats
from .config.settings import get_settings

# Configure logging
logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Runs on startup and shutdown. Configuration problems are logged at
    startup rather than discovered on the first request.
    """
    settings = get_settings()

    logger.info(
        "Velo Program API starting",
        extra={
            "version": settings.api_version,
            "mock_mode": {"snowflake": settings.snowflake_mock_mode},
        }
    )

    missing_fields = settings.validate_required_fields()
    if missing_fields:
        logger.error(
            "Missing required configuration",
            extra={"missing_fields": missing_fields}
        )

    yield

    logger.info("Velo Program API shutting down")


def create_app() -> FastAPI:
    """
    Application factory.

    Creates and configures the FastAPI application.
    Called once at startup in production, and per test module in tests.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Backend for a three-cycle bat-speed training program.

        ## Features

        - Track each player's phase (Ramp, Primary, Maintenance) across three cycles
        - Advance phases automatically as training sessions are completed
        - Project an upcoming training schedule from the player's settings
        - Aggregate personal bests, gains and fastest drills
        - Award achievement medals

        ## Authentication

        All endpoints require an API key provided in the `X-API-Key` header.
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    # CORS middleware
    # Configure allowed origins via CORS_ORIGINS environment variable
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # Include routers
    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        program_state.router,
        prefix="/api/v1/players",
        tags=["Program"],
    )

    app.include_router(
        stats.router,
        prefix="/api/v1/players",
        tags=["Stats"],
    )

    app.include_router(
        medals.router,
        prefix="/api/v1/players",
        tags=["Medals"],
    )

    app.include_router(
        sessions.router,
        prefix="/api/v1/sessions",
        tags=["Sessions"],
    )

    # Root endpoint
    @app.get("/", include_in_schema=False)
    async def root():
        """Root endpoint - point to docs."""
        return {
            "message": "Velo Program API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(request, exc):
        """
        Catch-all exception handler.

        Prevents stack traces from leaking to clients. We log the full error
        server-side but return a generic message.
        """
        logger.error(
            "Unhandled exception",
            extra={
                "path": request.url.path,
                "method": request.method,
                "error": str(exc),
            },
            exc_info=exc,
        )

        return JSONResponse(
            status_code=500,
            content={
                "detail": "Internal server error. Please contact support if this persists."
            }
        )

    logger.info(
        "FastAPI application created",
        extra={
            "title": settings.api_title,
            "version": settings.api_version,
        }
    )

    return app


# Create the application instance
# This is what uvicorn/gunicorn will import
app = create_app()


# For debugging/development
if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "src.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
