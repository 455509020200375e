"""
FastAPI application entry point.

Creates and configures the FastAPI application via an application factory
(create_app) so tests can build an app with their own overrides.

For local development:
    SNOWFLAKE_MOCK_MODE=true uvicorn nutricoach.main:app --reload

For production:
    gunicorn nutricoach.main:app -w 4 -k uvicorn.workers.UvicornWorker
"""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from .api.routes import clients, coaches, health
from .config.settings import get_settings

logging.basicConfig(
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    level=logging.INFO,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Log startup configuration and warn about anything missing."""
    settings = get_settings()
    logging.getLogger().setLevel(settings.log_level.upper())

    logger.info(
        "NutriCoach API starting",
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

    logger.info("NutriCoach API shutting down")


def create_app() -> FastAPI:
    """
    Application factory.

    Called once at import time for uvicorn, and again by tests that need
    a fresh instance.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        description="""
        Coach assignment service for the NutriCoach app.

        ## Authentication

        All `/api/v1` endpoints require an API key in the `X-API-Key` header.

        ## Workflow

        1. **Identify the client**: `GET /api/v1/clients/lookup?email=...`
        2. **Resolve status**: `GET /api/v1/clients/{client_id}/assignment`
        3. **Gate a feature**: `GET /api/v1/clients/{client_id}/access/{capability}`
        4. **Pick a coach**: `GET /api/v1/coaches`, then
           `POST /api/v1/clients/{client_id}/assignment`
        """,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins_list,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(
        health.router,
        prefix="/health",
        tags=["Health"],
    )

    app.include_router(
        clients.router,
        prefix="/api/v1/clients",
        tags=["Clients"],
    )

    app.include_router(
        coaches.router,
        prefix="/api/v1/coaches",
        tags=["Coaches"],
    )

    @app.get("/", include_in_schema=False)
    async def root():
        return {
            "message": "NutriCoach Assignment API",
            "version": settings.api_version,
            "docs": "/docs",
            "health": "/health",
        }

    @app.exception_handler(clients.ClientNotFoundError)
    async def client_not_found_handler(request: Request, exc: clients.ClientNotFoundError):
        logger.info("Client lookup missed", extra={"path": request.url.path})
        return JSONResponse(status_code=404, content={"detail": str(exc)})

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        """
        Catch-all exception handler.

        Logs the full error server-side but returns a generic message so
        stack traces never reach clients.
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


app = create_app()


if __name__ == "__main__":
    import uvicorn

    settings = get_settings()

    uvicorn.run(
        "nutricoach.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level=settings.log_level.lower(),
    )
