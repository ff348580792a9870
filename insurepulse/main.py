"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware

from insurepulse.api.v1.router import api_router
from insurepulse.core.config import settings
from insurepulse.core.database import DatabaseClient, create_engine
from insurepulse.schemas.portfolio import HealthCheckResponse
from insurepulse.utils.logging import get_logger

LOGGER = get_logger(__name__, level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager.

    Validates configuration, creates the engine and the tables, and exposes
    the database client and session factory on ``app.state``.

    Args:
        app: FastAPI application instance

    Yields:
        None
    """
    # Startup
    LOGGER.info(
        "Starting application",
        extra={
            "app_name": settings.app_name,
            "version": settings.app_version,
            "environment": settings.environment,
        },
    )

    settings.pipeline.ensure_valid()

    db_client = DatabaseClient(create_engine(settings.db))
    LOGGER.info("Initializing database...")
    await db_client.connect()
    await db_client.create_tables()
    LOGGER.info("Database initialized successfully")

    app.state.db_client = db_client
    app.state.session_factory = db_client.session_factory

    yield

    # Shutdown
    LOGGER.info("Shutting down application")
    await db_client.disconnect()


# Create FastAPI application
app = FastAPI(
    title=settings.app_name,
    version=settings.app_version,
    description="Multi-tenant insurance portfolio ingestion, risk metrics and AI analytics",
    docs_url="/docs",
    redoc_url="/redoc",
    openapi_url="/openapi.json",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Health check endpoint
@app.get(
    "/health",
    response_model=HealthCheckResponse,
    tags=["Health"],
    summary="Health check endpoint",
    description="Check if the service is running and healthy",
    operation_id="get_service_health_status",
)
async def health_check(request: Request) -> HealthCheckResponse:
    """Health check endpoint.

    Returns:
        HealthCheckResponse: Service health status
    """
    db_client = getattr(request.app.state, "db_client", None)
    db_health = await db_client.health_check() if db_client else {"status": "unhealthy"}

    return HealthCheckResponse(
        status="healthy" if db_health["status"] == "healthy" else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        database=db_health["status"],
    )


# Include routers
app.include_router(api_router, prefix=settings.api_v1_prefix)

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "insurepulse.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
