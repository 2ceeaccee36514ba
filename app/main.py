"""ASGI entry point for the customer identity service."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from app.api.v1.middleware.auth import JWTAuthenticationMiddleware
from app.api.v1.router import api_router
from app.core.config import settings
from app.database.client import close_database, db_client, init_database
from app.schemas.health import HealthCheckResponse
from app.utils.logging import get_logger

LOGGER = get_logger(__name__, level=settings.log_level)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    # Every endpoint needs the store, so a failed connection aborts startup
    await init_database(auto_migrate=settings.environment != "production")
    LOGGER.info(
        f"{settings.app_name} {settings.app_version} started",
        extra={"environment": settings.environment},
    )
    try:
        yield
    finally:
        await close_database()


async def health_check() -> HealthCheckResponse:
    """Report service liveness and database reachability."""
    db_health = await db_client.health_check()
    return HealthCheckResponse(
        status="healthy" if db_health["status"] == "healthy" else "degraded",
        version=settings.app_version,
        service=settings.app_name,
        database=db_health["status"],
    )


def create_app() -> FastAPI:
    """Build the application with authentication, CORS and the v1 API."""
    application = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        description="Resolves storefront, accounting, marketplace and support records "
        "into one canonical customer",
        lifespan=lifespan,
    )

    # CORS is added last so it wraps authentication and answers preflights
    application.add_middleware(JWTAuthenticationMiddleware)
    application.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    application.add_api_route(
        "/health",
        health_check,
        methods=["GET"],
        response_model=HealthCheckResponse,
        tags=["Health"],
        operation_id="get_service_health_status",
    )
    application.include_router(api_router, prefix=settings.api_v1_prefix)
    return application


app = create_app()

if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.debug,
        log_level=settings.log_level.lower(),
    )
