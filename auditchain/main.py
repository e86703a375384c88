"""
FastAPI application entry point.
Configures routers and lifecycle events.
"""

from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

from fastapi import FastAPI
from sqlalchemy import text

from auditchain.core.config import get_settings
from auditchain.core.logging import configure_logging, get_logger
from auditchain.db.session import close_db, get_db_session, init_db
from auditchain.modules.audit.router import router as audit_router

configure_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """
    Application lifespan manager.

    Opens the database pool on startup and disposes it on shutdown.
    """
    settings = get_settings()
    logger.info(
        "starting_application",
        environment=settings.environment,
        version=settings.version,
    )

    await init_db()
    logger.info("database_initialized")

    yield

    await close_db()
    logger.info("application_shutdown_complete")


def create_application() -> FastAPI:
    """
    Application factory function.

    Creates and configures the FastAPI application with routers and
    settings applied.
    """
    settings = get_settings()

    app = FastAPI(
        title=settings.project_name,
        version=settings.version,
        openapi_url=f"{settings.api_v1_prefix}/openapi.json",
        docs_url=f"{settings.api_v1_prefix}/docs",
        redoc_url=None,
        lifespan=lifespan,
    )

    @app.get("/health", tags=["Health"])
    async def health_check() -> dict[str, object]:
        checks: dict[str, str] = {}

        try:
            async for session in get_db_session():
                await session.execute(text("SELECT 1"))
            checks["db"] = "ok"
        except Exception:
            logger.warning("health_check_db_unavailable", exc_info=True)
            checks["db"] = "unavailable"

        overall = "healthy" if all(v == "ok" for v in checks.values()) else "degraded"
        return {"status": overall, "version": settings.version, "checks": checks}

    app.include_router(
        audit_router,
        prefix=f"{settings.api_v1_prefix}/admin/audit",
        tags=["Audit"],
    )

    return app


app = create_application()
