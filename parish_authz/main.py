"""
Parish authorization service.

Mounts the login/token endpoints under ``/api/auth`` and the role,
permission and assignment administration under ``/api/authz``.
"""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import Depends, FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.ext.asyncio import AsyncSession

from parish_authz.api.dependencies.database import get_db
from parish_authz.api.middleware import LoggingMiddleware, RequestIdMiddleware
from parish_authz.api.routes import router as api_router
from parish_authz.core.config import settings
from parish_authz.core.errors import register_exception_handlers
from parish_authz.core.logging import configure_logging
from parish_authz.models.database import close_db
from parish_authz.utils.health import HealthStatus, run_checks

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    logger.info(
        "authz_service_starting",
        version=settings.app_version,
        environment=settings.environment,
        super_role=settings.auth.super_role_code,
        access_token_minutes=settings.auth.access_token_expire_minutes,
    )
    yield
    await close_db()
    logger.info("authz_service_stopped")


def create_app() -> FastAPI:
    configure_logging()

    app = FastAPI(
        title=settings.app_name,
        version=settings.app_version,
        debug=settings.debug,
        lifespan=lifespan,
        docs_url="/docs" if settings.is_development else None,
        redoc_url="/redoc" if settings.is_development else None,
    )

    # Last added runs first: CORS, then request id, then access log
    app.add_middleware(LoggingMiddleware)
    app.add_middleware(RequestIdMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=settings.cors_allow_credentials,
        allow_methods=["*"],
        allow_headers=["*"],
        expose_headers=["X-Request-ID"],
    )

    app.include_router(api_router, prefix="/api")
    register_exception_handlers(app)

    @app.exception_handler(Exception)
    async def unhandled_exception(request: Request, exc: Exception):
        logger.exception("unhandled_error", path=request.url.path, method=request.method)
        return JSONResponse(
            status_code=500,
            content={
                "error": "internal_server_error",
                "message": str(exc) if settings.debug else "An error occurred",
            },
        )

    @app.get("/health")
    async def health_check():
        return {
            "status": HealthStatus.HEALTHY.value,
            "version": settings.app_version,
            "environment": settings.environment,
        }

    @app.get("/health/detailed")
    async def health_check_detailed(db: AsyncSession = Depends(get_db)):
        report = await run_checks(
            db,
            version=settings.app_version,
            environment=settings.environment,
            super_role_code=settings.auth.super_role_code,
        )
        status_code = 503 if report.status == HealthStatus.UNHEALTHY else 200
        return JSONResponse(content=report.to_dict(), status_code=status_code)

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "parish_authz.main:app",
        host=settings.host,
        port=settings.port,
        reload=settings.reload,
        workers=settings.workers,
    )
