"""FastAPI application factory for Licensary."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from licensary.common.config import get_settings
from licensary.common.exceptions import LicensaryError
from licensary.common.logging import setup_logging
from licensary.common.schemas import ErrorResponse, HealthResponse

logger = logging.getLogger(__name__)


def _error(status_code: int, message: str, code: str, detail: str = "") -> JSONResponse:
    body = ErrorResponse(error=message, code=code, detail=detail)
    return JSONResponse(status_code=status_code, content=body.model_dump())


def create_app() -> FastAPI:
    settings = get_settings()
    setup_logging(settings.log_level)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        # Startup
        from licensary.deps import (
            get_db,
            get_pull_scheduler,
            get_push_queue,
            get_sheets_client,
            get_user_service,
        )
        db = get_db()
        await db.init()
        await db.create_all()
        async with db.get_session() as session:
            await get_user_service().ensure_admin(session)

        queue = get_push_queue()
        scheduler = get_pull_scheduler()
        if queue is not None:
            queue.start()
        if scheduler is not None:
            scheduler.start()
            logger.info("Sheet sync enabled (pull every %ss)", settings.sheets_pull_interval)
        yield
        # Shutdown
        if scheduler is not None:
            await scheduler.stop()
        if queue is not None:
            await queue.stop()
        client = get_sheets_client()
        if client is not None:
            await client.close()
        await db.close()

    app = FastAPI(
        title=settings.api_title,
        version=settings.api_version,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LicensaryError)
    async def handle_licensary_error(request: Request, exc: LicensaryError):
        if exc.status_code >= 500:
            logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
        return _error(exc.status_code, exc.message, exc.code)

    @app.exception_handler(RequestValidationError)
    async def handle_validation_error(request: Request, exc: RequestValidationError):
        fields = ", ".join(
            ".".join(str(part) for part in err.get("loc", ()) if part != "body")
            for err in exc.errors()
        )
        return _error(400, "Invalid input", "BAD_REQUEST", detail=fields)

    @app.exception_handler(Exception)
    async def handle_unexpected_error(request: Request, exc: Exception):
        logger.exception("Unhandled error on %s %s", request.method, request.url.path)
        return _error(500, "Internal server error", "INTERNAL")

    @app.get("/health", response_model=HealthResponse)
    async def health():
        return HealthResponse(version=settings.api_version)

    # Mount routers; fixed /licenses/* paths go before /licenses/{key}
    from licensary.usage.router import router as usage_router
    from licensary.reporting.router import router as reporting_router
    from licensary.licensing.router import router as licensing_router
    from licensary.users.router import router as users_router
    from licensary.audit.router import router as audit_router
    from licensary.sheets.router import router as sync_router

    prefix = settings.api_prefix
    app.include_router(usage_router, prefix=prefix, tags=["usage"])
    app.include_router(reporting_router, prefix=prefix, tags=["reporting"])
    app.include_router(licensing_router, prefix=prefix, tags=["licensing"])
    app.include_router(users_router, prefix=prefix, tags=["users"])
    app.include_router(audit_router, prefix=prefix, tags=["audit"])
    app.include_router(sync_router, prefix=prefix, tags=["sync"])

    return app
