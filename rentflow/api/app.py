"""rentflow FastAPI application."""

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from rentflow.api import landlord, payouts, tenant, webhook
from rentflow.config import get_settings
from rentflow.errors import AppError, error_response
from rentflow.services.db import dispose_engine, init_engine

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Manage application lifecycle (startup and shutdown)."""
    settings = get_settings()
    init_engine(settings.database_url, echo=settings.database_echo)
    yield
    logger.info("Application shutting down")
    dispose_engine()


async def app_error_handler(request: Request, exc: AppError) -> JSONResponse:
    """Render application errors as {"error": {...}} with their HTTP status."""
    if exc.http_status >= 500:
        logger.error("%s %s failed: %s", request.method, request.url.path, exc.message)
    else:
        logger.info("%s %s rejected: %s", request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.http_status, content=jsonable_encoder(error_response(exc)))


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error("Unhandled error on %s %s", request.method, request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": {"code": "internal_error", "message": "Internal server error"}},
    )


def create_app() -> FastAPI:
    """Build the application with all routers and error handlers."""
    settings = get_settings()
    application = FastAPI(
        title=settings.api_title,
        description="Rental billing, payment intake and landlord payouts",
        version=settings.api_version,
        lifespan=lifespan,
    )
    application.add_exception_handler(AppError, app_error_handler)
    application.add_exception_handler(Exception, unhandled_error_handler)

    application.include_router(landlord.router)
    application.include_router(tenant.router)
    application.include_router(webhook.router)
    application.include_router(payouts.router)

    @application.get("/health")
    def health_check():
        """Health check endpoint."""
        return {"status": "ok"}

    return application


app = create_app()
