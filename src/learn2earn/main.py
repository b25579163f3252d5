"""Main entry point for the Learn2Earn application."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from learn2earn.api.v1 import submissions_router, system_router
from learn2earn.core.errors import RewardsError
from learn2earn.core.settings import settings
from learn2earn.db.schema import ensure_additive_columns
from learn2earn.db.session import create_tables, engine
from learn2earn.services.ledger import get_ledger_client
from learn2earn.utils.redaction import describe_secret

logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)
logger = logging.getLogger(__name__)

# Initialize FastAPI app
app = FastAPI(
    title="Learn2Earn API",
    description="Education rewards backend reconciling submissions with an on-chain ledger",
    version=settings.app_version,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=settings.cors_allow_credentials,
    allow_methods=settings.cors_allow_methods,
    allow_headers=settings.cors_allow_headers,
)

# Include API routers
app.include_router(submissions_router, prefix="/api/v1")
app.include_router(system_router, prefix="/api/v1")


@app.exception_handler(RewardsError)
async def rewards_error_handler(request: Request, exc: RewardsError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error("%s on %s: %s", exc.code, request.url.path, exc, exc_info=exc.__cause__)
    return JSONResponse(status_code=exc.status_code, content=exc.to_payload())


@app.exception_handler(RequestValidationError)
async def validation_error_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    detail = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    return JSONResponse(
        status_code=status.HTTP_400_BAD_REQUEST,
        content={"detail": detail, "error": "VALIDATION_ERROR"},
    )


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s", request.url.path, exc_info=exc)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"detail": "Internal server error", "error": "INTERNAL_ERROR"},
    )


@app.on_event("startup")
async def on_startup() -> None:
    create_tables()
    added = ensure_additive_columns(engine)
    if added:
        logger.info("Database upgraded with columns: %s", ", ".join(added))
    logger.info(
        "Learn2Earn backend starting (moderator key: %s, distribution key: %s)",
        describe_secret(settings.moderator_key),
        describe_secret(settings.ledger_private_key),
    )


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await get_ledger_client().close()


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint to verify the service is running."""
    return {"status": "ok"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint with basic information about the API."""
    return {
        "name": "Learn2Earn API",
        "version": settings.app_version,
        "docs": "/docs",
        "redoc": "/redoc",
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run("learn2earn.main:app", host="0.0.0.0", port=8000, reload=settings.debug)
