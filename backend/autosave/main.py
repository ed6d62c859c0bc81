"""Main FastAPI application."""

import logging

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException

from autosave.api import savings, wallets, webhooks
from autosave.config import settings
from autosave.core.errors import ConfirmationTimeoutError, SavingsError
from autosave.core.logging import setup_logging
from autosave.database import AsyncSessionLocal, engine
from autosave.services.vault_gateway import VaultGateway
from autosave.services.watchlist_cache import WatchListCache

setup_logging(settings.LOG_LEVEL)
logger = logging.getLogger(__name__)

# Create FastAPI app
app = FastAPI(
    title="AutoSave API",
    version="1.0.0",
    description="Detects inbound transfers to watched wallets and sweeps a share into an on-chain savings vault"
)

# Shared per-process state: one watch-list, one relayer
app.state.watchlist = WatchListCache(AsyncSessionLocal, ttl_seconds=settings.WATCHLIST_TTL_SECONDS)
app.state.vault_gateway = VaultGateway.from_settings()

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(
    webhooks.router,
    prefix=f"{settings.API_V1_PREFIX}",
    tags=["webhooks"]
)
app.include_router(
    wallets.router,
    prefix=f"{settings.API_V1_PREFIX}/wallets",
    tags=["wallets"]
)
app.include_router(
    savings.router,
    prefix=f"{settings.API_V1_PREFIX}/savings",
    tags=["savings"]
)


@app.on_event("startup")
async def startup():
    """Application startup tasks."""
    logger.info("🚀 AutoSave API starting...")
    logger.info(f"📝 Environment: {settings.ENVIRONMENT}")
    if not settings.SAVINGS_VAULT_ADDRESS:
        logger.warning("SAVINGS_VAULT_ADDRESS not set; vault operations will fail")


@app.on_event("shutdown")
async def shutdown():
    """Application shutdown tasks."""
    logger.info("👋 AutoSave API shutting down...")
    await engine.dispose()


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "message": "AutoSave API",
        "version": "1.0.0",
        "docs": "/docs",
        "redoc": "/redoc",
    }


@app.get("/health")
async def health_check():
    """Health check endpoint."""
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
    }


# Exception handlers: failures leave as {"success": false, "error": ...}
@app.exception_handler(SavingsError)
async def savings_error_handler(request: Request, exc: SavingsError):
    """Map domain errors to their HTTP status."""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message} {exc.details}")
    content = {"success": False, "error": exc.message}
    content.update(exc.details)
    return JSONResponse(status_code=exc.status_code, content=content)


@app.exception_handler(ConfirmationTimeoutError)
async def confirmation_timeout_handler(request: Request, exc: ConfirmationTimeoutError):
    """Submitted but unconfirmed: accepted, pending reconciliation."""
    return JSONResponse(
        status_code=exc.status_code,
        content={
            "success": True,
            "pending": True,
            "message": exc.message,
            "transactionHash": exc.tx_hash,
        }
    )


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Handle HTTP exceptions with consistent error format."""
    return JSONResponse(
        status_code=exc.status_code,
        content={"success": False, "error": exc.detail}
    )


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """Malformed request bodies and query parameters are client errors (400)."""
    errors = exc.errors()
    message = errors[0]["msg"] if errors else "Invalid request"
    return JSONResponse(
        status_code=400,
        content={
            "success": False,
            "error": message,
            "details": [
                {"loc": list(error.get("loc", ())), "msg": error.get("msg")}
                for error in errors
            ],
        }
    )


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error on {request.method} {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={"success": False, "error": "Internal server error"}
    )
