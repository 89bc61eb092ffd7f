"""
Main FastAPI application entry point for SkillBadge Backend.
Configures the application, middleware, and routes.
"""

import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles

from .api.v1.auth import router as auth_router
from .api.v1.blockchain import router as blockchain_router
from .api.v1.dashboard import router as dashboard_router
from .api.v1.health import router as health_router
from .api.v1.responses import exception_response
from .api.v1.skill_tests import router as skill_tests_router
from .core.config import Settings, load_settings
from .core.exceptions import SkillBadgeError
from .core.middleware import setup_middleware_stack
from .db.mongo import close_mongo_connection, connect_to_mongo
from .db.record_store import RecordStore
from .services.blob_storage_service import BlobStorageService
from .services.blockchain_service import LedgerClient
from .utils.logger import get_logger, setup_logger

logger = get_logger("main")


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager for startup and shutdown events.
    Handles database connections and cleanup.
    """
    settings: Settings = app.state.settings

    logger.info(f"Starting {settings.service_name}...")
    try:
        os.makedirs(settings.upload_root, exist_ok=True)
        db = await connect_to_mongo(settings)
        await RecordStore(db).ensure_indexes()
        logger.info(f"Ledger mode: {app.state.ledger.network_info()['mode']} on {settings.network.name}")
        logger.info("Application startup completed successfully")
    except Exception as e:
        logger.error(f"Failed to start application: {e}")
        raise

    yield

    logger.info(f"Shutting down {settings.service_name}...")
    try:
        await close_mongo_connection()
        logger.info("Application shutdown completed successfully")
    except Exception as e:
        logger.error(f"Error during shutdown: {e}")


def create_app(settings: Optional[Settings] = None) -> FastAPI:
    """
    Build the application.

    The ledger client and object store are created here; neither performs
    I/O until a request needs it. MongoDB is connected in the lifespan.

    Args:
        settings: Configuration; read from the environment when omitted

    Returns:
        FastAPI: configured application
    """
    settings = settings or load_settings()
    setup_logger(level=settings.log_level)

    app = FastAPI(
        title="SkillBadge Backend API",
        description="Wallet-authenticated skill tests with NFT achievement badges",
        version=settings.version,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan
    )

    app.state.settings = settings
    app.state.ledger = LedgerClient(settings)
    app.state.storage = BlobStorageService.from_settings(settings)

    setup_middleware_stack(app, settings.cors_origins)

    app.include_router(health_router)
    app.include_router(auth_router)
    app.include_router(blockchain_router)
    app.include_router(skill_tests_router)
    app.include_router(dashboard_router)

    # Local storage backend objects are served from here
    app.mount("/uploads", StaticFiles(directory=settings.upload_root, check_dir=False), name="uploads")

    @app.exception_handler(SkillBadgeError)
    async def service_exception_handler(request: Request, exc: SkillBadgeError):
        logger.error(f"Service error on {request.url.path}: {exc}")
        return exception_response(exc)

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(request: Request, exc: RequestValidationError):
        logger.warning(f"Validation error on {request.url.path}: {exc.errors()}")
        return JSONResponse(
            status_code=422,
            content={
                "error": "Validation Error",
                "message": "Request validation failed",
                "details": jsonable_errors(exc)
            }
        )

    @app.exception_handler(Exception)
    async def global_exception_handler(request: Request, exc: Exception):
        logger.error(f"Unhandled exception on {request.url.path}: {str(exc)}", exc_info=True)
        return JSONResponse(
            status_code=500,
            content={
                "error": "Internal Server Error",
                "details": str(exc)
            }
        )

    @app.get(
        "/",
        summary="Root Endpoint",
        description="Welcome endpoint for SkillBadge Backend API",
        tags=["root"]
    )
    async def root():
        return {
            "message": f"Welcome to {settings.service_name} API",
            "version": settings.version,
            "service": settings.service_name,
            "docs": "/docs",
            "health": "/api/health"
        }

    return app


def jsonable_errors(exc: RequestValidationError):
    # ctx may carry the raw ValueError from a model validator
    return [{k: v for k, v in error.items() if k != "ctx"} for error in exc.errors()]


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "app.main:app",
        host="0.0.0.0",
        port=8000,
        reload=True,
        log_level="info"
    )
