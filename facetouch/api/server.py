# =============================================================================
# DISCLAIMER: This software is NOT a medical or health product and makes no
# accuracy guarantees. It is a proof of concept for habit awareness only.
# Do not rely on this system for health decisions.
# =============================================================================
"""FastAPI application factory for the face touch monitor."""

import logging
from contextlib import asynccontextmanager
from typing import Dict, Optional, Type

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from facetouch import __version__
from facetouch.api.routes import health, session, status
from facetouch.config import Config
from facetouch.errors import (
    CameraUnavailable,
    FaceTouchError,
    InferenceDegraded,
    ModelLoadFailed,
    NotTrained,
    SessionBusy,
    SessionClosed,
    SessionNotReady,
    TrainingFailed,
)
from facetouch.state_machine import SessionController, create_controller

logger = logging.getLogger(__name__)

# Controller errors -> HTTP status
ERROR_STATUS: Dict[Type[FaceTouchError], int] = {
    SessionBusy: 409,
    SessionNotReady: 409,
    NotTrained: 409,
    SessionClosed: 410,
    CameraUnavailable: 503,
    ModelLoadFailed: 503,
    TrainingFailed: 500,
    InferenceDegraded: 500,
}


def status_code_for(error: FaceTouchError) -> int:
    """HTTP status for a controller error (500 if unmapped)."""
    for error_type, code in ERROR_STATUS.items():
        if isinstance(error, error_type):
            return code
    return 500


async def face_touch_error_handler(request: Request, exc: FaceTouchError) -> JSONResponse:
    code = status_code_for(exc)
    if code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc}")
    return JSONResponse(
        status_code=code,
        content={"error": type(exc).__name__, "detail": str(exc)},
    )


async def value_error_handler(request: Request, exc: ValueError) -> JSONResponse:
    return JSONResponse(
        status_code=422,
        content={"error": "ValueError", "detail": str(exc)},
    )


def create_app(
    config: Optional[Config] = None,
    controller: Optional[SessionController] = None,
) -> FastAPI:
    """Create and configure the FastAPI application.

    Args:
        config: Loaded configuration (defaults if None)
        controller: Pre-built controller (built from config if None)

    Returns:
        Configured FastAPI app
    """
    config = config or Config()

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Application lifespan handler for startup/shutdown."""
        logger.info("Face touch monitor starting...")

        app.state.controller = controller or create_controller(config)

        if config.web.auto_initialize:
            try:
                await app.state.controller.initialize()
            except FaceTouchError as e:
                logger.error(f"Auto-initialize failed: {e}")

        logger.info(f"Face touch monitor ready on {config.web.host}:{config.web.port}")

        yield

        logger.info("Face touch monitor shutting down...")
        await app.state.controller.shutdown()
        logger.info("Face touch monitor stopped")

    app = FastAPI(
        title="Face Touch Monitor",
        description=(
            "Learns what touching your face looks like from your webcam and "
            "alerts you when you do it. Not a health product."
        ),
        version=__version__,
        lifespan=lifespan,
    )

    # CORS middleware for a locally served UI
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(FaceTouchError, face_touch_error_handler)
    app.add_exception_handler(ValueError, value_error_handler)

    # Include routers
    app.include_router(health.router, tags=["Health"])
    app.include_router(status.router, tags=["Status"])
    app.include_router(session.router, prefix="/session", tags=["Session"])

    return app
