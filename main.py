"""
FastAPI backend for codraw.

This module provides the web API for the shared drawing canvas: stroke
simplification, prompt rendering for canvas state, streamed draw turns
answered by Claude, and a page-view counter.
"""

import os

import uvicorn
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, ORJSONResponse

from api.app_config import get_app_config
from api.shared.logger import get_logger, setup_logging

setup_logging()
logger = get_logger(__name__)

from api.draw import router as draw_router
from api.system import router as system_router
from api.views import router as views_router

# Create FastAPI app
app = FastAPI(
    title="codraw API",
    description="API for the codraw shared drawing canvas",
    version="1.0.0",
    default_response_class=ORJSONResponse,
)


# ============= Exception Handlers for Error Logging =============


@app.exception_handler(HTTPException)
async def http_exception_handler(request: Request, exc: HTTPException):
    """Log HTTP exceptions and return JSON response."""
    # Only log 5xx errors (server errors)
    if exc.status_code >= 500:
        logger.error("%s failed with %d: %s", request.url.path, exc.status_code, exc.detail)
    return JSONResponse(
        status_code=exc.status_code,
        content={"detail": exc.detail},
    )


@app.exception_handler(Exception)
async def general_exception_handler(request: Request, exc: Exception):
    """Log unexpected exceptions and return JSON response."""
    logger.exception("Unhandled %s on %s: %s", type(exc).__name__, request.url.path, exc)
    return JSONResponse(
        status_code=500,
        content={"detail": "Internal server error"},
    )


# CORS is open: the drawing frontend runs on its own dev server
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=False,  # Must be False when using allow_origins=["*"]
    allow_methods=["*"],
    allow_headers=["*"],
)


# Include API routes
app.include_router(system_router, prefix="/api", tags=["system"])
app.include_router(draw_router, prefix="/api", tags=["draw"])
app.include_router(views_router, prefix="/api", tags=["views"])


@app.on_event("startup")
async def startup_event():
    """Log configuration on application startup."""
    config = get_app_config()
    logger.info("codraw backend starting...")
    logger.info("Data directory: %s", config.data_dir)
    if not config.api_key:
        logger.warning(
            "DRAW_WEB_API_KEY not set - draw turns need a userApiKey in each request"
        )


if __name__ == "__main__":
    import argparse

    parser = argparse.ArgumentParser(description="codraw backend server")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.environ.get("CODRAW_PORT", 8000)),
        help="Port to run the server on (default: 8000 or CODRAW_PORT env var)",
    )
    parser.add_argument(
        "--host",
        type=str,
        default="127.0.0.1",
        help="Host to bind to (default: 127.0.0.1)",
    )
    parser.add_argument(
        "--reload",
        action=argparse.BooleanOptionalAction,
        default=False,
        help="Enable auto-reload",
    )
    args = parser.parse_args()

    uvicorn.run(
        "main:app",
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_level="info",
    )
