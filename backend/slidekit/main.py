"""FastAPI app for slide rendering and export"""
import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from slidekit.config import get_settings
from slidekit.errors import SlideKitError
from slidekit.logging_config import setup_logging

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Initialize database on startup."""
    setup_logging(get_settings().log_level)
    logger.info("Starting app...")

    from slidekit.database import dispose_engine, init_db
    if await init_db():
        logger.info("Database initialized")
    else:
        logger.warning("Database unavailable; record-backed routes will fail")

    yield

    logger.info("Shutting down...")
    await dispose_engine()


app = FastAPI(title="SlideKit", lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(SlideKitError)
async def slidekit_error_handler(request: Request, exc: SlideKitError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse({"detail": exc.message}, status_code=exc.status_code)


@app.exception_handler(Exception)
async def unexpected_error_handler(request: Request, exc: Exception):
    logger.exception(f"Unhandled error on {request.method} {request.url.path}")
    return JSONResponse({"detail": "Internal server error"}, status_code=500)


from slidekit.routes import router  # noqa: E402

app.include_router(router, prefix="/api")
