"""
FastAPI application
"""
from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from loguru import logger

from app.core.config import get_settings
from app.core.errors import AppError
from app.core.log import configure_logging
from app.routers import amazon, google_ads, legacy, meta_ads, orders, products
from app.services.cache import get_cache
from app.services.dashboard_cache import get_dashboard_cache

settings = get_settings()
configure_logging(settings.LOG_LEVEL)

LEGACY_PREFIX = "/api/"


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Start the dashboard snapshot refresher; close shared clients on shutdown."""
    logger.info(f"Starting {settings.APP_NAME} ({settings.ENV})")
    snapshot_cache = get_dashboard_cache()
    snapshot_cache.start()
    yield
    await snapshot_cache.stop()
    await get_cache().close()
    logger.info("Shutdown complete")


app = FastAPI(title=settings.APP_NAME, debug=settings.DEBUG, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=[o.strip() for o in settings.CORS_ORIGIN.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _error_body(request: Request, message: str) -> dict:
    if request.url.path.startswith(LEGACY_PREFIX):
        return {"error": message}
    return {"success": False, "message": message}


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content=_error_body(request, exc.message))


@app.exception_handler(Exception)
async def unhandled_error_handler(request: Request, exc: Exception):
    logger.exception(f"{request.method} {request.url.path} unhandled error")
    if request.url.path.startswith(LEGACY_PREFIX):
        return JSONResponse(status_code=500, content={"error": str(exc)})
    return JSONResponse(
        status_code=500,
        content={"success": False, "message": "Internal server error", "error": str(exc)},
    )


for module in (orders, products, amazon, meta_ads, google_ads, legacy):
    app.include_router(module.router)


@app.get("/")
async def root():
    return {
        "app": settings.APP_NAME,
        "version": "1.0.0",
        "status": "running",
    }


@app.get("/health")
async def health():
    return {"status": "healthy"}
