"""
FastAPI application with New Relic APM, CORS, lifespan, error mapping and all routers.
"""
import logging
import os

# New Relic must be initialized BEFORE any other imports that it instruments.
if os.getenv("NEW_RELIC_LICENSE_KEY"):
    import newrelic.agent
    newrelic.agent.initialize("newrelic.ini")

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from govcar.config import get_settings
from govcar.exceptions import DispatchError
from govcar.redis_client import get_redis, close_redis
from govcar.routers import admin, bookings, cron, drivers, webhooks

settings = get_settings()
logger = logging.getLogger(__name__)

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
)


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info("Starting %s [%s]", settings.app_name, settings.env)
    await get_redis()          # warm up connection pool
    yield
    await close_redis()
    logger.info("Shutdown complete")


app = FastAPI(
    title=settings.app_name,
    version="1.0.0",
    description="Driver queue rotation and assignment for government vehicle bookings",
    lifespan=lifespan,
)

# CORS
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


# Expected operational errors (no driver, not found, bad input, store down)
@app.exception_handler(DispatchError)
async def dispatch_error_handler(request: Request, exc: DispatchError):
    log = logger.error if exc.status_code >= 500 else logger.info
    log("%s on %s: %s", exc.code, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={"error": exc.code, "detail": exc.detail})


# Global error handler
@app.exception_handler(Exception)
async def global_exception_handler(request: Request, exc: Exception):
    logger.error("Unhandled error on %s: %s", request.url, exc, exc_info=True)
    return JSONResponse(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        content={"error": "INTERNAL_ERROR", "detail": "Internal server error"},
    )


# Health check (no auth)
@app.get("/health", tags=["Health"])
async def health():
    return {"status": "ok"}


# Register routers
app.include_router(admin.router)
app.include_router(drivers.router)
app.include_router(bookings.router)
app.include_router(cron.router)
app.include_router(webhooks.router)
