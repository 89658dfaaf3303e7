import logging
import os
import time
from contextlib import asynccontextmanager
from datetime import datetime

import redis
import socketio
from fastapi import Depends, FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError
from starlette.exceptions import HTTPException as StarletteHTTPException

# Import all models so every table is registered with Base before create_all
from . import (
    models,  # noqa: F401
    models_messaging,  # noqa: F401
    models_sms,  # noqa: F401
    models_viewing,  # noqa: F401
)
from .config import ALLOWED_ORIGINS, ENVIRONMENT
from .database import Base, engine
from .domain.bookings.router import router as bookings_router
from .domain.messaging.router import router as messages_router
from .rate_limiter import get_redis_client, global_rate_limit
from .routes.agent import router as agent_router
from .routes.analytics import router as analytics_router
from .routes.auth import router as auth_router
from .routes.calendar import router as calendar_router
from .routes.host import router as host_router
from .routes.notifications import router as notifications_router
from .routes.payments import router as payments_router
from .routes.properties import router as properties_router
from .routes.reviews import router as reviews_router
from .routes.super_admin import router as super_admin_router
from .routes.super_admin_management import router as super_admin_management_router
from .routes.viewings import router as viewings_router
from .routes.wishlist import router as wishlist_router
from .security_headers import SecurityHeadersMiddleware
from .services.socket_service import register_socketio_handlers, sio

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

logging.getLogger("httpx").setLevel(logging.WARNING)
logging.getLogger("httpcore").setLevel(logging.WARNING)

API_PREFIX = "/api"
SECURITY_HEADERS_ENABLED = os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true"
UNHARDENED_PATHS = ["/health", "/docs", "/openapi.json"]

API_ROUTERS = (
    auth_router,
    properties_router,
    bookings_router,
    payments_router,
    reviews_router,
    messages_router,
    notifications_router,
    wishlist_router,
    calendar_router,
    host_router,
    agent_router,
    viewings_router,
    analytics_router,
    super_admin_router,
    super_admin_management_router,
)


def create_tables() -> None:
    try:
        Base.metadata.create_all(bind=engine, checkfirst=True)
    except SQLAlchemyError as e:
        # Several workers may race to create the same tables on first boot
        if "already exists" in str(e) or "duplicate key" in str(e):
            logger.info("Tables were created by another worker")
            return
        logger.error(f"❌ Failed to create database tables: {e}")
        return
    logger.info("✅ Database tables ready")


@asynccontextmanager
async def lifespan(app: FastAPI):
    logger.info(f"🚀 Marketplace API starting ({ENVIRONMENT})")
    create_tables()
    try:
        get_redis_client()
    except redis.RedisError as e:
        logger.warning(f"⚠️ Redis unavailable, rate limits and cache stay in process memory: {e}")
    yield
    logger.info("Marketplace API shutting down")


app = FastAPI(title="UAE Rental Marketplace API", version="1.0.0", lifespan=lifespan)


@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    if isinstance(exc.detail, dict):
        content = {"success": False, "error": "Request failed", **exc.detail}
    else:
        content = {"success": False, "error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=getattr(exc, "headers", None))


@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    """
    Report body and query errors as 400 "Validation failed" with one entry per
    field. A missing Authorization header also surfaces here and maps to 401.
    """
    errors = exc.errors()
    if any("authorization" in str(err.get("loc", "")).lower() for err in errors):
        return JSONResponse(status_code=401, content={"success": False, "error": "Access token required"})

    logger.warning(f"Rejected {request.method} {request.url.path}: {errors}")
    details = [
        {"field": ".".join(str(part) for part in err.get("loc", ()) if part != "body"), "message": err.get("msg")}
        for err in errors
    ]
    return JSONResponse(status_code=400, content={"success": False, "error": "Validation failed", "details": details})


@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"❌ {request.method} {request.url.path} - Unhandled error: {exc}", exc_info=exc)
    return JSONResponse(status_code=500, content={"success": False, "error": "Internal server error"})


if SECURITY_HEADERS_ENABLED:
    app.add_middleware(SecurityHeadersMiddleware, exclude_paths=UNHARDENED_PATHS)
else:
    logger.warning("Security headers DISABLED - only use in development!")

app.add_middleware(
    CORSMiddleware,
    allow_origins=ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS"],
    allow_headers=["*"],
)

for api_router in API_ROUTERS:
    app.include_router(api_router, prefix=API_PREFIX, dependencies=[Depends(global_rate_limit)])


@app.get("/health")
def health():
    return {"status": "OK", "timestamp": datetime.utcnow().isoformat(), "environment": ENVIRONMENT}


@app.get("/health/redis")
async def redis_health_check():
    """Redis round-trip time for uptime monitors"""
    try:
        client = get_redis_client()
        started = time.perf_counter()
        client.ping()
        latency_ms = (time.perf_counter() - started) * 1000
        version = client.info("server").get("redis_version", "unknown")
    except redis.RedisError as e:
        return {"status": "unhealthy", "redis": {"connected": False, "error": str(e)}}
    return {"status": "healthy", "redis": {"connected": True, "latency_ms": round(latency_ms, 2), "version": version}}


register_socketio_handlers(sio)

# ASGI entry point: Socket.IO on /socket.io, everything else handled by FastAPI
asgi_app = socketio.ASGIApp(sio, other_asgi_app=app)
