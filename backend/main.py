import asyncio
import logging
import logging.config
from datetime import datetime, timezone

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from fastapi.middleware.cors import CORSMiddleware
from starlette.middleware.base import BaseHTTPMiddleware

# ------------------------------------------------------------
# 1. CONFIG & LOGGING
# ------------------------------------------------------------
from app.core.config import settings
from app.core.rate_limit import RateLimitExceeded, RateLimiter, sweep_forever

LOG_LEVEL = "INFO" if settings.ENVIRONMENT == "production" else "DEBUG"

logging_config = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "default": {
            "format": "%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "default",
        },
    },
    "loggers": {
        "uvicorn": {"handlers": ["console"], "level": LOG_LEVEL},
        "uvicorn.error": {"handlers": ["console"], "level": LOG_LEVEL},
        "uvicorn.access": {"handlers": ["console"], "level": LOG_LEVEL},
        "storefront": {"handlers": ["console"], "level": LOG_LEVEL, "propagate": False},
    },
}

logging.config.dictConfig(logging_config)
logger = logging.getLogger("storefront")


class CustomProxyHeadersMiddleware(BaseHTTPMiddleware):
    """
    Honour X-Forwarded-Proto so request.base_url matches the public scheme
    when the gateway callback URL is derived from the request.
    """
    async def dispatch(self, request, call_next):
        x_forwarded_proto = request.headers.get("x-forwarded-proto")
        if x_forwarded_proto:
            request.scope["scheme"] = x_forwarded_proto.split(",")[0].strip()
        return await call_next(request)


# ------------------------------------------------------------
# 2. FASTAPI APP
# ------------------------------------------------------------
app = FastAPI(
    title=f"{settings.PROJECT_NAME} API",
    description="Moolre payment links, callbacks, verification and order notifications for the storefront.",
    version="1.0.0",
    docs_url="/docs" if settings.DEBUG else None,
    redoc_url="/redoc" if settings.DEBUG else None,
)
app.state.rate_limiter = RateLimiter()

# ------------------------------------------------------------
# 3. MIDDLEWARE
# ------------------------------------------------------------
app.add_middleware(CustomProxyHeadersMiddleware)
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(RateLimitExceeded)
async def _rate_limited(_req: Request, exc: RateLimitExceeded):
    return JSONResponse(
        status_code=429,
        content={"success": False, "message": exc.message},
        headers={
            "Retry-After": str(exc.result.reset_in),
            "X-RateLimit-Remaining": "0",
            "X-RateLimit-Reset": str(exc.result.reset_in),
        },
    )


# ------------------------------------------------------------
# 4. ROUTERS (API ROUTES)
# ------------------------------------------------------------
from app.routers import (
    payment_router,
    notifications_router,
    storefront_router,
    cron_router,
    recaptcha_router,
)

app.include_router(payment_router.router, prefix="/api", tags=["Payments"])
app.include_router(notifications_router.router, prefix="/api", tags=["Notifications"])
app.include_router(storefront_router.router, prefix="/api", tags=["Storefront"])
app.include_router(cron_router.router, prefix="/api", tags=["Cron"])
app.include_router(recaptcha_router.router, prefix="/api", tags=["reCAPTCHA"])


# ------------------------------------------------------------
# 5. SYSTEM ROUTES
# ------------------------------------------------------------
@app.get("/health", tags=["System"])
async def health_check():
    return {
        "status": "healthy",
        "environment": settings.ENVIRONMENT,
        "gateway_configured": settings.moolre_configured,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }


# ------------------------------------------------------------
# 6. STARTUP
# ------------------------------------------------------------
async def _sweep_storefront_cache_forever(interval: int = 5 * 60):
    while True:
        await asyncio.sleep(interval)
        removed = storefront_router.storefront_cache.sweep()
        if removed:
            logger.debug(f"Swept {removed} stale storefront cache entries")


@app.on_event("startup")
async def startup_event():
    logger.info(f"{settings.PROJECT_NAME} API started | Env: {settings.ENVIRONMENT} | Debug: {settings.DEBUG}")
    if not settings.moolre_configured:
        logger.warning("Moolre credentials missing: payment links will be refused")
    if settings.TRUST_REDIRECT_FALLBACK:
        logger.warning("TRUST_REDIRECT_FALLBACK is on: redirects alone can mark orders paid")


@app.on_event("startup")
async def start_background_tasks():
    """Start in-process housekeeping loops"""
    asyncio.create_task(sweep_forever(app.state.rate_limiter))
    asyncio.create_task(_sweep_storefront_cache_forever())
    logger.info("Rate-limit and cache sweepers started")
