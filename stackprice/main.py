"""
Main FastAPI application bootstrap.
Configures logging, middleware and includes routers.
"""
import logging

from fastapi import FastAPI

from stackprice.core.config import config
from stackprice.core.logging_setup import configure_logging
from stackprice.api.overrides import router as overrides_router
from stackprice.api.pricing import router as pricing_router
from stackprice.middleware.request_size_limiter import RequestSizeLimiterMiddleware


configure_logging()
logger = logging.getLogger(__name__)

# Validate configuration on startup
try:
    config.validate()
except ValueError as error:
    raise RuntimeError(f"Configuration error: {error}") from error

logger.info(
    "Pricing pipeline configured: %d hours/month, unlimited=%g, history limit=%d",
    config.HOURS_PER_MONTH,
    config.UNLIMITED_QUANTITY,
    config.SNAPSHOT_HISTORY_LIMIT,
)


app = FastAPI(
    title="Stack Price",
    description="Layered pricing overrides, tiered billing and pricing change detection",
)

# Add request size limiting middleware
app.add_middleware(RequestSizeLimiterMiddleware)

# Include routers
app.include_router(pricing_router)
app.include_router(overrides_router)


@app.get("/health")
async def health() -> dict:
    """Liveness check."""
    return {"status": "ok"}
