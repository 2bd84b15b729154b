"""
Request size limiting middleware for FastAPI.
Protects pricing endpoints from oversized payloads.
"""
from typing import Any, Dict, Iterable, Optional
import json
import logging
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import ASGIApp

from stackprice.core.config import config

logger = logging.getLogger(__name__)


# Routes whose JSON bodies are size limited
PROTECTED_PREFIXES = ("/api/pricing", "/api/overrides")


def _too_large(message: str) -> JSONResponse:
    return JSONResponse(
        status_code=413,
        content={
            "status": "error",
            "error": "request_too_large",
            "message": message,
        }
    )


class RequestSizeLimiterMiddleware(BaseHTTPMiddleware):
    """
    FastAPI middleware for request size limiting.

    Applies byte limits and payload-aware limits (snapshot, tier and
    override counts) to pricing routes. Other routes pass through untouched.
    """

    async def dispatch(self, request: Request, call_next: ASGIApp):
        """
        Process request and apply size limits if applicable.

        Args:
            request: FastAPI request object
            call_next: Next middleware or route handler

        Returns:
            Response object
        """
        path = request.url.path
        if request.method != "POST" or not path.startswith(PROTECTED_PREFIXES):
            return await call_next(request)

        content_length = request.headers.get("Content-Length")
        if content_length and content_length.isdigit() and int(content_length) > config.MAX_REQUEST_BODY_SIZE:
            logger.info(
                "Request body size exceeded for %s: %s bytes (limit: %d)",
                path, content_length, config.MAX_REQUEST_BODY_SIZE,
            )
            return _too_large("Request body size exceeds allowed limit.")

        body_bytes = await request.body()
        if len(body_bytes) > config.MAX_REQUEST_BODY_SIZE:
            logger.info(
                "Request body size exceeded for %s: %d bytes (limit: %d)",
                path, len(body_bytes), config.MAX_REQUEST_BODY_SIZE,
            )
            return _too_large("Request body size exceeds allowed limit.")

        if body_bytes:
            try:
                body_json = json.loads(body_bytes.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError):
                # Let FastAPI report malformed JSON
                body_json = None

            if isinstance(body_json, dict):
                validation_error = self._validate_payload(body_json)
                if validation_error:
                    logger.info("Payload validation failed for %s: %s", path, validation_error)
                    return _too_large(validation_error)

        return await call_next(request)

    def _validate_payload(self, body_json: Dict[str, Any]) -> Optional[str]:
        """
        Validate payload-specific constraints.

        Args:
            body_json: Parsed JSON body

        Returns:
            Error message if validation fails, None if valid
        """
        snapshots = [
            body_json.get(key) for key in ("pricing", "previous", "next")
            if isinstance(body_json.get(key), dict)
        ]
        pricings = body_json.get("pricings")
        if isinstance(pricings, list):
            if len(pricings) > config.MAX_SNAPSHOTS_PER_REQUEST:
                return (
                    f"Too many pricing snapshots: {len(pricings)} "
                    f"(limit: {config.MAX_SNAPSHOTS_PER_REQUEST})"
                )
            snapshots.extend(item for item in pricings if isinstance(item, dict))

        for snapshot in snapshots:
            tiers = snapshot.get("tiers")
            if isinstance(tiers, list) and len(tiers) > config.MAX_TIERS_PER_SNAPSHOT:
                return (
                    f"Pricing snapshot too large: {len(tiers)} tiers "
                    f"(limit: {config.MAX_TIERS_PER_SNAPSHOT})"
                )

        overrides = body_json.get("overrides")
        if isinstance(overrides, dict):
            return self._validate_override_layers(overrides.values())
        return None

    def _validate_override_layers(self, layers: Iterable[Any]) -> Optional[str]:
        for layer in layers:
            if isinstance(layer, list) and len(layer) > config.MAX_OVERRIDES_PER_LAYER:
                return (
                    f"Too many overrides in one layer: {len(layer)} "
                    f"(limit: {config.MAX_OVERRIDES_PER_LAYER})"
                )
        return None
