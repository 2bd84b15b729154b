"""
API routes for managing stored pricing overrides.
"""
from typing import Dict, Any, Optional
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field
import logging

from stackprice.domain.override_models import (
    DEFAULT_PRIORITY,
    MalformedOverridePath,
    Override,
    OverridePath,
    OverrideScope,
)
from stackprice.services.override_store import OverrideStoreError, get_override_store


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/overrides", tags=["overrides"])


class OverrideRequest(BaseModel):
    """Request model for creating or replacing an override."""
    path: str = Field(..., min_length=1, description="Override path (e.g., 'tiers[2].basePrice')")
    value: Any = Field(..., description="Replacement value")
    scope: OverrideScope = Field(OverrideScope.PROVIDER, description="global, provider or local")
    provider: Optional[str] = Field(None, description="Provider id (required unless scope is global)")
    priority: int = Field(DEFAULT_PRIORITY, description="Higher wins on the same path within a scope")
    reason: Optional[str] = Field(None, description="Why the override exists")


@router.get("")
async def list_overrides(
    scope: Optional[OverrideScope] = None,
    provider: Optional[str] = None
) -> Dict[str, Any]:
    """List stored overrides, optionally filtered by scope and provider."""
    store = get_override_store()
    overrides = store.list(scope=scope, provider=provider)
    return {
        "status": "ok",
        "overrides": [override.to_dict() for override in overrides],
    }


@router.post("")
async def save_override(request: OverrideRequest) -> Dict[str, Any]:
    """
    Create an override, replacing any stored override at the same path.

    Raises:
        HTTPException: 422 if the path is malformed, 400 if the provider is missing
    """
    store = get_override_store()
    try:
        override = Override(
            path=OverridePath.parse(request.path, request.scope.value),
            value=request.value,
            scope=request.scope,
            provider=None if request.scope is OverrideScope.GLOBAL else request.provider,
            priority=request.priority,
            reason=request.reason,
        )
        saved = store.save(override)
    except MalformedOverridePath as error:
        raise HTTPException(
            status_code=422,
            detail=str(error)
        ) from error
    except OverrideStoreError as error:
        raise HTTPException(
            status_code=400,
            detail=str(error)
        ) from error

    return {
        "status": "ok",
        "override": saved.to_dict(),
    }


@router.delete("")
async def delete_override(
    path: str,
    scope: OverrideScope = OverrideScope.PROVIDER,
    provider: Optional[str] = None
) -> Dict[str, Any]:
    """
    Remove the override stored at a path.

    Returns 404 if no override matches.
    """
    store = get_override_store()
    try:
        removed = store.remove(path, scope, provider)
    except MalformedOverridePath as error:
        raise HTTPException(status_code=422, detail=str(error)) from error
    except OverrideStoreError as error:
        raise HTTPException(status_code=400, detail=str(error)) from error

    if not removed:
        raise HTTPException(
            status_code=404,
            detail="Override not found"
        )

    return {"status": "ok", "removed": path}


@router.get("/validate")
async def validate_overrides(provider: Optional[str] = None) -> Dict[str, Any]:
    """Report conflicting, negative or expired stored overrides."""
    result = get_override_store().validate(provider=provider)
    return {
        "status": "ok",
        "validation": result.to_dict(),
    }
