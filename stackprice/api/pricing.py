"""
API routes for pricing validation, composition, estimation and diffing.
"""
from typing import Dict, Any, List, Optional
from fastapi import APIRouter, HTTPException
from pydantic import BaseModel, Field, ValidationError
import logging

from stackprice.domain.override_models import EffectivePricing
from stackprice.domain.pricing_models import PricingSnapshot
from stackprice.domain.schemas import OverrideSchema, UsageVectorSchema
from stackprice.domain.usage_models import UsageVector
from stackprice.domain.validation_models import format_location
from stackprice.pricing.units import InvalidQuantity
from stackprice.services.billing_calculator import estimate
from stackprice.services.change_detector import get_change_detector
from stackprice.services.cost_aggregator import (
    CostAggregator,
    CostAggregatorError,
    compare_providers,
    usage_from_load_profile,
)
from stackprice.services.override_composer import compose, get_override_composer
from stackprice.services.override_store import get_override_store
from stackprice.services.pricing_validator import PricingValidator
from stackprice.services.tier_resolver import NoTierAvailable


logger = logging.getLogger(__name__)
router = APIRouter(prefix="/api/pricing", tags=["pricing"])


class OverrideLayers(BaseModel):
    """Override arrays per scope, lowest precedence first."""
    global_: List[OverrideSchema] = Field(default_factory=list, alias="global")
    provider: List[OverrideSchema] = Field(default_factory=list)
    local: List[OverrideSchema] = Field(default_factory=list)

    def as_layers(self) -> List[List[Dict[str, Any]]]:
        return [
            [override.model_dump() for override in layer]
            for layer in (self.global_, self.provider, self.local)
        ]


class ValidateRequest(BaseModel):
    """Request model for pricing validation."""
    pricing: Dict[str, Any] = Field(..., description="Pricing snapshot in its external form")


class EffectivePricingRequest(BaseModel):
    """Request model for composing effective pricing."""
    pricing: Dict[str, Any] = Field(..., description="Base pricing snapshot")
    overrides: Optional[OverrideLayers] = Field(None, description="Inline override layers")
    use_store: bool = Field(False, description="Compose from the override store instead")


class EstimateRequest(BaseModel):
    """Request model for a single-provider estimate."""
    pricing: Dict[str, Any] = Field(..., description="Base pricing snapshot")
    usage: Dict[str, Any] = Field(..., description="Usage vector with required period")
    tier: Optional[str] = Field(None, description="Optional tier hint")
    preferences: Optional[List[str]] = Field(None, description="Optional tier preference list")
    annual_factor: Optional[float] = Field(None, gt=0, le=1, description="Optional yearly discount factor")
    overrides: Optional[OverrideLayers] = Field(None, description="Inline override layers")
    use_store: bool = Field(False, description="Apply overrides from the override store")


class DiffRequest(BaseModel):
    """Request model for diffing two snapshots."""
    previous: Optional[Dict[str, Any]] = Field(None, description="Previous snapshot (omit for first observation)")
    next: Dict[str, Any] = Field(..., description="New snapshot")


class CompareRequest(BaseModel):
    """Request model for comparing providers on one workload."""
    pricings: List[Dict[str, Any]] = Field(..., min_length=1, description="Pricing snapshots to compare")
    usage: Dict[str, Any] = Field(..., description="Usage vector with required period")
    hints: Dict[str, str] = Field(default_factory=dict, description="Provider id to tier hint")
    use_store: bool = Field(False, description="Apply overrides from the override store")


class AggregateRequest(BaseModel):
    """Request model for pricing a multi-component architecture."""
    pricings: List[Dict[str, Any]] = Field(..., min_length=1, description="Pricing snapshots by provider")
    architecture: Dict[str, Any] = Field(..., description="Hosting, databases and services")
    usage: Optional[Dict[str, Any]] = Field(None, description="Usage vector")
    load_profile: Optional[Dict[str, Any]] = Field(None, description="Load profile (used when usage is omitted)")
    use_store: bool = Field(False, description="Apply overrides from the override store")


def _load_snapshot(raw: Dict[str, Any]) -> PricingSnapshot:
    """
    Validate and parse a pricing snapshot.

    Raises:
        HTTPException: 422 with field-level messages if validation fails
    """
    result = PricingValidator().validate(raw)
    if not result.valid:
        raise HTTPException(
            status_code=422,
            detail={"message": "Invalid pricing data", "errors": result.errors}
        )
    return PricingSnapshot.from_dict(raw)


def _load_usage(raw: Dict[str, Any]) -> UsageVector:
    """
    Validate and parse a usage vector.

    Raises:
        HTTPException: 422 with field-level messages if validation fails
    """
    try:
        UsageVectorSchema.model_validate(raw)
    except ValidationError as error:
        raise HTTPException(
            status_code=422,
            detail={
                "message": "Invalid usage",
                "errors": [
                    f"{format_location(issue['loc'])}: {issue['msg']}"
                    for issue in error.errors()
                ],
            }
        ) from error
    return UsageVector.from_dict(raw)


def _effective(
    snapshot: PricingSnapshot,
    overrides: Optional[OverrideLayers],
    use_store: bool
) -> EffectivePricing:
    if use_store:
        return get_override_composer().compose_from_store(snapshot, get_override_store())
    layers = overrides.as_layers() if overrides else []
    return compose(snapshot, layers)


@router.post("/validate")
async def validate_pricing(request: ValidateRequest) -> Dict[str, Any]:
    """
    Validate a pricing snapshot.

    Structural failures are returned as field-level messages; pricing-logic
    problems (non-monotonic tiers) are returned as warnings.
    """
    validator = PricingValidator()
    result = validator.validate(request.pricing)

    logic_warnings: List[str] = []
    if result.valid:
        snapshot = PricingSnapshot.from_dict(request.pricing)
        logic_warnings = validator.validate_pricing_logic(snapshot).warnings

    return {
        "status": "ok",
        "validation": result.to_dict(),
        "logicWarnings": logic_warnings,
    }


@router.post("/effective")
async def effective_pricing(request: EffectivePricingRequest) -> Dict[str, Any]:
    """
    Compose effective pricing from a base snapshot and override layers.

    Malformed overrides are skipped and reported in `errors`.
    """
    snapshot = _load_snapshot(request.pricing)
    effective = _effective(snapshot, request.overrides, request.use_store)
    return {
        "status": "ok",
        "effective": effective.to_dict(),
    }


@router.post("/estimate")
async def estimate_cost(request: EstimateRequest) -> Dict[str, Any]:
    """
    Estimate the cost of a usage vector on one provider.

    Raises:
        HTTPException: 422 if the pricing or usage is invalid, or no tier is available
    """
    snapshot = _load_snapshot(request.pricing)
    usage = _load_usage(request.usage)
    effective = _effective(snapshot, request.overrides, request.use_store)

    try:
        breakdown = estimate(
            effective,
            usage,
            hint=request.tier,
            preferences=request.preferences,
            annual_factor=request.annual_factor,
        )
    except NoTierAvailable as error:
        raise HTTPException(
            status_code=422,
            detail=f"Failed to estimate costs: {str(error)}"
        ) from error

    return {
        "status": "ok",
        "estimate": breakdown.to_dict(),
        "overrideErrors": effective.to_dict()["errors"],
    }


@router.post("/diff")
async def diff_pricing(request: DiffRequest) -> Dict[str, Any]:
    """Diff two pricing snapshots and classify the significance of changes."""
    previous = _load_snapshot(request.previous) if request.previous is not None else None
    next_snapshot = _load_snapshot(request.next)
    report = get_change_detector().diff(previous, next_snapshot)
    return {
        "status": "ok",
        "report": report.to_dict(),
    }


@router.post("/compare")
async def compare_pricing(request: CompareRequest) -> Dict[str, Any]:
    """Rank providers by the monthly cost of the same usage, cheapest first."""
    usage = _load_usage(request.usage)
    pricings = {}
    for raw in request.pricings:
        snapshot = _load_snapshot(raw)
        pricings[snapshot.provider] = _effective(snapshot, None, request.use_store)

    comparison = compare_providers(pricings, usage, hints=request.hints)
    return {
        "status": "ok",
        "comparison": comparison.to_dict(),
    }


@router.post("/aggregate")
async def aggregate_cost(request: AggregateRequest) -> Dict[str, Any]:
    """
    Price every component of an architecture and sum the results.

    Raises:
        HTTPException: 422 if a component cannot be priced or input is invalid
    """
    pricings = {}
    for raw in request.pricings:
        snapshot = _load_snapshot(raw)
        pricings[snapshot.provider] = _effective(snapshot, None, request.use_store)

    try:
        if request.usage is not None:
            usage = _load_usage(request.usage)
        elif request.load_profile is not None:
            usage = usage_from_load_profile(request.load_profile)
        else:
            raise HTTPException(
                status_code=422,
                detail="Either usage or load_profile is required"
            )
        result = CostAggregator(pricings).aggregate(request.architecture, usage)
    except (CostAggregatorError, NoTierAvailable, InvalidQuantity, ValueError) as error:
        raise HTTPException(
            status_code=422,
            detail=f"Failed to aggregate costs: {str(error)}"
        ) from error

    return {
        "status": "ok",
        "aggregate": result.to_dict(),
    }
