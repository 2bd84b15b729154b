"""
Billing calculator.
Computes a cost breakdown for one tier with included-quota / overage billing.

Only the usage-driven portion of a bill is scaled by regional and peak-load
multipliers; the tier's base price is never scaled.
"""
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging
import math

from stackprice.core.config import config
from stackprice.domain.cost_models import CostBreakdown, CostDetail
from stackprice.domain.override_models import EffectivePricing
from stackprice.domain.pricing_models import PricingSnapshot, ServiceRate, Tier
from stackprice.domain.usage_models import UsageVector
from stackprice.pricing.regions import weighted_regional_multiplier
from stackprice.pricing.units import InvalidQuantity, is_unlimited, parse_quantity, parse_rate_unit
from stackprice.services.tier_resolver import (
    PricingLike,
    canonical_tier_name,
    dimension_aliases,
    select_tier,
)


logger = logging.getLogger(__name__)

# Multiplier from a quantity in a period to the same quantity per month
PERIOD_TO_MONTHLY = {
    "monthly": 1.0,
    "yearly": 1.0 / config.MONTHS_PER_YEAR,
    "hourly": float(config.HOURS_PER_MONTH),
}


def _as_snapshot(pricing: PricingLike) -> PricingSnapshot:
    if isinstance(pricing, EffectivePricing):
        return pricing.snapshot
    return pricing


def _find_service(services: Sequence[ServiceRate], dimension: str) -> Optional[ServiceRate]:
    aliases = dimension_aliases(dimension)
    for alias in aliases:
        for service in services:
            if canonical_tier_name(service.name) == alias:
                return service
    return None


def _find_limit(tier: Tier, dimension: str) -> Optional[Tuple[str, Any]]:
    for alias in dimension_aliases(dimension):
        if alias in tier.limits:
            return alias, tier.limits[alias]
    return None


def monthly_base_price(tier: Tier, billing_period: str) -> float:
    """
    Normalize a tier's base price to a monthly amount.

    Args:
        tier: Tier to price (must not carry the custom sentinel)
        billing_period: Billing period the snapshot quotes prices in

    Returns:
        Monthly base price
    """
    price = float(tier.base_price)
    return price * PERIOD_TO_MONTHLY.get(billing_period, 1.0)


def resolve_annual_factor(provider: str, annual_factor: Optional[float] = None) -> float:
    """Explicit factor, else the provider default from config, else 1."""
    if annual_factor is not None:
        return annual_factor
    return config.DEFAULT_ANNUAL_FACTORS.get(provider.lower(), 1.0)


def _error_entry(dimension: str, error: InvalidQuantity) -> Dict[str, Any]:
    return {
        "type": "InvalidQuantity",
        "dimension": dimension,
        "field": error.field,
        "raw": error.raw if isinstance(error.raw, (int, float, str)) else repr(error.raw),
        "message": str(error),
    }


def bill(
    tier: Tier,
    pricing: PricingLike,
    usage: UsageVector,
    annual_factor: Optional[float] = None
) -> CostBreakdown:
    """
    Compute the bill for a usage vector on one tier.

    For each usage dimension with a published service rate, the included
    quota is the tier's limit for that dimension, else the rate's own free
    quota, else 0; overage is billed per rate unit. A dimension that fails
    to parse is recorded in `errors` and the remaining dimensions are still
    billed.

    Args:
        tier: Tier to bill against
        pricing: Pricing snapshot or effective pricing the tier belongs to
        usage: Usage vector (any period)
        annual_factor: Optional yearly discount factor (e.g. 10/12)

    Returns:
        CostBreakdown with base/service costs in the usage vector's period
    """
    snapshot = _as_snapshot(pricing)
    provider = snapshot.provider
    to_monthly = PERIOD_TO_MONTHLY[usage.period]

    assumptions: List[str] = []
    warnings: List[str] = []
    errors: List[Dict[str, Any]] = []
    details: List[CostDetail] = []
    raw_service_costs: Dict[str, float] = {}

    if tier.is_custom:
        base_cost = 0.0
        message = f"Tier {tier.name} has custom pricing; base price billed as 0"
        warnings.append(message)
        logger.warning("%s (%s)", message, provider)
    elif not isinstance(tier.base_price, (int, float)) or isinstance(tier.base_price, bool):
        base_cost = 0.0
        error = InvalidQuantity(tier.base_price, f"{tier.name}.basePrice", "base price is not a number")
        errors.append(_error_entry("basePrice", error))
        warnings.append(f"Tier {tier.name} has an invalid base price; base price billed as 0")
        logger.warning("Invalid base price for %s on %s: %s", tier.name, provider, error)
    else:
        base_cost = monthly_base_price(tier, snapshot.billing_period)

    if usage.period != "monthly":
        assumptions.append(f"Usage normalized from {usage.period} to monthly quantities")
    if snapshot.billing_period != "monthly" and not tier.is_custom:
        assumptions.append(f"Base price normalized from {snapshot.billing_period} to monthly")

    for dimension, raw_usage in usage.quantities().items():
        try:
            used = parse_quantity(raw_usage, dimension) * to_monthly
        except InvalidQuantity as error:
            logger.warning("Skipping %s for %s: %s", dimension, provider, error)
            errors.append(_error_entry(dimension, error))
            continue

        service = _find_service(snapshot.services, dimension)
        limit = _find_limit(tier, dimension)

        if service is None:
            if limit is None:
                assumptions.append(f"{dimension} is not billed by {provider} (no rate or limit)")
                continue
            key, raw_limit = limit
            try:
                included = parse_quantity(raw_limit, f"{tier.name}.limits.{key}")
            except InvalidQuantity as error:
                logger.warning("Invalid %s limit for %s: %s", key, provider, error)
                errors.append(_error_entry(dimension, error))
                continue
            if used > included and not is_unlimited(raw_limit):
                warnings.append(
                    f"{dimension} usage {used:g} exceeds {tier.name} limit {included:g} "
                    "with no published overage rate"
                )
            continue

        raw_included: Any = 0.0
        try:
            if limit is not None:
                key, raw_included = limit
                included = parse_quantity(raw_included, f"{tier.name}.limits.{key}")
            elif service.free_quota is not None:
                raw_included = service.free_quota
                included = parse_quantity(raw_included, f"services.{service.name}.freeQuota")
            else:
                included = 0.0
        except InvalidQuantity as error:
            logger.warning("Invalid included quota for %s on %s: %s", dimension, provider, error)
            errors.append(_error_entry(dimension, error))
            continue

        if not isinstance(service.price, (int, float)) or isinstance(service.price, bool):
            error = InvalidQuantity(service.price, f"services.{service.name}.price", "price is not a number")
            logger.warning("Skipping %s for %s: %s", dimension, provider, error)
            errors.append(_error_entry(dimension, error))
            continue

        units_per_rate = parse_rate_unit(service.unit)
        billable = 0.0 if is_unlimited(raw_included) else max(0.0, used - included)
        amount = billable / units_per_rate * service.price

        raw_service_costs[service.name] = raw_service_costs.get(service.name, 0.0) + amount
        details.append(CostDetail(
            dimension=dimension,
            usage=used,
            included=included,
            billable=billable,
            rate=service.price,
            units_per_rate=units_per_rate,
            amount=amount,
            unit=service.unit,
        ))

    regional_multiplier = weighted_regional_multiplier(usage.regions, snapshot.regional)
    peak_multiplier = math.sqrt(usage.peak_multiplier)
    usage_multiplier = regional_multiplier * peak_multiplier

    if regional_multiplier != 1.0:
        assumptions.append(f"Regional multiplier {regional_multiplier:.3f} applied to usage charges")
    if peak_multiplier != 1.0:
        assumptions.append(
            f"Peak load x{usage.peak_multiplier:g} damped to x{peak_multiplier:.3f} on usage charges"
        )

    monthly_services = {
        name: amount * usage_multiplier for name, amount in raw_service_costs.items()
    }
    for detail in details:
        detail.amount *= usage_multiplier

    monthly_cost = base_cost + sum(monthly_services.values())
    factor = resolve_annual_factor(provider, annual_factor)
    if factor != 1.0:
        assumptions.append(f"Annual billing factor {factor:.3f} applied to yearly estimate")
    yearly_cost = monthly_cost * config.MONTHS_PER_YEAR * factor

    # Report components in the usage vector's own period
    from_monthly = 1.0 / to_monthly
    service_costs = {name: amount * from_monthly for name, amount in monthly_services.items()}
    period_base = base_cost * from_monthly

    return CostBreakdown(
        provider=provider,
        tier=tier.name,
        currency=snapshot.currency,
        period=usage.period,
        base_cost=period_base,
        service_costs=service_costs,
        total_cost=period_base + sum(service_costs.values()),
        monthly_cost=monthly_cost,
        yearly_cost=yearly_cost,
        details=details,
        assumptions=assumptions,
        warnings=warnings,
        errors=errors,
        regional_multiplier=regional_multiplier,
        peak_multiplier=peak_multiplier,
    )


def estimate(
    pricing: PricingLike,
    usage: UsageVector,
    hint: Optional[str] = None,
    preferences: Optional[Sequence[str]] = None,
    annual_factor: Optional[float] = None
) -> CostBreakdown:
    """
    Select a tier for the usage and bill it.

    Raises:
        NoTierAvailable: If the pricing has no tiers
    """
    tier = select_tier(pricing, usage, hint=hint, preferences=preferences)
    return bill(tier, pricing, usage, annual_factor=annual_factor)
