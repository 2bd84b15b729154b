"""
Tier resolution.
Selects the applicable pricing tier for a usage vector.
"""
from typing import Dict, List, Optional, Sequence, Union
import logging
import re

from stackprice.core.config import config
from stackprice.domain.override_models import EffectivePricing
from stackprice.domain.pricing_models import PricingSnapshot, Tier, tiers_by_price
from stackprice.domain.usage_models import UsageVector
from stackprice.pricing.units import InvalidQuantity, is_unlimited, parse_quantity


logger = logging.getLogger(__name__)

USAGE_BUCKETS = ("free", "low", "medium", "high", "enterprise")

# Canonical tier names that serve each usage bucket
BUCKET_TIER_NAMES: Dict[str, List[str]] = {
    "free": ["free", "hobby", "free_allowances", "trial"],
    "low": ["starter", "launch", "developer", "basic"],
    "medium": ["standard", "scale", "scaler", "pro"],
    "high": ["business", "team", "pro"],
    "enterprise": ["enterprise", "organization"],
}

# Usage dimensions and the limit keys tiers publish them under
DIMENSION_ALIASES: Dict[str, List[str]] = {
    "bandwidth": ["bandwidth", "egress", "data_transfer"],
    "requests": ["requests", "invocations"],
    "compute_hours": ["compute_hours", "compute"],
    "storage": ["storage"],
    "concurrent_users": ["concurrent_users", "users", "seats"],
}

PricingLike = Union[PricingSnapshot, EffectivePricing]


class NoTierAvailable(Exception):
    """Raised when a provider publishes no tiers to bill against."""

    def __init__(self, provider: str):
        self.provider = provider
        super().__init__(f"No pricing tiers available for provider '{provider}'")


def canonical_tier_name(name: str) -> str:
    """
    Normalize a tier name for matching.

    "Pro Plan" -> "pro", "Free Allowances" -> "free_allowances"
    """
    text = re.sub(r"[^a-z0-9]+", "_", (name or "").strip().lower()).strip("_")
    for suffix in ("_plan", "_tier"):
        if text.endswith(suffix) and len(text) > len(suffix):
            text = text[: -len(suffix)]
    return text


def dimension_aliases(dimension: str) -> List[str]:
    """Names a usage dimension may be published under, the dimension itself first."""
    for canonical, aliases in DIMENSION_ALIASES.items():
        if dimension == canonical or dimension in aliases:
            return aliases
    return [dimension]


def _monthly(value: float, period: str) -> float:
    if period == "yearly":
        return value / config.MONTHS_PER_YEAR
    if period == "hourly":
        return value * config.HOURS_PER_MONTH
    return value


def _monthly_quantity(usage: UsageVector, dimension: str) -> float:
    raw = getattr(usage, dimension, None)
    if raw is None:
        return 0.0
    try:
        return _monthly(parse_quantity(raw, dimension), usage.period)
    except InvalidQuantity:
        # Billing reports the bad dimension; classification treats it as absent
        return 0.0


def classify_usage(usage: UsageVector) -> str:
    """
    Classify usage into a magnitude bucket.

    Uses monthly request volume and bandwidth; whichever dimension lands in
    the higher bucket decides.

    Returns:
        One of "free", "low", "medium", "high", "enterprise"
    """
    requests = _monthly_quantity(usage, "requests")
    bandwidth = _monthly_quantity(usage, "bandwidth")

    thresholds = [
        ("free", config.FREE_MAX_REQUESTS, config.FREE_MAX_BANDWIDTH_GB),
        ("low", config.LOW_MAX_REQUESTS, config.LOW_MAX_BANDWIDTH_GB),
        ("medium", config.MEDIUM_MAX_REQUESTS, config.MEDIUM_MAX_BANDWIDTH_GB),
        ("high", config.HIGH_MAX_REQUESTS, config.HIGH_MAX_BANDWIDTH_GB),
    ]
    for bucket, max_requests, max_bandwidth in thresholds:
        if requests <= max_requests and bandwidth <= max_bandwidth:
            return bucket
    return "enterprise"


def tier_accommodates(tier: Tier, usage: UsageVector) -> bool:
    """
    Check whether a tier's limits cover every usage dimension it defines.

    Limits that cannot be parsed are ignored rather than disqualifying.
    """
    for dimension, raw_usage in usage.quantities().items():
        for key in dimension_aliases(dimension):
            if key not in tier.limits:
                continue
            if is_unlimited(tier.limits[key]):
                break
            try:
                limit = parse_quantity(tier.limits[key], f"{tier.name}.limits.{key}")
                used = _monthly(parse_quantity(raw_usage, dimension), usage.period)
            except InvalidQuantity:
                break
            if used > limit:
                return False
            break
    return True


def _find_hinted(tiers: Sequence[Tier], hint: str) -> Optional[Tier]:
    for tier in tiers:
        if tier.name == hint:
            return tier
    canonical = canonical_tier_name(hint)
    for tier in tiers:
        if canonical_tier_name(tier.name) == canonical:
            return tier
    return None


def select_tier(
    pricing: PricingLike,
    usage: UsageVector,
    hint: Optional[str] = None,
    preferences: Optional[Sequence[str]] = None
) -> Tier:
    """
    Select the tier a usage vector should be billed against.

    Resolution order:
    1. A hint naming an existing tier (exact or canonical name)
    2. The first tier in the preference list whose canonical name maps
       to the usage bucket
    3. The lowest-priced tier whose limits accommodate the usage
    4. The lowest-priced tier

    Args:
        pricing: Pricing snapshot or effective pricing
        usage: Usage vector
        hint: Optional tier name requested by the caller
        preferences: Optional provider preference list of tier names
            (defaults to published tier order)

    Returns:
        Selected tier

    Raises:
        NoTierAvailable: If the pricing has no tiers
    """
    snapshot = pricing if isinstance(pricing, PricingSnapshot) else pricing.snapshot
    tiers = list(snapshot.tiers)
    if not tiers:
        raise NoTierAvailable(snapshot.provider)

    if hint:
        hinted = _find_hinted(tiers, hint)
        if hinted is not None:
            return hinted
        logger.warning("Tier hint %r not found for %s, resolving from usage", hint, snapshot.provider)

    bucket = classify_usage(usage)
    bucket_names = BUCKET_TIER_NAMES[bucket]

    if preferences:
        ordered: List[Tier] = []
        for name in preferences:
            tier = _find_hinted(tiers, name)
            if tier is not None and tier not in ordered:
                ordered.append(tier)
    else:
        ordered = tiers

    for tier in ordered:
        if canonical_tier_name(tier.name) in bucket_names:
            logger.debug("Selected %s tier %s for %s usage", snapshot.provider, tier.name, bucket)
            return tier

    by_price = tiers_by_price(tiers)
    for tier in by_price:
        if not tier.is_custom and tier_accommodates(tier, usage):
            return tier

    return by_price[0]
