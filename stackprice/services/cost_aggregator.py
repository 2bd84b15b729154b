"""
Cost aggregator service.
Sums per-component costs (hosting, database, cache, ancillary services)
for an architecture into a workload total, and ranks providers.
"""
from typing import Any, Dict, List, Mapping, Optional, Tuple
import logging

from stackprice.core.config import config
from stackprice.domain.comparison_models import ProviderComparison, ProviderDeltaLineItem
from stackprice.domain.cost_models import AggregateCost, CostBreakdown
from stackprice.domain.usage_models import RegionShare, UsageVector
from stackprice.pricing.units import InvalidQuantity, parse_quantity
from stackprice.services.billing_calculator import PERIOD_TO_MONTHLY, estimate
from stackprice.services.tier_resolver import NoTierAvailable, PricingLike


logger = logging.getLogger(__name__)

DEFAULT_REGIONS = ({"region": "us-east", "percentage": 100},)

# Database compute scales from 20% to 100% of the month as users approach this count
DATABASE_FULL_LOAD_USERS = 1000
CACHE_MAX_STORAGE_GB = 10.0
CACHE_STORAGE_SHARE = 0.1


class CostAggregatorError(Exception):
    """Raised when an architecture component cannot be priced."""

    def __init__(self, component: str, provider: str):
        self.component = component
        self.provider = provider
        super().__init__(f"Pricing data not available for {component} provider: {provider}")


def _optional_quantity(value: Any, field: str, assumptions: List[str]) -> Optional[float]:
    if value is None:
        return None
    try:
        return parse_quantity(value, field)
    except InvalidQuantity as error:
        logger.warning("Ignoring %s when deriving component usage: %s", field, error)
        assumptions.append(f"Could not derive usage from {field}: {error.reason}")
        return None


def usage_from_load_profile(profile: Mapping[str, Any]) -> UsageVector:
    """
    Convert a load profile into a monthly usage vector.

    Recognized keys: requests_per_second, data_size (GB or a quantity
    string), concurrent_users, peak_multiplier, geographic_distribution.
    A 30-day month and config.AVG_RESPONSE_SIZE_KB per response are assumed.

    Raises:
        InvalidQuantity: If a profile value cannot be parsed
        ValueError: If a geographic distribution entry names no region
    """
    rps = parse_quantity(profile.get("requests_per_second", 0), "requests_per_second")
    seconds = config.SECONDS_PER_MONTH

    data_size = profile.get("data_size")
    storage = parse_quantity(data_size, "data_size") if data_size is not None else 1.0

    regions = []
    for index, item in enumerate(profile.get("geographic_distribution") or DEFAULT_REGIONS):
        region = item.get("region") if isinstance(item, Mapping) else None
        if not region:
            raise ValueError(f"geographic_distribution.{index}: region is required")
        percentage = parse_quantity(item.get("percentage", 0), f"geographic_distribution.{index}.percentage")
        regions.append(RegionShare(region=str(region), percentage=percentage))

    return UsageVector(
        period="monthly",
        requests=rps * seconds,
        bandwidth=rps * config.AVG_RESPONSE_SIZE_KB * seconds / (1024 * 1024),
        storage=storage,
        concurrent_users=parse_quantity(profile.get("concurrent_users", 0), "concurrent_users"),
        regions=tuple(regions),
        peak_multiplier=float(profile.get("peak_multiplier") or 1.0),
    )


class CostAggregator:
    """Prices a multi-component architecture against per-provider pricing."""

    def __init__(self, pricings: Mapping[str, PricingLike]):
        """
        Initialize aggregator.

        Args:
            pricings: Provider id to pricing snapshot or effective pricing
        """
        self.pricings = dict(pricings)

    def _price_component(
        self,
        component: str,
        settings: Mapping[str, Any],
        usage: UsageVector
    ) -> CostBreakdown:
        provider = settings.get("provider")
        pricing = self.pricings.get(provider)
        if pricing is None:
            raise CostAggregatorError(component, str(provider))
        return estimate(pricing, usage, hint=settings.get("tier"))

    def _database_usage(self, usage: UsageVector, assumptions: List[str]) -> UsageVector:
        users = _optional_quantity(usage.concurrent_users, "concurrent_users", assumptions) or 0.0
        load = 0.2 + 0.8 * min(1.0, users / DATABASE_FULL_LOAD_USERS)
        monthly_hours = config.HOURS_PER_MONTH * load
        assumptions.append(
            f"Database compute estimated at {monthly_hours:.0f} hours/month for {users:g} concurrent users"
        )
        return UsageVector(
            period=usage.period,
            storage=usage.storage,
            compute_hours=monthly_hours / PERIOD_TO_MONTHLY[usage.period],
            regions=usage.regions,
            peak_multiplier=usage.peak_multiplier,
        )

    def _cache_usage(self, usage: UsageVector, assumptions: List[str]) -> UsageVector:
        requests = _optional_quantity(usage.requests, "requests", assumptions)
        storage = _optional_quantity(usage.storage, "storage", assumptions)
        assumptions.append(f"Cache serves {config.CACHE_HIT_RATIO:.0%} of requests")
        return UsageVector(
            period=usage.period,
            requests=requests * config.CACHE_HIT_RATIO if requests is not None else None,
            storage=(
                min(CACHE_MAX_STORAGE_GB, storage * CACHE_STORAGE_SHARE)
                if storage is not None else None
            ),
            regions=usage.regions,
            peak_multiplier=usage.peak_multiplier,
        )

    def _additional_services(self, services: Any, assumptions: List[str]) -> float:
        if isinstance(services, Mapping):
            enabled = [name for name, flag in services.items() if flag]
        else:
            enabled = list(services or [])

        total = 0.0
        for name in enabled:
            fee = config.ADDITIONAL_SERVICE_FEES.get(str(name).lower())
            if fee is None:
                assumptions.append(f"No flat fee known for service '{name}'; not billed")
                continue
            total += fee
        return total

    def aggregate(self, architecture: Mapping[str, Any], usage: UsageVector) -> AggregateCost:
        """
        Price every component of an architecture and sum the results.

        Frontend hosting is only priced when its provider differs from the
        backend's. Multipliers apply to each component's usage portion only.

        Args:
            architecture: {"hosting": {"backend", "frontend"},
                "databases": {"primary", "cache"}, "services": {...}}
            usage: Workload usage vector

        Returns:
            AggregateCost with per-component monthly costs and totals

        Raises:
            CostAggregatorError: If a component names a provider with no pricing
            NoTierAvailable: If a component's provider has no tiers
        """
        assumptions: List[str] = []
        components: Dict[str, CostBreakdown] = {}

        hosting = architecture.get("hosting") or {}
        databases = architecture.get("databases") or {}
        backend = hosting.get("backend")
        frontend = hosting.get("frontend")

        if backend:
            components["backend_hosting"] = self._price_component("backend hosting", backend, usage)

        if frontend and (not backend or frontend.get("provider") != backend.get("provider")):
            components["frontend_hosting"] = self._price_component("frontend hosting", frontend, usage)
        elif frontend:
            assumptions.append("Frontend shares the backend hosting provider; not billed separately")

        if databases.get("primary"):
            components["primary_database"] = self._price_component(
                "database", databases["primary"], self._database_usage(usage, assumptions)
            )

        if databases.get("cache"):
            components["cache"] = self._price_component(
                "cache", databases["cache"], self._cache_usage(usage, assumptions)
            )

        breakdown = {name: component.monthly_cost for name, component in components.items()}
        flat_fees = self._additional_services(architecture.get("services"), assumptions)
        if flat_fees:
            breakdown["additional_services"] = flat_fees

        currency = next(
            (component.currency for component in components.values()),
            "USD",
        )

        total_monthly = sum(breakdown.values())
        total_yearly = (
            sum(component.yearly_cost for component in components.values())
            + flat_fees * config.MONTHS_PER_YEAR
        )

        logger.info(
            "Aggregated %d components: %.2f %s/month",
            len(breakdown),
            total_monthly,
            currency,
        )

        return AggregateCost(
            currency=currency,
            breakdown=breakdown,
            components=components,
            total_monthly_cost=total_monthly,
            total_yearly_cost=total_yearly,
            assumptions=assumptions,
        )


def compare_providers(
    pricings: Mapping[str, PricingLike],
    usage: UsageVector,
    hints: Optional[Mapping[str, str]] = None
) -> ProviderComparison:
    """
    Estimate the same usage on every provider and rank them, cheapest first.

    Providers with no usable tier are reported in `failures` rather than
    aborting the comparison.

    Args:
        pricings: Provider id to pricing
        usage: Usage vector
        hints: Optional provider id to tier name

    Returns:
        ProviderComparison with estimates and per-provider deltas vs the cheapest
    """
    hints = hints or {}
    estimates: List[CostBreakdown] = []
    failures: Dict[str, str] = {}

    for provider, pricing in pricings.items():
        try:
            estimates.append(estimate(pricing, usage, hint=hints.get(provider)))
        except NoTierAvailable as error:
            logger.warning("Skipping %s in comparison: %s", provider, error)
            failures[provider] = str(error)

    ranked: List[Tuple[float, int, CostBreakdown]] = sorted(
        (item.monthly_cost, index, item) for index, item in enumerate(estimates)
    )
    estimates = [item for _, _, item in ranked]

    deltas: List[ProviderDeltaLineItem] = []
    if estimates:
        cheapest_cost = estimates[0].monthly_cost
        for item in estimates:
            delta = item.monthly_cost - cheapest_cost
            deltas.append(ProviderDeltaLineItem(
                provider=item.provider,
                tier=item.tier,
                monthly_cost=item.monthly_cost,
                delta=delta,
                delta_percent=(delta / cheapest_cost * 100) if cheapest_cost > 0 else None,
            ))

    return ProviderComparison(estimates=estimates, deltas=deltas, failures=failures)
