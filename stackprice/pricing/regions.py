"""
Regional price multipliers.
Providers bill some regions at a premium over their US list prices.
"""
from typing import Any, Dict, Iterable, Mapping, Optional


# Region group to price multiplier
REGIONAL_MULTIPLIERS: Dict[str, float] = {
    "us-east": 1.0,
    "us-west": 1.0,
    "eu-west": 1.1,
    "eu-central": 1.05,
    "asia-pacific": 1.15,
    "global": 1.0,
}

# Common provider region codes to region group
REGION_ALIASES: Dict[str, str] = {
    "us-east-1": "us-east",
    "us-east-2": "us-east",
    "iad": "us-east",
    "us-west-1": "us-west",
    "us-west-2": "us-west",
    "sfo": "us-west",
    "eu-west-1": "eu-west",
    "eu-west-2": "eu-west",
    "eu-west-3": "eu-west",
    "lhr": "eu-west",
    "eu-central-1": "eu-central",
    "fra": "eu-central",
    "ap-southeast-1": "asia-pacific",
    "ap-southeast-2": "asia-pacific",
    "ap-northeast-1": "asia-pacific",
    "ap-south-1": "asia-pacific",
    "sin": "asia-pacific",
}


def normalize_region(region: str) -> str:
    """
    Normalize a region name to its region group.

    Args:
        region: Region code or group (e.g., 'eu-west-1' or 'EU West')

    Returns:
        Region group key (lowercase, dashed)
    """
    key = region.strip().lower().replace(" ", "-").replace("_", "-")
    return REGION_ALIASES.get(key, key)


def get_regional_multiplier(
    region: str,
    overrides: Optional[Mapping[str, Any]] = None
) -> float:
    """
    Get the price multiplier for a region.

    Pricing data may carry its own `regional.<region>.priceMultiplier`
    entries (typically introduced by overrides); those take precedence.

    Args:
        region: Region code or group
        overrides: Optional `regional` mapping from effective pricing

    Returns:
        Multiplier (1.0 for unknown regions)
    """
    group = normalize_region(region)
    if overrides:
        for candidate in (region, group):
            entry = overrides.get(candidate)
            if isinstance(entry, Mapping) and isinstance(entry.get("priceMultiplier"), (int, float)):
                return float(entry["priceMultiplier"])
    return REGIONAL_MULTIPLIERS.get(group, 1.0)


def weighted_regional_multiplier(
    shares: Iterable[Any],
    overrides: Optional[Mapping[str, Any]] = None
) -> float:
    """
    Weight regional multipliers by the share of traffic served from each region.

    Args:
        shares: Iterable of objects with `region` and `percentage` attributes
        overrides: Optional `regional` mapping from effective pricing

    Returns:
        Weighted multiplier (1.0 when no distribution is declared)
    """
    shares = list(shares or [])
    if not shares:
        return 1.0

    total_percentage = sum(share.percentage for share in shares)
    if total_percentage <= 0:
        return 1.0

    weighted = 0.0
    for share in shares:
        weighted += get_regional_multiplier(share.region, overrides) * share.percentage
    return weighted / total_percentage
