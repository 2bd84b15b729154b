"""
Domain models for provider pricing data.
Defines pricing snapshots, tiers and per-unit service rates.

Dict forms use the external camelCase keys (basePrice, freeQuota, ...)
because override paths address that form.
"""
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union
from dataclasses import dataclass, field
import copy
import hashlib
import json


CUSTOM_PRICE = "custom"
BILLING_PERIODS = ("monthly", "yearly", "hourly")

SNAPSHOT_KEYS = {"provider", "currency", "billingPeriod", "lastUpdated", "tiers", "services"}

Price = Union[float, str]


def is_custom_price(value: Any) -> bool:
    """Return True if a price carries the 'custom' (contact sales) sentinel."""
    return isinstance(value, str) and value.strip().lower() == CUSTOM_PRICE


@dataclass(frozen=True)
class Tier:
    """A named pricing plan: base price, included limits and features."""
    name: str
    base_price: Price
    limits: Mapping[str, Any] = field(default_factory=dict)
    features: Tuple[str, ...] = ()

    @property
    def is_custom(self) -> bool:
        return is_custom_price(self.base_price)

    @property
    def sort_price(self) -> float:
        """Price used for ordering tiers; custom tiers sort last."""
        if self.is_custom or not isinstance(self.base_price, (int, float)):
            return float("inf")
        return float(self.base_price)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "name": self.name,
            "basePrice": self.base_price,
            "limits": dict(self.limits),
            "features": list(self.features),
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "Tier":
        base_price = data.get("basePrice", 0)
        if not is_custom_price(base_price) and isinstance(base_price, (int, float)):
            base_price = float(base_price)
        return cls(
            name=str(data.get("name", "")),
            base_price=base_price,
            limits=dict(data.get("limits") or {}),
            features=tuple(data.get("features") or ()),
        )


@dataclass(frozen=True)
class ServiceRate:
    """A per-unit rate for a usage-billed service."""
    name: str
    unit: str
    price: float
    free_quota: Optional[Any] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "name": self.name,
            "unit": self.unit,
            "price": self.price,
        }
        if self.free_quota is not None:
            result["freeQuota"] = self.free_quota
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ServiceRate":
        price = data.get("price", 0)
        return cls(
            name=str(data.get("name", "")),
            unit=str(data.get("unit", "")),
            price=float(price) if isinstance(price, (int, float)) else price,
            free_quota=data.get("freeQuota"),
        )


@dataclass(frozen=True)
class PricingSnapshot:
    """
    Immutable pricing data for one provider as of one ingestion.

    A new ingestion supersedes, never mutates, a prior snapshot.
    """
    provider: str
    currency: str = "USD"
    billing_period: str = "monthly"
    last_updated: Optional[str] = None
    tiers: Tuple[Tier, ...] = ()
    services: Tuple[ServiceRate, ...] = ()
    extras: Mapping[str, Any] = field(default_factory=dict)

    def get_tier(self, name: str) -> Optional[Tier]:
        """Get tier by name."""
        for tier in self.tiers:
            if tier.name == name:
                return tier
        return None

    def get_service(self, name: str) -> Optional[ServiceRate]:
        """Get service rate by name."""
        for service in self.services:
            if service.name == name:
                return service
        return None

    @property
    def regional(self) -> Mapping[str, Any]:
        """Regional pricing entries (`regional.<region>.priceMultiplier`), if any."""
        regional = self.extras.get("regional")
        return regional if isinstance(regional, Mapping) else {}

    @property
    def version(self) -> str:
        """Content hash identifying this snapshot."""
        return content_version(self.to_dict())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = copy.deepcopy(dict(self.extras))
        result.update({
            "provider": self.provider,
            "currency": self.currency,
            "billingPeriod": self.billing_period,
            "lastUpdated": self.last_updated,
            "tiers": [tier.to_dict() for tier in self.tiers],
            "services": [service.to_dict() for service in self.services],
        })
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "PricingSnapshot":
        """
        Build a snapshot from its dict form.

        Entries that are not mappings (e.g. gaps left by an override at a
        sparse index) are skipped.
        """
        tiers = [
            Tier.from_dict(item)
            for item in (data.get("tiers") or [])
            if isinstance(item, Mapping)
        ]
        services = [
            ServiceRate.from_dict(item)
            for item in (data.get("services") or [])
            if isinstance(item, Mapping)
        ]
        extras = {
            key: copy.deepcopy(value)
            for key, value in data.items()
            if key not in SNAPSHOT_KEYS
        }
        return cls(
            provider=str(data.get("provider", "")),
            currency=str(data.get("currency") or "USD"),
            billing_period=str(data.get("billingPeriod") or "monthly"),
            last_updated=data.get("lastUpdated"),
            tiers=tuple(tiers),
            services=tuple(services),
            extras=extras,
        )


def content_version(data: Any) -> str:
    """Stable SHA-256 hash of JSON-serializable data."""
    payload = json.dumps(data, sort_keys=True, default=str, separators=(",", ":"))
    return hashlib.sha256(payload.encode("utf-8")).hexdigest()[:16]


def tiers_by_price(tiers: List[Tier]) -> List[Tier]:
    """Tiers ordered by base price, custom tiers last, stable on ties."""
    return sorted(tiers, key=lambda tier: tier.sort_price)
