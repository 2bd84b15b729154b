"""
Override store.

Keeps an explicit, versioned override log per (scope, provider) collection.
This is an in-memory store; durable persistence of the collections
lives with the storage collaborator (see to_dict/load_collection).
"""

import copy
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from pydantic import ValidationError

from stackprice.domain.override_models import (
    Override,
    OverridePath,
    OverrideScope,
    SCOPE_ORDER,
)
from stackprice.domain.pricing_models import PricingSnapshot, is_custom_price
from stackprice.domain.schemas import OverrideSchema
from stackprice.domain.validation_models import ValidationResult, format_location, parse_timestamp


logger = logging.getLogger(__name__)

CollectionKey = Tuple[OverrideScope, Optional[str]]

CUSTOM_TIER_PRIORITY = 90
DISCOUNT_PRIORITY = 95
PROMOTIONAL_PRIORITY = 110


class OverrideStoreError(Exception):
    """Raised when the override store is used incorrectly."""
    pass


class OverrideStore:
    """
    In-memory override collections partitioned by scope and provider.

    Global overrides live in one collection; provider and local overrides
    live in one collection per provider. Every mutation bumps the version
    of the touched collection.
    """

    def __init__(self):
        self._collections: Dict[CollectionKey, List[Override]] = {}
        self._versions: Dict[CollectionKey, int] = {}
        self._store_id = uuid.uuid4().hex[:8]

    def _key(self, scope: Any, provider: Optional[str]) -> CollectionKey:
        try:
            resolved = OverrideScope(scope)
        except ValueError as error:
            raise OverrideStoreError(f"Unknown override scope: {scope!r}") from error

        if resolved is OverrideScope.GLOBAL:
            return resolved, None
        if not provider:
            raise OverrideStoreError(f"Provider name required for {resolved.value}-scoped override")
        return resolved, provider

    def _bump(self, key: CollectionKey) -> None:
        self._versions[key] = self._versions.get(key, 0) + 1

    def save(self, override: Override) -> Override:
        """
        Add or replace an override.

        A new override at an identical path in the same collection
        supersedes the prior one rather than merging with it.

        Args:
            override: Override to store

        Returns:
            The stored override
        """
        key = self._key(override.scope, override.provider)
        collection = self._collections.setdefault(key, [])

        for index, existing in enumerate(collection):
            if existing.path == override.path:
                collection[index] = override
                break
        else:
            collection.append(override)

        self._bump(key)
        logger.info(
            "Override set: %s %s = %r (%s)",
            key[0].value,
            override.path_text,
            override.value,
            override.reason or "no reason given",
        )
        return copy.deepcopy(override)

    def remove(self, path: Any, scope: Any, provider: Optional[str] = None) -> bool:
        """
        Remove the override at a path.

        Returns:
            True if an override was removed, False if none matched
        """
        key = self._key(scope, provider)
        target = OverridePath.parse(path, key[0].value)
        collection = self._collections.get(key, [])
        remaining = [override for override in collection if override.path != target]

        if len(remaining) == len(collection):
            logger.info("Override not found: %s %s", key[0].value, target)
            return False

        self._collections[key] = remaining
        self._bump(key)
        logger.info("Override removed: %s %s", key[0].value, target)
        return True

    def list(self, scope: Any = None, provider: Optional[str] = None) -> List[Override]:
        """
        List stored overrides, optionally filtered.

        Args:
            scope: Optional scope filter
            provider: Optional provider filter (global overrides always match)

        Returns:
            Overrides in scope precedence order, then insertion order (deep copies)
        """
        scope_filter = OverrideScope(scope) if scope is not None else None
        result: List[Override] = []

        for scope_value in SCOPE_ORDER:
            if scope_filter is not None and scope_value is not scope_filter:
                continue
            for (key_scope, key_provider), collection in self._collections.items():
                if key_scope is not scope_value:
                    continue
                if provider is not None and key_provider not in (None, provider):
                    continue
                result.extend(collection)

        return copy.deepcopy(result)

    def clear(self, scope: Any = None, provider: Optional[str] = None) -> int:
        """
        Remove all overrides matching the filters.

        A provider filter leaves global overrides in place.

        Returns:
            Number of overrides removed
        """
        scope_filter = OverrideScope(scope) if scope is not None else None
        removed = 0

        for key in list(self._collections):
            key_scope, key_provider = key
            if scope_filter is not None and key_scope is not scope_filter:
                continue
            if provider is not None and key_provider != provider:
                continue
            removed += len(self._collections[key])
            del self._collections[key]
            self._bump(key)

        logger.info("Cleared %d overrides", removed)
        return removed

    def layers_for(self, provider: str) -> Tuple[List[Override], List[Override], List[Override]]:
        """
        Get the ordered override layers for composing one provider's pricing.

        Returns:
            Tuple of (global, provider, local) override lists
        """
        return (
            copy.deepcopy(self._collections.get((OverrideScope.GLOBAL, None), [])),
            copy.deepcopy(self._collections.get((OverrideScope.PROVIDER, provider), [])),
            copy.deepcopy(self._collections.get((OverrideScope.LOCAL, provider), [])),
        )

    def version_for(self, provider: str) -> str:
        """
        Override-set version for one provider's layers.

        Changes whenever any of the three collections is mutated, and is
        never shared between two store instances.
        """
        keys = [
            (OverrideScope.GLOBAL, None),
            (OverrideScope.PROVIDER, provider),
            (OverrideScope.LOCAL, provider),
        ]
        counters = "-".join(str(self._versions.get(key, 0)) for key in keys)
        return f"{self._store_id}:{counters}"

    # Operator helpers for common override patterns

    def set_price_override(
        self,
        provider: str,
        path: str,
        value: Any,
        reason: Optional[str] = None,
        scope: OverrideScope = OverrideScope.PROVIDER
    ) -> Override:
        """Set a single price correction."""
        override = Override(
            path=OverridePath.parse(path, OverrideScope(scope).value),
            value=value,
            scope=OverrideScope(scope),
            provider=None if OverrideScope(scope) is OverrideScope.GLOBAL else provider,
            reason=reason,
        )
        return self.save(override)

    def add_custom_tier(self, base: PricingSnapshot, tier: Dict[str, Any]) -> Override:
        """
        Append a custom tier after the provider's published tiers.

        Args:
            base: Current pricing snapshot for the provider
            tier: Tier in dict form (name, basePrice, limits, features)
        """
        override = Override(
            path=OverridePath.parse(f"tiers[{len(base.tiers)}]"),
            value=copy.deepcopy(tier),
            scope=OverrideScope.PROVIDER,
            provider=base.provider,
            priority=CUSTOM_TIER_PRIORITY,
            reason=f"Custom tier: {tier.get('name')}",
        )
        return self.save(override)

    def apply_discount(self, base: PricingSnapshot, discount: float) -> List[Override]:
        """
        Discount every published tier's base price by a percentage.

        Custom-priced tiers are left untouched.

        Raises:
            OverrideStoreError: If discount is outside 0..100
        """
        if discount < 0 or discount > 100:
            raise OverrideStoreError("Discount must be between 0 and 100")

        saved = []
        for index, tier in enumerate(base.tiers):
            if is_custom_price(tier.base_price):
                continue
            saved.append(self.save(Override(
                path=OverridePath.parse(f"tiers[{index}].basePrice"),
                value=tier.base_price * (1 - discount / 100),
                scope=OverrideScope.PROVIDER,
                provider=base.provider,
                priority=DISCOUNT_PRIORITY,
                reason=f"{discount}% discount applied",
            )))

        logger.info("%s%% discount applied to %s", discount, base.provider)
        return saved

    def set_regional_pricing(self, provider: str, region: str, multiplier: float) -> Override:
        """Record a regional price multiplier for a provider."""
        if multiplier < 0:
            raise OverrideStoreError("Regional multiplier must not be negative")
        return self.save(Override(
            path=OverridePath.parse(f"regional.{region}.priceMultiplier"),
            value=multiplier,
            scope=OverrideScope.PROVIDER,
            provider=provider,
            reason=f"Regional pricing for {region}",
        ))

    def set_promotional_pricing(self, provider: str, discount: float, expires_at: datetime) -> Override:
        """Record a time-limited promotional discount for a provider."""
        if discount < 0 or discount > 100:
            raise OverrideStoreError("Discount must be between 0 and 100")
        return self.save(Override(
            path=OverridePath.parse("promotional"),
            value={
                "discount": discount,
                "expiresAt": expires_at.isoformat(),
                "active": True,
            },
            scope=OverrideScope.PROVIDER,
            provider=provider,
            priority=PROMOTIONAL_PRIORITY,
            reason=f"Promotional pricing: {discount}% off until {expires_at.date().isoformat()}",
        ))

    def validate(self, provider: Optional[str] = None, now: Optional[datetime] = None) -> ValidationResult:
        """
        Check stored overrides for conflicts and invalid values.

        Conflicting paths within a collection and expired promotions are
        warnings; negative numeric values are errors.
        """
        now = now or datetime.now(timezone.utc)
        errors: List[str] = []
        warnings: List[str] = []

        for (scope, key_provider), collection in self._collections.items():
            if provider is not None and key_provider not in (None, provider):
                continue

            seen = set()
            for override in collection:
                label = f"{scope.value}:{override.path_text}"
                if override.path in seen:
                    warnings.append(f"Conflicting overrides for path: {label}")
                seen.add(override.path)

                value = override.value
                if isinstance(value, (int, float)) and not isinstance(value, bool) and value < 0:
                    errors.append(f"Negative value in override: {label}")

                if override.path.segments[-1].field == "promotional" and isinstance(value, dict):
                    expires_at = parse_timestamp(value.get("expiresAt"))
                    if expires_at is not None and expires_at < now:
                        warnings.append(f"Expired promotional pricing: {label}")

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def to_dict(self, scope: Any, provider: Optional[str] = None) -> Dict[str, Any]:
        """Serialize one collection in its stored form."""
        key = self._key(scope, provider)
        return {"overrides": [override.to_dict() for override in self._collections.get(key, [])]}

    def load_collection(self, scope: Any, provider: Optional[str], data: Dict[str, Any]) -> int:
        """
        Replace one collection from its stored form.

        Raises:
            OverrideStoreError: If a stored override does not match the override schema
            MalformedOverridePath: If a stored path is invalid
        """
        key = self._key(scope, provider)
        overrides: List[Override] = []
        for index, item in enumerate(data.get("overrides", [])):
            try:
                OverrideSchema.model_validate(item)
            except ValidationError as error:
                messages = [
                    f"{format_location(['overrides', index, *issue['loc']])}: {issue['msg']}"
                    for issue in error.errors()
                ]
                raise OverrideStoreError("Invalid stored override: " + "; ".join(messages)) from error
            overrides.append(Override.from_dict(item, scope=key[0], provider=key[1]))
        self._collections[key] = overrides
        self._bump(key)
        return len(overrides)

    def get_stats(self) -> Dict[str, Any]:
        """
        Get store statistics (for debugging/monitoring).

        Returns:
            Dictionary with stats
        """
        return {
            "collections": len(self._collections),
            "total_overrides": sum(len(collection) for collection in self._collections.values()),
        }


# Global singleton instance
_override_store: Optional[OverrideStore] = None


def get_override_store() -> OverrideStore:
    """
    Get the global override store instance.

    Returns:
        OverrideStore instance
    """
    global _override_store
    if _override_store is None:
        _override_store = OverrideStore()
    return _override_store
