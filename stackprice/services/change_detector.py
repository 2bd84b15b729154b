"""
Pricing change detector.

Diffs two pricing snapshots (tiers and services matched by name, never by
position) and classifies how significant the changes are.
"""
from typing import Any, List, Mapping, Optional, Tuple, Union
import logging

from stackprice.core.config import config
from stackprice.domain.change_models import ChangeReport, PriceChange, StructuralChange
from stackprice.domain.pricing_models import PricingSnapshot, ServiceRate, Tier
from stackprice.pricing.units import InvalidQuantity, parse_quantity


logger = logging.getLogger(__name__)

SnapshotLike = Union[PricingSnapshot, Mapping[str, Any]]

INITIAL_OBSERVATION = "Initial observation"
NO_CHANGES = "No changes detected"


def _as_snapshot(data: SnapshotLike) -> PricingSnapshot:
    if isinstance(data, PricingSnapshot):
        return data
    return PricingSnapshot.from_dict(data)


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def percent_change(old_value: float, new_value: float) -> float:
    """
    Signed percent change from old to new.

    An old value of 0 yields 0% when the new value is also 0, else 100%.
    """
    if old_value == 0:
        return 0.0 if new_value == 0 else 100.0
    return (new_value - old_value) / old_value * 100


def _quantity_percent(old_value: Any, new_value: Any) -> Optional[float]:
    """Percent change for limits, which may be quantity strings ("100gb")."""
    if old_value is None or new_value is None:
        return None
    try:
        return percent_change(parse_quantity(old_value), parse_quantity(new_value))
    except InvalidQuantity:
        return None


class ChangeDetector:
    """Diffs pricing snapshots and classifies change significance."""

    def __init__(
        self,
        significant_percent: Optional[float] = None,
        critical_percent: Optional[float] = None,
        max_minor_structural_changes: Optional[int] = None
    ):
        self.significant_percent = (
            significant_percent if significant_percent is not None
            else config.SIGNIFICANT_PRICE_CHANGE_PERCENT
        )
        self.critical_percent = (
            critical_percent if critical_percent is not None
            else config.CRITICAL_PRICE_CHANGE_PERCENT
        )
        self.max_minor_structural_changes = (
            max_minor_structural_changes if max_minor_structural_changes is not None
            else config.MAX_MINOR_STRUCTURAL_CHANGES
        )

    def diff(self, previous: Optional[SnapshotLike], next_snapshot: SnapshotLike) -> ChangeReport:
        """
        Diff two snapshots.

        A missing previous snapshot is a first observation, which always
        counts as a change.

        Args:
            previous: Prior snapshot, or None
            next_snapshot: New snapshot

        Returns:
            ChangeReport with price and structural changes and a significance bucket
        """
        if previous is None:
            return ChangeReport(
                has_changes=True,
                summary=INITIAL_OBSERVATION,
                significance="minor",
            )

        old = _as_snapshot(previous)
        new = _as_snapshot(next_snapshot)

        tier_prices, tier_structure = self._compare_tiers(list(old.tiers), list(new.tiers))
        service_prices, service_structure = self._compare_services(
            list(old.services), list(new.services)
        )

        price_changes = tier_prices + service_prices
        structural_changes = tier_structure + service_structure
        significance = self.significance(price_changes, structural_changes)

        if significance != "none":
            logger.info(
                "Pricing change for %s: %s (%s)",
                new.provider,
                significance,
                self.summarize(price_changes, structural_changes),
            )

        return ChangeReport(
            has_changes=bool(price_changes or structural_changes),
            price_changes=price_changes,
            structural_changes=structural_changes,
            summary=self.summarize(price_changes, structural_changes),
            significance=significance,
        )

    def detect_changes(self, previous: Optional[SnapshotLike], next_snapshot: SnapshotLike) -> bool:
        """Return True if anything changed (always True on first observation)."""
        return self.diff(previous, next_snapshot).has_changes

    def _compare_tiers(
        self,
        old_tiers: List[Tier],
        new_tiers: List[Tier]
    ) -> Tuple[List[PriceChange], List[StructuralChange]]:
        price_changes: List[PriceChange] = []
        structural_changes: List[StructuralChange] = []

        old_by_name = {tier.name: tier for tier in old_tiers}
        new_by_name = {tier.name: tier for tier in new_tiers}

        for name in old_by_name:
            if name not in new_by_name:
                structural_changes.append(StructuralChange(
                    type="removed",
                    category="tier",
                    name=name,
                    details=f"Tier {name} has been removed",
                ))

        for name, tier in new_by_name.items():
            if name not in old_by_name:
                structural_changes.append(StructuralChange(
                    type="added",
                    category="tier",
                    name=name,
                    details=f"New tier {name} added with base price {tier.base_price}",
                ))

        for name, new_tier in new_by_name.items():
            old_tier = old_by_name.get(name)
            if old_tier is None:
                continue

            if old_tier.base_price != new_tier.base_price:
                percent = None
                if _is_number(old_tier.base_price) and _is_number(new_tier.base_price):
                    percent = percent_change(old_tier.base_price, new_tier.base_price)
                price_changes.append(PriceChange(
                    type="tier",
                    name=name,
                    field="basePrice",
                    old_value=old_tier.base_price,
                    new_value=new_tier.base_price,
                    percent_change=percent,
                ))

            limit_keys = list(old_tier.limits) + [
                key for key in new_tier.limits if key not in old_tier.limits
            ]
            for key in limit_keys:
                old_limit = old_tier.limits.get(key)
                new_limit = new_tier.limits.get(key)
                if old_limit == new_limit:
                    continue
                price_changes.append(PriceChange(
                    type="limit",
                    name=f"{name}.{key}",
                    field=key,
                    old_value=old_limit,
                    new_value=new_limit,
                    percent_change=_quantity_percent(old_limit, new_limit),
                ))

            for feature in old_tier.features:
                if feature not in new_tier.features:
                    structural_changes.append(StructuralChange(
                        type="removed",
                        category="feature",
                        name=f"{name}.{feature}",
                        details=f"Feature {feature} removed from tier {name}",
                    ))
            for feature in new_tier.features:
                if feature not in old_tier.features:
                    structural_changes.append(StructuralChange(
                        type="added",
                        category="feature",
                        name=f"{name}.{feature}",
                        details=f"Feature {feature} added to tier {name}",
                    ))

        return price_changes, structural_changes

    def _compare_services(
        self,
        old_services: List[ServiceRate],
        new_services: List[ServiceRate]
    ) -> Tuple[List[PriceChange], List[StructuralChange]]:
        price_changes: List[PriceChange] = []
        structural_changes: List[StructuralChange] = []

        old_by_name = {service.name: service for service in old_services}
        new_by_name = {service.name: service for service in new_services}

        for name in old_by_name:
            if name not in new_by_name:
                structural_changes.append(StructuralChange(
                    type="removed",
                    category="service",
                    name=name,
                    details=f"Service {name} has been removed",
                ))

        for name in new_by_name:
            if name not in old_by_name:
                structural_changes.append(StructuralChange(
                    type="added",
                    category="service",
                    name=name,
                    details=f"New service {name} added",
                ))

        for name, new_service in new_by_name.items():
            old_service = old_by_name.get(name)
            if old_service is None:
                continue

            for field_name, old_value, new_value in (
                ("price", old_service.price, new_service.price),
                ("unit", old_service.unit, new_service.unit),
                ("freeQuota", old_service.free_quota, new_service.free_quota),
            ):
                if old_value == new_value:
                    continue
                percent = None
                if field_name == "price" and _is_number(old_value) and _is_number(new_value):
                    percent = percent_change(old_value, new_value)
                elif field_name == "freeQuota":
                    percent = _quantity_percent(old_value, new_value)
                price_changes.append(PriceChange(
                    type="service",
                    name=name,
                    field=field_name,
                    old_value=old_value,
                    new_value=new_value,
                    percent_change=percent,
                ))

        return price_changes, structural_changes

    def significance(
        self,
        price_changes: List[PriceChange],
        structural_changes: List[StructuralChange]
    ) -> str:
        """
        Classify a set of changes; the first matching rule wins.

        1. A price-bearing change beyond the critical threshold -> critical
        2. Any tier removal -> major
        3. A price-bearing change beyond the significant threshold, or more
           structural changes than the minor allowance -> major
        4. Any change -> minor
        5. Otherwise -> none
        """
        if not price_changes and not structural_changes:
            return "none"

        price_percents = [
            abs(change.percent_change)
            for change in price_changes
            if change.is_price_bearing and change.percent_change is not None
        ]

        if any(percent > self.critical_percent for percent in price_percents):
            return "critical"

        if any(
            change.type == "removed" and change.category == "tier"
            for change in structural_changes
        ):
            return "major"

        if (
            any(percent > self.significant_percent for percent in price_percents)
            or len(structural_changes) > self.max_minor_structural_changes
        ):
            return "major"

        return "minor"

    def summarize(
        self,
        price_changes: List[PriceChange],
        structural_changes: List[StructuralChange]
    ) -> str:
        """Human-readable one-line summary of a change set."""
        parts = []

        if price_changes:
            percents = [
                change.percent_change
                for change in price_changes
                if change.percent_change is not None
            ]
            average = sum(percents) / len(percents) if percents else 0.0
            parts.append(f"{len(price_changes)} price changes (avg {average:.1f}%)")

        added = sum(1 for change in structural_changes if change.type == "added")
        removed = sum(1 for change in structural_changes if change.type == "removed")
        if added:
            parts.append(f"{added} additions")
        if removed:
            parts.append(f"{removed} removals")

        return ", ".join(parts) if parts else NO_CHANGES


# Global singleton instance
_change_detector: Optional[ChangeDetector] = None


def get_change_detector() -> ChangeDetector:
    """
    Get the global change detector instance.

    Returns:
        ChangeDetector instance
    """
    global _change_detector
    if _change_detector is None:
        _change_detector = ChangeDetector()
    return _change_detector


def diff(previous: Optional[SnapshotLike], next_snapshot: SnapshotLike) -> ChangeReport:
    """Diff two snapshots with the default thresholds."""
    return get_change_detector().diff(previous, next_snapshot)


def detect_changes(previous: Optional[SnapshotLike], next_snapshot: SnapshotLike) -> bool:
    """Return True if anything changed between two snapshots."""
    return get_change_detector().detect_changes(previous, next_snapshot)
