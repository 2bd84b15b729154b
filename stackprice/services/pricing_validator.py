"""
Structural and logical validation of pricing snapshots.
Failures are reported as field-level messages, never a single opaque error.
"""
from typing import Any, Dict, List, Mapping, Optional
from datetime import datetime, timezone
import logging

from pydantic import ValidationError

from stackprice.core.config import config
from stackprice.domain.pricing_models import PricingSnapshot, tiers_by_price
from stackprice.domain.schemas import PricingSnapshotSchema
from stackprice.domain.validation_models import ValidationResult, format_location, parse_timestamp
from stackprice.pricing.units import InvalidQuantity, is_unlimited, parse_quantity


logger = logging.getLogger(__name__)


class PricingValidator:
    """Validator for raw and parsed pricing snapshots."""

    def __init__(
        self,
        required_fields: Optional[List[str]] = None,
        price_range: Optional[Dict[str, float]] = None
    ):
        """
        Initialize validator.

        Args:
            required_fields: Extra dotted paths that must exist in the raw data
            price_range: Optional {"min": x, "max": y} expected base price range
        """
        self.required_fields = required_fields or []
        self.price_range = price_range

    def validate(self, raw: Mapping[str, Any]) -> ValidationResult:
        """
        Validate raw snapshot data against the pricing schema.

        Args:
            raw: Snapshot in its external dict form

        Returns:
            ValidationResult with one message per offending field
        """
        errors: List[str] = []
        warnings: List[str] = []

        for path in self.required_fields:
            if not _has_field(raw, path):
                errors.append(f"Missing required field: {path}")

        try:
            PricingSnapshotSchema.model_validate(raw)
        except ValidationError as error:
            for issue in error.errors():
                errors.append(f"{format_location(issue['loc'])}: {issue['msg']}")

        if not raw.get("lastUpdated"):
            warnings.append("Last updated timestamp is missing")
        elif parse_timestamp(raw.get("lastUpdated")) is None:
            errors.append("lastUpdated: invalid date format")

        # Type errors on tiers and limits are already reported by the schema
        raw_tiers = raw.get("tiers")
        if not isinstance(raw_tiers, list):
            raw_tiers = []

        tier_names = [
            tier.get("name") for tier in raw_tiers
            if isinstance(tier, Mapping) and isinstance(tier.get("name"), str)
        ]
        duplicates = sorted({name for name in tier_names if name and tier_names.count(name) > 1})
        for name in duplicates:
            errors.append(f"tiers: duplicate tier name {name!r}")

        for index, tier in enumerate(raw_tiers):
            if not isinstance(tier, Mapping):
                continue
            limits = tier.get("limits")
            for key, value in (limits.items() if isinstance(limits, Mapping) else ()):
                try:
                    parse_quantity(value, f"tiers.{index}.limits.{key}")
                except InvalidQuantity as error:
                    errors.append(f"tiers.{index}.limits.{key}: {error.reason}")

            price = tier.get("basePrice")
            if self.price_range and isinstance(price, (int, float)):
                if price < self.price_range.get("min", float("-inf")):
                    warnings.append(f"Tier {tier.get('name')} price below expected minimum")
                if price > self.price_range.get("max", float("inf")):
                    warnings.append(f"Tier {tier.get('name')} price above expected maximum")

        if errors:
            logger.warning(
                "Pricing data for %s failed validation with %d errors",
                raw.get("provider", "unknown"),
                len(errors),
            )

        return ValidationResult(valid=not errors, errors=errors, warnings=warnings)

    def validate_pricing_logic(self, snapshot: PricingSnapshot) -> ValidationResult:
        """
        Check that tier prices and limits grow with price.

        Violations are warnings, never fatal.
        """
        warnings: List[str] = []
        ordered = [tier for tier in tiers_by_price(list(snapshot.tiers)) if not tier.is_custom]

        for previous, current in zip(ordered, ordered[1:]):
            if current.sort_price <= previous.sort_price:
                warnings.append(
                    f"Tier {current.name} price is not higher than {previous.name}"
                )

            for key, current_limit in current.limits.items():
                if key not in previous.limits:
                    continue
                try:
                    previous_value = _limit_value(previous.limits[key], key)
                    current_value = _limit_value(current_limit, key)
                except InvalidQuantity:
                    continue
                if current_value < previous_value:
                    warnings.append(
                        f"Tier {current.name} has a lower {key} limit than {previous.name}"
                    )

        return ValidationResult(valid=True, warnings=warnings)

    def validate_freshness(
        self,
        snapshot: PricingSnapshot,
        max_age_hours: Optional[int] = None,
        now: Optional[datetime] = None
    ) -> bool:
        """Return True if the snapshot was updated within max_age_hours."""
        last_updated = parse_timestamp(snapshot.last_updated)
        if last_updated is None:
            return False
        now = now or datetime.now(timezone.utc)
        max_age = max_age_hours if max_age_hours is not None else config.SNAPSHOT_MAX_AGE_HOURS
        age_hours = (now - last_updated).total_seconds() / 3600
        return age_hours <= max_age

    def compare_structure(self, first: PricingSnapshot, second: PricingSnapshot) -> ValidationResult:
        """Report tiers and services present in only one of two snapshots."""
        differences: List[str] = []

        for label, left, right in (
            ("Tier", [t.name for t in first.tiers], [t.name for t in second.tiers]),
            ("Service", [s.name for s in first.services], [s.name for s in second.services]),
        ):
            for name in left:
                if name not in right:
                    differences.append(f"{label} '{name}' missing in second dataset")
            for name in right:
                if name not in left:
                    differences.append(f"{label} '{name}' missing in first dataset")

        return ValidationResult(valid=not differences, warnings=differences)


def _limit_value(raw: Any, key: str) -> float:
    if is_unlimited(raw):
        return float("inf")
    return parse_quantity(raw, key)


def _has_field(data: Any, path: str) -> bool:
    current = data
    for part in path.split("."):
        if not isinstance(current, Mapping) or part not in current:
            return False
        current = current[part]
    return True

