"""
Domain models for pricing change detection.
"""
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field


SIGNIFICANCE_LEVELS = ("none", "minor", "major", "critical")


@dataclass
class PriceChange:
    """A field-level difference between two snapshots."""
    type: str  # "tier" | "service" | "limit"
    name: str
    field: str
    old_value: Any
    new_value: Any
    percent_change: Optional[float] = None  # None unless both values are numeric

    @property
    def is_price_bearing(self) -> bool:
        """True for tier base prices and service unit prices."""
        return (
            (self.type == "tier" and self.field == "basePrice")
            or (self.type == "service" and self.field == "price")
        )

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "type": self.type,
            "name": self.name,
            "field": self.field,
            "oldValue": self.old_value,
            "newValue": self.new_value,
        }
        if self.percent_change is not None:
            result["percentChange"] = round(self.percent_change, 2)
        else:
            result["percentChange"] = None
        return result


@dataclass
class StructuralChange:
    """A tier, service or feature that appeared or disappeared."""
    type: str  # "added" | "removed"
    category: str  # "tier" | "service" | "feature"
    name: str
    details: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "type": self.type,
            "category": self.category,
            "name": self.name,
            "details": self.details,
        }


@dataclass
class ChangeReport:
    """Differences between a previous and a next pricing snapshot."""
    has_changes: bool
    price_changes: List[PriceChange] = field(default_factory=list)
    structural_changes: List[StructuralChange] = field(default_factory=list)
    summary: str = "No changes detected"
    significance: str = "none"  # Must be one of SIGNIFICANCE_LEVELS

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "hasChanges": self.has_changes,
            "priceChanges": [change.to_dict() for change in self.price_changes],
            "structuralChanges": [change.to_dict() for change in self.structural_changes],
            "summary": self.summary,
            "significance": self.significance,
        }
