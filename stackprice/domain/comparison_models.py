"""
Domain models for comparing the same workload across competing providers.
"""
from typing import List, Dict, Any, Optional
from dataclasses import dataclass, field

from stackprice.domain.cost_models import CostBreakdown


@dataclass
class ProviderDeltaLineItem:
    """How much more one provider costs than the cheapest option."""
    provider: str
    tier: str
    monthly_cost: float
    delta: float
    delta_percent: Optional[float]  # None if cheapest cost == 0

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "provider": self.provider,
            "tier": self.tier,
            "monthlyCost": round(self.monthly_cost, 2),
            "delta": round(self.delta, 2),
        }
        if self.delta_percent is not None:
            result["deltaPercent"] = round(self.delta_percent, 1)
        else:
            result["deltaPercent"] = None
        return result


@dataclass
class ProviderComparison:
    """Ranked per-provider bills for one usage vector."""
    estimates: List[CostBreakdown]
    deltas: List[ProviderDeltaLineItem]
    failures: Dict[str, str] = field(default_factory=dict)

    @property
    def cheapest(self) -> Optional[CostBreakdown]:
        return self.estimates[0] if self.estimates else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        cheapest = self.cheapest
        return {
            "cheapest": cheapest.provider if cheapest else None,
            "estimates": [estimate.to_dict() for estimate in self.estimates],
            "deltas": [delta.to_dict() for delta in self.deltas],
            "failures": self.failures,
        }
