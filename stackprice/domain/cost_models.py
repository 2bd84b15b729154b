"""
Domain models for cost estimation.
Defines the structure of per-provider bills and aggregated workload costs.
"""
from typing import List, Dict, Any
from dataclasses import dataclass, field


@dataclass
class CostDetail:
    """One line of a bill explaining how an amount was derived."""
    dimension: str
    usage: float
    included: float
    billable: float
    rate: float
    units_per_rate: float
    amount: float
    unit: str = ""

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "dimension": self.dimension,
            "usage": round(self.usage, 4),
            "included": round(self.included, 4),
            "billable": round(self.billable, 4),
            "rate": self.rate,
            "unitsPerRate": self.units_per_rate,
            "amount": round(self.amount, 2),
            "unit": self.unit,
        }


@dataclass
class CostBreakdown:
    """Bill for one provider tier against one usage vector."""
    provider: str
    tier: str
    currency: str
    period: str
    base_cost: float
    service_costs: Dict[str, float]
    total_cost: float
    monthly_cost: float
    yearly_cost: float
    details: List[CostDetail] = field(default_factory=list)
    assumptions: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    errors: List[Dict[str, Any]] = field(default_factory=list)
    regional_multiplier: float = 1.0
    peak_multiplier: float = 1.0

    @property
    def usage_cost(self) -> float:
        return sum(self.service_costs.values())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "provider": self.provider,
            "tier": self.tier,
            "currency": self.currency,
            "period": self.period,
            "baseCost": round(self.base_cost, 2),
            "serviceCosts": {
                name: round(amount, 2) for name, amount in self.service_costs.items()
            },
            "totalCost": round(self.total_cost, 2),
            "monthlyCost": round(self.monthly_cost, 2),
            "yearlyCost": round(self.yearly_cost, 2),
            "regionalMultiplier": round(self.regional_multiplier, 4),
            "peakMultiplier": round(self.peak_multiplier, 4),
            "details": [detail.to_dict() for detail in self.details],
            "assumptions": self.assumptions,
            "warnings": self.warnings,
            "errors": self.errors,
        }


@dataclass
class AggregateCost:
    """Total cost of an architecture summed over its components."""
    currency: str
    breakdown: Dict[str, float]
    components: Dict[str, CostBreakdown]
    total_monthly_cost: float
    total_yearly_cost: float
    assumptions: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        # Sort components by monthly cost descending
        sorted_breakdown = sorted(
            self.breakdown.items(),
            key=lambda item: item[1],
            reverse=True
        )

        return {
            "currency": self.currency,
            "totalMonthlyCost": round(self.total_monthly_cost, 2),
            "totalYearlyCost": round(self.total_yearly_cost, 2),
            "breakdown": {name: round(amount, 2) for name, amount in sorted_breakdown},
            "components": {
                name: component.to_dict() for name, component in self.components.items()
            },
            "assumptions": self.assumptions,
        }
