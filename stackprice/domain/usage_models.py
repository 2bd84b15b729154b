"""
Domain models for caller-supplied workload usage.
Usage vectors are never persisted as pricing state.
"""
from typing import Any, Dict, List, Mapping, Optional
from dataclasses import dataclass, field


USAGE_DIMENSIONS = ("bandwidth", "storage", "compute_hours", "requests", "concurrent_users")
USAGE_PERIODS = ("monthly", "yearly", "hourly")


@dataclass(frozen=True)
class RegionShare:
    """Share of traffic served from one region."""
    region: str
    percentage: float

    def to_dict(self) -> Dict[str, Any]:
        return {"region": self.region, "percentage": self.percentage}


@dataclass(frozen=True)
class UsageVector:
    """
    Named quantities for one billing period.

    Quantities may be numbers or quantity strings ("100gb", "10k");
    they are normalized by the unit parser at billing time.
    """
    period: str
    bandwidth: Optional[Any] = None
    storage: Optional[Any] = None
    compute_hours: Optional[Any] = None
    requests: Optional[Any] = None
    concurrent_users: Optional[Any] = None
    extra: Mapping[str, Any] = field(default_factory=dict)
    regions: tuple = ()
    peak_multiplier: float = 1.0

    def __post_init__(self):
        if self.period not in USAGE_PERIODS:
            raise ValueError(
                f"Usage period must be one of {', '.join(USAGE_PERIODS)} (got: {self.period!r})"
            )
        if self.peak_multiplier < 0:
            raise ValueError("peak_multiplier must not be negative")

    def quantities(self) -> Dict[str, Any]:
        """All declared dimensions, standard ones first."""
        result = {}
        for name in USAGE_DIMENSIONS:
            value = getattr(self, name)
            if value is not None:
                result[name] = value
        for name, value in self.extra.items():
            if value is not None and name not in result:
                result[name] = value
        return result

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result: Dict[str, Any] = {"period": self.period}
        result.update(self.quantities())
        if self.regions:
            result["regions"] = [share.to_dict() for share in self.regions]
        if self.peak_multiplier != 1.0:
            result["peakMultiplier"] = self.peak_multiplier
        return result

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "UsageVector":
        """
        Build a usage vector from a flat record.

        Accepts camelCase aliases (computeHours, concurrentUsers, peakMultiplier).
        Unknown numeric or string keys become extra dimensions.
        """
        aliases = {
            "computeHours": "compute_hours",
            "concurrentUsers": "concurrent_users",
        }
        known: Dict[str, Any] = {}
        extra: Dict[str, Any] = {}
        reserved = {"period", "regions", "peakMultiplier", "peak_multiplier"}

        for key, value in data.items():
            if key in reserved:
                continue
            name = aliases.get(key, key)
            if name in USAGE_DIMENSIONS:
                known[name] = value
            elif isinstance(value, (int, float, str)) and not isinstance(value, bool):
                extra[name] = value

        regions: List[RegionShare] = [
            RegionShare(region=str(item["region"]), percentage=float(item.get("percentage", 0)))
            for item in (data.get("regions") or [])
        ]
        peak = data.get("peakMultiplier", data.get("peak_multiplier", 1.0))

        return cls(
            period=data.get("period"),
            extra=extra,
            regions=tuple(regions),
            peak_multiplier=float(peak if peak is not None else 1.0),
            **known,
        )
