"""
Pydantic schemas describing the external JSON shapes.
Used for structural validation of collaborator-supplied data.
"""
from typing import Any, Dict, List, Literal, Optional, Union
from pydantic import BaseModel, ConfigDict, Field, field_validator

from stackprice.domain.pricing_models import CUSTOM_PRICE


Quantity = Union[float, str]


class TierSchema(BaseModel):
    """Schema for a pricing tier."""
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1, description="Tier name, unique within a snapshot")
    basePrice: Union[float, Literal["custom"]] = Field(..., description="Monthly base price or 'custom'")
    limits: Dict[str, Quantity] = Field(default_factory=dict, description="Included limits")
    features: List[str] = Field(default_factory=list, description="Feature tags")

    @field_validator("basePrice")
    @classmethod
    def base_price_not_negative(cls, value):
        if value != CUSTOM_PRICE and value < 0:
            raise ValueError("basePrice must not be negative")
        return value


class ServiceRateSchema(BaseModel):
    """Schema for a per-unit service rate."""
    model_config = ConfigDict(extra="allow")

    name: str = Field(..., min_length=1, description="Service name")
    unit: str = Field(..., description="Billing unit (e.g., 'GB', '1M requests')")
    price: float = Field(..., ge=0, description="Price per unit")
    freeQuota: Optional[Quantity] = Field(None, description="Free quota in units")


class PricingSnapshotSchema(BaseModel):
    """Schema for a provider pricing snapshot."""
    model_config = ConfigDict(extra="allow")

    provider: str = Field(..., min_length=1, description="Provider id")
    currency: str = Field(..., min_length=1, description="ISO currency code")
    billingPeriod: Literal["monthly", "yearly", "hourly"] = Field("monthly", description="Billing period")
    lastUpdated: Optional[str] = Field(None, description="ISO-8601 timestamp")
    tiers: List[TierSchema] = Field(default_factory=list, description="Ordered tiers")
    services: List[ServiceRateSchema] = Field(default_factory=list, description="Service rates")


class OverrideSchema(BaseModel):
    """Schema for a stored override."""
    path: str = Field(..., min_length=1, description="Override path (e.g., 'tiers[2].basePrice')")
    value: Any = Field(..., description="Replacement value")
    reason: Optional[str] = Field(None, description="Why the override exists")
    appliedAt: Optional[str] = Field(None, description="ISO-8601 timestamp")
    priority: Optional[int] = Field(None, description="Higher wins on the same path within a layer")


class RegionShareSchema(BaseModel):
    """Schema for a share of traffic in one region."""
    region: str
    percentage: float = Field(..., ge=0, le=100)


class UsageVectorSchema(BaseModel):
    """Schema for a usage vector."""
    model_config = ConfigDict(extra="allow")

    period: Literal["monthly", "yearly", "hourly"] = Field(..., description="Billing period of the quantities")
    bandwidth: Optional[Quantity] = None
    storage: Optional[Quantity] = None
    computeHours: Optional[Quantity] = None
    requests: Optional[Quantity] = None
    concurrentUsers: Optional[Quantity] = None
    regions: List[RegionShareSchema] = Field(default_factory=list)
    peakMultiplier: float = Field(1.0, ge=0)
