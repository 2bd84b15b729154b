"""
Configuration module for loading environment variables.
Pricing pipeline constants can be tuned per deployment via the environment.
"""
import json
import os
from typing import Dict


def _float_env(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


def _int_env(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _json_env(name: str, default: Dict[str, float]) -> Dict[str, float]:
    raw = os.getenv(name)
    if not raw:
        return dict(default)
    return {str(key): float(value) for key, value in json.loads(raw).items()}


class Config:
    """Application configuration loaded from environment variables."""

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")

    # Time normalization
    HOURS_PER_MONTH: int = _int_env("HOURS_PER_MONTH", 730)  # Standard assumption: 24/7 operation
    MONTHS_PER_YEAR: int = 12
    SECONDS_PER_MONTH: int = 30 * 24 * 60 * 60

    # "unlimited" maps to a large but finite quantity so arithmetic never sees infinity
    UNLIMITED_QUANTITY: float = _float_env("UNLIMITED_QUANTITY", 999999.0)

    # Usage magnitude buckets (monthly requests / monthly bandwidth in GB)
    FREE_MAX_REQUESTS: float = _float_env("FREE_MAX_REQUESTS", 100_000)
    FREE_MAX_BANDWIDTH_GB: float = _float_env("FREE_MAX_BANDWIDTH_GB", 10)
    LOW_MAX_REQUESTS: float = _float_env("LOW_MAX_REQUESTS", 1_000_000)
    LOW_MAX_BANDWIDTH_GB: float = _float_env("LOW_MAX_BANDWIDTH_GB", 100)
    MEDIUM_MAX_REQUESTS: float = _float_env("MEDIUM_MAX_REQUESTS", 10_000_000)
    MEDIUM_MAX_BANDWIDTH_GB: float = _float_env("MEDIUM_MAX_BANDWIDTH_GB", 1000)
    HIGH_MAX_REQUESTS: float = _float_env("HIGH_MAX_REQUESTS", 100_000_000)
    HIGH_MAX_BANDWIDTH_GB: float = _float_env("HIGH_MAX_BANDWIDTH_GB", 10000)

    # Change significance thresholds (percent)
    SIGNIFICANT_PRICE_CHANGE_PERCENT: float = _float_env("SIGNIFICANT_PRICE_CHANGE_PERCENT", 5.0)
    CRITICAL_PRICE_CHANGE_PERCENT: float = _float_env("CRITICAL_PRICE_CHANGE_PERCENT", 20.0)
    MAX_MINOR_STRUCTURAL_CHANGES: int = _int_env("MAX_MINOR_STRUCTURAL_CHANGES", 2)

    # Caching / retention
    EFFECTIVE_PRICING_CACHE_SIZE: int = _int_env("EFFECTIVE_PRICING_CACHE_SIZE", 128)
    SNAPSHOT_HISTORY_LIMIT: int = _int_env("SNAPSHOT_HISTORY_LIMIT", 10)
    SNAPSHOT_MAX_AGE_HOURS: int = _int_env("SNAPSHOT_MAX_AGE_HOURS", 24 * 30)

    # Yearly billing factors (multiplier on monthly x 12), per provider
    DEFAULT_ANNUAL_FACTORS: Dict[str, float] = _json_env("DEFAULT_ANNUAL_FACTORS", {
        "netlify": 10 / 12,
        "render": 10 / 12,
        "supabase": 10 / 12,
    })

    # Flat monthly fees for ancillary services
    ADDITIONAL_SERVICE_FEES: Dict[str, float] = _json_env("ADDITIONAL_SERVICE_FEES", {
        "authentication": 15.0,
        "monitoring": 30.0,
        "cdn": 25.0,
        "email": 10.0,
        "storage": 20.0,
    })

    # Request payload limits
    MAX_REQUEST_BODY_SIZE: int = _int_env("MAX_REQUEST_BODY_SIZE", 1_048_576)  # 1 MB in bytes
    MAX_SNAPSHOTS_PER_REQUEST: int = _int_env("MAX_SNAPSHOTS_PER_REQUEST", 20)
    MAX_TIERS_PER_SNAPSHOT: int = _int_env("MAX_TIERS_PER_SNAPSHOT", 50)
    MAX_OVERRIDES_PER_LAYER: int = _int_env("MAX_OVERRIDES_PER_LAYER", 500)

    # Workload modelling
    CACHE_HIT_RATIO: float = _float_env("CACHE_HIT_RATIO", 0.7)
    AVG_RESPONSE_SIZE_KB: float = _float_env("AVG_RESPONSE_SIZE_KB", 2.0)

    @classmethod
    def validate(cls) -> None:
        """
        Validates that configuration values are consistent.

        Raises:
            ValueError: If any configuration value is missing or invalid.
        """
        if cls.HOURS_PER_MONTH <= 0:
            raise ValueError("HOURS_PER_MONTH must be positive")
        if cls.UNLIMITED_QUANTITY <= 0:
            raise ValueError("UNLIMITED_QUANTITY must be positive")

        request_thresholds = [
            cls.FREE_MAX_REQUESTS,
            cls.LOW_MAX_REQUESTS,
            cls.MEDIUM_MAX_REQUESTS,
            cls.HIGH_MAX_REQUESTS,
        ]
        bandwidth_thresholds = [
            cls.FREE_MAX_BANDWIDTH_GB,
            cls.LOW_MAX_BANDWIDTH_GB,
            cls.MEDIUM_MAX_BANDWIDTH_GB,
            cls.HIGH_MAX_BANDWIDTH_GB,
        ]
        if request_thresholds != sorted(request_thresholds):
            raise ValueError("Request bucket thresholds must be non-decreasing")
        if bandwidth_thresholds != sorted(bandwidth_thresholds):
            raise ValueError("Bandwidth bucket thresholds must be non-decreasing")

        if cls.SIGNIFICANT_PRICE_CHANGE_PERCENT > cls.CRITICAL_PRICE_CHANGE_PERCENT:
            raise ValueError(
                "SIGNIFICANT_PRICE_CHANGE_PERCENT must not exceed CRITICAL_PRICE_CHANGE_PERCENT"
            )

        for provider, factor in cls.DEFAULT_ANNUAL_FACTORS.items():
            if not 0 < factor <= 1:
                raise ValueError(
                    f"Annual factor for {provider} must be in (0, 1] (got: {factor})"
                )

        for service, fee in cls.ADDITIONAL_SERVICE_FEES.items():
            if fee < 0:
                raise ValueError(f"Fee for {service} must not be negative (got: {fee})")

        if not 0 <= cls.CACHE_HIT_RATIO <= 1:
            raise ValueError("CACHE_HIT_RATIO must be between 0 and 1")


config = Config()
