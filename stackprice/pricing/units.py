"""
Unit and quantity parsing.
Normalizes human-authored quantity strings ("100gb", "1tb", "10k", "unlimited")
to canonical numeric base units before any comparison or arithmetic.
"""
import math
import re
from typing import Any, Dict

from stackprice.core.config import config


class InvalidQuantity(Exception):
    """Raised when a quantity cannot be parsed."""

    def __init__(self, raw: Any, field: str, reason: str = "unrecognized quantity"):
        self.raw = raw
        self.field = field
        self.reason = reason
        super().__init__(f"Invalid quantity {raw!r} for '{field}': {reason}")


UNLIMITED_TOKENS = {"unlimited", "infinite", "infinity", "∞"}

# Binary storage multipliers relative to the GB base unit
SIZE_UNITS_IN_GB: Dict[str, float] = {
    "b": 1 / (1024 ** 3),
    "kb": 1 / (1024 ** 2),
    "mb": 1 / 1024,
    "gb": 1.0,
    "tb": 1024.0,
    "pb": 1024.0 ** 2,
}

# Count suffixes for requests, invocations, users
COUNT_UNITS: Dict[str, float] = {
    "k": 1_000,
    "m": 1_000_000,
    "b": 1_000_000_000,
}

_QUANTITY_PATTERN = re.compile(r"^\s*([0-9]+(?:\.[0-9]+)?)\s*([a-z]*)\s*$")
_RATE_UNIT_PATTERN = re.compile(r"([0-9]+(?:\.[0-9]+)?)\s*([kmb])?\b")


def is_unlimited(value: Any) -> bool:
    """
    Return True if a raw (unparsed) quantity is the unlimited sentinel.

    Only the string tokens count; a published number is a finite limit even
    when it happens to equal config.UNLIMITED_QUANTITY.
    """
    return isinstance(value, str) and value.strip().lower() in UNLIMITED_TOKENS


def parse_quantity(raw: Any, field: str = "quantity") -> float:
    """
    Parse a quantity into base units.

    Storage sizes normalize to GB ("1tb" -> 1024, "512mb" -> 0.5); counts
    normalize to units ("10k" -> 10000). Plain numbers pass through.

    Args:
        raw: Number or quantity string
        field: Name of the field being parsed (used in errors)

    Returns:
        Non-negative finite float

    Raises:
        InvalidQuantity: If the value is empty, negative, non-finite or unrecognized
    """
    if raw is None or isinstance(raw, bool):
        raise InvalidQuantity(raw, field)

    if isinstance(raw, (int, float)):
        value = float(raw)
        if math.isnan(value):
            raise InvalidQuantity(raw, field, "not a number")
        if math.isinf(value):
            raise InvalidQuantity(raw, field, "infinite values must be written as 'unlimited'")
        if value < 0:
            raise InvalidQuantity(raw, field, "quantities cannot be negative")
        return value

    if not isinstance(raw, str):
        raise InvalidQuantity(raw, field, f"unsupported type {type(raw).__name__}")

    text = raw.strip().lower().replace(",", "").replace("_", "")
    if text in UNLIMITED_TOKENS:
        return config.UNLIMITED_QUANTITY

    match = _QUANTITY_PATTERN.match(text)
    if not match:
        raise InvalidQuantity(raw, field)

    number = float(match.group(1))
    suffix = match.group(2)

    if not suffix:
        return number
    if suffix in SIZE_UNITS_IN_GB and suffix != "b":
        return number * SIZE_UNITS_IN_GB[suffix]
    if suffix in COUNT_UNITS:
        return number * COUNT_UNITS[suffix]

    raise InvalidQuantity(raw, field, f"unknown unit suffix '{suffix}'")


def parse_rate_unit(unit: str) -> float:
    """
    Determine how many base units a published rate is quoted for.

    Examples:
        "GB" -> 1
        "hour" -> 1
        "1M requests" / "per_1m_requests" -> 1000000
        "100k requests" -> 100000

    Args:
        unit: Unit label from a service rate

    Returns:
        Number of base units covered by one unit of price
    """
    if not unit:
        return 1.0

    text = unit.strip().lower().replace("_", " ")
    match = _RATE_UNIT_PATTERN.search(text)
    if not match:
        return 1.0

    number = float(match.group(1))
    suffix = match.group(2)
    if suffix:
        number *= COUNT_UNITS[suffix]
    return number if number > 0 else 1.0
