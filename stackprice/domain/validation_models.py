"""
Validation result model and helpers shared by the validators.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional


@dataclass
class ValidationResult:
    """Outcome of a validation pass with field-level messages."""
    valid: bool
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "valid": self.valid,
            "errors": self.errors,
            "warnings": self.warnings,
        }


def format_location(location: Iterable[Any]) -> str:
    """Dotted field path for a pydantic error location (e.g. 'tiers.0.basePrice')."""
    return ".".join(str(part) for part in location) or "<root>"


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an ISO-8601 timestamp, treating naive values as UTC.

    Returns:
        Aware datetime, or None if the value is missing or malformed
    """
    if not isinstance(value, str):
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
