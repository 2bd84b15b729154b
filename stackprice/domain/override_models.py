"""
Domain models for pricing overrides.
Overrides are operator corrections addressed by a parsed path such as
`tiers[2].basePrice`, grouped into precedence scopes.
"""
from typing import Any, Dict, List, Mapping, Optional, Tuple
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
import re

from stackprice.domain.pricing_models import PricingSnapshot


DEFAULT_PRIORITY = 100

_SEGMENT_PATTERN = re.compile(r"^([A-Za-z_$][\w$-]*)((?:\[\d+\])*)$")
_INDEX_PATTERN = re.compile(r"\[(\d+)\]")


class OverrideScope(str, Enum):
    """Precedence bucket of an override, lowest first."""
    GLOBAL = "global"
    PROVIDER = "provider"
    LOCAL = "local"


SCOPE_ORDER: Tuple[OverrideScope, ...] = (
    OverrideScope.GLOBAL,
    OverrideScope.PROVIDER,
    OverrideScope.LOCAL,
)


class MalformedOverridePath(Exception):
    """Raised when an override path cannot be parsed or walked."""

    def __init__(self, path: Any, scope: Optional[str] = None, reason: str = "malformed path"):
        self.path = path
        self.scope = scope
        self.reason = reason
        scope_text = f" in {scope} scope" if scope else ""
        super().__init__(f"Malformed override path {path!r}{scope_text}: {reason}")


@dataclass(frozen=True)
class PathSegment:
    """One step of an override path: a field, optionally followed by indices."""
    field: str
    indices: Tuple[int, ...] = ()

    def __str__(self) -> str:
        return self.field + "".join(f"[{index}]" for index in self.indices)


@dataclass(frozen=True)
class OverridePath:
    """A parsed, validated override path."""
    segments: Tuple[PathSegment, ...]

    def __str__(self) -> str:
        return ".".join(str(segment) for segment in self.segments)

    @classmethod
    def parse(cls, raw: Any, scope: Optional[str] = None) -> "OverridePath":
        """
        Parse a dotted path with optional array indices.

        Args:
            raw: Path string (e.g., 'tiers[2].basePrice') or an OverridePath
            scope: Scope name, used in error messages

        Returns:
            OverridePath

        Raises:
            MalformedOverridePath: If the path is empty or a segment is invalid
        """
        if isinstance(raw, OverridePath):
            return raw
        if not isinstance(raw, str) or not raw.strip():
            raise MalformedOverridePath(raw, scope, "path must be a non-empty string")

        segments: List[PathSegment] = []
        for part in raw.strip().split("."):
            match = _SEGMENT_PATTERN.match(part)
            if not match:
                raise MalformedOverridePath(raw, scope, f"invalid segment {part!r}")
            indices = tuple(int(index) for index in _INDEX_PATTERN.findall(match.group(2)))
            segments.append(PathSegment(field=match.group(1), indices=indices))

        return cls(segments=tuple(segments))


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class Override:
    """
    A single operator-supplied correction.

    Immutable; a new override at an identical path supersedes this one.
    """
    path: OverridePath
    value: Any
    scope: OverrideScope = OverrideScope.PROVIDER
    provider: Optional[str] = None
    priority: int = DEFAULT_PRIORITY
    reason: Optional[str] = None
    applied_at: str = field(default_factory=_utc_now_iso)

    @property
    def path_text(self) -> str:
        return str(self.path)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        result = {
            "path": self.path_text,
            "value": self.value,
            "scope": self.scope.value,
            "priority": self.priority,
            "appliedAt": self.applied_at,
        }
        if self.provider is not None:
            result["provider"] = self.provider
        if self.reason is not None:
            result["reason"] = self.reason
        return result

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        scope: Optional[OverrideScope] = None,
        provider: Optional[str] = None
    ) -> "Override":
        """
        Build an override from its stored form, parsing the path once.

        Raises:
            MalformedOverridePath: If the path is invalid
        """
        resolved_scope = OverrideScope(scope or data.get("scope") or OverrideScope.PROVIDER)
        path = OverridePath.parse(data.get("path"), resolved_scope.value)
        priority = data.get("priority")
        return cls(
            path=path,
            value=data.get("value"),
            scope=resolved_scope,
            provider=provider if provider is not None else data.get("provider"),
            priority=DEFAULT_PRIORITY if priority is None else int(priority),
            reason=data.get("reason"),
            applied_at=data.get("appliedAt") or _utc_now_iso(),
        )


@dataclass
class EffectivePricing:
    """
    Result of applying override layers onto a base snapshot.

    Derived and recomputed on demand; never persisted.
    """
    data: Dict[str, Any]
    snapshot_version: str
    override_version: str
    applied: int = 0
    errors: List[MalformedOverridePath] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def provider(self) -> str:
        return str(self.data.get("provider", ""))

    @property
    def snapshot(self) -> PricingSnapshot:
        """Typed view of the composed pricing."""
        return PricingSnapshot.from_dict(self.data)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "pricing": self.data,
            "snapshotVersion": self.snapshot_version,
            "overrideVersion": self.override_version,
            "applied": self.applied,
            "errors": [
                {"path": str(error.path), "scope": error.scope, "reason": error.reason}
                for error in self.errors
            ],
            "warnings": list(self.warnings),
        }
