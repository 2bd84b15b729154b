"""
Override composition engine.

Applies ordered override layers (global, provider, local) onto an
immutable base pricing snapshot to produce effective pricing.
"""
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union
from collections import OrderedDict
import copy
import logging

from stackprice.core.config import config
from stackprice.domain.override_models import (
    EffectivePricing,
    MalformedOverridePath,
    Override,
    OverridePath,
    OverrideScope,
    SCOPE_ORDER,
)
from stackprice.domain.pricing_models import PricingSnapshot, content_version


logger = logging.getLogger(__name__)

OverrideLike = Union[Override, Mapping[str, Any]]
BaseLike = Union[PricingSnapshot, Mapping[str, Any]]


def _layer_scope(position: int) -> OverrideScope:
    """Scope implied by a layer's position, used for raw (dict) overrides."""
    return SCOPE_ORDER[min(position, len(SCOPE_ORDER) - 1)]


def _coerce_override(item: OverrideLike, scope: OverrideScope) -> Override:
    if isinstance(item, Override):
        return item
    if not isinstance(item, Mapping):
        raise MalformedOverridePath(item, scope.value, "override must be a mapping")
    try:
        return Override.from_dict(item, scope=scope)
    except (TypeError, ValueError) as error:
        raise MalformedOverridePath(item.get("path"), scope.value, f"invalid override: {error}") from error


def _container_for(next_is_index: bool) -> Any:
    return [] if next_is_index else {}


def _ensure_slot(container: List[Any], index: int, next_is_index: bool) -> Any:
    """Pad a list up to index and create the slot's container when missing."""
    while len(container) <= index:
        container.append(None)
    if container[index] is None:
        container[index] = _container_for(next_is_index)
    return container[index]


def _set_path(document: Dict[str, Any], path: OverridePath, value: Any, scope: str) -> None:
    """
    Walk a path through the working document and replace the terminal value.

    Missing intermediate containers are created on demand: objects for named
    segments, arrays for indexed segments.

    Raises:
        MalformedOverridePath: If a segment walks into a scalar or a type mismatch
    """
    # Flatten into steps: ("field", name) or ("index", n)
    steps: List[Tuple[str, Any]] = []
    for segment in path.segments:
        steps.append(("field", segment.field))
        steps.extend(("index", index) for index in segment.indices)

    current: Any = document
    for position, (kind, key) in enumerate(steps):
        is_last = position == len(steps) - 1
        next_is_index = not is_last and steps[position + 1][0] == "index"

        if kind == "field":
            if not isinstance(current, dict):
                raise MalformedOverridePath(
                    str(path), scope, f"cannot set field '{key}' on {type(current).__name__}"
                )
            if is_last:
                current[key] = copy.deepcopy(value)
                return
            child = current.get(key)
            if child is None:
                child = _container_for(next_is_index)
                current[key] = child
            elif next_is_index and not isinstance(child, list):
                raise MalformedOverridePath(str(path), scope, f"'{key}' is not an array")
            elif not next_is_index and not isinstance(child, dict):
                raise MalformedOverridePath(str(path), scope, f"'{key}' is not an object")
            current = child
        else:
            if not isinstance(current, list):
                raise MalformedOverridePath(
                    str(path), scope, f"cannot index {type(current).__name__} with [{key}]"
                )
            if is_last:
                while len(current) <= key:
                    current.append(None)
                current[key] = copy.deepcopy(value)
                return
            current = _ensure_slot(current, key, next_is_index)


def _ordered_layer(overrides: List[Override]) -> List[Override]:
    """Within a layer: ascending priority, then list order, so later/higher wins."""
    return [
        override
        for _, override in sorted(
            enumerate(overrides),
            key=lambda pair: (pair[1].priority, pair[0])
        )
    ]


def compose(
    base: BaseLike,
    layers: Sequence[Sequence[OverrideLike]],
    override_version: Optional[str] = None
) -> EffectivePricing:
    """
    Merge ordered override layers onto a base snapshot.

    Layers are lowest precedence first (global, provider, local). Raw dict
    overrides take the scope of their layer's position; Override objects
    keep their own scope, so a local override outranks a global one no
    matter which array it arrives in. The base is never mutated and
    composition never reads its own prior output, so re-applying the same
    layers to the same base yields identical results.

    Args:
        base: Base pricing snapshot (object or dict form)
        layers: Ordered override arrays, lowest precedence first
        override_version: Optional override-set version (content hash if omitted)

    Returns:
        EffectivePricing with any per-override failures recorded in `errors`
    """
    base_data = base.to_dict() if isinstance(base, PricingSnapshot) else copy.deepcopy(dict(base))
    snapshot_version = content_version(base_data)
    working = copy.deepcopy(base_data)

    errors: List[MalformedOverridePath] = []
    warnings: List[str] = []
    applied = 0
    version_material: List[Any] = []

    by_scope: Dict[OverrideScope, List[Override]] = {scope: [] for scope in SCOPE_ORDER}
    for position, layer in enumerate(layers):
        for item in layer or []:
            try:
                override = _coerce_override(item, _layer_scope(position))
            except MalformedOverridePath as error:
                logger.warning("Skipping override: %s", error)
                errors.append(error)
                continue
            by_scope[override.scope].append(override)

    for scope in SCOPE_ORDER:
        parsed = by_scope[scope]

        seen_paths = set()
        for override in parsed:
            if override.path in seen_paths:
                message = (
                    f"Multiple overrides for {override.path_text} in {scope.value} scope; "
                    "the last one (after priority ordering) wins"
                )
                logger.warning(message)
                warnings.append(message)
            seen_paths.add(override.path)

        for override in _ordered_layer(parsed):
            version_material.append([scope.value, override.path_text, override.value, override.priority])
            try:
                _set_path(working, override.path, override.value, scope.value)
                applied += 1
                logger.debug("Applied %s override %s", scope.value, override.path_text)
            except MalformedOverridePath as error:
                logger.warning("Skipping override: %s", error)
                errors.append(error)

    return EffectivePricing(
        data=working,
        snapshot_version=snapshot_version,
        override_version=override_version or content_version(version_material),
        applied=applied,
        errors=errors,
        warnings=warnings,
    )


class OverrideComposer:
    """
    Composition with memoization keyed by (snapshot-version, override-set-version).

    Memoization is purely a performance optimization; a miss recomputes
    from the full override log.
    """

    def __init__(self, max_entries: int = None):
        self.max_entries = max_entries or config.EFFECTIVE_PRICING_CACHE_SIZE
        self._cache: "OrderedDict[Tuple[str, str], EffectivePricing]" = OrderedDict()

    def compose(
        self,
        base: BaseLike,
        layers: Sequence[Sequence[OverrideLike]],
        override_version: Optional[str] = None
    ) -> EffectivePricing:
        """Compose, reusing a cached result when both version keys match."""
        if override_version is None:
            return compose(base, layers)

        base_data = base.to_dict() if isinstance(base, PricingSnapshot) else dict(base)
        cache_key = (content_version(base_data), override_version)

        cached = self._cache.get(cache_key)
        if cached is not None:
            self._cache.move_to_end(cache_key)
            return copy.deepcopy(cached)

        result = compose(base, layers, override_version=override_version)
        self._cache[cache_key] = copy.deepcopy(result)
        if len(self._cache) > self.max_entries:
            self._cache.popitem(last=False)
        return result

    def compose_from_store(self, base: PricingSnapshot, store) -> EffectivePricing:
        """
        Compose a provider's effective pricing from an override store.

        Args:
            base: Base snapshot for the provider
            store: OverrideStore (or any object with layers_for/version_for)
        """
        layers = store.layers_for(base.provider)
        return self.compose(base, layers, override_version=store.version_for(base.provider))

    def get_stats(self) -> Dict[str, Any]:
        """Cache statistics (for debugging/monitoring)."""
        return {"entries": len(self._cache), "max_entries": self.max_entries}


# Global singleton instance
_override_composer: Optional[OverrideComposer] = None


def get_override_composer() -> OverrideComposer:
    """
    Get the global override composer instance.

    Returns:
        OverrideComposer instance
    """
    global _override_composer
    if _override_composer is None:
        _override_composer = OverrideComposer()
    return _override_composer
