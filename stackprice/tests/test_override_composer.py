"""
Tests for override composition.
"""

import copy
import logging
import pytest

from stackprice.domain.override_models import MalformedOverridePath, Override, OverridePath, OverrideScope
from stackprice.services.override_composer import OverrideComposer, compose
from stackprice.services.override_store import OverrideStore


def _override(path, value, scope, priority=100):
    return Override(
        path=OverridePath.parse(path),
        value=value,
        scope=scope,
        provider=None if scope is OverrideScope.GLOBAL else 'render',
        priority=priority,
    )


def test_compose_is_idempotent(sample_pricing):
    """Composing the same layers twice yields identical results."""
    layers = [
        [{'path': 'currency', 'value': 'EUR'}],
        [{'path': 'tiers[1].basePrice', 'value': 9}],
        [{'path': 'tiers[2].limits.bandwidth', 'value': '2tb'}],
    ]

    first = compose(sample_pricing, layers)
    second = compose(sample_pricing, layers)

    assert first.data == second.data
    assert first.snapshot_version == second.snapshot_version
    assert first.override_version == second.override_version


def test_override_version_depends_on_content_only(sample_pricing):
    """Timestamps and reasons do not change the override-set version; values do."""
    stamped = compose(sample_pricing, [[], [
        {'path': 'tiers[1].basePrice', 'value': 9, 'appliedAt': '2026-01-01T00:00:00Z', 'reason': 'a'},
    ]])
    restamped = compose(sample_pricing, [[], [
        {'path': 'tiers[1].basePrice', 'value': 9, 'appliedAt': '2026-06-01T00:00:00Z', 'reason': 'b'},
    ]])
    repriced = compose(sample_pricing, [[], [{'path': 'tiers[1].basePrice', 'value': 10}]])

    assert stamped.override_version == restamped.override_version
    assert stamped.override_version != repriced.override_version


def test_compose_never_mutates_base(sample_pricing):
    """The base snapshot is left untouched."""
    original = copy.deepcopy(sample_pricing)

    compose(sample_pricing, [[{'path': 'tiers[0].limits.bandwidth', 'value': '1gb'}]])

    assert sample_pricing == original


def test_local_layer_wins_over_provider_and_global(sample_pricing):
    """Same path in all three layers: local wins."""
    layers = [
        [{'path': 'tiers[1].basePrice', 'value': 1}],
        [{'path': 'tiers[1].basePrice', 'value': 2}],
        [{'path': 'tiers[1].basePrice', 'value': 3}],
    ]

    result = compose(sample_pricing, layers)

    assert result.data['tiers'][1]['basePrice'] == 3
    assert result.applied == 3


def test_local_wins_regardless_of_argument_ordering(sample_pricing):
    """Scoped overrides keep their precedence even when passed in reverse."""
    layers = [
        [_override('tiers[1].basePrice', 3, OverrideScope.LOCAL)],
        [_override('tiers[1].basePrice', 2, OverrideScope.PROVIDER)],
        [_override('tiers[1].basePrice', 1, OverrideScope.GLOBAL)],
    ]

    result = compose(sample_pricing, layers)

    assert result.data['tiers'][1]['basePrice'] == 3


def test_override_can_introduce_new_tier(sample_pricing):
    """An indexed path past the end creates a new tier."""
    new_tier = {'name': 'Team', 'basePrice': 50, 'limits': {'bandwidth': '2tb'}, 'features': []}

    result = compose(sample_pricing, [[], [{'path': 'tiers[4]', 'value': new_tier}]])

    assert len(result.snapshot.tiers) == 5
    assert result.snapshot.get_tier('Team').base_price == 50


def test_missing_containers_are_created(sample_pricing):
    """Named segments create objects; indexed segments create arrays."""
    result = compose(sample_pricing, [[
        {'path': 'regional.eu-west.priceMultiplier', 'value': 1.3},
        {'path': 'matrix[0][1]', 'value': 5},
    ]])

    assert result.data['regional'] == {'eu-west': {'priceMultiplier': 1.3}}
    assert result.data['matrix'] == [[None, 5]]
    assert result.snapshot.regional['eu-west']['priceMultiplier'] == 1.3


def test_terminal_value_is_replaced_wholesale(sample_pricing):
    """No deep merge at the leaf."""
    result = compose(sample_pricing, [[{'path': 'tiers[0].limits', 'value': {'storage': 5}}]])

    assert result.data['tiers'][0]['limits'] == {'storage': 5}


def test_malformed_path_does_not_abort_composition(sample_pricing):
    """Malformed overrides are recorded; the rest still apply."""
    result = compose(sample_pricing, [[
        {'path': 'tiers[x].basePrice', 'value': 1},
        {'path': 'tiers[0].basePrice', 'value': 3},
    ]])

    assert result.applied == 1
    assert result.data['tiers'][0]['basePrice'] == 3
    assert len(result.errors) == 1
    assert isinstance(result.errors[0], MalformedOverridePath)
    assert result.errors[0].path == 'tiers[x].basePrice'
    assert result.errors[0].scope == 'global'


def test_path_through_scalar_is_reported(sample_pricing):
    """Walking into a scalar fails for that override only."""
    result = compose(sample_pricing, [[], [], [{'path': 'currency.code', 'value': 'EUR'}]])

    assert result.applied == 0
    assert result.data['currency'] == 'USD'
    assert result.errors[0].scope == 'local'
    assert 'not an object' in result.errors[0].reason


def test_higher_priority_wins_within_layer(sample_pricing):
    """Within a layer, higher priority is applied last."""
    result = compose(sample_pricing, [[
        {'path': 'tiers[1].basePrice', 'value': 11, 'priority': 110},
        {'path': 'tiers[1].basePrice', 'value': 9, 'priority': 90},
    ]])

    assert result.data['tiers'][1]['basePrice'] == 11


def test_duplicate_path_in_layer_warns_and_last_wins(sample_pricing, caplog):
    """Later list order wins on equal priority, with a recorded warning."""
    with caplog.at_level(logging.WARNING):
        result = compose(sample_pricing, [[
            {'path': 'tiers[1].basePrice', 'value': 8},
            {'path': 'tiers[1].basePrice', 'value': 10},
        ]])

    assert result.data['tiers'][1]['basePrice'] == 10
    assert len(result.warnings) == 1
    assert 'Multiple overrides for tiers[1].basePrice' in caplog.text


def test_composer_memoizes_by_version(sample_snapshot):
    """Results are cached per (snapshot version, override version)."""
    composer = OverrideComposer(max_entries=2)
    layers = [[{'path': 'tiers[1].basePrice', 'value': 9}]]

    first = composer.compose(sample_snapshot, layers, override_version='v1')
    first.data['tiers'][1]['basePrice'] = 1000
    second = composer.compose(sample_snapshot, layers, override_version='v1')

    assert second.data['tiers'][1]['basePrice'] == 9
    assert composer.get_stats()['entries'] == 1


def test_composer_evicts_oldest_entry(sample_snapshot):
    """The cache is bounded."""
    composer = OverrideComposer(max_entries=2)

    for version in ('v1', 'v2', 'v3'):
        composer.compose(sample_snapshot, [], override_version=version)

    assert composer.get_stats()['entries'] == 2


def test_compose_from_store_tracks_store_mutations(sample_snapshot):
    """A store mutation changes the override version and the result."""
    store = OverrideStore()
    composer = OverrideComposer()

    store.set_price_override('render', 'tiers[1].basePrice', 9)
    first = composer.compose_from_store(sample_snapshot, store)
    store.set_price_override('render', 'tiers[1].basePrice', 12, scope=OverrideScope.LOCAL)
    second = composer.compose_from_store(sample_snapshot, store)

    assert first.snapshot.get_tier('Starter').base_price == 9
    assert second.snapshot.get_tier('Starter').base_price == 12
    assert first.override_version != second.override_version


def test_invalid_override_mapping_is_recorded(sample_pricing):
    """Non-mapping entries in a layer are reported, not raised."""
    result = compose(sample_pricing, [['tiers[0].basePrice']])

    assert result.applied == 0
    assert len(result.errors) == 1


def test_parse_rejects_empty_path():
    """Paths are validated when the override is created."""
    with pytest.raises(MalformedOverridePath):
        OverridePath.parse('', 'provider')
    with pytest.raises(MalformedOverridePath):
        OverridePath.parse('tiers..basePrice', 'provider')
