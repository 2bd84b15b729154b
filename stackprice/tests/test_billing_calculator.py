"""
Tests for tiered / overage billing.
"""

import logging
import pytest

from stackprice.domain.pricing_models import PricingSnapshot
from stackprice.domain.usage_models import RegionShare, UsageVector
from stackprice.services.billing_calculator import bill, estimate
from stackprice.services.override_composer import compose
from stackprice.services.override_store import OverrideStore


@pytest.fixture
def acme_pricing():
    """Single-tier pricing with a per-GB bandwidth rate."""
    return {
        'provider': 'acme',
        'currency': 'USD',
        'billingPeriod': 'monthly',
        'tiers': [
            {'name': 'Basic', 'basePrice': 5, 'limits': {'bandwidth': 10}, 'features': []},
        ],
        'services': [
            {'name': 'bandwidth', 'unit': 'GB', 'price': 0.5},
        ],
    }


def _bill(pricing, usage, **kwargs):
    snapshot = PricingSnapshot.from_dict(pricing)
    return bill(snapshot.tiers[0], snapshot, usage, **kwargs)


def test_overage_is_billed_beyond_included_quota(acme_pricing):
    """(30 - 10) GB x 0.5 on top of a base price of 5."""
    breakdown = _bill(acme_pricing, UsageVector(period='monthly', bandwidth=30))

    assert breakdown.service_costs['bandwidth'] == pytest.approx(10.0)
    assert breakdown.base_cost == pytest.approx(5.0)
    assert breakdown.total_cost == pytest.approx(15.0)
    assert breakdown.monthly_cost == pytest.approx(15.0)
    assert breakdown.yearly_cost == pytest.approx(180.0)
    assert breakdown.details[0].billable == pytest.approx(20.0)


def test_usage_within_quota_costs_nothing(acme_pricing):
    """Usage under the tier limit produces no overage."""
    breakdown = _bill(acme_pricing, UsageVector(period='monthly', bandwidth='8gb'))

    assert breakdown.service_costs['bandwidth'] == 0
    assert breakdown.total_cost == pytest.approx(5.0)


def test_unlimited_limit_never_yields_overage(acme_pricing):
    """An 'unlimited' limit covers any realistic usage."""
    acme_pricing['tiers'][0]['limits'] = {'bandwidth': 'unlimited'}

    breakdown = _bill(acme_pricing, UsageVector(period='monthly', bandwidth='2000tb'))

    assert breakdown.service_costs['bandwidth'] == 0


def test_free_quota_applies_when_tier_defines_no_limit(sample_snapshot):
    """The service's free quota is the fallback included quota."""
    tier = sample_snapshot.get_tier('Free')

    breakdown = bill(tier, sample_snapshot, UsageVector(period='monthly', storage=5))

    assert breakdown.service_costs['storage'] == pytest.approx(1.0)


def test_rate_units_are_respected(sample_snapshot):
    """Requests are billed per million."""
    tier = sample_snapshot.get_tier('Starter')

    breakdown = bill(tier, sample_snapshot, UsageVector(period='monthly', requests='3m'))

    assert breakdown.service_costs['requests'] == pytest.approx(1.0)
    assert breakdown.details[0].units_per_rate == 1000000


def test_service_rate_matches_dimension_alias(acme_pricing):
    """A rate published as 'Egress' bills bandwidth usage."""
    acme_pricing['services'] = [{'name': 'Egress', 'unit': 'GB', 'price': 0.5}]

    breakdown = _bill(acme_pricing, UsageVector(period='monthly', bandwidth=30))

    assert breakdown.service_costs == {'Egress': pytest.approx(10.0)}


def test_custom_base_price_is_billed_as_zero_with_warning(sample_snapshot, caplog):
    """The 'custom' sentinel contributes no base cost."""
    tier = sample_snapshot.get_tier('Enterprise')

    with caplog.at_level(logging.WARNING):
        breakdown = bill(tier, sample_snapshot, UsageVector(period='monthly', bandwidth=100))

    assert breakdown.base_cost == 0
    assert breakdown.warnings == ['Tier Enterprise has custom pricing; base price billed as 0']
    assert 'custom pricing' in caplog.text


def test_invalid_quantity_does_not_block_other_dimensions(sample_snapshot):
    """A bad dimension is recorded; the rest is still billed."""
    tier = sample_snapshot.get_tier('Free')
    usage = UsageVector(period='monthly', bandwidth='lots', storage=5)

    breakdown = bill(tier, sample_snapshot, usage)

    assert len(breakdown.errors) == 1
    assert breakdown.errors[0]['dimension'] == 'bandwidth'
    assert breakdown.errors[0]['raw'] == 'lots'
    assert breakdown.service_costs['storage'] == pytest.approx(1.0)


def test_dimension_without_rate_or_limit_is_an_assumption(acme_pricing):
    """Unbilled dimensions are recorded as assumptions, not errors."""
    breakdown = _bill(acme_pricing, UsageVector(period='monthly', compute_hours=100))

    assert breakdown.errors == []
    assert 'compute_hours is not billed by acme (no rate or limit)' in breakdown.assumptions


def test_limit_without_rate_is_flagged_when_exceeded(acme_pricing):
    """Exceeding a limit with no overage rate is a warning."""
    acme_pricing['services'] = []

    breakdown = _bill(acme_pricing, UsageVector(period='monthly', bandwidth=30))

    assert breakdown.service_costs == {}
    assert len(breakdown.warnings) == 1
    assert 'exceeds Basic limit 10' in breakdown.warnings[0]


def test_regional_multiplier_applies_to_usage_only(acme_pricing):
    """The base price is never scaled by region."""
    usage = UsageVector(
        period='monthly',
        bandwidth=30,
        regions=(RegionShare('eu-west', 100),),
    )

    breakdown = _bill(acme_pricing, usage)

    assert breakdown.regional_multiplier == pytest.approx(1.1)
    assert breakdown.service_costs['bandwidth'] == pytest.approx(11.0)
    assert breakdown.total_cost == pytest.approx(16.0)


def test_regional_multiplier_is_weighted_by_share(acme_pricing):
    """Half the traffic in asia-pacific (1.15), half in us-east (1.0)."""
    usage = UsageVector(
        period='monthly',
        bandwidth=30,
        regions=(RegionShare('us-east', 50), RegionShare('asia-pacific', 50)),
    )

    breakdown = _bill(acme_pricing, usage)

    assert breakdown.regional_multiplier == pytest.approx(1.075)


def test_regional_override_from_pricing(acme_pricing):
    """Composed regional multipliers take precedence over the defaults."""
    store = OverrideStore()
    store.set_regional_pricing('acme', 'eu-west', 1.5)
    effective = compose(acme_pricing, store.layers_for('acme'))
    usage = UsageVector(period='monthly', bandwidth=30, regions=(RegionShare('eu-west-1', 100),))

    breakdown = estimate(effective, usage)

    assert breakdown.service_costs['bandwidth'] == pytest.approx(15.0)


def test_peak_multiplier_is_square_root_damped(acme_pricing):
    """A 4x peak scales usage charges by 2x."""
    breakdown = _bill(acme_pricing, UsageVector(period='monthly', bandwidth=30, peak_multiplier=4))

    assert breakdown.peak_multiplier == pytest.approx(2.0)
    assert breakdown.service_costs['bandwidth'] == pytest.approx(20.0)
    assert breakdown.total_cost == pytest.approx(25.0)


def test_yearly_usage_is_normalized_and_reported_yearly(acme_pricing):
    """360 GB/year is 30 GB/month; totals are reported per year."""
    breakdown = _bill(acme_pricing, UsageVector(period='yearly', bandwidth=360))

    assert breakdown.period == 'yearly'
    assert breakdown.monthly_cost == pytest.approx(15.0)
    assert breakdown.base_cost == pytest.approx(60.0)
    assert breakdown.total_cost == pytest.approx(180.0)


def test_hourly_base_price_is_normalized_to_monthly(acme_pricing):
    """Hourly prices run 730 hours a month."""
    acme_pricing['billingPeriod'] = 'hourly'
    acme_pricing['tiers'][0]['basePrice'] = 0.01

    breakdown = _bill(acme_pricing, UsageVector(period='monthly'))

    assert breakdown.base_cost == pytest.approx(7.3)


def test_annual_factor_discounts_yearly_estimate(acme_pricing):
    """Two months free on annual billing."""
    breakdown = _bill(acme_pricing, UsageVector(period='monthly', bandwidth=30), annual_factor=10 / 12)

    assert breakdown.yearly_cost == pytest.approx(150.0)


def test_provider_default_annual_factor(sample_snapshot):
    """Providers with a configured annual factor use it by default."""
    breakdown = estimate(sample_snapshot, UsageVector(period='monthly', requests=500000))

    assert breakdown.tier == 'Starter'
    assert breakdown.yearly_cost == pytest.approx(7 * 10)


def test_breakdown_serializes_to_external_shape(acme_pricing):
    """Output uses the external camelCase keys."""
    data = _bill(acme_pricing, UsageVector(period='monthly', bandwidth=30)).to_dict()

    assert data['baseCost'] == 5.0
    assert data['serviceCosts'] == {'bandwidth': 10.0}
    assert data['totalCost'] == 15.0
    assert data['currency'] == 'USD'
    assert data['period'] == 'monthly'
    assert data['details'][0]['dimension'] == 'bandwidth'


def test_unlimited_free_quota_never_yields_overage(acme_pricing):
    """An 'unlimited' free quota covers usage past the numeric sentinel."""
    acme_pricing['tiers'][0]['limits'] = {}
    acme_pricing['services'] = [
        {'name': 'requests', 'unit': 'request', 'price': 0.001, 'freeQuota': 'unlimited'},
    ]

    breakdown = _bill(acme_pricing, UsageVector(period='monthly', requests=2000000))

    assert breakdown.service_costs['requests'] == 0
    assert breakdown.details[0].billable == 0


def test_numeric_limit_equal_to_sentinel_is_finite(acme_pricing):
    """A published limit of 999999 is a real limit, not 'unlimited'."""
    acme_pricing['tiers'][0]['limits'] = {'bandwidth': 999999}

    breakdown = _bill(acme_pricing, UsageVector(period='monthly', bandwidth=1000009))

    assert breakdown.service_costs['bandwidth'] == pytest.approx(5.0)


@pytest.mark.parametrize('bad_price', [None, 'abc'])
def test_invalid_base_price_is_billed_as_zero(sample_pricing, bad_price):
    """A non-numeric base price from an override degrades to an error entry."""
    effective = compose(sample_pricing, [[], [{'path': 'tiers[1].basePrice', 'value': bad_price}]])

    breakdown = estimate(effective, UsageVector(period='monthly', bandwidth='600gb'), hint='Starter')

    assert breakdown.base_cost == 0
    assert breakdown.errors[0]['dimension'] == 'basePrice'
    assert breakdown.errors[0]['field'] == 'Starter.basePrice'
    assert breakdown.warnings == ['Tier Starter has an invalid base price; base price billed as 0']
    assert breakdown.service_costs['bandwidth'] == pytest.approx(10.0)
