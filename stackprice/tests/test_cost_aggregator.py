"""
Tests for architecture cost aggregation and provider comparison.
"""

import pytest

from stackprice.domain.pricing_models import PricingSnapshot
from stackprice.domain.usage_models import UsageVector
from stackprice.services.cost_aggregator import (
    CostAggregator,
    CostAggregatorError,
    compare_providers,
    usage_from_load_profile,
)


@pytest.fixture
def pricings(sample_snapshot):
    """Pricing for a hosting, database and cache provider."""
    supabase = PricingSnapshot.from_dict({
        'provider': 'supabase',
        'currency': 'USD',
        'tiers': [{'name': 'Pro', 'basePrice': 25, 'limits': {'storage': '8gb'}}],
        'services': [
            {'name': 'storage', 'unit': 'GB', 'price': 0.125},
            {'name': 'compute_hours', 'unit': 'hour', 'price': 0.01},
        ],
    })
    upstash = PricingSnapshot.from_dict({
        'provider': 'upstash',
        'currency': 'USD',
        'tiers': [{'name': 'Pay as you go', 'basePrice': 0}],
        'services': [
            {'name': 'requests', 'unit': '100k requests', 'price': 0.2},
            {'name': 'storage', 'unit': 'GB', 'price': 0.25},
        ],
    })
    return {'render': sample_snapshot, 'supabase': supabase, 'upstash': upstash}


@pytest.fixture
def usage():
    """Monthly workload usage."""
    return UsageVector(period='monthly', requests=1000000, storage=10, concurrent_users=500)


def test_aggregate_sums_components(pricings, usage):
    """Each component is billed and flat fees are added."""
    architecture = {
        'hosting': {'backend': {'provider': 'render', 'tier': 'Starter'}},
        'databases': {'primary': {'provider': 'supabase'}, 'cache': {'provider': 'upstash'}},
        'services': {'authentication': True, 'monitoring': True, 'email': False},
    }

    result = CostAggregator(pricings).aggregate(architecture, usage)

    # Starter: 7 base; requests within 1m; storage (10 - 1) x 0.25
    assert result.breakdown['backend_hosting'] == pytest.approx(9.25)
    # 25 base + (10 - 8) GB x 0.125 + 438 compute hours x 0.01
    assert result.breakdown['primary_database'] == pytest.approx(29.63)
    # 700k cached requests x 0.2 per 100k + 1 GB x 0.25
    assert result.breakdown['cache'] == pytest.approx(1.65)
    assert result.breakdown['additional_services'] == pytest.approx(45.0)
    assert result.total_monthly_cost == pytest.approx(9.25 + 29.63 + 1.65 + 45.0)


def test_aggregate_yearly_uses_component_annual_factors(pricings, usage):
    """Yearly total honours each provider's annual factor plus 12 months of fees."""
    architecture = {
        'hosting': {'backend': {'provider': 'render', 'tier': 'Starter'}},
        'databases': {'primary': {'provider': 'supabase'}},
        'services': ['cdn'],
    }

    result = CostAggregator(pricings).aggregate(architecture, usage)

    expected = (9.25 * 10) + (29.63 * 10) + 25.0 * 12
    assert result.total_yearly_cost == pytest.approx(expected)


def test_frontend_on_backend_provider_is_not_billed_twice(pricings, usage):
    """A frontend sharing the backend provider is folded into backend hosting."""
    architecture = {
        'hosting': {
            'backend': {'provider': 'render'},
            'frontend': {'provider': 'render'},
        },
    }

    result = CostAggregator(pricings).aggregate(architecture, usage)

    assert 'frontend_hosting' not in result.breakdown
    assert any('Frontend shares' in note for note in result.assumptions)


def test_frontend_on_other_provider_is_billed(pricings, usage):
    """A distinct frontend provider is priced separately."""
    architecture = {
        'hosting': {
            'backend': {'provider': 'render'},
            'frontend': {'provider': 'upstash'},
        },
    }

    result = CostAggregator(pricings).aggregate(architecture, usage)

    assert result.components['frontend_hosting'].provider == 'upstash'


def test_unknown_provider_raises(pricings, usage):
    """Components must name a provider with pricing."""
    architecture = {'databases': {'primary': {'provider': 'planetscale'}}}

    with pytest.raises(CostAggregatorError) as exc_info:
        CostAggregator(pricings).aggregate(architecture, usage)

    assert exc_info.value.provider == 'planetscale'


def test_unknown_service_fee_is_an_assumption(pricings, usage):
    """Services without a known flat fee are noted, not billed."""
    result = CostAggregator(pricings).aggregate({'services': ['search']}, usage)

    assert result.total_monthly_cost == 0
    assert "No flat fee known for service 'search'; not billed" in result.assumptions


def test_usage_from_load_profile():
    """Requests per second convert to a 30-day month."""
    usage = usage_from_load_profile({
        'requests_per_second': 10,
        'data_size': '50gb',
        'concurrent_users': 200,
        'peak_multiplier': 3,
    })

    assert usage.period == 'monthly'
    assert usage.requests == pytest.approx(25920000)
    assert usage.bandwidth == pytest.approx(10 * 2 * 2592000 / (1024 * 1024))
    assert usage.storage == pytest.approx(50)
    assert usage.concurrent_users == 200
    assert usage.peak_multiplier == 3
    assert [(share.region, share.percentage) for share in usage.regions] == [('us-east', 100)]


def test_compare_providers_ranks_cheapest_first(pricings):
    """Providers are ranked by monthly cost with deltas vs the cheapest."""
    usage = UsageVector(period='monthly', requests=1000000, storage=10)
    candidates = {'render': pricings['render'], 'upstash': pricings['upstash']}

    comparison = compare_providers(candidates, usage, hints={'render': 'Starter'})

    assert [estimate.provider for estimate in comparison.estimates] == ['upstash', 'render']
    assert comparison.cheapest.provider == 'upstash'
    assert comparison.deltas[0].delta == 0
    assert comparison.deltas[1].delta == pytest.approx(9.25 - 4.5)


def test_compare_providers_reports_failures(pricings):
    """A provider without tiers is reported, not fatal."""
    empty = PricingSnapshot(provider='ghost')
    usage = UsageVector(period='monthly', requests=1000)

    comparison = compare_providers({'ghost': empty, 'render': pricings['render']}, usage)

    assert list(comparison.failures) == ['ghost']
    assert comparison.to_dict()['cheapest'] == 'render'


def test_load_profile_region_without_name_is_rejected():
    """Every geographic distribution entry names a region."""
    with pytest.raises(ValueError, match='geographic_distribution.1: region is required'):
        usage_from_load_profile({
            'requests_per_second': 1,
            'geographic_distribution': [
                {'region': 'us-east', 'percentage': 50},
                {'percentage': 50},
            ],
        })
