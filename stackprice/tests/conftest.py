"""
Shared pytest fixtures for stackprice tests.
"""

import sys
import os
from pathlib import Path

# Add project root to Python path
project_root = Path(__file__).parent.parent.parent
sys.path.insert(0, str(project_root))

# Set minimal environment variables for testing
os.environ.setdefault('LOG_LEVEL', 'WARNING')

import copy
import pytest
from fastapi.testclient import TestClient

from stackprice.domain.pricing_models import PricingSnapshot
from stackprice.services import override_composer as override_composer_module
from stackprice.services import override_store as override_store_module
from stackprice.services.override_composer import OverrideComposer
from stackprice.services.override_store import OverrideStore


SAMPLE_PRICING = {
    'provider': 'render',
    'currency': 'USD',
    'billingPeriod': 'monthly',
    'lastUpdated': '2026-10-01T00:00:00Z',
    'tiers': [
        {
            'name': 'Free',
            'basePrice': 0,
            'limits': {'bandwidth': '100gb', 'requests': 100000},
            'features': ['ssl'],
        },
        {
            'name': 'Starter',
            'basePrice': 7,
            'limits': {'bandwidth': '500gb', 'requests': '1m'},
            'features': ['ssl', 'custom_domains'],
        },
        {
            'name': 'Pro',
            'basePrice': 25,
            'limits': {'bandwidth': '1tb', 'requests': '10m'},
            'features': ['ssl', 'custom_domains', 'autoscaling'],
        },
        {
            'name': 'Enterprise',
            'basePrice': 'custom',
            'limits': {'bandwidth': 'unlimited', 'requests': 'unlimited'},
            'features': ['ssl', 'custom_domains', 'autoscaling', 'sso'],
        },
    ],
    'services': [
        {'name': 'bandwidth', 'unit': 'GB', 'price': 0.1},
        {'name': 'requests', 'unit': '1M requests', 'price': 0.5},
        {'name': 'storage', 'unit': 'GB', 'price': 0.25, 'freeQuota': '1gb'},
    ],
}


@pytest.fixture
def sample_pricing():
    """Sample pricing snapshot in its external dict form."""
    return copy.deepcopy(SAMPLE_PRICING)


@pytest.fixture
def sample_snapshot(sample_pricing):
    """Sample pricing snapshot."""
    return PricingSnapshot.from_dict(sample_pricing)


@pytest.fixture
def override_store(monkeypatch):
    """Fresh override store installed as the global instance."""
    store = OverrideStore()
    monkeypatch.setattr(override_store_module, '_override_store', store)
    monkeypatch.setattr(override_composer_module, '_override_composer', OverrideComposer())
    return store


@pytest.fixture
def client(override_store):
    """FastAPI test client backed by a fresh override store."""
    from stackprice.main import app
    return TestClient(app)
