"""
Tests for quantity and rate unit parsing.
"""

import math
import pytest

from stackprice.core.config import config
from stackprice.pricing.units import InvalidQuantity, is_unlimited, parse_quantity, parse_rate_unit


@pytest.mark.parametrize('raw, expected', [
    ('1tb', 1024.0),
    ('512mb', 0.5),
    ('100gb', 100.0),
    ('  2.5 GB ', 2.5),
    ('10k', 10000.0),
    ('1m', 1000000.0),
    (42, 42.0),
    (0.75, 0.75),
])
def test_parse_quantity_normalizes_to_base_units(raw, expected):
    """Quantity strings normalize to GB for sizes and units for counts."""
    assert parse_quantity(raw, 'field') == pytest.approx(expected)


def test_unlimited_maps_to_finite_sentinel():
    """'unlimited' maps to a large but finite quantity."""
    value = parse_quantity('Unlimited', 'bandwidth')

    assert value == config.UNLIMITED_QUANTITY
    assert math.isfinite(value)


@pytest.mark.parametrize('raw', [-1, '-5gb', 'abc', '', '10xb', None, True, float('nan'), float('inf'), [1]])
def test_parse_quantity_rejects_invalid_input(raw):
    """Invalid quantities raise InvalidQuantity naming the raw value and field."""
    with pytest.raises(InvalidQuantity) as exc_info:
        parse_quantity(raw, 'bandwidth')

    assert exc_info.value.field == 'bandwidth'


def test_invalid_quantity_message_names_field():
    """Error message carries the field name."""
    with pytest.raises(InvalidQuantity) as exc_info:
        parse_quantity('lots', 'storage')

    assert "'storage'" in str(exc_info.value)
    assert "'lots'" in str(exc_info.value)


@pytest.mark.parametrize('unit, expected', [
    ('GB', 1.0),
    ('hour', 1.0),
    ('', 1.0),
    ('1M requests', 1000000.0),
    ('per_1m_requests', 1000000.0),
    ('100k requests', 100000.0),
])
def test_parse_rate_unit(unit, expected):
    """Rate units resolve to the number of base units one price covers."""
    assert parse_rate_unit(unit) == expected


def test_is_unlimited():
    """Only the unlimited tokens count; a published number is always finite."""
    assert is_unlimited('unlimited')
    assert is_unlimited(' Infinite ')
    assert not is_unlimited(config.UNLIMITED_QUANTITY)
    assert not is_unlimited(999999)
    assert not is_unlimited(100)
    assert not is_unlimited('100gb')
    assert not is_unlimited(True)
