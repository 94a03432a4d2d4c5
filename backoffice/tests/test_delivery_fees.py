"""
Delivery fee quotes and tracking number format.
"""

from datetime import datetime, timezone

import pytest

from backoffice.app.domain.delivery.fees import calculate_delivery_fee, MINIMUM_FEE
from backoffice.app.domain.delivery.tracking import generate_tracking_number, TRACKING_NUMBER_PATTERN


@pytest.mark.parametrize("kwargs,expected", [
    ({}, MINIMUM_FEE),
    ({"distance_km": 2}, MINIMUM_FEE),
    ({"distance_km": 10}, 1500.0),
    ({"distance_km": 10, "weight_kg": 4}, 1700.0),
    ({"location": "remote"}, 1500.0),
    ({"distance_km": 10, "weight_kg": 2, "location": "remote"}, 2600.0),
    ({"distance_km": 5, "location": "Lagos"}, 1000.0),
])
def test_calculate_delivery_fee(kwargs, expected):
    assert calculate_delivery_fee(**kwargs) == expected


def test_tracking_number_format():
    number = generate_tracking_number(datetime(2026, 3, 9, tzinfo=timezone.utc))

    assert TRACKING_NUMBER_PATTERN.match(number)
    assert number.startswith("DEL-20260309-")
    assert 1000 <= int(number[-4:]) <= 9999
