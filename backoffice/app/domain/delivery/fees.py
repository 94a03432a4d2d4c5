"""
Delivery fee calculation.

Amounts are in Naira.
"""

from typing import Optional

BASE_FEE = 500.0
PER_KM_FEE = 100.0
PER_KG_FEE = 50.0
REMOTE_SURCHARGE = 1000.0
MINIMUM_FEE = 800.0


def calculate_delivery_fee(
    distance_km: Optional[float] = None,
    weight_kg: Optional[float] = None,
    location: Optional[str] = None
) -> float:
    """
    Quote the fee for a delivery.

    base + distance * 100 + weight * 50 (+ 1000 for a remote location),
    never below the minimum fee.
    """
    distance_fee = distance_km * PER_KM_FEE if distance_km else 0.0
    weight_fee = weight_kg * PER_KG_FEE if weight_kg else 0.0
    location_fee = REMOTE_SURCHARGE if location == "remote" else 0.0

    total = BASE_FEE + distance_fee + weight_fee + location_fee
    return max(total, MINIMUM_FEE)
