"""
Shipping quote calculator.

Pure functions only: no I/O, no clock, no randomness.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional


RATE_PER_KG = 5.0
VOLUMETRIC_DIVISOR = 5000.0
INSURANCE_RATE = 0.02
MINIMUM_CHARGE = 25.0
DEFAULT_MULTIPLIER = 1.0


@dataclass(frozen=True)
class ShippingMethod:
    id: str
    name: str
    multiplier: float
    min_days: int
    max_days: int
    description: str

    @property
    def days(self) -> str:
        return f"{self.min_days}-{self.max_days} days"


# Fastest to cheapest
SHIPPING_METHODS = (
    ShippingMethod("express", "Express Air", 2.5, 1, 3, "Fastest delivery via air freight"),
    ShippingMethod("standard", "Standard Air", 1.5, 3, 5, "Reliable air freight service"),
    ShippingMethod("ocean", "Ocean Freight", 0.5, 15, 30, "Cost-effective for large shipments"),
    ShippingMethod("ground", "Ground Transport", 0.8, 5, 10, "Domestic and regional delivery"),
)

_METHODS_BY_ID = {method.id: method for method in SHIPPING_METHODS}


def get_shipping_method(method_id: str) -> Optional[ShippingMethod]:
    return _METHODS_BY_ID.get(method_id)


def method_multiplier(method_id: str) -> float:
    method = get_shipping_method(method_id)
    return method.multiplier if method else DEFAULT_MULTIPLIER


def chargeable_weight(
    weight_kg: float,
    length_cm: Optional[float] = None,
    width_cm: Optional[float] = None,
    height_cm: Optional[float] = None,
) -> float:
    """
    Billable weight under the dimensional weight policy.

    Volumetric weight (l x w x h / 5000) only applies when all three
    dimensions are present and positive; the greater weight is billed.
    """
    dimensions = (length_cm, width_cm, height_cm)
    if all(d is not None and d > 0 for d in dimensions):
        volumetric = (length_cm * width_cm * height_cm) / VOLUMETRIC_DIVISOR
        return max(weight_kg, volumetric)
    return weight_kg


def calculate_quote(
    weight_kg: float,
    method: str,
    length_cm: Optional[float] = None,
    width_cm: Optional[float] = None,
    height_cm: Optional[float] = None,
    insurance: bool = False,
    declared_value: Optional[float] = None,
) -> float:
    """
    Price a package.

    Args:
        weight_kg: Actual weight in kg
        method: Shipping method id (unknown ids price at multiplier 1)
        length_cm, width_cm, height_cm: Optional package dimensions
        insurance: Whether insurance was selected
        declared_value: Declared value, required for the insurance surcharge

    Returns:
        Price in dollars, at least MINIMUM_CHARGE, rounded half-up to cents
    """
    weight = chargeable_weight(weight_kg, length_cm, width_cm, height_cm)
    price = weight * RATE_PER_KG * method_multiplier(method)

    if insurance and declared_value:
        price += declared_value * INSURANCE_RATE

    price = max(price, MINIMUM_CHARGE)
    return float(Decimal(str(price)).quantize(Decimal("0.01"), rounding=ROUND_HALF_UP))
