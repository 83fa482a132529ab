"""
Buyer-facing price calculation.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

# Seller fee plus platform fee applied on top of the seller's base price
DISPLAY_PRICE_MARKUP = Decimal("1.0526")


def calculate_display_price(base_price: Union[int, float, str, Decimal]) -> int:
    """
    Apply the marketplace markup and round half up to whole kwacha.

    Decimal arithmetic keeps the result identical across platforms:
    100000 -> 105260, 1350000 -> 1421010.

    Raises:
        ValueError: If base_price is not positive
    """
    value = base_price if isinstance(base_price, Decimal) else Decimal(str(base_price))
    if value <= 0:
        raise ValueError("Base price must be positive")
    return int((value * DISPLAY_PRICE_MARKUP).quantize(Decimal("1"), rounding=ROUND_HALF_UP))
