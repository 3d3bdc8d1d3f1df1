"""Price strings ("$0.10") and their conversion to token base units."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation

from paywall_service.domain.errors import ValidationFailed

_PRICE_PATTERN = re.compile(r"^\$(\d+(?:\.\d+)?)$")


def parse_price(price: str, field: str = "price") -> Decimal:
    """
    Parse a currency-prefixed price into a Decimal.

    Raises:
        ValidationFailed: If the price is not "$" followed by a positive decimal
    """
    match = _PRICE_PATTERN.match(price)
    if match is None:
        raise ValidationFailed(field, "must be '$' followed by a decimal amount")
    amount = Decimal(match.group(1))
    if amount <= 0:
        raise ValidationFailed(field, "must be greater than zero")
    return amount


def to_base_units(price: str, decimals: int) -> int:
    """
    Convert a price string to integer token base units.

    "$0.10" with 6 decimals is 100000.

    Raises:
        ValidationFailed: If the amount has more precision than the token supports
    """
    scaled = parse_price(price) * (Decimal(10) ** decimals)
    try:
        integral = scaled.to_integral_exact()
    except InvalidOperation as exc:
        raise ValidationFailed("price", f"cannot be represented with {decimals} decimals") from exc
    if integral != scaled:
        raise ValidationFailed("price", f"cannot be represented with {decimals} decimals")
    return int(integral)
