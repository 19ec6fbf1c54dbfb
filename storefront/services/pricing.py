"""Order pricing and coupon eligibility.

Pure functions over Decimal amounts. ``quote_order`` returns exact figures;
``PriceQuote.rounded`` gives the cent-rounded version that gets persisted,
with the total rebuilt from the rounded parts so that
``total == subtotal + tax - discount`` holds exactly in storage.
"""
from dataclasses import dataclass, replace
from datetime import datetime
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Optional, Tuple

from storefront.db.models import Coupon, DiscountType

CENT = Decimal("0.01")
ZERO = Decimal("0")

def to_cents(amount: Decimal) -> Decimal:
    return amount.quantize(CENT, rounding=ROUND_HALF_UP)

@dataclass(frozen=True)
class PriceQuote:
    subtotal: Decimal
    discount: Decimal
    tax: Decimal
    total: Decimal
    coupon_id: Optional[int] = None
    coupon_error: Optional[str] = None

    @property
    def coupon_applied(self) -> bool:
        return self.coupon_id is not None

    def rounded(self) -> "PriceQuote":
        subtotal = to_cents(self.subtotal)
        discount = min(to_cents(self.discount), subtotal)
        tax = to_cents(self.tax)
        return replace(self, subtotal=subtotal, discount=discount, tax=tax, total=subtotal + tax - discount)

def coupon_rejection(coupon: Optional[Coupon], order_total: Decimal, now: datetime) -> Optional[str]:
    """Return why ``coupon`` cannot be used on ``order_total``, or None if it can."""
    if coupon is None:
        return "Coupon not found"
    if not coupon.is_active:
        return "Coupon is not active"
    if coupon.expires_at is not None and coupon.expires_at <= now:
        return "Coupon has expired"
    if coupon.usage_limit is not None and coupon.used_count >= coupon.usage_limit:
        return "Coupon usage limit reached"
    minimum = coupon.minimum_order if coupon.minimum_order is not None else ZERO
    if order_total < minimum:
        return f"Minimum order amount of ${minimum:.2f} required"
    return None

def coupon_discount(coupon: Coupon, order_total: Decimal) -> Decimal:
    value = Decimal(coupon.discount_value)
    if coupon.discount_type == DiscountType.PERCENTAGE:
        discount = order_total * value / 100
    else:
        discount = value
    return min(discount, order_total)

def tax_for(subtotal: Decimal, discount: Decimal, tax_rate: Decimal) -> Decimal:
    return (subtotal - discount) * Decimal(tax_rate)

def quote_order(
    lines: Iterable[Tuple[Decimal, int]],
    coupon: Optional[Coupon],
    tax_rate: Decimal,
    now: datetime,
) -> PriceQuote:
    """Price ``(unit_price, quantity)`` lines, applying ``coupon`` only if it is eligible."""
    subtotal = sum((Decimal(price) * qty for price, qty in lines), ZERO)
    discount = ZERO
    coupon_id = None
    coupon_error = None
    if coupon is not None:
        coupon_error = coupon_rejection(coupon, subtotal, now)
        if coupon_error is None:
            discount = coupon_discount(coupon, subtotal)
            coupon_id = coupon.id
    tax = tax_for(subtotal, discount, tax_rate)
    return PriceQuote(
        subtotal=subtotal,
        discount=discount,
        tax=tax,
        total=subtotal + tax - discount,
        coupon_id=coupon_id,
        coupon_error=coupon_error,
    )
