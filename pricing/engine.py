"""Pure cart pricing.

`price_cart` turns line items, an optional promotion, an optional shipping
method and a tax rate into a `Totals` snapshot. It performs no I/O and
reads no clock: the promotion window is checked against the `now` the
caller passes in, so identical inputs always give identical totals.

Items, promotions and shipping methods are duck-typed. Model instances
work, as does anything exposing the same attributes.
"""

from dataclasses import dataclass
from datetime import datetime
from decimal import ROUND_HALF_UP, Decimal
from typing import Iterable, Optional

from common.choices import DiscountType

ZERO = Decimal("0.00")
CENT = Decimal("0.01")
HUNDRED = Decimal("100")


def money(value) -> Decimal:
    return Decimal(str(value)).quantize(CENT, rounding=ROUND_HALF_UP)


class PromotionInapplicable(Exception):
    """Promotion cannot be applied. Non-fatal: the cart is priced without it."""

    code = "promotion_inapplicable"

    MESSAGES = {
        "unknown_code": "Invalid promotion code",
        "inactive": "Promotion code is not active",
        "not_started": "Promotion code is not yet active",
        "expired": "Promotion code has expired",
        "usage_limit_reached": "Promotion code usage limit reached",
        "minimum_not_met": "Order total does not meet the promotion minimum",
    }

    def __init__(self, reason: str, message: str | None = None):
        super().__init__(message or self.MESSAGES.get(reason, reason))
        self.reason = reason


@dataclass(frozen=True)
class Totals:
    subtotal: Decimal
    discount_amount: Decimal
    shipping_cost: Decimal
    tax_amount: Decimal
    total: Decimal
    item_count: int
    promotion_code: Optional[str] = None
    promotion_issue: Optional[str] = None
    free_shipping: bool = False

    def as_dict(self) -> dict:
        return {
            "subtotal": self.subtotal,
            "discount_amount": self.discount_amount,
            "shipping_cost": self.shipping_cost,
            "tax_amount": self.tax_amount,
            "total": self.total,
            "item_count": self.item_count,
            "promotion_code": self.promotion_code,
            "promotion_issue": self.promotion_issue,
            "free_shipping": self.free_shipping,
        }


def line_total(item) -> Decimal:
    return money(Decimal(str(item.unit_price or ZERO)) * int(item.quantity))


def check_promotion(promotion, *, subtotal: Decimal, now: datetime) -> None:
    """Raise PromotionInapplicable unless `promotion` applies to `subtotal` at `now`."""

    if promotion is None:
        raise PromotionInapplicable("unknown_code")
    if not promotion.is_active:
        raise PromotionInapplicable("inactive")
    if now < promotion.starts_at:
        raise PromotionInapplicable("not_started")
    if now >= promotion.ends_at:
        raise PromotionInapplicable("expired")
    if promotion.usage_limit is not None and int(promotion.times_used) >= int(promotion.usage_limit):
        raise PromotionInapplicable("usage_limit_reached")
    minimum = promotion.min_order_total or ZERO
    if subtotal < minimum:
        raise PromotionInapplicable(
            "minimum_not_met",
            f"Minimum order amount of {money(minimum)} required",
        )


def compute_discount(promotion, subtotal: Decimal) -> Decimal:
    """Monetary discount for an applicable promotion, clamped to [0, subtotal]."""

    value = Decimal(str(promotion.discount_value or ZERO))
    if promotion.discount_type == DiscountType.PERCENTAGE:
        discount = subtotal * value / HUNDRED
        if promotion.maximum_discount is not None:
            discount = min(discount, Decimal(str(promotion.maximum_discount)))
    elif promotion.discount_type == DiscountType.FIXED_AMOUNT:
        discount = value
    else:
        # Free shipping carries no monetary discount; shipping is waived instead
        discount = ZERO
    return money(min(max(discount, ZERO), subtotal))


def shipping_cost_for(shipping, subtotal: Decimal) -> Decimal:
    if shipping is None:
        return ZERO
    threshold = shipping.free_threshold
    if threshold is not None and subtotal >= Decimal(str(threshold)):
        return ZERO
    return money(shipping.cost)


def price_cart(
    items: Iterable,
    *,
    now: datetime,
    promotion=None,
    promotion_code: Optional[str] = None,
    shipping=None,
    tax_rate: Decimal = ZERO,
) -> Totals:
    """Price a cart snapshot.

    - subtotal: sum of snapshotted `unit_price * quantity`
    - discount: promotion applied when valid at `now`, else 0 with `promotion_issue` set
    - shipping: method cost, waived at or above its free threshold or by a free-shipping promotion
    - tax: `tax_rate` (a fraction, 0.08 = 8%) on subtotal minus discount
    - total: subtotal - discount + tax + shipping, floored at 0

    `promotion_code` names the code the shopper entered; pass it with
    `promotion=None` when the code did not resolve to a promotion.
    """

    items = list(items)
    subtotal = money(sum((line_total(i) for i in items), ZERO))
    item_count = sum(int(i.quantity) for i in items)

    discount = ZERO
    applied_code = None
    issue = None
    free_shipping = False
    if promotion is not None or promotion_code:
        try:
            check_promotion(promotion, subtotal=subtotal, now=now)
        except PromotionInapplicable as exc:
            issue = exc.reason
        else:
            discount = compute_discount(promotion, subtotal)
            applied_code = promotion.code
            free_shipping = promotion.discount_type == DiscountType.FREE_SHIPPING

    shipping_cost = ZERO if free_shipping else shipping_cost_for(shipping, subtotal)
    tax = money((subtotal - discount) * Decimal(str(tax_rate)))
    total = max(subtotal - discount + tax + shipping_cost, ZERO)

    return Totals(
        subtotal=subtotal,
        discount_amount=discount,
        shipping_cost=shipping_cost,
        tax_amount=tax,
        total=money(total),
        item_count=item_count,
        promotion_code=applied_code,
        promotion_issue=issue,
        free_shipping=free_shipping,
    )
