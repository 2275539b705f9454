"""Tax and discount arithmetic for cart lines.

Everything here is pure: no I/O, no hidden state. Intermediate values are
kept at full Decimal precision; rounding to cents happens only when a
``CartTotals`` is produced.

VAT rates are fractions (``Decimal("0.16")`` for 16%).
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from kenpos.app.core.money import ZERO, quantize_money, to_decimal
from kenpos.app.models.inventory import PricingType
from kenpos.app.models.pos import DiscountType

HUNDRED = Decimal("100")


class PricedLine(Protocol):
    unit_price: Decimal
    quantity: int
    pricing_type: PricingType


@dataclass(frozen=True)
class Discount:
    type: DiscountType
    value: Decimal

    @classmethod
    def none(cls) -> Discount:
        return cls(DiscountType.FIXED, ZERO)


@dataclass(frozen=True)
class PriceBreakdown:
    base_price: Decimal
    vat_amount: Decimal


@dataclass(frozen=True)
class CartTotals:
    subtotal: Decimal
    discount_amount: Decimal
    taxable_amount: Decimal
    tax: Decimal
    total: Decimal


def price_breakdown(
    unit_price: Decimal, pricing_type: PricingType | str, vat_rate: Decimal
) -> PriceBreakdown:
    """Split a listed price into its pre-tax base and VAT component."""
    price = to_decimal(unit_price)
    rate = to_decimal(vat_rate)
    if PricingType(pricing_type) == PricingType.INCLUSIVE:
        base = price / (1 + rate)
        return PriceBreakdown(base_price=base, vat_amount=price - base)
    return PriceBreakdown(base_price=price, vat_amount=price * rate)


def discount_amount(subtotal: Decimal, discount: Discount | None) -> Decimal:
    """Unrounded discount, clamped to ``[0, subtotal]``."""
    if discount is None:
        return ZERO
    value = to_decimal(discount.value)
    if DiscountType(discount.type) == DiscountType.PERCENTAGE:
        amount = subtotal * value / HUNDRED
    else:
        amount = value
    return max(ZERO, min(subtotal, amount))


def cart_totals(
    lines: Iterable[PricedLine],
    discount: Discount | None,
    vat_rate: Decimal,
) -> CartTotals:
    """Quote a cart.

    ``taxable_amount`` and ``total`` on the result are derived from the
    rounded components, so ``total == taxable_amount + tax`` and
    ``taxable_amount == subtotal - discount_amount`` hold exactly on the
    returned figures. Tax itself is computed on the unrounded taxable
    amount.
    """
    rate = to_decimal(vat_rate)
    subtotal = sum(
        (
            price_breakdown(line.unit_price, line.pricing_type, rate).base_price
            * line.quantity
            for line in lines
        ),
        ZERO,
    )
    discount_value = discount_amount(subtotal, discount)
    taxable = subtotal - discount_value
    tax = taxable * rate

    subtotal_out = quantize_money(subtotal)
    discount_out = quantize_money(discount_value)
    taxable_out = subtotal_out - discount_out
    tax_out = quantize_money(tax)
    return CartTotals(
        subtotal=subtotal_out,
        discount_amount=discount_out,
        taxable_amount=taxable_out,
        tax=tax_out,
        total=taxable_out + tax_out,
    )
