"""
Invoice arithmetic on Decimal values, rounded half-up to cents.

Module-level functions; there is no state to hold.
"""

from dataclasses import dataclass
from decimal import Decimal, ROUND_HALF_UP
from typing import Iterable, Protocol

CENT = Decimal("0.01")
ZERO = Decimal("0.00")


class PricedLine(Protocol):
    quantity: Decimal
    unit_price: Decimal


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Decimal
    tax_amount: Decimal
    total_amount: Decimal


def to_cents(value: Decimal) -> Decimal:
    return Decimal(value).quantize(CENT, rounding=ROUND_HALF_UP)


def line_item_total(quantity: Decimal, unit_price: Decimal) -> Decimal:
    """quantity x unit_price, rounded to cents"""
    return to_cents(Decimal(quantity) * Decimal(unit_price))


def subtotal(line_items: Iterable[PricedLine]) -> Decimal:
    return to_cents(
        sum((line_item_total(item.quantity, item.unit_price) for item in line_items), ZERO)
    )


def tax_amount(subtotal_value: Decimal, tax_rate: Decimal) -> Decimal:
    """
    Tax on a subtotal.

    Raises:
        ValueError: If tax_rate is outside [0, 1]
    """
    if tax_rate < 0 or tax_rate > 1:
        raise ValueError("Tax rate must be between 0 and 1")
    return to_cents(Decimal(subtotal_value) * Decimal(tax_rate))


def calculate_totals(line_items: Iterable[PricedLine], tax_rate: Decimal = ZERO) -> InvoiceTotals:
    sub = subtotal(line_items)
    tax = tax_amount(sub, tax_rate)
    return InvoiceTotals(subtotal=sub, tax_amount=tax, total_amount=to_cents(sub + tax))


def remaining_balance(total_amount: Decimal, amount_paid: Decimal) -> Decimal:
    """Outstanding amount; never negative"""
    return max(to_cents(Decimal(total_amount) - Decimal(amount_paid)), ZERO)


def is_fully_paid(total_amount: Decimal, amount_paid: Decimal) -> bool:
    return to_cents(amount_paid) >= to_cents(total_amount)


def payment_percentage(total_amount: Decimal, amount_paid: Decimal) -> Decimal:
    """Share of the total already paid, capped at 100"""
    if total_amount <= 0:
        return Decimal("100.00") if amount_paid > 0 else ZERO
    return min(to_cents(Decimal(amount_paid) / Decimal(total_amount) * 100), Decimal("100.00"))
