"""
Tax Proration (Domain Logic).

Splits a payment's share of an invoice's tax across the invoice's
existing tax lines so that the parts add up exactly, to the minor unit,
to the payment's proportional share of the tax.

All arithmetic is on integer minor units:

1. Ideal share for this payment, rounded half-up once:
       round(tax * (paid_before + payment) / total) - round(tax * paid_before / total)
   Rounding the cumulative share keeps a series of partial payments that
   settles the invoice summing to exactly the invoice's tax.
2. Provisional share per tax line: floor(tax_i * payment / total).
3. The remainder (ideal - sum of provisional, always 0..n) is handed out
   one minor unit at a time to tax lines in invoice order.
"""

from dataclasses import dataclass
from decimal import Decimal
from typing import List, Optional, Sequence

from backend.app.core.exceptions import InvalidAmountError, LedgerIntegrityError
from backend.app.domain.billing.money import Money, round_half_up_div, sum_money


@dataclass(frozen=True)
class InvoiceTaxLine:
    """One persisted line item tax, in invoice order."""
    line_item_id: int
    tax_rate_id: int
    tax: Money
    name_snapshot: str
    rate_snapshot: Decimal
    description_snapshot: Optional[str] = None


@dataclass(frozen=True)
class PaymentTaxShare:
    """The part of one tax line settled by one payment."""
    tax_rate_id: int
    tax: Money
    name_snapshot: str
    rate_snapshot: Decimal
    description_snapshot: Optional[str] = None


def proportional_tax_share(tax_amount: int, paid_before: int, payment: int, total: int) -> int:
    """Rounded share of `tax_amount` settled by `payment`, in minor units."""
    return (
        round_half_up_div(tax_amount * (paid_before + payment), total)
        - round_half_up_div(tax_amount * paid_before, total)
    )


def prorate_payment_taxes(
    payment: Money,
    total: Money,
    tax_amount: Money,
    tax_lines: Sequence[InvoiceTaxLine],
    paid_before: Optional[Money] = None
) -> List[PaymentTaxShare]:
    """
    Allocate a payment's proportional tax across `tax_lines`.

    Args:
        payment: Amount being paid (0 < payment <= total - paid_before)
        total: Invoice total
        tax_amount: Invoice tax total; must equal the sum of tax_lines
        tax_lines: Line item taxes ordered by line sort order, then tax order
        paid_before: Amount already paid on the invoice before this payment

    Returns:
        One PaymentTaxShare per tax line with a non-zero allocation, in the
        same order. Empty when the invoice carries no tax.
    """
    paid_before = paid_before if paid_before is not None else Money.zero(total.currency)

    if tax_amount.is_zero() or not tax_lines:
        return []
    if not payment.is_positive():
        raise InvalidAmountError("Amount must be positive")
    if not total.is_positive():
        raise LedgerIntegrityError("invoice total must be positive when tax is charged")
    if paid_before + payment > total:
        raise InvalidAmountError("Payment exceeds invoice total")

    line_sum = sum_money((line.tax for line in tax_lines), total.currency)
    if line_sum != tax_amount:
        raise LedgerIntegrityError(
            f"line item taxes sum to {line_sum} but invoice tax is {tax_amount}"
        )

    ideal = proportional_tax_share(tax_amount.amount, paid_before.amount, payment.amount, total.amount)
    provisional = [(line.tax.amount * payment.amount) // total.amount for line in tax_lines]
    remainder = ideal - sum(provisional)

    # remainder is always within [0, len(tax_lines)]
    allocations = list(provisional)
    index = 0
    while remainder > 0:
        allocations[index % len(allocations)] += 1
        remainder -= 1
        index += 1

    return [
        PaymentTaxShare(
            tax_rate_id=line.tax_rate_id,
            tax=Money(allocation, total.currency),
            name_snapshot=line.name_snapshot,
            rate_snapshot=line.rate_snapshot,
            description_snapshot=line.description_snapshot,
        )
        for line, allocation in zip(tax_lines, allocations)
        if allocation
    ]
