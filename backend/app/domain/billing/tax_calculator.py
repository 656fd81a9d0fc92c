"""
Tax Calculator (Domain Logic).

Pure functions that turn tax rate snapshots into per-line-item tax
amounts and roll line items up into invoice totals. Nothing here touches
the database; the invoice creation workflow persists the results.
"""

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Iterable, List, Optional, Sequence

from backend.app.core.exceptions import InvalidAmountError
from backend.app.domain.billing.money import Money, round_half_up_div, sum_money

# quantity is an INTEGER column
MAX_QUANTITY = 2 ** 31 - 1


@dataclass(frozen=True)
class TaxRateSnapshot:
    """A tax rate as it stood at invoice creation. `rate` is a fraction (0.05 = 5%)."""
    tax_rate_id: int
    name: str
    rate: Decimal
    description: Optional[str] = None
    is_active: bool = True
    exempt_item_types: tuple = ()


@dataclass(frozen=True)
class LineItemTaxLine:
    """Tax computed for one rate on one line item, with the rate frozen."""
    tax_rate_id: int
    name_snapshot: str
    rate_snapshot: Decimal
    tax: Money
    description_snapshot: Optional[str] = None


@dataclass(frozen=True)
class PricedLineItem:
    """A line item with its base amount and taxes computed."""
    item_type: str
    description: str
    quantity: int
    unit_price: Money
    sort_order: int = 0
    taxes: List[LineItemTaxLine] = field(default_factory=list)

    @property
    def line_total(self) -> Money:
        return self.unit_price * self.quantity

    @property
    def tax_total(self) -> Money:
        return sum_money((t.tax for t in self.taxes), self.unit_price.currency)


@dataclass(frozen=True)
class InvoiceTotals:
    subtotal: Money
    tax: Money
    total: Money


def compute_tax(base: Money, rate: Decimal) -> Money:
    """
    Tax on a base amount, rounded half-up to the minor unit.

    The rate is applied as an exact rational so 0.07 is never 0.0700000001.
    """
    if not isinstance(rate, Decimal):
        rate = Decimal(str(rate))
    if rate < 0:
        raise InvalidAmountError(f"Tax rate must not be negative: {rate}", field="rate")
    numerator, denominator = rate.as_integer_ratio()
    return Money(round_half_up_div(base.amount * numerator, denominator), base.currency)


def applicable_tax_rates(rates: Iterable[TaxRateSnapshot], item_type: str) -> List[TaxRateSnapshot]:
    """Active rates that do not exempt the given item type."""
    return [
        rate for rate in rates
        if rate.is_active and item_type not in rate.exempt_item_types
    ]


def compute_line_item_taxes(
    unit_price: Money,
    quantity: int,
    rates: Sequence[TaxRateSnapshot]
) -> List[LineItemTaxLine]:
    """
    Compute one LineItemTaxLine per rate for `quantity` units at `unit_price`.

    Each rate is applied to the full line amount independently; taxes are
    not compounded.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidAmountError("Quantity must be a positive integer", field="quantity")
    if quantity > MAX_QUANTITY:
        raise InvalidAmountError("Quantity is too large", field="quantity")
    if unit_price.is_negative():
        raise InvalidAmountError("Unit price must not be negative", field="unit_price")

    base = unit_price * quantity
    return [
        LineItemTaxLine(
            tax_rate_id=rate.tax_rate_id,
            name_snapshot=rate.name,
            rate_snapshot=rate.rate,
            description_snapshot=rate.description,
            tax=compute_tax(base, rate.rate),
        )
        for rate in rates
    ]


def price_line_item(
    item_type: str,
    description: str,
    quantity: int,
    unit_price: Money,
    rates: Sequence[TaxRateSnapshot],
    sort_order: int = 0
) -> PricedLineItem:
    """Apply the applicable subset of `rates` to a line item."""
    return PricedLineItem(
        item_type=item_type,
        description=description,
        quantity=quantity,
        unit_price=unit_price,
        sort_order=sort_order,
        taxes=compute_line_item_taxes(unit_price, quantity, applicable_tax_rates(rates, item_type)),
    )


def compute_invoice_totals(line_items: Sequence[PricedLineItem], currency: str) -> InvoiceTotals:
    """Roll line items into subtotal, tax and total."""
    subtotal = sum_money((item.line_total for item in line_items), currency)
    tax = sum_money((item.tax_total for item in line_items), currency)
    return InvoiceTotals(subtotal=subtotal, tax=tax, total=subtotal + tax)
