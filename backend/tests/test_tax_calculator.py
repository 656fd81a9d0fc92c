"""
Tax calculator tests (pure, no database).
"""

import pytest
from decimal import Decimal

from backend.app.core.exceptions import InvalidAmountError
from backend.app.domain.billing.money import Money
from backend.app.domain.billing.tax_calculator import (
    TaxRateSnapshot,
    applicable_tax_rates,
    compute_invoice_totals,
    compute_line_item_taxes,
    compute_tax,
    price_line_item,
)

GST = TaxRateSnapshot(tax_rate_id=1, name="GST", rate=Decimal("0.05"))
PST = TaxRateSnapshot(
    tax_rate_id=2, name="PST", rate=Decimal("0.07"), exempt_item_types=("class_enrollment",)
)
RETIRED = TaxRateSnapshot(tax_rate_id=3, name="Old HST", rate=Decimal("0.13"), is_active=False)


def test_compute_tax_rounds_half_up():
    assert compute_tax(Money(1000, "CAD"), Decimal("0.05")) == Money(50, "CAD")
    # 0.05 * 1010 = 50.5 -> 51
    assert compute_tax(Money(1010, "CAD"), Decimal("0.05")) == Money(51, "CAD")
    # 0.07 * 1049 = 73.43 -> 73
    assert compute_tax(Money(1049, "CAD"), Decimal("0.07")) == Money(73, "CAD")
    assert compute_tax(Money(0, "CAD"), Decimal("0.05")).is_zero()


def test_compute_tax_rejects_negative_rate():
    with pytest.raises(InvalidAmountError):
        compute_tax(Money(1000, "CAD"), Decimal("-0.01"))


def test_applicable_rates_skip_inactive_and_exempt():
    assert applicable_tax_rates([GST, PST, RETIRED], "product") == [GST, PST]
    assert applicable_tax_rates([GST, PST, RETIRED], "class_enrollment") == [GST]


def test_line_item_taxes_apply_each_rate_to_full_amount():
    taxes = compute_line_item_taxes(Money(2999, "CAD"), 3, [GST, PST])
    # base 89.97: GST 4.4985 -> 4.50, PST 6.2979 -> 6.30
    assert [t.tax.amount for t in taxes] == [450, 630]
    assert [t.name_snapshot for t in taxes] == ["GST", "PST"]
    assert taxes[0].rate_snapshot == Decimal("0.05")


@pytest.mark.parametrize("quantity", [0, -1, 1.5, True])
def test_line_item_rejects_bad_quantity(quantity):
    with pytest.raises(InvalidAmountError):
        compute_line_item_taxes(Money(100, "CAD"), quantity, [GST])


def test_line_item_rejects_negative_unit_price():
    with pytest.raises(InvalidAmountError):
        compute_line_item_taxes(Money(-100, "CAD"), 1, [GST])


def test_priced_line_item_and_invoice_totals():
    lesson = price_line_item("class_enrollment", "Jazz II", 2, Money(7500, "CAD"), [GST, PST], sort_order=0)
    shoes = price_line_item("product", "Tap shoes", 1, Money(4000, "CAD"), [GST, PST], sort_order=1)

    assert lesson.line_total == Money(15000, "CAD")
    assert [t.name_snapshot for t in lesson.taxes] == ["GST"]
    assert lesson.tax_total == Money(750, "CAD")
    assert shoes.tax_total == Money(200 + 280, "CAD")

    totals = compute_invoice_totals([lesson, shoes], "CAD")
    assert totals.subtotal == Money(19000, "CAD")
    assert totals.tax == Money(1230, "CAD")
    assert totals.total == totals.subtotal + totals.tax


def test_untaxed_invoice_totals():
    item = price_line_item("fee", "Registration", 1, Money(2500, "CAD"), [])
    totals = compute_invoice_totals([item], "CAD")
    assert totals.tax.is_zero()
    assert totals.total == Money(2500, "CAD")
