"""
Tax proration tests (pure, no database).
"""

import pytest
from decimal import Decimal

from backend.app.core.exceptions import InvalidAmountError, LedgerIntegrityError
from backend.app.domain.billing.money import Money
from backend.app.domain.billing.tax_proration import (
    InvoiceTaxLine,
    prorate_payment_taxes,
    proportional_tax_share,
)


def cad(cents):
    return Money(cents, "CAD")


def tax_line(line_item_id, tax_rate_id, cents, name="Levy", rate="0.035"):
    return InvoiceTaxLine(
        line_item_id=line_item_id,
        tax_rate_id=tax_rate_id,
        tax=cad(cents),
        name_snapshot=name,
        rate_snapshot=Decimal(rate),
    )


def test_single_line_partial_payment():
    shares = prorate_payment_taxes(
        payment=cad(5000), total=cad(10350), tax_amount=cad(350), tax_lines=[tax_line(1, 1, 350)]
    )
    # 350 * 5000 / 10350 = 169.08, floor 168, remainder-adjusted to 169
    assert len(shares) == 1
    assert shares[0].tax == cad(169)
    assert shares[0].tax_rate_id == 1
    assert shares[0].name_snapshot == "Levy"


def test_full_payment_settles_all_tax():
    lines = [tax_line(1, 1, 350)]
    shares = prorate_payment_taxes(cad(10350), cad(10350), cad(350), lines)
    assert shares[0].tax == cad(350)


def test_successive_payments_sum_to_invoice_tax():
    lines = [tax_line(1, 1, 350)]
    paid = cad(0)
    collected = []
    for _ in range(3):
        shares = prorate_payment_taxes(cad(3450), cad(10350), cad(350), lines, paid_before=paid)
        collected.append(sum(s.tax.amount for s in shares))
        paid = paid + cad(3450)
    assert collected == [117, 116, 117]
    assert sum(collected) == 350


def test_multiple_lines_remainder_goes_to_first_lines():
    # two items of 50.00 with GST 2.50 each, total 105.00, paying 33.33
    lines = [
        tax_line(1, 1, 250, name="GST", rate="0.05"),
        tax_line(2, 1, 250, name="GST", rate="0.05"),
    ]
    shares = prorate_payment_taxes(cad(3333), cad(10500), cad(500), lines)
    # ideal: 500 * 3333 / 10500 = 158.71 -> 159; provisional 79 + 79 = 158
    assert [s.tax.amount for s in shares] == [80, 79]
    assert sum(s.tax.amount for s in shares) == proportional_tax_share(500, 0, 3333, 10500) == 159


def test_lines_with_zero_allocation_are_dropped():
    lines = [
        tax_line(1, 1, 1, name="GST", rate="0.05"),
        tax_line(2, 2, 999, name="PST", rate="0.07"),
    ]
    shares = prorate_payment_taxes(cad(100), cad(11000), cad(1000), lines)
    assert [s.tax_rate_id for s in shares] == [2]
    assert shares[0].tax == cad(9)


def test_untaxed_invoice_yields_no_shares():
    assert prorate_payment_taxes(cad(500), cad(1000), cad(0), []) == []
    assert prorate_payment_taxes(cad(500), cad(1000), cad(0), [tax_line(1, 1, 0)]) == []


def test_mismatched_tax_lines_fail_closed():
    with pytest.raises(LedgerIntegrityError):
        prorate_payment_taxes(cad(5000), cad(10350), cad(350), [tax_line(1, 1, 349)])


def test_invalid_payment_inputs():
    lines = [tax_line(1, 1, 350)]
    with pytest.raises(InvalidAmountError):
        prorate_payment_taxes(cad(0), cad(10350), cad(350), lines)
    with pytest.raises(InvalidAmountError):
        prorate_payment_taxes(cad(6000), cad(10350), cad(350), lines, paid_before=cad(5000))
