"""
Invoice aggregator and status state machine tests.
"""

import pytest

from backend.app.core.exceptions import (
    InvalidAmountError,
    InvalidStateError,
    InvalidTransitionError,
    LedgerIntegrityError,
    OverpaymentRejectedError,
)
from backend.app.domain.billing.invoice_aggregator import (
    InvoiceLedgerState,
    assert_transition,
    can_transition,
)
from backend.app.domain.billing.money import Money
from backend.app.models.billing_enums import InvoiceStatus


def cad(cents):
    return Money(cents, "CAD")


def make_state(status=InvoiceStatus.SENT, paid=0):
    return InvoiceLedgerState(
        invoice_id=1,
        status=status,
        subtotal=cad(10000),
        tax=cad(350),
        total=cad(10350),
        amount_paid=cad(paid),
    )


def test_partial_then_exact_remaining_payment():
    state = make_state()
    state = state.apply_payment(cad(5000))
    assert state.status == InvoiceStatus.PARTIALLY_PAID
    assert state.remaining_balance == cad(5350)

    state = state.apply_payment(cad(5350))
    assert state.status == InvoiceStatus.PAID
    assert state.remaining_balance.is_zero()


def test_overpayment_by_one_cent_rejected():
    state = make_state(status=InvoiceStatus.PARTIALLY_PAID, paid=5000)
    with pytest.raises(OverpaymentRejectedError) as exc:
        state.apply_payment(cad(5351))
    assert "$53.50" in exc.value.message
    assert exc.value.details["errors"]["amount"] == exc.value.message


@pytest.mark.parametrize("cents", [0, -100])
def test_non_positive_payment_rejected(cents):
    with pytest.raises(InvalidAmountError):
        make_state().apply_payment(cad(cents))


def test_payments_rejected_on_terminal_invoices():
    with pytest.raises(InvalidStateError) as exc:
        make_state(status=InvoiceStatus.CANCELLED).apply_payment(cad(100))
    assert exc.value.message == "Cannot record payment for cancelled invoice"

    with pytest.raises(InvalidStateError) as exc:
        make_state(status=InvoiceStatus.PAID, paid=10350).apply_payment(cad(1))
    assert exc.value.message == "Invoice is already fully paid"


def test_draft_and_overdue_invoices_accept_payment():
    assert make_state(status=InvoiceStatus.DRAFT).apply_payment(cad(10350)).status == InvoiceStatus.PAID
    assert make_state(status=InvoiceStatus.OVERDUE).apply_payment(cad(1)).status == InvoiceStatus.PARTIALLY_PAID


def test_check_invariants():
    assert make_state().check_invariants().total == cad(10350)

    broken_total = InvoiceLedgerState(1, InvoiceStatus.SENT, cad(10000), cad(350), cad(10000), cad(0))
    with pytest.raises(LedgerIntegrityError):
        broken_total.check_invariants()

    overpaid = make_state(paid=10351)
    with pytest.raises(LedgerIntegrityError):
        overpaid.check_invariants()


def test_cancel():
    assert make_state(paid=0).cancel().status == InvoiceStatus.CANCELLED
    assert make_state(status=InvoiceStatus.PARTIALLY_PAID, paid=10).cancel().status == InvoiceStatus.CANCELLED
    with pytest.raises(InvalidTransitionError):
        make_state(status=InvoiceStatus.PAID, paid=10350).cancel()


@pytest.mark.parametrize("current,target,allowed", [
    (InvoiceStatus.DRAFT, InvoiceStatus.SENT, True),
    (InvoiceStatus.SENT, InvoiceStatus.VIEWED, True),
    (InvoiceStatus.VIEWED, InvoiceStatus.OVERDUE, True),
    (InvoiceStatus.DRAFT, InvoiceStatus.OVERDUE, False),
    (InvoiceStatus.SENT, InvoiceStatus.DRAFT, False),
    (InvoiceStatus.PAID, InvoiceStatus.CANCELLED, False),
    (InvoiceStatus.CANCELLED, InvoiceStatus.SENT, False),
    (InvoiceStatus.OVERDUE, InvoiceStatus.VIEWED, False),
])
def test_transition_table(current, target, allowed):
    assert can_transition(current, target) is allowed


def test_assert_transition_reports_both_statuses():
    with pytest.raises(InvalidTransitionError) as exc:
        assert_transition(InvoiceStatus.PAID, InvoiceStatus.SENT)
    assert exc.value.message == "Cannot move invoice from paid to sent"
    assert exc.value.details["status"] == "paid"
