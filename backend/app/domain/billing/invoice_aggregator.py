"""
Invoice Aggregator (Domain Logic).

Owns the monetary view of an invoice (subtotal, tax, total, amount paid)
and the status state machine:

    draft -> sent -> (viewed) -> partially_paid -> paid
    any non-paid, non-cancelled status -> cancelled
    sent / viewed / partially_paid -> overdue (due date passed)

Payments never decrease amount_paid. paid and cancelled are terminal.
"""

from dataclasses import dataclass, replace
from typing import Dict, FrozenSet

from backend.app.core.exceptions import (
    InvalidAmountError,
    InvalidStateError,
    InvalidTransitionError,
    LedgerIntegrityError,
    OverpaymentRejectedError,
)
from backend.app.domain.billing.money import Money
from backend.app.models.billing_enums import InvoiceStatus


ALLOWED_TRANSITIONS: Dict[InvoiceStatus, FrozenSet[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({
        InvoiceStatus.SENT, InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID, InvoiceStatus.CANCELLED,
    }),
    InvoiceStatus.SENT: frozenset({
        InvoiceStatus.VIEWED, InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID,
        InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED,
    }),
    InvoiceStatus.VIEWED: frozenset({
        InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED,
    }),
    InvoiceStatus.PARTIALLY_PAID: frozenset({
        InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED,
    }),
    InvoiceStatus.OVERDUE: frozenset({
        InvoiceStatus.PARTIALLY_PAID, InvoiceStatus.PAID, InvoiceStatus.CANCELLED,
    }),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}

TERMINAL_STATUSES = frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED})
OVERDUE_CANDIDATE_STATUSES = frozenset({
    InvoiceStatus.SENT, InvoiceStatus.VIEWED, InvoiceStatus.PARTIALLY_PAID,
})


def can_transition(current: InvoiceStatus, target: InvoiceStatus) -> bool:
    return target in ALLOWED_TRANSITIONS[current]


def assert_transition(current: InvoiceStatus, target: InvoiceStatus) -> None:
    """
    Raises:
        InvalidTransitionError: if the state machine forbids current -> target
    """
    if not can_transition(current, target):
        raise InvalidTransitionError(current.value, target.value)


def ensure_payable(status: InvoiceStatus) -> None:
    """Reject payments against terminal invoices."""
    if status == InvoiceStatus.CANCELLED:
        raise InvalidStateError("Cannot record payment for cancelled invoice", status.value)
    if status == InvoiceStatus.PAID:
        raise InvalidStateError("Invoice is already fully paid", status.value)


def status_after_payment(amount_paid: Money, total: Money) -> InvoiceStatus:
    """Status implied by the cumulative amount paid after a payment lands."""
    if amount_paid >= total:
        return InvoiceStatus.PAID
    return InvoiceStatus.PARTIALLY_PAID


@dataclass(frozen=True)
class InvoiceLedgerState:
    """
    Monetary snapshot of one invoice.

    Built from a validated invoice row; every payment produces a new
    snapshot via `apply_payment`.
    """
    invoice_id: int
    status: InvoiceStatus
    subtotal: Money
    tax: Money
    total: Money
    amount_paid: Money

    @property
    def currency(self) -> str:
        return self.total.currency

    @property
    def remaining_balance(self) -> Money:
        return self.total - self.amount_paid

    def check_invariants(self) -> "InvoiceLedgerState":
        """
        Raises:
            LedgerIntegrityError: if totals do not reconcile or amount_paid is out of range
        """
        if self.subtotal + self.tax != self.total:
            raise LedgerIntegrityError(
                f"invoice {self.invoice_id} subtotal {self.subtotal} + tax {self.tax} != total {self.total}"
            )
        if self.amount_paid.is_negative() or self.amount_paid > self.total:
            raise LedgerIntegrityError(
                f"invoice {self.invoice_id} amount_paid {self.amount_paid} outside [0, {self.total}]"
            )
        return self

    def validate_payment(self, amount: Money) -> None:
        """
        Check a payment against this snapshot without applying it.

        Raises:
            InvalidAmountError: amount is zero or negative
            InvalidStateError: invoice is cancelled or paid
            OverpaymentRejectedError: amount exceeds the remaining balance
            CurrencyMismatchError: amount is in another currency
        """
        if not amount.is_positive():
            raise InvalidAmountError("Amount must be positive")
        ensure_payable(self.status)
        if amount > self.remaining_balance:
            raise OverpaymentRejectedError(self.remaining_balance.format(symbol=True))

    def apply_payment(self, amount: Money) -> "InvoiceLedgerState":
        """Return the snapshot after `amount` is paid."""
        self.validate_payment(amount)
        new_paid = self.amount_paid + amount
        new_status = status_after_payment(new_paid, self.total)
        assert_transition(self.status, new_status)
        return replace(self, amount_paid=new_paid, status=new_status)

    def cancel(self) -> "InvoiceLedgerState":
        assert_transition(self.status, InvoiceStatus.CANCELLED)
        return replace(self, status=InvoiceStatus.CANCELLED)
