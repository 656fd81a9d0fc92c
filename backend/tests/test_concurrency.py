"""
Concurrency Tests.

Validates that a payment racing another write never double-counts or
overpays: the balance update is a compare-and-swap and a lost swap is
re-validated against the fresh balance.
"""

import pytest
from datetime import date
from sqlalchemy import func, select

from backend.app.core.exceptions import OverpaymentRejectedError, StorageFailureError
from backend.app.domain.billing import invoice_service
from backend.app.domain.billing.invoice_aggregator import InvoiceLedgerState
from backend.app.domain.billing.ledger_rows import validate_invoice_row
from backend.app.domain.billing.money import Money
from backend.app.domain.billing.payment_recorder import PaymentRecorder
from backend.app.models.billing_enums import InvoiceStatus, PaymentMethod
from backend.app.models.invoice_payment import InvoicePayment


async def pay(db, invoice_id, amount):
    return await PaymentRecorder.record_payment(
        db,
        invoice_id=invoice_id,
        amount=amount,
        payment_method=PaymentMethod.CASH,
        payment_date=date(2026, 9, 15),
    )


async def payment_count(db):
    result = await db.execute(select(func.count(InvoicePayment.id)))
    return result.scalar()


@pytest.mark.asyncio
async def test_stale_compare_and_swap_is_refused(db_session, invoice):
    invoice_id = invoice.id
    stale = validate_invoice_row(invoice).to_ledger_state()
    await pay(db_session, invoice_id, "50.00")

    after = stale.apply_payment(Money(5000, "CAD"))
    assert await PaymentRecorder._apply_to_invoice(db_session, stale, after) is False
    await db_session.rollback()

    stored = await invoice_service.get_invoice(db_session, invoice_id)
    assert stored.amount_paid_cents == 5000


@pytest.mark.asyncio
async def test_lost_swap_is_retried(db_session, invoice, mocker):
    invoice_id = invoice.id
    real_apply = PaymentRecorder._apply_to_invoice
    attempts = []

    async def flaky_apply(db, before, after):
        attempts.append(before.amount_paid.amount)
        if len(attempts) == 1:
            return False
        return await real_apply(db, before, after)

    mocker.patch.object(PaymentRecorder, "_apply_to_invoice", side_effect=flaky_apply)

    result = await pay(db_session, invoice_id, "50.00")

    assert len(attempts) == 2
    assert result.amount_paid == Money(5000, "CAD")
    assert await payment_count(db_session) == 1


@pytest.mark.asyncio
async def test_competing_payment_is_revalidated(db_session, invoice, mocker):
    invoice_id = invoice.id
    """A competing 60.00 lands first; our 50.00 then exceeds the 43.50 left."""
    real_apply = PaymentRecorder._apply_to_invoice
    attempts = []

    async def racing_apply(db, before, after):
        attempts.append(before.amount_paid.amount)
        if len(attempts) == 1:
            await db.rollback()
            await pay(db, invoice_id, "60.00")
            return False
        return await real_apply(db, before, after)

    mocker.patch.object(PaymentRecorder, "_apply_to_invoice", side_effect=racing_apply)

    with pytest.raises(OverpaymentRejectedError):
        await pay(db_session, invoice_id, "50.00")

    # the retry is rejected during re-validation, before any swap
    assert attempts == [0, 0]
    stored = await invoice_service.get_invoice(db_session, invoice_id)
    assert stored.amount_paid_cents == 6000
    assert stored.status == InvoiceStatus.PARTIALLY_PAID
    assert [p.amount_cents for p in stored.payments] == [6000]


@pytest.mark.asyncio
async def test_retries_exhausted(db_session, invoice, mocker):
    invoice_id = invoice.id
    mocker.patch.object(PaymentRecorder, "_apply_to_invoice", return_value=False)

    with pytest.raises(StorageFailureError) as exc:
        await pay(db_session, invoice_id, "50.00")
    assert "concurrently" in exc.value.message

    assert await payment_count(db_session) == 0
    stored = await invoice_service.get_invoice(db_session, invoice_id)
    assert stored.amount_paid_cents == 0


@pytest.mark.asyncio
async def test_ledger_state_from_row_matches_invoice(invoice):
    state = validate_invoice_row(invoice).to_ledger_state()
    assert isinstance(state, InvoiceLedgerState)
    assert state.total == Money(10350, "CAD")
    assert state.remaining_balance == Money(10350, "CAD")
