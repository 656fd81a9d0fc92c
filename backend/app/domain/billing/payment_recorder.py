"""
Payment Recorder (Domain Logic).

Validates and records a payment against an invoice. Must be atomic:
the invoice balance update, the payment row and its tax breakdown are
written in one transaction or not at all.

Flow:
1. Load the invoice with its line items and taxes (row lock where supported)
2. Validate the persisted row (fail closed on malformed money)
3. Validate the amount against status and remaining balance
4. Prorate the payment across the invoice's tax lines
5. Compare-and-swap the invoice's amount_paid and status
6. Insert the payment and its payment taxes
7. Commit

A lost compare-and-swap means another payment landed first; the invoice
is re-read and the payment re-validated against the new balance.
"""

import logging
from dataclasses import dataclass
from datetime import date
from typing import List, Optional, Union

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    AppException,
    LedgerValidationError,
    ResourceNotFoundError,
    StorageFailureError,
)
from backend.app.domain.billing.invoice_aggregator import InvoiceLedgerState
from backend.app.domain.billing.ledger_rows import validate_invoice_row
from backend.app.domain.billing.money import Money
from backend.app.domain.billing.tax_proration import PaymentTaxShare, prorate_payment_taxes
from backend.app.models.billing_enums import InvoiceStatus, PaymentMethod
from backend.app.models.invoice import Invoice, InvoiceLineItem
from backend.app.models.invoice_payment import InvoicePayment, PaymentTax
from backend.app.models.invoice_status_history import InvoiceStatusHistory

logger = logging.getLogger("studio_billing.payments")


@dataclass(frozen=True)
class PaymentResult:
    payment_id: int
    invoice_id: int
    amount: Money
    amount_paid: Money
    total: Money
    status: InvoiceStatus
    taxes: List[PaymentTaxShare]

    @property
    def remaining_balance(self) -> Money:
        return self.total - self.amount_paid


class PaymentRecorder:

    @staticmethod
    async def record_payment(
        db: AsyncSession,
        invoice_id: int,
        amount: Union[Money, str],
        payment_method: Union[PaymentMethod, str],
        payment_date: date,
        reference_number: Optional[str] = None,
        notes: Optional[str] = None,
        recorded_by: Optional[int] = None
    ) -> PaymentResult:
        """
        Record a payment against an invoice.

        Args:
            db: Database session; the recorder commits or rolls back
            invoice_id: Invoice being paid
            amount: Money in the invoice's currency, or a decimal string parsed in it
            payment_method: One of PaymentMethod
            payment_date: Date the payment was made
            reference_number: Cheque number, transfer id, etc.
            notes: Free-form notes
            recorded_by: Actor id from the token

        Returns:
            PaymentResult with the new invoice balance and status

        Raises:
            InvalidAmountError: amount is malformed, zero or negative
            ResourceNotFoundError: invoice does not exist
            InvalidStateError: invoice is cancelled or already paid
            OverpaymentRejectedError: amount exceeds the remaining balance
            StorageFailureError: a write failed; nothing was persisted
        """
        method = PaymentRecorder._coerce_method(payment_method)
        if not isinstance(payment_date, date):
            raise LedgerValidationError("payment_date", "Invalid date")
        if isinstance(amount, Money) and not amount.is_positive():
            raise LedgerValidationError("amount", "Amount must be positive", error_code="ERR_LEDGER_AMOUNT")

        for attempt in range(1, settings.payment_max_attempts + 1):
            try:
                invoice = await PaymentRecorder._load_invoice_for_update(db, invoice_id)
                row = validate_invoice_row(invoice)
                before = row.to_ledger_state()

                payment_amount = amount if isinstance(amount, Money) else Money.parse(amount, before.currency)
                after = before.apply_payment(payment_amount)

                shares = prorate_payment_taxes(
                    payment=payment_amount,
                    total=before.total,
                    tax_amount=before.tax,
                    tax_lines=row.tax_lines(),
                    paid_before=before.amount_paid,
                )

                if not await PaymentRecorder._apply_to_invoice(db, before, after):
                    await db.rollback()
                    logger.warning(
                        "Invoice %s changed during payment (attempt %s/%s); re-validating",
                        invoice_id, attempt, settings.payment_max_attempts
                    )
                    continue

                payment = await PaymentRecorder._insert_payment(
                    db, invoice_id, payment_amount, method, payment_date,
                    reference_number, notes, recorded_by
                )
                await PaymentRecorder._insert_payment_taxes(db, payment.id, shares)
                await PaymentRecorder._record_status_change(db, before, after, payment.id, recorded_by)

                await db.commit()
            except AppException:
                await db.rollback()
                raise
            except SQLAlchemyError:
                await db.rollback()
                logger.exception("Storage failure recording payment on invoice %s; rolled back", invoice_id)
                raise StorageFailureError("Failed to record payment")

            await db.refresh(invoice)
            logger.info(
                "Payment %s recorded on invoice %s: amount=%s paid=%s/%s status=%s",
                payment.id, invoice_id, payment_amount, after.amount_paid, after.total, after.status.value
            )
            return PaymentResult(
                payment_id=payment.id,
                invoice_id=invoice_id,
                amount=payment_amount,
                amount_paid=after.amount_paid,
                total=after.total,
                status=after.status,
                taxes=shares,
            )

        logger.error("Invoice %s kept changing; payment abandoned after %s attempts",
                     invoice_id, settings.payment_max_attempts)
        raise StorageFailureError("Invoice was modified concurrently; payment not recorded")

    @staticmethod
    def _coerce_method(payment_method: Union[PaymentMethod, str]) -> PaymentMethod:
        try:
            return PaymentMethod(payment_method)
        except ValueError:
            raise LedgerValidationError("payment_method", f"Invalid payment method: {payment_method}")

    @staticmethod
    async def _load_invoice_for_update(db: AsyncSession, invoice_id: int) -> Invoice:
        stmt = (
            select(Invoice)
            .options(selectinload(Invoice.line_items).selectinload(InvoiceLineItem.taxes))
            .where(Invoice.id == invoice_id)
            .with_for_update(of=Invoice)
            .execution_options(populate_existing=True)
        )
        result = await db.execute(stmt)
        invoice = result.scalar_one_or_none()
        if not invoice:
            raise ResourceNotFoundError("Invoice", invoice_id)
        return invoice

    @staticmethod
    async def _apply_to_invoice(
        db: AsyncSession,
        before: InvoiceLedgerState,
        after: InvoiceLedgerState
    ) -> bool:
        """
        Compare-and-swap the invoice balance.

        Returns False when amount_paid or status no longer match `before`.
        """
        result = await db.execute(
            update(Invoice)
            .where(
                Invoice.id == before.invoice_id,
                Invoice.amount_paid_cents == before.amount_paid.amount,
                Invoice.status == before.status,
            )
            .values(amount_paid_cents=after.amount_paid.amount, status=after.status)
            .execution_options(synchronize_session=False)
        )
        return result.rowcount == 1

    @staticmethod
    async def _insert_payment(
        db: AsyncSession,
        invoice_id: int,
        amount: Money,
        method: PaymentMethod,
        payment_date: date,
        reference_number: Optional[str],
        notes: Optional[str],
        recorded_by: Optional[int]
    ) -> InvoicePayment:
        payment = InvoicePayment(
            invoice_id=invoice_id,
            amount_cents=amount.amount,
            payment_method=method,
            payment_date=payment_date,
            reference_number=reference_number,
            notes=notes,
            recorded_by=recorded_by,
        )
        db.add(payment)
        await db.flush()  # To get payment.id
        return payment

    @staticmethod
    async def _insert_payment_taxes(
        db: AsyncSession,
        payment_id: int,
        shares: List[PaymentTaxShare]
    ) -> None:
        for share in shares:
            db.add(PaymentTax(
                payment_id=payment_id,
                tax_rate_id=share.tax_rate_id,
                tax_amount_cents=share.tax.amount,
                tax_rate_snapshot=share.rate_snapshot,
                tax_name_snapshot=share.name_snapshot,
                tax_description_snapshot=share.description_snapshot,
            ))
        await db.flush()

    @staticmethod
    async def _record_status_change(
        db: AsyncSession,
        before: InvoiceLedgerState,
        after: InvoiceLedgerState,
        payment_id: int,
        recorded_by: Optional[int]
    ) -> None:
        if before.status == after.status:
            return
        db.add(InvoiceStatusHistory(
            invoice_id=before.invoice_id,
            old_status=before.status,
            new_status=after.status,
            changed_by=recorded_by,
            notes=f"Payment {payment_id} recorded",
        ))
        await db.flush()
