"""
Invoice Service (Domain Logic).

Creates invoices with frozen line item taxes and drives the
non-payment status transitions (issue, view, overdue, cancel).
Payments go through PaymentRecorder.
"""

import logging
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import List, Optional, Sequence, Union

from sqlalchemy import delete, select, update, func
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from backend.app.core.config import settings
from backend.app.core.exceptions import (
    InvalidStateError,
    LedgerValidationError,
    ResourceNotFoundError,
    StorageFailureError,
)
from backend.app.domain.billing.invoice_aggregator import OVERDUE_CANDIDATE_STATUSES, assert_transition
from backend.app.domain.billing.money import Money, minor_unit_exponent
from backend.app.domain.billing.tax_calculator import compute_invoice_totals, price_line_item
from backend.app.domain.billing.tax_rate_service import get_tax_rate_snapshots
from backend.app.models.billing_enums import EntityType, InvoiceItemType, InvoiceStatus, PaymentTerms
from backend.app.models.invoice import Invoice, InvoiceLineItem, InvoiceLineItemTax
from backend.app.models.invoice_entity import InvoiceEntity
from backend.app.models.invoice_payment import InvoicePayment
from backend.app.models.invoice_status_history import InvoiceStatusHistory

logger = logging.getLogger("studio_billing.invoices")


@dataclass
class LineItemInput:
    """A line item as requested by the caller, before pricing."""
    item_type: Union[InvoiceItemType, str]
    description: str
    quantity: int
    unit_price: Union[Money, str]
    tax_rate_ids: List[int] = field(default_factory=list)
    sort_order: Optional[int] = None


@dataclass(frozen=True)
class InvoiceStats:
    currency: str
    total_invoices: int
    total_amount: Money
    paid_amount: Money
    outstanding_amount: Money
    overdue_count: int


# Invoice entities

async def create_invoice_entity(
    db: AsyncSession,
    name: str,
    entity_type: EntityType = EntityType.FAMILY,
    payment_terms: PaymentTerms = PaymentTerms.NET_30,
    contact_person: Optional[str] = None,
    email: Optional[str] = None,
    notes: Optional[str] = None
) -> InvoiceEntity:
    entity = InvoiceEntity(
        name=name,
        entity_type=entity_type,
        payment_terms=payment_terms,
        contact_person=contact_person,
        email=email,
        notes=notes,
        is_active=True,
    )
    db.add(entity)
    await db.commit()
    await db.refresh(entity)
    return entity


async def list_invoice_entities(db: AsyncSession, active_only: bool = True) -> List[InvoiceEntity]:
    query = select(InvoiceEntity).order_by(InvoiceEntity.name)
    if active_only:
        query = query.where(InvoiceEntity.is_active == True)
    result = await db.execute(query)
    return result.scalars().all()


# Invoices

async def generate_invoice_number(db: AsyncSession, year: int) -> str:
    """Next sequential number for the year, e.g. INV-2026-0007."""
    prefix = f"{settings.invoice_number_prefix}-{year}-"
    result = await db.execute(
        select(Invoice.invoice_number)
        .where(Invoice.invoice_number.like(f"{prefix}%"))
        .order_by(func.length(Invoice.invoice_number).desc(), Invoice.invoice_number.desc())
        .limit(1)
    )
    last = result.scalar_one_or_none()
    sequence = int(last[len(prefix):]) + 1 if last else 1
    return f"{prefix}{sequence:04d}"


async def create_invoice(
    db: AsyncSession,
    entity_id: int,
    line_items: Sequence[LineItemInput],
    issue_date: Optional[date] = None,
    due_date: Optional[date] = None,
    currency: Optional[str] = None,
    notes: Optional[str] = None,
    created_by: Optional[int] = None
) -> Invoice:
    """
    Create a draft invoice.

    Line item taxes are computed from the current tax rates and stored as
    snapshots; the invoice is never re-priced afterwards.

    Raises:
        ResourceNotFoundError: entity does not exist
        InvalidStateError: entity is inactive
        LedgerValidationError: no line items, bad tax rate ids, bad dates
        InvalidAmountError: malformed unit price or quantity
    """
    entity = await db.get(InvoiceEntity, entity_id)
    if not entity:
        raise ResourceNotFoundError("Invoice entity", entity_id)
    if not entity.is_active:
        raise InvalidStateError("Cannot invoice an inactive entity")
    if not line_items:
        raise LedgerValidationError("line_items", "At least one line item is required")

    currency = (currency or settings.default_currency).upper()
    minor_unit_exponent(currency)
    issue_date = issue_date or date.today()
    due_date = due_date or issue_date + timedelta(days=entity.payment_terms.days)
    if due_date < issue_date:
        raise LedgerValidationError("due_date", "Due date cannot be before the issue date")

    snapshots = await get_tax_rate_snapshots(
        db, (rate_id for item in line_items for rate_id in item.tax_rate_ids)
    )

    priced = []
    for index, item in enumerate(line_items):
        try:
            item_type = InvoiceItemType(item.item_type)
        except ValueError:
            raise LedgerValidationError("item_type", f"Invalid item type: {item.item_type}")
        unit_price = item.unit_price if isinstance(item.unit_price, Money) else Money.parse(item.unit_price, currency)
        priced.append(price_line_item(
            item_type=item_type.value,
            description=item.description,
            quantity=item.quantity,
            unit_price=unit_price,
            rates=[snapshots[rate_id] for rate_id in dict.fromkeys(item.tax_rate_ids)],
            sort_order=item.sort_order if item.sort_order is not None else index,
        ))

    totals = compute_invoice_totals(priced, currency)

    invoice = Invoice(
        invoice_number=await generate_invoice_number(db, issue_date.year),
        entity_id=entity_id,
        issue_date=issue_date,
        due_date=due_date,
        currency=currency,
        subtotal_cents=totals.subtotal.amount,
        tax_amount_cents=totals.tax.amount,
        total_amount_cents=totals.total.amount,
        amount_paid_cents=0,
        status=InvoiceStatus.DRAFT,
        notes=notes,
        created_by=created_by,
        line_items=[
            InvoiceLineItem(
                item_type=InvoiceItemType(item.item_type),
                description=item.description,
                quantity=item.quantity,
                unit_price_cents=item.unit_price.amount,
                line_total_cents=item.line_total.amount,
                tax_amount_cents=item.tax_total.amount,
                sort_order=item.sort_order,
                taxes=[
                    InvoiceLineItemTax(
                        tax_rate_id=tax.tax_rate_id,
                        tax_name_snapshot=tax.name_snapshot,
                        tax_rate_snapshot=tax.rate_snapshot,
                        tax_description_snapshot=tax.description_snapshot,
                        tax_amount_cents=tax.tax.amount,
                    )
                    for tax in item.taxes
                ],
            )
            for item in priced
        ],
    )
    db.add(invoice)

    try:
        await db.flush()
        db.add(InvoiceStatusHistory(
            invoice_id=invoice.id,
            old_status=None,
            new_status=InvoiceStatus.DRAFT,
            changed_by=created_by,
            notes="Invoice created",
        ))
        await db.commit()
    except IntegrityError:
        await db.rollback()
        logger.exception("Invoice number collision creating invoice for entity %s", entity_id)
        raise StorageFailureError("Failed to create invoice")
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Storage failure creating invoice for entity %s", entity_id)
        raise StorageFailureError("Failed to create invoice")

    logger.info(
        "Invoice %s created for entity %s: subtotal=%s tax=%s total=%s",
        invoice.invoice_number, entity_id, totals.subtotal, totals.tax, totals.total
    )
    return await get_invoice(db, invoice.id)


def _invoice_with_details():
    return select(Invoice).options(
        selectinload(Invoice.line_items).selectinload(InvoiceLineItem.taxes),
        selectinload(Invoice.payments).selectinload(InvoicePayment.taxes),
    ).execution_options(populate_existing=True)


async def get_invoice(db: AsyncSession, invoice_id: int) -> Invoice:
    """Invoice with line items, taxes and payments loaded."""
    result = await db.execute(_invoice_with_details().where(Invoice.id == invoice_id))
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise ResourceNotFoundError("Invoice", invoice_id)
    return invoice


async def get_invoice_by_number(db: AsyncSession, invoice_number: str) -> Invoice:
    result = await db.execute(_invoice_with_details().where(Invoice.invoice_number == invoice_number))
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise ResourceNotFoundError("Invoice", invoice_number)
    return invoice


async def list_invoices(
    db: AsyncSession,
    status: Optional[InvoiceStatus] = None,
    entity_id: Optional[int] = None,
    limit: int = 50,
    offset: int = 0
) -> List[Invoice]:
    query = select(Invoice).order_by(Invoice.issue_date.desc(), Invoice.id.desc())
    if status:
        query = query.where(Invoice.status == status)
    if entity_id:
        query = query.where(Invoice.entity_id == entity_id)
    result = await db.execute(query.limit(limit).offset(offset))
    return result.scalars().all()


async def list_invoice_payments(db: AsyncSession, invoice_id: int) -> List[InvoicePayment]:
    if not await db.get(Invoice, invoice_id):
        raise ResourceNotFoundError("Invoice", invoice_id)
    result = await db.execute(
        select(InvoicePayment)
        .options(selectinload(InvoicePayment.taxes))
        .where(InvoicePayment.invoice_id == invoice_id)
        .order_by(InvoicePayment.payment_date.desc(), InvoicePayment.id.desc())
    )
    return result.scalars().all()


async def _transition(
    db: AsyncSession,
    invoice_id: int,
    target: InvoiceStatus,
    actor_id: Optional[int],
    notes: Optional[str]
) -> Invoice:
    """
    Move an invoice to `target` if the state machine allows it.

    The status update is conditional on the status read, so a payment
    landing in between turns into an InvalidStateError rather than a
    silent overwrite.
    """
    invoice = await db.get(Invoice, invoice_id, with_for_update=True, populate_existing=True)
    if not invoice:
        raise ResourceNotFoundError("Invoice", invoice_id)

    current = invoice.status
    try:
        assert_transition(current, target)
    except InvalidStateError:
        await db.rollback()
        raise

    try:
        result = await db.execute(
            update(Invoice)
            .where(Invoice.id == invoice_id, Invoice.status == current)
            .values(status=target)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            await db.rollback()
            raise InvalidStateError("Invoice status changed concurrently; retry", current.value)
        db.add(InvoiceStatusHistory(
            invoice_id=invoice_id,
            old_status=current,
            new_status=target,
            changed_by=actor_id,
            notes=notes,
        ))
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Storage failure moving invoice %s to %s", invoice_id, target.value)
        raise StorageFailureError("Failed to update invoice status")

    logger.info("Invoice %s: %s -> %s", invoice_id, current.value, target.value)
    await db.refresh(invoice)
    return invoice


async def issue_invoice(db: AsyncSession, invoice_id: int, actor_id: Optional[int] = None) -> Invoice:
    """draft -> sent. No monetary change."""
    return await _transition(db, invoice_id, InvoiceStatus.SENT, actor_id, "Invoice issued")


async def mark_invoice_viewed(db: AsyncSession, invoice_id: int, actor_id: Optional[int] = None) -> Invoice:
    """sent -> viewed."""
    return await _transition(db, invoice_id, InvoiceStatus.VIEWED, actor_id, "Invoice viewed")


async def cancel_invoice(
    db: AsyncSession,
    invoice_id: int,
    actor_id: Optional[int] = None,
    reason: Optional[str] = None
) -> Invoice:
    """
    Cancel an invoice. Terminal; blocks further payments.

    Raises:
        InvalidTransitionError: invoice is already paid or cancelled
    """
    return await _transition(db, invoice_id, InvoiceStatus.CANCELLED, actor_id, reason or "Invoice cancelled")


async def delete_invoice(
    db: AsyncSession,
    invoice_id: int,
    actor_id: Optional[int] = None
) -> Optional[Invoice]:
    """
    Delete a draft invoice outright. Any other status is cancelled instead.

    Returns:
        None when the draft was deleted, otherwise the cancelled invoice

    Raises:
        InvalidStateError: the invoice has payments
    """
    result = await db.execute(
        _invoice_with_details().where(Invoice.id == invoice_id).with_for_update(of=Invoice)
    )
    invoice = result.scalar_one_or_none()
    if not invoice:
        raise ResourceNotFoundError("Invoice", invoice_id)

    current = invoice.status
    if invoice.payments:
        await db.rollback()
        raise InvalidStateError("Cannot delete invoice with payments. Cancel instead.", current.value)
    if current != InvoiceStatus.DRAFT:
        await db.rollback()
        return await _transition(db, invoice_id, InvoiceStatus.CANCELLED, actor_id, "Invoice cancelled via deletion")

    try:
        await db.execute(delete(InvoiceStatusHistory).where(InvoiceStatusHistory.invoice_id == invoice_id))
        await db.delete(invoice)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Storage failure deleting invoice %s", invoice_id)
        raise StorageFailureError("Failed to delete invoice")

    logger.info("Draft invoice %s deleted", invoice_id)
    return None


async def mark_overdue_invoices(db: AsyncSession, today: Optional[date] = None) -> List[int]:
    """
    Move every unpaid invoice past its due date to overdue.

    Returns:
        IDs of the invoices that were marked
    """
    today = today or date.today()
    result = await db.execute(
        select(Invoice.id, Invoice.status).where(
            Invoice.status.in_(OVERDUE_CANDIDATE_STATUSES),
            Invoice.due_date < today,
            Invoice.amount_paid_cents < Invoice.total_amount_cents,
        ).order_by(Invoice.id)
    )
    candidates = result.all()

    marked = []
    try:
        for invoice_id, current in candidates:
            updated = await db.execute(
                update(Invoice)
                .where(Invoice.id == invoice_id, Invoice.status == current)
                .values(status=InvoiceStatus.OVERDUE)
                .execution_options(synchronize_session=False)
            )
            if updated.rowcount != 1:
                continue
            db.add(InvoiceStatusHistory(
                invoice_id=invoice_id,
                old_status=current,
                new_status=InvoiceStatus.OVERDUE,
                changed_by=None,
                notes=f"Past due date as of {today.isoformat()}",
            ))
            marked.append(invoice_id)
        await db.commit()
    except SQLAlchemyError:
        await db.rollback()
        logger.exception("Storage failure marking overdue invoices")
        raise StorageFailureError("Failed to mark overdue invoices")

    if marked:
        logger.info("Marked %s invoice(s) overdue: %s", len(marked), marked)
    return marked


async def get_invoice_stats(
    db: AsyncSession,
    currency: Optional[str] = None,
    today: Optional[date] = None
) -> InvoiceStats:
    """Totals across all non-cancelled invoices in one currency."""
    currency = (currency or settings.default_currency).upper()
    today = today or date.today()

    result = await db.execute(
        select(
            func.count(Invoice.id),
            func.coalesce(func.sum(Invoice.total_amount_cents), 0),
            func.coalesce(func.sum(Invoice.amount_paid_cents), 0),
        ).where(Invoice.currency == currency, Invoice.status != InvoiceStatus.CANCELLED)
    )
    count, total_cents, paid_cents = result.one()

    overdue = await db.execute(
        select(func.count(Invoice.id)).where(
            Invoice.currency == currency,
            Invoice.status.notin_([InvoiceStatus.CANCELLED, InvoiceStatus.PAID]),
            Invoice.due_date < today,
        )
    )

    total = Money(int(total_cents), currency)
    paid = Money(int(paid_cents), currency)
    return InvoiceStats(
        currency=currency,
        total_invoices=count,
        total_amount=total,
        paid_amount=paid,
        outstanding_amount=total - paid,
        overdue_count=overdue.scalar(),
    )
