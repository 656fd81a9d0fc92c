"""
Admin Billing API Endpoints.

Handles tax rate and invoice entity master data, invoice creation and
the non-payment status workflow (issue, view, cancel, overdue sweep).
"""

from fastapi import APIRouter, Depends, Path, Query, Body, status
from sqlalchemy.ext.asyncio import AsyncSession
from datetime import date
from typing import List, Optional

from backend.app.db.session import get_db
from backend.app.domain.billing import invoice_service, tax_rate_service
from backend.app.domain.billing.invoice_service import LineItemInput
from backend.app.models.billing_enums import InvoiceStatus
from backend.app.models.enums import UserRole
from backend.app.schemas.billing import (
    CancelRequest,
    InvoiceCreate,
    InvoiceDeletedResponse,
    InvoiceEntityCreate,
    InvoiceEntityResponse,
    InvoiceResponse,
    InvoiceStatsResponse,
    InvoiceSummaryResponse,
    MarkOverdueResponse,
    TaxRateCreate,
    TaxRateResponse,
    TaxRateUpdate,
)
from backend.app.core.guards import require_role
from backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/admin", tags=["Admin - Billing"])


# Tax rates

@router.post("/tax-rates", response_model=TaxRateResponse, status_code=status.HTTP_201_CREATED)
async def create_tax_rate(
    payload: TaxRateCreate,
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a new tax rate.
    """
    tax_rate = await tax_rate_service.create_tax_rate(
        db,
        name=payload.name,
        rate=payload.rate,
        description=payload.description,
        region=payload.region,
        exempt_item_types=[t.value for t in payload.exempt_item_types],
    )

    await log_event(
        db=db,
        action=AuditAction.TAX_RATE_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        target_type="tax_rate",
        target_id=tax_rate.id,
        metadata={"name": tax_rate.name, "rate": str(tax_rate.rate)}
    )

    return tax_rate


@router.get("/tax-rates", response_model=List[TaxRateResponse])
async def list_tax_rates(
    active_only: bool = Query(False),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    List tax rates.
    """
    return await tax_rate_service.list_tax_rates(db, active_only=active_only)


@router.patch("/tax-rates/{tax_rate_id}", response_model=TaxRateResponse)
async def update_tax_rate(
    payload: TaxRateUpdate,
    tax_rate_id: int = Path(..., description="Tax rate ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Edit a tax rate. Invoices already created keep their snapshots.
    """
    changes = payload.model_dump(exclude_unset=True)
    if changes.get("exempt_item_types") is not None:
        changes["exempt_item_types"] = [t.value for t in payload.exempt_item_types]

    tax_rate = await tax_rate_service.update_tax_rate(db, tax_rate_id, **changes)

    await log_event(
        db=db,
        action=AuditAction.TAX_RATE_UPDATED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        target_type="tax_rate",
        target_id=tax_rate.id,
        metadata={"changes": sorted(changes)}
    )

    return tax_rate


# Invoice entities

@router.post("/invoice-entities", response_model=InvoiceEntityResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice_entity(
    payload: InvoiceEntityCreate,
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    entity = await invoice_service.create_invoice_entity(db, **payload.model_dump())

    await log_event(
        db=db,
        action=AuditAction.INVOICE_ENTITY_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        target_type="invoice_entity",
        target_id=entity.id,
        metadata={"name": entity.name}
    )

    return entity


@router.get("/invoice-entities", response_model=List[InvoiceEntityResponse])
async def list_invoice_entities(
    active_only: bool = Query(True),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    return await invoice_service.list_invoice_entities(db, active_only=active_only)


# Invoices

@router.post("/invoices", response_model=InvoiceResponse, status_code=status.HTTP_201_CREATED)
async def create_invoice(
    payload: InvoiceCreate,
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Create a draft invoice.

    Taxes are computed from the current tax rates and frozen on the
    line items.
    """
    invoice = await invoice_service.create_invoice(
        db,
        entity_id=payload.entity_id,
        line_items=[
            LineItemInput(
                item_type=item.item_type,
                description=item.description,
                quantity=item.quantity,
                unit_price=item.unit_price,
                tax_rate_ids=item.tax_rate_ids,
                sort_order=item.sort_order,
            )
            for item in payload.line_items
        ],
        issue_date=payload.issue_date,
        due_date=payload.due_date,
        currency=payload.currency,
        notes=payload.notes,
        created_by=current_user["user_id"],
    )

    await log_event(
        db=db,
        action=AuditAction.INVOICE_CREATED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        target_type="invoice",
        target_id=invoice.id,
        metadata={
            "invoice_number": invoice.invoice_number,
            "total_cents": invoice.total_amount_cents,
            "currency": invoice.currency,
        }
    )

    return InvoiceResponse.from_invoice(invoice)


@router.get("/invoices", response_model=List[InvoiceSummaryResponse])
async def list_invoices(
    status_filter: Optional[InvoiceStatus] = Query(None, alias="status"),
    entity_id: Optional[int] = Query(None),
    limit: int = Query(50, ge=1, le=200),
    offset: int = Query(0, ge=0),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    invoices = await invoice_service.list_invoices(
        db, status=status_filter, entity_id=entity_id, limit=limit, offset=offset
    )
    return [InvoiceSummaryResponse.from_invoice(invoice) for invoice in invoices]


@router.get("/invoices/stats", response_model=InvoiceStatsResponse)
async def get_invoice_stats(
    currency: Optional[str] = Query(None, min_length=3, max_length=3),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Totals across non-cancelled invoices in one currency.
    """
    stats = await invoice_service.get_invoice_stats(db, currency=currency)
    return InvoiceStatsResponse(
        currency=stats.currency,
        total_invoices=stats.total_invoices,
        total_amount=stats.total_amount.to_decimal_string(),
        paid_amount=stats.paid_amount.to_decimal_string(),
        outstanding_amount=stats.outstanding_amount.to_decimal_string(),
        overdue_count=stats.overdue_count,
    )


@router.post("/invoices/mark-overdue", response_model=MarkOverdueResponse)
async def mark_overdue_invoices(
    as_of: Optional[date] = Query(None, description="Defaults to today"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Move unpaid invoices past their due date to overdue.
    """
    marked = await invoice_service.mark_overdue_invoices(db, today=as_of)

    if marked:
        await log_event(
            db=db,
            action=AuditAction.INVOICES_MARKED_OVERDUE,
            actor_id=current_user["user_id"],
            actor_username=current_user.get("sub"),
            target_type="invoice",
            metadata={"invoice_ids": marked}
        )

    return MarkOverdueResponse(marked_count=len(marked), invoice_ids=marked)


@router.get("/invoices/by-number/{invoice_number}", response_model=InvoiceResponse)
async def get_invoice_by_number(
    invoice_number: str = Path(..., description="Invoice number, e.g. INV-2026-0001"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    invoice = await invoice_service.get_invoice_by_number(db, invoice_number)
    return InvoiceResponse.from_invoice(invoice)


@router.get("/invoices/{invoice_id}", response_model=InvoiceResponse)
async def get_invoice(
    invoice_id: int = Path(..., description="Invoice ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    invoice = await invoice_service.get_invoice(db, invoice_id)
    return InvoiceResponse.from_invoice(invoice)


@router.post("/invoices/{invoice_id}/issue", response_model=InvoiceSummaryResponse)
async def issue_invoice(
    invoice_id: int = Path(..., description="Invoice ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Issue a DRAFT invoice (draft -> sent).
    """
    invoice = await invoice_service.issue_invoice(db, invoice_id, actor_id=current_user["user_id"])

    await log_event(
        db=db,
        action=AuditAction.INVOICE_ISSUED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        target_type="invoice",
        target_id=invoice.id,
    )

    return InvoiceSummaryResponse.from_invoice(invoice)


@router.post("/invoices/{invoice_id}/view", response_model=InvoiceSummaryResponse)
async def mark_invoice_viewed(
    invoice_id: int = Path(..., description="Invoice ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    invoice = await invoice_service.mark_invoice_viewed(db, invoice_id, actor_id=current_user["user_id"])

    await log_event(
        db=db,
        action=AuditAction.INVOICE_VIEWED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        target_type="invoice",
        target_id=invoice.id,
    )

    return InvoiceSummaryResponse.from_invoice(invoice)


@router.post("/invoices/{invoice_id}/cancel", response_model=InvoiceSummaryResponse)
async def cancel_invoice(
    invoice_id: int = Path(..., description="Invoice ID"),
    payload: Optional[CancelRequest] = Body(None),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Cancel an invoice. Paid and cancelled invoices are rejected.
    """
    reason = payload.reason if payload else None
    invoice = await invoice_service.cancel_invoice(
        db, invoice_id, actor_id=current_user["user_id"], reason=reason
    )

    await log_event(
        db=db,
        action=AuditAction.INVOICE_CANCELLED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        target_type="invoice",
        target_id=invoice.id,
        metadata={"reason": reason}
    )

    return InvoiceSummaryResponse.from_invoice(invoice)


@router.delete("/invoices/{invoice_id}", response_model=InvoiceDeletedResponse)
async def delete_invoice(
    invoice_id: int = Path(..., description="Invoice ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Delete a DRAFT invoice. Issued invoices are cancelled instead;
    invoices with payments are rejected.
    """
    invoice = await invoice_service.delete_invoice(db, invoice_id, actor_id=current_user["user_id"])
    if invoice is None:
        response = InvoiceDeletedResponse(invoice_id=invoice_id, deleted=True)
    else:
        response = InvoiceDeletedResponse(invoice_id=invoice_id, deleted=False, status=invoice.status)

    await log_event(
        db=db,
        action=AuditAction.INVOICE_DELETED if response.deleted else AuditAction.INVOICE_CANCELLED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        target_type="invoice",
        target_id=invoice_id,
    )

    return response
