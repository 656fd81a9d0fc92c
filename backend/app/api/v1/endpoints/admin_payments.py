"""
Admin Payment API Endpoints.

Records payments against invoices and lists an invoice's payments.
"""

from fastapi import APIRouter, Depends, Path, Request, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from backend.app.db.session import get_db
from backend.app.domain.billing import invoice_service
from backend.app.domain.billing.payment_recorder import PaymentRecorder
from backend.app.models.enums import UserRole
from backend.app.schemas.billing import PaymentCreate, PaymentRecordedResponse, PaymentResponse
from backend.app.core.guards import require_role
from backend.app.services.audit import log_event, AuditAction

router = APIRouter(prefix="/admin", tags=["Admin - Payments"])


@router.post(
    "/invoices/{invoice_id}/payments",
    response_model=PaymentRecordedResponse,
    status_code=status.HTTP_201_CREATED
)
async def record_payment(
    request: Request,
    payload: PaymentCreate,
    invoice_id: int = Path(..., description="Invoice ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    Record a payment against an invoice.

    The amount is parsed in the invoice's currency. On success the
    invoice balance, status, payment and its tax breakdown are committed
    together; on any failure nothing is written.
    """
    result = await PaymentRecorder.record_payment(
        db,
        invoice_id=invoice_id,
        amount=payload.amount,
        payment_method=payload.payment_method,
        payment_date=payload.payment_date,
        reference_number=payload.reference_number,
        notes=payload.notes,
        recorded_by=current_user["user_id"],
    )

    await log_event(
        db=db,
        action=AuditAction.PAYMENT_RECORDED,
        actor_id=current_user["user_id"],
        actor_username=current_user.get("sub"),
        target_type="invoice",
        target_id=invoice_id,
        metadata={
            "payment_id": result.payment_id,
            "amount_cents": result.amount.amount,
            "currency": result.amount.currency,
            "status": result.status.value,
        },
        ip_address=request.client.host if request.client else None
    )

    return PaymentRecordedResponse.from_result(result)


@router.get("/invoices/{invoice_id}/payments", response_model=List[PaymentResponse])
async def list_payments(
    invoice_id: int = Path(..., description="Invoice ID"),
    current_user: dict = Depends(require_role([UserRole.ADMIN])),
    db: AsyncSession = Depends(get_db)
):
    """
    List an invoice's payments, most recent first, with tax breakdowns.
    """
    invoice = await invoice_service.get_invoice(db, invoice_id)
    payments = await invoice_service.list_invoice_payments(db, invoice_id)
    return [PaymentResponse.from_payment(payment, invoice.currency) for payment in payments]
