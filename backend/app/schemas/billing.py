"""
Billing Schemas.

Request bodies carry money as decimal strings ("125.00") so no float
ever reaches the ledger; responses carry both integer cents and the
formatted decimal string.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from datetime import date, datetime
from decimal import Decimal
from typing import Optional, List
from backend.app.domain.billing.money import Money
from backend.app.models.billing_enums import (
    EntityType, InvoiceItemType, InvoiceStatus, PaymentMethod, PaymentTerms
)


def _decimal_string(value) -> str:
    # floats are refused
    if isinstance(value, (float, bool)):
        raise ValueError("Amount must be a decimal string")
    value = str(value).strip()
    if not value:
        raise ValueError("Amount is required")
    return value


def _money_fields(cents: int, currency: str) -> str:
    return Money(cents, currency).to_decimal_string()


# Tax rates

class TaxRateCreate(BaseModel):
    """Schema for creating a tax rate."""
    name: str = Field(..., min_length=1, max_length=50)
    rate: Decimal = Field(..., ge=0, lt=1, description="Fraction, e.g. 0.05 for 5%")
    description: Optional[str] = Field(None, max_length=255)
    region: Optional[str] = Field(None, max_length=50)
    exempt_item_types: List[InvoiceItemType] = Field(default_factory=list)


class TaxRateUpdate(BaseModel):
    """Schema for editing a tax rate. Existing invoices keep their snapshots."""
    name: Optional[str] = Field(None, min_length=1, max_length=50)
    rate: Optional[Decimal] = Field(None, ge=0, lt=1)
    description: Optional[str] = Field(None, max_length=255)
    region: Optional[str] = Field(None, max_length=50)
    is_active: Optional[bool] = None
    exempt_item_types: Optional[List[InvoiceItemType]] = None


class TaxRateResponse(BaseModel):
    """Schema for displaying a tax rate."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    rate: Decimal
    description: Optional[str]
    region: Optional[str]
    is_active: bool
    exempt_item_types: List[str]
    created_at: datetime


# Invoice entities

class InvoiceEntityCreate(BaseModel):
    """Schema for creating an invoice entity."""
    name: str = Field(..., min_length=1, max_length=150)
    entity_type: EntityType = EntityType.FAMILY
    payment_terms: PaymentTerms = PaymentTerms.NET_30
    contact_person: Optional[str] = Field(None, max_length=100)
    email: Optional[str] = Field(None, max_length=255)
    notes: Optional[str] = None


class InvoiceEntityResponse(BaseModel):
    """Schema for displaying an invoice entity."""
    model_config = ConfigDict(from_attributes=True)

    id: int
    name: str
    entity_type: EntityType
    payment_terms: PaymentTerms
    contact_person: Optional[str]
    email: Optional[str]
    is_active: bool


# Invoices

class LineItemCreate(BaseModel):
    """One requested line item."""
    item_type: InvoiceItemType = InvoiceItemType.CLASS_ENROLLMENT
    description: str = Field(..., min_length=1, max_length=255)
    quantity: int = Field(..., gt=0)
    unit_price: str = Field(..., description="Decimal string in the invoice currency")
    tax_rate_ids: List[int] = Field(default_factory=list)
    sort_order: Optional[int] = None

    @field_validator("unit_price", mode="before")
    @classmethod
    def check_unit_price(cls, value):
        return _decimal_string(value)


class InvoiceCreate(BaseModel):
    """Schema for creating a draft invoice."""
    entity_id: int
    line_items: List[LineItemCreate] = Field(..., min_length=1)
    issue_date: Optional[date] = None
    due_date: Optional[date] = None
    currency: Optional[str] = Field(None, min_length=3, max_length=3)
    notes: Optional[str] = None


class LineItemTaxResponse(BaseModel):
    tax_rate_id: int
    name: str
    rate: Decimal
    tax_amount_cents: int
    tax_amount: str


class LineItemResponse(BaseModel):
    id: int
    item_type: InvoiceItemType
    description: str
    quantity: int
    unit_price_cents: int
    line_total_cents: int
    tax_amount_cents: int
    line_total: str
    taxes: List[LineItemTaxResponse]


class InvoiceSummaryResponse(BaseModel):
    """Invoice header without line items."""
    id: int
    invoice_number: str
    entity_id: int
    issue_date: date
    due_date: date
    currency: str
    status: InvoiceStatus
    subtotal_cents: int
    tax_amount_cents: int
    total_amount_cents: int
    amount_paid_cents: int
    subtotal: str
    tax_amount: str
    total_amount: str
    amount_paid: str
    remaining_balance: str

    @classmethod
    def from_invoice(cls, invoice) -> "InvoiceSummaryResponse":
        return cls(**_invoice_header(invoice))


class InvoiceResponse(InvoiceSummaryResponse):
    """Invoice with its frozen line items and taxes."""
    notes: Optional[str]
    line_items: List[LineItemResponse]

    @classmethod
    def from_invoice(cls, invoice) -> "InvoiceResponse":
        currency = invoice.currency
        return cls(
            **_invoice_header(invoice),
            notes=invoice.notes,
            line_items=[
                LineItemResponse(
                    id=item.id,
                    item_type=item.item_type,
                    description=item.description,
                    quantity=item.quantity,
                    unit_price_cents=item.unit_price_cents,
                    line_total_cents=item.line_total_cents,
                    tax_amount_cents=item.tax_amount_cents,
                    line_total=_money_fields(item.line_total_cents, currency),
                    taxes=[
                        LineItemTaxResponse(
                            tax_rate_id=tax.tax_rate_id,
                            name=tax.tax_name_snapshot,
                            rate=tax.tax_rate_snapshot,
                            tax_amount_cents=tax.tax_amount_cents,
                            tax_amount=_money_fields(tax.tax_amount_cents, currency),
                        )
                        for tax in item.taxes
                    ],
                )
                for item in invoice.line_items
            ],
        )


def _invoice_header(invoice) -> dict:
    currency = invoice.currency
    return dict(
        id=invoice.id,
        invoice_number=invoice.invoice_number,
        entity_id=invoice.entity_id,
        issue_date=invoice.issue_date,
        due_date=invoice.due_date,
        currency=currency,
        status=invoice.status,
        subtotal_cents=invoice.subtotal_cents,
        tax_amount_cents=invoice.tax_amount_cents,
        total_amount_cents=invoice.total_amount_cents,
        amount_paid_cents=invoice.amount_paid_cents,
        subtotal=_money_fields(invoice.subtotal_cents, currency),
        tax_amount=_money_fields(invoice.tax_amount_cents, currency),
        total_amount=_money_fields(invoice.total_amount_cents, currency),
        amount_paid=_money_fields(invoice.amount_paid_cents, currency),
        remaining_balance=_money_fields(invoice.total_amount_cents - invoice.amount_paid_cents, currency),
    )


class CancelRequest(BaseModel):
    reason: Optional[str] = Field(None, max_length=500)


class InvoiceDeletedResponse(BaseModel):
    """`deleted` is False when the invoice was cancelled instead."""
    invoice_id: int
    deleted: bool
    status: Optional[InvoiceStatus] = None


class MarkOverdueResponse(BaseModel):
    marked_count: int
    invoice_ids: List[int]


class InvoiceStatsResponse(BaseModel):
    currency: str
    total_invoices: int
    total_amount: str
    paid_amount: str
    outstanding_amount: str
    overdue_count: int


# Payments

class PaymentCreate(BaseModel):
    """Schema for recording a payment against an invoice."""
    amount: str = Field(..., description="Decimal string in the invoice currency, e.g. '50.00'")
    payment_method: PaymentMethod
    payment_date: date
    reference_number: Optional[str] = Field(None, max_length=100)
    notes: Optional[str] = None

    @field_validator("amount", mode="before")
    @classmethod
    def check_amount(cls, value):
        return _decimal_string(value)


class PaymentTaxResponse(BaseModel):
    tax_rate_id: int
    name: str
    rate: Decimal
    tax_amount_cents: int
    tax_amount: str


class PaymentResponse(BaseModel):
    """A recorded payment with its tax breakdown."""
    id: int
    invoice_id: int
    amount_cents: int
    amount: str
    payment_method: PaymentMethod
    payment_date: date
    reference_number: Optional[str]
    notes: Optional[str]
    taxes: List[PaymentTaxResponse]

    @classmethod
    def from_payment(cls, payment, currency: str) -> "PaymentResponse":
        return cls(
            id=payment.id,
            invoice_id=payment.invoice_id,
            amount_cents=payment.amount_cents,
            amount=_money_fields(payment.amount_cents, currency),
            payment_method=payment.payment_method,
            payment_date=payment.payment_date,
            reference_number=payment.reference_number,
            notes=payment.notes,
            taxes=[
                PaymentTaxResponse(
                    tax_rate_id=tax.tax_rate_id,
                    name=tax.tax_name_snapshot,
                    rate=tax.tax_rate_snapshot,
                    tax_amount_cents=tax.tax_amount_cents,
                    tax_amount=_money_fields(tax.tax_amount_cents, currency),
                )
                for tax in payment.taxes
            ],
        )


class PaymentRecordedResponse(BaseModel):
    """Result of recording a payment."""
    payment_id: int
    invoice_id: int
    amount: str
    amount_paid: str
    remaining_balance: str
    status: InvoiceStatus
    taxes: List[PaymentTaxResponse]

    @classmethod
    def from_result(cls, result) -> "PaymentRecordedResponse":
        return cls(
            payment_id=result.payment_id,
            invoice_id=result.invoice_id,
            amount=result.amount.to_decimal_string(),
            amount_paid=result.amount_paid.to_decimal_string(),
            remaining_balance=result.remaining_balance.to_decimal_string(),
            status=result.status,
            taxes=[
                PaymentTaxResponse(
                    tax_rate_id=share.tax_rate_id,
                    name=share.name_snapshot,
                    rate=share.rate_snapshot,
                    tax_amount_cents=share.tax.amount,
                    tax_amount=share.tax.to_decimal_string(),
                )
                for share in result.taxes
            ],
        )
