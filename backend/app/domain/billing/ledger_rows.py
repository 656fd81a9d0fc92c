"""
Ledger row validation.

Maps persisted invoice rows to domain values through Pydantic models with
strict integer money fields. A missing, null or non-integer amount is a
LedgerIntegrityError; nothing is ever defaulted to zero.
"""

from decimal import Decimal
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError, model_validator

from backend.app.core.exceptions import LedgerIntegrityError
from backend.app.domain.billing.invoice_aggregator import InvoiceLedgerState
from backend.app.domain.billing.money import Money
from backend.app.domain.billing.tax_proration import InvoiceTaxLine
from backend.app.models.billing_enums import InvoiceStatus


class LineItemTaxRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: StrictInt
    tax_rate_id: StrictInt
    tax_name_snapshot: str
    tax_rate_snapshot: Decimal
    tax_description_snapshot: Optional[str] = None
    tax_amount_cents: StrictInt = Field(ge=0)


class LineItemRow(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: StrictInt
    sort_order: StrictInt
    quantity: StrictInt = Field(gt=0)
    unit_price_cents: StrictInt = Field(ge=0)
    line_total_cents: StrictInt = Field(ge=0)
    tax_amount_cents: StrictInt = Field(ge=0)
    taxes: List[LineItemTaxRow]

    @model_validator(mode="after")
    def check_line_totals(self) -> "LineItemRow":
        if self.line_total_cents != self.quantity * self.unit_price_cents:
            raise ValueError(f"line item {self.id} total does not equal quantity x unit price")
        if self.tax_amount_cents != sum(t.tax_amount_cents for t in self.taxes):
            raise ValueError(f"line item {self.id} tax does not equal the sum of its tax lines")
        return self


class InvoiceRow(BaseModel):
    """Validated view of an invoice with its line items and taxes loaded."""
    model_config = ConfigDict(from_attributes=True)

    id: StrictInt
    status: InvoiceStatus
    currency: str = Field(min_length=3, max_length=3)
    subtotal_cents: StrictInt = Field(ge=0)
    tax_amount_cents: StrictInt = Field(ge=0)
    total_amount_cents: StrictInt = Field(ge=0)
    amount_paid_cents: StrictInt = Field(ge=0)
    line_items: List[LineItemRow]

    @model_validator(mode="after")
    def check_invoice_totals(self) -> "InvoiceRow":
        if self.subtotal_cents != sum(item.line_total_cents for item in self.line_items):
            raise ValueError(f"invoice {self.id} subtotal does not equal the sum of its line items")
        if self.tax_amount_cents != sum(item.tax_amount_cents for item in self.line_items):
            raise ValueError(f"invoice {self.id} tax does not equal the sum of its line item taxes")
        return self

    def money(self, cents: int) -> Money:
        return Money(cents, self.currency)

    def to_ledger_state(self) -> InvoiceLedgerState:
        return InvoiceLedgerState(
            invoice_id=self.id,
            status=self.status,
            subtotal=self.money(self.subtotal_cents),
            tax=self.money(self.tax_amount_cents),
            total=self.money(self.total_amount_cents),
            amount_paid=self.money(self.amount_paid_cents),
        ).check_invariants()

    def tax_lines(self) -> List[InvoiceTaxLine]:
        """Line item taxes in invoice order: line sort order, line id, then tax id."""
        lines = []
        for item in sorted(self.line_items, key=lambda i: (i.sort_order, i.id)):
            for tax in sorted(item.taxes, key=lambda t: t.id):
                lines.append(InvoiceTaxLine(
                    line_item_id=item.id,
                    tax_rate_id=tax.tax_rate_id,
                    tax=self.money(tax.tax_amount_cents),
                    name_snapshot=tax.tax_name_snapshot,
                    rate_snapshot=tax.tax_rate_snapshot,
                    description_snapshot=tax.tax_description_snapshot,
                ))
        return lines


def validate_invoice_row(invoice) -> InvoiceRow:
    """
    Validate an ORM invoice (with line_items and taxes loaded).

    Raises:
        LedgerIntegrityError: if any monetary field is missing or inconsistent
    """
    try:
        return InvoiceRow.model_validate(invoice)
    except ValidationError as e:
        raise LedgerIntegrityError(str(e))
