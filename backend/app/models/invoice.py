"""
Invoice, line item and line item tax database models.

All money columns are integer minor units (`*_cents`) in the invoice's
currency. Line items and their taxes are written once at creation and
never re-priced.
"""

from sqlalchemy import (
    Column, Integer, BigInteger, String, Date, DateTime, Enum, ForeignKey, Numeric, Text, CheckConstraint
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.billing_enums import InvoiceStatus, InvoiceItemType


class Invoice(Base):
    """
    Invoice model.

    Invariants enforced at the database level as well as in the aggregator:
    total = subtotal + tax and 0 <= amount_paid <= total.
    """
    __tablename__ = "invoices"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    invoice_number = Column(String(30), nullable=False, unique=True, index=True)

    # Party being invoiced
    entity_id = Column(Integer, ForeignKey('invoice_entities.id'), nullable=False, index=True)

    # Dates
    issue_date = Column(Date, nullable=False)
    due_date = Column(Date, nullable=False, index=True)

    # Financials (minor units)
    currency = Column(String(3), nullable=False)
    subtotal_cents = Column(BigInteger, nullable=False)
    tax_amount_cents = Column(BigInteger, nullable=False)
    total_amount_cents = Column(BigInteger, nullable=False)
    amount_paid_cents = Column(BigInteger, nullable=False, default=0)

    # Status
    status = Column(Enum(InvoiceStatus), default=InvoiceStatus.DRAFT, nullable=False, index=True)

    notes = Column(Text, nullable=True)
    created_by = Column(Integer, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    line_items = relationship(
        "InvoiceLineItem",
        back_populates="invoice",
        order_by="InvoiceLineItem.sort_order",
        cascade="all, delete-orphan",
    )
    payments = relationship(
        "InvoicePayment",
        back_populates="invoice",
        order_by="InvoicePayment.id",
    )

    __table_args__ = (
        CheckConstraint('total_amount_cents = subtotal_cents + tax_amount_cents', name='ck_invoices_total'),
        CheckConstraint('amount_paid_cents >= 0', name='ck_invoices_paid_non_negative'),
        CheckConstraint('amount_paid_cents <= total_amount_cents', name='ck_invoices_no_overpayment'),
    )

    def __repr__(self):
        return f"<Invoice(id={self.id}, number='{self.invoice_number}', status='{self.status.value}', total={self.total_amount_cents})>"


class InvoiceLineItem(Base):
    """Invoice line item. line_total_cents = quantity * unit_price_cents."""
    __tablename__ = "invoice_line_items"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete="CASCADE"), nullable=False, index=True)

    item_type = Column(Enum(InvoiceItemType), nullable=False)
    description = Column(String(255), nullable=False)
    quantity = Column(Integer, nullable=False)
    unit_price_cents = Column(BigInteger, nullable=False)
    line_total_cents = Column(BigInteger, nullable=False)
    tax_amount_cents = Column(BigInteger, nullable=False, default=0)
    sort_order = Column(Integer, nullable=False, default=0)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    invoice = relationship("Invoice", back_populates="line_items")
    taxes = relationship(
        "InvoiceLineItemTax",
        back_populates="line_item",
        order_by="InvoiceLineItemTax.id",
        cascade="all, delete-orphan",
    )

    __table_args__ = (
        CheckConstraint('quantity > 0', name='ck_line_items_quantity_positive'),
        CheckConstraint('unit_price_cents >= 0', name='ck_line_items_price_non_negative'),
    )

    def __repr__(self):
        return f"<InvoiceLineItem(id={self.id}, qty={self.quantity}, unit={self.unit_price_cents})>"


class InvoiceLineItemTax(Base):
    """
    Snapshot of a tax rate applied to one line item.

    name/rate/description are copied from the TaxRate at creation time;
    later edits to the TaxRate do not touch these rows.
    """
    __tablename__ = "invoice_line_item_taxes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    invoice_line_item_id = Column(
        Integer, ForeignKey('invoice_line_items.id', ondelete="CASCADE"), nullable=False, index=True
    )
    tax_rate_id = Column(Integer, ForeignKey('tax_rates.id'), nullable=False, index=True)

    tax_name_snapshot = Column(String(50), nullable=False)
    tax_rate_snapshot = Column(Numeric(7, 6), nullable=False)
    tax_description_snapshot = Column(String(255), nullable=True)
    tax_amount_cents = Column(BigInteger, nullable=False)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    line_item = relationship("InvoiceLineItem", back_populates="taxes")

    def __repr__(self):
        return f"<InvoiceLineItemTax(id={self.id}, name='{self.tax_name_snapshot}', amount={self.tax_amount_cents})>"
