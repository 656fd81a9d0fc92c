"""
Invoice Payment and Payment Tax database models.

Immutable ledger records written only by the payment recorder.
"""

from sqlalchemy import Column, Integer, BigInteger, String, Date, DateTime, Enum, ForeignKey, Numeric, Text, CheckConstraint
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.billing_enums import PaymentMethod


class InvoicePayment(Base):
    """
    Invoice Payment model.

    One payment against one invoice, in the invoice's currency.
    NO updates or deletions allowed.
    """
    __tablename__ = "invoice_payments"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    invoice_id = Column(Integer, ForeignKey('invoices.id'), nullable=False, index=True)

    amount_cents = Column(BigInteger, nullable=False)
    payment_method = Column(Enum(PaymentMethod), nullable=False)
    payment_date = Column(Date, nullable=False)
    reference_number = Column(String(100), nullable=True)
    notes = Column(Text, nullable=True)

    recorded_by = Column(Integer, nullable=True)  # actor id from the token

    # Timestamps (Immutable - no updated_at)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    invoice = relationship("Invoice", back_populates="payments")
    taxes = relationship("PaymentTax", back_populates="payment", order_by="PaymentTax.id")

    __table_args__ = (
        CheckConstraint('amount_cents > 0', name='ck_invoice_payments_amount_positive'),
    )

    def __repr__(self):
        return f"<InvoicePayment(id={self.id}, invoice_id={self.invoice_id}, amount={self.amount_cents})>"


class PaymentTax(Base):
    """
    Payment Tax model.

    The share of one line item tax settled by one payment.
    """
    __tablename__ = "payment_taxes"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)
    payment_id = Column(Integer, ForeignKey('invoice_payments.id'), nullable=False, index=True)
    tax_rate_id = Column(Integer, ForeignKey('tax_rates.id'), nullable=False, index=True)

    tax_amount_cents = Column(BigInteger, nullable=False)
    tax_rate_snapshot = Column(Numeric(7, 6), nullable=False)
    tax_name_snapshot = Column(String(50), nullable=False)
    tax_description_snapshot = Column(String(255), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    payment = relationship("InvoicePayment", back_populates="taxes")

    def __repr__(self):
        return f"<PaymentTax(payment_id={self.payment_id}, name='{self.tax_name_snapshot}', amount={self.tax_amount_cents})>"
