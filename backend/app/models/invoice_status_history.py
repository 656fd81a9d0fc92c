"""
Invoice Status History database model.

Append-only trail of invoice status transitions.
"""

from sqlalchemy import Column, Integer, ForeignKey, DateTime, Enum, Text
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.billing_enums import InvoiceStatus


class InvoiceStatusHistory(Base):
    """One status change of one invoice. NO updates or deletions."""
    __tablename__ = "invoice_status_history"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    invoice_id = Column(Integer, ForeignKey('invoices.id', ondelete="CASCADE"), nullable=False, index=True)
    old_status = Column(Enum(InvoiceStatus), nullable=True)  # None for creation
    new_status = Column(Enum(InvoiceStatus), nullable=False)

    changed_by = Column(Integer, nullable=True)  # actor id from the token, None for system sweeps
    notes = Column(Text, nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    def __repr__(self):
        old = self.old_status.value if self.old_status else None
        return f"<InvoiceStatusHistory(invoice_id={self.invoice_id}, {old} -> {self.new_status.value})>"
