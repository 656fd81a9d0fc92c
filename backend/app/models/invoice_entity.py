"""
Invoice Entity database model.

The party an invoice is addressed to: a family, school, government body
or corporate account.
"""

from sqlalchemy import Column, Integer, String, Boolean, DateTime, Enum, Text
from sqlalchemy.sql import func
from backend.app.db.session import Base
from backend.app.models.billing_enums import EntityType, PaymentTerms


class InvoiceEntity(Base):
    """Invoice Entity model."""
    __tablename__ = "invoice_entities"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    name = Column(String(150), nullable=False)
    entity_type = Column(Enum(EntityType), nullable=False, default=EntityType.FAMILY)
    contact_person = Column(String(100), nullable=True)
    email = Column(String(255), nullable=True)

    # Default due date offset for new invoices
    payment_terms = Column(Enum(PaymentTerms), nullable=False, default=PaymentTerms.NET_30)
    is_active = Column(Boolean, default=True, nullable=False)
    notes = Column(Text, nullable=True)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<InvoiceEntity(id={self.id}, name='{self.name}', type='{self.entity_type.value}')>"
