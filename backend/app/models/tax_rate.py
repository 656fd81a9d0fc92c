"""
Tax Rate database model.

Mutable master record. Invoices never read it after creation; they keep
snapshots of name and rate on each line item tax.
"""

from sqlalchemy import Column, Integer, String, Numeric, Boolean, DateTime, JSON
from sqlalchemy.sql import func
from backend.app.db.session import Base


class TaxRate(Base):
    """
    Tax Rate model.

    `rate` is an exact fraction (0.05 for 5%).
    `exempt_item_types` lists InvoiceItemType values the rate does not apply to.
    """
    __tablename__ = "tax_rates"

    id = Column(Integer, primary_key=True, index=True, autoincrement=True)

    name = Column(String(50), nullable=False, unique=True)
    rate = Column(Numeric(7, 6), nullable=False)
    description = Column(String(255), nullable=True)
    region = Column(String(50), nullable=True)

    is_active = Column(Boolean, default=True, nullable=False)
    exempt_item_types = Column(JSON, nullable=False, default=list)

    # Timestamps
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    def __repr__(self):
        return f"<TaxRate(id={self.id}, name='{self.name}', rate={self.rate})>"
