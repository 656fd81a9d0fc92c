"""
Billing enumerations for invoices and payments.
"""

import enum


class InvoiceStatus(str, enum.Enum):
    """Invoice status enumeration."""
    DRAFT = "draft"  # Created, line items and taxes frozen
    SENT = "sent"  # Issued to the entity
    VIEWED = "viewed"  # Entity opened the invoice
    PARTIALLY_PAID = "partially_paid"
    PAID = "paid"  # Terminal
    OVERDUE = "overdue"  # Due date passed with a balance outstanding
    CANCELLED = "cancelled"  # Terminal


class PaymentMethod(str, enum.Enum):
    """How an invoice payment was made."""
    CASH = "cash"
    CHECK = "check"
    BANK_TRANSFER = "bank_transfer"
    CREDIT_CARD = "credit_card"
    ACH = "ach"
    OTHER = "other"


class InvoiceItemType(str, enum.Enum):
    """Line item category. Drives tax exemptions."""
    CLASS_ENROLLMENT = "class_enrollment"
    INDIVIDUAL_SESSION = "individual_session"
    PRODUCT = "product"
    FEE = "fee"
    OTHER = "other"


class EntityType(str, enum.Enum):
    """Kind of party being invoiced."""
    FAMILY = "family"
    SCHOOL = "school"
    GOVERNMENT = "government"
    CORPORATE = "corporate"
    OTHER = "other"


class PaymentTerms(str, enum.Enum):
    """Standard payment terms and the days until due."""
    DUE_ON_RECEIPT = "Due on Receipt"
    NET_15 = "Net 15"
    NET_30 = "Net 30"
    NET_60 = "Net 60"
    NET_90 = "Net 90"

    @property
    def days(self) -> int:
        if self is PaymentTerms.DUE_ON_RECEIPT:
            return 0
        return int(self.value.split()[1])
