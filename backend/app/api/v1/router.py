"""
API v1 Router.

Aggregates all v1 API endpoints.
"""

from fastapi import APIRouter
from backend.app.api.v1.endpoints import admin_billing, admin_payments

router = APIRouter()

# Tax rates, invoice entities and invoices
router.include_router(admin_billing.router)

# Payments
router.include_router(admin_payments.router)
