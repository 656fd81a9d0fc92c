"""
Database seeding script for the studio's tax rates.

Creates GST_BC and PST_BC. PST_BC does not apply to class enrollments or
individual sessions.
Run with `python -m backend.seed_tax_rates` after the database is set up.
"""

import asyncio
from decimal import Decimal

from sqlalchemy import select

from backend.app.db.session import AsyncSessionLocal, engine, Base
from backend.app.domain.billing.tax_rate_service import create_tax_rate
from backend.app.models.billing_enums import InvoiceItemType
from backend.app.models.tax_rate import TaxRate

DEFAULT_TAX_RATES = [
    {
        "name": "GST_BC",
        "rate": Decimal("0.05"),
        "description": "Goods and Services Tax",
        "region": "BC",
        "exempt_item_types": [],
    },
    {
        "name": "PST_BC",
        "rate": Decimal("0.07"),
        "description": "BC Provincial Sales Tax",
        "region": "BC",
        "exempt_item_types": [
            InvoiceItemType.CLASS_ENROLLMENT.value,
            InvoiceItemType.INDIVIDUAL_SESSION.value,
        ],
    },
]


async def seed_tax_rates():
    """
    Seed the default tax rates, skipping any that already exist by name.
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncSessionLocal() as db:
        print("🌱 Starting tax rate seeding...")

        result = await db.execute(select(TaxRate.name))
        existing = set(result.scalars().all())

        for rate_data in DEFAULT_TAX_RATES:
            if rate_data["name"] in existing:
                print(f"ℹ️  {rate_data['name']} already exists, skipping")
                continue
            tax_rate = await create_tax_rate(db, **rate_data)
            print(f"✅ Created {tax_rate.name} at {tax_rate.rate}")

        print("\n🎉 Tax rate seeding completed successfully!")


if __name__ == "__main__":
    asyncio.run(seed_tax_rates())
