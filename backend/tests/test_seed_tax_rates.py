"""
Tax rate seeding tests.
"""

import pytest
from decimal import Decimal

from backend import seed_tax_rates
from backend.app.domain.billing import tax_rate_service


@pytest.mark.asyncio
async def test_seed_is_idempotent(db_session, session_factory, mocker):
    session_local, test_engine = session_factory
    mocker.patch.object(seed_tax_rates, "AsyncSessionLocal", session_local)
    mocker.patch.object(seed_tax_rates, "engine", test_engine)

    await seed_tax_rates.seed_tax_rates()
    await seed_tax_rates.seed_tax_rates()

    rates = await tax_rate_service.list_tax_rates(db_session)
    assert [(r.name, r.rate) for r in rates] == [
        ("GST_BC", Decimal("0.05")),
        ("PST_BC", Decimal("0.07")),
    ]
    pst = rates[1]
    assert pst.exempt_item_types == ["class_enrollment", "individual_session"]
