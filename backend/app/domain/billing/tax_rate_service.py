"""
Tax Rate Service.

Manages tax rate master records and turns them into snapshots for the
tax calculator. Editing a rate never touches invoices already created.
"""

from decimal import Decimal
from typing import Dict, Iterable, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from backend.app.core.exceptions import LedgerValidationError, ResourceNotFoundError
from backend.app.domain.billing.tax_calculator import TaxRateSnapshot
from backend.app.models.billing_enums import InvoiceItemType
from backend.app.models.tax_rate import TaxRate


def _validate_rate(rate: Decimal) -> Decimal:
    rate = Decimal(str(rate))
    if rate < 0 or rate >= 1:
        raise LedgerValidationError("rate", "Tax rate must be a fraction between 0 and 1")
    return rate


def _validate_exempt_item_types(item_types: Iterable[str]) -> List[str]:
    try:
        return sorted({InvoiceItemType(t).value for t in item_types})
    except ValueError as e:
        raise LedgerValidationError("exempt_item_types", str(e))


def to_snapshot(tax_rate: TaxRate) -> TaxRateSnapshot:
    return TaxRateSnapshot(
        tax_rate_id=tax_rate.id,
        name=tax_rate.name,
        rate=Decimal(tax_rate.rate),
        description=tax_rate.description,
        is_active=tax_rate.is_active,
        exempt_item_types=tuple(tax_rate.exempt_item_types or ()),
    )


async def create_tax_rate(
    db: AsyncSession,
    name: str,
    rate: Decimal,
    description: Optional[str] = None,
    region: Optional[str] = None,
    exempt_item_types: Iterable[str] = ()
) -> TaxRate:
    """
    Create a tax rate.

    Raises:
        LedgerValidationError: rate out of range, unknown item type or duplicate name
    """
    tax_rate = TaxRate(
        name=name,
        rate=_validate_rate(rate),
        description=description,
        region=region,
        is_active=True,
        exempt_item_types=_validate_exempt_item_types(exempt_item_types),
    )
    db.add(tax_rate)
    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise LedgerValidationError("name", f"Tax rate '{name}' already exists")
    await db.refresh(tax_rate)
    return tax_rate


async def update_tax_rate(
    db: AsyncSession,
    tax_rate_id: int,
    **changes
) -> TaxRate:
    """
    Update a tax rate's master record.

    Only affects invoices created afterwards; existing line item taxes
    keep their snapshots.
    """
    tax_rate = await db.get(TaxRate, tax_rate_id)
    if not tax_rate:
        raise ResourceNotFoundError("Tax rate", tax_rate_id)

    if changes.get("rate") is not None:
        changes["rate"] = _validate_rate(changes["rate"])
    if changes.get("exempt_item_types") is not None:
        changes["exempt_item_types"] = _validate_exempt_item_types(changes["exempt_item_types"])

    for field, value in changes.items():
        if value is not None:
            setattr(tax_rate, field, value)

    try:
        await db.commit()
    except IntegrityError:
        await db.rollback()
        raise LedgerValidationError("name", f"Tax rate '{changes.get('name')}' already exists")
    await db.refresh(tax_rate)
    return tax_rate


async def list_tax_rates(db: AsyncSession, active_only: bool = False) -> List[TaxRate]:
    query = select(TaxRate).order_by(TaxRate.name)
    if active_only:
        query = query.where(TaxRate.is_active == True)
    result = await db.execute(query)
    return result.scalars().all()


async def get_tax_rate_snapshots(db: AsyncSession, tax_rate_ids: Iterable[int]) -> Dict[int, TaxRateSnapshot]:
    """
    Snapshot the requested tax rates as they stand right now.

    Raises:
        LedgerValidationError: if any id is unknown or inactive
    """
    ids = set(tax_rate_ids)
    if not ids:
        return {}

    result = await db.execute(
        select(TaxRate).where(TaxRate.id.in_(ids), TaxRate.is_active == True)
    )
    snapshots = {rate.id: to_snapshot(rate) for rate in result.scalars().all()}

    missing = ids - snapshots.keys()
    if missing:
        raise LedgerValidationError(
            "tax_rate_ids", f"Unknown or inactive tax rates: {', '.join(str(i) for i in sorted(missing))}"
        )
    return snapshots
