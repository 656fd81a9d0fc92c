"""
Centralized Test Configuration.
"""

import pytest
from datetime import date
from decimal import Decimal
from httpx import AsyncClient, ASGITransport
from sqlalchemy.ext.asyncio import create_async_engine, async_sessionmaker, AsyncSession
from sqlalchemy.pool import StaticPool

from backend.app.main import app
from backend.app.db.session import get_db, Base
from backend.app.core.jwt import create_access_token
from backend.app.domain.billing import invoice_service, tax_rate_service
from backend.app.domain.billing.invoice_service import LineItemInput
from backend.app.models.billing_enums import InvoiceItemType

# Setup In-Memory Test Database
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

# Event handler to enable foreign keys for SQLite
from sqlalchemy import event
from sqlalchemy.pool import Pool

@event.listens_for(Pool, "connect")
def set_sqlite_pragma(dbapi_conn, connection_record):
    """Enable foreign key constraints for SQLite."""
    if 'sqlite' in str(type(dbapi_conn)):
        cursor = dbapi_conn.cursor()
        cursor.execute("PRAGMA foreign_keys=ON")
        cursor.close()

engine = create_async_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)

TestingSessionLocal = async_sessionmaker(
    engine, class_=AsyncSession, expire_on_commit=False
)


@pytest.fixture(scope="session", autouse=True)
def apply_overrides():
    """Apply overrides once for the session."""

    async def override_get_db():
        async with TestingSessionLocal() as session:
            yield session

    app.dependency_overrides[get_db] = override_get_db
    yield

    app.dependency_overrides = {}

@pytest.fixture(autouse=True)
async def setup_database():
    """Create tables before each test function and drop after."""
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

@pytest.fixture
async def client():
    """Async client for testing."""
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac

# Shared session for fixture data creation
@pytest.fixture
async def db_session():
    async with TestingSessionLocal() as session:
        yield session


# Tokens

@pytest.fixture
def admin_token():
    return create_access_token({"sub": "frontdesk", "user_id": 1, "role": "ADMIN"})

@pytest.fixture
def admin_headers(admin_token):
    return {"Authorization": f"Bearer {admin_token}"}

@pytest.fixture
def instructor_headers():
    token = create_access_token({"sub": "instructor", "user_id": 2, "role": "INSTRUCTOR"})
    return {"Authorization": f"Bearer {token}"}


# Ledger fixtures

@pytest.fixture
async def levy(db_session):
    """3.5% levy: 100.00 of lessons carries 3.50 of tax."""
    return await tax_rate_service.create_tax_rate(
        db_session, name="Levy", rate=Decimal("0.035"), description="Local levy"
    )

@pytest.fixture
async def gst(db_session):
    return await tax_rate_service.create_tax_rate(
        db_session, name="GST", rate=Decimal("0.05"), description="Goods and Services Tax", region="CA"
    )

@pytest.fixture
async def pst(db_session):
    """BC PST does not apply to class enrollment."""
    return await tax_rate_service.create_tax_rate(
        db_session,
        name="PST",
        rate=Decimal("0.07"),
        description="BC Provincial Sales Tax",
        region="BC",
        exempt_item_types=[InvoiceItemType.CLASS_ENROLLMENT.value],
    )

@pytest.fixture
async def family(db_session):
    return await invoice_service.create_invoice_entity(db_session, name="Nguyen Family", email="nguyen@example.com")

@pytest.fixture
async def invoice(db_session, family, levy):
    """Total 103.50 CAD: subtotal 100.00 plus 3.50 levy on a single tax line."""
    return await invoice_service.create_invoice(
        db_session,
        entity_id=family.id,
        line_items=[
            LineItemInput(
                item_type=InvoiceItemType.CLASS_ENROLLMENT,
                description="Ballet I - Fall term",
                quantity=1,
                unit_price="100.00",
                tax_rate_ids=[levy.id],
            )
        ],
        issue_date=date(2026, 9, 1),
        currency="CAD",
        created_by=1,
    )

@pytest.fixture
def session_factory():
    """Session factory and engine bound to the test database, for code that opens its own sessions."""
    return TestingSessionLocal, engine
