"""Pytest configuration and shared fixtures for all tests."""

import os
import sys
import uuid
from pathlib import Path

# Minimal environment for Settings; must be set before the app is imported
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test_secret_key_for_testing_only")
os.environ.setdefault("SCHEDULER_ENABLED", "false")
os.environ.setdefault("PAYMENT_WEBHOOK_SECRET", "whsec_test_secret")
os.environ.setdefault("FRONTEND_URL", "https://pawtrait.test")

# Add project root to PYTHONPATH
project_root = Path(__file__).parent.parent
sys.path.insert(0, str(project_root))

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401
from app.core.security import AccountType, create_access_token
from app.database import Base, get_db
from app.main import app
from app.models.customer import Customer, ReferralType
from app.models.order import PaymentStatus
from app.models.partner import Partner
from app.repositories.customer_repository import CustomerRepository
from app.repositories.order_repository import OrderRepository
from app.repositories.partner_repository import PartnerRepository, PreRegistrationCodeRepository
from app.repositories.referral_repository import ReferralRepository
from app.services.referral_tracker import ReferralTracker


PARTNER_CODE = "PAR1A2B3C"


@pytest.fixture
async def engine():
    """Fresh in-memory database per test."""
    engine = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # pysqlite's own transaction handling breaks SAVEPOINT; let SQLAlchemy emit BEGIN
    @event.listens_for(engine.sync_engine, "connect")
    def do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def do_begin(conn):
        conn.exec_driver_sql("BEGIN")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine
    await engine.dispose()


@pytest.fixture
async def db_session(engine):
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    async with factory() as session:
        yield session


@pytest.fixture
async def client(db_session):
    """HTTP client whose requests share the test session."""
    async def override_get_db():
        try:
            yield db_session
            await db_session.commit()
        except Exception:
            await db_session.rollback()
            raise

    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def auth_headers():
    """Bearer headers as the identity provider would issue them."""
    def _headers(subject, account_type: str) -> dict:
        token = create_access_token(subject, account_type)
        return {"Authorization": f"Bearer {token}"}
    return _headers


@pytest.fixture
def admin_headers(auth_headers):
    return auth_headers("admin-1", AccountType.ADMIN)


@pytest.fixture
def tracker(db_session):
    return ReferralTracker(ReferralRepository(db_session), PreRegistrationCodeRepository(db_session))


def _referral_fields(referred_by):
    if referred_by is None:
        return {}
    if isinstance(referred_by, Partner):
        referral_type = ReferralType.PARTNER.value
    else:
        referral_type = ReferralType.CUSTOMER.value
    return {
        "referral_type": referral_type,
        "referrer_id": referred_by.id,
        "referral_code_used": referred_by.personal_referral_code,
    }


@pytest.fixture
def make_partner(db_session, tracker):
    async def _make(code=PARTNER_CODE, with_record=True, **kwargs) -> Partner:
        data = {
            "email": f"groomer-{uuid.uuid4().hex[:8]}@partners.example.com",
            "first_name": "Gina",
            "last_name": "Groomer",
            "business_name": "Happy Paws",
            "business_type": "groomer",
            "personal_referral_code": code,
        }
        data.update(kwargs)
        partner = await PartnerRepository(db_session).create(**data)
        if with_record and code:
            await tracker.create_record(code, ReferralType.PARTNER.value, partner.id, is_personal=True)
        return partner
    return _make


@pytest.fixture
def make_customer(db_session, tracker):
    async def _make(code=None, referred_by=None, with_record=True, **kwargs) -> Customer:
        code = code or f"PET{uuid.uuid4().hex[:6].upper()}"
        data = {
            "email": f"owner-{uuid.uuid4().hex[:8]}@customers.example.com",
            "first_name": "Olive",
            "last_name": "Owner",
            "personal_referral_code": code,
        }
        data.update(_referral_fields(referred_by))
        data.update(kwargs)
        customer = await CustomerRepository(db_session).create(**data)
        if with_record:
            await tracker.create_record(code, ReferralType.CUSTOMER.value, customer.id, is_personal=True)
        return customer
    return _make


@pytest.fixture
def make_order(db_session):
    async def _make(customer=None, subtotal=5000, paid=True, **kwargs):
        data = {
            "order_number": f"PP-{uuid.uuid4().hex[:8].upper()}",
            "customer_email": customer.email if customer else "guest@customers.example.com",
            "customer_id": customer.id if customer else None,
            "subtotal": subtotal,
            "total_amount": subtotal,
            "payment_status": PaymentStatus.PAID.value if paid else PaymentStatus.PENDING.value,
        }
        data.update(kwargs)
        return await OrderRepository(db_session).create(**data)
    return _make
