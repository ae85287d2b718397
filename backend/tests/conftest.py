# backend/tests/conftest.py
"""
Shared fixtures: an in-memory SQLite database built from the ORM metadata
for every test, factories for tenants/resellers/customers, and an httpx
client bound to the FastAPI app with ``get_db`` pointed at the test engine.

Run:
    pytest -v
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("LEDGER_RETRY_BACKOFF_MS", "0")
os.environ.setdefault("REDIS_URL", "redis://localhost:6399/0")

from datetime import datetime

import pytest
from httpx import ASGITransport, AsyncClient
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app import models  # noqa: F401  (register tables)
from app.core.db import Base, get_db
from app.core.rbac import AccountType
from app.core.security import create_access_token, hash_password
from app.main import app
from app.models import Customer, CustomerStatus, IspPackage, Operator, OperatorRole, Reseller, ResellerTransaction, Tenant
from app.services import hierarchy
from app.services.ledger import run_ledger_unit


# =============================================================================
# DATABASE FIXTURES
# =============================================================================

@pytest.fixture
async def engine():
    eng = create_async_engine(
        "sqlite+aiosqlite://",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_factory(engine):
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest.fixture
async def db(session_factory):
    async with session_factory() as s:
        yield s


@pytest.fixture
async def file_session_factory(tmp_path):
    """Separate connections per session, for tests that need real interleaving."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'ledger.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(eng, class_=AsyncSession, expire_on_commit=False)
    await eng.dispose()


# =============================================================================
# DOMAIN FACTORIES
# =============================================================================

async def _make_tenant(s: AsyncSession, name: str = "Fiber One") -> Tenant:
    t = Tenant(name=name, is_active=True)
    s.add(t)
    await s.commit()
    return t


@pytest.fixture
async def tenant(db):
    return await _make_tenant(db)


@pytest.fixture
async def other_tenant(db):
    return await _make_tenant(db, "Other ISP")


@pytest.fixture
def make_reseller(db, tenant):
    # plain id: a rolled-back unit expires every ORM object in the session
    default_tenant_id = tenant.id

    async def _make(name: str = "Reseller", tenant_id: int | None = None, **data) -> Reseller:
        payload = {"name": name, **data}
        return await run_ledger_unit(
            db, lambda s: hierarchy.create_reseller(s, tenant_id or default_tenant_id, payload)
        )
    return _make


@pytest.fixture
async def package(db, tenant):
    p = IspPackage(tenant_id=tenant.id, name="20 Mbps", price=500, validity_days=30)
    db.add(p)
    await db.commit()
    return p


@pytest.fixture
def make_customer(db, tenant):
    default_tenant_id = tenant.id

    async def _make(
        reseller_id: int | None = None,
        package_id: int | None = None,
        expiry_date: datetime | None = None,
        monthly_bill: int = 500,
        tenant_id: int | None = None,
        name: str = "Customer",
    ) -> Customer:
        c = Customer(
            tenant_id=tenant_id or default_tenant_id,
            reseller_id=reseller_id,
            package_id=package_id,
            name=name,
            expiry_date=expiry_date,
            monthly_bill=monthly_bill,
            due_amount=monthly_bill,
            status=CustomerStatus.expired,
        )
        db.add(c)
        await db.commit()
        return c
    return _make


# =============================================================================
# HELPERS
# =============================================================================

async def ledger_rows(s: AsyncSession, reseller_id: int) -> list[ResellerTransaction]:
    q = await s.execute(
        select(ResellerTransaction)
        .where(ResellerTransaction.reseller_id == reseller_id)
        .order_by(ResellerTransaction.sequence.asc())
    )
    return list(q.scalars().all())


async def stored_balance(s: AsyncSession, reseller_id: int) -> int:
    q = await s.execute(select(Reseller.balance).where(Reseller.id == reseller_id))
    return q.scalar_one()


@pytest.fixture
def rows_of(db):
    async def _rows(reseller_id: int):
        return await ledger_rows(db, reseller_id)
    return _rows


@pytest.fixture
def balance_of(db):
    async def _balance(reseller_id: int) -> int:
        return await stored_balance(db, reseller_id)
    return _balance


# =============================================================================
# API FIXTURES
# =============================================================================

@pytest.fixture
async def client(session_factory):
    async def _get_db():
        async with session_factory() as s:
            yield s

    app.dependency_overrides[get_db] = _get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
async def admin(db, tenant):
    op = Operator(
        tenant_id=tenant.id,
        username="admin",
        password_hash=hash_password("admin-pass"),
        display_name="Head Office",
        role=OperatorRole.admin,
        is_active=True,
    )
    db.add(op)
    await db.commit()
    return op


@pytest.fixture
def admin_headers(admin, tenant):
    token = create_access_token(str(admin.id), AccountType.operator.value, tenant.id, "admin")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def headers_for():
    def _headers(reseller: Reseller) -> dict:
        token = create_access_token(str(reseller.id), AccountType.reseller.value, reseller.tenant_id, "reseller")
        return {"Authorization": f"Bearer {token}"}
    return _headers
