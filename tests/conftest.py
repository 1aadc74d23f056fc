"""
Shared fixtures: an in-memory aiosqlite database for service tests and a
TestClient bound to a throwaway SQLite file for route tests.
"""
import os

os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("SECRET_KEY", "test-secret-key")
os.environ.setdefault("STRIPE_TEST_SECRET_KEY", "sk_test_dummy")
os.environ.setdefault("STRIPE_TEST_PUBLISHABLE_KEY", "pk_test_dummy")

from datetime import datetime, timezone

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from sqlalchemy import create_engine, event
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import Session
from sqlalchemy.pool import NullPool, StaticPool

from app.core.database import Base, get_db
from app.core.security import AuthSession, get_password_hash
from app.main import app
from app.models import MetalPrice, Subscription, User
from app.models.enums import Metal, SubscriptionStatus, UserRole, WeightUnit


def _enable_savepoints(engine):
    # sqlite needs explicit BEGIN for SAVEPOINT to nest correctly
    @event.listens_for(engine.sync_engine, "connect")
    def _connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine.sync_engine, "begin")
    def _begin(conn):
        conn.exec_driver_sql("BEGIN")


@pytest_asyncio.fixture
async def db():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:", poolclass=StaticPool)
    _enable_savepoints(engine)
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session
    await engine.dispose()


async def make_user(db, email="saver@example.com", role=UserRole.user, **fields) -> User:
    user = User(
        email=email,
        hashed_password=get_password_hash("password123"),
        first_name=fields.pop("first_name", "Ada"),
        last_name=fields.pop("last_name", "Lovelace"),
        role=role,
        **fields,
    )
    db.add(user)
    await db.flush()
    return user


async def make_subscription(db, user, **fields) -> Subscription:
    values = dict(
        user_id=user.id,
        metal=Metal.gold,
        plan_name="Gold Plan",
        target_weight=10.0,
        target_unit=WeightUnit.g,
        monthly_investment=100.0,
        quantity=1,
        accumulated_value=0.0,
        accumulated_weight=0.0,
        status=SubscriptionStatus.active,
        stripe_customer_id="cus_test",
    )
    values.update(fields)
    subscription = Subscription(**values)
    db.add(subscription)
    await db.flush()
    return subscription


async def set_prices(db, gold_per_oz=2000.0, silver_per_oz=25.0):
    now = datetime.now(timezone.utc)
    db.add_all([
        MetalPrice(metal_symbol=Metal.gold, price=gold_per_oz, last_updated=now),
        MetalPrice(metal_symbol=Metal.silver, price=silver_per_oz, last_updated=now),
    ])
    await db.flush()


@pytest_asyncio.fixture
async def user(db):
    return await make_user(db)


@pytest_asyncio.fixture
async def admin(db):
    return await make_user(db, email="admin@example.com", role=UserRole.admin)


@pytest.fixture
def user_session(user):
    return AuthSession(user=user, token="test")


@pytest.fixture
def admin_session(admin):
    return AuthSession(user=admin, token="test")


# ── Route tests ──────────────────────────────────────────────────────────────

@pytest.fixture
def api_db_url(tmp_path):
    return tmp_path / "api.db"


@pytest.fixture
def sync_db(api_db_url):
    """Synchronous session on the route-test database, for seeding rows."""
    engine = create_engine(f"sqlite:///{api_db_url}")
    Base.metadata.create_all(engine)
    with Session(engine, expire_on_commit=False) as session:
        yield session
    engine.dispose()


@pytest.fixture
def client(api_db_url, sync_db):
    engine = create_async_engine(f"sqlite+aiosqlite:///{api_db_url}", poolclass=NullPool)
    _enable_savepoints(engine)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async def override_get_db():
        async with session_factory() as session:
            try:
                yield session
                await session.commit()
            except Exception:
                await session.rollback()
                raise

    app.dependency_overrides[get_db] = override_get_db
    yield TestClient(app, raise_server_exceptions=False)
    app.dependency_overrides.clear()


@pytest.fixture
def seed_admin(sync_db):
    admin = User(
        email="admin@example.com",
        hashed_password=get_password_hash("adminpass123"),
        role=UserRole.admin,
    )
    sync_db.add(admin)
    sync_db.commit()
    return admin
