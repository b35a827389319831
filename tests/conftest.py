"""
Pytest configuration and fixtures for Quill Commerce tests.
"""
import os
from decimal import Decimal
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio

# Set test environment before importing app modules
os.environ["ENVIRONMENT"] = "development"
os.environ["DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["SECRET_KEY"] = "test-secret-key-for-unit-tests-only"
os.environ["RATE_LIMIT_ENABLED"] = "false"
os.environ["PAYMENT_TEST_MODE"] = "false"
os.environ["REDIS_URL"] = ""
os.environ["OPENAI_API_KEY"] = ""

from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from app.core.database import Base, get_db
from app.core.security import create_access_token, get_password_hash
from app.models import Product, User
from app.services.capability_service import CapabilityService


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture
def mock_db() -> AsyncMock:
    """Create mock async database session."""
    db = AsyncMock()
    db.add = MagicMock()
    db.flush = AsyncMock()
    db.commit = AsyncMock()
    db.rollback = AsyncMock()
    db.execute = AsyncMock()
    return db


@pytest_asyncio.fixture
async def db_session() -> AsyncGenerator[AsyncSession, None]:
    """In-memory SQLite session with every table created."""
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with session_factory() as session:
        yield session

    await engine.dispose()


@pytest_asyncio.fixture
async def seeded_db(db_session: AsyncSession) -> AsyncSession:
    """Session with the built-in capability catalog loaded."""
    await CapabilityService(db_session).seed_capabilities()
    await db_session.flush()
    return db_session


@pytest.fixture
def make_user(db_session: AsyncSession):
    """Factory: await make_user(role="admin") -> persisted User."""
    counter = {"n": 0}

    async def _make_user(role: str = "member", email: str = None, password: str = "password123", **kwargs) -> User:
        counter["n"] += 1
        user = User(
            email=email or f"user{counter['n']}@example.com",
            hashed_password=get_password_hash(password),
            role=role,
            is_active=kwargs.pop("is_active", True),
            **kwargs,
        )
        db_session.add(user)
        await db_session.flush()
        return user

    return _make_user


@pytest.fixture
def make_product(db_session: AsyncSession):
    """Factory: await make_product(price="10.00", stock_quantity=5) -> persisted Product."""
    counter = {"n": 0}

    async def _make_product(**kwargs) -> Product:
        counter["n"] += 1
        n = counter["n"]
        defaults = {
            "name": f"Product {n}",
            "slug": f"product-{n}",
            "sku": f"SKU-{n}",
            "price": Decimal("10.00"),
            "product_type": "physical",
            "status": "published",
            "stock_quantity": 10,
            "stock_status": "in_stock",
            "guest_purchaseable": True,
        }
        defaults.update(kwargs)
        product = Product(**defaults)
        db_session.add(product)
        await db_session.flush()
        return product

    return _make_product


@pytest.fixture
def auth_headers():
    """Factory: auth_headers(user) -> bearer header dict."""
    def _headers(user: User) -> dict:
        return {"Authorization": f"Bearer {create_access_token(user.id)}"}
    return _headers


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """HTTP client bound to the app, sharing the test session."""
    from app.main import app

    async def override_get_db():
        yield db_session

    app.dependency_overrides[get_db] = override_get_db
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac
    app.dependency_overrides.clear()


@pytest.fixture
def shipping_address() -> dict:
    return {
        "name": "Jordan Reader",
        "line1": "123 Main Street",
        "city": "Portland",
        "state": "OR",
        "postal_code": "97201",
        "country": "US",
    }
