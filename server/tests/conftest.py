"""Test configuration and fixtures."""

import os

# Point the application at SQLite before any tourdesk module reads settings
os.environ.setdefault("DATABASE_URL", "sqlite+aiosqlite:///:memory:")
os.environ.setdefault("ENVIRONMENT", "development")

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tourdesk.core.database import Base, get_db
from tourdesk.core.dependencies import Principal, Role, issue_token
from tourdesk.models import *  # noqa: F403 - Import all models
from tourdesk.schemas.common import Money
from tourdesk.schemas.order import CreateOrderRequest
from tourdesk.schemas.tour import CreateDestinationRequest, CreateTourRequest
from tourdesk.services.order_service import OrderService
from tourdesk.services.tour_service import TourService

# Test database URL (in-memory SQLite for speed)
TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"

CUSTOMER_ID = 101
OTHER_CUSTOMER_ID = 102
MANAGER_ID = 900


@pytest_asyncio.fixture(scope="function")
async def test_engine():
    """Create a test database engine."""
    engine = create_async_engine(
        TEST_DATABASE_URL,
        echo=False,
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )

    # Create tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield engine

    # Drop tables
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.drop_all)

    await engine.dispose()


@pytest_asyncio.fixture(scope="function")
async def test_session(test_engine):
    """Create a test database session."""
    async_session = async_sessionmaker(
        test_engine,
        class_=AsyncSession,
        expire_on_commit=False,
        autoflush=False,
    )

    async with async_session() as session:
        yield session


@pytest_asyncio.fixture(scope="function")
async def test_app(test_session):
    """Create the application with its database bound to the test session."""
    from tourdesk.main import create_app

    app = create_app()

    # Override database dependency
    async def override_get_db():
        yield test_session

    app.dependency_overrides[get_db] = override_get_db

    yield app

    # Clean up
    app.dependency_overrides.clear()


@pytest_asyncio.fixture(scope="function")
async def test_client(test_app):
    """Create a test HTTP client."""
    transport = ASGITransport(app=test_app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


@pytest.fixture
def customer() -> Principal:
    return Principal(user_id=CUSTOMER_ID, role=Role.USER, email="ada@example.com")


@pytest.fixture
def other_customer() -> Principal:
    return Principal(user_id=OTHER_CUSTOMER_ID, role=Role.USER, email="grace@example.com")


@pytest.fixture
def manager() -> Principal:
    return Principal(user_id=MANAGER_ID, role=Role.MANAGER, email="ops@example.com")


@pytest.fixture
def customer_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(CUSTOMER_ID, Role.USER)}"}


@pytest.fixture
def other_customer_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(OTHER_CUSTOMER_ID, Role.USER)}"}


@pytest.fixture
def admin_headers() -> dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(MANAGER_ID, Role.ADMIN)}"}


@pytest.fixture
def sample_destination_data():
    """Sample destination data for testing."""
    return {
        "name": "Iceland",
        "slug": "iceland",
        "description": "Glaciers, geysers and the Aurora Borealis"
    }


@pytest.fixture
def sample_tour_data():
    """Sample tour data for testing; destination_id is filled in by the test."""
    return {
        "title": "Northern Lights Adventure",
        "slug": "northern-lights-adventure",
        "price": {
            "amount": 29999,
            "currency": "USD"
        },
        "group_size": 10,
        "next_tour_date": "2026-12-15T20:00:00Z"
    }


@pytest_asyncio.fixture
async def destination_id(test_session, sample_destination_data) -> int:
    destination = await TourService(test_session).create_destination(
        CreateDestinationRequest(**sample_destination_data)
    )
    return destination.id


@pytest.fixture
def make_tour(test_session, destination_id):
    """Factory creating a tour and returning its ID."""
    counter = {"n": 0}

    async def _make(group_size: int = 10, price_amount: int = 29999) -> int:
        counter["n"] += 1
        tour = await TourService(test_session).create_tour(
            CreateTourRequest(
                destination_id=destination_id,
                title=f"Test Tour {counter['n']}",
                slug=f"test-tour-{counter['n']}",
                price=Money(amount=price_amount, currency="USD"),
                group_size=group_size,
            )
        )
        return tour.id

    return _make


@pytest.fixture
def place_order(test_session):
    """Factory placing an order and returning its ID."""

    async def _place(tour_id: int, quantity: int, user: Principal) -> int:
        order = await OrderService(test_session).create_order(
            CreateOrderRequest(
                tour_id=tour_id,
                quantity=quantity,
                contact_email=user.email or "traveller@example.com",
            ),
            user,
        )
        return order.id

    return _place
