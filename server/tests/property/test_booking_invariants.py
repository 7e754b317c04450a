"""Property-based tests for seat ledger invariants."""

from contextlib import asynccontextmanager

import pytest
from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

from tourdesk.core.database import Base
from tourdesk.core.dependencies import Principal, Role
from tourdesk.models.order import OrderStatus
from tourdesk.schemas.common import Money
from tourdesk.schemas.order import CreateOrderRequest
from tourdesk.schemas.tour import CreateDestinationRequest, CreateTourRequest
from tourdesk.services.order_service import InvalidTransitionError, OrderService
from tourdesk.services.seat_ledger import InsufficientSeatsError, SeatLedger
from tourdesk.services.tour_service import TourService

# Strategies for generating test data
seat_counts = st.integers(min_value=1, max_value=10)
group_sizes = st.integers(min_value=1, max_value=60)
statuses = st.sampled_from(list(OrderStatus))

STAFF = Principal(user_id=1, role=Role.ADMIN)

# Each example gets its own database, so function-scoped fixtures are not used
example_settings = settings(
    max_examples=40,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture, HealthCheck.too_slow],
)


@asynccontextmanager
async def fresh_session():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    session_factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)
    try:
        async with session_factory() as session:
            yield session
    finally:
        await engine.dispose()


async def create_tour(session, group_size: int) -> int:
    service = TourService(session)
    destination = await service.create_destination(
        CreateDestinationRequest(name="Patagonia", slug="patagonia")
    )
    tour = await service.create_tour(
        CreateTourRequest(
            destination_id=destination.id,
            title="Torres del Paine Circuit",
            slug="torres-del-paine",
            price=Money(amount=15000, currency="USD"),
            group_size=group_size,
        )
    )
    return tour.id


async def check_ledger(session, tour_id: int) -> int:
    tour, available = await TourService(session).get_availability(tour_id)
    taken = await SeatLedger(session).seats_taken(tour_id)
    assert 0 <= available <= tour.group_size
    assert taken <= tour.group_size
    assert available == tour.group_size - taken
    assert tour.available_seats == available
    return available


@pytest.mark.asyncio
@given(
    group_size=group_sizes,
    seat_requests=st.lists(seat_counts, min_size=1, max_size=20)
)
@example_settings
async def test_orders_never_oversell(group_size, seat_requests):
    """Exactly the requests that fit, in commit order, succeed."""
    async with fresh_session() as session:
        tour_id = await create_tour(session, group_size)
        service = OrderService(session)

        remaining = group_size
        for i, quantity in enumerate(seat_requests):
            user = Principal(user_id=i + 1, role=Role.USER)
            request = CreateOrderRequest(tour_id=tour_id, quantity=quantity, contact_email="t@example.com")
            if quantity <= remaining:
                await service.create_order(request, user)
                remaining -= quantity
            else:
                with pytest.raises(InsufficientSeatsError) as exc_info:
                    await service.create_order(request, user)
                assert exc_info.value.available_seats == remaining

            assert await check_ledger(session, tour_id) == remaining


@pytest.mark.asyncio
@given(
    group_size=st.integers(min_value=5, max_value=40),
    quantities=st.lists(seat_counts, min_size=1, max_size=6),
    moves=st.lists(st.tuples(st.integers(min_value=0, max_value=5), statuses), max_size=25),
)
@example_settings
async def test_status_changes_keep_ledger_consistent(group_size, quantities, moves):
    """Any sequence of staff transitions leaves the ledger matching the orders."""
    async with fresh_session() as session:
        tour_id = await create_tour(session, group_size)
        service = OrderService(session)

        order_ids = []
        for i, quantity in enumerate(quantities):
            try:
                order = await service.create_order(
                    CreateOrderRequest(tour_id=tour_id, quantity=quantity, contact_email="t@example.com"),
                    Principal(user_id=i + 1, role=Role.USER),
                )
                order_ids.append(order.id)
            except InsufficientSeatsError:
                pass

        for index, target in moves:
            if not order_ids:
                break
            order_id = order_ids[index % len(order_ids)]
            before = await check_ledger(session, tour_id)
            try:
                await service.set_order_status(order_id, target, STAFF)
            except (InvalidTransitionError, InsufficientSeatsError):
                assert await check_ledger(session, tour_id) == before
            else:
                await check_ledger(session, tour_id)
