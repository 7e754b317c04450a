"""Unit tests for order placement and lifecycle."""

import pytest
import pytest_asyncio
from pydantic import ValidationError as PydanticValidationError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from tourdesk.core.database import Base
from tourdesk.core.exceptions import AuthorizationError, NotFoundError, ValidationError
from tourdesk.models.order import OrderStatus
from tourdesk.schemas.common import MAX_AMOUNT, Money
from tourdesk.schemas.order import CreateOrderRequest
from tourdesk.schemas.tour import CreateDestinationRequest, CreateTourRequest
from tourdesk.services.order_service import (
    ALLOWED_TRANSITIONS,
    InvalidTransitionError,
    OrderService,
    ReinstatementRejectedError,
)
from tourdesk.services.seat_ledger import InsufficientSeatsError
from tourdesk.services.tour_lifecycle_service import TourLifecycleService
from tourdesk.services.tour_service import TourService


async def available_seats(session, tour_id: int) -> int:
    _, available = await TourService(session).get_availability(tour_id)
    return available


@pytest.mark.asyncio
async def test_create_order(test_session, make_tour, customer):
    """A new order is PENDING, priced at quantity times the seat price."""
    tour_id = await make_tour(group_size=10, price_amount=12500)
    service = OrderService(test_session)

    order = await service.create_order(
        CreateOrderRequest(
            tour_id=tour_id,
            quantity=3,
            contact_email="ada@example.com",
            contact_phone="+354 555 0100"
        ),
        customer
    )

    assert order.id is not None
    assert order.tour_id == tour_id
    assert order.user_id == customer.user_id
    assert order.status == OrderStatus.PENDING
    assert order.total_amount == 37500
    assert order.total_currency == "USD"
    assert order.contact_phone == "+354 555 0100"
    assert await available_seats(test_session, tour_id) == 7


@pytest.mark.asyncio
async def test_create_order_unknown_tour(test_session, customer):
    """Ordering seats on a missing tour raises NotFoundError."""
    service = OrderService(test_session)

    with pytest.raises(NotFoundError):
        await service.create_order(
            CreateOrderRequest(tour_id=999, quantity=1, contact_email="ada@example.com"),
            customer
        )


@pytest.mark.asyncio
async def test_create_order_over_per_order_limit(test_session, make_tour, customer, monkeypatch):
    """Quantities above the configured per-order limit are validation errors."""
    from tourdesk.core.config import settings

    monkeypatch.setattr(settings, "max_seats_per_order", 4)
    tour_id = await make_tour(group_size=10)

    with pytest.raises(ValidationError) as exc_info:
        await OrderService(test_session).create_order(
            CreateOrderRequest(tour_id=tour_id, quantity=5, contact_email="ada@example.com"),
            customer
        )

    assert exc_info.value.problem_details["violations"][0]["path"] == "quantity"
    assert await available_seats(test_session, tour_id) == 10


@pytest.mark.asyncio
async def test_booking_scenario(test_session, make_tour, place_order, customer, other_customer):
    """Group of 10: book 7, fail 5 with 3 left, cancel the 7, book 5."""
    tour_id = await make_tour(group_size=10)
    service = OrderService(test_session)

    first_id = await place_order(tour_id, 7, customer)
    assert await available_seats(test_session, tour_id) == 3

    with pytest.raises(InsufficientSeatsError) as exc_info:
        await place_order(tour_id, 5, other_customer)
    assert exc_info.value.available_seats == 3
    assert exc_info.value.problem_details["code"] == "INSUFFICIENT_SEATS"

    await service.cancel_order(first_id, customer)
    assert await available_seats(test_session, tour_id) == 10

    await place_order(tour_id, 5, other_customer)
    assert await available_seats(test_session, tour_id) == 5


@pytest.mark.asyncio
async def test_cancel_releases_exactly_once(test_session, make_tour, place_order, customer):
    """A second cancel is an invalid transition and releases nothing."""
    tour_id = await make_tour(group_size=10)
    await place_order(tour_id, 2, customer)
    order_id = await place_order(tour_id, 4, customer)
    service = OrderService(test_session)
    assert await available_seats(test_session, tour_id) == 4

    order = await service.cancel_order(order_id, customer)
    assert order.status == OrderStatus.CANCELLED
    assert await available_seats(test_session, tour_id) == 8

    with pytest.raises(InvalidTransitionError) as exc_info:
        await service.cancel_order(order_id, customer)
    assert exc_info.value.problem_details["current_status"] == "CANCELLED"
    assert await available_seats(test_session, tour_id) == 8


@pytest.mark.asyncio
async def test_cancel_confirmed_order(test_session, make_tour, place_order, customer, manager):
    """Owners may cancel confirmed orders too."""
    tour_id = await make_tour(group_size=6)
    order_id = await place_order(tour_id, 6, customer)
    service = OrderService(test_session)
    await service.set_order_status(order_id, OrderStatus.CONFIRMED, manager)

    order = await service.cancel_order(order_id, customer)

    assert order.status == OrderStatus.CANCELLED
    assert await available_seats(test_session, tour_id) == 6


@pytest.mark.asyncio
async def test_cancel_someone_elses_order_is_forbidden(
    test_session, make_tour, place_order, customer, other_customer
):
    """Only the owner can cancel; the order and its seats are untouched."""
    tour_id = await make_tour(group_size=5)
    order_id = await place_order(tour_id, 2, customer)
    service = OrderService(test_session)

    with pytest.raises(AuthorizationError):
        await service.cancel_order(order_id, other_customer)

    order = await service.get_order_by_id_or_raise(order_id)
    assert order.status == OrderStatus.PENDING
    assert await available_seats(test_session, tour_id) == 3


@pytest.mark.asyncio
async def test_cancel_completed_order_is_invalid(test_session, make_tour, place_order, customer, manager):
    """Completed orders cannot be cancelled by their owner."""
    tour_id = await make_tour(group_size=5)
    order_id = await place_order(tour_id, 2, customer)
    service = OrderService(test_session)
    await service.set_order_status(order_id, OrderStatus.CONFIRMED, manager)
    await service.set_order_status(order_id, OrderStatus.COMPLETED, manager)

    with pytest.raises(InvalidTransitionError):
        await service.cancel_order(order_id, customer)


@pytest.mark.asyncio
async def test_completion_does_not_release(test_session, make_tour, place_order, customer, manager):
    """CONFIRMED -> COMPLETED leaves availability unchanged."""
    tour_id = await make_tour(group_size=8)
    order_id = await place_order(tour_id, 3, customer)
    service = OrderService(test_session)

    await service.set_order_status(order_id, OrderStatus.CONFIRMED, manager)
    assert await available_seats(test_session, tour_id) == 5

    order = await service.set_order_status(order_id, OrderStatus.COMPLETED, manager)
    assert order.status == OrderStatus.COMPLETED
    assert await available_seats(test_session, tour_id) == 5


@pytest.mark.asyncio
async def test_staff_cancel_releases(test_session, make_tour, place_order, customer, manager):
    """Staff cancellation of a pending order returns its seats."""
    tour_id = await make_tour(group_size=8)
    order_id = await place_order(tour_id, 3, customer)

    order = await OrderService(test_session).set_order_status(order_id, OrderStatus.CANCELLED, manager)

    assert order.status == OrderStatus.CANCELLED
    assert await available_seats(test_session, tour_id) == 8


@pytest.mark.asyncio
async def test_reinstatement_takes_seats_back(test_session, make_tour, place_order, customer, manager):
    """CANCELLED -> CONFIRMED reserves the order's seats again."""
    tour_id = await make_tour(group_size=8)
    order_id = await place_order(tour_id, 3, customer)
    service = OrderService(test_session)
    await service.cancel_order(order_id, customer)

    order = await service.set_order_status(order_id, OrderStatus.CONFIRMED, manager)

    assert order.status == OrderStatus.CONFIRMED
    assert await available_seats(test_session, tour_id) == 5


@pytest.mark.asyncio
async def test_reinstatement_is_all_or_nothing(
    test_session, make_tour, place_order, customer, other_customer, manager
):
    """A reinstatement that does not fit leaves the order CANCELLED and the seats as they were."""
    tour_id = await make_tour(group_size=10)
    order_id = await place_order(tour_id, 6, customer)
    service = OrderService(test_session)
    await service.cancel_order(order_id, customer)
    await place_order(tour_id, 7, other_customer)
    assert await available_seats(test_session, tour_id) == 3

    with pytest.raises(ReinstatementRejectedError) as exc_info:
        await service.set_order_status(order_id, OrderStatus.CONFIRMED, manager)

    problem = exc_info.value.problem_details
    assert exc_info.value.status_code == 409
    assert problem["code"] == "CANNOT_REINSTATE"
    assert problem["available_seats"] == 3
    assert problem["requested_seats"] == 6

    order = await service.get_order_by_id_or_raise(order_id)
    assert order.status == OrderStatus.CANCELLED
    assert await available_seats(test_session, tour_id) == 3


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "path, target",
    [
        ([], OrderStatus.COMPLETED),
        ([], OrderStatus.PENDING),
        ([OrderStatus.CONFIRMED], OrderStatus.PENDING),
        ([OrderStatus.CONFIRMED], OrderStatus.CONFIRMED),
        ([OrderStatus.CANCELLED], OrderStatus.COMPLETED),
        ([OrderStatus.CANCELLED], OrderStatus.PENDING),
        ([OrderStatus.CONFIRMED, OrderStatus.COMPLETED], OrderStatus.CANCELLED),
        ([OrderStatus.CONFIRMED, OrderStatus.COMPLETED], OrderStatus.CONFIRMED),
    ],
)
async def test_invalid_transitions_have_no_effect(
    test_session, make_tour, place_order, customer, manager, path, target
):
    """Moves outside the state machine are rejected without touching seats."""
    tour_id = await make_tour(group_size=10)
    order_id = await place_order(tour_id, 4, customer)
    service = OrderService(test_session)
    for status in path:
        await service.set_order_status(order_id, status, manager)
    before = await available_seats(test_session, tour_id)

    with pytest.raises(InvalidTransitionError) as exc_info:
        await service.set_order_status(order_id, target, manager)

    assert exc_info.value.problem_details["code"] == "INVALID_TRANSITION"
    assert exc_info.value.problem_details["target_status"] == target.value
    order = await service.get_order_by_id_or_raise(order_id)
    expected_status = path[-1] if path else OrderStatus.PENDING
    assert order.status == expected_status
    assert await available_seats(test_session, tour_id) == before


def test_completed_is_terminal():
    """Nothing leaves COMPLETED; CANCELLED only leaves through reinstatement."""
    assert ALLOWED_TRANSITIONS[OrderStatus.COMPLETED] == frozenset()
    assert ALLOWED_TRANSITIONS[OrderStatus.CANCELLED] == frozenset({OrderStatus.CONFIRMED})


@pytest.mark.asyncio
async def test_get_order_owner_or_staff(test_session, make_tour, place_order, customer, other_customer, manager):
    """Owners and staff can read an order; other users cannot."""
    tour_id = await make_tour(group_size=5)
    order_id = await place_order(tour_id, 1, customer)
    service = OrderService(test_session)

    assert (await service.get_order(order_id, customer)).id == order_id
    assert (await service.get_order(order_id, manager)).id == order_id
    with pytest.raises(AuthorizationError):
        await service.get_order(order_id, other_customer)


@pytest.mark.asyncio
async def test_list_orders(test_session, make_tour, place_order, customer, other_customer):
    """Users see only their own orders; staff can filter everyone's by status."""
    tour_id = await make_tour(group_size=20)
    first_id = await place_order(tour_id, 1, customer)
    second_id = await place_order(tour_id, 2, customer)
    other_id = await place_order(tour_id, 3, other_customer)
    service = OrderService(test_session)
    await service.cancel_order(first_id, customer)

    mine = await service.list_orders_for_user(customer.user_id)
    assert [order.id for order in mine] == [second_id, first_id]

    pending = await service.list_orders_for_user(customer.user_id, status=OrderStatus.PENDING)
    assert [order.id for order in pending] == [second_id]

    everyone = await service.list_orders()
    assert {order.id for order in everyone} == {first_id, second_id, other_id}

    cancelled = await service.list_orders(status=OrderStatus.CANCELLED)
    assert [order.id for order in cancelled] == [first_id]

    limited = await service.list_orders(limit=2)
    assert len(limited) == 2


@pytest.mark.asyncio
async def test_is_active_follows_status(test_session, make_tour, place_order, customer):
    """Only PENDING and CONFIRMED orders count as active."""
    tour_id = await make_tour(group_size=4)
    order_id = await place_order(tour_id, 1, customer)
    service = OrderService(test_session)

    assert (await service.get_order_by_id_or_raise(order_id)).is_active

    order = await service.cancel_order(order_id, customer)
    assert not order.is_active


@pytest.mark.asyncio
async def test_large_order_total(test_session, make_tour, customer):
    """Totals beyond 32 bits are stored exactly."""
    tour_id = await make_tour(group_size=10, price_amount=1_500_000_000)

    order = await OrderService(test_session).create_order(
        CreateOrderRequest(tour_id=tour_id, quantity=3, contact_email="ada@example.com"),
        customer
    )

    assert order.total_amount == 4_500_000_000


def test_money_amount_upper_bound():
    """Prices are capped so any order total fits the amount column."""
    with pytest.raises(PydanticValidationError):
        Money(amount=MAX_AMOUNT + 1, currency="USD")
    assert Money(amount=MAX_AMOUNT, currency="USD").amount == MAX_AMOUNT


@pytest_asyncio.fixture
async def file_sessions(tmp_path):
    """Session factory on a file database so two sessions see each other's commits."""
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'orders.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    yield async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False, autoflush=False)

    await engine.dispose()


async def seed_order(session_factory, customer) -> tuple[int, int]:
    async with session_factory() as session:
        tours = TourService(session)
        destination = await tours.create_destination(
            CreateDestinationRequest(name="Japan", slug="japan")
        )
        tour = await tours.create_tour(
            CreateTourRequest(
                destination_id=destination.id,
                title="Kumano Kodo Trail",
                slug="kumano-kodo",
                price=Money(amount=45000, currency="JPY"),
                group_size=8,
            )
        )
        order = await OrderService(session).create_order(
            CreateOrderRequest(tour_id=tour.id, quantity=2, contact_email="ada@example.com"),
            customer
        )
        return tour.id, order.id


@pytest.mark.asyncio
@pytest.mark.parametrize("staff_move", [False, True])
async def test_tour_deleted_while_locking_order(
    file_sessions, customer, manager, monkeypatch, staff_move
):
    """A tour deleted between reading the order and locking it reports the cancelled order."""
    tour_id, order_id = await seed_order(file_sessions, customer)

    async with file_sessions() as session, file_sessions() as other_session:
        service = OrderService(session)
        read_order = service.get_order_by_id_or_raise

        async def read_then_delete_tour(order_id):
            order = await read_order(order_id)
            await TourLifecycleService(other_session).delete_tour(tour_id, manager)
            return order

        monkeypatch.setattr(service, "get_order_by_id_or_raise", read_then_delete_tour)

        with pytest.raises(InvalidTransitionError) as exc_info:
            if staff_move:
                await service.set_order_status(order_id, OrderStatus.CANCELLED, manager)
            else:
                await service.cancel_order(order_id, customer)

        assert exc_info.value.problem_details["current_status"] == "CANCELLED"
        monkeypatch.undo()

        order = await service.get_order_by_id_or_raise(order_id)
        assert order.status == OrderStatus.CANCELLED
        assert order.tour_id is None
