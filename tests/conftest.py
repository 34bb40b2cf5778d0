import itertools
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from dispatch_ledger.models.domain import Coordinate, Order, OrderStatus, PaymentMethod
from dispatch_ledger.persistence.memory import InMemoryRepository
from dispatch_ledger.services.routing.optimizer import RouteOptimizerGateway
from dispatch_ledger.services.routing.planner import RoutePlanner

NOW = datetime(2025, 1, 31, 9, 0, tzinfo=timezone.utc)
_UNSET = object()


@pytest.fixture
def repository() -> InMemoryRepository:
    return InMemoryRepository()


@pytest.fixture
def clock():
    return lambda: NOW


@pytest.fixture
def make_order(repository):
    counter = itertools.count(1)

    def _make(
        total="100000",
        method=PaymentMethod.CASH,
        status=OrderStatus.APPROVED,
        location=_UNSET,
        distributor_id="dist-1",
    ) -> Order:
        n = next(counter)
        order = Order(
            id=f"order-{n}",
            distributor_id=distributor_id,
            customer_id=f"customer-{n}",
            total_amount=Decimal(total),
            payment_method=method,
            status=status,
            order_number=f"ORD-{n:04d}",
            delivery_location=Coordinate(24.70 + n * 0.01, 46.67 + n * 0.01) if location is _UNSET else location,
            delivery_address_text=f"Street {n}",
            customer_name=f"Customer {n}",
            customer_phone=f"+9665000000{n:02d}",
        )
        return repository.add_order(order)

    return _make


@pytest.fixture
def make_route(repository, make_order, clock):
    """Create an active route over fresh orders; returns the route and its stops in sequence."""

    def _make(*totals, methods=None):
        totals = totals or ("100000",)
        methods = methods or [PaymentMethod.CASH] * len(totals)
        orders = [make_order(total=total, method=method) for total, method in zip(totals, methods)]
        planner = RoutePlanner(repository, RouteOptimizerGateway(), clock=clock, max_retries=0, backoff_seconds=0)
        planned = planner.create_route("dist-1", "driver-1", "admin-1", [o.id for o in orders], NOW.date())
        return planned.route, repository.list_stops(planned.route.id)

    return _make
