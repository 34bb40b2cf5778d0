from datetime import date, datetime, timezone
from decimal import Decimal
from types import SimpleNamespace

import httpx
import pytest
from postgrest.exceptions import APIError

from dispatch_ledger.exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from dispatch_ledger.models.domain import (
    Coordinate,
    DeliveryRecord,
    NewPayment,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    RouteSettlement,
    RouteStatus,
    StopStatus,
)
from dispatch_ledger.persistence.supabase_repository import MalformedRowError, SupabaseRepository

ORDER_ROW = {
    "id": "order-1",
    "distributor_id": "dist-1",
    "customer_id": "customer-1",
    "total_amount": "100000.00",
    "payment_method": "cash",
    "status": "in_transit",
    "payment_status": "pending",
    "order_number": "ORD-0001",
    "delivery_location": "SRID=4326;POINT(46.6753 24.7136)",
    "delivery_address_snapshot": {"street_address": "King Fahd Rd 12"},
    "customer": {"full_name": "Al Noor Market", "phone": "+966500000001"},
    "delivered_at": None,
    "delivered_by": None,
}

STOP_ROW = {
    "id": "stop-1",
    "route_id": "route-1",
    "order_id": "order-1",
    "sequence_order": 1,
    "status": "completed",
    "delivery_location": {"type": "Point", "coordinates": [46.6753, 24.7136]},
    "delivery_address_text": "King Fahd Rd 12",
    "customer_name": "Al Noor Market",
    "customer_phone": "+966500000001",
    "delivered_at": "2025-01-31T15:30:00+00:00",
    "delivered_by": "driver-1",
    "notes": None,
    "failure_reason": None,
}

ROUTE_ROW = {
    "id": "route-1",
    "distributor_id": "dist-1",
    "driver_id": "driver-1",
    "created_by": "admin-1",
    "planned_date": "2025-02-01",
    "status": "finished",
    "total_stops": 1,
    "route_number": "RT-20250131-AB12",
    "notes": None,
    "created_at": "2025-01-31T09:00:00Z",
    "completed_at": "2025-01-31T15:30:00Z",
    "finished_at": "2025-01-31T20:00:00Z",
    "finished_by": "admin-1",
    "settlement_total_expected": "200000",
    "settlement_total_collected": "150000",
    "settlement_difference": "50000",
}

PAYMENT_ROW = {
    "id": "payment-1",
    "order_id": "order-1",
    "customer_id": "customer-1",
    "distributor_id": "dist-1",
    "amount": 60000,
    "payment_method": "cash",
    "payment_date": "2025-01-31",
    "created_by": "driver-1",
    "notes": "Collected by driver on delivery",
    "route_id": "route-1",
    "created_at": "2025-01-31T15:30:00.123456+00:00",
}


class FakeQuery:
    def __init__(self, client, name, params=None):
        self.client = client
        self.name = name
        self.params = params
        self.filters = []

    def select(self, columns):
        self.filters.append(("select", columns))
        return self

    def eq(self, column, value):
        self.filters.append(("eq", column, value))
        return self

    def in_(self, column, values):
        self.filters.append(("in", column, tuple(values)))
        return self

    def order(self, column, desc=False):
        self.filters.append(("order", column, "desc") if desc else ("order", column))
        return self

    def limit(self, count):
        self.filters.append(("limit", count))
        return self

    def execute(self):
        self.client.executed.append(self)
        result = self.client.responses[self.name]
        if isinstance(result, Exception):
            raise result
        return SimpleNamespace(data=result)


class FakeClient:
    def __init__(self, responses):
        self.responses = responses
        self.executed = []

    def table(self, name):
        return FakeQuery(self, name)

    def rpc(self, name, params):
        return FakeQuery(self, name, params)


def _api_error(code, message, details=None):
    return APIError({"code": code, "message": message, "details": details, "hint": None})


def test_order_rows_are_mapped_to_typed_orders():
    client = FakeClient({"orders": [ORDER_ROW]})

    [order] = SupabaseRepository(client).get_orders(["order-1"])

    assert order.total_amount == Decimal("100000.00")
    assert order.status is OrderStatus.IN_TRANSIT
    assert order.payment_method is PaymentMethod.CASH
    assert order.delivery_location == Coordinate(24.7136, 46.6753)
    assert order.delivery_address_text == "King Fahd Rd 12"
    assert order.customer_name == "Al Noor Market"
    query = client.executed[0]
    assert ("in", "id", ("order-1",)) in query.filters


def test_missing_rows_read_as_none():
    client = FakeClient({"orders": [], "routes": [], "route_stops": [], "dispatch_order_ledger": None})
    repository = SupabaseRepository(client)

    assert repository.get_route("x") is None
    assert repository.get_stop("x") is None
    assert repository.get_order_ledger("x") is None
    assert repository.get_orders([]) == []


def test_route_row_carries_stored_settlement():
    route = SupabaseRepository(FakeClient({"routes": [ROUTE_ROW]})).get_route("route-1")

    assert route.status is RouteStatus.FINISHED
    assert route.planned_date == date(2025, 2, 1)
    assert route.finished_at == datetime(2025, 1, 31, 20, 0, tzinfo=timezone.utc)
    assert route.settlement == RouteSettlement(Decimal("200000"), Decimal("150000"), Decimal("50000"))


def test_stops_are_requested_in_sequence():
    client = FakeClient({"route_stops": [STOP_ROW]})

    stops = SupabaseRepository(client).list_stops("route-1")

    assert stops[0].status is StopStatus.COMPLETED
    assert stops[0].delivery_location == Coordinate(24.7136, 46.6753)
    assert ("order", "sequence_order") in client.executed[0].filters


def test_warehouse_location_comes_from_distributor_settings():
    client = FakeClient({"v_distributor_settings": [{"location_json": {"lat": 24.7136, "lng": 46.6753}}]})

    assert SupabaseRepository(client).get_warehouse_location("dist-1") == Coordinate(24.7136, 46.6753)


def test_record_delivery_uses_one_rpc_and_derives_balance():
    outcome_order = dict(ORDER_ROW, status="delivered", payment_status="partial")
    client = FakeClient(
        {
            "dispatch_record_delivery": {
                "stop": STOP_ROW,
                "order": outcome_order,
                "payment": PAYMENT_ROW,
                "payments": [PAYMENT_ROW],
            }
        }
    )
    occurred_at = datetime(2025, 1, 31, 15, 30, tzinfo=timezone.utc)
    record = DeliveryRecord(
        stop_id="stop-1",
        order_id="order-1",
        actor_id="driver-1",
        occurred_at=occurred_at,
        payment=NewPayment(
            order_id="order-1",
            customer_id="customer-1",
            distributor_id="dist-1",
            amount=Decimal("60000"),
            method=PaymentMethod.CASH,
            payment_date=date(2025, 1, 31),
            created_by="driver-1",
            route_id="route-1",
        ),
    )

    outcome = SupabaseRepository(client).record_delivery(record)

    assert len(client.executed) == 1
    params = client.executed[0].params
    assert params["p_stop_id"] == "stop-1"
    assert params["p_payment"]["amount"] == "60000"
    assert params["p_payment"]["route_id"] == "route-1"
    assert outcome.balance.balance_due == Decimal("40000")
    assert outcome.balance.payment_status is PaymentStatus.PARTIAL
    assert outcome.payment.amount == Decimal("60000")
    assert outcome.stop.status is StopStatus.COMPLETED


def test_finish_route_reports_whether_it_moved_the_route():
    client = FakeClient({"dispatch_finish_route": {"route": ROUTE_ROW, "newly_finished": False}})
    route, newly_finished = SupabaseRepository(client).finish_route(
        "route-1", "admin-1", datetime(2025, 1, 31, 20, 0, tzinfo=timezone.utc)
    )

    assert newly_finished is False
    assert route.settlement == RouteSettlement(Decimal("200000"), Decimal("150000"), Decimal("50000"))
    assert client.executed[0].params == {
        "p_route_id": "route-1",
        "p_actor_id": "admin-1",
        "p_occurred_at": "2025-01-31T20:00:00+00:00",
    }


@pytest.mark.parametrize(
    ("error", "expected"),
    [
        (_api_error("DL400", "Payment exceeds the balance due of 10"), ValidationError),
        (_api_error("DL404", "Route stop", "stop-1"), NotFoundError),
        (_api_error("DL409", "Route stop 'stop-1' is already completed"), ConflictError),
        (_api_error("DL422", "Route 'RT-1' cannot be finished while active"), InvalidStateError),
        (_api_error("40P01", "deadlock detected"), PersistenceError),
        (httpx.ConnectError("connection refused"), PersistenceError),
    ],
)
def test_database_errors_map_onto_domain_errors(error, expected):
    client = FakeClient({"dispatch_record_failure": error})

    with pytest.raises(expected):
        SupabaseRepository(client).record_failure(
            "stop-1", "Closed", "driver-1", datetime(2025, 1, 31, tzinfo=timezone.utc)
        )


def test_conflicts_are_not_persistence_errors():
    client = FakeClient({"dispatch_mark_route_completed": _api_error("DL409", "busy")})

    with pytest.raises(ConflictError) as exc_info:
        SupabaseRepository(client).mark_route_completed("route-1", datetime(2025, 1, 31, tzinfo=timezone.utc))
    assert not isinstance(exc_info.value, PersistenceError)


def test_malformed_rows_are_rejected_at_the_boundary():
    client = FakeClient({"orders": [dict(ORDER_ROW, status="teleported")]})

    with pytest.raises(MalformedRowError):
        SupabaseRepository(client).get_orders(["order-1"])


def test_list_routes_filters_and_counts_stops():
    active = dict(
        ROUTE_ROW, id="route-2", status="active", total_stops=3, finished_at=None, settlement_total_expected=None
    )
    client = FakeClient(
        {
            "routes": [active],
            "route_stops": [
                {"route_id": "route-2", "status": "completed"},
                {"route_id": "route-2", "status": "failed"},
                {"route_id": "route-2", "status": "pending"},
            ],
        }
    )

    [summary] = SupabaseRepository(client).list_routes("dist-1", status=RouteStatus.ACTIVE, driver_id="driver-1")

    assert summary.route.id == "route-2"
    assert summary.route.settlement is None
    assert (summary.completed_stops, summary.failed_stops, summary.pending_stops) == (1, 1, 1)
    routes_query, stops_query = client.executed
    assert ("eq", "status", "active") in routes_query.filters
    assert ("eq", "driver_id", "driver-1") in routes_query.filters
    assert ("order", "planned_date", "desc") in routes_query.filters
    assert ("in", "route_id", ("route-2",)) in stops_query.filters


def test_list_routes_without_matches_skips_the_stop_query():
    client = FakeClient({"routes": []})

    assert SupabaseRepository(client).list_routes("dist-1") == []
    assert len(client.executed) == 1
