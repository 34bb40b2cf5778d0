"""
Supabase-backed repository.

Reads go through PostgREST table queries. Every atomic write is one Postgres
function (see ``sql/dispatch_functions.sql``) called through ``rpc`` so that it
commits or rolls back as a single transaction. The functions signal domain
failures with custom SQLSTATEs which are mapped back onto the exception
hierarchy here.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from typing import Any, Optional, Sequence

import httpx
from postgrest.exceptions import APIError
from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError
from supabase import Client

from ..exceptions import (
    ConflictError,
    InvalidStateError,
    NotFoundError,
    PersistenceError,
    ValidationError,
)
from ..models.domain import (
    Coordinate,
    DeliveryOutcome,
    DeliveryRecord,
    NewPayment,
    NewRoute,
    NewStop,
    Order,
    OrderBalance,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Route,
    RouteSettlement,
    RouteStatus,
    RouteStop,
    RouteSummary,
    StopStatus,
)
from ..services.geospatial import parse_location
from ..services.ledger.balance import compute_balance
from .repository import DispatchRepository

logger = logging.getLogger(__name__)

ORDERS_TABLE = "orders"
PAYMENTS_TABLE = "payments"
ROUTES_TABLE = "routes"
STOPS_TABLE = "route_stops"
DISTRIBUTOR_SETTINGS_VIEW = "v_distributor_settings"

ORDER_COLUMNS = "*, customer:profiles!orders_customer_id_fkey(full_name, phone)"

_datetime_adapter = TypeAdapter(datetime)
_date_adapter = TypeAdapter(date)


class MalformedRowError(PersistenceError):
    """A row read from Supabase could not be mapped onto a domain object."""

    code = "MALFORMED_ROW"


def _decimal(value: Any) -> Decimal:
    if value is None:
        return Decimal("0")
    try:
        return Decimal(str(value))
    except InvalidOperation as exc:
        raise MalformedRowError(f"Invalid amount {value!r}") from exc


def _datetime(value: Any) -> Optional[datetime]:
    if value in (None, ""):
        return None
    return _datetime_adapter.validate_python(value)


def _date(value: Any) -> date:
    return _date_adapter.validate_python(value)


def _optional_str(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def order_from_row(row: Mapping[str, Any]) -> Order:
    customer = row.get("customer") or {}
    address = row.get("delivery_address_snapshot")
    address_text = address.get("street_address") if isinstance(address, Mapping) else None
    return Order(
        id=str(row["id"]),
        distributor_id=str(row["distributor_id"]),
        customer_id=str(row["customer_id"]),
        total_amount=_decimal(row.get("total_amount")),
        payment_method=PaymentMethod(row.get("payment_method") or PaymentMethod.CASH.value),
        status=OrderStatus(row["status"]),
        payment_status=PaymentStatus(row.get("payment_status") or PaymentStatus.PENDING.value),
        order_number=_optional_str(row.get("order_number")),
        delivery_location=parse_location(row.get("delivery_location")),
        delivery_address_text=address_text,
        customer_name=customer.get("full_name"),
        customer_phone=customer.get("phone"),
        delivered_at=_datetime(row.get("delivered_at")),
        delivered_by=_optional_str(row.get("delivered_by")),
    )


def payment_from_row(row: Mapping[str, Any]) -> Payment:
    return Payment(
        id=str(row["id"]),
        order_id=str(row["order_id"]),
        customer_id=str(row["customer_id"]),
        distributor_id=str(row["distributor_id"]),
        amount=_decimal(row["amount"]),
        method=PaymentMethod(row["payment_method"]),
        payment_date=_date(row["payment_date"]),
        created_by=str(row["created_by"]),
        notes=row.get("notes"),
        route_id=_optional_str(row.get("route_id")),
        created_at=_datetime(row.get("created_at")),
    )


def route_from_row(row: Mapping[str, Any]) -> Route:
    settlement = None
    if row.get("settlement_total_expected") is not None:
        settlement = RouteSettlement(
            total_expected=_decimal(row["settlement_total_expected"]),
            total_collected=_decimal(row.get("settlement_total_collected")),
            difference=_decimal(row.get("settlement_difference")),
        )
    return Route(
        id=str(row["id"]),
        distributor_id=str(row["distributor_id"]),
        driver_id=str(row["driver_id"]),
        created_by=str(row["created_by"]),
        planned_date=_date(row["planned_date"]),
        status=RouteStatus(row["status"]),
        total_stops=int(row.get("total_stops") or 0),
        route_number=str(row["route_number"]),
        notes=row.get("notes"),
        created_at=_datetime(row.get("created_at")),
        completed_at=_datetime(row.get("completed_at")),
        finished_at=_datetime(row.get("finished_at")),
        finished_by=_optional_str(row.get("finished_by")),
        settlement=settlement,
    )


def stop_from_row(row: Mapping[str, Any]) -> RouteStop:
    return RouteStop(
        id=str(row["id"]),
        route_id=str(row["route_id"]),
        order_id=str(row["order_id"]),
        sequence_order=int(row["sequence_order"]),
        status=StopStatus(row["status"]),
        delivery_location=parse_location(row.get("delivery_location")),
        delivery_address_text=row.get("delivery_address_text") or "",
        customer_name=row.get("customer_name") or "",
        customer_phone=row.get("customer_phone"),
        delivered_at=_datetime(row.get("delivered_at")),
        delivered_by=_optional_str(row.get("delivered_by")),
        notes=row.get("notes"),
        failure_reason=row.get("failure_reason"),
    )


def _payment_params(payment: NewPayment) -> dict[str, Any]:
    return {
        "order_id": payment.order_id,
        "customer_id": payment.customer_id,
        "distributor_id": payment.distributor_id,
        "amount": str(payment.amount),
        "payment_method": payment.method.value,
        "payment_date": payment.payment_date.isoformat(),
        "created_by": payment.created_by,
        "notes": payment.notes,
        "route_id": payment.route_id,
    }


def _translate_api_error(exc: APIError, description: str) -> Exception:
    """Map a PostgREST error raised by our functions onto the domain hierarchy."""
    code = exc.code or ""
    message = exc.message or description
    if code == "DL400":
        return ValidationError(message)
    if code == "DL404":
        return NotFoundError(message, exc.details or "")
    if code == "DL409":
        return ConflictError(message, {"detail": exc.details} if exc.details else None)
    if code == "DL422":
        return InvalidStateError(message, {"detail": exc.details} if exc.details else None)
    return PersistenceError(
        f"{description} failed: {message}",
        {"code": code, "hint": exc.hint, "details": exc.details},
    )


class SupabaseRepository(DispatchRepository):
    def __init__(self, client: Client) -> None:
        self.client = client

    def _execute(self, query, description: str) -> Any:
        try:
            response = query.execute()
        except APIError as exc:
            error = _translate_api_error(exc, description)
            if isinstance(error, PersistenceError):
                logger.error(f"{description}: {exc.message} ({exc.code})")
            raise error from exc
        except httpx.HTTPError as exc:
            logger.error(f"{description}: {exc}")
            raise PersistenceError(f"{description} failed: {exc}") from exc
        return response.data

    def _rpc(self, function: str, params: dict[str, Any]) -> Any:
        return self._execute(self.client.rpc(function, params), f"rpc {function}")

    @staticmethod
    def _map(mapper, rows: Any, description: str) -> list:
        try:
            return [mapper(row) for row in rows or []]
        except (KeyError, TypeError, ValueError, PydanticValidationError) as exc:
            raise MalformedRowError(f"Malformed {description} row: {exc}") from exc

    def _one(self, mapper, rows: Any, description: str):
        mapped = self._map(mapper, rows if isinstance(rows, list) else [rows] if rows else [], description)
        return mapped[0] if mapped else None

    # Reads

    def get_orders(self, order_ids: Sequence[str]) -> list[Order]:
        if not order_ids:
            return []
        rows = self._execute(
            self.client.table(ORDERS_TABLE).select(ORDER_COLUMNS).in_("id", list(order_ids)),
            f"load {len(order_ids)} orders",
        )
        return self._map(order_from_row, rows, "order")

    def list_orders(self, distributor_id: str, status: OrderStatus) -> list[Order]:
        rows = self._execute(
            self.client.table(ORDERS_TABLE)
            .select(ORDER_COLUMNS)
            .eq("distributor_id", distributor_id)
            .eq("status", status.value)
            .order("created_at"),
            f"list {status.value} orders for distributor {distributor_id}",
        )
        return self._map(order_from_row, rows, "order")

    def get_order_ledger(self, order_id: str) -> Optional[tuple[Order, list[Payment]]]:
        data = self._rpc("dispatch_order_ledger", {"p_order_id": order_id})
        if not data or not data.get("order"):
            return None
        order = self._one(order_from_row, data["order"], "order")
        return order, self._map(payment_from_row, data.get("payments"), "payment")

    def list_payments(self, order_ids: Sequence[str]) -> list[Payment]:
        if not order_ids:
            return []
        rows = self._execute(
            self.client.table(PAYMENTS_TABLE).select("*").in_("order_id", list(order_ids)),
            f"load payments for {len(order_ids)} orders",
        )
        return self._map(payment_from_row, rows, "payment")

    def list_route_payments(self, route_id: str) -> list[Payment]:
        rows = self._execute(
            self.client.table(PAYMENTS_TABLE).select("*").eq("route_id", route_id).order("created_at"),
            f"load payments for route {route_id}",
        )
        return self._map(payment_from_row, rows, "payment")

    def get_route(self, route_id: str) -> Optional[Route]:
        rows = self._execute(
            self.client.table(ROUTES_TABLE).select("*").eq("id", route_id).limit(1),
            f"load route {route_id}",
        )
        return self._one(route_from_row, rows, "route")

    def get_stop(self, stop_id: str) -> Optional[RouteStop]:
        rows = self._execute(
            self.client.table(STOPS_TABLE).select("*").eq("id", stop_id).limit(1),
            f"load stop {stop_id}",
        )
        return self._one(stop_from_row, rows, "route stop")

    def list_stops(self, route_id: str) -> list[RouteStop]:
        rows = self._execute(
            self.client.table(STOPS_TABLE).select("*").eq("route_id", route_id).order("sequence_order"),
            f"load stops for route {route_id}",
        )
        return self._map(stop_from_row, rows, "route stop")

    def list_routes(
        self,
        distributor_id: str,
        status: Optional[RouteStatus] = None,
        driver_id: Optional[str] = None,
    ) -> list[RouteSummary]:
        query = self.client.table(ROUTES_TABLE).select("*").eq("distributor_id", distributor_id)
        if status is not None:
            query = query.eq("status", status.value)
        if driver_id is not None:
            query = query.eq("driver_id", driver_id)
        routes = self._map(
            route_from_row,
            self._execute(
                query.order("planned_date", desc=True).order("created_at", desc=True),
                f"list routes for distributor {distributor_id}",
            ),
            "route",
        )
        if not routes:
            return []

        stop_rows = self._execute(
            self.client.table(STOPS_TABLE).select("route_id, status").in_("route_id", [r.id for r in routes]),
            f"count stops for {len(routes)} routes",
        )
        counts: dict[tuple[str, str], int] = {}
        for row in stop_rows or []:
            key = (str(row["route_id"]), row["status"])
            counts[key] = counts.get(key, 0) + 1
        return [
            RouteSummary(
                route=route,
                completed_stops=counts.get((route.id, StopStatus.COMPLETED.value), 0),
                failed_stops=counts.get((route.id, StopStatus.FAILED.value), 0),
            )
            for route in routes
        ]

    def get_warehouse_location(self, distributor_id: str) -> Optional[Coordinate]:
        rows = self._execute(
            self.client.table(DISTRIBUTOR_SETTINGS_VIEW)
            .select("location_json")
            .eq("distributor_id", distributor_id)
            .limit(1),
            f"load warehouse for distributor {distributor_id}",
        )
        if not rows:
            return None
        return parse_location(rows[0].get("location_json"))

    # Atomic writes

    def create_route(self, route: NewRoute, stops: Sequence[NewStop]) -> Route:
        params = {
            "p_route": {
                "distributor_id": route.distributor_id,
                "driver_id": route.driver_id,
                "created_by": route.created_by,
                "planned_date": route.planned_date.isoformat(),
                "route_number": route.route_number,
                "notes": route.notes,
                "created_at": route.created_at.isoformat() if route.created_at else None,
            },
            "p_stops": [
                {
                    "order_id": stop.order_id,
                    "sequence_order": stop.sequence_order,
                    "latitude": stop.delivery_location.latitude,
                    "longitude": stop.delivery_location.longitude,
                    "delivery_address_text": stop.delivery_address_text,
                    "customer_name": stop.customer_name,
                    "customer_phone": stop.customer_phone,
                }
                for stop in stops
            ],
        }
        data = self._rpc("dispatch_create_route", params)
        return self._one(route_from_row, data, "route")

    def record_delivery(self, record: DeliveryRecord) -> DeliveryOutcome:
        params = {
            "p_stop_id": record.stop_id,
            "p_order_id": record.order_id,
            "p_actor_id": record.actor_id,
            "p_occurred_at": record.occurred_at.isoformat(),
            "p_notes": record.notes,
            "p_payment": _payment_params(record.payment) if record.payment else None,
        }
        data = self._rpc("dispatch_record_delivery", params)
        order = self._one(order_from_row, data["order"], "order")
        payments = self._map(payment_from_row, data.get("payments"), "payment")
        return DeliveryOutcome(
            stop=self._one(stop_from_row, data["stop"], "route stop"),
            order=order,
            balance=compute_balance(order, payments),
            payment=self._one(payment_from_row, data.get("payment"), "payment"),
        )

    def record_failure(self, stop_id: str, reason: str, actor_id: str, occurred_at: datetime) -> RouteStop:
        data = self._rpc(
            "dispatch_record_failure",
            {
                "p_stop_id": stop_id,
                "p_reason": reason,
                "p_actor_id": actor_id,
                "p_occurred_at": occurred_at.isoformat(),
            },
        )
        return self._one(stop_from_row, data, "route stop")

    def mark_route_completed(self, route_id: str, occurred_at: datetime) -> bool:
        data = self._rpc(
            "dispatch_mark_route_completed",
            {"p_route_id": route_id, "p_occurred_at": occurred_at.isoformat()},
        )
        return bool(data)

    def finish_route(
        self,
        route_id: str,
        actor_id: str,
        occurred_at: datetime,
    ) -> tuple[Route, bool]:
        data = self._rpc(
            "dispatch_finish_route",
            {
                "p_route_id": route_id,
                "p_actor_id": actor_id,
                "p_occurred_at": occurred_at.isoformat(),
            },
        )
        return self._one(route_from_row, data["route"], "route"), bool(data.get("newly_finished"))

    def record_payment(self, payment: NewPayment) -> tuple[Payment, OrderBalance]:
        data = self._rpc("dispatch_record_payment", {"p_payment": _payment_params(payment)})
        order = self._one(order_from_row, data["order"], "order")
        payments = self._map(payment_from_row, data.get("payments"), "payment")
        return self._one(payment_from_row, data["payment"], "payment"), compute_balance(order, payments)
