"""Process-local repository used for tests and when Supabase is not configured.

All operations run under one lock. Atomic writes stage their changes first and
only commit after every step has succeeded, so an injected failure (see
``fail_on``) never leaves partial state behind.
"""

from __future__ import annotations

import logging
import threading
import uuid
from dataclasses import replace
from datetime import datetime, timezone
from typing import Iterable, Optional, Sequence

from ..exceptions import ConflictError, InvalidStateError, NotFoundError, PersistenceError, ValidationError
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
    Route,
    RouteSettlement,
    RouteStatus,
    RouteStop,
    RouteSummary,
    StopStatus,
)
from ..services.ledger.balance import compute_balance
from ..services.settlement.liquidation import compute_settlement
from ..services.workflow import validate_transition
from .repository import DispatchRepository

logger = logging.getLogger(__name__)


def _new_id() -> str:
    return str(uuid.uuid4())


class InMemoryRepository(DispatchRepository):
    def __init__(self, *, fail_on: Iterable[str] = ()) -> None:
        self._lock = threading.RLock()
        self._orders: dict[str, Order] = {}
        self._payments: list[Payment] = []
        self._routes: dict[str, Route] = {}
        self._stops: dict[str, RouteStop] = {}
        self._warehouses: dict[str, Coordinate] = {}
        # Step names: insert_route, insert_stops, update_orders, insert_payment,
        # update_order, update_stop, complete_route, finish_route
        self.fail_on: set[str] = set(fail_on)

    # Seeding helpers

    def add_order(self, order: Order) -> Order:
        with self._lock:
            self._orders[order.id] = replace(order)
        return order

    def add_payment(self, payment: Payment) -> Payment:
        with self._lock:
            self._payments.append(payment)
        return payment

    def set_warehouse_location(self, distributor_id: str, location: Coordinate) -> None:
        with self._lock:
            self._warehouses[distributor_id] = location

    def _checkpoint(self, step: str) -> None:
        if step in self.fail_on:
            logger.debug(f"Injected write failure at step '{step}'")
            raise PersistenceError(f"Write failed at step '{step}'", {"step": step})

    # Reads

    def get_orders(self, order_ids: Sequence[str]) -> list[Order]:
        with self._lock:
            return [replace(self._orders[oid]) for oid in order_ids if oid in self._orders]

    def list_orders(self, distributor_id: str, status: OrderStatus) -> list[Order]:
        with self._lock:
            return [
                replace(order)
                for order in self._orders.values()
                if order.distributor_id == distributor_id and order.status is status
            ]

    def get_order_ledger(self, order_id: str) -> Optional[tuple[Order, list[Payment]]]:
        with self._lock:
            order = self._orders.get(order_id)
            if order is None:
                return None
            return replace(order), [p for p in self._payments if p.order_id == order_id]

    def list_payments(self, order_ids: Sequence[str]) -> list[Payment]:
        wanted = set(order_ids)
        with self._lock:
            return [p for p in self._payments if p.order_id in wanted]

    def list_route_payments(self, route_id: str) -> list[Payment]:
        with self._lock:
            return [p for p in self._payments if p.route_id == route_id]

    def get_route(self, route_id: str) -> Optional[Route]:
        with self._lock:
            route = self._routes.get(route_id)
            return replace(route) if route else None

    def get_stop(self, stop_id: str) -> Optional[RouteStop]:
        with self._lock:
            stop = self._stops.get(stop_id)
            return replace(stop) if stop else None

    def list_stops(self, route_id: str) -> list[RouteStop]:
        with self._lock:
            stops = [replace(s) for s in self._stops.values() if s.route_id == route_id]
        return sorted(stops, key=lambda s: s.sequence_order)

    def list_routes(
        self,
        distributor_id: str,
        status: Optional[RouteStatus] = None,
        driver_id: Optional[str] = None,
    ) -> list[RouteSummary]:
        with self._lock:
            summaries = []
            for route in self._routes.values():
                if route.distributor_id != distributor_id:
                    continue
                if status is not None and route.status is not status:
                    continue
                if driver_id is not None and route.driver_id != driver_id:
                    continue
                statuses = [s.status for s in self._stops.values() if s.route_id == route.id]
                summaries.append(
                    RouteSummary(
                        route=replace(route),
                        completed_stops=statuses.count(StopStatus.COMPLETED),
                        failed_stops=statuses.count(StopStatus.FAILED),
                    )
                )
        epoch = datetime.min.replace(tzinfo=timezone.utc)
        return sorted(
            summaries,
            key=lambda s: (s.route.planned_date, s.route.created_at or epoch),
            reverse=True,
        )

    def get_warehouse_location(self, distributor_id: str) -> Optional[Coordinate]:
        with self._lock:
            return self._warehouses.get(distributor_id)

    # Atomic writes

    def create_route(self, route: NewRoute, stops: Sequence[NewStop]) -> Route:
        with self._lock:
            orders: list[Order] = []
            for new_stop in stops:
                order = self._orders.get(new_stop.order_id)
                if order is None:
                    raise NotFoundError("Order", new_stop.order_id)
                if order.status is not OrderStatus.APPROVED:
                    raise ConflictError(
                        f"Order '{order.id}' is no longer approved (status: {order.status.value})",
                        {"order_id": order.id, "status": order.status.value},
                    )
                validate_transition(order.status, OrderStatus.IN_TRANSIT)
                orders.append(order)

            staged_route = Route(
                id=_new_id(),
                distributor_id=route.distributor_id,
                driver_id=route.driver_id,
                created_by=route.created_by,
                planned_date=route.planned_date,
                status=RouteStatus.ACTIVE,
                total_stops=len(stops),
                route_number=route.route_number,
                notes=route.notes,
                created_at=route.created_at,
            )
            self._checkpoint("insert_route")

            staged_stops = [
                RouteStop(
                    id=_new_id(),
                    route_id=staged_route.id,
                    order_id=new_stop.order_id,
                    sequence_order=new_stop.sequence_order,
                    status=StopStatus.PENDING,
                    delivery_location=new_stop.delivery_location,
                    delivery_address_text=new_stop.delivery_address_text,
                    customer_name=new_stop.customer_name,
                    customer_phone=new_stop.customer_phone,
                )
                for new_stop in stops
            ]
            self._checkpoint("insert_stops")

            staged_orders = [replace(order, status=OrderStatus.IN_TRANSIT) for order in orders]
            self._checkpoint("update_orders")

            self._routes[staged_route.id] = staged_route
            for stop in staged_stops:
                self._stops[stop.id] = stop
            for order in staged_orders:
                self._orders[order.id] = order
            return replace(staged_route)

    def record_delivery(self, record: DeliveryRecord) -> DeliveryOutcome:
        with self._lock:
            stop = self._require_pending_stop(record.stop_id)
            order = self._orders.get(record.order_id)
            if order is None:
                raise NotFoundError("Order", record.order_id)

            payment: Optional[Payment] = None
            if record.payment is not None:
                payment = self._build_payment(record.payment, record.occurred_at)
                self._checkpoint("insert_payment")

            ledger = [p for p in self._payments if p.order_id == order.id]
            if payment is not None:
                ledger.append(payment)
            balance = compute_balance(order, ledger)

            validate_transition(order.status, OrderStatus.DELIVERED)
            staged_order = replace(
                order,
                status=OrderStatus.DELIVERED,
                delivered_at=record.occurred_at,
                delivered_by=record.actor_id,
                payment_status=balance.payment_status,
            )
            self._checkpoint("update_order")

            validate_transition(stop.status, StopStatus.COMPLETED)
            staged_stop = replace(
                stop,
                status=StopStatus.COMPLETED,
                delivered_at=record.occurred_at,
                delivered_by=record.actor_id,
                notes=record.notes or stop.notes,
            )
            self._checkpoint("update_stop")

            if payment is not None:
                self._payments.append(payment)
            self._orders[staged_order.id] = staged_order
            self._stops[staged_stop.id] = staged_stop
            return DeliveryOutcome(
                stop=replace(staged_stop),
                order=replace(staged_order),
                balance=balance,
                payment=payment,
            )

    def record_failure(self, stop_id: str, reason: str, actor_id: str, occurred_at: datetime) -> RouteStop:
        with self._lock:
            stop = self._require_pending_stop(stop_id)
            validate_transition(stop.status, StopStatus.FAILED)
            staged_stop = replace(
                stop,
                status=StopStatus.FAILED,
                failure_reason=reason,
                notes=reason,
                delivered_by=actor_id,
            )
            self._checkpoint("update_stop")
            self._stops[staged_stop.id] = staged_stop
            return replace(staged_stop)

    def mark_route_completed(self, route_id: str, occurred_at: datetime) -> bool:
        with self._lock:
            route = self._routes.get(route_id)
            if route is None:
                raise NotFoundError("Route", route_id)
            if route.status is not RouteStatus.ACTIVE:
                return False
            validate_transition(route.status, RouteStatus.COMPLETED)
            self._checkpoint("complete_route")
            self._routes[route_id] = replace(route, status=RouteStatus.COMPLETED, completed_at=occurred_at)
            return True

    def finish_route(
        self,
        route_id: str,
        actor_id: str,
        occurred_at: datetime,
    ) -> tuple[Route, bool]:
        with self._lock:
            route = self._routes.get(route_id)
            if route is None:
                raise NotFoundError("Route", route_id)
            if route.status is RouteStatus.FINISHED:
                return replace(route), False
            if route.status is not RouteStatus.COMPLETED:
                raise InvalidStateError(
                    f"Route '{route_id}' cannot be finished while {route.status.value}",
                    {"route_id": route_id, "status": route.status.value},
                )
            validate_transition(route.status, RouteStatus.FINISHED)
            settlement = self._settlement(route_id)
            self._checkpoint("finish_route")
            finished = replace(
                route,
                status=RouteStatus.FINISHED,
                finished_at=occurred_at,
                finished_by=actor_id,
                settlement=settlement,
            )
            self._routes[route_id] = finished
            return replace(finished), True

    def record_payment(self, payment: NewPayment) -> tuple[Payment, OrderBalance]:
        with self._lock:
            order = self._orders.get(payment.order_id)
            if order is None:
                raise NotFoundError("Order", payment.order_id)
            for stop in self._stops.values():
                if stop.order_id != order.id:
                    continue
                route = self._routes[stop.route_id]
                if route.status is RouteStatus.FINISHED:
                    raise ConflictError(
                        f"Order '{order.id}' belongs to finished route '{route.route_number}'",
                        {"order_id": order.id, "route_id": route.id},
                    )

            current = compute_balance(order, self._payments)
            if payment.amount > current.balance_due:
                raise ValidationError(
                    f"Payment of {payment.amount} exceeds the balance due of {current.balance_due}",
                    {"amount": str(payment.amount), "balance_due": str(current.balance_due)},
                )

            staged_payment = self._build_payment(payment, datetime.now(timezone.utc))
            self._checkpoint("insert_payment")

            ledger = [p for p in self._payments if p.order_id == order.id] + [staged_payment]
            balance = compute_balance(order, ledger)
            staged_order = replace(order, payment_status=balance.payment_status)
            self._checkpoint("update_order")

            self._payments.append(staged_payment)
            self._orders[order.id] = staged_order
            return staged_payment, balance

    def _settlement(self, route_id: str) -> RouteSettlement:
        stops = [s for s in self._stops.values() if s.route_id == route_id]
        orders = {s.order_id: self._orders[s.order_id] for s in stops if s.order_id in self._orders}
        return compute_settlement(
            stops,
            orders,
            [p for p in self._payments if p.order_id in orders],
            [p for p in self._payments if p.route_id == route_id],
        )

    def _require_pending_stop(self, stop_id: str) -> RouteStop:
        stop = self._stops.get(stop_id)
        if stop is None:
            raise NotFoundError("Route stop", stop_id)
        if stop.status.is_terminal:
            raise ConflictError(
                f"Route stop '{stop_id}' is already {stop.status.value}",
                {"stop_id": stop_id, "status": stop.status.value},
            )
        route = self._routes.get(stop.route_id)
        if route is not None and route.status is RouteStatus.FINISHED:
            raise ConflictError(
                f"Route '{route.route_number}' is already finished",
                {"route_id": route.id, "status": route.status.value},
            )
        return stop

    @staticmethod
    def _build_payment(payment: NewPayment, created_at: datetime) -> Payment:
        return Payment(
            id=_new_id(),
            order_id=payment.order_id,
            customer_id=payment.customer_id,
            distributor_id=payment.distributor_id,
            amount=payment.amount,
            method=payment.method,
            payment_date=payment.payment_date,
            created_by=payment.created_by,
            notes=payment.notes,
            route_id=payment.route_id,
            created_at=created_at,
        )
