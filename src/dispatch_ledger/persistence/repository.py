"""Storage interface for the delivery engine.

Reads return typed domain objects. Writes that touch more than one entity are
only available as atomic operations: an implementation either applies all of
an operation's effects or none of them, and raises ``PersistenceError`` in the
latter case.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Optional, Sequence

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
    RouteStatus,
    RouteStop,
    RouteSummary,
)


class DispatchRepository(ABC):
    # Reads

    @abstractmethod
    def get_orders(self, order_ids: Sequence[str]) -> list[Order]:
        ...

    @abstractmethod
    def list_orders(self, distributor_id: str, status: OrderStatus) -> list[Order]:
        ...

    @abstractmethod
    def get_order_ledger(self, order_id: str) -> Optional[tuple[Order, list[Payment]]]:
        """Return the order and all of its payments read from one snapshot."""

    @abstractmethod
    def list_payments(self, order_ids: Sequence[str]) -> list[Payment]:
        ...

    @abstractmethod
    def list_route_payments(self, route_id: str) -> list[Payment]:
        """Payments recorded against the route's stops."""

    @abstractmethod
    def get_route(self, route_id: str) -> Optional[Route]:
        ...

    @abstractmethod
    def get_stop(self, stop_id: str) -> Optional[RouteStop]:
        ...

    @abstractmethod
    def list_stops(self, route_id: str) -> list[RouteStop]:
        """Stops of a route ordered by ``sequence_order``."""

    @abstractmethod
    def list_routes(
        self,
        distributor_id: str,
        status: Optional[RouteStatus] = None,
        driver_id: Optional[str] = None,
    ) -> list[RouteSummary]:
        """A distributor's routes, newest first, with their stop counts."""

    @abstractmethod
    def get_warehouse_location(self, distributor_id: str) -> Optional[Coordinate]:
        ...

    # Atomic writes

    @abstractmethod
    def create_route(self, route: NewRoute, stops: Sequence[NewStop]) -> Route:
        """Insert the route and its stops and move every referenced order to ``in_transit``.

        Raises:
            ConflictError: If any order is no longer ``approved``.
        """

    @abstractmethod
    def record_delivery(self, record: DeliveryRecord) -> DeliveryOutcome:
        """Complete a pending stop, append the optional payment and update the order.

        The stop change is a compare-and-swap on ``status = pending``.

        Raises:
            ConflictError: If the stop is already terminal.
        """

    @abstractmethod
    def record_failure(self, stop_id: str, reason: str, actor_id: str, occurred_at: datetime) -> RouteStop:
        """Compare-and-swap a pending stop to ``failed``.

        Raises:
            ConflictError: If the stop is already terminal.
        """

    @abstractmethod
    def mark_route_completed(self, route_id: str, occurred_at: datetime) -> bool:
        """Move the route from ``active`` to ``completed``. Returns False when it was not active."""

    @abstractmethod
    def finish_route(
        self,
        route_id: str,
        actor_id: str,
        occurred_at: datetime,
    ) -> tuple[Route, bool]:
        """Move a completed route to ``finished`` and store its settlement.

        The settlement is computed from the ledger inside the same atomic step,
        so a payment committed concurrently is either counted or rejected.

        Returns the stored route and whether this call performed the move. A
        route that is already finished is returned unchanged.

        Raises:
            InvalidStateError: If the route is still ``active``.
        """

    @abstractmethod
    def record_payment(self, payment: NewPayment) -> tuple[Payment, OrderBalance]:
        """Append an office payment and store the order's recomputed payment status.

        Raises:
            ValidationError: If the order's payments would exceed its total.
            ConflictError: If the order belongs to a stop of a finished route.
        """
