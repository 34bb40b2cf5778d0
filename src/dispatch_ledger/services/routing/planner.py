"""Route creation: validation, sequencing and the atomic Route + Stops write."""

from __future__ import annotations

import logging
import secrets
import string
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Callable, Optional, Sequence

from ...config import settings
from ...exceptions import ValidationError
from ...models.domain import NewRoute, NewStop, Order, OrderStatus, Route
from ...persistence.repository import DispatchRepository
from ..retry import retry_persistence
from .optimizer import RouteOptimizerGateway

logger = logging.getLogger(__name__)

DEFAULT_ADDRESS_TEXT = "No address"
DEFAULT_CUSTOMER_NAME = "Unknown"
_ROUTE_SUFFIX_ALPHABET = string.ascii_uppercase + string.digits


def generate_route_number(now: datetime, prefix: str | None = None) -> str:
    """Build a route number like ``RT-20250131-7K2Q``."""
    suffix = "".join(secrets.choice(_ROUTE_SUFFIX_ALPHABET) for _ in range(4))
    return f"{prefix or settings.route_number_prefix}-{now:%Y%m%d}-{suffix}"


@dataclass(slots=True)
class PlannedRoute:
    route: Route
    ordered_order_ids: list[str]
    optimized: bool


class RoutePlanner:
    def __init__(
        self,
        repository: DispatchRepository,
        optimizer: RouteOptimizerGateway,
        *,
        clock: Callable[[], datetime] | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        self.repository = repository
        self.optimizer = optimizer
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.max_retries = max_retries if max_retries is not None else settings.persistence_max_retries
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.persistence_backoff_seconds
        )

    def _validated_orders(self, distributor_id: str, order_ids: Sequence[str]) -> list[Order]:
        """Load the orders in caller order, rejecting the first one that cannot be routed."""
        if not order_ids:
            raise ValidationError("At least one order is required to create a route")
        duplicates = sorted({oid for oid in order_ids if order_ids.count(oid) > 1})
        if duplicates:
            raise ValidationError(
                f"Order '{duplicates[0]}' was selected more than once",
                {"order_ids": duplicates},
            )

        found = {order.id: order for order in self.repository.get_orders(order_ids)}
        orders: list[Order] = []
        for order_id in order_ids:
            order = found.get(order_id)
            if order is None or order.distributor_id != distributor_id:
                raise ValidationError(
                    f"Order '{order_id}' does not belong to this distributor",
                    {"order_id": order_id, "reason": "not_found"},
                )
            if order.status is not OrderStatus.APPROVED:
                raise ValidationError(
                    f"Order '{order_id}' is not approved (status: {order.status.value})",
                    {"order_id": order_id, "reason": "not_approved", "status": order.status.value},
                )
            if order.delivery_location is None:
                raise ValidationError(
                    f"Order '{order_id}' has no valid delivery coordinates",
                    {"order_id": order_id, "reason": "missing_coordinates"},
                )
            orders.append(order)
        return orders

    def create_route(
        self,
        distributor_id: str,
        driver_id: str,
        created_by: str,
        order_ids: Sequence[str],
        planned_date: date,
        notes: Optional[str] = None,
    ) -> PlannedRoute:
        """Create an active route with one pending stop per order.

        Raises:
            ValidationError: If the input or any order fails validation. Nothing is written.
            ConflictError: If an order stopped being approved while the route was being built.
            PersistenceError: If the atomic write keeps failing after retries.
        """
        if not driver_id:
            raise ValidationError("A driver is required to create a route")
        orders = self._validated_orders(distributor_id, list(order_ids))
        by_id = {order.id: order for order in orders}

        sequence = [order.id for order in orders]
        optimized = False
        warehouse = self.repository.get_warehouse_location(distributor_id)
        if warehouse is not None and len(orders) >= 2:
            result = self.optimizer.optimize(
                warehouse,
                [(order.id, order.delivery_location) for order in orders],
            )
            sequence, optimized = result.ordered_ids, result.optimized
        elif warehouse is None:
            logger.info(f"Distributor {distributor_id} has no warehouse location; keeping caller order")

        stops = [
            NewStop(
                order_id=order_id,
                sequence_order=position,
                delivery_location=by_id[order_id].delivery_location,
                delivery_address_text=by_id[order_id].delivery_address_text or DEFAULT_ADDRESS_TEXT,
                customer_name=by_id[order_id].customer_name or DEFAULT_CUSTOMER_NAME,
                customer_phone=by_id[order_id].customer_phone,
            )
            for position, order_id in enumerate(sequence, start=1)
        ]
        now = self.clock()
        new_route = NewRoute(
            distributor_id=distributor_id,
            driver_id=driver_id,
            created_by=created_by,
            planned_date=planned_date,
            route_number=generate_route_number(now),
            notes=notes,
            created_at=now,
        )

        route = retry_persistence(
            lambda: self.repository.create_route(new_route, stops),
            max_retries=self.max_retries,
            backoff_seconds=self.backoff_seconds,
            description=f"create route {new_route.route_number}",
        )
        logger.info(
            f"Created route {route.route_number} with {route.total_stops} stops "
            f"({'optimized' if optimized else 'caller order'})"
        )
        return PlannedRoute(route=route, ordered_order_ids=sequence, optimized=optimized)

    def routable_orders(self, distributor_id: str) -> list[Order]:
        """Approved orders of the distributor that resolve to valid delivery coordinates."""
        orders = self.repository.list_orders(distributor_id, OrderStatus.APPROVED)
        routable = [order for order in orders if order.delivery_location is not None]
        if len(routable) < len(orders):
            logger.info(
                f"Distributor {distributor_id}: {len(orders) - len(routable)} approved orders "
                "have no valid delivery coordinates"
            )
        return routable
