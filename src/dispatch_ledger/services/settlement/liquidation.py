"""
Route liquidation: the admin's one-way close of a completed route.

Expected cash is what cash/transfer orders still owed plus what the driver
collected for them on this route; credit orders are settled elsewhere and are
left out. Collected cash is every payment recorded against the route's stops.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Iterable, Mapping, Optional

from ...config import settings
from ...exceptions import InvalidStateError, NotFoundError, ValidationError
from ...models.domain import (
    Order,
    Payment,
    PaymentMethod,
    Route,
    RouteDetail,
    RouteSettlement,
    RouteStatus,
    RouteStop,
    RouteSummary,
    StopStatus,
)
from ...persistence.repository import DispatchRepository
from ..delivery.cascade import cascade_route_completion
from ..ledger.balance import amount_to_collect, compute_balance
from ..ledger.money import ZERO
from ..retry import retry_persistence

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class LiquidationResult:
    route: Route
    settlement: RouteSettlement
    finished_at: Optional[datetime]
    newly_finished: bool


def compute_settlement(
    stops: Iterable[RouteStop],
    orders: Mapping[str, Order],
    order_payments: Iterable[Payment],
    route_payments: Iterable[Payment],
) -> RouteSettlement:
    """Compute expected-versus-collected totals.

    Args:
        stops: The route's stops.
        orders: Orders referenced by the stops, keyed by id.
        order_payments: The full ledger of those orders, used for balance due.
        route_payments: Payments attributed to this route.
    """
    order_payments = list(order_payments)
    route_payments = list(route_payments)

    collected_by_order: dict[str, Decimal] = {}
    for payment in route_payments:
        collected_by_order[payment.order_id] = collected_by_order.get(payment.order_id, ZERO) + payment.amount

    total_expected = ZERO
    for stop in stops:
        order = orders.get(stop.order_id)
        if order is None:
            continue
        due = amount_to_collect(order, compute_balance(order, order_payments))
        if order.payment_method is not PaymentMethod.CREDIT:
            due += collected_by_order.get(order.id, ZERO)
        total_expected += due

    total_collected = sum((p.amount for p in route_payments), ZERO)
    return RouteSettlement(
        total_expected=total_expected,
        total_collected=total_collected,
        difference=total_expected - total_collected,
    )


class RouteLiquidation:
    def __init__(
        self,
        repository: DispatchRepository,
        *,
        clock: Callable[[], datetime] | None = None,
        max_retries: int | None = None,
        backoff_seconds: float | None = None,
    ) -> None:
        self.repository = repository
        self.clock = clock or (lambda: datetime.now(timezone.utc))
        self.max_retries = max_retries if max_retries is not None else settings.persistence_max_retries
        self.backoff_seconds = (
            backoff_seconds if backoff_seconds is not None else settings.persistence_backoff_seconds
        )

    def _require_route(self, route_id: str) -> Route:
        route = self.repository.get_route(route_id)
        if route is None:
            raise NotFoundError("Route", route_id)
        return route

    def list_routes(
        self,
        distributor_id: str,
        status: Optional[RouteStatus] = None,
        driver_id: Optional[str] = None,
    ) -> list[RouteSummary]:
        """Routes of a distributor, optionally narrowed to one status or driver."""
        if not distributor_id:
            raise ValidationError("A distributor is required to list routes")
        return self.repository.list_routes(distributor_id, status=status, driver_id=driver_id)

    def route_detail(self, route_id: str) -> RouteDetail:
        """Route with its stops, their orders, attributed payments and the settlement.

        For a finished route the stored settlement is returned; otherwise a live
        preview is computed.
        """
        route = self._require_route(route_id)
        stops = self.repository.list_stops(route_id)
        order_ids = [stop.order_id for stop in stops]
        orders = {order.id: order for order in self.repository.get_orders(order_ids)}
        route_payments = self.repository.list_route_payments(route_id)
        if route.settlement is not None:
            settlement = route.settlement
        else:
            settlement = compute_settlement(
                stops, orders, self.repository.list_payments(order_ids), route_payments
            )
        return RouteDetail(
            route=route,
            stops=stops,
            orders=orders,
            payments=route_payments,
            settlement=settlement,
            completed_stops=sum(1 for s in stops if s.status is StopStatus.COMPLETED),
            failed_stops=sum(1 for s in stops if s.status is StopStatus.FAILED),
        )

    def finish_route(self, route_id: str, actor_id: str) -> LiquidationResult:
        """Finish a completed route and store its settlement.

        Idempotent: a finished route returns the settlement stored when it was
        finished, whoever finished it.

        Raises:
            NotFoundError: Unknown route.
            InvalidStateError: The route still has pending stops.
        """
        route = self._require_route(route_id)
        if route.status is RouteStatus.FINISHED:
            logger.info(f"Route {route.route_number} already finished; returning stored settlement")
            settlement = route.settlement or self.route_detail(route_id).settlement
            return LiquidationResult(route, settlement, route.finished_at, newly_finished=False)

        now = self.clock()
        if route.status is RouteStatus.ACTIVE:
            # Repair a cascade that a failed write may have left undone.
            cascade_route_completion(self.repository, route_id, now)
            route = self._require_route(route_id)
            if route.status is RouteStatus.ACTIVE:
                raise InvalidStateError(
                    f"Route '{route.route_number}' still has pending stops and cannot be finished",
                    {"route_id": route_id, "status": route.status.value},
                )

        finished, newly_finished = retry_persistence(
            lambda: self.repository.finish_route(route_id, actor_id, now),
            max_retries=self.max_retries,
            backoff_seconds=self.backoff_seconds,
            description=f"finish route {route.route_number}",
        )
        settlement = finished.settlement or self.route_detail(route_id).settlement
        if newly_finished:
            logger.info(
                f"Route {finished.route_number} finished by {actor_id}: expected {settlement.total_expected}, "
                f"collected {settlement.total_collected}, difference {settlement.difference}"
            )
        return LiquidationResult(finished, settlement, finished.finished_at, newly_finished)
