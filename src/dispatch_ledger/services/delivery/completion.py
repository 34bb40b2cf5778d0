"""
Driver-reported delivery outcomes.

A stop moves once, from ``pending`` to ``completed`` or ``failed``. Completing a
stop appends the collected cash to the payment ledger and updates the order in
the same atomic write; a replay for a stop that is already terminal is rejected
with ``ConflictError`` and records nothing.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import Callable, Optional

from ...config import settings
from ...exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from ...models.domain import (
    DeliveryRecord,
    NewPayment,
    OrderStatus,
    PaymentMethod,
    PaymentStatus,
    RouteStatus,
    RouteStop,
)
from ...persistence.repository import DispatchRepository
from ..ledger.balance import compute_balance
from ..ledger.money import ZERO, parse_amount, parse_payment_method
from ..retry import retry_persistence
from .cascade import cascade_route_completion

logger = logging.getLogger(__name__)

DEFAULT_PAYMENT_NOTE = "Collected by driver on delivery"
DEFAULT_FAILURE_REASON = "No reason given"


@dataclass(slots=True)
class DeliveryResult:
    stop_id: str
    order_id: str
    order_number: Optional[str]
    amount_collected: Decimal
    new_balance: Decimal
    payment_status: PaymentStatus
    order_status: OrderStatus
    payment_id: Optional[str]
    route_completed: bool


class StopCompletionHandler:
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

    def _retry(self, operation, description: str):
        return retry_persistence(
            operation,
            max_retries=self.max_retries,
            backoff_seconds=self.backoff_seconds,
            description=description,
        )

    def _cascade(self, route_id: str, occurred_at: datetime) -> bool:
        # The stop write is already committed here; a failed cascade is re-derived
        # by the next replay for any stop of the route or by liquidation.
        try:
            return self._retry(
                lambda: cascade_route_completion(self.repository, route_id, occurred_at),
                f"route {route_id} completion cascade",
            )
        except PersistenceError as exc:
            logger.error(f"Route {route_id} completion cascade failed: {exc}")
            return False

    def _load_pending_stop(self, stop_id: str) -> RouteStop:
        stop = self.repository.get_stop(stop_id)
        if stop is None:
            raise NotFoundError("Route stop", stop_id)
        if stop.status.is_terminal:
            self._cascade(stop.route_id, self.clock())
            logger.info(f"Rejecting replay for stop {stop_id}: already {stop.status.value}")
            raise ConflictError(
                f"Route stop '{stop_id}' is already {stop.status.value}",
                {"stop_id": stop_id, "status": stop.status.value},
            )
        route = self.repository.get_route(stop.route_id)
        if route is None:
            raise NotFoundError("Route", stop.route_id)
        if route.status is RouteStatus.FINISHED:
            raise ConflictError(
                f"Route '{route.route_number}' is already finished",
                {"route_id": route.id, "status": route.status.value},
            )
        return stop

    def complete_delivery(
        self,
        stop_id: str,
        amount_collected,
        method=PaymentMethod.CASH,
        notes: Optional[str] = None,
        actor_id: str = "",
    ) -> DeliveryResult:
        """Record a successful delivery and any cash collected for it.

        Raises:
            ValidationError: Bad amount or payment method.
            NotFoundError: Unknown stop, route or order.
            ConflictError: The stop is already terminal or its route is finished.
            PersistenceError: The atomic write kept failing; nothing was recorded.
        """
        amount = parse_amount(amount_collected)
        payment_method = parse_payment_method(method)
        if amount > ZERO and payment_method is PaymentMethod.CREDIT:
            raise ValidationError("Collected cash cannot be recorded with the credit method")
        if not actor_id:
            raise ValidationError("An actor is required to complete a delivery")

        stop = self._load_pending_stop(stop_id)
        ledger = self.repository.get_order_ledger(stop.order_id)
        if ledger is None:
            raise NotFoundError("Order", stop.order_id)
        order, payments = ledger
        current = compute_balance(order, payments)
        if amount > current.balance_due:
            logger.warning(
                f"Stop {stop_id}: collected {amount} exceeds balance due {current.balance_due} "
                f"for order {order.id}"
            )

        now = self.clock()
        payment = None
        if amount > ZERO:
            payment = NewPayment(
                order_id=order.id,
                customer_id=order.customer_id,
                distributor_id=order.distributor_id,
                amount=amount,
                method=payment_method,
                payment_date=now.date(),
                created_by=actor_id,
                notes=notes or DEFAULT_PAYMENT_NOTE,
                route_id=stop.route_id,
            )
        record = DeliveryRecord(
            stop_id=stop.id,
            order_id=order.id,
            actor_id=actor_id,
            occurred_at=now,
            notes=notes,
            payment=payment,
        )
        outcome = self._retry(
            lambda: self.repository.record_delivery(record),
            f"complete delivery for stop {stop_id}",
        )
        route_completed = self._cascade(stop.route_id, now)

        logger.info(
            f"Stop {stop_id} delivered: collected {amount}, order {order.id} "
            f"balance {outcome.balance.balance_due} ({outcome.balance.payment_status.value})"
        )
        return DeliveryResult(
            stop_id=stop.id,
            order_id=order.id,
            order_number=order.order_number,
            amount_collected=amount,
            new_balance=outcome.balance.balance_due,
            payment_status=outcome.balance.payment_status,
            order_status=outcome.order.status,
            payment_id=outcome.payment.id if outcome.payment else None,
            route_completed=route_completed,
        )

    def mark_failed(self, stop_id: str, reason: Optional[str], actor_id: str) -> RouteStop:
        """Record a failed delivery attempt. The order and the ledger are left untouched."""
        if not actor_id:
            raise ValidationError("An actor is required to mark a delivery as failed")
        stop = self._load_pending_stop(stop_id)
        now = self.clock()
        failure_reason = (reason or "").strip() or DEFAULT_FAILURE_REASON
        failed = self._retry(
            lambda: self.repository.record_failure(stop.id, failure_reason, actor_id, now),
            f"mark stop {stop_id} failed",
        )
        self._cascade(stop.route_id, now)
        logger.info(f"Stop {stop_id} failed: {failure_reason}")
        return failed
