"""Office payments appended to the ledger outside of a delivery.

Unlike delivery writes these carry no idempotency guard, so a failed write is
reported to the caller rather than retried.
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Callable, Optional

from ...exceptions import NotFoundError, ValidationError
from ...models.domain import NewPayment, OrderBalance, Payment, PaymentMethod
from ...persistence.repository import DispatchRepository
from .balance import compute_balance
from .money import ZERO, parse_amount, parse_payment_method

logger = logging.getLogger(__name__)


class PaymentLedger:
    def __init__(
        self,
        repository: DispatchRepository,
        *,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.repository = repository
        self.clock = clock or (lambda: datetime.now(timezone.utc))

    def record_payment(
        self,
        order_id: str,
        amount,
        method=PaymentMethod.CASH,
        actor_id: str = "",
        notes: Optional[str] = None,
    ) -> tuple[Payment, OrderBalance]:
        """Append a payment against an order.

        Raises:
            ValidationError: Non-positive amount, credit method, or more than the balance due.
            NotFoundError: Unknown order.
            ConflictError: The order was delivered on a route that is already finished.
        """
        value = parse_amount(amount)
        if value <= ZERO:
            raise ValidationError("Payment amount must be greater than zero", {"amount": str(amount)})
        payment_method = parse_payment_method(method)
        if payment_method is PaymentMethod.CREDIT:
            raise ValidationError("Credit is not a payment method")
        if not actor_id:
            raise ValidationError("An actor is required to record a payment")

        ledger = self.repository.get_order_ledger(order_id)
        if ledger is None:
            raise NotFoundError("Order", order_id)
        order, payments = ledger
        current = compute_balance(order, payments)
        if value > current.balance_due:
            raise ValidationError(
                f"Payment of {value} exceeds the balance due of {current.balance_due}",
                {"amount": str(value), "balance_due": str(current.balance_due)},
            )

        payment, balance = self.repository.record_payment(
            NewPayment(
                order_id=order.id,
                customer_id=order.customer_id,
                distributor_id=order.distributor_id,
                amount=value,
                method=payment_method,
                payment_date=self.clock().date(),
                created_by=actor_id,
                notes=notes,
            )
        )
        logger.info(f"Recorded payment {payment.id} of {value} for order {order.id}; balance {balance.balance_due}")
        return payment, balance
