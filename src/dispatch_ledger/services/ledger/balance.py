"""Order balance derivation from the payment ledger."""

from __future__ import annotations

from decimal import Decimal
from typing import Iterable

from ...exceptions import NotFoundError
from ...models.domain import Order, OrderBalance, Payment, PaymentMethod, PaymentStatus
from ...persistence.repository import DispatchRepository
from .money import ZERO


def derive_payment_status(total_amount: Decimal, total_paid: Decimal) -> PaymentStatus:
    """Map a total and the sum of its ledger entries to a payment status.

    An order with nothing owed counts as paid, including zero-total orders.
    """
    if total_paid >= total_amount:
        return PaymentStatus.PAID
    if total_paid > ZERO:
        return PaymentStatus.PARTIAL
    return PaymentStatus.PENDING


def compute_balance(order: Order, payments: Iterable[Payment]) -> OrderBalance:
    """Derive ``balance_due`` and ``payment_status`` for ``order``.

    Only entries whose ``order_id`` matches are counted, so callers may pass a
    ledger slice covering several orders.
    """
    total_paid = sum((p.amount for p in payments if p.order_id == order.id), ZERO)
    balance_due = max(ZERO, order.total_amount - total_paid)
    return OrderBalance(
        order_id=order.id,
        total_amount=order.total_amount,
        total_paid=total_paid,
        balance_due=balance_due,
        payment_status=derive_payment_status(order.total_amount, total_paid),
    )


def amount_to_collect(order: Order, balance: OrderBalance) -> Decimal:
    """Cash the driver should collect on delivery. Credit orders are settled elsewhere."""
    if order.payment_method is PaymentMethod.CREDIT:
        return ZERO
    return balance.balance_due


class OrderBalanceCalculator:
    """Reads an order and its ledger in one snapshot and derives the balance."""

    def __init__(self, repository: DispatchRepository) -> None:
        self.repository = repository

    def balance(self, order_id: str) -> OrderBalance:
        ledger = self.repository.get_order_ledger(order_id)
        if ledger is None:
            raise NotFoundError("Order", order_id)
        order, payments = ledger
        return compute_balance(order, payments)
