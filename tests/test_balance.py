from datetime import date
from decimal import Decimal

import pytest

from dispatch_ledger.exceptions import NotFoundError, ValidationError
from dispatch_ledger.models.domain import Order, OrderStatus, Payment, PaymentMethod, PaymentStatus
from dispatch_ledger.services.ledger.balance import (
    OrderBalanceCalculator,
    amount_to_collect,
    compute_balance,
    derive_payment_status,
)
from dispatch_ledger.services.ledger.money import parse_amount, parse_payment_method


def _order(total: str, method: PaymentMethod = PaymentMethod.CASH) -> Order:
    return Order(
        id="order-1",
        distributor_id="dist-1",
        customer_id="customer-1",
        total_amount=Decimal(total),
        payment_method=method,
        status=OrderStatus.IN_TRANSIT,
    )


def _payment(amount: str, order_id: str = "order-1", pid: str = "p1") -> Payment:
    return Payment(
        id=pid,
        order_id=order_id,
        customer_id="customer-1",
        distributor_id="dist-1",
        amount=Decimal(amount),
        method=PaymentMethod.CASH,
        payment_date=date(2025, 1, 31),
        created_by="driver-1",
    )


@pytest.mark.parametrize(
    ("total", "paid", "expected"),
    [
        ("100", "0", PaymentStatus.PENDING),
        ("100", "40", PaymentStatus.PARTIAL),
        ("100", "100", PaymentStatus.PAID),
        ("100", "120", PaymentStatus.PAID),
        ("0", "0", PaymentStatus.PAID),
    ],
)
def test_derive_payment_status(total, paid, expected):
    assert derive_payment_status(Decimal(total), Decimal(paid)) is expected


def test_balance_due_is_total_minus_ledger():
    balance = compute_balance(_order("100000"), [_payment("60000"), _payment("15000", pid="p2")])

    assert balance.total_paid == Decimal("75000")
    assert balance.balance_due == Decimal("25000")
    assert balance.payment_status is PaymentStatus.PARTIAL


def test_balance_due_never_negative():
    balance = compute_balance(_order("50000"), [_payment("70000")])

    assert balance.balance_due == Decimal("0")
    assert balance.payment_status is PaymentStatus.PAID


def test_balance_ignores_other_orders_payments():
    balance = compute_balance(_order("100"), [_payment("100", order_id="order-2")])

    assert balance.balance_due == Decimal("100")
    assert balance.payment_status is PaymentStatus.PENDING


def test_credit_orders_accrue_balance_but_have_nothing_to_collect():
    order = _order("300", PaymentMethod.CREDIT)
    balance = compute_balance(order, [])

    assert balance.balance_due == Decimal("300")
    assert amount_to_collect(order, balance) == Decimal("0")
    assert amount_to_collect(_order("300"), balance) == Decimal("300")


def test_calculator_reads_order_and_ledger(repository, make_order):
    order = make_order(total="1000")
    repository.add_payment(_payment("250", order_id=order.id))

    balance = OrderBalanceCalculator(repository).balance(order.id)

    assert balance.balance_due == Decimal("750")
    assert balance.payment_status is PaymentStatus.PARTIAL


def test_calculator_unknown_order(repository):
    with pytest.raises(NotFoundError):
        OrderBalanceCalculator(repository).balance("missing")


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        (None, "0"),
        ("", "0"),
        ("60000", "60000"),
        (12.5, "12.5"),
        (3, "3"),
        ("999999999999.99", "999999999999.99"),
        ("10.500", "10.5"),
    ],
)
def test_parse_amount(raw, expected):
    assert parse_amount(raw) == Decimal(expected)


@pytest.mark.parametrize("raw", ["-1", "abc", "NaN", "Infinity", True, "0.001", "1000000000000"])
def test_parse_amount_rejects_bad_values(raw):
    with pytest.raises(ValidationError):
        parse_amount(raw)


def test_parse_payment_method():
    assert parse_payment_method(None) is PaymentMethod.CASH
    assert parse_payment_method("Transfer") is PaymentMethod.TRANSFER
    with pytest.raises(ValidationError):
        parse_payment_method("bitcoin")
