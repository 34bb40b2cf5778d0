import threading
from datetime import datetime, timezone
from decimal import Decimal

import pytest

from dispatch_ledger.exceptions import ConflictError, NotFoundError, PersistenceError, ValidationError
from dispatch_ledger.models.domain import OrderStatus, PaymentMethod, PaymentStatus, RouteStatus, StopStatus
from dispatch_ledger.services.delivery.completion import DEFAULT_FAILURE_REASON, StopCompletionHandler
from dispatch_ledger.services.ledger.balance import OrderBalanceCalculator

NOW = datetime(2025, 1, 31, 15, 30, tzinfo=timezone.utc)


def _handler(repository, max_retries: int = 0) -> StopCompletionHandler:
    return StopCompletionHandler(repository, clock=lambda: NOW, max_retries=max_retries, backoff_seconds=0)


def test_partial_collection_records_payment_and_delivers(repository, make_route):
    route, stops = make_route("100000", "5000")
    stop = stops[0]

    result = _handler(repository).complete_delivery(stop.id, "60000", "cash", "Left at reception", "driver-1")

    assert result.amount_collected == Decimal("60000")
    assert result.new_balance == Decimal("40000")
    assert result.payment_status is PaymentStatus.PARTIAL
    assert result.order_status is OrderStatus.DELIVERED
    assert result.route_completed is False

    payments = repository.list_route_payments(route.id)
    assert len(payments) == 1
    assert payments[0].amount == Decimal("60000")
    assert payments[0].id == result.payment_id
    assert payments[0].created_by == "driver-1"

    order = repository.get_orders([stop.order_id])[0]
    assert order.status is OrderStatus.DELIVERED
    assert order.payment_status is PaymentStatus.PARTIAL
    assert order.delivered_at == NOW
    assert order.delivered_by == "driver-1"

    stored_stop = repository.get_stop(stop.id)
    assert stored_stop.status is StopStatus.COMPLETED
    assert stored_stop.notes == "Left at reception"
    assert stored_stop.delivered_at == NOW


def test_full_collection_marks_order_paid(repository, make_route):
    _, stops = make_route("50000")

    result = _handler(repository).complete_delivery(stops[0].id, Decimal("50000"), actor_id="driver-1")

    assert result.new_balance == Decimal("0")
    assert result.payment_status is PaymentStatus.PAID
    assert OrderBalanceCalculator(repository).balance(stops[0].order_id).balance_due == Decimal("0")


def test_zero_collection_records_no_payment(repository, make_route):
    route, stops = make_route("50000", "100")

    result = _handler(repository).complete_delivery(stops[0].id, None, actor_id="driver-1")

    assert result.payment_id is None
    assert result.payment_status is PaymentStatus.PENDING
    assert repository.list_route_payments(route.id) == []
    assert repository.get_stop(stops[0].id).status is StopStatus.COMPLETED


def test_second_completion_is_a_conflict_without_side_effects(repository, make_route):
    route, stops = make_route("100000", "100")
    handler = _handler(repository)
    handler.complete_delivery(stops[0].id, "60000", actor_id="driver-1")
    before = repository.get_stop(stops[0].id)

    with pytest.raises(ConflictError):
        handler.complete_delivery(stops[0].id, "60000", actor_id="driver-1")

    assert len(repository.list_route_payments(route.id)) == 1
    assert repository.get_stop(stops[0].id) == before


def test_concurrent_completions_of_one_stop_record_one_payment(repository, make_route):
    route, stops = make_route("100000", "100")
    handler = _handler(repository)
    outcomes = []
    barrier = threading.Barrier(8)

    def complete():
        barrier.wait()
        try:
            handler.complete_delivery(stops[0].id, "100000", actor_id="driver-1")
            outcomes.append("ok")
        except ConflictError:
            outcomes.append("conflict")

    threads = [threading.Thread(target=complete) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert outcomes.count("ok") == 1
    assert outcomes.count("conflict") == 7
    assert len(repository.list_route_payments(route.id)) == 1


def test_credit_order_cannot_carry_collected_cash(repository, make_route):
    _, stops = make_route("1000", methods=[PaymentMethod.CREDIT])
    handler = _handler(repository)

    with pytest.raises(ValidationError):
        handler.complete_delivery(stops[0].id, "100", "credit", actor_id="driver-1")

    result = handler.complete_delivery(stops[0].id, "0", "credit", actor_id="driver-1")
    assert result.payment_id is None
    assert result.order_status is OrderStatus.DELIVERED


def test_overcollection_is_recorded(repository, make_route):
    _, stops = make_route("100", "100")

    result = _handler(repository).complete_delivery(stops[0].id, "150", actor_id="driver-1")

    assert result.new_balance == Decimal("0")
    assert result.payment_status is PaymentStatus.PAID


@pytest.mark.parametrize(
    ("amount", "method", "actor"),
    [("-5", "cash", "driver-1"), ("abc", "cash", "driver-1"), ("10", "barter", "driver-1"), ("10", "cash", "")],
)
def test_bad_input_is_rejected_before_any_write(repository, make_route, amount, method, actor):
    route, stops = make_route("100", "100")

    with pytest.raises(ValidationError):
        _handler(repository).complete_delivery(stops[0].id, amount, method, actor_id=actor)

    assert repository.get_stop(stops[0].id).status is StopStatus.PENDING
    assert repository.list_route_payments(route.id) == []


def test_unknown_stop(repository):
    with pytest.raises(NotFoundError):
        _handler(repository).complete_delivery("missing", "10", actor_id="driver-1")


@pytest.mark.parametrize("step", ["insert_payment", "update_order", "update_stop"])
def test_failed_write_leaves_no_partial_state(repository, make_route, step):
    route, stops = make_route("100000", "100")
    repository.fail_on = {step}

    with pytest.raises(PersistenceError):
        _handler(repository, max_retries=1).complete_delivery(stops[0].id, "60000", actor_id="driver-1")

    assert repository.list_route_payments(route.id) == []
    order = repository.get_orders([stops[0].order_id])[0]
    assert order.status is OrderStatus.IN_TRANSIT
    assert order.payment_status is PaymentStatus.PENDING
    assert repository.get_stop(stops[0].id).status is StopStatus.PENDING

    repository.fail_on = set()
    result = _handler(repository).complete_delivery(stops[0].id, "60000", actor_id="driver-1")
    assert result.new_balance == Decimal("40000")
    assert len(repository.list_route_payments(route.id)) == 1


def test_mark_failed_leaves_order_and_ledger_untouched(repository, make_route):
    route, stops = make_route("100", "100")

    failed = _handler(repository).mark_failed(stops[0].id, "Shop closed", "driver-1")

    assert failed.status is StopStatus.FAILED
    assert failed.failure_reason == "Shop closed"
    assert failed.notes == "Shop closed"
    assert repository.get_orders([stops[0].order_id])[0].status is OrderStatus.IN_TRANSIT
    assert repository.list_route_payments(route.id) == []


def test_mark_failed_default_reason_and_replay(repository, make_route):
    _, stops = make_route("100", "100")
    handler = _handler(repository)

    assert handler.mark_failed(stops[0].id, "  ", "driver-1").failure_reason == DEFAULT_FAILURE_REASON
    with pytest.raises(ConflictError):
        handler.mark_failed(stops[0].id, "again", "driver-1")
    with pytest.raises(ConflictError):
        handler.complete_delivery(stops[0].id, "100", actor_id="driver-1")


def test_last_stop_completes_route(repository, make_route):
    route, stops = make_route("100", "200")
    handler = _handler(repository)

    assert handler.complete_delivery(stops[0].id, "100", actor_id="driver-1").route_completed is False
    assert handler.complete_delivery(stops[1].id, "200", actor_id="driver-1").route_completed is True
    assert repository.get_route(route.id).status is RouteStatus.COMPLETED


def test_replay_repairs_a_missed_cascade(repository, make_route):
    route, stops = make_route("100")
    repository.fail_on = {"complete_route"}

    result = _handler(repository).complete_delivery(stops[0].id, "100", actor_id="driver-1")

    assert result.route_completed is False
    assert repository.get_route(route.id).status is RouteStatus.ACTIVE

    repository.fail_on = set()
    with pytest.raises(ConflictError):
        _handler(repository).complete_delivery(stops[0].id, "100", actor_id="driver-1")
    assert repository.get_route(route.id).status is RouteStatus.COMPLETED
