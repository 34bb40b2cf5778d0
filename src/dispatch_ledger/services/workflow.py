"""
Status transition tables for orders, routes and route stops.

Every status change the engine makes goes through ``validate_transition``; any
move not listed here is rejected.
"""

from __future__ import annotations

from enum import Enum
from typing import Mapping

from ..exceptions import InvalidTransitionError
from ..models.domain import OrderStatus, RouteStatus, StopStatus

ORDER_TRANSITIONS: Mapping[OrderStatus, frozenset[OrderStatus]] = {
    OrderStatus.PENDING_APPROVAL: frozenset({OrderStatus.APPROVED, OrderStatus.CANCELLED}),
    OrderStatus.APPROVED: frozenset({OrderStatus.IN_TRANSIT, OrderStatus.CANCELLED}),
    OrderStatus.IN_TRANSIT: frozenset({OrderStatus.DELIVERED}),
    OrderStatus.DELIVERED: frozenset(),
    OrderStatus.CANCELLED: frozenset(),
}

ROUTE_TRANSITIONS: Mapping[RouteStatus, frozenset[RouteStatus]] = {
    RouteStatus.ACTIVE: frozenset({RouteStatus.COMPLETED}),
    RouteStatus.COMPLETED: frozenset({RouteStatus.FINISHED}),
    RouteStatus.FINISHED: frozenset(),
}

STOP_TRANSITIONS: Mapping[StopStatus, frozenset[StopStatus]] = {
    StopStatus.PENDING: frozenset({StopStatus.COMPLETED, StopStatus.FAILED}),
    StopStatus.COMPLETED: frozenset(),
    StopStatus.FAILED: frozenset(),
}

_TABLES: dict[type, tuple[str, Mapping]] = {
    OrderStatus: ("order", ORDER_TRANSITIONS),
    RouteStatus: ("route", ROUTE_TRANSITIONS),
    StopStatus: ("route stop", STOP_TRANSITIONS),
}


def can_transition(current: Enum, new: Enum) -> bool:
    _, table = _TABLES[type(current)]
    return new in table[current]


def validate_transition(current: Enum, new: Enum) -> None:
    """
    Validate a status change against its transition table.

    Raises:
        InvalidTransitionError: If ``new`` is not reachable from ``current``.
    """
    entity_type, _ = _TABLES[type(current)]
    if not can_transition(current, new):
        raise InvalidTransitionError(entity_type, current.value, new.value)
