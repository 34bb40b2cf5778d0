"""Domain models for orders, the payment ledger, routes and their stops."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Optional


class OrderStatus(str, Enum):
    PENDING_APPROVAL = "pending_approval"
    APPROVED = "approved"
    IN_TRANSIT = "in_transit"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class PaymentStatus(str, Enum):
    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentMethod(str, Enum):
    CASH = "cash"
    TRANSFER = "transfer"
    CREDIT = "credit"


class RouteStatus(str, Enum):
    ACTIVE = "active"
    COMPLETED = "completed"
    FINISHED = "finished"


class StopStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self is not StopStatus.PENDING


@dataclass(slots=True, frozen=True)
class Coordinate:
    latitude: float
    longitude: float


@dataclass(slots=True)
class Order:
    """A distributor's order as seen by the delivery engine."""

    id: str
    distributor_id: str
    customer_id: str
    total_amount: Decimal
    payment_method: PaymentMethod
    status: OrderStatus
    payment_status: PaymentStatus = PaymentStatus.PENDING
    order_number: Optional[str] = None
    delivery_location: Optional[Coordinate] = None
    delivery_address_text: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    delivered_at: Optional[datetime] = None
    delivered_by: Optional[str] = None


@dataclass(slots=True, frozen=True)
class Payment:
    """Immutable ledger entry."""

    id: str
    order_id: str
    customer_id: str
    distributor_id: str
    amount: Decimal
    method: PaymentMethod
    payment_date: date
    created_by: str
    notes: Optional[str] = None
    route_id: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(slots=True, frozen=True)
class OrderBalance:
    order_id: str
    total_amount: Decimal
    total_paid: Decimal
    balance_due: Decimal
    payment_status: PaymentStatus


@dataclass(slots=True, frozen=True)
class RouteSettlement:
    """Expected-versus-collected totals computed when a route is liquidated."""

    total_expected: Decimal
    total_collected: Decimal
    difference: Decimal


@dataclass(slots=True)
class Route:
    id: str
    distributor_id: str
    driver_id: str
    created_by: str
    planned_date: date
    status: RouteStatus
    total_stops: int
    route_number: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    finished_by: Optional[str] = None
    settlement: Optional[RouteSettlement] = None


@dataclass(slots=True)
class RouteStop:
    """One delivery attempt, with customer data snapshotted at route creation."""

    id: str
    route_id: str
    order_id: str
    sequence_order: int
    status: StopStatus
    delivery_location: Optional[Coordinate]
    delivery_address_text: str
    customer_name: str
    customer_phone: Optional[str] = None
    delivered_at: Optional[datetime] = None
    delivered_by: Optional[str] = None
    notes: Optional[str] = None
    failure_reason: Optional[str] = None


@dataclass(slots=True)
class NewRoute:
    distributor_id: str
    driver_id: str
    created_by: str
    planned_date: date
    route_number: str
    notes: Optional[str] = None
    created_at: Optional[datetime] = None


@dataclass(slots=True)
class NewStop:
    order_id: str
    sequence_order: int
    delivery_location: Coordinate
    delivery_address_text: str
    customer_name: str
    customer_phone: Optional[str] = None


@dataclass(slots=True)
class NewPayment:
    order_id: str
    customer_id: str
    distributor_id: str
    amount: Decimal
    method: PaymentMethod
    payment_date: date
    created_by: str
    notes: Optional[str] = None
    route_id: Optional[str] = None


@dataclass(slots=True)
class DeliveryRecord:
    """Everything the storage layer needs to apply a successful delivery atomically."""

    stop_id: str
    order_id: str
    actor_id: str
    occurred_at: datetime
    notes: Optional[str] = None
    payment: Optional[NewPayment] = None


@dataclass(slots=True)
class DeliveryOutcome:
    stop: RouteStop
    order: Order
    balance: OrderBalance
    payment: Optional[Payment] = None


@dataclass(slots=True)
class RouteDetail:
    route: Route
    stops: list[RouteStop]
    orders: dict[str, Order]
    payments: list[Payment]
    settlement: RouteSettlement
    completed_stops: int = 0
    failed_stops: int = 0


@dataclass(slots=True)
class RouteSummary:
    route: Route
    completed_stops: int = 0
    failed_stops: int = 0

    @property
    def pending_stops(self) -> int:
        return max(0, self.route.total_stops - self.completed_stops - self.failed_stops)
