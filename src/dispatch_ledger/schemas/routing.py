"""Route request/response schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.domain import (
  Order,
  OrderStatus,
  PaymentMethod,
  PaymentStatus,
  RouteDetail,
  RouteStatus,
  RouteStop,
  RouteSummary,
  StopStatus,
)
from .common import LocationModel, Money
from .finance import PaymentModel


class CreateRouteRequest(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  distributor_id: str = Field(..., alias='distributorId', min_length=1)
  driver_id: str = Field(..., alias='driverId', min_length=1)
  created_by: str = Field(..., alias='createdBy', min_length=1)
  order_ids: List[str] = Field(..., alias='orderIds', description="Approved orders, in the order they were selected.")
  planned_date: date = Field(..., alias='plannedDate')
  notes: Optional[str] = None


class RouteStopModel(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  id: str
  order_id: str = Field(..., alias='orderId')
  sequence_order: int = Field(..., alias='sequenceOrder')
  status: StopStatus
  customer_name: str = Field(..., alias='customerName')
  customer_phone: Optional[str] = Field(None, alias='customerPhone')
  delivery_address_text: str = Field(..., alias='deliveryAddressText')
  location: Optional[LocationModel] = None
  delivered_at: Optional[datetime] = Field(None, alias='deliveredAt')
  delivered_by: Optional[str] = Field(None, alias='deliveredBy')
  failure_reason: Optional[str] = Field(None, alias='failureReason')
  notes: Optional[str] = None

  @classmethod
  def from_domain(cls, stop: RouteStop) -> "RouteStopModel":
    return cls(
      id=stop.id,
      order_id=stop.order_id,
      sequence_order=stop.sequence_order,
      status=stop.status,
      customer_name=stop.customer_name,
      customer_phone=stop.customer_phone,
      delivery_address_text=stop.delivery_address_text,
      location=LocationModel.from_domain(stop.delivery_location),
      delivered_at=stop.delivered_at,
      delivered_by=stop.delivered_by,
      failure_reason=stop.failure_reason,
      notes=stop.notes,
    )


class CreateRouteResponse(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  route_id: str = Field(..., alias='routeId')
  route_number: str = Field(..., alias='routeNumber')
  optimized: bool
  stops: List[RouteStopModel]


class SettlementModel(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  total_expected: Money = Field(..., alias='totalExpected')
  total_collected: Money = Field(..., alias='totalCollected')
  difference: Money


class RouteSummaryModel(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  id: str
  route_number: str = Field(..., alias='routeNumber')
  status: RouteStatus
  driver_id: str = Field(..., alias='driverId')
  planned_date: date = Field(..., alias='plannedDate')
  total_stops: int = Field(..., alias='totalStops')
  completed_stops: int = Field(..., alias='completedStops')
  failed_stops: int = Field(..., alias='failedStops')
  pending_stops: int = Field(..., alias='pendingStops')
  created_at: Optional[datetime] = Field(None, alias='createdAt')
  completed_at: Optional[datetime] = Field(None, alias='completedAt')
  finished_at: Optional[datetime] = Field(None, alias='finishedAt')
  settlement: Optional[SettlementModel] = None

  @classmethod
  def from_domain(cls, summary: RouteSummary) -> "RouteSummaryModel":
    route = summary.route
    settlement = None
    if route.settlement is not None:
      settlement = SettlementModel(
        total_expected=route.settlement.total_expected,
        total_collected=route.settlement.total_collected,
        difference=route.settlement.difference,
      )
    return cls(
      id=route.id,
      route_number=route.route_number,
      status=route.status,
      driver_id=route.driver_id,
      planned_date=route.planned_date,
      total_stops=route.total_stops,
      completed_stops=summary.completed_stops,
      failed_stops=summary.failed_stops,
      pending_stops=summary.pending_stops,
      created_at=route.created_at,
      completed_at=route.completed_at,
      finished_at=route.finished_at,
      settlement=settlement,
    )


class RouteOrderModel(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  id: str
  order_number: Optional[str] = Field(None, alias='orderNumber')
  customer_id: str = Field(..., alias='customerId')
  customer_name: Optional[str] = Field(None, alias='customerName')
  total_amount: Money = Field(..., alias='totalAmount')
  payment_method: PaymentMethod = Field(..., alias='paymentMethod')
  status: OrderStatus
  payment_status: PaymentStatus = Field(..., alias='paymentStatus')
  delivery_address_text: Optional[str] = Field(None, alias='deliveryAddressText')
  location: Optional[LocationModel] = None

  @classmethod
  def from_domain(cls, order: Order) -> "RouteOrderModel":
    return cls(
      id=order.id,
      order_number=order.order_number,
      customer_id=order.customer_id,
      customer_name=order.customer_name,
      total_amount=order.total_amount,
      payment_method=order.payment_method,
      status=order.status,
      payment_status=order.payment_status,
      delivery_address_text=order.delivery_address_text,
      location=LocationModel.from_domain(order.delivery_location),
    )


class RouteDetailResponse(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  id: str
  route_number: str = Field(..., alias='routeNumber')
  status: RouteStatus
  distributor_id: str = Field(..., alias='distributorId')
  driver_id: str = Field(..., alias='driverId')
  planned_date: date = Field(..., alias='plannedDate')
  notes: Optional[str] = None
  total_stops: int = Field(..., alias='totalStops')
  completed_stops: int = Field(..., alias='completedStops')
  failed_stops: int = Field(..., alias='failedStops')
  created_at: Optional[datetime] = Field(None, alias='createdAt')
  completed_at: Optional[datetime] = Field(None, alias='completedAt')
  finished_at: Optional[datetime] = Field(None, alias='finishedAt')
  finished_by: Optional[str] = Field(None, alias='finishedBy')
  stops: List[RouteStopModel]
  orders: List[RouteOrderModel]
  payments: List[PaymentModel]
  settlement: SettlementModel

  @classmethod
  def from_domain(cls, detail: RouteDetail) -> "RouteDetailResponse":
    route = detail.route
    return cls(
      id=route.id,
      route_number=route.route_number,
      status=route.status,
      distributor_id=route.distributor_id,
      driver_id=route.driver_id,
      planned_date=route.planned_date,
      notes=route.notes,
      total_stops=route.total_stops,
      completed_stops=detail.completed_stops,
      failed_stops=detail.failed_stops,
      created_at=route.created_at,
      completed_at=route.completed_at,
      finished_at=route.finished_at,
      finished_by=route.finished_by,
      stops=[RouteStopModel.from_domain(stop) for stop in detail.stops],
      orders=[RouteOrderModel.from_domain(detail.orders[s.order_id]) for s in detail.stops if s.order_id in detail.orders],
      payments=[PaymentModel.from_domain(p) for p in detail.payments],
      settlement=SettlementModel(
        total_expected=detail.settlement.total_expected,
        total_collected=detail.settlement.total_collected,
        difference=detail.settlement.difference,
      ),
    )


class FinishRouteRequest(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  actor_id: str = Field(..., alias='actorId', min_length=1)


class FinishRouteResponse(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  route_id: str = Field(..., alias='routeId')
  route_number: str = Field(..., alias='routeNumber')
  status: RouteStatus
  total_expected: Money = Field(..., alias='totalExpected')
  total_collected: Money = Field(..., alias='totalCollected')
  difference: Money
  finished_at: Optional[datetime] = Field(None, alias='finishedAt')
  newly_finished: bool = Field(..., alias='newlyFinished')
