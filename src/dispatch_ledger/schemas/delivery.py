"""Driver delivery API schemas."""

from __future__ import annotations

from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.domain import OrderStatus, PaymentStatus
from .common import AmountInput, Money


class CompleteDeliveryRequest(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  stop_id: str = Field(..., alias='stopId', min_length=1)
  payment_method: Optional[str] = Field('cash', alias='paymentMethod')
  amount_collected: AmountInput = Field(None, alias='amountCollected')
  notes: Optional[str] = None
  actor_id: str = Field(..., alias='actorId', min_length=1)


class UpdateStopRequest(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  status: Literal['failed', 'delivered']
  failure_reason: Optional[str] = Field(None, alias='failureReason')
  notes: Optional[str] = None
  actor_id: str = Field(..., alias='actorId', min_length=1)


class DeliveryResultModel(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  stop_id: str = Field(..., alias='stopId')
  order_id: str = Field(..., alias='orderId')
  order_number: Optional[str] = Field(None, alias='orderNumber')
  amount_collected: Money = Field(Decimal('0'), alias='amountCollected')
  new_balance: Money = Field(..., alias='newBalance')
  payment_status: PaymentStatus = Field(..., alias='paymentStatus')
  order_status: OrderStatus = Field(..., alias='orderStatus')
  payment_id: Optional[str] = Field(None, alias='paymentId')
  route_completed: bool = Field(..., alias='routeCompleted')
