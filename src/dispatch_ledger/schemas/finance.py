"""Payment ledger API schemas."""

from __future__ import annotations

from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from ..models.domain import OrderBalance, Payment, PaymentMethod, PaymentStatus
from .common import AmountInput, Money


class PaymentModel(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  id: str
  order_id: str = Field(..., alias='orderId')
  amount: Money
  payment_method: PaymentMethod = Field(..., alias='paymentMethod')
  payment_date: date = Field(..., alias='paymentDate')
  created_by: str = Field(..., alias='createdBy')
  notes: Optional[str] = None
  route_id: Optional[str] = Field(None, alias='routeId')
  created_at: Optional[datetime] = Field(None, alias='createdAt')

  @classmethod
  def from_domain(cls, payment: Payment) -> "PaymentModel":
    return cls(
      id=payment.id,
      order_id=payment.order_id,
      amount=payment.amount,
      payment_method=payment.method,
      payment_date=payment.payment_date,
      created_by=payment.created_by,
      notes=payment.notes,
      route_id=payment.route_id,
      created_at=payment.created_at,
    )


class OrderBalanceModel(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  order_id: str = Field(..., alias='orderId')
  total_amount: Money = Field(..., alias='totalAmount')
  total_paid: Money = Field(..., alias='totalPaid')
  balance_due: Money = Field(..., alias='balanceDue')
  payment_status: PaymentStatus = Field(..., alias='paymentStatus')

  @classmethod
  def from_domain(cls, balance: OrderBalance) -> "OrderBalanceModel":
    return cls(
      order_id=balance.order_id,
      total_amount=balance.total_amount,
      total_paid=balance.total_paid,
      balance_due=balance.balance_due,
      payment_status=balance.payment_status,
    )


class RecordPaymentRequest(BaseModel):
  model_config = ConfigDict(populate_by_name=True)

  order_id: str = Field(..., alias='orderId')
  amount: AmountInput = None
  payment_method: str = Field('cash', alias='paymentMethod')
  actor_id: str = Field(..., alias='actorId', min_length=1)
  notes: Optional[str] = None


class RecordPaymentResponse(BaseModel):
  payment: PaymentModel
  balance: OrderBalanceModel
