"""Office payment endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, status

from ...dependencies import get_payment_ledger
from ...schemas.finance import (
    OrderBalanceModel,
    PaymentModel,
    RecordPaymentRequest,
    RecordPaymentResponse,
)
from ...services.ledger.payments import PaymentLedger

router = APIRouter(prefix="/finance", tags=["finance"])


@router.post("/payments", response_model=RecordPaymentResponse, status_code=status.HTTP_201_CREATED)
def record_payment(
    payload: RecordPaymentRequest,
    ledger: PaymentLedger = Depends(get_payment_ledger),
) -> RecordPaymentResponse:
    payment, balance = ledger.record_payment(
        payload.order_id,
        payload.amount,
        method=payload.payment_method,
        actor_id=payload.actor_id,
        notes=payload.notes,
    )
    return RecordPaymentResponse(
        payment=PaymentModel.from_domain(payment),
        balance=OrderBalanceModel.from_domain(balance),
    )
