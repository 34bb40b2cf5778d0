"""Order balance endpoint."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from ...dependencies import get_balance_calculator
from ...schemas.finance import OrderBalanceModel
from ...services.ledger.balance import OrderBalanceCalculator

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("/{order_id}/balance", response_model=OrderBalanceModel)
def get_order_balance(
    order_id: str = Path(..., description="Order identifier"),
    calculator: OrderBalanceCalculator = Depends(get_balance_calculator),
) -> OrderBalanceModel:
    return OrderBalanceModel.from_domain(calculator.balance(order_id))
