"""Driver endpoints for reporting stop outcomes."""

from __future__ import annotations

from fastapi import APIRouter, Depends, Path

from ...dependencies import get_stop_handler
from ...schemas.delivery import CompleteDeliveryRequest, DeliveryResultModel, UpdateStopRequest
from ...schemas.routing import RouteStopModel
from ...services.delivery.completion import DeliveryResult, StopCompletionHandler

router = APIRouter(prefix="/delivery", tags=["delivery"])


def _result_model(result: DeliveryResult) -> DeliveryResultModel:
    return DeliveryResultModel(
        stop_id=result.stop_id,
        order_id=result.order_id,
        order_number=result.order_number,
        amount_collected=result.amount_collected,
        new_balance=result.new_balance,
        payment_status=result.payment_status,
        order_status=result.order_status,
        payment_id=result.payment_id,
        route_completed=result.route_completed,
    )


@router.post("/stops/complete", response_model=DeliveryResultModel)
def complete_stop(
    payload: CompleteDeliveryRequest,
    handler: StopCompletionHandler = Depends(get_stop_handler),
) -> DeliveryResultModel:
    result = handler.complete_delivery(
        payload.stop_id,
        payload.amount_collected,
        method=payload.payment_method,
        notes=payload.notes,
        actor_id=payload.actor_id,
    )
    return _result_model(result)


@router.post("/stops/{stop_id}/update", response_model=DeliveryResultModel | RouteStopModel)
def update_stop(
    payload: UpdateStopRequest,
    stop_id: str = Path(..., description="Route stop identifier"),
    handler: StopCompletionHandler = Depends(get_stop_handler),
) -> DeliveryResultModel | RouteStopModel:
    """Mark a stop failed, or delivered with nothing collected."""
    if payload.status == "failed":
        stop = handler.mark_failed(stop_id, payload.failure_reason, payload.actor_id)
        return RouteStopModel.from_domain(stop)
    result = handler.complete_delivery(stop_id, None, notes=payload.notes, actor_id=payload.actor_id)
    return _result_model(result)
