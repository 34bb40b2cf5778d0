"""Route lifecycle endpoints: creation, listing, detail, routable orders and liquidation."""

from __future__ import annotations

from typing import Optional

from fastapi import APIRouter, Depends, Path, Query, status

from ...dependencies import get_liquidation, get_route_planner
from ...models.domain import RouteStatus
from ...schemas.routing import (
    CreateRouteRequest,
    CreateRouteResponse,
    FinishRouteRequest,
    FinishRouteResponse,
    RouteDetailResponse,
    RouteOrderModel,
    RouteStopModel,
    RouteSummaryModel,
)
from ...services.routing.planner import RoutePlanner
from ...services.settlement.liquidation import RouteLiquidation

router = APIRouter(prefix="/routes", tags=["routes"])


@router.post("", response_model=CreateRouteResponse, status_code=status.HTTP_201_CREATED)
def create_route(
    payload: CreateRouteRequest,
    planner: RoutePlanner = Depends(get_route_planner),
) -> CreateRouteResponse:
    planned = planner.create_route(
        distributor_id=payload.distributor_id,
        driver_id=payload.driver_id,
        created_by=payload.created_by,
        order_ids=payload.order_ids,
        planned_date=payload.planned_date,
        notes=payload.notes,
    )
    stops = planner.repository.list_stops(planned.route.id)
    return CreateRouteResponse(
        route_id=planned.route.id,
        route_number=planned.route.route_number,
        optimized=planned.optimized,
        stops=[RouteStopModel.from_domain(stop) for stop in stops],
    )


@router.get("", response_model=list[RouteSummaryModel])
def list_routes(
    distributor_id: str = Query(..., alias="distributorId", min_length=1),
    route_status: Optional[RouteStatus] = Query(None, alias="status"),
    driver_id: Optional[str] = Query(None, alias="driverId"),
    liquidation: RouteLiquidation = Depends(get_liquidation),
) -> list[RouteSummaryModel]:
    summaries = liquidation.list_routes(distributor_id, status=route_status, driver_id=driver_id)
    return [RouteSummaryModel.from_domain(summary) for summary in summaries]


@router.get("/routable-orders", response_model=list[RouteOrderModel])
def get_routable_orders(
    distributor_id: str = Query(..., alias="distributorId", min_length=1),
    planner: RoutePlanner = Depends(get_route_planner),
) -> list[RouteOrderModel]:
    return [RouteOrderModel.from_domain(order) for order in planner.routable_orders(distributor_id)]


@router.get("/{route_id}", response_model=RouteDetailResponse)
def get_route(
    route_id: str = Path(..., description="Route identifier"),
    liquidation: RouteLiquidation = Depends(get_liquidation),
) -> RouteDetailResponse:
    return RouteDetailResponse.from_domain(liquidation.route_detail(route_id))


@router.post("/{route_id}/finish", response_model=FinishRouteResponse)
def finish_route(
    payload: FinishRouteRequest,
    route_id: str = Path(..., description="Route identifier"),
    liquidation: RouteLiquidation = Depends(get_liquidation),
) -> FinishRouteResponse:
    result = liquidation.finish_route(route_id, payload.actor_id)
    return FinishRouteResponse(
        route_id=result.route.id,
        route_number=result.route.route_number,
        status=result.route.status,
        total_expected=result.settlement.total_expected,
        total_collected=result.settlement.total_collected,
        difference=result.settlement.difference,
        finished_at=result.finished_at,
        newly_finished=result.newly_finished,
    )
