"""FastAPI dependency providers for storage and services."""

from __future__ import annotations

import logging
from functools import lru_cache

from fastapi import Depends

from .config import settings
from .db.supabase import get_supabase_client
from .persistence.memory import InMemoryRepository
from .persistence.repository import DispatchRepository
from .persistence.supabase_repository import SupabaseRepository
from .services.delivery.completion import StopCompletionHandler
from .services.ledger.balance import OrderBalanceCalculator
from .services.ledger.payments import PaymentLedger
from .services.routing.optimizer import RouteOptimizerGateway
from .services.routing.osrm_client import OSRMClient
from .services.routing.planner import RoutePlanner
from .services.settlement.liquidation import RouteLiquidation

logger = logging.getLogger(__name__)


@lru_cache()
def _memory_repository() -> InMemoryRepository:
    logger.warning("Using process-local in-memory storage; data is lost on restart")
    return InMemoryRepository()


def get_repository() -> DispatchRepository:
    """Supabase when configured, otherwise one shared in-memory store."""
    client = get_supabase_client()
    if client is None:
        return _memory_repository()
    return SupabaseRepository(client)


def get_optimizer() -> RouteOptimizerGateway:
    if not settings.osrm_base_url:
        return RouteOptimizerGateway()
    return RouteOptimizerGateway(OSRMClient())


def get_route_planner(
    repository: DispatchRepository = Depends(get_repository),
    optimizer: RouteOptimizerGateway = Depends(get_optimizer),
) -> RoutePlanner:
    return RoutePlanner(repository, optimizer)


def get_stop_handler(repository: DispatchRepository = Depends(get_repository)) -> StopCompletionHandler:
    return StopCompletionHandler(repository)


def get_liquidation(repository: DispatchRepository = Depends(get_repository)) -> RouteLiquidation:
    return RouteLiquidation(repository)


def get_balance_calculator(repository: DispatchRepository = Depends(get_repository)) -> OrderBalanceCalculator:
    return OrderBalanceCalculator(repository)


def get_payment_ledger(repository: DispatchRepository = Depends(get_repository)) -> PaymentLedger:
    return PaymentLedger(repository)
