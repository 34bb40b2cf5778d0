"""Derive route completion from the terminal state of its stops."""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Optional

from ...models.domain import StopStatus
from ...persistence.repository import DispatchRepository

logger = logging.getLogger(__name__)


def cascade_route_completion(
    repository: DispatchRepository,
    route_id: str,
    occurred_at: Optional[datetime] = None,
) -> bool:
    """Complete the route when every stop is terminal.

    The write is conditional on the route still being active, so concurrent
    callers converge: exactly one returns True.
    """
    stops = repository.list_stops(route_id)
    if not stops or not all(stop.status.is_terminal for stop in stops):
        return False

    completed = repository.mark_route_completed(route_id, occurred_at or datetime.now(timezone.utc))
    if completed:
        failed = sum(1 for stop in stops if stop.status is StopStatus.FAILED)
        logger.info(f"Route {route_id} completed ({len(stops) - failed} delivered, {failed} failed)")
    else:
        logger.debug(f"Route {route_id} was already past active; cascade is a no-op")
    return completed
