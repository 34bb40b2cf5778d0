"""Stop sequencing through the external routing service, with caller-order fallback."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Sequence

from ...exceptions import ExternalServiceError
from ...models.domain import Coordinate
from .osrm_client import OSRMClient

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class OptimizedSequence:
    ordered_ids: list[str]
    optimized: bool


def _permutation_from_trip(data: dict, stop_count: int) -> list[int]:
    """Return stop input indexes (0-based, origin excluded) in trip order.

    Raises:
        ExternalServiceError: If the response is not a complete permutation.
    """
    waypoints = data.get("waypoints")
    if not isinstance(waypoints, list) or len(waypoints) != stop_count + 1:
        count = len(waypoints) if isinstance(waypoints, list) else None
        raise ExternalServiceError(
            f"OSRM returned {count} waypoints for {stop_count} stops",
            {"expected": stop_count + 1, "received": count},
        )
    try:
        positions = [int(w["waypoint_index"]) for w in waypoints]
        trips = {int(w.get("trips_index", 0)) for w in waypoints}
    except (KeyError, TypeError, ValueError) as exc:
        raise ExternalServiceError(f"Malformed OSRM waypoint: {exc}") from exc

    if trips != {0} or positions[0] != 0 or sorted(positions) != list(range(stop_count + 1)):
        raise ExternalServiceError("OSRM trip is not a single permutation starting at the origin")

    stop_positions = positions[1:]
    return sorted(range(stop_count), key=lambda index: stop_positions[index])


class RouteOptimizerGateway:
    """Sequences stops from a warehouse origin.

    Never raises for service problems: any failure yields the input order with
    ``optimized=False``. A result is either a full permutation or the fallback.
    """

    def __init__(self, client: OSRMClient | None = None) -> None:
        self.client = client

    def optimize(self, origin: Coordinate, stops: Sequence[tuple[str, Coordinate]]) -> OptimizedSequence:
        input_ids = [stop_id for stop_id, _ in stops]
        if self.client is None or len(stops) < 2:
            return OptimizedSequence(ordered_ids=input_ids, optimized=False)

        coordinates = [(origin.latitude, origin.longitude)]
        coordinates.extend((c.latitude, c.longitude) for _, c in stops)
        try:
            data = self.client.trip(coordinates)
            order = _permutation_from_trip(data, len(stops))
        except ExternalServiceError as exc:
            logger.warning(f"Route optimization unavailable, keeping caller order for {len(stops)} stops: {exc}")
            return OptimizedSequence(ordered_ids=input_ids, optimized=False)

        return OptimizedSequence(ordered_ids=[input_ids[index] for index in order], optimized=True)
