import httpx
import pytest

from dispatch_ledger.models.domain import Coordinate
from dispatch_ledger.services.routing.optimizer import RouteOptimizerGateway
from dispatch_ledger.services.routing.osrm_client import OSRMClient, check_health

ORIGIN = Coordinate(24.7136, 46.6753)
STOPS = [
    ("a", Coordinate(24.80, 46.70)),
    ("b", Coordinate(24.72, 46.68)),
    ("c", Coordinate(24.75, 46.69)),
]


def _client(handler, max_retries: int = 1) -> OSRMClient:
    return OSRMClient(
        base_url="http://osrm.test",
        profile="driving",
        timeout=5.0,
        max_retries=max_retries,
        backoff_seconds=0.0,
        transport=httpx.MockTransport(handler),
    )


def _trip_response(positions):
    return {
        "code": "Ok",
        "waypoints": [{"waypoint_index": position, "trips_index": 0} for position in positions],
        "trips": [{"distance": 1000.0, "duration": 600.0}],
    }


def test_optimize_returns_trip_permutation():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=_trip_response([0, 3, 1, 2]))

    result = RouteOptimizerGateway(_client(handler)).optimize(ORIGIN, STOPS)

    assert result.optimized is True
    assert result.ordered_ids == ["b", "c", "a"]
    request = seen[0]
    assert request.url.path == "/trip/v1/driving/46.6753,24.7136;46.7,24.8;46.68,24.72;46.69,24.75"
    assert request.url.params["source"] == "first"
    assert request.url.params["roundtrip"] == "false"


def test_timeout_falls_back_to_input_order_after_one_retry():
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append(request)
        raise httpx.ReadTimeout("timed out", request=request)

    result = RouteOptimizerGateway(_client(handler)).optimize(ORIGIN, STOPS)

    assert result.optimized is False
    assert result.ordered_ids == ["a", "b", "c"]
    assert len(calls) == 2


@pytest.mark.parametrize(
    "payload",
    [
        _trip_response([0, 2, 1]),
        _trip_response([0, 1, 1, 2]),
        _trip_response([1, 0, 2, 3]),
        {"code": "NoTrips", "message": "No trip visiting all destinations possible."},
        {"code": "Ok", "waypoints": [{"trips_index": 0}] * 4},
        ["not", "an", "object"],
    ],
)
def test_unusable_responses_fall_back(payload):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=payload)

    result = RouteOptimizerGateway(_client(handler, max_retries=0)).optimize(ORIGIN, STOPS)

    assert result.optimized is False
    assert result.ordered_ids == ["a", "b", "c"]


def test_split_trips_fall_back():
    payload = _trip_response([0, 1, 2, 3])
    payload["waypoints"][3]["trips_index"] = 1

    result = RouteOptimizerGateway(_client(lambda request: httpx.Response(200, json=payload), 0)).optimize(ORIGIN, STOPS)

    assert result.optimized is False


def test_server_error_falls_back():
    result = RouteOptimizerGateway(_client(lambda request: httpx.Response(503), 0)).optimize(ORIGIN, STOPS)

    assert result.optimized is False
    assert result.ordered_ids == ["a", "b", "c"]


def test_without_client_or_with_one_stop_keeps_input_order():
    assert RouteOptimizerGateway().optimize(ORIGIN, STOPS).ordered_ids == ["a", "b", "c"]

    def handler(request: httpx.Request) -> httpx.Response:
        raise AssertionError("single stop must not call the service")

    single = RouteOptimizerGateway(_client(handler)).optimize(ORIGIN, STOPS[:1])
    assert single.ordered_ids == ["a"]
    assert single.optimized is False


def test_client_requires_base_url(monkeypatch):
    from dispatch_ledger.services.routing import osrm_client

    monkeypatch.setattr(osrm_client.settings, "osrm_base_url", None)
    with pytest.raises(ValueError):
        OSRMClient()


def test_check_health():
    healthy = _client(lambda request: httpx.Response(200, json=_trip_response([0, 1])), 0)
    unhealthy = _client(lambda request: httpx.Response(500), 0)

    assert check_health(healthy) is True
    assert check_health(unhealthy) is False
