import asyncio
import json
from datetime import datetime

import httpx
from dateutil import tz

from fieldops.services.google_routes_service import GoogleRoutesService


def service_with(handler, api_key="routes-key"):
    return GoogleRoutesService(api_key=api_key, transport=httpx.MockTransport(handler))


def test_successful_route_is_parsed_and_request_is_traffic_aware():
    seen = {}

    def handler(request):
        seen["headers"] = request.headers
        seen["body"] = json.loads(request.content)
        return httpx.Response(
            200,
            json={
                "routes": [
                    {
                        "duration": "1530s",
                        "distanceMeters": 18250,
                        "polyline": {"encodedPolyline": "_p~iF~ps|U"},
                    }
                ]
            },
        )

    departure = datetime(2030, 1, 8, 17, 0, tzinfo=tz.UTC)
    route = asyncio.run(service_with(handler).compute_route("1 Main St", "2 Oak Ave", departure))

    assert route == {"minutes": 25.5, "km": 18.25, "polyline": "_p~iF~ps|U"}
    assert seen["headers"]["X-Goog-Api-Key"] == "routes-key"
    assert seen["body"]["routingPreference"] == "TRAFFIC_AWARE"
    assert seen["body"]["departureTime"] == "2030-01-08T17:00:00.000Z"


def test_departure_time_is_omitted_when_not_given():
    body = GoogleRoutesService(api_key="k").build_request_body("A", "B", None)

    assert "departureTime" not in body
    assert body["origin"] == {"address": "A"}


def test_missing_key_skips_the_request():
    calls = []

    def handler(request):
        calls.append(request)
        return httpx.Response(200, json={})

    assert asyncio.run(service_with(handler, api_key="").compute_route("A", "B")) is None
    assert calls == []


def test_provider_errors_become_none():
    def server_error(request):
        return httpx.Response(500, text="boom")

    def no_routes(request):
        return httpx.Response(200, json={"routes": []})

    def bad_duration(request):
        return httpx.Response(200, json={"routes": [{"duration": "soon"}]})

    def unreachable(request):
        raise httpx.ConnectError("no route to host")

    for handler in (server_error, no_routes, bad_duration, unreachable):
        assert asyncio.run(service_with(handler).compute_route("A", "B")) is None
