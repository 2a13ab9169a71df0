import asyncio
import math
from datetime import datetime

import pytest
from dateutil import tz

from conftest import NOW, FakeRoutingProvider
from fieldops.cache import Cache
from fieldops.domain.travel.cache_service import TravelPairCache, make_pair
from fieldops.domain.travel.route_estimator import RouteEstimator, sanitize_estimate_value
from fieldops.domain.travel.service import TravelService
from fieldops.models import TravelTimeCache


class SlowProvider:
    """Counts how many calls are in flight at once"""

    def __init__(self, fail_for=()):
        self.in_flight = 0
        self.peak = 0
        self.fail_for = set(fail_for)

    async def compute_route(self, origin, destination, departure_utc=None):
        self.in_flight += 1
        self.peak = max(self.peak, self.in_flight)
        try:
            await asyncio.sleep(0.01)
            if origin in self.fail_for:
                raise RuntimeError("provider exploded")
            return {"minutes": 20, "km": 15, "polyline": None}
        finally:
            self.in_flight -= 1


def pairs(count):
    return [
        make_pair(f"{n} Main St", f"{n} Oak Ave", datetime(2030, 1, 8, 9, 0)) for n in range(count)
    ]


@pytest.mark.parametrize(
    "raw, expected",
    [(12.34, 12.3), ("7.26", 7.3), (-3, 0.0), (math.inf, 0.0), (math.nan, 0.0), (None, 0.0), ("x", 0.0)],
)
def test_sanitize_estimate_value(raw, expected):
    assert sanitize_estimate_value(raw) == expected


def test_at_most_limit_calls_in_flight(db):
    provider = SlowProvider()
    estimator = RouteEstimator(TravelPairCache(db, hot_cache=Cache()), provider, concurrency_limit=3)

    estimates = asyncio.run(estimator.estimate(pairs(8)))

    assert len(estimates) == 8
    assert provider.peak <= 3
    assert db.query(TravelTimeCache).count() == 8


def test_failed_pairs_are_dropped_not_retried(db):
    provider = SlowProvider(fail_for={"1 Main St", "4 Main St"})
    estimator = RouteEstimator(TravelPairCache(db, hot_cache=Cache()), provider, concurrency_limit=2)

    estimates = asyncio.run(estimator.estimate(pairs(5)))

    assert sorted(e.origin_normalized for e in estimates) == [
        "0 main street",
        "2 main street",
        "3 main street",
    ]
    assert db.query(TravelTimeCache).count() == 3


def test_departure_time_only_sent_for_future_departures(db):
    provider = FakeRoutingProvider(default_minutes=10)
    pair = make_pair("1 Main St", "2 Oak Ave", datetime(2030, 1, 8, 9, 0))

    future = RouteEstimator(TravelPairCache(db, hot_cache=Cache()), provider, now=lambda: NOW)
    asyncio.run(future.estimate([pair]))
    past = RouteEstimator(
        TravelPairCache(db, hot_cache=Cache()), provider, now=lambda: datetime(2031, 1, 1, 8, 0)
    )
    estimates = asyncio.run(past.estimate([pair]))

    assert provider.calls[0][2] == datetime(2030, 1, 8, 17, 0, tzinfo=tz.UTC)
    assert provider.calls[1][2] is None
    assert estimates[0].travel_notes == "Google Routes estimate (no departure time)"


def test_travel_minutes_is_zero_for_same_place_and_none_when_unknown(db):
    provider = FakeRoutingProvider(minutes={("1 Main St", "2 Oak Ave"): 18})
    service = TravelService(db, provider, cache=TravelPairCache(db, hot_cache=Cache()))
    departure = datetime(2030, 1, 8, 9, 0)

    assert asyncio.run(service.travel_minutes("1 Main St", "1 main street", departure)) == 0
    assert asyncio.run(service.travel_minutes("1 Main St", "2 Oak Ave", departure)) == 18
    assert asyncio.run(service.travel_minutes("2 Oak Ave", "9 Elm Ct", departure)) is None
    # Only the two real pairs reached the provider, and the hit is now cached
    assert asyncio.run(service.travel_minutes("1 Main St", "2 Oak Ave", departure)) == 18
    assert len(provider.calls) == 2
