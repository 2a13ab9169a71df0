"""Route estimation for cache misses"""

import asyncio
import logging
import math
from datetime import datetime
from typing import Callable, Optional

from ...config import ROUTING_CONCURRENCY_LIMIT
from ...services.google_routes_service import GoogleRoutesService
from ..scheduling.time_calculator import is_future, to_utc_instant
from .cache_service import TravelPairCache
from .schemas import RoutePair, TravelEstimate

logger = logging.getLogger(__name__)


def sanitize_estimate_value(value) -> float:
    """Non-finite or negative becomes 0; otherwise one decimal place"""
    try:
        number = float(value)
    except (TypeError, ValueError):
        return 0.0
    if not math.isfinite(number):
        return 0.0
    return max(0.0, round(number, 1))


class RouteEstimator:
    """Calls the routing provider in bounded batches and writes results to the cache"""

    def __init__(
        self,
        cache: TravelPairCache,
        provider: Optional[GoogleRoutesService] = None,
        concurrency_limit: int = ROUTING_CONCURRENCY_LIMIT,
        now: Optional[Callable[[], datetime]] = None,
    ):
        self.cache = cache
        self.provider = provider or GoogleRoutesService()
        self.concurrency_limit = max(1, concurrency_limit)
        self.now = now

    async def _estimate_one(self, pair: RoutePair) -> Optional[TravelEstimate]:
        reference = self.now() if self.now else None
        departure = (
            to_utc_instant(pair.departure_at) if is_future(pair.departure_at, reference) else None
        )
        route = await self.provider.compute_route(pair.origin, pair.destination, departure)
        if route is None:
            return None

        return TravelEstimate(
            pair_hash=pair.pair_hash,
            origin_normalized=pair.origin_normalized,
            destination_normalized=pair.destination_normalized,
            time_bucket=pair.time_bucket,
            typical_minutes=sanitize_estimate_value(route.get("minutes")),
            distance_km=sanitize_estimate_value(route.get("km")),
            route_polyline=route.get("polyline"),
            travel_notes="Google Routes traffic-aware estimate"
            if departure
            else "Google Routes estimate (no departure time)",
        )

    async def estimate(self, pairs: list[RoutePair]) -> list[TravelEstimate]:
        """
        Estimate every pair, at most `concurrency_limit` calls in flight.
        Failed pairs are left out of the result, never retried.
        """
        if not pairs:
            return []

        logger.info(f"🔄 Estimating {len(pairs)} travel pairs via routing provider")
        estimates: list[TravelEstimate] = []

        for offset in range(0, len(pairs), self.concurrency_limit):
            batch = pairs[offset : offset + self.concurrency_limit]
            outcomes = await asyncio.gather(
                *[self._estimate_one(pair) for pair in batch], return_exceptions=True
            )
            for pair, outcome in zip(batch, outcomes):
                if isinstance(outcome, BaseException):
                    logger.warning(
                        f"⚠️ Route estimate failed for {pair.origin_normalized} -> "
                        f"{pair.destination_normalized}: {outcome}"
                    )
                    continue
                if outcome is not None:
                    estimates.append(outcome)

        failed = len(pairs) - len(estimates)
        if failed:
            logger.warning(f"⚠️ {failed}/{len(pairs)} travel pairs could not be estimated")

        if estimates:
            self.cache.store(estimates)
        return estimates
