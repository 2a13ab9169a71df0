"""Travel service - cache-first travel estimates and day travel summaries"""

import logging
from datetime import datetime
from typing import Optional

from sqlalchemy.orm import Session

from ...services.google_routes_service import GoogleRoutesService
from ..scheduling.day_router import build_segments
from .cache_service import TravelPairCache, make_pair
from .route_estimator import RouteEstimator
from .schemas import DayTravelSummary, RouteJob, RoutePair, SegmentEstimate, TravelEstimate

logger = logging.getLogger(__name__)


class TravelService:
    """Resolves route pairs through the cache, estimating only the misses"""

    def __init__(
        self,
        db: Session,
        provider: Optional[GoogleRoutesService] = None,
        cache: Optional[TravelPairCache] = None,
        estimator: Optional[RouteEstimator] = None,
    ):
        self.db = db
        self.cache = cache or TravelPairCache(db)
        self.estimator = estimator or RouteEstimator(self.cache, provider)

    async def resolve_pairs(self, pairs: list[RoutePair]) -> dict[str, TravelEstimate]:
        """Known estimates by pair hash; a pair missing from the result is unknown"""
        routable = [p for p in pairs if p.origin_normalized != p.destination_normalized]
        if not routable:
            return {}

        known, uncached = self.cache.lookup_many(routable)
        if uncached:
            for estimate in await self.estimator.estimate(uncached):
                known[estimate.pair_hash] = estimate
        return known

    async def travel_minutes(
        self, origin: str, destination: str, departure_at: datetime
    ) -> Optional[float]:
        pair = make_pair(origin, destination, departure_at)
        if pair.origin_normalized == pair.destination_normalized:
            return 0.0
        estimate = (await self.resolve_pairs([pair])).get(pair.pair_hash)
        return estimate.typical_minutes if estimate else None

    @staticmethod
    def apply_estimates(
        day_key: str,
        technician_id: Optional[int],
        depot_address: Optional[str],
        segment_pairs: list[tuple],
        known: dict[str, TravelEstimate],
    ) -> DayTravelSummary:
        """Fold resolved estimates into a summary; unknown legs add nothing to totals"""
        segments: list[SegmentEstimate] = []
        total_minutes = 0.0
        total_km = 0.0
        has_unknown = False

        for segment, pair in segment_pairs:
            estimate = known.get(pair.pair_hash)
            if estimate is None:
                has_unknown = True
                segments.append(SegmentEstimate(**segment.model_dump(), travel_notes="Unknown"))
                continue
            total_minutes += estimate.typical_minutes
            total_km += estimate.distance_km
            segments.append(
                SegmentEstimate(
                    **segment.model_dump(),
                    typical_minutes=estimate.typical_minutes,
                    distance_km=estimate.distance_km,
                    route_polyline=estimate.route_polyline,
                    travel_notes=estimate.travel_notes,
                )
            )

        return DayTravelSummary(
            date=day_key,
            technician_id=technician_id,
            total_travel_minutes=round(total_minutes, 1),
            total_travel_km=round(total_km, 1),
            segments=segments,
            is_partial=not depot_address,
            has_unknown=has_unknown,
        )

    async def summarize_days(
        self, days: list[tuple[str, Optional[int], list[RouteJob], Optional[str]]]
    ) -> list[DayTravelSummary]:
        """
        Travel totals for many technician-days at once.

        Args:
            days: (date key, technician id, ordered route jobs, depot address) tuples

        All legs across all days share one cache lookup and one estimator pass.
        """
        planned = []
        all_pairs: list[RoutePair] = []
        for day_key, technician_id, jobs, depot in days:
            segment_pairs = [
                (segment, make_pair(segment.from_address, segment.to_address, segment.departure_at))
                for segment in build_segments(jobs, depot)
            ]
            all_pairs.extend(pair for _, pair in segment_pairs)
            planned.append((day_key, technician_id, depot, segment_pairs))

        known = await self.resolve_pairs(all_pairs)
        return [
            self.apply_estimates(day_key, technician_id, depot, segment_pairs, known)
            for day_key, technician_id, depot, segment_pairs in planned
        ]

    async def summarize_day(
        self,
        day_key: str,
        jobs: list[RouteJob],
        depot_address: Optional[str] = None,
        technician_id: Optional[int] = None,
    ) -> DayTravelSummary:
        summaries = await self.summarize_days([(day_key, technician_id, jobs, depot_address)])
        return summaries[0]
