"""Travel-pair cache keyed by normalized addresses and a coarse departure bucket.

Departures in the same weekday and hour bucket share one key on purpose: the
cache trades minute-level precision for hit rate.
"""

import hashlib
import logging
from datetime import datetime, timedelta
from typing import Callable, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ...cache import Cache, travel_hot_cache
from ...config import TRAVEL_CACHE_TTL_DAYS, TRAVEL_HOUR_BUCKET_SIZE
from ..scheduling.time_calculator import to_business_local, utc_now
from .address import normalize_address
from .repository import TravelCacheRepository
from .schemas import RoutePair, TravelEstimate

logger = logging.getLogger(__name__)


def time_bucket(departure_at: datetime) -> str:
    """w{weekday, Sunday=0}|h{hour bucket}, evaluated in the business zone"""
    local = to_business_local(departure_at)
    weekday = (local.weekday() + 1) % 7
    hour_bucket = (local.hour // TRAVEL_HOUR_BUCKET_SIZE) * TRAVEL_HOUR_BUCKET_SIZE
    return f"w{weekday}|h{hour_bucket}"


def pair_hash(origin: str, destination: str, departure_at: datetime) -> str:
    raw = f"{normalize_address(origin)}|{normalize_address(destination)}|{time_bucket(departure_at)}"
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def seconds_until(now: datetime, expires_at: datetime) -> int:
    return int((expires_at - now).total_seconds())


def make_pair(origin: str, destination: str, departure_at: datetime) -> RoutePair:
    return RoutePair(
        origin=origin,
        destination=destination,
        departure_at=departure_at,
        origin_normalized=normalize_address(origin),
        destination_normalized=normalize_address(destination),
        time_bucket=time_bucket(departure_at),
        pair_hash=pair_hash(origin, destination, departure_at),
    )


class TravelPairCache:
    """Read-through cache over the travel_time_cache table with a Redis hot layer"""

    def __init__(
        self,
        db: Session,
        hot_cache: Optional[Cache] = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self.db = db
        self.repo = TravelCacheRepository()
        self.hot_cache = hot_cache if hot_cache is not None else travel_hot_cache
        self.clock = clock

    def lookup_many(
        self, pairs: list[RoutePair]
    ) -> tuple[dict[str, TravelEstimate], list[RoutePair]]:
        """
        Batch read.
        Returns (cached estimates by pair hash, distinct pairs still missing)
        """
        unique: dict[str, RoutePair] = {}
        for pair in pairs:
            unique.setdefault(pair.pair_hash, pair)
        if not unique:
            return {}, []

        cached: dict[str, TravelEstimate] = {}
        for key, value in self.hot_cache.get_many(list(unique)).items():
            try:
                cached[key] = TravelEstimate.model_validate(value)
            except ValidationError:
                logger.warning(f"⚠️ Ignoring malformed hot cache entry for {key}")

        remaining = [key for key in unique if key not in cached]
        if remaining:
            now = self.clock()
            rows = self.repo.find_by_hashes(self.db, remaining, now)
            from_db = {row.pair_hash: TravelEstimate.model_validate(row) for row in rows}
            cached.update(from_db)
            self.hot_cache.set_many(
                {key: est.model_dump() for key, est in from_db.items()},
                max_ttls={row.pair_hash: seconds_until(now, row.expires_at) for row in rows},
            )

        uncached = [pair for key, pair in unique.items() if key not in cached]
        logger.debug(f"📊 Travel cache: {len(cached)} hits, {len(uncached)} misses")
        return cached, uncached

    def store(self, estimates: list[TravelEstimate]) -> int:
        """Upsert estimates with a fresh TTL from write time"""
        if not estimates:
            return 0

        now = self.clock()
        expires_at = now + timedelta(days=TRAVEL_CACHE_TTL_DAYS)
        rows = [
            {
                **estimate.model_dump(),
                "expires_at": expires_at,
                "updated_at": now,
            }
            for estimate in estimates
        ]
        written = self.repo.bulk_upsert(self.db, rows)
        remaining = seconds_until(now, expires_at)
        self.hot_cache.set_many(
            {est.pair_hash: est.model_dump() for est in estimates},
            max_ttls={est.pair_hash: remaining for est in estimates},
        )
        logger.info(f"✅ Cached {written} travel estimates (TTL {TRAVEL_CACHE_TTL_DAYS}d)")
        return written
