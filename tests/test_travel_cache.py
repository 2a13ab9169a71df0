import json
from datetime import datetime, timedelta

from fieldops.cache import Cache
from fieldops.domain.travel.cache_service import TravelPairCache, make_pair
from fieldops.domain.travel.repository import TravelCacheRepository
from fieldops.domain.travel.schemas import TravelEstimate
from fieldops.models import TravelTimeCache

WRITTEN_AT = datetime(2030, 1, 1, 12, 0)


class FakeRedis:
    """Just enough of redis.Redis for the hot cache"""

    def __init__(self):
        self.values = {}
        self.ttls = {}

    def mget(self, keys):
        return [self.values.get(key) for key in keys]

    def pipeline(self):
        return FakePipeline(self)


class FakePipeline:
    def __init__(self, client):
        self.client = client
        self.pending = []

    def setex(self, key, ttl, value):
        self.pending.append((key, ttl, value))

    def execute(self):
        for key, ttl, value in self.pending:
            self.client.values[key] = value
            self.client.ttls[key] = ttl


class BrokenRedis:
    def mget(self, keys):
        raise ConnectionError("redis down")

    def pipeline(self):
        raise ConnectionError("redis down")


def estimate_for(pair, minutes):
    return TravelEstimate(
        pair_hash=pair.pair_hash,
        origin_normalized=pair.origin_normalized,
        destination_normalized=pair.destination_normalized,
        time_bucket=pair.time_bucket,
        typical_minutes=minutes,
        distance_km=minutes / 2,
    )


def test_lookup_splits_hits_from_distinct_misses(db):
    cache = TravelPairCache(db, hot_cache=Cache(), clock=lambda: WRITTEN_AT)
    known = make_pair("1 Main St", "2 Oak Ave", datetime(2030, 1, 8, 9, 0))
    missing = make_pair("2 Oak Ave", "3 Pine Rd", datetime(2030, 1, 8, 12, 0))
    # Same weekday and hour, one week later: same key
    missing_again = make_pair("2 oak avenue", "3 pine road", datetime(2030, 1, 15, 12, 30))
    cache.store([estimate_for(known, 25)])

    cached, uncached = cache.lookup_many([known, missing, missing_again])

    assert set(cached) == {known.pair_hash}
    assert cached[known.pair_hash].typical_minutes == 25
    assert [p.pair_hash for p in uncached] == [missing.pair_hash]


def test_expired_rows_are_misses_and_get_purged(db):
    pair = make_pair("1 Main St", "2 Oak Ave", datetime(2030, 1, 8, 9, 0))
    TravelPairCache(db, hot_cache=Cache(), clock=lambda: WRITTEN_AT).store([estimate_for(pair, 25)])

    later = WRITTEN_AT + timedelta(days=91)
    cached, uncached = TravelPairCache(db, hot_cache=Cache(), clock=lambda: later).lookup_many([pair])

    assert cached == {}
    assert len(uncached) == 1
    assert TravelCacheRepository.delete_expired(db, later) == 1
    assert db.query(TravelTimeCache).count() == 0


def test_store_refreshes_existing_key(db):
    pair = make_pair("1 Main St", "2 Oak Ave", datetime(2030, 1, 8, 9, 0))
    cache = TravelPairCache(db, hot_cache=Cache(), clock=lambda: WRITTEN_AT)
    cache.store([estimate_for(pair, 25)])
    cache.store([estimate_for(pair, 31), estimate_for(pair, 33)])

    rows = db.query(TravelTimeCache).all()
    assert len(rows) == 1
    assert rows[0].typical_minutes == 33
    assert rows[0].expires_at == WRITTEN_AT + timedelta(days=90)


def test_hot_cache_answers_before_the_database(db):
    redis = FakeRedis()
    pair = make_pair("1 Main St", "2 Oak Ave", datetime(2030, 1, 8, 9, 0))
    TravelPairCache(db, hot_cache=Cache(client=redis), clock=lambda: WRITTEN_AT).store(
        [estimate_for(pair, 25)]
    )
    db.query(TravelTimeCache).delete()
    db.commit()

    cached, uncached = TravelPairCache(
        db, hot_cache=Cache(client=redis), clock=lambda: WRITTEN_AT
    ).lookup_many([pair])

    assert uncached == []
    assert cached[pair.pair_hash].typical_minutes == 25
    assert json.loads(redis.values[f"travel:{pair.pair_hash}"])["distance_km"] == 12.5


def test_broken_redis_falls_through_to_sql(db):
    pair = make_pair("1 Main St", "2 Oak Ave", datetime(2030, 1, 8, 9, 0))
    cache = TravelPairCache(db, hot_cache=Cache(client=BrokenRedis()), clock=lambda: WRITTEN_AT)
    cache.store([estimate_for(pair, 25)])

    cached, uncached = cache.lookup_many([pair])

    assert uncached == []
    assert cached[pair.pair_hash].typical_minutes == 25


def test_hot_copy_never_outlives_the_row(db):
    pair = make_pair("1 Main St", "2 Oak Ave", datetime(2030, 1, 8, 9, 0))
    TravelPairCache(db, hot_cache=Cache(), clock=lambda: WRITTEN_AT).store([estimate_for(pair, 25)])
    redis = FakeRedis()
    nearly_expired = WRITTEN_AT + timedelta(days=90) - timedelta(seconds=100)

    cached, _ = TravelPairCache(
        db, hot_cache=Cache(client=redis), clock=lambda: nearly_expired
    ).lookup_many([pair])

    assert pair.pair_hash in cached
    assert redis.ttls[f"travel:{pair.pair_hash}"] == 100


def test_fresh_rows_get_the_standard_hot_ttl(db):
    redis = FakeRedis()
    pair = make_pair("1 Main St", "2 Oak Ave", datetime(2030, 1, 8, 9, 0))

    TravelPairCache(db, hot_cache=Cache(client=redis), clock=lambda: WRITTEN_AT).store(
        [estimate_for(pair, 25)]
    )

    assert redis.ttls[f"travel:{pair.pair_hash}"] == 21600


def test_corrupt_hot_entries_fall_through_to_sql(db):
    redis = FakeRedis()
    good = make_pair("1 Main St", "2 Oak Ave", datetime(2030, 1, 8, 9, 0))
    odd = make_pair("3 Pine Rd", "4 Elm Ct", datetime(2030, 1, 8, 9, 0))
    TravelPairCache(db, hot_cache=Cache(), clock=lambda: WRITTEN_AT).store(
        [estimate_for(good, 25), estimate_for(odd, 12)]
    )
    redis.values[f"travel:{good.pair_hash}"] = "{not json"
    redis.values[f"travel:{odd.pair_hash}"] = json.dumps({"typical_minutes": "soon"})

    cached, uncached = TravelPairCache(
        db, hot_cache=Cache(client=redis), clock=lambda: WRITTEN_AT
    ).lookup_many([good, odd])

    assert uncached == []
    assert cached[good.pair_hash].typical_minutes == 25
    assert cached[odd.pair_hash].typical_minutes == 12
