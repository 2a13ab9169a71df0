"""Travel-time cache repository - Database operations for cached route estimates"""

from datetime import datetime

from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from ...models import TravelTimeCache

UPSERT_COLUMNS = (
    "origin_normalized",
    "destination_normalized",
    "time_bucket",
    "typical_minutes",
    "distance_km",
    "route_polyline",
    "travel_notes",
    "expires_at",
    "updated_at",
)


class TravelCacheRepository:
    """Repository for travel-time cache rows"""

    @staticmethod
    def find_by_hashes(db: Session, pair_hashes: list[str], now: datetime) -> list[TravelTimeCache]:
        """Unexpired cache rows for the given pair hashes"""
        if not pair_hashes:
            return []
        return (
            db.query(TravelTimeCache)
            .filter(
                TravelTimeCache.pair_hash.in_(pair_hashes),
                TravelTimeCache.expires_at > now,
            )
            .all()
        )

    @staticmethod
    def bulk_upsert(db: Session, rows: list[dict]) -> int:
        """
        Insert or refresh cache rows keyed by pair_hash.
        Returns the number of distinct keys written.
        """
        # One row per key; the last estimate for a key wins
        by_hash = {row["pair_hash"]: row for row in rows}
        if not by_hash:
            return 0

        values = list(by_hash.values())
        dialect = db.get_bind().dialect.name

        if dialect in ("postgresql", "sqlite"):
            insert = pg_insert if dialect == "postgresql" else sqlite_insert
            stmt = insert(TravelTimeCache).values(values)
            stmt = stmt.on_conflict_do_update(
                index_elements=["pair_hash"],
                set_={column: stmt.excluded[column] for column in UPSERT_COLUMNS},
            )
            db.execute(stmt)
        else:
            existing = {
                row.pair_hash: row
                for row in db.query(TravelTimeCache)
                .filter(TravelTimeCache.pair_hash.in_(list(by_hash)))
                .all()
            }
            for pair_hash, value in by_hash.items():
                row = existing.get(pair_hash)
                if row is None:
                    db.add(TravelTimeCache(**value))
                    continue
                for column in UPSERT_COLUMNS:
                    setattr(row, column, value[column])

        db.commit()
        return len(values)

    @staticmethod
    def delete_expired(db: Session, now: datetime) -> int:
        deleted = (
            db.query(TravelTimeCache)
            .filter(TravelTimeCache.expires_at <= now)
            .delete(synchronize_session=False)
        )
        db.commit()
        return deleted
