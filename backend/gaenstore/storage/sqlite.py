"""
SQLite Storage Adapter

SQLite has no row locks: the first write of a transaction takes the
database-wide write lock and keeps it until commit, which serializes
concurrent ingestion calls on the counter.
"""

from datetime import timedelta

from sqlalchemy import DateTime, func, literal, select, type_coerce, update
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session

from gaenstore.models import EXPOSED_ID_SEQUENCE, GaenExposed, IdSequence, Visited
from gaenstore.storage.base import INTERVAL_SECONDS, StoragePort

# Matches the storage format of sqlalchemy's SQLite DateTime type
# ("%Y-%m-%d %H:%M:%S.%f"); strftime's %f only yields milliseconds.
_SQLITE_DATETIME_FORMAT = "%Y-%m-%d %H:%M:%f"
_MICROSECOND_PAD = "000"


class SQLiteStorage(StoragePort):
    name = "sqlite"

    def ensure_sequence(self, session: Session, sequence: str = EXPOSED_ID_SEQUENCE) -> None:
        stmt = (
            sqlite_insert(IdSequence.__table__)
            .values(name=sequence, next_id=self._initial_next_id())
            .on_conflict_do_nothing(index_elements=["name"])
        )
        session.execute(stmt)

    def reserve_ids(self, session: Session, count: int, sequence: str = EXPOSED_ID_SEQUENCE) -> int:
        stmt = (
            update(IdSequence)
            .where(IdSequence.name == sequence)
            .values(next_id=IdSequence.next_id + count)
            .execution_options(synchronize_session=False)
        )
        result = session.execute(stmt)
        if result.rowcount != 1:
            raise LookupError(f"Id sequence '{sequence}' is not initialized")
        # Still inside the write transaction, nobody else can have moved it
        next_id = session.execute(
            select(IdSequence.next_id).where(IdSequence.name == sequence)
        ).scalar_one()
        return next_id - count

    def insert_keys_ignore_duplicates(self, session: Session, rows: list[dict]) -> None:
        if not rows:
            return
        stmt = sqlite_insert(GaenExposed.__table__).on_conflict_do_nothing(
            index_elements=["key_data"]
        )
        session.execute(stmt, rows)

    def insert_visits_ignore_duplicates(self, session: Session, rows: list[dict]) -> None:
        if not rows:
            return
        stmt = sqlite_insert(Visited.__table__).on_conflict_do_nothing(
            index_elements=["key_id", "country"]
        )
        session.execute(stmt, rows)

    def expiry_expression(self, time_skew: timedelta):
        seconds = (
            (GaenExposed.rolling_start_number + GaenExposed.rolling_period) * INTERVAL_SECONDS
            + time_skew.total_seconds()
        )
        text_value = func.strftime(_SQLITE_DATETIME_FORMAT, seconds, literal("unixepoch"))
        return type_coerce(text_value.op("||")(_MICROSECOND_PAD), DateTime(timezone=True))
