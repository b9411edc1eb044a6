"""
PostgreSQL Storage Adapter
"""

from datetime import timedelta

from sqlalchemy import DateTime, func, type_coerce, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.orm import Session

from gaenstore.models import EXPOSED_ID_SEQUENCE, GaenExposed, IdSequence, Visited
from gaenstore.storage.base import INTERVAL_SECONDS, StoragePort


class PostgresStorage(StoragePort):
    name = "postgresql"

    def ensure_sequence(self, session: Session, sequence: str = EXPOSED_ID_SEQUENCE) -> None:
        stmt = (
            pg_insert(IdSequence.__table__)
            .values(name=sequence, next_id=self._initial_next_id())
            .on_conflict_do_nothing(index_elements=["name"])
        )
        session.execute(stmt)

    def reserve_ids(self, session: Session, count: int, sequence: str = EXPOSED_ID_SEQUENCE) -> int:
        # UPDATE takes a row lock held until commit; RETURNING gives the new value
        stmt = (
            update(IdSequence)
            .where(IdSequence.name == sequence)
            .values(next_id=IdSequence.next_id + count)
            .returning(IdSequence.next_id)
        )
        next_id = session.execute(stmt).scalar_one_or_none()
        if next_id is None:
            raise LookupError(f"Id sequence '{sequence}' is not initialized")
        return next_id - count

    def insert_keys_ignore_duplicates(self, session: Session, rows: list[dict]) -> None:
        if not rows:
            return
        stmt = pg_insert(GaenExposed.__table__).on_conflict_do_nothing(
            index_elements=["key_data"]
        )
        session.execute(stmt, rows)

    def insert_visits_ignore_duplicates(self, session: Session, rows: list[dict]) -> None:
        if not rows:
            return
        stmt = pg_insert(Visited.__table__).on_conflict_do_nothing(
            index_elements=["key_id", "country"]
        )
        session.execute(stmt, rows)

    def expiry_expression(self, time_skew: timedelta):
        seconds = (
            (GaenExposed.rolling_start_number + GaenExposed.rolling_period) * INTERVAL_SECONDS
            + time_skew.total_seconds()
        )
        return type_coerce(func.to_timestamp(seconds), DateTime(timezone=True))
