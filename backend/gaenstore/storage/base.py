"""
Storage Port
One method per logical storage operation; dialect adapters supply the SQL
"""

import abc
from datetime import datetime, timedelta
from typing import Iterable, Optional

from sqlalchemy import delete, func, select
from sqlalchemy.orm import Session
from sqlalchemy.sql.elements import ColumnElement

from gaenstore.models import EXPOSED_ID_SEQUENCE, GaenExposed, IdSequence

#: Seconds per ENInterval, used by SQL expiry expressions
INTERVAL_SECONDS = 600


class StoragePort(abc.ABC):
    """
    Storage operations used by the key store service.

    Every method runs inside the caller's session/transaction and never
    commits on its own.
    """

    #: SQLAlchemy dialect name this adapter serves
    name: str = ""

    @abc.abstractmethod
    def ensure_sequence(self, session: Session, sequence: str = EXPOSED_ID_SEQUENCE) -> None:
        """Create the counter row if missing, starting after the highest stored id.

        Idempotent; an existing counter is left untouched.
        """

    @abc.abstractmethod
    def reserve_ids(self, session: Session, count: int, sequence: str = EXPOSED_ID_SEQUENCE) -> int:
        """Atomically advance the counter by `count` and return the first reserved id.

        The counter row stays locked until the surrounding transaction ends, so
        concurrent callers always receive disjoint contiguous blocks.

        Raises:
            LookupError: If the counter row does not exist.
        """

    @abc.abstractmethod
    def insert_keys_ignore_duplicates(self, session: Session, rows: list[dict]) -> None:
        """Insert key rows, silently skipping rows whose key is already stored.

        Any other constraint violation surfaces as sqlalchemy.exc.IntegrityError.
        """

    @abc.abstractmethod
    def insert_visits_ignore_duplicates(self, session: Session, rows: list[dict]) -> None:
        """Insert visibility grants, silently skipping existing (key_id, country) pairs."""

    @abc.abstractmethod
    def expiry_expression(self, time_skew: timedelta) -> ColumnElement:
        """SQL expression (typed as DateTime) for a key's expiry instant:
        (rolling_start_number + rolling_period) * 10 minutes + time_skew."""

    def lookup_ids(self, session: Session, key_data: Iterable[str]) -> dict[str, int]:
        """Map stored key payloads to their exposed ids"""
        key_data = list(key_data)
        if not key_data:
            return {}
        stmt = select(GaenExposed.key_data, GaenExposed.id).where(
            GaenExposed.key_data.in_(key_data)
        )
        return {row.key_data: row.id for row in session.execute(stmt)}

    def taken_ids(self, session: Session, first_id: int, count: int) -> list[int]:
        """Stored exposed ids inside the block [first_id, first_id + count)"""
        stmt = (
            select(GaenExposed.id)
            .where(GaenExposed.id >= first_id, GaenExposed.id < first_id + count)
            .order_by(GaenExposed.id)
        )
        return list(session.execute(stmt).scalars())

    def current_next_id(self, session: Session, sequence: str = EXPOSED_ID_SEQUENCE) -> Optional[int]:
        stmt = select(IdSequence.next_id).where(IdSequence.name == sequence)
        return session.execute(stmt).scalar_one_or_none()

    def delete_received_before(self, session: Session, horizon: datetime) -> int:
        """Delete keys received before horizon; grants follow by ON DELETE CASCADE"""
        stmt = delete(GaenExposed).where(GaenExposed.received_at < horizon)
        result = session.execute(stmt, execution_options={"synchronize_session": False})
        return result.rowcount

    def _initial_next_id(self):
        """Scalar subquery: one past the highest stored exposed id"""
        return select(func.coalesce(func.max(GaenExposed.id), 0) + 1).scalar_subquery()
